"""Hulunote backend API client."""

import asyncio
import json
import logging
import os
from typing import Any

import requests

from hulunote_outline.config import API_TOKEN_FILES, REQUEST_TIMEOUT, resolve_api_url
from hulunote_outline.core.wire import (
    NodeRequest,
    UpsertResult,
    parse_node_list_response,
    parse_upsert_response,
    to_wire,
)
from hulunote_outline.errors import RejectedByBackend, TransportFailure, Unauthorized
from hulunote_outline.models.node import Node
from hulunote_outline.util import now_ms


def _find_token() -> tuple[str, str]:
    """Return (token, where it came from)."""
    env_token = os.environ.get("HULUNOTE_TOKEN", "").strip()
    if env_token:
        return env_token, "$HULUNOTE_TOKEN"
    for token_path in API_TOKEN_FILES:
        try:
            return token_path.read_text(encoding="utf-8").strip(), str(token_path)
        except FileNotFoundError:
            pass
    msg = f"Cannot find hulunote token, was looking at $HULUNOTE_TOKEN and {API_TOKEN_FILES!r}"
    raise RuntimeError(msg)


class HulunoteApi:
    """Stateless request/response mapping to the Hulunote backend.

    HTTP calls are blocking ``requests`` calls; the async methods run them in a worker
    thread so the event loop never blocks.
    """

    def __init__(self, *, api_url: str | None = None, token: str | None = None) -> None:
        self.api_url = (api_url or resolve_api_url()).rstrip("/")
        self.sess = requests.Session()
        self.logger = logging.getLogger("api")

        token_name = "argument"
        if token is None:
            token, token_name = _find_token()
        self.api_token = token
        self.sess.headers["Authorization"] = f"Bearer {self.api_token}"

        self.logger.debug(f"API ready: {self.api_url!r}, token from {token_name!r}")

    def call(self, path: str, body: dict[str, Any]) -> dict[str, Any]:
        """POST a JSON body to ``{api_url}/{path}`` and return the JSON response.

        Raises:
            TransportFailure: network error, timeout, 5xx, or unparseable body.
            Unauthorized: 401.
            RejectedByBackend: any other 4xx.
        """
        self.logger.debug(f"Making request: {path!r} {repr(body)[:64]}")
        try:
            r = self.sess.post(f"{self.api_url}/{path}", json=body, timeout=REQUEST_TIMEOUT)
        except requests.RequestException as e:
            raise TransportFailure(f"{path}: {e}") from e

        if r.status_code == 401:
            raise Unauthorized()
        if 400 <= r.status_code < 500:
            msg = f"{path} rejected ({r.status_code}): {r.text[:200]}"
            raise RejectedByBackend(msg, status=r.status_code, body=r.text)
        if r.status_code >= 500:
            msg = f"{path} failed ({r.status_code}): {r.text[:200]}"
            raise TransportFailure(msg, status=r.status_code)

        try:
            rv = r.json()
        except (ValueError, json.JSONDecodeError) as e:
            raise TransportFailure(f"{path}: unparseable response: {e}") from e
        if not isinstance(rv, dict):
            raise TransportFailure(f"{path}: expected a JSON object, got {type(rv).__name__}")
        return rv

    async def create_or_update_node(self, request: NodeRequest) -> UpsertResult:
        data = await asyncio.to_thread(self.call, "hulunote/create-or-update-nav", to_wire(request))
        try:
            return parse_upsert_response(data, request=request, received_ms=now_ms())
        except ValueError as e:
            raise TransportFailure(str(e)) from e

    async def get_note_nodes(self, note_id: str) -> list[Node]:
        data = await asyncio.to_thread(self.call, "hulunote/get-note-navs", {"note-id": note_id})
        return parse_node_list_response(data)

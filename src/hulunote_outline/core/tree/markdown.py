"""Render outline subtrees as markdown."""

import io

from hulunote_outline.core.tree.model import OutlineTree


def render_outline_as_markdown(
    tree: OutlineTree,
    *,
    node_id: str | None = None,
    max_depth: int | None = None,
    expand_collapsed: bool = False,
) -> str:
    """Render a node (or the whole note) and its live descendants as indented markdown.

    Args:
        tree: The outline to render.
        node_id: Start node; None renders every top-level node.
        max_depth: Max levels below the start to include (None = unlimited).
        expand_collapsed: Also render children of collapsed nodes.

    Returns:
        Markdown string with bullet-list hierarchy.
    """
    if node_id is None:
        starts = tree.children(tree.root_id)
    elif node_id in tree and not tree.get(node_id).is_delete:
        starts = [tree.get(node_id)]
    else:
        return ""

    out = io.StringIO()
    todo = [(n, 0) for n in reversed(starts)]
    while todo:
        node, depth = todo.pop()
        indent = "    " * depth

        # Write content lines
        lines = node.content.split("\n")
        out.write(f"{indent}- {lines[0]}\n")
        for line in lines[1:]:
            out.write(f"{indent}  {line}\n")

        kids = tree.children(node.id)
        if not kids:
            continue
        if max_depth is not None and depth >= max_depth:
            noun = "child" if len(kids) == 1 else "children"
            out.write(f"{indent}    - ... ({len(kids)} more {noun}, id={node.id})\n")
            continue
        if not node.is_display and not expand_collapsed:
            noun = "child" if len(kids) == 1 else "children"
            out.write(f"{indent}    - ... ({len(kids)} collapsed {noun})\n")
            continue
        todo.extend((k, depth + 1) for k in reversed(kids))

    return out.getvalue()

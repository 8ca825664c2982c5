"""
Plain-text outlines of nodes with their surrounding hierarchy.
"""

from askgraph.models.results import ContextNode

ELLIPSIS = "..."
INDENT = "  "


def truncate_text(text: str, limit: int) -> tuple[str, bool]:
    """Cut text to `limit` characters, marking the cut with an ellipsis."""
    if len(text) <= limit:
        return text, False
    if limit <= len(ELLIPSIS):
        return text[: max(limit, 0)], True
    return text[: limit - len(ELLIPSIS)].rstrip() + ELLIPSIS, True


def render(body: str, parents: list[ContextNode], children: list[ContextNode]) -> str:
    """Outline of a node: parent lines, the node itself, then indented children."""
    lines = [f"(in: {parent.content})" for parent in parents]
    lines.append(body)

    def walk(nodes: list[ContextNode], indent: int) -> None:
        for node in nodes:
            lines.append(f"{INDENT * indent}- {node.content}")
            walk(node.children, indent + 1)

    walk(children, 1)
    return "\n".join(lines)

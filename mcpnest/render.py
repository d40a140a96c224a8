"""Locate the MCP config JSON inside a LiveView render tree.

The config textarea is rendered server side, so its content arrives as a
string leaf somewhere under ``response["rendered"]["0"]``. Two known
positions are checked first; the whole tree is then searched to a bounded
depth in case the page layout moved.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any, Final, TypeAlias

_LOGGER = logging.getLogger(__name__)

# A render node is either a string leaf or a nested mapping. Dynamic
# sections may also render as lists of nodes.
RenderNode: TypeAlias = "str | Mapping[str, RenderNode] | Sequence[RenderNode]"

MAX_SEARCH_DEPTH: Final = 10
PAYLOAD_MARKER: Final = "mcpServers"

# Current textarea position, then the layout used by earlier page versions.
KNOWN_PATHS: Final[tuple[tuple[str, ...], ...]] = (
    ("8", "3"),
    ("1", "3", "0"),
)

# "&amp;" must stay last so "&amp;lt;" decodes to "&lt;", not "<".
_ENTITIES: Final = (
    ("&quot;", '"'),
    ("&#39;", "'"),
    ("&lt;", "<"),
    ("&gt;", ">"),
    ("&amp;", "&"),
)


def unescape_entities(text: str) -> str:
    """Decode the five HTML entities LiveView escapes in text content."""
    for entity, literal in _ENTITIES:
        text = text.replace(entity, literal)
    return text


def _lookup(tree: RenderNode, path: Sequence[str]) -> Any:
    node = tree
    for key in path:
        if not isinstance(node, Mapping):
            return None
        node = node.get(key)
    return node


def find_payload(
    node: RenderNode,
    depth: int = 0,
    *,
    marker: str = PAYLOAD_MARKER,
    max_depth: int = MAX_SEARCH_DEPTH,
) -> str | None:
    """Depth-first search for the first string leaf containing ``marker``.

    Nodes deeper than ``max_depth`` are not inspected.
    """
    if depth > max_depth:
        return None
    if isinstance(node, str):
        return node if marker in node else None
    if isinstance(node, Mapping):
        children = node.values()
    elif isinstance(node, Sequence):
        children = node
    else:
        return None

    for child in children:
        found = find_payload(child, depth + 1, marker=marker, max_depth=max_depth)
        if found is not None:
            return found
    return None


def extract_config_payload(response: Mapping[str, Any]) -> str | None:
    """Return the unescaped config JSON text from a join reply, or None."""
    rendered = response.get("rendered")
    if not isinstance(rendered, Mapping):
        return None
    tree = rendered.get("0")
    if not isinstance(tree, Mapping):
        return None

    if _LOGGER.isEnabledFor(logging.DEBUG):
        _LOGGER.debug("Render tree keys: %s", list(tree))

    for path in KNOWN_PATHS:
        candidate = _lookup(tree, path)
        if isinstance(candidate, str) and "{" in candidate:
            _LOGGER.debug("Config found at %s", "/".join(path))
            return unescape_entities(candidate)

    found = find_payload(tree)
    if found is None:
        _LOGGER.debug("Config not found within depth %d", MAX_SEARCH_DEPTH)
        return None
    return unescape_entities(found)

"""Rich Text Flattening Module

Converts a Contentful rich-text document tree into plain text.

The tree is made of text leaves, block nodes and inline nodes. Embedded
assets are rendered as image/link markers; embedded entries are rendered
through a caller-supplied projection function when a content-type
configuration matches them, otherwise their children are flattened like
any other container.
"""

from typing import Any, Callable, Dict, List, Mapping, Optional
import logging

from .values import Ok, Skipped, RenderResult, content_type_of, guarded, render_or_empty

logger = logging.getLogger(__name__)

TEXT = "text"

EMBEDDED_ASSET_BLOCK = "embedded-asset-block"
EMBEDDED_ENTRY_BLOCK = "embedded-entry-block"
EMBEDDED_ENTRY_INLINE = "embedded-entry-inline"

BLOCKS = frozenset({
    "document",
    "paragraph",
    "heading-1",
    "heading-2",
    "heading-3",
    "heading-4",
    "heading-5",
    "heading-6",
    "ordered-list",
    "unordered-list",
    "list-item",
    "hr",
    "blockquote",
    EMBEDDED_ENTRY_BLOCK,
    EMBEDDED_ASSET_BLOCK,
    "embedded-resource-block",
    "table",
    "table-row",
    "table-cell",
    "table-header-cell",
})

INLINES = frozenset({
    "hyperlink",
    "entry-hyperlink",
    "asset-hyperlink",
    "resource-hyperlink",
    EMBEDDED_ENTRY_INLINE,
    "embedded-resource-inline",
})

# Key under which the projector passes embedded content-type configs
EMBEDDED_CONTENT_TYPES = "embeddedContentTypes"

ProjectFn = Callable[[Dict[str, Any], Any], str]


def _node_type(node: Any) -> Optional[str]:
    return node.get("nodeType") if isinstance(node, dict) else None


def is_text(node: Any) -> bool:
    return _node_type(node) == TEXT


def is_block(node: Any) -> bool:
    return _node_type(node) in BLOCKS


def is_inline(node: Any) -> bool:
    return _node_type(node) in INLINES


def asset_marker(asset: Any) -> RenderResult:
    """Render an asset as `![title](https:url)`.

    The title defaults to "Asset"; an asset without `fields.file.url`
    (unresolved link, unpublished file) is skipped.
    """
    fields = asset.get("fields") if isinstance(asset, dict) else None
    if not isinstance(fields, dict):
        return Skipped("asset has no fields")
    file_info = fields.get("file")
    url = file_info.get("url") if isinstance(file_info, dict) else None
    if not url:
        return Skipped("asset has no file url")
    title = fields.get("title") or "Asset"
    return Ok(f"![{title}](https:{url})")


def _find_embedded_config(parsing_rules: Mapping[str, Any], content_type: Optional[str]) -> Any:
    if not content_type:
        return None
    for config in parsing_rules.get(EMBEDDED_CONTENT_TYPES) or []:
        config_type = getattr(config, "content_type", None)
        if config_type is None and isinstance(config, dict):
            config_type = config.get("contentType")
        if config_type == content_type:
            return config
    return None


def _render_embedded_entry(
    node: Dict[str, Any],
    block_divisor: str,
    parsing_rules: Mapping[str, Any],
    project_fn: Optional[ProjectFn],
) -> RenderResult:
    target = (node.get("data") or {}).get("target")
    if not isinstance(target, dict) or not isinstance(target.get("sys"), dict):
        return Skipped(f"{node.get('nodeType')} target is missing or has no sys")

    config = _find_embedded_config(parsing_rules, content_type_of(target))
    if config is not None and project_fn is not None:
        return guarded(project_fn, target, config, context="embedded entry")

    return guarded(
        flatten, node, block_divisor, parsing_rules, project_fn,
        context=f"{node.get('nodeType')} node",
    )


def _render_child(
    node: Dict[str, Any],
    block_divisor: str,
    parsing_rules: Mapping[str, Any],
    project_fn: Optional[ProjectFn],
) -> RenderResult:
    node_type = _node_type(node)

    if node_type == TEXT:
        return Ok(str(node.get("value") or ""))

    if node_type == EMBEDDED_ASSET_BLOCK:
        target = (node.get("data") or {}).get("target")
        return asset_marker(target)

    if node_type in (EMBEDDED_ENTRY_BLOCK, EMBEDDED_ENTRY_INLINE):
        return _render_embedded_entry(node, block_divisor, parsing_rules, project_fn)

    if node_type in BLOCKS or node_type in INLINES:
        return guarded(
            flatten, node, block_divisor, parsing_rules, project_fn,
            context=f"{node_type} node",
        )

    logger.debug("Ignoring unknown rich text node type %r", node_type)
    return Ok("")


def flatten(
    node: Any,
    block_divisor: str = " ",
    parsing_rules: Optional[Mapping[str, Any]] = None,
    project_fn: Optional[ProjectFn] = None,
) -> str:
    """Flatten a rich-text node into plain text.

    Args:
        node: Rich-text document, block or inline node
        block_divisor: Appended after a non-empty child when the next
            element of the same `content` array is a block node
        parsing_rules: Node-type -> include flag; an explicit False skips
            that node type. May also carry the embedded content-type
            configs under "embeddedContentTypes".
        project_fn: Renders an embedded entry with its matched config

    Returns:
        Flattened text; empty string for a node without a `content` list
    """
    parsing_rules = parsing_rules or {}

    content = node.get("content") if isinstance(node, dict) else None
    if not isinstance(content, list):
        logger.warning("Invalid rich text node (no content list): %r", _node_type(node))
        return ""

    parts: List[str] = []
    for i, child in enumerate(content):
        child_type = _node_type(child)
        if child_type is not None and parsing_rules.get(child_type) is False:
            continue

        result = _render_child(child, block_divisor, parsing_rules, project_fn) \
            if isinstance(child, dict) else Skipped("rich text child is not an object")
        text = render_or_empty(result, context=f"rich text node {child_type!r}")
        if not text:
            continue

        parts.append(text)
        # lookahead is the immediate next element, skipped or not
        next_node = content[i + 1] if i + 1 < len(content) else None
        if is_block(next_node):
            parts.append(block_divisor)

    return "".join(parts)

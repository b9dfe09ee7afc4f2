"""Entry Transformation Module

Provides field resolution, field projection and document assembly for
converting raw Contentful entries into `{text, metadata}` documents.

Key responsibilities:
  - Resolve dotted/indexed field paths against nested entry objects
  - Render configured fields of an entry as text, recursing into
    embedded entries that have their own content-type configuration
  - Hand rich-text fields to the rich-text flattener
  - Build the final document with citation metadata
  - Handle missing and malformed data gracefully (log and continue)
"""

import json
import re
from typing import Any, Dict, FrozenSet, List

from .models import ContentfulConfig, ContentTypeConfig, Document
from .rich_text import EMBEDDED_CONTENT_TYPES, asset_marker, flatten
from .values import (
    RenderResult,
    Skipped,
    ValueKind,
    classify,
    content_type_of,
    entry_id_of,
    guarded,
    render_or_empty,
    sys_type_of,
)

import logging

logger = logging.getLogger(__name__)

INDEXED_SEGMENT = re.compile(r"^([^\[\]]*)\[([^\]]*)\]$")
RICH_TEXT_DIVISOR = "\n"
ARRAY_SEPARATOR = ", "
DOCTYPE = "contentfulEntry"
CONTENTFUL_APP_URL = "https://app.contentful.com/spaces/{space_id}/environments/{environment_id}/entries/{entry_id}"


def resolve_path(obj: Any, path: str) -> Any:
    """Resolve a dotted field path against a nested object.

    Segments may carry an array index, e.g. `fields.images[0].fields.title`.
    Escaping of literal dots or brackets is not supported.

    Returns:
        The value at `path`, or None when any step is absent
    """
    current = obj
    for segment in path.split("."):
        if current is None:
            return None

        match = INDEXED_SEGMENT.match(segment)
        if match:
            name, index_str = match.groups()
            container = _get_member(current, name)
            try:
                index = int(index_str)
            except ValueError:
                return None
            if not isinstance(container, (list, tuple)) or not 0 <= index < len(container):
                return None
            current = container[index]
        else:
            current = _get_member(current, segment)

    return current


def _get_member(obj: Any, key: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(key)
    return None


def strip_quotes(text: str) -> str:
    """Remove double quotes so rendered text is safe inside citations."""
    return text.replace('"', "")


def _stringify(value: Any) -> str:
    if value is True:
        return "true"
    if value is False:
        return "false"
    if value is None:
        return "null"
    return str(value)


def render_simple_value(value: Any) -> str:
    """Render a value that has no dedicated content-type configuration.

    Assets become image/link markers, entry references become
    `Referenced Entry: <id>`, other objects are serialized as compact
    JSON and scalars are stringified.
    """
    if isinstance(value, (dict, list, tuple)):
        if sys_type_of(value) == "Asset":
            return render_or_empty(asset_marker(value), context="asset")
        if sys_type_of(value) == "Entry":
            return f"Referenced Entry: {entry_id_of(value)}"
        return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)
    return _stringify(value)


class _Projector:
    """Projection state for one top-level entry.

    Tracks the ids of entries currently being rendered so that an entry
    embedding itself (directly or through other entries) is skipped
    rather than recursed into forever.
    """

    def __init__(self, config: ContentfulConfig, include_field_names: bool) -> None:
        self.config = config
        self.include_field_names = include_field_names
        self.parsing_rules: Dict[str, Any] = {
            **config.rich_text_parsing_rules.as_rules(),
            EMBEDDED_CONTENT_TYPES: list(config.embedded_content_types),
        }

    def project(
        self,
        entry: Dict[str, Any],
        content_type_config: ContentTypeConfig,
        active: FrozenSet[str] = frozenset(),
    ) -> str:
        entry_id = entry_id_of(entry)
        if entry_id is not None:
            active = active | {entry_id}

        outputs: List[str] = []
        for field_path in content_type_config.fields_to_parse:
            value = resolve_path(entry, field_path)
            if value is None:
                logger.warning(
                    "Field value for path %s is undefined in entry %s",
                    field_path,
                    entry_id,
                )
                continue

            field_name = field_path.split(".")[-1] or field_path
            rendered = self._render_value(value, active)

            if self.include_field_names:
                outputs.append(f"{field_name}: {rendered}\n\n")
            else:
                outputs.append(f"{rendered}\n\n")

        return "".join(outputs)

    def _render_value(self, value: Any, active: FrozenSet[str]) -> str:
        kind = classify(value)

        if kind is ValueKind.ASSET:
            return render_or_empty(asset_marker(value), context="asset field")

        if kind is ValueKind.RICH_TEXT:
            def project_fn(target: Dict[str, Any], config: ContentTypeConfig) -> str:
                return render_or_empty(self._embed(target, config, active), context="embedded entry")

            plain_text = flatten(value, RICH_TEXT_DIVISOR, self.parsing_rules, project_fn)
            return strip_quotes(plain_text)

        if kind is ValueKind.STRING:
            return strip_quotes(value)

        if kind is ValueKind.ARRAY:
            rendered_items = [self._render_item(item, active) for item in value]
            return ARRAY_SEPARATOR.join(item for item in rendered_items if item != "")

        if kind is ValueKind.ENTRY:
            embedded_config = self.config.embedded_config_for(content_type_of(value))
            if embedded_config is not None:
                return render_or_empty(
                    self._embed(value, embedded_config, active), context="embedded object"
                )
            return render_simple_value(value)

        if kind is ValueKind.OBJECT:
            return render_simple_value(value)

        return _stringify(value)

    def _render_item(self, item: Any, active: FrozenSet[str]) -> str:
        if classify(item) is ValueKind.ENTRY:
            embedded_config = self.config.embedded_config_for(content_type_of(item))
            if embedded_config is not None:
                return render_or_empty(
                    self._embed(item, embedded_config, active), context="nested entry"
                )
        return render_simple_value(item)

    def _embed(
        self,
        entry: Dict[str, Any],
        config: ContentTypeConfig,
        active: FrozenSet[str],
    ) -> RenderResult:
        entry_id = entry_id_of(entry)
        if entry_id is not None and entry_id in active:
            return Skipped(f"circular reference to entry {entry_id}")
        return guarded(self.project, entry, config, active, context=f"entry {entry_id}")


def project_entry(
    entry: Dict[str, Any],
    content_type_config: ContentTypeConfig,
    config: ContentfulConfig,
    include_field_names: bool = False,
) -> str:
    """
    Render the configured fields of an entry as text.

    Each field in `content_type_config.fields_to_parse` produces
    `"<fieldName>: <value>\\n\\n"` (or `"<value>\\n\\n"` without field
    names), in declared order. Fields that do not resolve are skipped.

    Args:
        entry: Raw entry with `fields` and `sys`
        content_type_config: Fields to render for this entry
        config: Full loader config (embedded types, rich-text rules)
        include_field_names: Prefix each value with its field name

    Returns:
        Concatenated field renderings
    """
    return _Projector(config, include_field_names).project(entry, content_type_config)


def build_document(
    entry: Dict[str, Any],
    config: ContentfulConfig,
    space_id: str,
    environment_id: str,
    include_field_names: bool = False,
) -> Document:
    """
    Build the output document for one entry of the main content type.

    Title and slug come from the citation field paths and fall back to
    the entry id; `source` is `urlPrefix + slug`.
    """
    entry_id = entry_id_of(entry)
    text = project_entry(entry, config.main_content_type, config, include_field_names)

    citation = config.fields_for_citation
    title = resolve_path(entry, citation.title_field) or entry_id
    slug = resolve_path(entry, citation.slug_field) or entry_id

    metadata: Dict[str, Any] = {
        "contentType": config.main_content_type.content_type,
        "source": f"{citation.url_prefix}{slug}",
        "entryId": entry_id,
        "doctype": DOCTYPE,
        "title": title,
        "contentfulUrl": CONTENTFUL_APP_URL.format(
            space_id=space_id,
            environment_id=environment_id,
            entry_id=entry_id,
        ),
    }
    return Document(text=text, metadata=metadata)


def to_output(documents: List[Document], output: str = "document") -> List[Any]:
    """Return documents as-is, or their texts for string output."""
    if output == "stringOutput":
        return [doc.text for doc in documents]
    return list(documents)

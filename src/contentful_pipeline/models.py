"""Data Models Module

Defines Pydantic models for the loader configuration (content-type field
projections, rich-text parsing rules, citation fields) and for the
documents produced by the loader and returned by index searches.

The configuration models accept the camelCase JSON wire format used by
the flow editor as well as snake_case field names.
"""

from typing import Any, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, Field


class ContentTypeConfig(BaseModel):
    """Which fields of an entry of one content type are rendered, in order."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    content_type: str = Field(default="", alias="contentType")
    fields_to_parse: List[str] = Field(default_factory=list, alias="fieldsToParse")


class FieldsForCitation(BaseModel):
    """Dotted paths used to derive a document title and canonical URL."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    title_field: str = Field(default="fields.title", alias="titleField")
    slug_field: str = Field(default="fields.slug", alias="slugField")
    url_prefix: str = Field(default="https://www.example.com/", alias="urlPrefix")


class RichTextParsingRules(BaseModel):
    """Per node-type inclusion switches for rich-text flattening.

    Absent or true means the node type is rendered; false skips the node
    and its whole subtree. Extra node types (e.g. "table": false) are
    kept and honoured by the flattener.
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="allow")

    embedded_asset_block: bool = Field(default=True, alias="embedded-asset-block")
    embedded_entry_block: bool = Field(default=True, alias="embedded-entry-block")
    embedded_entry_inline: bool = Field(default=True, alias="embedded-entry-inline")

    def as_rules(self) -> Dict[str, Any]:
        """Node-type name -> include flag, keyed by wire names."""
        return self.model_dump(by_alias=True)


class ContentfulConfig(BaseModel):
    """Full loader configuration (the "Config Utility" JSON object)."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    main_content_type: ContentTypeConfig = Field(
        default_factory=ContentTypeConfig, alias="mainContentType"
    )
    embedded_content_types: List[ContentTypeConfig] = Field(
        default_factory=list, alias="embeddedContentTypes"
    )
    rich_text_parsing_rules: RichTextParsingRules = Field(
        default_factory=RichTextParsingRules, alias="richTextParsingRules"
    )
    fields_for_citation: FieldsForCitation = Field(
        default_factory=FieldsForCitation, alias="fieldsForCitation"
    )

    def embedded_config_for(self, content_type: Optional[str]) -> Optional[ContentTypeConfig]:
        """Return the embedded config whose content type matches exactly."""
        if not content_type:
            return None
        for config in self.embedded_content_types:
            if config.content_type == content_type:
                return config
        return None


def default_config() -> ContentfulConfig:
    """Configuration substituted when the supplied one cannot be parsed."""
    return ContentfulConfig()


class Document(BaseModel):
    """One output document: rendered text plus citation metadata."""
    model_config = ConfigDict(frozen=True)

    text: str
    metadata: Dict[str, Any] = Field(default_factory=dict)

    def with_metadata(self, extra: Dict[str, Any]) -> "Document":
        """Return a copy whose metadata is updated with `extra`."""
        if not extra:
            return self
        return Document(text=self.text, metadata={**self.metadata, **extra})


class SearchHit(BaseModel):
    """A document returned by a similarity search, with its raw score."""
    model_config = ConfigDict(frozen=True)

    document: Document
    score: float

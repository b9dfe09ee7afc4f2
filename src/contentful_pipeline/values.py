"""Value Classification Module

Classifies raw Contentful payload values into a closed set of kinds and
defines the result type returned by every recursive rendering step.

The projector and the rich-text flattener never inspect raw shape markers
(`sys.type`, `nodeType`, `sys.contentType`) themselves: they call
`classify()` once per value and switch over the returned `ValueKind`.
Recursive contributions return `Ok(text)` or `Skipped(reason)`; the caller
renders `Skipped` as empty text via `render_or_empty()`.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Union
import logging

logger = logging.getLogger(__name__)


class ValueKind(str, Enum):
    MISSING = "missing"
    ASSET = "asset"
    RICH_TEXT = "rich_text"
    ENTRY = "entry"
    ARRAY = "array"
    STRING = "string"
    SCALAR = "scalar"
    OBJECT = "object"


def _sys(value: Any) -> dict:
    if isinstance(value, dict) and isinstance(value.get("sys"), dict):
        return value["sys"]
    return {}


def content_type_of(value: Any) -> Optional[str]:
    """Return `sys.contentType.sys.id` of an entry, or None."""
    content_type = _sys(value).get("contentType")
    if not isinstance(content_type, dict):
        return None
    ct_sys = content_type.get("sys")
    if not isinstance(ct_sys, dict):
        return None
    ct_id = ct_sys.get("id")
    return ct_id if ct_id else None


def entry_id_of(value: Any) -> Optional[str]:
    """Return `sys.id` of an entry/asset/link, or None."""
    return _sys(value).get("id")


def sys_type_of(value: Any) -> Optional[str]:
    return _sys(value).get("type")


def classify(value: Any) -> ValueKind:
    """Classify a resolved field value.

    Order matters: assets are checked before entries because an asset
    never carries a content type, and rich-text documents are plain
    mappings with a `nodeType` marker instead of `sys`.
    """
    if value is None:
        return ValueKind.MISSING
    if isinstance(value, (list, tuple)):
        return ValueKind.ARRAY
    if isinstance(value, str):
        return ValueKind.STRING
    if isinstance(value, dict):
        if sys_type_of(value) == "Asset":
            return ValueKind.ASSET
        if value.get("nodeType") == "document":
            return ValueKind.RICH_TEXT
        if content_type_of(value):
            return ValueKind.ENTRY
        return ValueKind.OBJECT
    return ValueKind.SCALAR


# ----------------------------------------------------------------------------
# Render results
# ----------------------------------------------------------------------------


@dataclass(frozen=True)
class Ok:
    text: str


@dataclass(frozen=True)
class Skipped:
    reason: str


RenderResult = Union[Ok, Skipped]


def render_or_empty(result: RenderResult, context: str = "") -> str:
    """Unwrap a render result, logging and blanking skipped contributions."""
    if isinstance(result, Ok):
        return result.text
    if context:
        logger.warning("Skipped %s: %s", context, result.reason)
    else:
        logger.warning("Skipped contribution: %s", result.reason)
    return ""


def guarded(
    fn: Callable[..., str],
    *args: Any,
    context: str = "embedded object",
    **kwargs: Any,
) -> RenderResult:
    """Run one recursive contribution, converting any failure to Skipped.

    A malformed nested reference must never abort the surrounding entry,
    so every exception is logged with its traceback and reported as a
    skipped contribution.
    """
    try:
        return Ok(fn(*args, **kwargs))
    except Exception as e:
        logger.warning("Error processing %s: %s", context, e, exc_info=True)
        return Skipped(f"error processing {context}: {e}")

"""Input Loader Module

Parses the loader configuration and the search-query metadata supplied
by the flow editor, and loads raw entries from JSON files for offline
runs. Supports entries wrapped in various container structures (flat
array, Contentful response with 'items', 'entries' key, etc.).
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from .contentful_client import DEFAULT_INCLUDE, resolve_links
from .models import ContentfulConfig, default_config

logger = logging.getLogger(__name__)


def parse_config(raw: Any) -> ContentfulConfig:
    """Parse the loader configuration.

    Accepts a JSON string, a mapping or an already-built config. A
    malformed or mis-shaped configuration never fails the load: the
    default configuration is substituted and a warning logged.

    Args:
        raw: Configuration as received from the node input

    Returns:
        Validated ContentfulConfig
    """
    if isinstance(raw, ContentfulConfig):
        return raw

    if isinstance(raw, str):
        if not raw.strip():
            logger.warning("Empty config supplied; using default config")
            return default_config()
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse config: %s; using default config", e)
            return default_config()

    if not isinstance(raw, dict):
        logger.warning("Config is not an object (got %s); using default config", type(raw).__name__)
        return default_config()

    try:
        return ContentfulConfig.model_validate(raw)
    except ValidationError as e:
        logger.warning("Invalid config: %s; using default config", e)
        return default_config()


def parse_metadata(raw: Any) -> Dict[str, Any]:
    """Parse the metadata/search-query input into a dict ({} on failure)."""
    if raw is None:
        return {}
    if isinstance(raw, dict):
        return dict(raw)
    if isinstance(raw, str):
        if not raw.strip():
            return {}
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning("Failed to parse metadata: %s", e)
            return {}
        if isinstance(parsed, dict):
            return parsed
        logger.warning("Metadata is not a JSON object (got %s)", type(parsed).__name__)
        return {}
    logger.warning("Unsupported metadata type %s", type(raw).__name__)
    return {}


def load_config_file(path: str | Path) -> ContentfulConfig:
    """Read a configuration JSON file through `parse_config`.

    Raises:
        FileNotFoundError: If file does not exist
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        return parse_config(f.read())


def load_raw_entries(
    path: str | Path,
    include: Optional[int] = DEFAULT_INCLUDE,
) -> List[Dict[str, Any]]:
    """Load raw entries from a JSON file.

    Supports flexible input formats:
      - Direct list of entries: [{...}, {...}, ...]
      - Contentful response dump: {"items": [...], "includes": {...}},
        with links resolved against the includes, `include` levels deep
      - Wrapped in 'entries' or 'documents' key

    Args:
        path: File path to JSON file containing raw entries
        include: Link levels to resolve in a response dump

    Returns:
        List of raw entry dictionaries

    Raises:
        FileNotFoundError: If file does not exist
        json.JSONDecodeError: If file is not valid JSON
    """
    path = Path(path)
    with path.open("r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, list):
        return data
    if isinstance(data.get("items"), list):
        return resolve_links(data, include)
    # fall back if wrapped
    return data.get("entries") or data.get("documents") or []

"""
Contentful Document Loading Pipeline

This module turns Contentful entries into `{text, metadata}` documents.

Features:
- Paged fetching with optional "include all" pagination
- Field projection of the main content type (embedded entries and rich
  text rendered through their own configurations)
- Optional post-hoc text splitting and metadata merging
- Batch runs with timestamped, versioned JSON outputs
- Deduplication by entry id
"""

from pathlib import Path
import json
from typing import Any, Dict, List, Optional, Protocol, Tuple
import logging
import time
from datetime import datetime

from .contentful_client import ContentfulFetchError
from .loaders import load_raw_entries, parse_config, parse_metadata
from .models import ContentfulConfig, Document
from .transformers import build_document, to_output


logger = logging.getLogger(__name__)


class EntriesClient(Protocol):
    def get_entries(self, query: Dict[str, Any]) -> Dict[str, Any]: ...


class TextSplitter(Protocol):
    def split_text(self, text: str) -> List[str]: ...


def build_query(
    config: ContentfulConfig,
    metadata: Optional[Dict[str, Any]] = None,
    include: Optional[int] = None,
    limit: Optional[int] = None,
    include_all: bool = False,
) -> Dict[str, Any]:
    """
    Build the "get entries" query.

    The metadata filter is copied, never mutated. `limit` only applies to
    single-page loads; `content_type` is set when the main content type
    is configured.
    """
    query: Dict[str, Any] = dict(metadata or {})

    if limit and not include_all:
        query["limit"] = limit
    if include:
        query["include"] = include
    if config.main_content_type.content_type:
        query["content_type"] = config.main_content_type.content_type

    return query


def fetch_all_entries(
    client: EntriesClient,
    query: Dict[str, Any],
    include_all: bool = False,
) -> List[Dict[str, Any]]:
    """
    Fetch entries page by page.

    Starts at offset 0 and advances by the number of items each page
    returned. With `include_all` the loop continues until the reported
    total is reached; otherwise a single page is fetched.

    Raises:
        ContentfulFetchError: If any page fails; no partial result
    """
    all_entries: List[Dict[str, Any]] = []
    skip = 0

    try:
        while True:
            page_query = {**query, "skip": skip}
            response = client.get_entries(page_query)
            items = response.get("items") or []
            total = response.get("total") or 0

            all_entries.extend(items)
            skip += len(items)

            logger.info(
                "Fetched page skip=%d (%d items, %d/%d total)",
                page_query["skip"],
                len(items),
                len(all_entries),
                total,
            )

            if not include_all or len(all_entries) >= total:
                break
            if not items:
                logger.warning(
                    "Empty page at skip=%d before reaching total=%d; stopping",
                    skip,
                    total,
                )
                break
    except Exception as e:
        logger.error("Error fetching entries from Contentful: %s", e)
        raise ContentfulFetchError(f"Failed to fetch entries from Contentful: {e}") from e

    return all_entries


def split_documents(
    documents: List[Document],
    text_splitter: Optional[TextSplitter],
) -> List[Document]:
    """Split each document's text into chunks that share its metadata."""
    if text_splitter is None:
        return documents

    chunks: List[Document] = []
    for doc in documents:
        for chunk in text_splitter.split_text(doc.text):
            chunks.append(Document(text=chunk, metadata=dict(doc.metadata)))

    logger.debug("Split %d documents into %d chunks", len(documents), len(chunks))
    return chunks


def entries_to_documents(
    entries: List[Dict[str, Any]],
    config: ContentfulConfig,
    space_id: str,
    environment_id: str,
    include_field_names: bool = False,
) -> List[Document]:
    """Build one document per entry of the main content type."""
    return [
        build_document(entry, config, space_id, environment_id, include_field_names)
        for entry in entries
    ]


def load_documents(
    client: EntriesClient,
    config: Any,
    *,
    space_id: str,
    environment_id: str = "master",
    metadata: Any = None,
    include: Optional[int] = None,
    limit: Optional[int] = None,
    include_all: bool = False,
    include_field_names: bool = False,
    text_splitter: Optional[TextSplitter] = None,
    output: str = "document",
) -> List[Any]:
    """
    Load Contentful entries as documents.

    Pipeline Steps:
    1. Parse config and metadata (malformed input falls back to defaults)
    2. Fetch entries (all pages when `include_all`)
    3. Build one document per entry
    4. Split documents when a text splitter is supplied
    5. Merge the metadata filter into every document's metadata

    Args:
        client: Object with `get_entries(query)`
        config: Loader config (JSON string, mapping or ContentfulConfig)
        space_id: Space id, used for the Contentful app URL
        environment_id: Environment id, used for the Contentful app URL
        metadata: Search query (JSON string or mapping); also merged
            into document metadata
        include: Link include depth
        limit: Page size for single-page loads
        include_all: Fetch every page
        include_field_names: Prefix rendered values with field names
        text_splitter: Object with `split_text(text)`
        output: "document" for documents, "stringOutput" for texts

    Returns:
        List of Documents, or list of texts for string output

    Raises:
        ContentfulFetchError: If fetching any page fails
    """
    parsed_config = parse_config(config)
    parsed_metadata = parse_metadata(metadata)

    query = build_query(parsed_config, parsed_metadata, include, limit, include_all)
    entries = fetch_all_entries(client, query, include_all)

    documents = entries_to_documents(
        entries, parsed_config, space_id, environment_id, include_field_names
    )
    documents = split_documents(documents, text_splitter)

    if parsed_metadata:
        documents = [doc.with_metadata(parsed_metadata) for doc in documents]

    logger.info("Loaded %d documents from %d entries", len(documents), len(entries))
    return to_output(documents, output)


def dedupe_documents(documents: List[Document]) -> Tuple[List[Document], int]:
    """Keep the first document per entryId; documents without one are kept."""
    seen_ids: set[str] = set()
    deduped: List[Document] = []
    duplicate_count = 0

    for doc in documents:
        entry_id = doc.metadata.get("entryId")

        if not entry_id:
            logger.warning(
                "Document missing entryId after transform. Document preview: %s",
                doc.text[:200],
            )
            deduped.append(doc)
            continue

        if entry_id in seen_ids:
            logger.warning(
                "Duplicate entryId detected: %s. Keeping first occurrence.",
                entry_id,
            )
            duplicate_count += 1
            continue

        seen_ids.add(entry_id)
        deduped.append(doc)

    return deduped, duplicate_count


def run_pipeline(
    config: Any,
    output_dir: Path | str = "output",
    client: Optional[EntriesClient] = None,
    input_path: Optional[Path | str] = None,
    space_id: str = "",
    environment_id: str = "master",
    metadata: Any = None,
    include: Optional[int] = None,
    limit: Optional[int] = None,
    include_all: bool = False,
    include_field_names: bool = False,
    string_output: bool = False,
    dry_run: bool = False,
    keep_history: bool = True,
) -> Tuple[int, int, Dict[str, Path]]:
    """
    Run the complete loading job and write its outputs.

    Pipeline Steps:
    1. Fetch entries from Contentful (or read them from `input_path`)
    2. Transform entries to documents
    3. Deduplicate by entryId
    4. Save documents (and texts for string output) with versioning

    Output Strategy:
    - Creates timestamped outputs: documents_20251216_010530.json
    - Optional: overwrite documents.json instead (keep_history=False)
    - Writes run metadata alongside the outputs

    Args:
        config: Loader config (JSON string, mapping or ContentfulConfig)
        output_dir: Directory for all output files
        client: Contentful client; required unless `input_path` is given
        input_path: Offline JSON file with raw entries
        dry_run: Process everything but write no files

    Returns:
        Tuple of (total_entries, processed_documents, output_paths_dict)

    Raises:
        ValueError: If neither a client nor an input path is given
        ContentfulFetchError: If fetching from Contentful fails
        FileNotFoundError: If input_path doesn't exist
    """
    if client is None and input_path is None:
        raise ValueError("Either a Contentful client or an input path is required")

    output_dir = Path(output_dir)
    run_timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    job_start = time.time()

    parsed_config = parse_config(config)
    parsed_metadata = parse_metadata(metadata)

    # ========== STEP 1: FETCH ENTRIES ==========
    t0 = time.time()
    logger.info("STEP 1/4: Loading entries")

    try:
        if input_path is not None:
            entries = load_raw_entries(input_path, include)
        else:
            query = build_query(parsed_config, parsed_metadata, include, limit, include_all)
            entries = fetch_all_entries(client, query, include_all)
    except Exception:
        logger.exception("Failed to load entries")
        raise

    total_entries = len(entries)
    logger.info("✓ Loaded %d entries in %.2fs", total_entries, time.time() - t0)

    # ========== STEP 2: TRANSFORM ENTRIES ==========
    t1 = time.time()
    logger.info("STEP 2/4: Transforming %d entries", total_entries)

    try:
        documents = entries_to_documents(
            entries, parsed_config, space_id, environment_id, include_field_names
        )
        if parsed_metadata:
            documents = [doc.with_metadata(parsed_metadata) for doc in documents]
    except Exception:
        logger.exception("Failed during entry transformation")
        raise

    logger.info("✓ Transform step completed in %.2fs", time.time() - t1)

    # ========== STEP 3: DEDUPLICATE BY entryId ==========
    logger.info("STEP 3/4: Deduplicating documents by entryId")
    documents, duplicate_count = dedupe_documents(documents)
    logger.info(
        "✓ Deduplication completed (removed %d duplicates, kept %d unique)",
        duplicate_count,
        len(documents),
    )

    output_paths: Dict[str, Path] = {}

    if dry_run:
        logger.info("DRY RUN: skipping write of documents")
        return total_entries, len(documents), output_paths

    # ========== STEP 4: SAVE DOCUMENTS ==========
    logger.info("STEP 4/4: Saving documents")
    suffix = f"_{run_timestamp}" if keep_history else ""

    try:
        output_dir.mkdir(parents=True, exist_ok=True)

        documents_path = output_dir / f"documents{suffix}.json"
        _write_json(documents_path, [doc.model_dump() for doc in documents])
        output_paths["documents"] = documents_path

        if string_output:
            texts_path = output_dir / f"texts{suffix}.json"
            _write_json(texts_path, to_output(documents, "stringOutput"))
            output_paths["texts"] = texts_path

        logger.info("✓ Wrote %d documents to %s", len(documents), documents_path.name)
    except Exception:
        logger.exception("Failed to save documents")
        raise

    _save_metadata(output_dir, run_timestamp, keep_history, {
        "source": str(input_path) if input_path is not None else "contentful",
        "content_type": parsed_config.main_content_type.content_type,
        "total_entries": total_entries,
        "processed": len(documents),
        "duplicates_removed": duplicate_count,
        "outputs": {k: str(v) for k, v in output_paths.items()},
        "duration_seconds": time.time() - job_start,
    })

    return total_entries, len(documents), output_paths


def _write_json(path: Path, data: Any) -> None:
    with path.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2)


def _save_metadata(
    output_dir: Path,
    run_timestamp: str,
    keep_history: bool,
    metadata: Dict[str, Any]
) -> None:
    """Save pipeline run metadata."""
    if keep_history:
        meta_filename = f"run_metadata_{run_timestamp}.json"
    else:
        meta_filename = "run_metadata.json"

    meta_path = output_dir / meta_filename
    metadata["timestamp"] = run_timestamp

    try:
        _write_json(meta_path, metadata)
        logger.info("✓ Saved: %s", meta_filename)
    except Exception:
        logger.warning("Failed to save metadata (non-fatal)", exc_info=True)

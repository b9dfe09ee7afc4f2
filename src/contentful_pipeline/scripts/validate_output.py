"""Output Validation Script

Checks a documents file written by the loader:
  - every document is an object with a string 'text' and a 'metadata' object
  - whitespace-only text is reported as a warning
  - citation metadata (entryId, source, title) is present; 'source' is a string
  - entry ids are unique across the file

Usage:
    python -m src.contentful_pipeline.scripts.validate_output \\
        --path output/documents.json [--strict]

Exits with code 0 on success, 1 on validation failure, 2 on argument error.
"""

import argparse
import json
from collections import Counter
from pathlib import Path
from typing import Any, Dict, List, Tuple

EXPECTED_META_KEYS = ["entryId", "source", "title"]
DOCTYPE = "contentfulEntry"


def _parse_jsonl(content: str) -> List[Dict[str, Any]]:
    documents: List[Dict[str, Any]] = []
    for line_no, line in enumerate(content.splitlines(), start=1):
        if not line.strip():
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as e:
            raise ValueError(f"Line {line_no} is not valid JSON: {e}") from e
        if not isinstance(obj, dict):
            raise ValueError(f"Line {line_no} is not a JSON object")
        documents.append(obj)
    return documents


def load_documents(path: Path) -> List[Any]:
    """Read documents from a JSON array file or a JSONL file.

    Raises:
        ValueError: If the file holds no documents or cannot be parsed
        FileNotFoundError: If the file does not exist
    """
    content = path.read_text(encoding="utf-8").strip()

    try:
        data = json.loads(content)
    except json.JSONDecodeError:
        documents = _parse_jsonl(content)
    else:
        if not isinstance(data, list):
            raise ValueError("Top-level JSON is not a list of documents.")
        documents = data

    if not documents:
        raise ValueError("No documents found in file.")
    return documents


def validate_document(document: Any, idx: int) -> Tuple[List[str], List[str]]:
    """Validate one document.

    Returns:
        (errors, warnings)
    """
    errors: List[str] = []
    warnings: List[str] = []
    where = f"[idx={idx}]"

    if not isinstance(document, dict):
        errors.append(f"{where} document should be an object, got {type(document).__name__}")
        return errors, warnings

    text = document.get("text")
    if text is None:
        errors.append(f"{where} missing required 'text' field")
    elif not isinstance(text, str):
        errors.append(f"{where} 'text' should be a string, got {type(text).__name__}")
    elif not text.strip():
        warnings.append(f"{where} text is empty/whitespace")

    metadata = document.get("metadata")
    if metadata is None:
        errors.append(f"{where} missing 'metadata'")
        return errors, warnings
    if not isinstance(metadata, dict):
        errors.append(f"{where} 'metadata' should be an object, got {type(metadata).__name__}")
        return errors, warnings

    warnings.extend(
        f"{where} metadata missing expected field '{key}'"
        for key in EXPECTED_META_KEYS
        if key not in metadata
    )

    source = metadata.get("source")
    if source is not None and not isinstance(source, str):
        errors.append(f"{where} metadata.source should be a string, got {type(source).__name__}")

    doctype = metadata.get("doctype")
    if doctype is not None and doctype != DOCTYPE:
        warnings.append(f"{where} unexpected doctype {doctype!r}")

    return errors, warnings


def find_duplicate_entry_ids(documents: List[Any]) -> List[str]:
    """Return entry ids that appear on more than one document."""
    counts = Counter(
        doc["metadata"].get("entryId")
        for doc in documents
        if isinstance(doc, dict) and isinstance(doc.get("metadata"), dict)
    )
    return sorted(str(entry_id) for entry_id, n in counts.items() if entry_id and n > 1)


def main(argv: list[str] | None = None) -> None:
    """Validate a documents output file.

    Raises:
        SystemExit: 0 on success, 1 on validation failure
    """
    parser = argparse.ArgumentParser(description="Validate Contentful documents JSON output.")
    parser.add_argument("--path", type=str, required=True, help="Path to documents.json")
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat warnings as errors.",
    )
    args = parser.parse_args(argv)

    try:
        documents = load_documents(Path(args.path))
    except (OSError, ValueError) as e:
        print(f"FAILED TO LOAD FILE: {e}")
        raise SystemExit(1)

    all_errors: List[str] = []
    all_warnings: List[str] = []
    for idx, document in enumerate(documents):
        errors, warnings = validate_document(document, idx)
        all_errors.extend(errors)
        all_warnings.extend(warnings)

    all_errors.extend(
        f"duplicate entryId {entry_id!r}" for entry_id in find_duplicate_entry_ids(documents)
    )

    if args.strict:
        all_errors.extend(all_warnings)
        all_warnings = []

    if all_errors:
        print("VALIDATION FAILED:\n")
        print("\n".join(all_errors))
        print(f"\nTotal errors: {len(all_errors)}")
        raise SystemExit(1)

    print("VALIDATION PASSED")
    print(f"Total documents: {len(documents)}")
    if all_warnings:
        print("\nWarnings (non-fatal):")
        print("\n".join(all_warnings))
        print(f"\nTotal warnings: {len(all_warnings)}")
    raise SystemExit(0)


if __name__ == "__main__":
    main()

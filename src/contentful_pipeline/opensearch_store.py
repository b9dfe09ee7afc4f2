"""OpenSearch Existing Index Search

Queries an OpenSearch index that already holds embedded documents
(`text`, `metadata`, `embedding` fields per hit) and returns the hits
above a minimum score, either as documents or as one concatenated text.

Usage:
    client = create_client("localhost:9200", "admin", "admin")
    docs = search_existing_index(
        client,
        "contentful-docs",
        values='{"question": "How do refunds work?"}',
        embed_fn=embed_query,
        top_k=4,
        min_score=75,
    )
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from opensearchpy import OpenSearch

from .models import Document, SearchHit

logger = logging.getLogger(__name__)

# Escape tokens the flow editor substitutes into JSON inputs
NEWLINE_TOKEN = "FLOWISENEWLINE"
DOUBLE_QUOTE_TOKEN = "FLOWISEDOUBLEQUOTE"
JSON_VALUED_PROPERTIES = ("query", "filter")

VECTOR_FIELD = "embedding"
TEXT_FIELD = "text"
METADATA_FIELD = "metadata"
DEFAULT_TOP_K = 4


def decode_filter_values(values: Any) -> Dict[str, Any]:
    """
    Decode the metadata-filter input of the node.

    String properties have newline tokens removed and double-quote tokens
    restored; the "query" and "filter" properties are then parsed as JSON.

    Raises:
        json.JSONDecodeError: If the input or a query/filter property is
            not valid JSON
        ValueError: If the input is not a JSON object or dict
    """
    if values is None or (isinstance(values, str) and not values.strip()):
        return {}

    node_values = json.loads(values) if isinstance(values, str) else values
    if not isinstance(node_values, dict):
        raise ValueError(
            f"Filter values must be a JSON object, got {type(node_values).__name__}"
        )
    node_values = dict(node_values)

    for prop, value in node_values.items():
        if not isinstance(value, str):
            continue
        value = value.replace(NEWLINE_TOKEN, "").replace(DOUBLE_QUOTE_TOKEN, '"')
        if prop in JSON_VALUED_PROPERTIES:
            value = json.loads(value)
        node_values[prop] = value

    return node_values


def create_client(url: str, username: str, password: str, **kwargs: Any) -> OpenSearch:
    """Create an OpenSearch client for `https://<url>` with basic auth."""
    host = url if "://" in url else f"https://{url}"
    use_ssl = host.startswith("https://")

    auth = (username, password) if username and password else None
    client = OpenSearch(
        hosts=[host],
        http_auth=auth,
        use_ssl=use_ssl,
        **kwargs,
    )
    logger.info("OpenSearch client initialized: %s", url)
    return client


def build_knn_query(
    vector: List[float],
    k: int = DEFAULT_TOP_K,
    filter: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """k-NN query body with optional exact-match metadata filters."""
    must = [{"knn": {VECTOR_FIELD: {"vector": vector, "k": k}}}]
    body: Dict[str, Any] = {"size": k, "query": {"bool": {"must": must}}}

    if filter:
        terms = [
            {"term": {f"{METADATA_FIELD}.{key}": value}}
            for key, value in filter.items()
        ]
        body["query"]["bool"]["filter"] = {"bool": {"must": terms}}

    return body


def similarity_search_with_score(
    client: OpenSearch,
    index_name: str,
    vector: List[float],
    k: int = DEFAULT_TOP_K,
    filter: Optional[Dict[str, Any]] = None,
) -> List[SearchHit]:
    """Run a k-NN search and return documents with their scores."""
    body = build_knn_query(vector, k, filter)
    response = client.search(index=index_name, body=body)

    hits: List[SearchHit] = []
    for hit in (response.get("hits") or {}).get("hits") or []:
        source = hit.get("_source") or {}
        document = Document(
            text=source.get(TEXT_FIELD) or "",
            metadata=source.get(METADATA_FIELD) or {},
        )
        hits.append(SearchHit(document=document, score=float(hit.get("_score") or 0.0)))

    logger.debug("Search on %s returned %d hits", index_name, len(hits))
    return hits


def filter_by_min_score(hits: List[SearchHit], min_score: Optional[float]) -> List[SearchHit]:
    """Drop hits scoring below `min_score` percent (None or 0 keeps all)."""
    if not min_score:
        return list(hits)
    threshold = min_score / 100
    return [hit for hit in hits if hit.score >= threshold]


def escape_text(text: str) -> str:
    """Escape newlines so the text can travel inside a JSON string input."""
    return text.replace("\n", "\\n")


def search_existing_index(
    client: OpenSearch,
    index_name: str,
    values: Any,
    *,
    embed_fn: Callable[[str], List[float]],
    top_k: Optional[float] = None,
    min_score: Optional[float] = None,
    output: str = "document",
) -> Any:
    """
    Search an existing index with the question from the filter values.

    Args:
        client: OpenSearch client
        index_name: Index holding embedded documents
        values: Filter input: JSON with "question" and optional "filter"
        embed_fn: Embeds the question
        top_k: Number of results to fetch (default: 4)
        min_score: Minimum score in percent
        output: "document" for documents, "text" for one escaped string

    Returns:
        List of Documents, or the concatenated text of the kept hits
    """
    node_values = decode_filter_values(values)
    question = node_values.get("question") or ""
    k = int(top_k) if top_k else DEFAULT_TOP_K

    vector = embed_fn(question)
    hits = similarity_search_with_score(
        client, index_name, vector, k, filter=node_values.get("filter")
    )
    kept = filter_by_min_score(hits, min_score)

    logger.info(
        "OpenSearch %s: %d hits, %d above min score %s",
        index_name,
        len(hits),
        len(kept),
        min_score,
    )

    if output == "document":
        return [hit.document for hit in kept]

    final_text = "".join(f"{hit.document.text}\n" for hit in kept)
    return escape_text(final_text)

"""Query Embeddings

Embeds search questions (and, in bulk, arbitrary texts) with OpenAI's
embedding API so they can be matched against the vectors already stored
in an OpenSearch index.

Environment variables:
  OPENAI_API_KEY: API key, read when the client is first used
  EMBEDDING_MODEL: Model name (default: text-embedding-3-small); must
      match the model the index was built with
  USE_FAKE_EMBEDDINGS: '1' returns zero vectors without calling OpenAI
  MAX_EMBEDDING_CHARS: Per-text character cap (default: 8000)
"""

from typing import Iterator, List, Optional
import os
import time
import logging

import openai
from openai import OpenAI

logger = logging.getLogger(__name__)

client: Optional[OpenAI] = None
USE_FAKE_EMBEDDINGS = os.getenv("USE_FAKE_EMBEDDINGS", "0") == "1"
FAKE_EMBEDDING_DIM = 8

EMBEDDING_MODEL = os.getenv("EMBEDDING_MODEL", "text-embedding-3-small")

# ~4 chars/token keeps 8000 chars under the 8191 token limit
MAX_EMBEDDING_CHARS = int(os.getenv("MAX_EMBEDDING_CHARS", "8000"))


def get_client() -> OpenAI:
    """Return the module client, creating it on first use."""
    global client
    if client is None:
        client = OpenAI(api_key=os.getenv("OPENAI_API_KEY"))
    return client


def _truncate_for_embedding(text: str, max_chars: int = MAX_EMBEDDING_CHARS) -> str:
    """Cap text at `max_chars`, preferring to cut at a word boundary.

    The cut moves back to the last space only when that space is within
    the final 20% of the capped text.
    """
    if not text or len(text) <= max_chars:
        return text or ""

    head = text[:max_chars]
    boundary = head.rfind(" ")
    if boundary > int(max_chars * 0.8):
        head = head[:boundary]

    logger.info("Truncated text for embedding: %d -> %d chars", len(text), len(head))
    return head


def _batches(texts: List[str], batch_size: int) -> Iterator[List[str]]:
    for start in range(0, len(texts), batch_size):
        yield texts[start : start + batch_size]


def _check_dimensions(vectors: List[List[float]]) -> None:
    if not vectors:
        return
    expected = len(vectors[0])
    for idx, vector in enumerate(vectors):
        if len(vector) != expected:
            raise ValueError(
                f"Inconsistent embedding dimension at index {idx}: "
                f"expected {expected}, got {len(vector)}"
            )


def embed_texts(
    texts: List[str],
    model: str = EMBEDDING_MODEL,
    batch_size: int = 50,
    max_chars: int = MAX_EMBEDDING_CHARS,
) -> List[List[float]]:
    """
    Embed texts, `batch_size` texts per API call.

    This is the bulk entry point; `embed_query` wraps it for a single
    search question.

    Returns:
        One vector per input text, in input order

    Raises:
        ValueError: If the API returns vectors of differing dimensions
        openai.OpenAIError: On API failures (logged, then re-raised)
    """
    if not texts:
        return []

    if USE_FAKE_EMBEDDINGS:
        logger.warning("USE_FAKE_EMBEDDINGS=1 set; returning zero vectors")
        return [[0.0] * FAKE_EMBEDDING_DIM for _ in texts]

    inputs = [_truncate_for_embedding(text, max_chars) for text in texts]
    vectors: List[List[float]] = []

    try:
        api = get_client()
        for batch in _batches(inputs, batch_size):
            logger.debug("Embedding %d texts with %s", len(batch), model)
            response = api.embeddings.create(model=model, input=batch)
            vectors.extend(list(item.embedding) for item in response.data)
        _check_dimensions(vectors)
    except Exception:
        logger.exception("Failed to embed %d texts", len(texts))
        raise

    logger.debug("Embedded %d texts (dim=%d)", len(vectors), len(vectors[0]) if vectors else 0)
    return vectors


def _is_quota_error(error: openai.RateLimitError) -> bool:
    return getattr(error, "code", None) == "insufficient_quota" or "insufficient_quota" in str(error)


def embed_texts_with_retry(
    texts: List[str],
    model: str = EMBEDDING_MODEL,
    batch_size: int = 50,
    max_chars: int = MAX_EMBEDDING_CHARS,
    max_retries: int = 5,
) -> List[List[float]]:
    """`embed_texts` with exponential backoff on rate limiting.

    An exhausted quota is raised immediately.
    """
    attempt = 0
    while True:
        try:
            return embed_texts(texts, model=model, batch_size=batch_size, max_chars=max_chars)
        except openai.RateLimitError as e:
            attempt += 1
            if _is_quota_error(e):
                logger.error("OpenAI quota exhausted; not retrying: %s", e)
                raise
            if attempt > max_retries:
                logger.error("Giving up after %d rate-limited attempts: %s", max_retries, e)
                raise

            delay = 2 ** attempt
            logger.warning(
                "Rate limited by OpenAI (attempt %d/%d); retrying in %ds",
                attempt,
                max_retries,
                delay,
            )
            time.sleep(delay)


def embed_query(text: str, model: str = EMBEDDING_MODEL) -> List[float]:
    """Embed one search question."""
    vectors = embed_texts_with_retry([text], model=model)
    if not vectors:
        raise ValueError("No embedding returned for query")
    return vectors[0]

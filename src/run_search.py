"""Search CLI Entry Point

Searches an existing OpenSearch index with a question and prints the
hits above the minimum score as JSON documents or as plain text.

Usage:
    python -m src.run_search --index contentful-docs --question "How do refunds work?"
"""

import argparse
import json
import logging

from src.contentful_pipeline import embeddings
from src.contentful_pipeline.config import Settings
from src.contentful_pipeline.opensearch_store import create_client, search_existing_index
from src.run_pipeline import configure_logging


def main(argv=None) -> int:
    """CLI entrypoint; returns 0 on success, 1 on failure."""
    configure_logging("search")
    logger = logging.getLogger(__name__)

    parser = argparse.ArgumentParser(description="Search an existing OpenSearch index")
    parser.add_argument("--index", required=True, help="Index name.")
    parser.add_argument("--question", default=None, help="Question to search for.")
    parser.add_argument(
        "--values",
        default=None,
        help='Filter values JSON, e.g. {"question": "...", "filter": "{...}"}.',
    )
    parser.add_argument("--top-k", type=int, default=4, help="Number of results (default: 4).")
    parser.add_argument(
        "--min-score",
        type=float,
        default=None,
        help="Minimum score in percent, e.g. 75.",
    )
    parser.add_argument("--output", choices=["document", "text"], default="document")
    args = parser.parse_args(argv)

    try:
        settings = Settings.from_env()
        if not settings.opensearch_url:
            raise ValueError("OPENSEARCH_URL is not set")

        values = args.values
        if values is None:
            values = json.dumps({"question": args.question or ""})

        client = create_client(
            settings.opensearch_url,
            settings.opensearch_username or "",
            settings.opensearch_password or "",
        )
        result = search_existing_index(
            client,
            args.index,
            values,
            embed_fn=lambda text: embeddings.embed_query(text, model=settings.embedding_model),
            top_k=args.top_k,
            min_score=args.min_score,
            output=args.output,
        )
    except Exception as e:
        logger.exception("Search failed: %s", e)
        return 1

    if args.output == "document":
        print(json.dumps([doc.model_dump() for doc in result], ensure_ascii=False, indent=2))
    else:
        print(result)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

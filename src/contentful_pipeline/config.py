"""Runtime configuration settings.

This module defines the Settings dataclass that loads credentials and
service endpoints from environment variables (a local `.env` file is
read first when present).
"""

from dataclasses import dataclass
import os

from dotenv import load_dotenv


@dataclass
class Settings:
    """Settings loaded from environment variables.

    Attributes:
        contentful_space_id: Contentful space id.
        contentful_delivery_token: Content Delivery API access token.
        contentful_preview_token: Content Preview API access token.
        contentful_environment: Contentful environment id.
        opensearch_url: OpenSearch host (without scheme).
        opensearch_username: OpenSearch basic-auth user.
        opensearch_password: OpenSearch basic-auth password.
        openai_api_key: OpenAI API key for query embeddings.
        embedding_model: OpenAI embedding model name.
    """

    contentful_space_id: str | None
    contentful_delivery_token: str | None
    contentful_preview_token: str | None
    contentful_environment: str

    opensearch_url: str | None
    opensearch_username: str | None
    opensearch_password: str | None

    openai_api_key: str | None
    embedding_model: str

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            contentful_space_id=os.getenv("CONTENTFUL_SPACE_ID"),
            contentful_delivery_token=os.getenv("CONTENTFUL_DELIVERY_TOKEN"),
            contentful_preview_token=os.getenv("CONTENTFUL_PREVIEW_TOKEN"),
            contentful_environment=os.getenv("CONTENTFUL_ENVIRONMENT", "master"),
            opensearch_url=os.getenv("OPENSEARCH_URL"),
            opensearch_username=os.getenv("OPENSEARCH_USERNAME"),
            opensearch_password=os.getenv("OPENSEARCH_PASSWORD"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            embedding_model=os.getenv("EMBEDDING_MODEL", "text-embedding-3-small"),
        )

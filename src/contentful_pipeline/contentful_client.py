"""Contentful Content API Client

Thin client for the Content Delivery API (cdn.contentful.com) and the
Content Preview API (preview.contentful.com).

`get_entries()` returns the page as `{items, skip, limit, total}` with
links replaced by the linked entries/assets found in the response
`includes`, so downstream code sees nested entries the same way the
official SDKs present them.

API Endpoint: GET https://{host}/spaces/{space_id}/environments/{environment_id}/entries
"""

from typing import Any, Dict, FrozenSet, List, Optional, Tuple
import copy
import logging
import time

import requests
from requests.exceptions import HTTPError

logger = logging.getLogger(__name__)

DELIVERY_HOST = "cdn.contentful.com"
PREVIEW_HOST = "preview.contentful.com"
RATE_LIMIT_RESET_HEADER = "X-Contentful-RateLimit-Reset"

# Link levels the API resolves when `include` is not given, and its maximum
DEFAULT_INCLUDE = 1
MAX_INCLUDE = 10


class ContentfulAPIError(RuntimeError):
    """A request to the Contentful API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ContentfulFetchError(RuntimeError):
    """Loading entries failed; no partial result is returned."""


class ContentfulClient:
    """Paged "get entries" access to one space/environment."""

    def __init__(
        self,
        space_id: str,
        access_token: str,
        environment_id: str = "master",
        host: str = DELIVERY_HOST,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
        max_retries: int = 5,
    ) -> None:
        self.space_id = space_id
        self.environment_id = environment_id or "master"
        self.host = host
        self.timeout = timeout
        self.max_retries = max_retries
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {access_token}"})

    @property
    def entries_url(self) -> str:
        return (
            f"https://{self.host}/spaces/{self.space_id}"
            f"/environments/{self.environment_id}/entries"
        )

    def get_entries(self, query: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Fetch one page of entries.

        Args:
            query: Query parameters (content_type, skip, limit, include,
                field filters such as "fields.slug")

        Returns:
            {"items": [...], "skip": int, "limit": int, "total": int}
            with links resolved against the response includes

        Raises:
            ContentfulAPIError: On transport errors or non-2xx responses
        """
        params = _encode_params(query or {})
        data = self._request(params)
        items = resolve_links(data, (query or {}).get("include"))
        return {
            "items": items,
            "skip": data.get("skip", 0),
            "limit": data.get("limit", len(items)),
            "total": data.get("total", len(items)),
        }

    def _request(self, params: Dict[str, Any]) -> Dict[str, Any]:
        retries = 0
        while True:
            logger.debug("Requesting %s params=%s", self.entries_url, params)
            try:
                response = self.session.get(self.entries_url, params=params, timeout=self.timeout)
            except requests.exceptions.RequestException as e:
                raise ContentfulAPIError(f"Request failed: {e}") from e

            if response.status_code == 429:
                retries += 1
                if retries > self.max_retries:
                    raise ContentfulAPIError(
                        f"Rate limit exceeded after {self.max_retries} retries",
                        status_code=429,
                    )
                wait_time = _retry_delay(response, retries)
                logger.warning(
                    "Rate limited by Contentful (attempt %d/%d). Sleeping for %.1f seconds",
                    retries,
                    self.max_retries,
                    wait_time,
                )
                time.sleep(wait_time)
                continue

            try:
                response.raise_for_status()
            except HTTPError as e:
                raise ContentfulAPIError(
                    f"HTTP {response.status_code}: {_error_message(response)}",
                    status_code=response.status_code,
                ) from e

            return response.json()


def client_for_api(
    api_type: str,
    space_id: str,
    delivery_token: Optional[str],
    preview_token: Optional[str],
    environment_id: str = "master",
    **kwargs: Any,
) -> ContentfulClient:
    """Build a client for the "delivery" or "preview" API."""
    if api_type == "preview":
        return ContentfulClient(space_id, preview_token or "", environment_id, PREVIEW_HOST, **kwargs)
    return ContentfulClient(space_id, delivery_token or "", environment_id, DELIVERY_HOST, **kwargs)


def _encode_params(query: Dict[str, Any]) -> Dict[str, Any]:
    params: Dict[str, Any] = {}
    for key, value in query.items():
        if value is None:
            continue
        if isinstance(value, bool):
            params[key] = "true" if value else "false"
        elif isinstance(value, (list, tuple)):
            params[key] = ",".join(str(v) for v in value)
        else:
            params[key] = value
    return params


def _retry_delay(response: requests.Response, retries: int) -> float:
    reset = response.headers.get(RATE_LIMIT_RESET_HEADER)
    try:
        return max(float(reset), 1.0)
    except (TypeError, ValueError):
        return float(2 ** retries)


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200]
    return body.get("message") or body.get("sys", {}).get("id") or str(body)[:200]


# ----------------------------------------------------------------------------
# Link resolution
# ----------------------------------------------------------------------------


def _is_link(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and isinstance(value.get("sys"), dict)
        and value["sys"].get("type") == "Link"
    )


def resolve_links(data: Dict[str, Any], include: Optional[int] = DEFAULT_INCLUDE) -> List[Dict[str, Any]]:
    """
    Replace link objects in the response items with the linked objects.

    Linked entries and assets are looked up in `includes.Entry`,
    `includes.Asset` and the items themselves. Links are followed at most
    `include` levels below each item, matching the depth the API was
    asked to include; deeper links stay links. A link pointing back to an
    entry already on the current resolution path is also left as a link.
    Unknown links are left unchanged.
    """
    items = data.get("items") or []
    includes = data.get("includes") or {}
    depth = DEFAULT_INCLUDE if include is None else max(0, min(int(include), MAX_INCLUDE))

    index: Dict[Tuple[str, str], Dict[str, Any]] = {}
    for link_type, objects in (
        ("Entry", includes.get("Entry") or []),
        ("Asset", includes.get("Asset") or []),
        ("Entry", items),
    ):
        for obj in objects:
            obj_id = (obj.get("sys") or {}).get("id")
            if obj_id:
                index.setdefault((link_type, obj_id), obj)

    resolved: List[Dict[str, Any]] = []
    for item in items:
        item_id = (item.get("sys") or {}).get("id")
        ancestors = frozenset({("Entry", item_id)}) if item_id else frozenset()
        resolved.append(_resolve(item, index, ancestors, depth))
    return resolved


def _resolve(
    value: Any,
    index: Dict[Tuple[str, str], Dict[str, Any]],
    ancestors: FrozenSet[Tuple[str, str]],
    depth: int,
) -> Any:
    if _is_link(value):
        key = (value["sys"].get("linkType"), value["sys"].get("id"))
        target = index.get(key)
        if target is None or depth <= 0 or key in ancestors:
            return copy.deepcopy(value)
        return _resolve(target, index, ancestors | {key}, depth - 1)

    if isinstance(value, dict):
        # sys holds links to space/environment/contentType, never content
        return {
            key: copy.deepcopy(item) if key == "sys" else _resolve(item, index, ancestors, depth)
            for key, item in value.items()
        }

    if isinstance(value, list):
        return [_resolve(item, index, ancestors, depth) for item in value]

    return value

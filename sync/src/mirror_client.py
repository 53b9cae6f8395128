"""Async Notion client for the mirror: database/page CRUD keyed by opaque ids.

Every call goes through the SDK's generic request() with a pinned
Notion-Version, so property payloads keep the 2022-06-28 shape regardless of
the installed notion-client release.
"""

from __future__ import annotations

import logging
from typing import Any

from notion_client import AsyncClient
from notion_client.errors import APIResponseError, HTTPResponseError

from config import NOTION_VERSION, get_notion_token
from errors import MirrorAPIError, MirrorRateLimitError

logger = logging.getLogger(__name__)


class MirrorClient:
    """Thin async wrapper around notion_client.AsyncClient."""

    def __init__(self, token: str = None, client: AsyncClient = None):
        self.client = client or AsyncClient(
            auth=token or get_notion_token(),
            notion_version=NOTION_VERSION,
        )

    async def _call(self, method: str, path: str, body: dict | None = None) -> dict:
        try:
            return await self.client.request(path=path, method=method, body=body)
        except (APIResponseError, HTTPResponseError) as e:
            status = getattr(e, "status", None)
            if status == 429:
                raise MirrorRateLimitError(str(e)) from e
            raise MirrorAPIError(status, f"Notion API error: {status} - {e}") from e

    async def aclose(self):
        await self.client.aclose()

    async def create_database(self, parent_page_id: str, title: str, properties: dict) -> str:
        """Create a database under a page and return its id."""
        db = await self._call("POST", "databases", {
            "parent": {"type": "page_id", "page_id": parent_page_id},
            "title": [{"type": "text", "text": {"content": title}}],
            "properties": properties,
        })
        logger.info("Created Notion database %r (%s)", title, db["id"])
        return db["id"]

    async def query_database(self, database_id: str, filter: dict | None = None) -> list[dict]:
        """Return every page matching filter, following pagination cursors."""
        pages: list[dict] = []
        body: dict[str, Any] = {}
        if filter:
            body["filter"] = filter
        while True:
            response = await self._call("POST", f"databases/{database_id}/query", body)
            pages.extend(response.get("results", []))
            if not response.get("has_more"):
                break
            body["start_cursor"] = response.get("next_cursor")
        return pages

    async def find_page_by_property(self, database_id: str, prop: str, value) -> str | None:
        """Find the first page whose rich-text or number property equals value."""
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            condition = {"property": prop, "number": {"equals": value}}
        else:
            condition = {"property": prop, "rich_text": {"equals": str(value)}}
        response = await self._call(
            "POST", f"databases/{database_id}/query", {"filter": condition, "page_size": 1},
        )
        results = response.get("results") or []
        return results[0]["id"] if results else None

    async def find_pages_by_relation(self, database_id: str, prop: str, page_id: str) -> list[str]:
        """Ids of pages whose relation property points at page_id."""
        pages = await self.query_database(
            database_id, {"property": prop, "relation": {"contains": page_id}},
        )
        return [p["id"] for p in pages]

    async def create_page(self, database_id: str, properties: dict) -> str:
        page = await self._call("POST", "pages", {
            "parent": {"database_id": database_id},
            "properties": properties,
        })
        return page["id"]

    async def update_page(self, page_id: str, properties: dict) -> str:
        """Patch properties, unarchiving the page if a restored record points at it."""
        page = await self._call("PATCH", f"pages/{page_id}", {"properties": properties, "archived": False})
        return page.get("id", page_id)

    async def archive_page(self, page_id: str):
        await self._call("PATCH", f"pages/{page_id}", {"archived": True})

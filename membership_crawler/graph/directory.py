"""
Graph-backed directory client: the three directory queries the crawler
depends on, implemented on top of GraphClient.
"""

from __future__ import annotations

import logging
from typing import AsyncIterator
from urllib.parse import quote

import httpx

from ..crawler.directory import DirectoryClient, QueryError
from ..crawler.models import MemberRecord, MembershipRecord, UserRecord
from .client import GraphAPIError, GraphClient

logger = logging.getLogger("membership_crawler.graph.directory")

USER_SELECT = "id,userType,userPrincipalName,displayName"
MEMBERSHIP_SELECT = "id,displayName"


def user_from_graph(item: dict) -> UserRecord:
    return UserRecord(
        id=item.get("id", ""),
        user_type=item.get("userType") or "",
        principal_name=item.get("userPrincipalName") or "",
        display_name=item.get("displayName") or "",
    )


def membership_from_graph(item: dict) -> MembershipRecord:
    return MembershipRecord(
        id=item.get("id", ""),
        kind=item.get("@odata.type") or item.get("objectType") or "",
        display_name=item.get("displayName") or "",
    )


class GraphDirectoryClient(DirectoryClient):
    """DirectoryClient backed by Microsoft Graph v1.0."""

    def __init__(self, graph: GraphClient):
        self.graph = graph

    async def get_direct_object(self, object_id: str) -> UserRecord:
        # Guest UPNs contain '#EXT#'
        endpoint = f"users/{quote(object_id, safe='@')}"
        try:
            data = await self.graph.get(endpoint, params={"$select": USER_SELECT})
        except (GraphAPIError, httpx.HTTPError) as e:
            raise QueryError(object_id, _describe(e)) from e
        if not data.get("id"):
            raise QueryError(object_id, "No object returned")
        return user_from_graph(data)

    async def get_memberships(self, object_id: str) -> list[MembershipRecord]:
        endpoint = f"directoryObjects/{quote(object_id, safe='')}/memberOf"
        try:
            items = await self.graph.get_all_pages(
                endpoint, params={"$select": MEMBERSHIP_SELECT}
            )
        except (GraphAPIError, httpx.HTTPError) as e:
            raise QueryError(object_id, _describe(e)) from e
        return [membership_from_graph(item) for item in items]

    async def stream_group_members(self, group_id: str) -> AsyncIterator[MemberRecord]:
        endpoint = f"groups/{quote(group_id, safe='')}/members"
        try:
            async for item in self.graph.get_all_pages_stream(
                endpoint, params={"$select": USER_SELECT}
            ):
                yield user_from_graph(item)
        except (GraphAPIError, httpx.HTTPError) as e:
            raise QueryError(group_id, _describe(e)) from e


def _describe(error: Exception) -> str:
    if isinstance(error, GraphAPIError):
        return f"{error.status_code} {error.message}"
    return f"{type(error).__name__}: {error}"

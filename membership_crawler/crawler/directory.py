"""
The directory queries the crawler consumes. Implementations live in
membership_crawler.graph; tests plug in their own.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import AsyncIterator

from .models import MemberRecord, MembershipRecord, UserRecord


class QueryError(Exception):
    """A directory query for one object failed."""
    def __init__(self, object_id: str, message: str):
        self.object_id = object_id
        self.message = message
        super().__init__(message)


class DirectoryClient(ABC):
    """
    Read access to a tenant's directory, one object at a time.
    Every method raises QueryError when the query for that object fails.
    """

    @abstractmethod
    async def get_direct_object(self, object_id: str) -> UserRecord:
        """Resolve an object id or user principal name to its user record."""
        raise NotImplementedError

    @abstractmethod
    async def get_memberships(self, object_id: str) -> list[MembershipRecord]:
        """Direct groups, roles and administrative units the object belongs to."""
        raise NotImplementedError

    @abstractmethod
    def stream_group_members(self, group_id: str) -> AsyncIterator[MemberRecord]:
        """Yield the direct members of a group one at a time, never the full list."""
        raise NotImplementedError

"""Shared fixtures: an in-process directory with configurable failures."""

import asyncio
from collections import Counter

import pytest

from membership_crawler.crawler import (
    DirectoryClient,
    MembershipRecord,
    QueryError,
    UserRecord,
)
from membership_crawler.reporting import MemoryRecordSink

GROUP = "#microsoft.graph.group"
ROLE = "#microsoft.graph.directoryRole"
UNIT = "#microsoft.graph.administrativeUnit"


class FakeDirectory(DirectoryClient):
    """
    Static directory snapshot.

    users:        lookup key (id or UPN) -> UserRecord
    memberships:  object id -> list of MembershipRecord
    members:      group id -> list of UserRecord
    failing:      ids whose membership / member query fails
    fail_after:   group id -> number of members yielded before the stream fails
    """

    def __init__(self, users=None, memberships=None, members=None,
                 failing=(), fail_after=None, delay=0.0):
        self.users = dict(users or {})
        self.memberships = dict(memberships or {})
        self.members = dict(members or {})
        self.failing = set(failing)
        self.fail_after = dict(fail_after or {})
        self.delay = delay
        self.membership_calls = Counter()
        self.member_calls = Counter()
        self.in_flight = 0
        self.max_in_flight = 0

    async def _pause(self):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
        finally:
            self.in_flight -= 1

    async def get_direct_object(self, object_id):
        await asyncio.sleep(0)
        if object_id not in self.users:
            raise QueryError(object_id, "Resource does not exist")
        return self.users[object_id]

    async def get_memberships(self, object_id):
        self.membership_calls[object_id] += 1
        await self._pause()
        if object_id in self.failing:
            raise QueryError(object_id, "Insufficient privileges")
        return list(self.memberships.get(object_id, []))

    async def stream_group_members(self, group_id):
        self.member_calls[group_id] += 1
        await self._pause()
        if group_id in self.failing:
            raise QueryError(group_id, "Insufficient privileges")
        limit = self.fail_after.get(group_id)
        for index, member in enumerate(self.members.get(group_id, [])):
            if limit is not None and index >= limit:
                raise QueryError(group_id, "Connection reset")
            await asyncio.sleep(0)
            yield member


def user(object_id, user_type="Member", name=None):
    name = name or object_id.capitalize()
    return UserRecord(object_id, user_type, f"{object_id}@contoso.com", name)


def group(object_id, name=""):
    return MembershipRecord(object_id, GROUP, name or object_id)


def role(object_id, name=""):
    return MembershipRecord(object_id, ROLE, name or object_id)


def unit(object_id):
    return MembershipRecord(object_id, UNIT, object_id)


@pytest.fixture
def sink():
    return MemoryRecordSink()


@pytest.fixture
def scenario_directory():
    """alice is in G1 (Engineering) and R1 (Admins); G1 also holds bob and guest carol."""
    alice = user("alice")
    return FakeDirectory(
        users={"alice": alice, "alice@contoso.com": alice},
        memberships={
            "alice": [group("G1", "Engineering"), role("R1", "Admins")],
            "bob": [group("G1", "Engineering")],
        },
        members={
            "G1": [alice, user("bob"), user("carol", user_type="")],
        },
    )

"""
Base record sink — the seven append-only output streams of a crawl.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from ..crawler.models import (
    AdministrativeUnitRecord,
    EdgeKind,
    ErrorRecord,
    GroupRecord,
    MembershipEdge,
    RoleRecord,
    UserRecord,
)

# Stream name -> header row, in output order.
STREAM_HEADERS: dict[str, list[str]] = {
    "users": ["objectId", "userType", "userPrincipalName", "displayName"],
    "groups": ["objectId", "displayname"],
    "groups_membership": ["groupId", "userId"],
    "roles": ["objectId", "displayname"],
    "roles_membership": ["roleId", "userId"],
    "administrativeunits": ["objectId"],
    "errors": ["objectId", "message"],
}


class RecordSink(ABC):
    """
    Abstract output for crawl results.

    Each stream is independent: a write to one never waits on another,
    and a single record is always written whole.
    """

    def write_user(self, user: UserRecord):
        self.append("users", [user.id, user.user_type, user.principal_name, user.display_name])

    def write_group(self, group: GroupRecord):
        self.append("groups", [group.id, group.display_name])

    def write_group_membership(self, group_id: str, member_id: str):
        self.append("groups_membership", [group_id, member_id])

    def write_role(self, role: RoleRecord):
        self.append("roles", [role.id, role.display_name])

    def write_role_membership(self, role_id: str, member_id: str):
        self.append("roles_membership", [role_id, member_id])

    def write_administrative_unit(self, unit: AdministrativeUnitRecord):
        self.append("administrativeunits", [unit.id])

    def write_error(self, error: ErrorRecord):
        self.append("errors", [error.object_id, error.message])

    def write_edge(self, edge: MembershipEdge):
        if edge.kind == EdgeKind.ROLE_MEMBER:
            self.write_role_membership(edge.object_id, edge.subject_id)
        else:
            self.write_group_membership(edge.object_id, edge.subject_id)

    @abstractmethod
    def append(self, stream: str, row: list[str]):
        """Append one row to the named stream atomically."""
        raise NotImplementedError

    def close(self):
        pass

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

"""
Records produced and consumed by the membership crawler.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class MembershipKind(str, Enum):
    ROLE = "Role"
    GROUP = "Group"
    ADMINISTRATIVE_UNIT = "AdministrativeUnit"
    UNKNOWN = "Unknown"


class EdgeKind(str, Enum):
    GROUP_MEMBER = "GroupMember"
    ROLE_MEMBER = "RoleMember"


@dataclass(frozen=True)
class UserRecord:
    id: str
    user_type: str = ""            # Member, Guest, or empty when unknown
    principal_name: str = ""
    display_name: str = ""


@dataclass(frozen=True)
class GroupRecord:
    id: str
    display_name: str = ""


@dataclass(frozen=True)
class RoleRecord:
    id: str
    display_name: str = ""


@dataclass(frozen=True)
class AdministrativeUnitRecord:
    id: str


@dataclass(frozen=True)
class MembershipEdge:
    """subject_id belongs to object_id."""
    subject_id: str
    object_id: str
    kind: EdgeKind


@dataclass(frozen=True)
class ErrorRecord:
    object_id: str
    message: str


@dataclass(frozen=True)
class MembershipRecord:
    """One entry of an object's direct memberships, as returned by the directory."""
    id: str
    kind: str                      # raw @odata.type or legacy objectType
    display_name: str = ""


# Group members carry the same fields as a user; non-user members have no user_type.
MemberRecord = UserRecord


@dataclass
class CrawlStats:
    """Counters for one crawl run. Informational only."""
    seeds_requested: int = 0
    seeds_resolved: int = 0
    no_input: bool = False
    waves: int = 0
    users_expanded: int = 0
    groups_expanded: int = 0
    users_recorded: int = 0
    groups_recorded: int = 0
    roles_recorded: int = 0
    administrative_units_recorded: int = 0
    group_edges: int = 0
    role_edges: int = 0
    errors: int = 0
    anomalies: int = 0
    users_pending: int = 0         # Left in the frontiers by stop()
    groups_pending: int = 0
    unresolved_seeds: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "seeds_requested": self.seeds_requested,
            "seeds_resolved": self.seeds_resolved,
            "unresolved_seeds": list(self.unresolved_seeds),
            "no_input": self.no_input,
            "waves": self.waves,
            "users_expanded": self.users_expanded,
            "groups_expanded": self.groups_expanded,
            "users_recorded": self.users_recorded,
            "groups_recorded": self.groups_recorded,
            "roles_recorded": self.roles_recorded,
            "administrative_units_recorded": self.administrative_units_recorded,
            "group_edges": self.group_edges,
            "role_edges": self.role_edges,
            "errors": self.errors,
            "anomalies": self.anomalies,
            "users_pending": self.users_pending,
            "groups_pending": self.groups_pending,
        }

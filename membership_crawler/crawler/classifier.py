"""
Membership classification: turns one raw memberOf entry into edges,
terminal records and group frontier entries.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from .models import (
    AdministrativeUnitRecord,
    CrawlStats,
    EdgeKind,
    GroupRecord,
    MembershipEdge,
    MembershipKind,
    MembershipRecord,
    RoleRecord,
)
from .registry import Frontier, VisitedRegistry

if TYPE_CHECKING:
    from ..reporting.base import RecordSink

logger = logging.getLogger("membership_crawler.crawler.classifier")

# Graph @odata.type values and the legacy Azure AD Graph objectType names.
KIND_ALIASES = {
    "#microsoft.graph.directoryrole": MembershipKind.ROLE,
    "role": MembershipKind.ROLE,
    "directoryrole": MembershipKind.ROLE,
    "#microsoft.graph.group": MembershipKind.GROUP,
    "group": MembershipKind.GROUP,
    "#microsoft.graph.administrativeunit": MembershipKind.ADMINISTRATIVE_UNIT,
    "administrativeunit": MembershipKind.ADMINISTRATIVE_UNIT,
}


def classify(raw_kind: str) -> MembershipKind:
    """Map a relationship kind as returned by the directory to a MembershipKind."""
    return KIND_ALIASES.get((raw_kind or "").strip().lower(), MembershipKind.UNKNOWN)


class MembershipClassifier:
    """
    Applies the per-kind action for memberships of an expanded subject.

    Role: edge always, RoleRecord on first claim, never queued.
    Group: GroupRecord and group frontier entry on first claim.
    AdministrativeUnit: record on first claim, never queued.
    Anything else is logged and dropped.
    """

    def __init__(
        self,
        discovered: VisitedRegistry,
        group_frontier: Frontier,
        sink: "RecordSink",
        stats: CrawlStats,
    ):
        self.discovered = discovered
        self.group_frontier = group_frontier
        self.sink = sink
        self.stats = stats
        self.group_names: dict[str, str] = {}

    def handle(self, subject_id: str, membership: MembershipRecord) -> MembershipKind:
        kind = classify(membership.kind)

        if kind == MembershipKind.ROLE:
            self.sink.write_edge(MembershipEdge(subject_id, membership.id, EdgeKind.ROLE_MEMBER))
            self.stats.role_edges += 1
            if self.discovered.try_claim(membership.id):
                logger.info(f"Found role {membership.display_name}")
                self.sink.write_role(RoleRecord(membership.id, membership.display_name))
                self.stats.roles_recorded += 1

        elif kind == MembershipKind.GROUP:
            if self.discovered.try_claim(membership.id):
                logger.info(f"Found group {membership.display_name}")
                self.group_names[membership.id] = membership.display_name
                self.sink.write_group(GroupRecord(membership.id, membership.display_name))
                self.stats.groups_recorded += 1
                self.group_frontier.add(membership.id)

        elif kind == MembershipKind.ADMINISTRATIVE_UNIT:
            if self.discovered.try_claim(membership.id):
                self.sink.write_administrative_unit(AdministrativeUnitRecord(membership.id))
                self.stats.administrative_units_recorded += 1

        else:
            self.stats.anomalies += 1
            logger.warning(
                f"Unknown membership type {membership.kind!r} for {membership.id} "
                f"(member {subject_id}), skipped"
            )

        return kind

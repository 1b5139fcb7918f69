from .models import (
    AdministrativeUnitRecord,
    CrawlStats,
    EdgeKind,
    ErrorRecord,
    GroupRecord,
    MemberRecord,
    MembershipEdge,
    MembershipKind,
    MembershipRecord,
    RoleRecord,
    UserRecord,
)
from .registry import Frontier, VisitedRegistry
from .classifier import MembershipClassifier, classify
from .directory import DirectoryClient, QueryError
from .scheduler import MembershipCrawler, parse_seeds

__all__ = [
    "AdministrativeUnitRecord",
    "CrawlStats",
    "EdgeKind",
    "ErrorRecord",
    "GroupRecord",
    "MemberRecord",
    "MembershipEdge",
    "MembershipKind",
    "MembershipRecord",
    "RoleRecord",
    "UserRecord",
    "Frontier",
    "VisitedRegistry",
    "MembershipClassifier",
    "classify",
    "DirectoryClient",
    "QueryError",
    "MembershipCrawler",
    "parse_seeds",
]

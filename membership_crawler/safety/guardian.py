"""
Safety Guardian — The crawler only ever reads the directory.
Every outbound request is checked here before it leaves the Graph client.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

logger = logging.getLogger("membership_crawler.safety")

READ_METHODS = {"GET", "HEAD", "OPTIONS"}


class SafetyViolation(Exception):
    """Raised when a non-read request is attempted."""
    pass


class SafetyGuardian:
    """
    Rejects any HTTP method that could modify the tenant.
    Keeps a small audit trail of checks and rejected requests.
    """

    def __init__(self):
        self.violations: list[dict] = []
        self.checks_performed: int = 0

    def validate_request(self, method: str, url: str) -> bool:
        """Return True for read requests, raise SafetyViolation otherwise."""
        self.checks_performed += 1
        method_upper = method.upper()
        if method_upper in READ_METHODS:
            return True

        self.violations.append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "method": method_upper,
            "url": url,
        })
        logger.critical(f"SAFETY VIOLATION: write method blocked: {method_upper} {url}")
        raise SafetyViolation(f"Write method blocked: {method_upper} {url}")

    def get_audit_record(self) -> dict:
        return {
            "mode": "READ-ONLY",
            "checks_performed": self.checks_performed,
            "violations_detected": len(self.violations),
            "violations": self.violations,
        }

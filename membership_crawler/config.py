"""
Configuration module for the tenant membership crawler.
Defines authentication modes, Graph API settings, crawl tuning and output locations.
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional


# ─── Tenant Authentication ───────────────────────────────────────────────────

@dataclass
class CertificateAuth:
    """Certificate-based app-only authentication configuration."""
    tenant_id: str
    client_id: str
    certificate_path: str          # Path to base64-encoded PFX
    certificate_password: str = "" # Will be prompted if empty

@dataclass
class DelegatedAuth:
    """Delegated (device code) authentication configuration."""
    tenant_id: str
    client_id: str
    scopes: list[str] = field(default_factory=lambda: [
        "https://graph.microsoft.com/.default"
    ])

@dataclass
class TokenAuth:
    """A bearer token obtained elsewhere (browser session, az cli, ...)."""
    access_token: str
    tenant_id: str = ""            # Read from the token's tid claim if empty

@dataclass
class AuthConfig:
    """Authentication configuration, one of the modes above."""
    mode: str = "certificate"  # "certificate", "delegated" or "token"
    certificate: Optional[CertificateAuth] = None
    delegated: Optional[DelegatedAuth] = None
    token: Optional[TokenAuth] = None


# ─── Graph API Settings ─────────────────────────────────────────────────────

GRAPH_BASE_URL = "https://graph.microsoft.com"
GRAPH_API_VERSION = "v1.0"

# Rate limiting / throttling
MAX_CONCURRENT_REQUESTS = 20      # Parallel requests to Graph
MAX_RETRIES = 5                   # Retry count for throttled requests
INITIAL_BACKOFF_SECONDS = 2.0     # First retry delay
MAX_BACKOFF_SECONDS = 120.0       # Cap on exponential backoff
BACKOFF_MULTIPLIER = 2.0          # Exponential factor

# Pagination
DEFAULT_PAGE_SIZE = 999           # Maximum items per page ($top)
MAX_PAGES_PER_ENDPOINT = 10000    # Safety cap on pagination loops


# ─── Crawl Settings ─────────────────────────────────────────────────────────

@dataclass
class CrawlConfig:
    """Controls for the membership crawl."""
    max_parallel: int = 20                # Expansion tasks per phase
    progress_interval: int = 1000         # Log every N processed nodes / members
    page_size: int = DEFAULT_PAGE_SIZE
    max_concurrent_requests: int = MAX_CONCURRENT_REQUESTS


# ─── Output Configuration ───────────────────────────────────────────────────

@dataclass
class OutputConfig:
    """Output directory and file naming."""
    base_dir: str = ""
    prefix: str = ""              # Defaults to the tenant id at run time

    def __post_init__(self):
        if not self.base_dir:
            self.base_dir = os.getcwd()

    @property
    def output_dir(self) -> Path:
        return Path(self.base_dir)

    def create_directories(self):
        self.output_dir.mkdir(parents=True, exist_ok=True)


# ─── Master Configuration ───────────────────────────────────────────────────

@dataclass
class EngineConfig:
    """Top-level configuration for a crawl run."""
    auth: AuthConfig = field(default_factory=AuthConfig)
    crawl: CrawlConfig = field(default_factory=CrawlConfig)
    output: OutputConfig = field(default_factory=OutputConfig)
    verbose: bool = False

    @classmethod
    def from_file(cls, path: str) -> "EngineConfig":
        """Load configuration from a JSON file."""
        with open(path, "r") as f:
            data = json.load(f)
        config = cls()
        if "auth" in data:
            auth_data = data["auth"]
            config.auth.mode = auth_data.get("mode", "certificate")
            if "certificate" in auth_data:
                c = auth_data["certificate"]
                config.auth.certificate = CertificateAuth(
                    tenant_id=c["tenant_id"],
                    client_id=c["client_id"],
                    certificate_path=c.get("certificate_path", "./base64.txt"),
                    certificate_password=c.get("certificate_password", ""),
                )
            if "delegated" in auth_data:
                d = auth_data["delegated"]
                config.auth.delegated = DelegatedAuth(
                    tenant_id=d["tenant_id"],
                    client_id=d["client_id"],
                )
            if "token" in auth_data:
                t = auth_data["token"]
                config.auth.token = TokenAuth(
                    access_token=t["access_token"],
                    tenant_id=t.get("tenant_id", ""),
                )
        if "crawl" in data:
            for k, v in data["crawl"].items():
                if hasattr(config.crawl, k):
                    setattr(config.crawl, k, v)
        if "output" in data:
            for k, v in data["output"].items():
                if hasattr(config.output, k):
                    setattr(config.output, k, v)
        config.verbose = data.get("verbose", False)
        return config


# ─── Required Graph API Permissions (Least Privilege, Read-Only) ─────────

REQUIRED_PERMISSIONS = {
    "User.Read.All": "Resolve seed users and read member profiles",
    "GroupMember.Read.All": "Enumerate group members",
    "Directory.Read.All": "Read memberOf for roles and administrative units",
}

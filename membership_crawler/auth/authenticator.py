"""
Authentication module. Certificate, device code, or an existing bearer token.
Uses MSAL for token acquisition against Microsoft Identity Platform.
"""

from __future__ import annotations

import base64
import getpass
import logging
import os
from typing import Optional

import jwt
import msal
from cryptography.hazmat.primitives.hashes import SHA1
from cryptography.hazmat.primitives.serialization import pkcs12, Encoding, PrivateFormat, NoEncryption

from ..config import AuthConfig, REQUIRED_PERMISSIONS

logger = logging.getLogger("membership_crawler.auth")

# Default scopes for app-only auth
APP_SCOPES = ["https://graph.microsoft.com/.default"]


class AuthenticationError(Exception):
    """Raised when authentication fails."""
    pass


def tenant_id_from_token(access_token: str) -> str:
    """Read the tid claim of a JWT access token. The signature is not checked."""
    try:
        claims = jwt.decode(access_token, options={"verify_signature": False})
    except jwt.PyJWTError as e:
        raise AuthenticationError(f"Unable to decode access token: {e}")
    tenant_id = claims.get("tid", "")
    if not tenant_id:
        raise AuthenticationError("Access token carries no tenant id (tid claim)")
    return tenant_id


class Authenticator:
    """
    Produces a Graph bearer token and the tenant it belongs to.
    Supports:
      - Certificate-based app-only authentication
      - Delegated interactive authentication (device code flow)
      - A token acquired outside this tool
    """

    def __init__(self, config: AuthConfig):
        self.config = config
        self._access_token: Optional[str] = None
        self._tenant_id: str = ""

    async def acquire_token(self) -> str:
        """Acquire an access token based on configured auth mode."""
        if self.config.mode == "certificate":
            return self._acquire_certificate_token()
        elif self.config.mode == "delegated":
            return self._acquire_delegated_token()
        elif self.config.mode == "token":
            return self._use_existing_token()
        else:
            raise AuthenticationError(f"Unknown auth mode: {self.config.mode}")

    def _use_existing_token(self) -> str:
        token_config = self.config.token
        if not token_config or not token_config.access_token:
            raise AuthenticationError("No access token provided.")
        self._access_token = token_config.access_token
        self._tenant_id = token_config.tenant_id or tenant_id_from_token(self._access_token)
        logger.info(f"Using supplied access token for tenant {self._tenant_id}.")
        return self._access_token

    def _acquire_certificate_token(self) -> str:
        """Acquire token using certificate-based client credentials."""
        cert_config = self.config.certificate
        if not cert_config:
            raise AuthenticationError("Certificate auth config not provided.")
        if not cert_config.tenant_id:
            raise AuthenticationError("No tenant id provided")

        logger.info("Authenticating with certificate-based app credentials...")

        cert_path = cert_config.certificate_path
        password = cert_config.certificate_password
        if not password:
            password = os.environ.get("MEMBERSHIP_CRAWLER_CERT_PASSWORD", "")
        if not password:
            password = getpass.getpass("Enter the certificate password: ")

        try:
            with open(cert_path, "r") as f:
                cert_bytes = base64.b64decode(f.read().strip())

            private_key, certificate, _ = pkcs12.load_key_and_certificates(
                cert_bytes, password.encode("utf-8") if password else None
            )
            private_key_pem = private_key.private_bytes(
                Encoding.PEM, PrivateFormat.PKCS8, NoEncryption()
            ).decode("utf-8")
            thumbprint = certificate.fingerprint(SHA1()).hex()
            logger.info(f"Certificate loaded. Thumbprint: {thumbprint}")

        except FileNotFoundError:
            raise AuthenticationError(f"Certificate file not found: {cert_path}")
        except Exception as e:
            raise AuthenticationError(f"Failed to load certificate: {e}")

        app = msal.ConfidentialClientApplication(
            client_id=cert_config.client_id,
            authority=f"https://login.microsoftonline.com/{cert_config.tenant_id}",
            client_credential={
                "thumbprint": thumbprint,
                "private_key": private_key_pem,
            },
        )
        result = app.acquire_token_for_client(scopes=APP_SCOPES)
        return self._accept(result, cert_config.tenant_id, "Certificate")

    def _acquire_delegated_token(self) -> str:
        """Acquire token using delegated (device code) flow."""
        deleg_config = self.config.delegated
        if not deleg_config:
            raise AuthenticationError("Delegated auth config not provided.")
        if not deleg_config.tenant_id:
            raise AuthenticationError("No tenant id provided")

        logger.info("Initiating device code authentication flow...")

        app = msal.PublicClientApplication(
            client_id=deleg_config.client_id,
            authority=f"https://login.microsoftonline.com/{deleg_config.tenant_id}",
        )
        flow = app.initiate_device_flow(scopes=deleg_config.scopes)
        if "user_code" not in flow:
            raise AuthenticationError(
                f"Device code flow failed: {flow.get('error_description', 'Unknown')}"
            )

        print(f"\n{'='*60}")
        print(f"  To sign in, open: {flow['verification_uri']}")
        print(f"  Enter code: {flow['user_code']}")
        print(f"{'='*60}\n")

        result = app.acquire_token_by_device_flow(flow)
        return self._accept(result, deleg_config.tenant_id, "Delegated")

    def _accept(self, result: dict, tenant_id: str, label: str) -> str:
        if "access_token" in result:
            self._access_token = result["access_token"]
            self._tenant_id = tenant_id
            logger.info(f"{label} authentication successful.")
            return self._access_token
        error = result.get("error_description", result.get("error", "Unknown"))
        raise AuthenticationError(f"{label} auth failed: {error}")

    @property
    def access_token(self) -> Optional[str]:
        return self._access_token

    @property
    def tenant_id(self) -> str:
        return self._tenant_id

    @staticmethod
    def list_required_permissions() -> dict[str, str]:
        """Return the map of required Graph API permissions."""
        return REQUIRED_PERMISSIONS

"""Webhook request authentication.

A request is authenticated when it names a configured client through HTTP
Basic auth (``base64("<client>:")``) and carries an ``X-Hub-Signature-256``
header equal to ``sha256=<hex>`` of the HMAC-SHA256 of the raw body keyed
with that client's secret.
"""

from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
from typing import Callable, Mapping, Optional

from fastapi import Request

from .commands import Action
from .config import ClientConfig, DeployConfig
from .errors import AuthenticationError
from .logging import get_logger
from .metrics import DeployMetrics

logger = get_logger(__name__)

SIGNATURE_HEADER = "X-Hub-Signature-256"
SIGNATURE_PREFIX = "sha256="


class AuthContext:
    """Authenticated webhook caller."""

    def __init__(self, client_name: str, client: ClientConfig):
        self.client_name = client_name
        self.client = client

    @property
    def project(self) -> str:
        return self.client.project

    def can(self, action: Action) -> bool:
        """Check if the client holds the permission for ``action``."""
        return self.client.can(action)

    def __repr__(self) -> str:
        return f"AuthContext(client_name={self.client_name!r}, project={self.project!r})"


def compute_signature(secret: str, body: bytes) -> str:
    """Return the ``sha256=<hex>`` signature of ``body`` keyed with ``secret``."""
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def basic_auth_header(client_name: str) -> str:
    """Build the ``Authorization`` header value naming ``client_name``."""
    token = base64.b64encode(f"{client_name}:".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def parse_client_name(authorization: Optional[str]) -> Optional[str]:
    """Extract the client name from a ``Basic`` authorization header.

    The decoded credentials have a single trailing ``:`` removed; no password
    is expected.
    """
    if not authorization or not authorization.startswith("Basic "):
        return None
    token = authorization[len("Basic "):]
    try:
        decoded = base64.b64decode(token.encode("ascii"), validate=True).decode("utf-8")
    except (binascii.Error, UnicodeError, ValueError):
        return None
    return decoded.removesuffix(":")


def authenticate(config: DeployConfig, headers: Mapping[str, str], body: bytes) -> AuthContext:
    """Authenticate a webhook request.

    Args:
        config: Loaded configuration holding the clients
        headers: Request headers (case-insensitive mapping)
        body: Raw request body the signature was computed over

    Returns:
        The authenticated caller

    Raises:
        AuthenticationError: If any header is missing, the client is unknown
            or the signature does not match
    """
    signature = headers.get(SIGNATURE_HEADER)
    authorization = headers.get("Authorization")
    if signature is None or authorization is None:
        raise AuthenticationError("missing required headers")

    client_name = parse_client_name(authorization)
    if client_name is None:
        raise AuthenticationError("malformed authorization header")

    client = config.clients.get(client_name)
    if client is None:
        raise AuthenticationError("unknown client", details={"client": client_name})

    expected = compute_signature(client.secret, body)
    logger.debug(
        "checking signature",
        client=client_name,
        body_bytes=len(body),
        signature=signature,
    )
    if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
        raise AuthenticationError("signature mismatch", details={"client": client_name})

    return AuthContext(client_name, client)


def build_signature_auth(
    config: DeployConfig,
    endpoint: str,
    metrics: DeployMetrics | None = None,
) -> Callable:
    """Build a FastAPI dependency that authenticates webhook requests.

    Args:
        config: Loaded configuration holding the clients
        endpoint: Endpoint label used for logs and metrics
        metrics: Optional metrics collector

    Returns:
        A dependency resolving to an :class:`AuthContext`
    """

    async def _dep(request: Request) -> AuthContext:
        body = await request.body()
        try:
            auth = authenticate(config, request.headers, body)
        except AuthenticationError as exc:
            logger.info(
                "webhook request unable to be authenticated",
                endpoint=endpoint,
                reason=exc.message,
                **exc.details,
            )
            if metrics:
                metrics.record_request(endpoint, "unauthorized")
            raise

        logger.info("webhook request authenticated", endpoint=endpoint, client=auth.client_name)
        return auth

    return _dep

"""Helpers shared by unit and integration tests."""

from __future__ import annotations

import os
from typing import Dict

import pytest

from deploy_hooks.security import SIGNATURE_HEADER, basic_auth_header, compute_signature

SECRET = "s3cr3t-for-tests"

requires_fifo = pytest.mark.skipif(not hasattr(os, "mkfifo"), reason="named pipes not supported")


def signed_headers(client: str, body: bytes, secret: str = SECRET) -> Dict[str, str]:
    """Headers of a correctly signed webhook request."""
    return {
        "Authorization": basic_auth_header(client),
        SIGNATURE_HEADER: compute_signature(secret, body),
    }

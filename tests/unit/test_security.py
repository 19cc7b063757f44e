"""Tests for webhook request authentication."""

import base64
import hashlib
import hmac

import pytest

from deploy_hooks.commands import Action
from deploy_hooks.errors import AuthenticationError
from deploy_hooks.security import (
    SIGNATURE_HEADER,
    authenticate,
    basic_auth_header,
    compute_signature,
    parse_client_name,
)

from tests.helpers import SECRET, signed_headers

BODY = b'{"ref": "refs/heads/main"}'


class TestSignature:
    def test_compute_signature_matches_hmac_sha256(self):
        expected = hmac.new(SECRET.encode(), BODY, hashlib.sha256).hexdigest()

        assert compute_signature(SECRET, BODY) == f"sha256={expected}"

    def test_signature_is_lowercase_hex(self):
        digest = compute_signature(SECRET, b"").removeprefix("sha256=")

        assert len(digest) == 64
        assert digest == digest.lower()

    def test_known_vector(self):
        # RFC 4231 test case 2
        signature = compute_signature("Jefe", b"what do ya want for nothing?")

        assert signature == (
            "sha256=5bdcc146bf60754e6a042426089575c75a003f089d2739839dec58b964ec3843"
        )


class TestParseClientName:
    def test_strips_single_trailing_colon(self):
        assert parse_client_name(basic_auth_header("shop")) == "shop"

    def test_without_colon(self):
        token = base64.b64encode(b"shop").decode()

        assert parse_client_name(f"Basic {token}") == "shop"

    def test_password_is_kept_in_name(self):
        token = base64.b64encode(b"shop:pw").decode()

        assert parse_client_name(f"Basic {token}") == "shop:pw"

    @pytest.mark.parametrize(
        "header",
        [None, "", "Bearer abc", "basic c2hvcDo=", "Basic !!!", "Basic " + base64.b64encode(b"\xff:").decode()],
    )
    def test_rejects_malformed(self, header):
        assert parse_client_name(header) is None


class TestAuthenticate:
    def test_valid_request(self, config):
        auth = authenticate(config, signed_headers("shop", BODY), BODY)

        assert auth.client_name == "shop"
        assert auth.project == "shop"
        assert auth.can(Action.DEPLOY)

    def test_client_without_permission_still_authenticates(self, config):
        headers = signed_headers("readonly", BODY, secret="another-secret")

        auth = authenticate(config, headers, BODY)

        assert auth.project == "blog"
        assert not auth.can(Action.DEPLOY)

    def test_missing_signature(self, config):
        headers = {"Authorization": basic_auth_header("shop")}

        with pytest.raises(AuthenticationError, match="missing required headers"):
            authenticate(config, headers, BODY)

    def test_missing_authorization(self, config):
        headers = {SIGNATURE_HEADER: compute_signature(SECRET, BODY)}

        with pytest.raises(AuthenticationError, match="missing required headers"):
            authenticate(config, headers, BODY)

    def test_unknown_client(self, config):
        with pytest.raises(AuthenticationError, match="unknown client"):
            authenticate(config, signed_headers("intruder", BODY), BODY)

    def test_wrong_secret(self, config):
        headers = signed_headers("shop", BODY, secret="guess")

        with pytest.raises(AuthenticationError, match="signature mismatch"):
            authenticate(config, headers, BODY)

    def test_tampered_body(self, config):
        headers = signed_headers("shop", BODY)

        with pytest.raises(AuthenticationError):
            authenticate(config, headers, BODY + b" ")

    def test_uppercase_signature_is_rejected(self, config):
        headers = signed_headers("shop", BODY)
        headers[SIGNATURE_HEADER] = "sha256=" + headers[SIGNATURE_HEADER][7:].upper()

        with pytest.raises(AuthenticationError):
            authenticate(config, headers, BODY)

    def test_error_is_unauthorized(self, config):
        with pytest.raises(AuthenticationError) as exc_info:
            authenticate(config, {}, BODY)

        assert exc_info.value.error_code == "UNAUTHORIZED"

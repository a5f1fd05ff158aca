"""Tests for signing.py module.

Tests parameter signatures, URL part signatures, upload parameter
finalization and response/notification verification.
"""

import pytest

from cdn_media.errors import ConfigError, UsageError
from cdn_media.models import Config
from cdn_media.signing import (
    compute_hex_hash,
    finalize_upload_parameters,
    sign_parameters,
    sign_uri_part,
    string_to_sign,
    verify_api_response_signature,
    verify_notification_signature,
)


@pytest.fixture
def config():
    """Account configuration with test credentials."""
    return Config(cloud_name="test123", api_key="a", api_secret="b")


class TestSignParameters:
    """Tests for sign_parameters function."""

    def test_known_signature(self):
        """Should match the reference signature."""
        params = {"public_id": "sample", "timestamp": 1315060510}
        assert sign_parameters(params, "abcd") == "c3470533147774275dd37996cc4d0e68fd03cd4f"

    def test_sha1_and_sha256(self):
        """Should support both algorithms."""
        params = {"cloud_name": "dn6ot3ged", "timestamp": 1568810420, "username": "user@cloudinary.com"}
        secret = "hdcixPpR2iKERPwqvH6sHdK9cyac"
        assert sign_parameters(params, secret) == "14c00ba6d0dfdedbc86b316847d95b9e6cd46d94"
        assert sign_parameters(params, secret, "sha256") == (
            "45ddaa4fa01f0c2826f32f669d2e4514faf275fe6df053f1a150e7beae58a3bd"
        )

    def test_excludes_keys_and_none(self):
        """Should ignore excluded keys and None values."""
        params = {
            "public_id": "sample",
            "timestamp": 1315060510,
            "api_key": "key",
            "resource_type": "image",
            "type": "upload",
            "file": "x",
            "folder": None,
        }
        assert sign_parameters(params, "abcd") == "c3470533147774275dd37996cc4d0e68fd03cd4f"

    def test_empty_values_are_signed(self):
        """Should sign empty strings as key= so they match the form body."""
        params = {"public_id": "", "timestamp": "1315060510"}
        assert string_to_sign(params) == "public_id=&timestamp=1315060510"
        assert sign_parameters(params, "abcd") == "b301a297bf424a2659cdee1009b088f763ffde35"

    def test_list_values(self):
        """Should comma-join list values in sorted key order."""
        assert string_to_sign({"tags": ["a", "b"], "eager": "w_100"}) == "eager=w_100&tags=a,b"

    def test_unknown_algorithm(self):
        """Should reject unsupported algorithms."""
        with pytest.raises(UsageError):
            compute_hex_hash("x", "md5")


class TestSignUriPart:
    """Tests for sign_uri_part function."""

    def test_short_signature(self):
        """Should produce an 8 character signature."""
        assert sign_uri_part("sample.jpg", "b") == "s--v2fTPYTu--"

    def test_long_signature(self):
        """Should produce a 32 character SHA-256 signature."""
        assert sign_uri_part("sample.jpg", "b", long_signature=True) == "s--2hbrSMPOjj5BJ4xV7SgFbRDevFaQNUFf--"

    def test_sha256_short_signature(self):
        """Should use SHA-256 for short signatures when configured."""
        assert sign_uri_part("sample.jpg", "b", algorithm="sha256") == "s--2hbrSMPO--"


class TestFinalizeUploadParameters:
    """Tests for finalize_upload_parameters function."""

    def test_adds_signature_timestamp_and_key(self, config):
        """Should sign and add the API key."""
        signed = finalize_upload_parameters({"public_id": "sample"}, config, timestamp=1315060510)
        assert signed["timestamp"] == 1315060510
        assert signed["api_key"] == "a"
        assert signed["signature"] == sign_parameters(
            {"public_id": "sample", "timestamp": 1315060510}, "b"
        )

    def test_does_not_modify_input(self, config):
        """Should return a copy."""
        params = {"public_id": "sample"}
        finalize_upload_parameters(params, config)
        assert params == {"public_id": "sample"}

    def test_requires_credentials(self):
        """Should raise when key or secret is missing."""
        with pytest.raises(ConfigError, match="api_key"):
            finalize_upload_parameters({}, Config(cloud_name="c", api_secret="s"))
        with pytest.raises(ConfigError, match="api_secret"):
            finalize_upload_parameters({}, Config(cloud_name="c", api_key="k"))


class TestVerification:
    """Tests for response and notification verification."""

    def test_api_response_signature(self, config):
        """Should verify public_id and version signatures."""
        signature = "a6575413072c7b4480619c8d7d553680b540a218"
        assert verify_api_response_signature("tests/logo", 1234, signature, config)
        assert not verify_api_response_signature("tests/logo", 1235, signature, config)

    def test_notification_signature(self, config):
        """Should verify body + timestamp signatures within the validity window."""
        body = '{"a":1}'
        signature = "c87620f4183e302fed969ec9580cf2dd1e553f64"
        assert verify_notification_signature(body, 1700000000, signature, config, now=1700000100)
        assert not verify_notification_signature(body, 1700000000, "bad", config, now=1700000100)

    def test_stale_notification(self, config):
        """Should reject notifications older than valid_for."""
        body = '{"a":1}'
        signature = "c87620f4183e302fed969ec9580cf2dd1e553f64"
        assert not verify_notification_signature(body, 1700000000, signature, config, now=1700007201)
        assert not verify_notification_signature(
            body, 1700000000, signature, config, valid_for=50, now=1700000100
        )

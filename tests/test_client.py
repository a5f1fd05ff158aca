"""Tests for client.py module."""

from unittest.mock import patch

import httpx
import pytest

from cdn_media.client import MediaClient
from cdn_media.models import Config


@pytest.fixture
def config():
    """Account configuration for client tests."""
    return Config(cloud_name="demo", api_key="a", api_secret="b")


class TestMediaClient:
    """Tests for MediaClient."""

    def test_url_uses_config(self, config):
        """Should build URLs for the bound account."""
        client = MediaClient(config)
        assert client.url(secure=True).build("sample.jpg") == "https://res.cloudinary.com/demo/image/upload/sample.jpg"

    @patch("cdn_media.client.load_config")
    def test_loads_config_by_default(self, mock_load, config):
        """Should fall back to load_config()."""
        mock_load.return_value = config
        assert MediaClient().config is config

    def test_upload_through_transport(self, config, tmp_path):
        """Should send uploads through the injected httpx client."""
        path = tmp_path / "a.jpg"
        path.write_bytes(b"image")
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(str(request.url))
            return httpx.Response(200, json={"public_id": "a", "secure_url": "https://cdn/a.jpg"})

        client = MediaClient(config, http_client=httpx.Client(transport=httpx.MockTransport(handler)))
        result = client.upload(path)

        assert result.url == "https://cdn/a.jpg"
        assert seen == ["https://api.cloudinary.com/v1_1/demo/image/upload"]

    def test_verify_api_response_signature(self, config):
        """Should check public_id and version signatures."""
        client = MediaClient(config)
        assert client.verify_api_response_signature("tests/logo", 1234, "a6575413072c7b4480619c8d7d553680b540a218")
        assert not client.verify_api_response_signature("tests/logo", 1235, "a6575413072c7b4480619c8d7d553680b540a218")

    @patch("cdn_media.signing.time.time")
    def test_verify_notification_signature(self, mock_time, config):
        """Should accept fresh notifications with a matching signature."""
        mock_time.return_value = 1700000100
        client = MediaClient(config)
        signature = "c87620f4183e302fed969ec9580cf2dd1e553f64"
        assert client.verify_notification_signature('{"a":1}', 1700000000, signature)
        assert not client.verify_notification_signature('{"a":1}', 1700000000, signature, valid_for=50)

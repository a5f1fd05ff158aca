"""MediaClient, the entry point tying configuration, URLs and uploads together."""

from pathlib import Path
from typing import Any, BinaryIO

import httpx

from .api import ApiClient
from .config import load_config
from .files import FileDescription
from .models import Config, UploadResult
from .signing import verify_api_response_signature, verify_notification_signature
from .upload import upload, upload_async, upload_large, upload_large_async
from .url import Url


class MediaClient:
    """Account-scoped client.

    Holds one immutable Config and hands it to every URL and API call, so
    several accounts can be used side by side.

        client = MediaClient(Config(cloud_name="demo"))
        client.url().transform(Transformation(width=100)).build("sample.jpg")

    Args:
        config: Account configuration; loaded with load_config() when omitted
        http_client: Optional httpx.Client for API calls
        async_http_client: Optional httpx.AsyncClient for async API calls
    """

    def __init__(
        self,
        config: Config | None = None,
        http_client: httpx.Client | None = None,
        async_http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config if config is not None else load_config()
        self.api = ApiClient(self.config, client=http_client, async_client=async_http_client)

    def url(self, **options: Any) -> Url:
        """Start a URL description; options override config defaults."""
        return Url(self.config, **options)

    def upload(self, file: "FileDescription | str | Path | BinaryIO", **options: Any) -> UploadResult:
        return upload(self.api, file, **options)

    async def upload_async(self, file: "FileDescription | str | Path | BinaryIO", **options: Any) -> UploadResult:
        return await upload_async(self.api, file, **options)

    def upload_large(
        self,
        file: "FileDescription | str | Path | BinaryIO",
        chunk_size: int | None = None,
        **options: Any,
    ) -> UploadResult:
        return upload_large(self.api, file, chunk_size=chunk_size, **options)

    async def upload_large_async(
        self,
        file: "FileDescription | str | Path | BinaryIO",
        chunk_size: int | None = None,
        **options: Any,
    ) -> UploadResult:
        return await upload_large_async(self.api, file, chunk_size=chunk_size, **options)

    def verify_api_response_signature(self, public_id: str, version: int | str, signature: str) -> bool:
        return verify_api_response_signature(public_id, version, signature, self.config)

    def verify_notification_signature(self, body: str, timestamp: int, signature: str, valid_for: int = 7200) -> bool:
        return verify_notification_signature(body, timestamp, signature, self.config, valid_for=valid_for)

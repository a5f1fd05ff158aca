"""HTTP transport for the media API.

ApiClient signs request parameters and sends them as multipart form data
(or JSON) through httpx. Both a blocking and an async path are provided;
neither retries.
"""

from typing import Any

import httpx
import structlog

from .errors import ApiError
from .models import Config, UploadResult
from .signing import finalize_upload_parameters
from .url import Url

logger = structlog.get_logger("cdn_media.api")

USER_AGENT = "cdn-media/0.1.0"


def api_url(config: Config, action: str = "upload", resource_type: str = "image") -> str:
    """Build an API endpoint URL.

    Example: https://api.cloudinary.com/v1_1/<cloud>/image/upload
    """
    return Url(
        config,
        resource_type=resource_type,
        type=action,
        cloudinary_addr=config.upload_prefix,
        api_version=config.api_version,
        shorten=False,
        use_root_path=False,
        sign_url=False,
    ).build()


def _form_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def parse_result(response: httpx.Response) -> UploadResult:
    """Turn an API response into an UploadResult.

    Non-2xx responses are not raised; their error message is carried in
    the result.
    """
    try:
        data = response.json()
    except ValueError:
        data = {}
    if not isinstance(data, dict):
        data = {"result": data}

    error = None
    if "error" in data:
        err = data["error"]
        error = err.get("message") if isinstance(err, dict) else str(err)
    elif not response.is_success:
        error = response.text or response.reason_phrase

    return UploadResult(status_code=response.status_code, data=data, error=error)


class ApiClient:
    """Signed API calls over httpx.

    Args:
        config: Account configuration
        client: Optional httpx.Client, e.g. one with a mock transport
        async_client: Optional httpx.AsyncClient
    """

    def __init__(
        self,
        config: Config,
        client: httpx.Client | None = None,
        async_client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self._client = client
        self._async_client = async_client

    def _request_kwargs(
        self,
        params: dict[str, Any],
        file: tuple[str, Any] | None,
        headers: dict[str, str] | None,
        content_type: str | None,
    ) -> dict[str, Any]:
        signed = finalize_upload_parameters(params, self.config)
        kwargs: dict[str, Any] = {"headers": {"User-Agent": USER_AGENT, **(headers or {})}}
        if content_type == "json":
            kwargs["json"] = signed
        else:
            kwargs["data"] = {k: _form_value(v) for k, v in signed.items()}
            if file is not None:
                kwargs["files"] = {"file": file}
        return kwargs

    def call_api(
        self,
        method: str,
        url: str,
        params: dict[str, Any],
        file: tuple[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        content_type: str | None = None,
    ) -> UploadResult:
        """Sign and send a request.

        Args:
            method: HTTP method
            url: Endpoint URL
            params: Unsigned request parameters
            file: Optional (file_name, content) pair sent as the "file" part
            headers: Extra request headers
            content_type: "json" to send a JSON body instead of form data

        Returns:
            Parsed result; HTTP error statuses are reported, not raised

        Raises:
            ConfigError: If credentials are missing
            ApiError: If the request could not be sent
        """
        kwargs = self._request_kwargs(params, file, headers, content_type)
        try:
            if self._client is not None:
                response = self._client.request(method, url, **kwargs)
            else:
                with httpx.Client(timeout=self.config.timeout) as client:
                    response = client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("api_request_failed", url=url, error=str(exc))
            raise ApiError(f"Request to {url} failed: {exc}") from exc
        return parse_result(response)

    async def call_api_async(
        self,
        method: str,
        url: str,
        params: dict[str, Any],
        file: tuple[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        content_type: str | None = None,
    ) -> UploadResult:
        """Async variant of call_api."""
        kwargs = self._request_kwargs(params, file, headers, content_type)
        try:
            if self._async_client is not None:
                response = await self._async_client.request(method, url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.config.timeout) as client:
                    response = await client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            logger.error("api_request_failed", url=url, error=str(exc))
            raise ApiError(f"Request to {url} failed: {exc}") from exc
        return parse_result(response)

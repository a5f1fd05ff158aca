"""Data models for cdn-media.

Contains the immutable account configuration and the result of API calls.
"""

from dataclasses import dataclass, field, replace
from typing import Any

from .auth_token import AuthToken
from .transformation import Transformation

DEFAULT_UPLOAD_PREFIX = "https://api.cloudinary.com"
DEFAULT_CHUNK_SIZE = 20 * 1024 * 1024


@dataclass(frozen=True)
class Config:
    """Account credentials and delivery defaults.

    A Config is passed explicitly to every URL builder and API client;
    nothing reads process-wide settings.

    Attributes:
        cloud_name: Cloud (account) name
        api_key: API key used for signed requests
        api_secret: API secret used for signatures
        secure: Deliver over HTTPS
        private_cdn: Use the account's private CDN host
        cdn_subdomain: Spread requests over sharded hosts
        cname: Custom delivery domain
        secure_distribution: Custom HTTPS delivery host
        shorten: Shorten image/upload to iu
        use_root_path: Omit resource type and action for image/upload
        sign_url: Sign delivery URLs by default
        force_version: Inject v1 for foldered sources without a version
        long_url_signature: Use 32 character SHA-256 URL signatures
        signature_algorithm: "sha1" or "sha256"
        auth_token: Default token for authenticated URLs
        responsive_width_transformation: Segment appended for responsive width
        upload_prefix: Base URL of the upload API
        api_version: API version path segment
        timeout: HTTP timeout in seconds
        chunk_size: Default chunk size for large uploads
    """
    cloud_name: str | None = None
    api_key: str | None = None
    api_secret: str | None = None
    secure: bool = False
    private_cdn: bool = False
    cdn_subdomain: bool = False
    cname: str | None = None
    secure_distribution: str | None = None
    shorten: bool = False
    use_root_path: bool = False
    sign_url: bool = False
    force_version: bool = True
    long_url_signature: bool = False
    signature_algorithm: str = "sha1"
    auth_token: AuthToken | None = None
    responsive_width_transformation: Transformation | None = None
    upload_prefix: str = DEFAULT_UPLOAD_PREFIX
    api_version: str = "v1_1"
    timeout: float = 60.0
    chunk_size: int = DEFAULT_CHUNK_SIZE

    def copy(self, **changes: Any) -> "Config":
        return replace(self, **changes)


@dataclass
class UploadResult:
    """Result of an API call.

    Attributes:
        status_code: HTTP status code
        data: Decoded JSON response body
        error: Error message reported by the API, if any
    """
    status_code: int
    data: dict[str, Any] = field(default_factory=dict)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and 200 <= self.status_code < 300

    @property
    def public_id(self) -> str | None:
        return self.data.get("public_id")

    @property
    def version(self) -> int | None:
        return self.data.get("version")

    @property
    def secure_url(self) -> str | None:
        return self.data.get("secure_url")

    @property
    def url(self) -> str | None:
        """Delivery URL, preferring the HTTPS one."""
        return self.data.get("secure_url") or self.data.get("url")

"""Delivery URL builder.

A Url is an immutable description of how to deliver an asset: resource
type, delivery type, transformation, version and host options. `build()`
turns it plus a source public ID into the final URL. Options left as None
fall back to the bound Config.
"""

import re
import zlib
from dataclasses import dataclass, field, replace
from typing import Any
from urllib.parse import unquote, urlparse

import structlog

from .auth_token import AuthToken
from .encoding import smart_escape
from .errors import ConfigError, NotSupportedError, UsageError
from .models import Config
from .signing import sign_uri_part
from .transformation import Transformation

logger = structlog.get_logger("cdn_media.url")

SHARED_CDN = "res.cloudinary.com"

HTTP_SOURCE_RE = re.compile(r"^https?:/", re.IGNORECASE)
VERSIONED_SOURCE_RE = re.compile(r"^v[0-9]+/")
ANY_HTTP_RE = re.compile(r"https?:/")
DUPLICATE_SLASHES_RE = re.compile(r"([^:])/{2,}")

# (resource_type, type) -> resource type used in SEO suffix URLs
SUFFIX_RESOURCE_TYPES = {
    ("image", "upload"): "images",
    ("image", "private"): "private_images",
    ("image", "authenticated"): "authenticated_images",
    ("video", "upload"): "videos",
    ("raw", "upload"): "files",
}


def shard(source: str) -> int:
    """Pick a CDN subdomain shard (1-5) for a source path."""
    return zlib.crc32(source.encode("utf-8")) % 5 + 1


def finalize_source(source: str, format: str | None, suffix: str | None) -> tuple[str, str]:
    """Escape the source and attach suffix and format.

    Args:
        source: Public ID or remote URL
        format: Optional extension appended to both forms
        suffix: Optional SEO suffix, appended to the delivered form only

    Returns:
        (source, source_to_sign) pair

    Raises:
        UsageError: If the suffix contains "." or "/"
    """
    if HTTP_SOURCE_RE.match(source):
        escaped = smart_escape(source)
        return escaped, escaped

    source = smart_escape(unquote(source))
    source_to_sign = source
    if suffix:
        if re.search(r"[./]", suffix):
            raise UsageError("url_suffix should not include . or /")
        source = f"{source}/{suffix}"
    if format:
        source = f"{source}.{format}"
        source_to_sign = f"{source_to_sign}.{format}"
    return source, source_to_sign


def update_action(
    resource_type: str,
    type: str | None,
    suffix: str | None,
    use_root_path: bool,
    shorten: bool,
) -> tuple[str | None, str | None]:
    """Rewrite resource type and delivery type for suffix, root path and short URLs.

    Returns:
        (resource_type, type) pair, either of which may become None

    Raises:
        NotSupportedError: For combinations the CDN does not route
    """
    if suffix:
        try:
            resource_type = SUFFIX_RESOURCE_TYPES[(resource_type, type)]
        except KeyError:
            raise NotSupportedError(
                "URL Suffix only supported for image/upload, image/private, "
                "image/authenticated, video/upload and raw/upload"
            ) from None
        type = None

    if use_root_path:
        if (resource_type == "image" and type == "upload") or (resource_type == "images" and type is None):
            resource_type = None
            type = None
        else:
            raise NotSupportedError("Root path only supported for image/upload!")

    if shorten and resource_type == "image" and type == "upload":
        resource_type = "iu"
        type = None

    return resource_type, type


@dataclass(frozen=True)
class Url:
    """Delivery URL description bound to an account configuration.

    Attributes:
        config: Account configuration
        resource_type: image, video or raw
        type: Delivery type (upload, private, fetch, facebook, ...)
        transformation: Transformation applied to the asset
        format: Extension appended to the source
        version: Asset version
        suffix: SEO suffix
        custom_parts: Extra path components after the delivery type
        cloudinary_addr: Absolute base address replacing the CDN prefix
        api_version: API version component, used for API URLs
        auth_token: Token overriding the configured one; NULL_AUTH_TOKEN
            disables token signing
    """
    config: Config
    resource_type: str = "image"
    type: str = "upload"
    transformation: Transformation = field(default_factory=Transformation)
    format: str | None = None
    version: str | int | None = None
    suffix: str | None = None
    custom_parts: tuple[str, ...] = ()
    cloudinary_addr: str | None = None
    api_version: str | None = None
    auth_token: AuthToken | None = None
    secure: bool | None = None
    private_cdn: bool | None = None
    cdn_subdomain: bool | None = None
    cname: str | None = None
    secure_distribution: str | None = None
    shorten: bool | None = None
    use_root_path: bool | None = None
    sign_url: bool | None = None
    force_version: bool | None = None
    long_url_signature: bool | None = None

    def replace(self, **changes: Any) -> "Url":
        return replace(self, **changes)

    def transform(self, transformation: Transformation) -> "Url":
        return replace(self, transformation=transformation)

    def add(self, part: str) -> "Url":
        """Append a custom path component."""
        return replace(self, custom_parts=self.custom_parts + (part,))

    def _option(self, name: str) -> Any:
        value = getattr(self, name)
        return getattr(self.config, name) if value is None else value

    def _effective_token(self) -> AuthToken | None:
        token = self.config.auth_token
        if token is None:
            token = self.auth_token
        elif self.auth_token is not None:
            token = token.merge(self.auth_token)
        if token is None or token.null:
            return None
        return token

    def _prefix(self, source: str) -> tuple[str, bool]:
        cloud_name = self.config.cloud_name
        private_cdn = self._option("private_cdn")
        cdn_subdomain = self._option("cdn_subdomain")
        shared = not private_cdn

        if self.cloudinary_addr and HTTP_SOURCE_RE.match(self.cloudinary_addr):
            return self.cloudinary_addr, shared

        if self._option("secure"):
            distribution = self._option("secure_distribution")
            if not distribution:
                distribution = f"{cloud_name}-res.cloudinary.com" if private_cdn else SHARED_CDN
            shared = shared or distribution == SHARED_CDN
            if shared and cdn_subdomain:
                distribution = distribution.replace(SHARED_CDN, f"res-{shard(source)}.cloudinary.com")
            return f"https://{distribution}", shared

        cname = self._option("cname")
        if cname:
            subdomain = f"a{shard(source)}." if cdn_subdomain else ""
            return f"http://{subdomain}{cname}", shared

        host = (f"{cloud_name}-" if private_cdn else "") + "res"
        if cdn_subdomain:
            host += f"-{shard(source)}"
        return f"http://{host}.cloudinary.com", shared

    def build(self, source: str = "") -> str:
        """Build the URL for a source.

        Args:
            source: Public ID, optionally with folders, or a remote URL

        Returns:
            Delivery URL; absolute http(s) sources with type upload or
            asset are returned unchanged

        Raises:
            ConfigError: If the configuration has no cloud name
            UsageError: If the transformation or suffix is invalid
            NotSupportedError: If a suffix or root path is used with an
                unsupported resource type / type combination
        """
        if not self.config.cloud_name:
            raise ConfigError("Must supply cloud_name in configuration")

        source = source or ""
        if HTTP_SOURCE_RE.match(source) and self.type in ("upload", "asset"):
            return source

        transformation = self.transformation
        format = self.format
        if self.type == "fetch" and format:
            transformation = transformation.fetch_format(format)
            format = None

        transformation_str = transformation.generate(self.config.responsive_width_transformation)
        source, source_to_sign = finalize_source(source, format, self.suffix)
        prefix, shared = self._prefix(source)

        parts: list[Any] = [prefix]
        if self.api_version:
            parts += [self.api_version, self.config.cloud_name]
        elif shared:
            parts.append(self.config.cloud_name)

        resource_type, type = update_action(
            self.resource_type,
            self.type,
            self.suffix,
            self._option("use_root_path"),
            self._option("shorten"),
        )
        parts += [resource_type, type, *self.custom_parts]

        version = self.version
        if (
            self._option("force_version")
            and "/" in source_to_sign
            and not VERSIONED_SOURCE_RE.match(source_to_sign)
            and not ANY_HTTP_RE.search(source_to_sign)
            and not version
        ):
            version = "1"

        signed = self._option("sign_url")
        token = self._effective_token() if signed else None
        if signed and token is None:
            if not self.config.api_secret:
                raise ConfigError("Must supply api_secret to sign URLs")
            to_sign = "/".join(p for p in (transformation_str, source_to_sign) if p)
            to_sign = DUPLICATE_SLASHES_RE.sub(r"\1/", to_sign.lstrip("/")).rstrip("/")
            parts.append(
                sign_uri_part(
                    to_sign,
                    self.config.api_secret,
                    self.config.signature_algorithm,
                    self._option("long_url_signature"),
                )
            )

        parts += [transformation_str, f"v{version}" if version else None, source]

        url = "/".join(str(part) for part in parts if part)
        url = DUPLICATE_SLASHES_RE.sub(r"\1/", url).rstrip("/")

        if token is not None:
            url = f"{url}?{token.generate(urlparse(url).path)}"

        logger.debug("url_built", url=url)
        return url

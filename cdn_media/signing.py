"""Request, URL and notification signing.

All signatures are hex or base64 digests over a canonical string followed
by the account's API secret. SHA-1 is the default algorithm; SHA-256 can be
selected per call or through configuration.
"""

import base64
import hashlib
import time
from typing import TYPE_CHECKING, Any

import structlog

from .errors import ConfigError, UsageError

if TYPE_CHECKING:
    from .models import Config

logger = structlog.get_logger("cdn_media.signing")

SIGNATURE_ALGORITHMS = {
    "sha1": hashlib.sha1,
    "sha256": hashlib.sha256,
}

# Parameters never included in an upload signature.
EXCLUDED_SIGNATURE_KEYS = frozenset({"resource_type", "file", "type", "api_key"})

SHORT_URL_SIGNATURE_LENGTH = 8
LONG_URL_SIGNATURE_LENGTH = 32

DEFAULT_NOTIFICATION_VALID_FOR = 7200


def _hasher(algorithm: str):
    try:
        return SIGNATURE_ALGORITHMS[algorithm.lower()]
    except KeyError:
        raise UsageError(f"Unsupported signature algorithm '{algorithm}'") from None


def compute_hex_hash(value: str, algorithm: str = "sha1") -> str:
    """Hex digest of a UTF-8 string.

    Args:
        value: String to hash
        algorithm: "sha1" or "sha256"

    Returns:
        Lowercase hex digest

    Raises:
        UsageError: If the algorithm is not supported
    """
    return _hasher(algorithm)(value.encode("utf-8")).hexdigest()


def _format_param(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def string_to_sign(params: dict[str, Any]) -> str:
    """Canonical `k=v&k=v` form of the signable parameters, sorted by key."""
    return "&".join(
        f"{key}={_format_param(value)}"
        for key, value in sorted(params.items())
        if key not in EXCLUDED_SIGNATURE_KEYS and value is not None
    )


def sign_parameters(params: dict[str, Any], api_secret: str, algorithm: str = "sha1") -> str:
    """Sign request parameters.

    Args:
        params: Request parameters; excluded keys and None values are skipped
        api_secret: Account API secret
        algorithm: "sha1" or "sha256"

    Returns:
        Lowercase hex signature
    """
    return compute_hex_hash(string_to_sign(params) + api_secret, algorithm)


def sign_uri_part(uri_part: str, api_secret: str, algorithm: str = "sha1", long_signature: bool = False) -> str:
    """Sign the part of a delivery URL that follows the signature slot.

    Args:
        uri_part: Transformation and source path (no version)
        api_secret: Account API secret
        algorithm: Digest for short signatures; long ones always use SHA-256
        long_signature: Use a 32 character SHA-256 signature

    Returns:
        URL component of the form "s--XXXXXXXX--"
    """
    if long_signature:
        algorithm = "sha256"
        length = LONG_URL_SIGNATURE_LENGTH
    else:
        length = SHORT_URL_SIGNATURE_LENGTH
    digest = _hasher(algorithm)((uri_part + api_secret).encode("utf-8")).digest()
    signature = base64.urlsafe_b64encode(digest).decode("ascii")[:length]
    return f"s--{signature}--"


def finalize_upload_parameters(
    params: dict[str, Any],
    config: "Config",
    timestamp: int | None = None,
) -> dict[str, Any]:
    """Add timestamp, signature and API key to upload parameters.

    A copy is returned; the input mapping is left untouched. A signature
    that is already present is kept as is.

    Args:
        params: Upload parameters
        config: Account configuration holding the credentials
        timestamp: Unix time to sign with; defaults to now

    Returns:
        Signed parameters

    Raises:
        ConfigError: If the API key or secret is missing
    """
    if not config.api_key:
        raise ConfigError("Must supply api_key")
    if not config.api_secret:
        raise ConfigError("Must supply api_secret")

    signed = {k: v for k, v in params.items() if v is not None}
    signed.setdefault("timestamp", timestamp if timestamp is not None else int(time.time()))
    if "signature" not in signed:
        signed["signature"] = sign_parameters(signed, config.api_secret, config.signature_algorithm)
    signed["api_key"] = config.api_key
    return signed


def verify_api_response_signature(public_id: str, version: int | str, signature: str, config: "Config") -> bool:
    """Check the signature returned alongside an upload result."""
    if not config.api_secret:
        raise ConfigError("Must supply api_secret")
    expected = sign_parameters(
        {"public_id": public_id, "version": version},
        config.api_secret,
        config.signature_algorithm,
    )
    return expected == signature


def verify_notification_signature(
    body: str,
    timestamp: int,
    signature: str,
    config: "Config",
    valid_for: int = DEFAULT_NOTIFICATION_VALID_FOR,
    now: int | None = None,
) -> bool:
    """Verify a webhook notification.

    Args:
        body: Raw notification body
        timestamp: Value of the X-Cld-Timestamp header
        signature: Value of the X-Cld-Signature header
        config: Account configuration holding the API secret
        valid_for: Seconds the notification stays valid
        now: Current unix time, for testing

    Returns:
        True if the signature matches and the notification is not stale

    Raises:
        ConfigError: If the API secret is missing
    """
    if not config.api_secret:
        raise ConfigError("Must supply api_secret")
    now = int(time.time()) if now is None else now
    if int(timestamp) < now - valid_for:
        logger.info("notification_expired", timestamp=timestamp, valid_for=valid_for)
        return False
    expected = compute_hex_hash(f"{body}{timestamp}{config.api_secret}", config.signature_algorithm)
    return expected == signature

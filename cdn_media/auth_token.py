"""Token-based authentication for delivery URLs.

Tokens are HMAC-SHA256 signatures keyed with a hex secret and appended to
signed URLs as a query string, e.g.

    __cld_token__=st=1111111111~exp=1111111411~acl=%2fimage%2f*~hmac=...
"""

import hashlib
import hmac
import re
import time
from dataclasses import dataclass, replace

from .errors import UsageError

DEFAULT_TOKEN_NAME = "__cld_token__"
AUTH_TOKEN_UNSAFE_RE = re.compile(r"([ \"#%&'/:;<=>?@\[\\\]^`{|}~]+)")


def escape_to_lower(value: str) -> str:
    """Percent-escape token-unsafe characters using lowercase hex."""
    def pack(match: re.Match) -> str:
        return "".join(f"%{byte:02x}" for byte in match.group(1).encode("utf-8"))

    return AUTH_TOKEN_UNSAFE_RE.sub(pack, value)


@dataclass(frozen=True)
class AuthToken:
    """Token authentication settings.

    Attributes:
        key: Hex-encoded HMAC key
        token_name: Query parameter name
        start_time: Unix time the token becomes valid
        expiration: Unix time the token expires
        duration: Seconds of validity counted from start_time (or now)
        ip: Restrict the token to one client IP
        acl: Access control path pattern, e.g. "/image/*"
        null: Marks the sentinel that disables token signing
    """
    key: str | None = None
    token_name: str = DEFAULT_TOKEN_NAME
    start_time: int | None = None
    expiration: int | None = None
    duration: int | None = None
    ip: str | None = None
    acl: str | None = None
    null: bool = False

    def copy(self, **changes) -> "AuthToken":
        return replace(self, **changes)

    def merge(self, other: "AuthToken | None") -> "AuthToken":
        """Overlay the fields set on `other` onto this token."""
        if other is None:
            return self
        if other.null:
            return other
        changes = {
            name: value
            for name, value in vars(other).items()
            if value is not None and name not in ("token_name", "null")
        }
        if other.token_name != DEFAULT_TOKEN_NAME:
            changes["token_name"] = other.token_name
        return replace(self, **changes)

    def generate(self, url: str | None = None, now: int | None = None) -> str:
        """Generate the token query string.

        Args:
            url: URL path to sign when no ACL is configured
            now: Current unix time, for testing

        Returns:
            "<token_name>=<parts>~hmac=<digest>"

        Raises:
            UsageError: If neither expiration nor duration, or neither
                ACL nor URL, is available
        """
        if not self.key:
            raise UsageError("Must provide a token key")

        expiration = self.expiration
        if expiration is None:
            if self.duration is None:
                raise UsageError("Must provide either expiration or duration")
            start = self.start_time
            if start is None:
                start = int(time.time()) if now is None else now
            expiration = start + self.duration

        if url is None and self.acl is None:
            raise UsageError("Must provide either acl or url property")

        parts = []
        if self.ip is not None:
            parts.append(f"ip={self.ip}")
        if self.start_time is not None:
            parts.append(f"st={self.start_time}")
        parts.append(f"exp={expiration}")
        if self.acl is not None:
            parts.append(f"acl={escape_to_lower(self.acl)}")

        to_sign = list(parts)
        if url is not None and self.acl is None:
            to_sign.append(f"url={escape_to_lower(url)}")

        digest = self._digest("~".join(to_sign))
        parts.append(f"hmac={digest}")
        return f"{self.token_name}={'~'.join(parts)}"

    def _digest(self, message: str) -> str:
        key = bytes.fromhex(self.key)
        return hmac.new(key, message.encode("utf-8"), hashlib.sha256).hexdigest()


NULL_AUTH_TOKEN = AuthToken(null=True)

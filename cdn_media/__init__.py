"""cdn-media - Media delivery URLs, signatures and chunked uploads.

Compiles transformation expressions, serializes transformation chains,
builds (signed) delivery URLs and uploads large files in resumable chunks.
"""

__version__ = "0.1.0"
__author__ = "cdn-media"

from .auth_token import AuthToken, NULL_AUTH_TOKEN
from .client import MediaClient
from .errors import ApiError, ConfigError, MediaError, NotSupportedError, UploadError, UsageError
from .expression import Condition, Expression
from .files import FileDescription
from .layers import FetchLayer, Layer, SubtitlesLayer, TextLayer
from .models import Config, UploadResult
from .transformation import Transformation
from .url import Url

__all__ = [
    "__version__",
    "ApiError",
    "AuthToken",
    "Condition",
    "Config",
    "ConfigError",
    "Expression",
    "FetchLayer",
    "FileDescription",
    "Layer",
    "MediaClient",
    "MediaError",
    "NULL_AUTH_TOKEN",
    "NotSupportedError",
    "SubtitlesLayer",
    "TextLayer",
    "Transformation",
    "UploadError",
    "UploadResult",
    "Url",
    "UsageError",
]

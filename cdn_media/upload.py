"""Upload parameters, single uploads and the chunked upload engine.

Large files are sent as a series of Content-Range requests sharing one
X-Unique-Upload-Id. A chunk counts as sent only after the API accepted it,
so a failed or cancelled upload leaves `bytes_sent` at the last chunk
that fully completed.
"""

import asyncio
import json
import secrets
from pathlib import Path
from typing import Any, BinaryIO

import structlog

from .api import ApiClient, api_url
from .errors import UploadError
from .files import FileDescription
from .models import DEFAULT_CHUNK_SIZE, UploadResult
from .transformation import Transformation, build_eager

logger = structlog.get_logger("cdn_media.upload")

UPLOAD_ID_HEADER = "X-Unique-Upload-Id"

SIMPLE_UPLOAD_PARAMS = [
    "public_id",
    "public_id_prefix",
    "callback",
    "format",
    "type",
    "backup",
    "faces",
    "image_metadata",
    "exif",
    "colors",
    "use_filename",
    "unique_filename",
    "display_name",
    "discard_original_filename",
    "filename_override",
    "invalidate",
    "notification_url",
    "eager_notification_url",
    "eager_async",
    "eval",
    "proxy",
    "folder",
    "asset_folder",
    "overwrite",
    "moderation",
    "raw_convert",
    "quality_override",
    "quality_analysis",
    "ocr",
    "categorization",
    "detection",
    "similarity_search",
    "background_removal",
    "upload_preset",
    "phash",
    "return_delete_token",
    "auto_tagging",
    "async",
]


def _encode_list(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return ",".join(str(v) for v in value)
    return str(value)


def _encode_context_value(value: Any) -> str:
    if isinstance(value, (list, tuple)):
        value = json.dumps(value, separators=(",", ":"))
    return str(value).replace("=", "\\=").replace("|", "\\|")


def encode_context(context: Any) -> str | None:
    """Encode a context/metadata mapping as key=value pairs joined by |."""
    if not isinstance(context, dict):
        return context
    return "|".join(f"{k}={_encode_context_value(v)}" for k, v in context.items())


def encode_double_array(value: Any) -> str | None:
    """Encode coordinates: [[x, y, w, h], ...] -> "x,y,w,h|..."."""
    if value is None:
        return None
    if isinstance(value, (list, tuple)) and value and isinstance(value[0], (list, tuple)):
        return "|".join(",".join(str(i) for i in inner) for inner in value)
    return _encode_list(value)


def build_custom_headers(headers: Any) -> str | None:
    if headers is None:
        return None
    if isinstance(headers, dict):
        headers = [f"{k}: {v}" for k, v in headers.items()]
    if isinstance(headers, (list, tuple)):
        return "\n".join(headers)
    return headers


def build_upload_params(
    options: dict[str, Any],
    responsive_default: Transformation | None = None,
) -> dict[str, Any]:
    """Build the unsigned request parameters for an upload.

    Args:
        options: Upload options; `transformation` may be a Transformation
            or a raw string and `eager` a list of transformations
        responsive_default: Segment used for responsive width, usually
            `Config.responsive_width_transformation`

    Returns:
        Parameters with None values removed
    """
    params = {name: options.get(name) for name in SIMPLE_UPLOAD_PARAMS}

    transformation = options.get("transformation")
    if isinstance(transformation, Transformation):
        transformation = transformation.generate(responsive_default)

    access_control = options.get("access_control")
    if access_control is not None and not isinstance(access_control, str):
        if isinstance(access_control, dict):
            access_control = [access_control]
        access_control = json.dumps(access_control, separators=(",", ":"))

    params.update(
        {
            "transformation": transformation or None,
            "eager": build_eager(options.get("eager"), responsive_default),
            "tags": _encode_list(options.get("tags")),
            "allowed_formats": _encode_list(options.get("allowed_formats")),
            "context": encode_context(options.get("context")),
            "metadata": encode_context(options.get("metadata")),
            "face_coordinates": encode_double_array(options.get("face_coordinates")),
            "custom_coordinates": encode_double_array(options.get("custom_coordinates")),
            "headers": build_custom_headers(options.get("headers")),
            "access_control": access_control,
        }
    )
    return {k: v for k, v in params.items() if v is not None}


def random_upload_id() -> str:
    """16 uppercase hex characters identifying one chunked upload."""
    return secrets.token_hex(8).upper()


def check_upload_result(result: UploadResult) -> None:
    """Raise UploadError if a chunk was rejected.

    Raises:
        UploadError: If the result carries an error or a non-2xx status
    """
    if result.ok:
        return
    logger.error("upload_failed", status_code=result.status_code, error=result.error)
    raise UploadError(
        f"An error has occurred while uploading file (status code: {result.status_code}). {result.error}",
        status_code=result.status_code,
    )


def _as_file(file: "FileDescription | str | Path | BinaryIO") -> FileDescription:
    if isinstance(file, FileDescription):
        return file
    if isinstance(file, (str, Path)):
        return FileDescription(file_path=file)
    return FileDescription(stream=file)


def _single_request(
    api: ApiClient,
    file: FileDescription,
    options: dict[str, Any],
) -> tuple[dict[str, Any], tuple[str, bytes] | None]:
    params = build_upload_params(options, api.config.responsive_width_transformation)
    if file.is_remote:
        params["file"] = file.remote_url
        return params, None
    return params, (file.file_name, file.read_all())


def upload(api: ApiClient, file: "FileDescription | str | Path | BinaryIO", **options: Any) -> UploadResult:
    """Upload a file in a single request.

    Args:
        api: API client
        file: File description, local path, remote URL or binary stream
        **options: Upload options, plus `resource_type` (default "image")

    Returns:
        The API result; error statuses are reported, not raised
    """
    file = _as_file(file)
    url = api_url(api.config, "upload", options.get("resource_type", "image"))
    params, payload = _single_request(api, file, options)
    logger.info("upload_started", file=file.file_name or file.remote_url, chunked=False)
    result = api.call_api("POST", url, params, file=payload, headers=options.get("extra_headers"))
    logger.info("upload_completed", status_code=result.status_code, public_id=result.public_id)
    return result


async def upload_async(api: ApiClient, file: "FileDescription | str | Path | BinaryIO", **options: Any) -> UploadResult:
    """Async variant of upload."""
    file = _as_file(file)
    url = api_url(api.config, "upload", options.get("resource_type", "image"))
    params, payload = _single_request(api, file, options)
    logger.info("upload_started", file=file.file_name or file.remote_url, chunked=False)
    result = await api.call_api_async("POST", url, params, file=payload, headers=options.get("extra_headers"))
    logger.info("upload_completed", status_code=result.status_code, public_id=result.public_id)
    return result


def _needs_single_request(file: FileDescription) -> bool:
    return file.is_remote or file.get_file_length() == 0


def _chunk_headers(file: FileDescription, headers: dict[str, str]) -> tuple[dict[str, str], tuple[int, int, int]]:
    start, end, total = file.current_range()
    return {**headers, "Content-Range": f"bytes {start}-{end}/{total}"}, (start, end, total)


def upload_large(
    api: ApiClient,
    file: "FileDescription | str | Path | BinaryIO",
    chunk_size: int | None = None,
    **options: Any,
) -> UploadResult:
    """Upload a file in chunks.

    Remote files and empty files are sent with a single request. Otherwise
    each chunk is posted in order and the upload stops at the first
    rejected chunk.

    Args:
        api: API client
        file: File description, local path, remote URL or binary stream
        chunk_size: Bytes per request; defaults to the configured chunk size
        **options: Upload options

    Returns:
        Result of the final chunk

    Raises:
        UploadError: If any chunk is rejected
        ApiError: If a request cannot be sent
    """
    file = _as_file(file)
    if _needs_single_request(file):
        return upload(api, file, **options)

    chunk_size = chunk_size or api.config.chunk_size or DEFAULT_CHUNK_SIZE
    url = api_url(api.config, "upload", options.get("resource_type", "image"))
    params = build_upload_params(options, api.config.responsive_width_transformation)
    headers = {UPLOAD_ID_HEADER: random_upload_id(), **(options.get("extra_headers") or {})}

    file.reset(chunk_size)
    logger.info("upload_started", file=file.file_name, size=file.get_file_length(), chunked=True)

    result = None
    while not file.eof:
        chunk_headers, (start, end, total) = _chunk_headers(file, headers)
        chunk = file.read_chunk()
        result = api.call_api("POST", url, params, file=(file.file_name, chunk), headers=chunk_headers)
        check_upload_result(result)
        file.mark_sent(len(chunk))
        logger.debug("chunk_sent", start=start, end=end, total=total)

    logger.info("upload_completed", status_code=result.status_code, public_id=result.public_id)
    return result


async def upload_large_async(
    api: ApiClient,
    file: "FileDescription | str | Path | BinaryIO",
    chunk_size: int | None = None,
    **options: Any,
) -> UploadResult:
    """Async variant of upload_large.

    Yields to the event loop before every chunk, so a cancelled task stops
    before sending the next chunk.
    """
    file = _as_file(file)
    if _needs_single_request(file):
        return await upload_async(api, file, **options)

    chunk_size = chunk_size or api.config.chunk_size or DEFAULT_CHUNK_SIZE
    url = api_url(api.config, "upload", options.get("resource_type", "image"))
    params = build_upload_params(options, api.config.responsive_width_transformation)
    headers = {UPLOAD_ID_HEADER: random_upload_id(), **(options.get("extra_headers") or {})}

    file.reset(chunk_size)
    logger.info("upload_started", file=file.file_name, size=file.get_file_length(), chunked=True)

    result = None
    while not file.eof:
        await asyncio.sleep(0)
        chunk_headers, (start, end, total) = _chunk_headers(file, headers)
        chunk = file.read_chunk()
        result = await api.call_api_async("POST", url, params, file=(file.file_name, chunk), headers=chunk_headers)
        check_upload_result(result)
        file.mark_sent(len(chunk))
        logger.debug("chunk_sent", start=start, end=end, total=total)

    logger.info("upload_completed", status_code=result.status_code, public_id=result.public_id)
    return result

"""Tests for upload.py and files.py modules.

Tests upload parameter building, file descriptions, single uploads and
the chunked upload engine (sync and async), including abort and
cancellation behaviour.
"""

import asyncio
import io
import re
from unittest.mock import AsyncMock, MagicMock

import pytest

from cdn_media.errors import UploadError
from cdn_media.files import FileDescription
from cdn_media.models import Config, UploadResult
from cdn_media.transformation import Transformation
from cdn_media.upload import (
    UPLOAD_ID_HEADER,
    build_upload_params,
    check_upload_result,
    encode_context,
    random_upload_id,
    upload,
    upload_large,
    upload_large_async,
)

UPLOAD_URL = "https://api.cloudinary.com/v1_1/demo/image/upload"


@pytest.fixture
def config():
    """Account configuration for upload tests."""
    return Config(cloud_name="demo", api_key="key", api_secret="secret")


@pytest.fixture
def mock_api(config):
    """Mock API client returning successful results."""
    api = MagicMock()
    api.config = config
    api.call_api.return_value = UploadResult(200, {"public_id": "sample", "secure_url": "https://x/sample"})
    api.call_api_async = AsyncMock(return_value=UploadResult(200, {"public_id": "sample"}))
    return api


@pytest.fixture
def data_file(tmp_path):
    """A 10 byte file on disk."""
    path = tmp_path / "data.bin"
    path.write_bytes(b"0123456789")
    return path


class TestBuildUploadParams:
    """Tests for build_upload_params function."""

    def test_simple_and_serialized_params(self):
        """Should keep simple params and serialize structured ones."""
        params = build_upload_params({
            "public_id": "sample",
            "tags": ["a", "b"],
            "transformation": Transformation(width=100, crop="fill"),
            "eager": [Transformation(width=50), (Transformation(width=20), "png")],
            "context": {"caption": "a=b", "alt": "x|y"},
            "face_coordinates": [[1, 2, 3, 4], [5, 6, 7, 8]],
            "headers": {"Link": "1"},
            "access_control": {"access_type": "anonymous"},
            "resource_type": "image",
        })
        assert params == {
            "public_id": "sample",
            "tags": "a,b",
            "transformation": "c_fill,w_100",
            "eager": "w_50|w_20/png",
            "context": "caption=a\\=b|alt=x\\|y",
            "face_coordinates": "1,2,3,4|5,6,7,8",
            "headers": "Link: 1",
            "access_control": '[{"access_type":"anonymous"}]',
        }

    def test_drops_none(self):
        """Should drop unset options."""
        assert build_upload_params({"folder": None}) == {}

    def test_encode_context_lists(self):
        """Should JSON-encode list values."""
        assert encode_context({"k": ["a", "b"]}) == 'k=["a","b"]'


class TestFileDescription:
    """Tests for FileDescription."""

    def test_detects_remote_urls(self):
        """Should treat URLs as remote."""
        assert FileDescription(file_path="https://example.com/a.jpg").is_remote
        assert FileDescription(file_path="s3://bucket/a.jpg").is_remote
        assert FileDescription(file_path="data:image/png;base64,iVBORw0KGgo=").is_remote

    def test_local_file(self, data_file):
        """Should report length and name of local files."""
        file = FileDescription(file_path=data_file)
        assert not file.is_remote
        assert file.get_file_length() == 10
        assert file.file_name == "data.bin"

    def test_chunk_reading(self, data_file):
        """Should read chunks by sent offset without advancing it."""
        file = FileDescription(file_path=data_file)
        file.reset(4)
        assert file.current_range() == (0, 3, 10)
        assert file.read_chunk() == b"0123"
        assert file.read_chunk() == b"0123"
        file.mark_sent(4)
        assert file.read_chunk() == b"4567"
        file.mark_sent(4)
        assert file.current_range() == (8, 9, 10)
        assert file.read_chunk() == b"89"
        file.mark_sent(2)
        assert file.eof

    def test_stream_is_not_closed(self):
        """Should leave caller streams open."""
        stream = io.BytesIO(b"abcdef")
        file = FileDescription(stream=stream, file_name="s.bin")
        file.reset(4)
        assert file.read_chunk() == b"abcd"
        assert not stream.closed

    def test_mark_sent_is_bounded(self, data_file):
        """Should never count past the file length."""
        file = FileDescription(file_path=data_file)
        file.reset(4)
        file.mark_sent(100)
        assert file.bytes_sent == 10
        assert file.eof

    def test_requires_one_source(self):
        """Should reject zero or multiple sources."""
        with pytest.raises(ValueError):
            FileDescription()


class TestUploadHelpers:
    """Tests for upload helpers."""

    def test_random_upload_id(self):
        """Should be 16 uppercase hex characters."""
        assert re.fullmatch(r"[0-9A-F]{16}", random_upload_id())
        assert random_upload_id() != random_upload_id()

    def test_check_upload_result(self):
        """Should raise with the status code and message."""
        check_upload_result(UploadResult(200, {}))
        with pytest.raises(UploadError) as exc_info:
            check_upload_result(UploadResult(400, {}, "Bad chunk"))
        assert str(exc_info.value) == "An error has occurred while uploading file (status code: 400). Bad chunk"
        assert exc_info.value.status_code == 400


class TestUpload:
    """Tests for single uploads."""

    def test_local_file(self, mock_api, data_file):
        """Should post the whole file."""
        result = upload(mock_api, data_file, public_id="sample")
        assert result.public_id == "sample"
        method, url, params = mock_api.call_api.call_args.args
        assert (method, url) == ("POST", UPLOAD_URL)
        assert params == {"public_id": "sample"}
        assert mock_api.call_api.call_args.kwargs["file"] == ("data.bin", b"0123456789")

    def test_remote_file(self, mock_api):
        """Should send remote URLs as the file parameter."""
        upload(mock_api, "https://example.com/a.jpg")
        _, _, params = mock_api.call_api.call_args.args
        assert params["file"] == "https://example.com/a.jpg"
        assert mock_api.call_api.call_args.kwargs["file"] is None

    def test_error_is_returned(self, mock_api, data_file):
        """Should not raise on API errors."""
        mock_api.call_api.return_value = UploadResult(400, {}, "Invalid")
        assert upload(mock_api, data_file).error == "Invalid"


class TestUploadLarge:
    """Tests for the chunked upload engine."""

    def test_sends_chunks_with_ranges(self, mock_api, data_file):
        """Should send each chunk with its Content-Range and a shared upload ID."""
        file = FileDescription(file_path=data_file)
        result = upload_large(mock_api, file, chunk_size=4, public_id="sample")

        assert result.public_id == "sample"
        calls = mock_api.call_api.call_args_list
        assert len(calls) == 3
        ranges = [c.kwargs["headers"]["Content-Range"] for c in calls]
        assert ranges == ["bytes 0-3/10", "bytes 4-7/10", "bytes 8-9/10"]
        chunks = [c.kwargs["file"][1] for c in calls]
        assert chunks == [b"0123", b"4567", b"89"]
        upload_ids = {c.kwargs["headers"][UPLOAD_ID_HEADER] for c in calls}
        assert len(upload_ids) == 1
        assert file.bytes_sent == 10
        assert file.eof

    def test_single_chunk(self, mock_api, data_file):
        """Should send one chunk when the file fits."""
        upload_large(mock_api, data_file, chunk_size=100)
        calls = mock_api.call_api.call_args_list
        assert len(calls) == 1
        assert calls[0].kwargs["headers"]["Content-Range"] == "bytes 0-9/10"

    def test_aborts_on_failed_chunk(self, mock_api, data_file):
        """Should stop at the first rejected chunk."""
        mock_api.call_api.side_effect = [
            UploadResult(200, {}),
            UploadResult(500, {}, "Server error"),
            UploadResult(200, {}),
        ]
        file = FileDescription(file_path=data_file)

        with pytest.raises(UploadError, match=r"status code: 500\)\. Server error"):
            upload_large(mock_api, file, chunk_size=4)

        assert mock_api.call_api.call_count == 2
        assert file.bytes_sent == 4
        assert not file.eof

    def test_remote_file_uses_single_call(self, mock_api):
        """Should bypass chunking for remote files."""
        upload_large(mock_api, "https://example.com/big.mp4", chunk_size=4, resource_type="video")
        assert mock_api.call_api.call_count == 1
        _, url, params = mock_api.call_api.call_args.args
        assert url == "https://api.cloudinary.com/v1_1/demo/video/upload"
        assert "Content-Range" not in (mock_api.call_api.call_args.kwargs["headers"] or {})

    def test_stream_upload(self, mock_api):
        """Should upload streams in chunks."""
        stream = io.BytesIO(b"abcdefgh")
        upload_large(mock_api, FileDescription(stream=stream, file_name="s.bin"), chunk_size=5)
        chunks = [c.kwargs["file"] for c in mock_api.call_api.call_args_list]
        assert chunks == [("s.bin", b"abcde"), ("s.bin", b"fgh")]


class ShortReadStream(io.BytesIO):
    """Stream that returns at most three bytes per read."""

    def read(self, size=-1):
        return super().read(3 if size is None or size < 0 else min(size, 3))


def _sent_ranges(calls):
    ranges = []
    for c in calls:
        start, end, total = re.fullmatch(r"bytes (\d+)-(\d+)/(\d+)", c.kwargs["headers"]["Content-Range"]).groups()
        ranges.append((int(start), int(end), int(total), c.kwargs["file"][1]))
    return ranges


class TestChunkRanges:
    """Chunk byte ranges cover the file exactly once."""

    @pytest.mark.parametrize(
        "length,chunk_size",
        [(1, 1), (10, 1), (10, 10), (10, 9), (10, 11), (7, 3), (64, 64), (65, 64), (1000, 64)],
    )
    def test_ranges_are_contiguous(self, mock_api, tmp_path, length, chunk_size):
        """Should send contiguous ranges whose bodies match their headers and sum to the length."""
        data = bytes(i % 251 for i in range(length))
        path = tmp_path / "data.bin"
        path.write_bytes(data)

        upload_large(mock_api, path, chunk_size=chunk_size)

        ranges = _sent_ranges(mock_api.call_api.call_args_list)
        assert len(ranges) == -(-length // chunk_size)
        expected_start = 0
        for start, end, total, body in ranges:
            assert start == expected_start
            assert total == length
            assert len(body) == end - start + 1
            assert 0 < len(body) <= chunk_size
            expected_start = end + 1
        assert expected_start == length
        assert b"".join(r[3] for r in ranges) == data

    def test_short_reads_fill_the_declared_range(self, mock_api):
        """Should keep reading until each chunk matches its Content-Range."""
        stream = ShortReadStream(b"0123456789")
        upload_large(mock_api, FileDescription(stream=stream, file_name="s.bin"), chunk_size=4)

        ranges = _sent_ranges(mock_api.call_api.call_args_list)
        assert [(s, e) for s, e, _, _ in ranges] == [(0, 3), (4, 7), (8, 9)]
        assert [body for _, _, _, body in ranges] == [b"0123", b"4567", b"89"]

    def test_truncated_file_aborts(self, mock_api, data_file):
        """Should raise instead of re-posting a range the file no longer has."""
        def truncate_after_first_chunk(*args, **kwargs):
            data_file.write_bytes(b"0123")
            return UploadResult(200, {})

        mock_api.call_api.side_effect = truncate_after_first_chunk
        file = FileDescription(file_path=data_file)

        with pytest.raises(UploadError, match="bytes 4-7"):
            upload_large(mock_api, file, chunk_size=4)

        assert mock_api.call_api.call_count == 1
        assert file.bytes_sent == 4
        assert not file.eof


class TestUploadLargeAsync:
    """Tests for the async chunked upload engine."""

    @pytest.mark.asyncio
    async def test_sends_chunks(self, mock_api, data_file):
        """Should send every chunk in order."""
        file = FileDescription(file_path=data_file)
        await upload_large_async(mock_api, file, chunk_size=4)
        ranges = [c.kwargs["headers"]["Content-Range"] for c in mock_api.call_api_async.call_args_list]
        assert ranges == ["bytes 0-3/10", "bytes 4-7/10", "bytes 8-9/10"]
        assert file.eof

    @pytest.mark.asyncio
    async def test_aborts_on_failed_chunk(self, mock_api, data_file):
        """Should raise UploadError and stop sending."""
        mock_api.call_api_async.side_effect = [UploadResult(200, {}), UploadResult(400, {}, "Bad")]
        file = FileDescription(file_path=data_file)
        with pytest.raises(UploadError):
            await upload_large_async(mock_api, file, chunk_size=4)
        assert mock_api.call_api_async.call_count == 2
        assert file.bytes_sent == 4

    @pytest.mark.asyncio
    async def test_cancellation_keeps_sent_counter(self, mock_api, data_file):
        """Should stop on cancellation with bytes_sent at the last completed chunk."""
        second_call_started = asyncio.Event()
        calls = []

        async def call_api_async(*args, **kwargs):
            calls.append(kwargs["headers"]["Content-Range"])
            if len(calls) == 2:
                second_call_started.set()
                await asyncio.sleep(10)
            return UploadResult(200, {})

        mock_api.call_api_async = call_api_async
        file = FileDescription(file_path=data_file)
        task = asyncio.create_task(upload_large_async(mock_api, file, chunk_size=4))

        await second_call_started.wait()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert calls == ["bytes 0-3/10", "bytes 4-7/10"]
        assert file.bytes_sent == 4
        assert not file.eof

    @pytest.mark.asyncio
    async def test_truncated_file_aborts(self, mock_api, data_file):
        """Should raise instead of posting an empty range when the file shrinks."""
        async def truncate_after_first_chunk(*args, **kwargs):
            data_file.write_bytes(b"0123")
            return UploadResult(200, {})

        mock_api.call_api_async = AsyncMock(side_effect=truncate_after_first_chunk)
        file = FileDescription(file_path=data_file)

        with pytest.raises(UploadError):
            await upload_large_async(mock_api, file, chunk_size=4)

        assert mock_api.call_api_async.call_count == 1
        assert file.bytes_sent == 4


class TestResponsiveDefault:
    """Uploads use the configured responsive width segment."""

    @pytest.fixture
    def responsive_api(self, mock_api, config):
        """Mock API client whose config sets c_pad,w_auto for responsive width."""
        mock_api.config = config.copy(responsive_width_transformation=Transformation(crop="pad", width="auto"))
        return mock_api

    def test_build_upload_params(self):
        """Should render responsive segments with the given default."""
        options = {
            "transformation": Transformation(width=100).responsive_width(),
            "eager": [Transformation(width=50).responsive_width()],
        }
        params = build_upload_params(options, Transformation(crop="pad", width="auto"))
        assert params["transformation"] == "w_100/c_pad,w_auto"
        assert params["eager"] == "w_50/c_pad,w_auto"
        assert build_upload_params(options)["transformation"] == "w_100/c_limit,w_auto"

    def test_single_upload(self, responsive_api, data_file):
        """Should pass the config default to single uploads."""
        upload(responsive_api, data_file, transformation=Transformation(width=100).responsive_width())
        _, _, params = responsive_api.call_api.call_args.args
        assert params["transformation"] == "w_100/c_pad,w_auto"

    def test_chunked_upload(self, responsive_api, data_file):
        """Should pass the config default to every chunk."""
        upload_large(
            responsive_api,
            data_file,
            chunk_size=4,
            eager=[(Transformation(width=100).responsive_width(), "png")],
        )
        for c in responsive_api.call_api.call_args_list:
            assert c.args[2]["eager"] == "w_100/c_pad,w_auto/png"

"""
Tests for conversion orchestration and temp-file lifecycle.
"""

import asyncio
import os
from pathlib import Path

import pytest
from conftest import FAKE_OUTPUT, FAKE_STDERR, FAKE_VERSION, leftover_files, read_calls

from wkhtml_service.config import ServiceSettings
from wkhtml_service.converter import (
    binary_version,
    build_invocation,
    convert,
    temporary_file,
)
from wkhtml_service.errors import ExecutionFailed, InvalidRequest, ResourceError
from wkhtml_service.models import ConversionRequest, OutputFormat


class TestTemporaryFile:
    """Tests for the temporary_file context manager."""

    def test_created_and_removed(self, work_dir):
        """Test that the file exists inside the block and is gone after."""
        with temporary_file(".pdf", str(work_dir)) as path:
            assert os.path.isfile(path)
            assert path.endswith(".pdf")
            assert os.path.dirname(path) == str(work_dir)
        assert not os.path.exists(path)

    def test_removed_when_body_raises(self, work_dir):
        """Test that an exception in the block still removes the file."""
        with pytest.raises(RuntimeError):
            with temporary_file(".html", str(work_dir)):
                raise RuntimeError("boom")
        assert leftover_files(work_dir) == []

    def test_tolerates_file_already_gone(self, work_dir):
        """Test that a file deleted by someone else is not an error."""
        with temporary_file(".jpg", str(work_dir)) as path:
            os.remove(path)
        assert leftover_files(work_dir) == []

    def test_unique_names(self, work_dir):
        """Test that concurrent temp files never share a name."""
        with temporary_file(".pdf", str(work_dir)) as first:
            with temporary_file(".pdf", str(work_dir)) as second:
                assert first != second

    def test_missing_directory_is_resource_error(self, tmp_path):
        """Test that a creation failure surfaces as ResourceError."""
        with pytest.raises(ResourceError) as exc_info:
            with temporary_file(".pdf", str(tmp_path / "missing")):
                pass
        assert "failed to create .pdf temp file" in exc_info.value.message


class TestBuildInvocation:
    """Tests for binary selection and argument layout."""

    def test_binary_follows_format(self):
        """Test that PDF and JPEG requests pick their own binary."""
        settings = ServiceSettings(wkhtmltopdf="/bin/to-pdf", wkhtmltoimage="/bin/to-image")
        pdf = ConversionRequest(OutputFormat.PDF, url="http://example.com")
        jpg = ConversionRequest(OutputFormat.JPG, url="http://example.com")

        assert build_invocation(pdf, settings, "in", "out").binary == "/bin/to-pdf"
        assert build_invocation(jpg, settings, "in", "out").binary == "/bin/to-image"

    def test_options_precede_paths(self):
        """Test that options come before input and output paths."""
        settings = ServiceSettings()
        conversion = ConversionRequest(
            OutputFormat.PDF, url="http://example.com", options={"grayscale": "", "dpi": "300"}
        )
        invocation = build_invocation(conversion, settings, "http://example.com", "/tmp/x.pdf")

        assert invocation.args == ["--dpi", "300", "--grayscale", "http://example.com", "/tmp/x.pdf"]


@pytest.mark.asyncio
async def test_convert_url(settings, renderer_log, work_dir):
    """Test URL conversion argument layout and cleanup."""
    conversion = ConversionRequest(
        OutputFormat.PDF, url="http://example.com", options={"grayscale": ""}
    )

    output = await convert(conversion, settings)

    assert output == FAKE_OUTPUT
    calls = read_calls(renderer_log)
    assert len(calls) == 1
    args = calls[0]["args"]
    assert args[:-1] == ["--grayscale", "http://example.com"]
    assert args[-1].endswith(".pdf")
    assert os.path.dirname(args[-1]) == str(work_dir)
    assert leftover_files(work_dir) == []


@pytest.mark.asyncio
async def test_convert_inline_html(settings, renderer_log, work_dir):
    """Test that inline HTML is written to a .html file used as input."""
    html = "<html><body><h1>Grüße</h1></body></html>"
    conversion = ConversionRequest(OutputFormat.JPG, html=html, url="http://ignored.example")

    await convert(conversion, settings)

    call = read_calls(renderer_log)[0]
    assert call["args"][-2].endswith(".html")
    assert call["args"][-1].endswith(".jpg")
    assert call["input"] == html
    assert bytes.fromhex(call["input_hex"]) == html.encode("utf-8")
    assert "http://ignored.example" not in call["args"]
    assert leftover_files(work_dir) == []


@pytest.mark.asyncio
async def test_convert_without_input_spawns_nothing(settings, renderer_log, work_dir):
    """Test that a request without url or html fails before any spawn."""
    conversion = ConversionRequest(OutputFormat.PDF, options={"grayscale": ""})

    with pytest.raises(InvalidRequest) as exc_info:
        await convert(conversion, settings)

    assert exc_info.value.message == "url or html is required"
    assert read_calls(renderer_log) == []
    assert leftover_files(work_dir) == []


@pytest.mark.asyncio
async def test_convert_html_write_failure(settings, renderer_log, work_dir, monkeypatch):
    """Test that a failed html write is a ResourceError and leaves nothing behind."""
    def disk_full(self, data):
        raise OSError(28, "No space left on device")

    monkeypatch.setattr(Path, "write_bytes", disk_full)
    conversion = ConversionRequest(OutputFormat.PDF, html="<p>x</p>")

    with pytest.raises(ResourceError) as exc_info:
        await convert(conversion, settings)

    assert exc_info.value.message.startswith("failed to write html temp file")
    assert "No space left on device" in exc_info.value.message
    assert read_calls(renderer_log) == []
    assert leftover_files(work_dir) == []


@pytest.mark.asyncio
async def test_convert_output_read_failure(settings, renderer_log, work_dir, monkeypatch):
    """Test that a missing output file is a ResourceError and inputs are cleaned up."""
    monkeypatch.setenv("FAKE_RENDERER_MODE", "no-output")
    conversion = ConversionRequest(OutputFormat.PDF, html="<p>x</p>")

    with pytest.raises(ResourceError) as exc_info:
        await convert(conversion, settings)

    assert exc_info.value.message.startswith("failed to read temp file")
    assert len(read_calls(renderer_log)) == 1
    assert leftover_files(work_dir) == []


@pytest.mark.asyncio
async def test_convert_failure_carries_stderr(settings, renderer_log, work_dir, monkeypatch):
    """Test that a non-zero exit wraps the binary's stderr."""
    monkeypatch.setenv("FAKE_RENDERER_MODE", "fail")
    conversion = ConversionRequest(OutputFormat.PDF, html="<p>x</p>")

    with pytest.raises(ExecutionFailed) as exc_info:
        await convert(conversion, settings)

    assert exc_info.value.message.startswith("failed to execute: failed to execute ")
    assert FAKE_STDERR in exc_info.value.stderr
    assert FAKE_STDERR in exc_info.value.message
    assert leftover_files(work_dir) == []


@pytest.mark.asyncio
async def test_convert_timeout_cleans_up(settings, renderer_log, work_dir, monkeypatch):
    """Test that a timed-out run is reported and its temp files removed."""
    monkeypatch.setenv("FAKE_RENDERER_MODE", "sleep")
    conversion = ConversionRequest(OutputFormat.PDF, html="<p>slow</p>")

    with pytest.raises(ExecutionFailed) as exc_info:
        await convert(conversion, settings, timeout=1)

    assert "timed out" in exc_info.value.message
    assert leftover_files(work_dir) == []


@pytest.mark.asyncio
async def test_convert_cancellation_cleans_up(settings, renderer_log, work_dir, monkeypatch):
    """Test that cancelling mid-run removes both temp files."""
    monkeypatch.setenv("FAKE_RENDERER_MODE", "sleep")
    conversion = ConversionRequest(OutputFormat.PDF, html="<p>slow</p>")

    task = asyncio.ensure_future(convert(conversion, settings))
    for _ in range(200):
        if read_calls(renderer_log):
            break
        await asyncio.sleep(0.05)
    assert leftover_files(work_dir) != []

    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await asyncio.wait_for(task, timeout=5)

    assert leftover_files(work_dir) == []


@pytest.mark.asyncio
async def test_binary_version(settings):
    """Test that --version stdout is returned as-is."""
    output = await binary_version(settings)
    assert output.decode().strip() == FAKE_VERSION

"""
Pytest fixtures for wkhtml-service tests.

Instead of the real wkhtmltopdf, tests run a small executable Python script
that records its argv (and the inline HTML it was given) and writes a fake
output file. Its behavior is switched with the FAKE_RENDERER_MODE env var:

- unset: write FAKE_OUTPUT to the last argument, exit 0
- "fail": print FAKE_STDERR to stderr, exit 1
- "sleep": sleep for a long time (timeout / cancellation tests)
- "no-output": delete the output file, exit 0
"""

import json
import os
import stat
import sys
from pathlib import Path
from typing import Dict, List

import pytest
from fastapi.testclient import TestClient

from wkhtml_service.app import create_app
from wkhtml_service.config import ServiceSettings

FAKE_OUTPUT = b"%PDF-1.4 fake rendered output"
FAKE_STDERR = "Error: Failed loading page http://unreachable.invalid"
FAKE_VERSION = "wkhtmltopdf 0.12.6 (with patched qt)"

FAKE_RENDERER = """#!{python}
import json
import os
import sys
import time

args = sys.argv[1:]

if args == ["--version"]:
    print({version!r})
    sys.exit(0)

record = {{"args": args, "input": None, "input_hex": None}}
if len(args) >= 2 and os.path.isfile(args[-2]):
    with open(args[-2], "rb") as f:
        data = f.read()
    record["input"] = data.decode("utf-8", "replace")
    record["input_hex"] = data.hex()

log_path = os.environ.get("FAKE_RENDERER_LOG")
if log_path:
    with open(log_path, "a") as log:
        log.write(json.dumps(record) + "\\n")

mode = os.environ.get("FAKE_RENDERER_MODE", "")
print("Loading pages (1/6)")
sys.stderr.write("Warning: fake renderer\\n")
sys.stdout.flush()
sys.stderr.flush()

if mode == "fail":
    sys.stderr.write({stderr!r} + "\\n")
    sys.exit(1)
if mode == "sleep":
    time.sleep(60)
if mode == "no-output":
    os.remove(args[-1])
    sys.exit(0)

with open(args[-1], "wb") as out:
    out.write({output!r})
"""


@pytest.fixture
def fake_renderer(tmp_path) -> str:
    """Path to an executable fake rendering binary."""
    script = tmp_path / "fake-wkhtmltopdf"
    script.write_text(
        FAKE_RENDERER.format(
            python=sys.executable,
            version=FAKE_VERSION,
            stderr=FAKE_STDERR,
            output=FAKE_OUTPUT,
        )
    )
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return str(script)


@pytest.fixture
def renderer_log(tmp_path, monkeypatch) -> Path:
    """File the fake renderer appends one JSON line per invocation to."""
    log_path = tmp_path / "calls.jsonl"
    monkeypatch.setenv("FAKE_RENDERER_LOG", str(log_path))
    monkeypatch.delenv("FAKE_RENDERER_MODE", raising=False)
    return log_path


@pytest.fixture
def work_dir(tmp_path) -> Path:
    """Temp directory for the service's artifacts; should be empty after each request."""
    directory = tmp_path / "work"
    directory.mkdir()
    return directory


@pytest.fixture
def settings(fake_renderer, renderer_log, work_dir) -> ServiceSettings:
    return ServiceSettings(
        wkhtmltopdf=fake_renderer,
        wkhtmltoimage=fake_renderer,
        temp_dir=str(work_dir),
        web_timeout=10,
    )


@pytest.fixture
def client(settings):
    """FastAPI test client running against the fake renderer."""
    with TestClient(create_app(settings)) as test_client:
        yield test_client


def read_calls(log_path: Path) -> List[Dict]:
    """Invocations recorded by the fake renderer, oldest first."""
    if not log_path.exists():
        return []
    return [json.loads(line) for line in log_path.read_text().splitlines() if line]


def leftover_files(directory: Path) -> List[str]:
    return sorted(os.listdir(directory))

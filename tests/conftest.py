"""Pytest fixtures: config dirs with sample documents, version-controlled writes, fast engines."""

import json
import os
import time
from pathlib import Path

import pytest

from liveconf.config.schemas import EngineSettings
from liveconf.domains import Domain
from liveconf.engine import ConfigEngine
from liveconf.sources import FileSource

# Fixed base mtime so version markers are deterministic (ns)
BASE_VERSION = 1_700_000_000_000_000_000
ONE_SECOND = 1_000_000_000

SAMPLE_DOCS = {
    Domain.APP: {
        "system": {"projectName": "Demo", "version": "1.0.0", "environment": "development"},
        "features": {"dashboard": {"defaultView": "overview", "showMetrics": True, "autoRefresh": 60}},
    },
    Domain.BUSINESS: {
        "owner": {"name": "Alex Morgan", "displayName": "Alex"},
        "contacts": {"business": {"companyName": "Morgan Consulting"}},
    },
    Domain.UI: {
        "preferences": {"theme": "dark", "language": "en-US"},
        "branding": {"primaryColor": "#112233"},
        "themes": {"available": ["light", "dark"], "default": "dark"},
    },
    Domain.FEATURE_FLAGS: {
        "features": {
            "modules": {"invoicing": True, "timeTracking": False},
            "beta": {"newDashboard": True},
        },
        "permissions": {"canExportData": True},
    },
}


def _write(config_dir: Path, domain: Domain, data, version: int | None = None) -> int:
    """Write a document; version None bumps the mtime one second past the current file's."""
    path = config_dir / domain.filename("json")
    if version is None:
        version = (path.stat().st_mtime_ns if path.exists() else BASE_VERSION) + ONE_SECOND
    text = data if isinstance(data, str) else json.dumps(data)
    # Write aside and rename so watchers only ever see the final content and mtime
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    os.utime(tmp, ns=(version, version))
    os.replace(tmp, path)
    return version


@pytest.fixture
def write_doc():
    """write_doc(config_dir, domain, data_or_text, version=None) -> version written."""
    return _write


@pytest.fixture
def config_dir(tmp_path):
    """Temporary config dir with all four documents at BASE_VERSION."""
    d = tmp_path / "config"
    d.mkdir()
    for domain, data in SAMPLE_DOCS.items():
        _write(d, domain, data, BASE_VERSION)
    return d


@pytest.fixture
def source(config_dir):
    return FileSource(config_dir)


@pytest.fixture
def poll_settings(config_dir):
    """Settings for a fast polling engine (no push watch, no settle delay)."""
    return EngineSettings(
        config_dir=str(config_dir),
        watch_strategy="poll",
        poll_interval_seconds=0.05,
        settle_delay_seconds=0,
        shutdown_timeout_seconds=5,
    )


@pytest.fixture
def engine(source, poll_settings):
    """Started engine over config_dir; stopped after the test."""
    eng = ConfigEngine(source, poll_settings)
    eng.start()
    yield eng
    eng.stop()


@pytest.fixture
def wait_for():
    """wait_for(predicate, timeout=5.0) -> bool; polls until predicate() is truthy."""
    def _wait(predicate, timeout: float = 5.0, interval: float = 0.01) -> bool:
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if predicate():
                return True
            time.sleep(interval)
        return bool(predicate())
    return _wait

import importlib
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient


@pytest.fixture
def upload_dir(tmp_path):
    return tmp_path / "uploads"


@pytest.fixture
def app_module(upload_dir, monkeypatch):
    """Reload app against an isolated upload directory with no decoder."""
    monkeypatch.setenv("UPLOAD_DIR", str(upload_dir))
    for var in ("MEDIA_EXTS", "MAX_UPLOAD_BYTES", "MAX_COVER_BYTES", "SLATE_THEME",
                "SLATE_BRAND", "FRAME_WORKERS", "FRAME_SEEK_SECONDS", "THUMBNAIL_WIDTH"):
        monkeypatch.delenv(var, raising=False)
    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))
    if "app" in sys.modules:
        module = importlib.reload(sys.modules["app"])
    else:
        module = importlib.import_module("app")
    module.STATE["frame_source"] = module.UnavailableFrameSource()
    yield module


@pytest.fixture
def client(app_module):
    with TestClient(app_module.app) as test_client:
        # startup re-probes the decoder; keep tests off the host ffmpeg
        app_module.STATE["frame_source"] = app_module.UnavailableFrameSource()
        yield test_client

from __future__ import annotations

import os
import sys
import tempfile
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_PATH = REPO_ROOT / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

# Baseline configuration so Settings() validates in every test module.
_BASE_DIR = Path(tempfile.mkdtemp(prefix="relay-tests-"))
os.environ.setdefault("SPEECH_ENDPOINT_URL", "ws://speech.test/realtime")
os.environ.setdefault("CONTROL_PLANE", "webhook")
os.environ.setdefault("DATA_DIR", str(_BASE_DIR))
os.environ.setdefault("RECORDINGS_DIR", str(_BASE_DIR / "recordings"))


@pytest.fixture(scope="session")
def app(tmp_path_factory: pytest.TempPathFactory):
    tmp_dir = tmp_path_factory.mktemp("runtime")
    db_path = tmp_dir / "relay_test.db"

    # Must be set before importing modules that read settings.
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{db_path.as_posix()}"
    os.environ["DATA_DIR"] = str(tmp_dir)
    os.environ["RECORDINGS_DIR"] = str(tmp_dir / "recordings")
    os.environ["RECORDINGS_BACKEND"] = "local"
    os.environ["CONTROL_PLANE"] = "webhook"
    os.environ["AUTO_CREATE_DB_SCHEMA"] = "true"

    import importlib

    # Ensure clean import with the test DB settings.
    for module_name in [
        "config.settings",
        "db.base",
        "db.models",
        "db.repository",
        "api.dependencies",
        "api.routes",
        "api.media_routes",
        "main",
    ]:
        sys.modules.pop(module_name, None)

    main = importlib.import_module("main")
    return main.create_app()


@pytest.fixture()
def client(app):
    with TestClient(app) as test_client:
        yield test_client

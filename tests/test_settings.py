from __future__ import annotations

import asyncio
import logging

import pytest
from pydantic import ValidationError

from config.settings import Settings


def test_speech_endpoint_url_is_required(monkeypatch):
    monkeypatch.delenv("SPEECH_ENDPOINT_URL", raising=False)

    with pytest.raises(ValidationError):
        Settings(_env_file=None)


def test_ari_control_plane_requires_credentials(monkeypatch):
    monkeypatch.setenv("CONTROL_PLANE", "ari")
    monkeypatch.delenv("ASTERISK_ARI_USERNAME", raising=False)
    monkeypatch.delenv("ASTERISK_ARI_PASSWORD", raising=False)

    with pytest.raises(ValidationError, match="ASTERISK_ARI_USERNAME"):
        Settings(_env_file=None)


def test_http_recordings_require_storage_credentials(monkeypatch):
    monkeypatch.setenv("RECORDINGS_BACKEND", "http")
    monkeypatch.delenv("STORAGE_URL", raising=False)

    with pytest.raises(ValidationError, match="STORAGE_URL"):
        Settings(_env_file=None)


def test_defaults(monkeypatch):
    monkeypatch.setenv("CONTROL_PLANE", "webhook")
    settings = Settings(_env_file=None)

    assert settings.media_server_port == 8080
    assert settings.control_plane_reconnect_delay_seconds == 5.0
    assert settings.default_hospital_context == "default"
    assert settings.speech_preconnect_max_frames == 50


def test_main_exits_non_zero_on_invalid_configuration(monkeypatch):
    import main

    monkeypatch.delenv("SPEECH_ENDPOINT_URL", raising=False)
    monkeypatch.setattr(main, "get_settings", lambda: main.Settings(_env_file=None))

    with pytest.raises(SystemExit) as excinfo:
        main.main()

    assert excinfo.value.code == 1


@pytest.mark.parametrize("storage_url", ["http://[::1", "store.test/bucket", "ftp://store.test"])
def test_storage_url_must_be_an_absolute_http_url(monkeypatch, storage_url):
    monkeypatch.setenv("RECORDINGS_BACKEND", "http")
    monkeypatch.setenv("STORAGE_URL", storage_url)
    monkeypatch.setenv("STORAGE_API_KEY", "service-key")

    with pytest.raises(ValidationError, match="STORAGE_URL"):
        Settings(_env_file=None)


def test_control_plane_crash_is_logged(caplog):
    import main

    async def crashing_dispatcher() -> None:
        raise RuntimeError("events stream broke")

    async def scenario() -> None:
        task = asyncio.create_task(crashing_dispatcher())
        task.add_done_callback(main.log_control_plane_exit)
        await asyncio.gather(task, return_exceptions=True)
        await asyncio.sleep(0)

    with caplog.at_level(logging.CRITICAL, logger="main"):
        asyncio.run(scenario())

    assert "Control plane stopped" in caplog.text
    assert "events stream broke" in caplog.text

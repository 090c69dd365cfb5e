import pytest
from pydantic import ValidationError

from mcp_engine.server import Server
from mcp_engine.server.serve import run
from mcp_engine.server.settings import Settings


def test_defaults(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    settings = Settings()
    assert settings.host == "127.0.0.1"
    assert settings.port == 8000
    assert settings.sse_path == "/sse"
    assert settings.message_path == "/messages"
    assert settings.poll_interval == 0.1
    assert settings.session_max_age == 3600
    assert settings.ignore_unknown_methods is False


def test_environment_prefix(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("MCP_ENGINE_PORT", "9100")
    monkeypatch.setenv("MCP_ENGINE_DEBUG", "true")
    monkeypatch.setenv("MCP_ENGINE_IGNORE_UNKNOWN_METHODS", "1")

    settings = Settings()

    assert settings.port == 9100
    assert settings.debug is True
    assert settings.ignore_unknown_methods is True


def test_env_file(monkeypatch: pytest.MonkeyPatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    (tmp_path / ".env").write_text("MCP_ENGINE_LOG_LEVEL=WARNING\n")
    assert Settings().log_level == "WARNING"


@pytest.mark.parametrize("poll_interval", [0, -1, 0.9])
def test_poll_interval_bounds(poll_interval: float):
    with pytest.raises(ValidationError):
        Settings(poll_interval=poll_interval)


def test_run_rejects_unknown_transport():
    with pytest.raises(ValueError, match="Unknown transport"):
        run(Server("test"), transport="websocket")  # type: ignore[arg-type]

from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from mcp_engine.cli import cli
from mcp_engine.cli.cli import _import_server, _parse_file_path  # type: ignore[reportPrivateUsage]
from mcp_engine.server import Server

SERVER_SOURCE = """
from mcp_engine.server import Server

server = Server("from-file", version="0.0.1")
other = Server("other", version="0.0.1")
not_a_server = 42
"""


@pytest.fixture
def server_file(tmp_path: Path) -> Path:
    file = tmp_path / "my_server.py"
    file.write_text(SERVER_SOURCE)
    return file


@pytest.mark.parametrize(
    "spec, expected_obj",
    [
        ("server.py", None),
        ("foo.py:srv_obj", "srv_obj"),
    ],
)
def test_parse_file_path_accepts_valid_specs(tmp_path: Path, spec: str, expected_obj: str | None):
    """Should accept valid file specs."""
    file = tmp_path / spec.split(":")[0]
    file.write_text("x = 1")
    path, obj = _parse_file_path(f"{file}:{expected_obj}" if ":" in spec else str(file))
    assert path == file.resolve()
    assert obj == expected_obj


def test_parse_file_path_missing(tmp_path: Path):
    """Should system exit if a file is missing."""
    with pytest.raises(SystemExit):
        _parse_file_path(str(tmp_path / "missing.py"))


def test_parse_file_exit_on_dir(tmp_path: Path):
    """Should system exit if a directory is passed"""
    dir_path = tmp_path / "dir"
    dir_path.mkdir()
    with pytest.raises(SystemExit):
        _parse_file_path(str(dir_path))


def test_import_server_default_name(server_file: Path):
    server = _import_server(server_file)
    assert isinstance(server, Server)
    assert server.name == "from-file"


def test_import_server_named_object(server_file: Path):
    assert _import_server(server_file, "other").name == "other"


def test_import_server_wrong_type(server_file: Path):
    with pytest.raises(SystemExit):
        _import_server(server_file, "not_a_server")


def test_import_server_missing_object(server_file: Path):
    with pytest.raises(SystemExit):
        _import_server(server_file, "nowhere")


def test_help_lists_run_command():
    result = CliRunner().invoke(cli.main, ["--help"])
    assert result.exit_code == 0
    assert "run" in result.output


def test_run_passes_settings(server_file: Path, monkeypatch: pytest.MonkeyPatch):
    calls: list[dict[str, Any]] = []

    def fake_run(server: Server, transport: str, settings: Any) -> None:
        calls.append({"server": server, "transport": transport, "settings": settings})

    monkeypatch.setattr(cli, "run_server", fake_run)

    result = CliRunner().invoke(
        cli.main, ["run", f"{server_file}:other", "-t", "sse", "--port", "9001", "--log-level", "DEBUG"]
    )

    assert result.exit_code == 0, result.output
    assert len(calls) == 1
    assert calls[0]["server"].name == "other"
    assert calls[0]["transport"] == "sse"
    assert calls[0]["settings"].port == 9001
    assert calls[0]["settings"].log_level == "DEBUG"


def test_run_defaults_to_stdio(server_file: Path, monkeypatch: pytest.MonkeyPatch):
    transports: list[str] = []
    monkeypatch.setattr(cli, "run_server", lambda server, transport, settings: transports.append(transport))

    result = CliRunner().invoke(cli.main, ["run", str(server_file)])

    assert result.exit_code == 0, result.output
    assert transports == ["stdio"]


def test_run_rejects_unknown_transport(server_file: Path):
    result = CliRunner().invoke(cli.main, ["run", str(server_file), "--transport", "websocket"])
    assert result.exit_code == 2
    assert "Invalid value" in result.output


def test_run_missing_file_exits_with_error(tmp_path: Path):
    result = CliRunner().invoke(cli.main, ["run", str(tmp_path / "missing.py")])
    assert result.exit_code == 1

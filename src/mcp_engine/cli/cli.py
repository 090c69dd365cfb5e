"""mcp-engine CLI - run a Server defined in a Python file.

Example:
    # Serve over stdio (the default)
    mcp-engine run server.py

    # Pick the server object explicitly and serve over SSE
    mcp-engine run server.py:my_server --transport sse --port 9000
"""

import importlib.util
import sys
from pathlib import Path
from typing import Any

import click

from mcp_engine.server.lowlevel.server import Server
from mcp_engine.server.serve import run as run_server
from mcp_engine.server.settings import Settings
from mcp_engine.utilities.logging import get_logger

logger = get_logger(__name__)

# Attribute names searched when no object is named on the command line
DEFAULT_SERVER_NAMES = ("server", "mcp", "app")


def _parse_file_path(file_spec: str) -> tuple[Path, str | None]:
    """Parse a file path that may include a server object specification.

    Args:
        file_spec: Path to file, optionally with :object suffix

    Returns:
        Tuple of (file_path, server_object)
    """
    # Windows paths start with a drive letter, e.g. C:\...
    has_windows_drive = len(file_spec) > 1 and file_spec[1] == ":"

    # Split on the last colon, but only if it's not part of the Windows drive letter
    # and there's actually another colon in the string after the drive letter
    if ":" in (file_spec[2:] if has_windows_drive else file_spec):
        file_str, server_object = file_spec.rsplit(":", 1)
    else:
        file_str, server_object = file_spec, None

    file_path = Path(file_str).expanduser().resolve()
    if not file_path.exists():
        logger.error(f"File not found: {file_path}")
        sys.exit(1)
    if not file_path.is_file():
        logger.error(f"Not a file: {file_path}")
        sys.exit(1)

    return file_path, server_object


def _import_server(file: Path, server_object: str | None = None) -> Server:
    """Import a Server from a file.

    Args:
        file: Path to the file
        server_object: Optional object name; otherwise the common names are tried

    Returns:
        The server object
    """
    # Make sibling imports inside the server file work
    file_dir = str(file.parent)
    if file_dir not in sys.path:
        sys.path.insert(0, file_dir)

    spec = importlib.util.spec_from_file_location("server_module", file)
    if not spec or not spec.loader:
        logger.error(f"Could not load module: {file}")
        sys.exit(1)

    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    candidates = (server_object,) if server_object else DEFAULT_SERVER_NAMES
    for name in candidates:
        server: Any = getattr(module, name, None)
        if isinstance(server, Server):
            return server
        if server is not None:
            logger.error(f"Object {name!r} in {file} is a {type(server).__name__}, not a Server")
            sys.exit(1)

    logger.error(f"No Server found in {file}. Tried: {', '.join(candidates)}")
    sys.exit(1)


@click.group(help="Run Model Context Protocol servers")
def main() -> None:
    pass


@main.command(help="Run a server defined in a Python file, optionally with a :object suffix")
@click.argument("file_spec")
@click.option(
    "--transport",
    "-t",
    type=click.Choice(["stdio", "sse"]),
    default="stdio",
    show_default=True,
    help="Transport protocol to use",
)
@click.option("--host", default=None, help="Host to bind to when serving SSE")
@click.option("--port", type=int, default=None, help="Port to bind to when serving SSE")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]),
    default=None,
    help="Logging level",
)
def run(file_spec: str, transport: str, host: str | None, port: int | None, log_level: str | None) -> None:
    file, server_object = _parse_file_path(file_spec)
    server = _import_server(file, server_object)

    overrides: dict[str, Any] = {"host": host, "port": port, "log_level": log_level}
    settings = Settings(**{key: value for key, value in overrides.items() if value is not None})

    run_server(server, transport=transport, settings=settings)  # type: ignore[arg-type]


if __name__ == "__main__":
    main()

"""CLI entrypoint for dynamic-mcp-server."""

from pathlib import Path

import rich_click as click

from dynamic_mcp import __version__
from dynamic_mcp.config import LOG_CATEGORIES, LOG_FORMATS, LOG_LEVELS
from dynamic_mcp.contracts import ConfigError
from dynamic_mcp.controllers import ServeCommand, ServerCliController

click.rich_click.USE_MARKDOWN = True
SERVER_CONTROLLER = ServerCliController()


@click.command()
@click.version_option(version=__version__, prog_name="dynamic-mcp-server")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path),
    required=True,
    help="Path to the JSON configuration file.",
)
@click.option(
    "--prompt",
    "-p",
    default=None,
    help="Text or path to a file prepended to every task prompt.",
)
@click.option(
    "--async",
    "run_async",
    is_flag=True,
    default=False,
    help="Run tools asynchronously unless a tool sets `async` itself.",
)
@click.option(
    "--handshake-and-exit",
    is_flag=True,
    default=False,
    help="Print the server summary as JSON and exit without serving.",
)
@click.option(
    "--log-level",
    type=click.Choice([*LOG_LEVELS, "warning"], case_sensitive=False),
    default=None,
    help="Minimum event level.",
)
@click.option(
    "--log-format",
    type=click.Choice(LOG_FORMATS, case_sensitive=False),
    default=None,
    help="Event line format.",
)
@click.option(
    "--log-destination",
    default=None,
    help="`stderr`, `stdout` or a file path.",
)
@click.option(
    "--log-categories",
    default=None,
    help=f"Comma-separated subset of {', '.join(LOG_CATEGORIES)}, or `all`.",
)
@click.option(
    "--log-payloads/--no-log-payloads",
    default=None,
    help="Include redacted prompts and outputs in events.",
)
@click.option(
    "--log-payload-max-chars",
    type=click.IntRange(min=1),
    default=None,
    help="Clamp logged payloads to this many characters.",
)
@click.option(
    "--no-logging",
    is_flag=True,
    default=False,
    help="Disable event logging; tool config cannot re-enable it.",
)
def dynamic_mcp_server(  # noqa: PLR0913
    config_path: Path,
    prompt: str | None,
    run_async: bool,
    handshake_and_exit: bool,
    log_level: str | None,
    log_format: str | None,
    log_destination: str | None,
    log_categories: str | None,
    log_payloads: bool | None,
    log_payload_max_chars: int | None,
    no_logging: bool,
) -> None:
    """Serve configured tools backed by the claude, codex or gemini CLI over MCP stdio."""

    try:
        lines = SERVER_CONTROLLER.serve(
            ServeCommand(
                config_path=config_path,
                prompt=prompt,
                run_async=run_async,
                handshake_and_exit=handshake_and_exit,
                log_level=log_level,
                log_format=log_format,
                log_destination=log_destination,
                log_categories=log_categories,
                log_payloads=log_payloads,
                log_payload_max_chars=log_payload_max_chars,
                no_logging=no_logging,
            ),
        )
    except (ConfigError, ValueError) as error:
        raise click.ClickException(str(error)) from error
    _emit_lines(lines)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    dynamic_mcp_server()

"""
chatstream CLI Main Entry Point

Follows generation jobs on the relay and saves their answers to chats.
"""

import logging
import sys

import typer

# Load project environment variables immediately upon module import
from chatstream.core.env_loader import load_project_env

# Initialize environment before any other imports that depend on it
load_project_env()

# Now safe to import the rest
from chatstream.cli.commands import messages, watch
from chatstream.cli.config import get_config
from chatstream.cli._globals import set_global_config


def config_callback(
    api_base: str = typer.Option(
        None,
        "--api-base",
        help="Relay API base URL (e.g., http://127.0.0.1:8000). Overrides CHATSTREAM_API_BASE env var.",
        envvar="CHATSTREAM_API_BASE",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Output results in JSON format instead of plain text.",
    ),
    timeout: int = typer.Option(
        None,
        "--timeout",
        help="Request timeout in seconds. Overrides CHATSTREAM_CLI_TIMEOUT env var.",
        envvar="CHATSTREAM_CLI_TIMEOUT",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log engine and HTTP activity to stderr.",
    ),
) -> None:
    """Global options callback. Sets configuration for all commands."""
    output_format = "json" if json_output else None
    config = get_config(
        api_base=api_base,
        timeout=timeout,
        output_format=output_format,  # type: ignore
        verbose=verbose,
    )
    set_global_config(config)

    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
            stream=sys.stderr,
        )


app = typer.Typer(
    name="chatstream",
    help="chatstream: follow streaming chat responses and save them",
    no_args_is_help=True,
    callback=config_callback,
)

app.command()(watch.watch)
app.command()(watch.replay)
app.command()(messages.messages)


def main() -> None:
    """Main entry point for CLI."""
    try:
        app()
    except KeyboardInterrupt:
        print("\n[ABORTED] Aborted by user.", file=sys.stderr)
        sys.exit(0)
    except Exception as e:
        print(f"\n[ERROR] Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

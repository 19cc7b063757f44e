"""Command-line interface for Deploy Hooks."""

import signal
from pathlib import Path
from typing import Optional

import click

from .config import DEFAULT_CONFIG_PATH, DeployConfig, load_config
from .errors import ConfigError
from .history import DeploymentHistory
from .logging import get_logger, setup_logging
from .security import SIGNATURE_HEADER, basic_auth_header, compute_signature

LOG_LEVELS = click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False)

config_option = click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=DEFAULT_CONFIG_PATH,
    show_default=True,
    help="Configuration file path",
)
log_level_option = click.option(
    "--log-level",
    type=LOG_LEVELS,
    default=None,
    help="Override the log level from the configuration file",
)


def _load(config_path: Path, log_level: Optional[str]) -> DeployConfig:
    """Load the configuration or exit with status 1.

    Logging is configured twice: first from the command line so that config
    loading is visible, then from the ``[logging]`` table of the file.
    """
    setup_logging(log_level=log_level or "INFO")
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        get_logger(__name__).error("configuration error", error_code=exc.error_code, error=exc.message)
        click.echo(f"Error: {exc.message}", err=True)
        raise SystemExit(1)

    setup_logging(
        log_level=log_level or config.logging.level,
        log_format=config.logging.format,
        log_file=config.logging.file,
    )
    return config


def _run_server(config: DeployConfig) -> None:
    from .server import serve

    serve(config)


def _run_dispatcher(config: DeployConfig) -> None:
    from .runner import ScriptRunner

    runner = ScriptRunner(config)
    previous = signal.signal(signal.SIGTERM, runner.handle_signal)
    try:
        runner.run_forever()
    except KeyboardInterrupt:
        runner.stop()
        get_logger(__name__).info("dispatcher interrupted")
    except ConfigError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        raise SystemExit(1)
    finally:
        if previous is not None:
            signal.signal(signal.SIGTERM, previous)


@click.group()
@config_option
@log_level_option
@click.pass_context
def main(ctx: click.Context, config_path: Path, log_level: Optional[str]) -> None:
    """Deploy Hooks CLI - signed webhooks that trigger deploy scripts."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["log_level"] = log_level


@main.command()
@click.pass_context
def serve(ctx: click.Context) -> None:
    """Run the webhook server."""
    config = _load(ctx.obj["config_path"], ctx.obj["log_level"])
    _run_server(config)


@main.command()
@click.pass_context
def dispatch(ctx: click.Context) -> None:
    """Run the dispatcher that executes deploy scripts."""
    config = _load(ctx.obj["config_path"], ctx.obj["log_level"])
    _run_dispatcher(config)


@main.command("check-config")
@click.pass_context
def check_config(ctx: click.Context) -> None:
    """Validate the configuration file and print a summary."""
    config = _load(ctx.obj["config_path"], ctx.obj["log_level"] or "WARNING")

    click.echo(f"Configuration: {ctx.obj['config_path']}")
    click.echo(f"  listen: {config.webhooks.listen_addr}:{config.webhooks.listen_port}")
    click.echo(f"  webhook pipe: {config.webhooks.pipe}")
    click.echo(f"  dispatch pipe: {config.dispatch.pipe}")
    click.echo(f"  scripts: {config.dispatch.scripts_dir}")
    click.echo(f"  history: {config.history_path}")
    click.echo(f"  clients: {len(config.clients)}")
    for name, client in sorted(config.clients.items()):
        permissions = ", ".join(sorted(p.value for p in client.permissions)) or "-"
        click.echo(f"    - {name}: project={client.project} permissions={permissions}")

    if config.webhooks.pipe != config.dispatch.pipe:
        click.echo("Warning: webhooks.pipe and dispatch.pipe differ", err=True)
    click.echo("Configuration OK")


@main.command()
@click.option("--client", "client_name", required=True, help="Client name from [clients]")
@click.option(
    "--body-file",
    type=click.File("rb"),
    default=None,
    help="File holding the exact request body (default: empty body)",
)
@click.pass_context
def sign(ctx: click.Context, client_name: str, body_file) -> None:
    """Print the headers a caller must send for a request body."""
    config = _load(ctx.obj["config_path"], ctx.obj["log_level"] or "WARNING")
    client = config.clients.get(client_name)
    if client is None:
        click.echo(f"Error: unknown client {client_name!r}", err=True)
        ctx.exit(1)

    body = body_file.read() if body_file is not None else b""
    click.echo(f"Authorization: {basic_auth_header(client_name)}")
    click.echo(f"{SIGNATURE_HEADER}: {compute_signature(client.secret, body)}")


@main.command()
@click.option("--project", default=None, help="Only show this project")
@click.option("--limit", type=click.IntRange(min=1), default=20, show_default=True)
@click.pass_context
def history(ctx: click.Context, project: Optional[str], limit: int) -> None:
    """Print recent deployments as JSON, newest first."""
    config = _load(ctx.obj["config_path"], ctx.obj["log_level"] or "WARNING")
    click.echo(DeploymentHistory(config.history_path).export(project=project, limit=limit))


@click.command()
@config_option
@log_level_option
def server_main(config_path: Path, log_level: Optional[str]) -> None:
    """Run the webhook server (``server --config <path>``)."""
    _run_server(_load(config_path, log_level))


@click.command()
@config_option
@log_level_option
def dispatcher_main(config_path: Path, log_level: Optional[str]) -> None:
    """Run the dispatcher (``dispatcher --config <path>``)."""
    _run_dispatcher(_load(config_path, log_level))


if __name__ == "__main__":
    main()

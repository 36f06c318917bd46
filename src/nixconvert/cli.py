# cli.py
from __future__ import annotations

import logging
import sys
from dataclasses import replace
from pathlib import Path

import click

from nixconvert.converter import Converter
from nixconvert.drone import Build, DroneClient
from nixconvert.errors import ConversionError
from nixconvert.model import ConversionRequest
from nixconvert.settings import Settings, SettingsError
from nixconvert.ui.console import Console, set_console, get_console


def configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s  %(levelname)-8s  %(name)s  %(message)s",
        datefmt="%H:%M:%S",
    )


def parse_params(values: tuple[str, ...]) -> dict[str, str]:
    """Turn repeated --param KEY=VALUE options into a mapping."""
    params: dict[str, str] = {}
    for item in values:
        key, sep, value = item.partition("=")
        if not sep or not key:
            raise click.BadParameter(f"expected KEY=VALUE, got {item!r}", param_hint="--param")
        params[key] = value
    return params


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.pass_context
def cli(ctx, debug):
    """nixconvert: Drone configuration extension that expands nix-jobset pipelines."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@click.option("--bind", default=None, help="Listen address, overrides DRONE_BIND (e.g. :3000)")
@click.pass_context
def serve(ctx, bind):
    """Run the conversion extension HTTP server."""
    import uvicorn
    from nixconvert.server import create_app

    console = get_console()

    try:
        settings = Settings.from_env()
        if bind:
            settings = replace(settings, bind=bind)
        host, port = settings.host_port()
    except SettingsError as e:
        console.print_error(
            "Invalid configuration",
            str(e),
            suggestion="Set DRONE_SECRET, DRONE_SERVER and DRONE_TOKEN in the environment.",
        )
        sys.exit(1)

    debug = ctx.obj.get("debug", False) or settings.debug
    console.debug = debug
    configure_logging(debug)

    console.print_server_started(bind=f"{host}:{port}", server=settings.server)
    uvicorn.run(create_app(settings), host=host, port=port, log_level="debug" if debug else "info")


@cli.command()
@click.argument("config_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--server", envvar="DRONE_SERVER", required=True, help="Drone server URL (default: $DRONE_SERVER)")
@click.option("--token", envvar="DRONE_TOKEN", required=True, help="Drone API token (default: $DRONE_TOKEN)")
@click.option("--namespace", required=True, help="Repository namespace (owner)")
@click.option("--name", required=True, help="Repository name")
@click.option("--ref", default="", help="Commit/ref to evaluate")
@click.option("--branch", default="", help="Branch to evaluate")
@click.option("--event", default="push", show_default=True, help="Build event of the simulated request")
@click.option("--param", "params", multiple=True, help="Build parameter KEY=VALUE (repeatable)")
@click.option("--poll-interval", default=0.5, type=float, show_default=True, help="Seconds between status polls")
@click.option("--timeout", default=3600.0, type=float, show_default=True, help="Seconds before evaluation is abandoned (0 waits forever)")
@click.pass_context
def convert(ctx, config_file, server, token, namespace, name, ref, branch, event, params, poll_interval, timeout):
    """Convert CONFIG_FILE against a live Drone server and print the result."""
    console = get_console()
    configure_logging(ctx.obj.get("debug", False))

    request = ConversionRequest(
        original_config=config_file.read_text(encoding="utf-8"),
        repo_namespace=namespace,
        repo_name=name,
        build_ref=ref,
        repo_branch=branch,
        build_event=event,
        trigger_params=parse_params(params),
        repo_config_path=str(config_file),
    )
    console.print_debug(f"Converting {config_file} for {namespace}/{name} against {server}")
    converter = Converter(
        DroneClient(server, token),
        poll_interval=poll_interval,
        timeout=timeout if timeout > 0 else None,
    )

    last_status: dict[int, str] = {}

    def on_status(build: Build) -> None:
        if last_status.get(build.number) != build.status:
            last_status[build.number] = build.status
            console.print_build_status(build.number, build.status)

    try:
        result = converter.convert(request, on_status=on_status)
    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except ConversionError as e:
        console.print_error(
            "Conversion failed",
            e.message,
            details=[f"{k}={v}" for k, v in e.details.items()],
        )
        if ctx.obj.get("debug", False):
            console.print_exception(e)
        sys.exit(1)

    console.print_config(result.data)
    console.print_conversion_complete(result.outcome.value, result.job_count)


if __name__ == "__main__":
    cli()

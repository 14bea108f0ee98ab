"""CLI main entry point."""

from __future__ import annotations

import sys
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import Any

import click
import yaml

from . import __version__, durations
from .config import CONFIG_KEYS, CLIConfig, load_config, save_config, unset_config
from .deployments import default_deployments, default_options
from .errors import PaasctlError
from .installer import Installer
from .kubernetes.cluster import Cluster, get_cluster
from .kubernetes.options import (
    CLIOptionsReader,
    DefaultOptionsReader,
    InstallationOptions,
    InteractiveOptionsReader,
    OptionsReader,
    OptionType,
)
from .shared.logging import configure_logging
from .shared.paths import BACKUP_DIR, ensure_dirs, get_log_file
from .staging import App, Stager
from .termui import UI


def installation_option_flags(func: Callable[..., Any]) -> Callable[..., Any]:
    """Add one flag per installation option, e.g. --gitea-admin-password."""
    for option in reversed(list(default_options())):
        if option.type == OptionType.BOOLEAN:
            decorator = click.option(
                option.flag_name, option.param_name, is_flag=True, default=None, help=option.description
            )
        elif option.type == OptionType.INTEGER:
            decorator = click.option(
                option.flag_name, option.param_name, type=int, default=None, help=option.description
            )
        else:
            decorator = click.option(
                option.flag_name, option.param_name, type=str, default=None, help=option.description
            )
        func = decorator(func)
    return func


def _fail(ui: UI, error: PaasctlError) -> None:
    ui.problem(error.message)
    sys.exit(1)


def _cluster(ctx: click.Context) -> Cluster:
    config: CLIConfig = ctx.obj["config"]
    return get_cluster(config.kubeconfig)


def _populate(ctx: click.Context, interactive: bool = False) -> InstallationOptions:
    readers: list[OptionsReader] = [CLIOptionsReader.from_click_context(ctx)]
    readers.append(InteractiveOptionsReader() if interactive else DefaultOptionsReader())
    return default_options().populate(readers)


@click.group()
@click.option("--kubeconfig", type=click.Path(), default=None, help="Kubeconfig path")
@click.option(
    "--timeout-multiplier",
    type=int,
    default=None,
    help="Multiply every timeout by this factor (slow clusters)",
)
@click.option(
    "--log-level",
    type=click.Choice(["debug", "info", "warning", "error"]),
    default=None,
    help="Log level",
)
@click.option("-q", "--quiet", is_flag=True, help="Suppress progress output")
@click.option("--log-file", is_flag=True, help="Write JSON logs to ~/.paasctl/paasctl.log instead of stderr")
@click.version_option(__version__, prog_name="paasctl")
@click.pass_context
def cli(
    ctx: click.Context,
    kubeconfig: str | None,
    timeout_multiplier: int | None,
    log_level: str | None,
    quiet: bool,
    log_file: bool,
) -> None:
    """Install and manage the paasctl platform on Kubernetes."""
    ctx.ensure_object(dict)

    config = load_config()
    config.override("kubeconfig", kubeconfig)
    config.override("timeout_multiplier", timeout_multiplier)
    config.override("log_level", log_level)

    if log_file:
        ensure_dirs()
        configure_logging(config.log_level, log_file=get_log_file(), json_output=True)
    else:
        configure_logging(config.log_level)
    try:
        durations.set_multiplier(config.timeout_multiplier)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--timeout-multiplier") from e

    ctx.obj["config"] = config
    ctx.obj["ui"] = UI(quiet=quiet)


@cli.command()
@click.option("-i", "--interactive", is_flag=True, help="Prompt for options not given as flags")
@installation_option_flags
@click.pass_context
def install(ctx: click.Context, interactive: bool, **_: Any) -> None:
    """Install the platform components.

    Examples:

        # Derive the domain from the ingress load balancer address
        paasctl install

        # Use your own domain
        paasctl install --system-domain paas.example.com
    """
    ui: UI = ctx.obj["ui"]
    try:
        options = _populate(ctx, interactive=interactive)
        Installer(_cluster(ctx), ui, options).install(default_deployments())
    except PaasctlError as e:
        _fail(ui, e)


@cli.command()
@click.pass_context
def uninstall(ctx: click.Context) -> None:
    """Remove every component paasctl installed."""
    ui: UI = ctx.obj["ui"]
    try:
        Installer(_cluster(ctx), ui, default_options()).uninstall(default_deployments())
    except PaasctlError as e:
        _fail(ui, e)


@cli.command()
@installation_option_flags
@click.pass_context
def upgrade(ctx: click.Context, **_: Any) -> None:
    """Upgrade installed components in place."""
    ui: UI = ctx.obj["ui"]
    try:
        options = _populate(ctx)
        Installer(_cluster(ctx), ui, options).upgrade(default_deployments())
    except PaasctlError as e:
        _fail(ui, e)


@cli.command()
@click.argument("directory", required=False, type=click.Path(file_okay=False, path_type=Path))
@click.pass_context
def backup(ctx: click.Context, directory: Path | None) -> None:
    """Save component state (credentials) into DIRECTORY.

    Without DIRECTORY a timestamped directory under ~/.paasctl/backups is used.
    """
    ui: UI = ctx.obj["ui"]
    if directory is None:
        ensure_dirs()
        directory = BACKUP_DIR / datetime.now().strftime("%Y%m%d-%H%M%S")
    try:
        Installer(_cluster(ctx), ui, default_options()).backup(default_deployments(), directory)
    except PaasctlError as e:
        _fail(ui, e)


@cli.command()
@click.argument("directory", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.pass_context
def restore(ctx: click.Context, directory: Path) -> None:
    """Restore component state saved by `paasctl backup`."""
    ui: UI = ctx.obj["ui"]
    try:
        Installer(_cluster(ctx), ui, default_options()).restore(default_deployments(), directory)
    except PaasctlError as e:
        _fail(ui, e)


@cli.command()
@click.pass_context
def info(ctx: click.Context) -> None:
    """Show the cluster platform and component versions."""
    ui: UI = ctx.obj["ui"]
    try:
        cluster = _cluster(ctx)
        values = {
            "Platform": cluster.platform.describe(),
            "Kubernetes version": cluster.server_version(),
        }
    except PaasctlError as e:
        _fail(ui, e)
        return

    for unit in default_deployments():
        values[unit.id()] = unit.get_version()
    ui.show_values("paasctl environment", values)


@cli.command()
@click.argument("name")
@click.option("--namespace", "-n", default="workspace", show_default=True, help="Namespace to deploy to")
@click.option("--git-url", required=True, help="Repository the pipeline clones")
@click.option("--revision", required=True, help="Commit to build")
@click.option("--image-url", required=True, help="Image reference the build pushes")
@click.option("--system-domain", required=True, help="Domain the app route is under")
@click.pass_context
def stage(
    ctx: click.Context,
    name: str,
    namespace: str,
    git_url: str,
    revision: str,
    image_url: str,
    system_domain: str,
) -> None:
    """Start a staging run for application NAME."""
    ui: UI = ctx.obj["ui"]
    app = App(name=name, namespace=namespace, revision=revision, git_url=git_url, image_url=image_url)
    try:
        result = Stager(_cluster(ctx), system_domain).stage(app)
    except PaasctlError as e:
        _fail(ui, e)
        return

    ui.success(f"Staging run {result.pipeline_run_name} created")
    if not result.certificate_created:
        ui.note(f"Certificate for {app.route(system_domain)} already requested")


@cli.group()
def config() -> None:
    """Manage CLI configuration."""
    pass


@config.command("show")
@click.pass_context
def config_show(ctx: click.Context) -> None:
    """Show current configuration and where each value came from."""
    current: CLIConfig = ctx.obj["config"]
    data = {
        key: {"value": getattr(current, key), "source": current.get_source(key)}
        for key in CONFIG_KEYS
    }
    click.echo(yaml.safe_dump(data, sort_keys=False).rstrip())


@config.command("set")
@click.argument("key", type=click.Choice(CONFIG_KEYS))
@click.argument("value")
def config_set(key: str, value: str) -> None:
    """Persist a configuration value."""
    stored: str | int = value
    if key == "timeout_multiplier":
        try:
            stored = int(value)
        except ValueError as e:
            raise click.BadParameter(f"{value!r} is not an integer", param_hint="VALUE") from e
    save_config(key, stored)
    click.echo(f"Set {key} = {value}")


@config.command("unset")
@click.argument("key", type=click.Choice(CONFIG_KEYS))
def config_unset(key: str) -> None:
    """Remove a persisted configuration value."""
    if unset_config(key):
        click.echo(f"Unset {key}")
    else:
        click.echo(f"{key} was not set")


def main() -> None:
    """Main entry point."""
    cli(obj={})


if __name__ == "__main__":
    main()

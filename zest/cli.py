"""Command-line interface for zest.

Commands:
- build: Build the whole site, or render one file to stdout.
- watch: Rebuild changed files every interval until interrupted.
- var: Print the resolved variables of a file.

Any other command name runs the plugin of that name from the service
directory or PATH.
"""

from __future__ import annotations

import logging
import threading

import click

from . import __version__
from .build import Builder
from .config import load_config
from .errors import BuildError, PluginEvalError, ZestError
from .plugins import PluginRunner
from .variables import format_vars, resolve


class PluginGroup(click.Group):
    """Click group that treats unknown commands as plugin names."""

    def get_command(self, ctx: click.Context, cmd_name: str):
        command = super().get_command(ctx, cmd_name)
        if command is not None:
            return command
        return _plugin_command(cmd_name)


def _plugin_command(name: str) -> click.Command:
    @click.command(
        name=name,
        context_settings={"ignore_unknown_options": True, "allow_extra_args": True},
        add_help_option=False,
    )
    @click.argument("args", nargs=-1, type=click.UNPROCESSED)
    def run_plugin(args: tuple[str, ...]):
        runner = PluginRunner(load_config())
        try:
            code = runner.run_interactive(name, list(args))
        except PluginEvalError as exc:
            raise click.ClickException(str(exc)) from None
        if code != 0:
            raise SystemExit(code)

    return run_plugin


def _report(exc: Exception, heading: str = "Build failed:") -> None:
    """Print a build failure in the same format for every command."""
    click.echo(click.style(heading, fg="red", bold=True), err=True)
    if isinstance(exc, BuildError):
        click.echo(click.style(f"  File: {exc.source_path}", fg="yellow"), err=True)
        click.echo(click.style(f"  Error: {exc.message}", fg="white"), err=True)
    else:
        click.echo(click.style(f"  Error: {exc}", fg="white"), err=True)


@click.group(cls=PluginGroup)
@click.version_option(version=__version__, prog_name="zest")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def cli(verbose: bool):
    """zest static site generator."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )


@cli.command()
@click.argument("path", required=False)
def build(path: str | None):
    """Build the site, or render PATH to standard output."""
    builder = Builder(load_config())
    if path is None:
        result = builder.run_cycle()
        message = f"Built {result.succeeded} files into {builder.config.publish_dir}"
        if result.errors:
            message += f" ({len(result.errors)} failed)"
        click.echo(message)
        return
    stdout = click.get_binary_stream("stdout")
    try:
        builder.build_file(path, stdout)
    except ZestError as exc:
        _report(exc)
        raise SystemExit(1) from None
    stdout.flush()


@cli.command()
def watch():
    """Rebuild changed files until interrupted."""
    builder = Builder(load_config())
    stop = threading.Event()
    click.echo(f"Watching {builder.config.root} (Ctrl-C to stop)")
    try:
        builder.run(watch=True, stop=stop)
    except KeyboardInterrupt:
        stop.set()


@cli.command("var")
@click.argument("path")
@click.argument("names", nargs=-1)
def var(path: str, names: tuple[str, ...]):
    """Print the variables of PATH, or only the NAMES given."""
    config = load_config()
    try:
        v, _ = resolve(path, config)
    except ZestError as exc:
        _report(exc, "var failed:")
        raise SystemExit(1) from None
    if names:
        for name in names:
            click.echo(v.get(name, ""))
    else:
        click.echo(format_vars(v))


def main():
    """Entry point for the CLI application."""
    cli()

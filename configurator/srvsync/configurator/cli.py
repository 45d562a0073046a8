import asyncio
import logging
import sys

import click

from .config import ConfiguratorConfig
from .main import load_template, render_once, run as run_configurator


logger = logging.getLogger(__name__)


def load_config(ctx, **overrides) -> ConfiguratorConfig:
    """
    Loads the configuration, applying the logging configuration and any overrides.
    """
    config_kwargs = { k: v for k, v in overrides.items() if v is not None }
    if ctx.obj["VERBOSE"]:
        config_kwargs.update(verbose = True)
    config = ConfiguratorConfig(_path = ctx.obj["CONFIG_PATH"], **config_kwargs)
    config.logging.apply()
    if config.verbose:
        logging.getLogger("srvsync").setLevel(logging.DEBUG)
    return config


@click.group()
@click.option(
    "--config",
    "config_path",
    type = click.Path(exists = True, file_okay = True, dir_okay = False),
    help = "Path to configuration file."
)
@click.option("--verbose", "-v", is_flag = True, help = "Enable debug logging.")
@click.pass_context
def main(ctx, config_path, verbose):
    """
    Renders the configuration of a managed service from DNS service discovery.
    """
    ctx.ensure_object(dict)
    ctx.obj["CONFIG_PATH"] = config_path
    ctx.obj["VERBOSE"] = verbose


@main.command()
@click.option(
    "--refresh-interval",
    type = click.IntRange(min = 1),
    help = "Interval between refresh cycles in milliseconds."
)
@click.pass_context
def run(ctx, refresh_interval):
    """
    Keep the configuration in sync and reload the managed service on change.
    """
    config = load_config(ctx, refresh_interval = refresh_interval)
    try:
        asyncio.run(run_configurator(config))
    except Exception:
        logger.exception("Failure happened in the process of configuration - exiting")
        sys.exit(1)


@main.command()
@click.pass_context
def scan(ctx):
    """
    Print the discovery keys referenced by the template.
    """
    config = load_config(ctx)
    for key in load_template(config).scan():
        click.echo(key)


@main.command()
@click.pass_context
def render(ctx):
    """
    Resolve the discovery keys once and print the rendered configuration.
    """
    config = load_config(ctx)
    click.echo(asyncio.run(render_once(config)), nl = False)

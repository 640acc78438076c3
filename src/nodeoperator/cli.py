"""Command-line interface for the network node operator."""

import asyncio
from pathlib import Path

import click
from safir.asyncio import run_with_asyncio
from safir.click import display_help
from safir.kubernetes import initialize_kubernetes
from safir.logging import configure_logging
from structlog.stdlib import get_logger

from .config import Config
from .constants import CONFIGURATION_PATH, ROOT_LOGGER
from .factory import Factory

__all__ = ["help", "main", "run"]


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(
    package_name="network-node-operator", message="%(version)s"
)
def main() -> None:
    """Network node operator command-line interface."""


@main.command()
@click.argument("topic", default=None, required=False, nargs=1)
@click.argument("subtopic", default=None, required=False, nargs=1)
@click.pass_context
def help(ctx: click.Context, topic: str | None, subtopic: str | None) -> None:
    """Show help for any command."""
    display_help(main, ctx, topic, subtopic)


@main.command()
@click.option(
    "--config-file",
    "-c",
    type=click.Path(path_type=Path, exists=True, dir_okay=False),
    envvar="NODE_OPERATOR_CONFIG_PATH",
    default=CONFIGURATION_PATH,
    help="Operator configuration file",
)
@run_with_asyncio
async def run(*, config_file: Path) -> None:
    """Reconcile nodes until interrupted."""
    config = Config.from_file(config_file)
    configure_logging(
        name=ROOT_LOGGER, profile=config.profile, log_level=config.log_level
    )
    logger = get_logger(ROOT_LOGGER)
    await initialize_kubernetes()
    async with Factory.standalone(config) as factory:
        await factory.start_background_services()
        logger.info("Node operator started", namespace=config.namespace)
        try:
            await asyncio.Event().wait()
        finally:
            logger.info("Node operator stopping")

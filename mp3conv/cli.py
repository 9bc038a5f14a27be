# SPDX-FileCopyrightText: 2022-present Matthew Swabey <matthew@swabey.org>
#
# SPDX-License-Identifier: AGPL-3.0-or-later

import logging
from logging import getLogger
from pathlib import Path
from typing import Optional

import click

from .config import CONFIG_FILE_NAME, ConfigException, Settings
from .dispatcher import Dispatcher
from .jobs import JobSource
from .runner import ProcessRunner

logger = getLogger(__name__)


def run(root: Path, settings: Settings) -> Dispatcher:
    """Convert everything below root that still needs converting."""
    source = JobSource(settings)
    dispatcher = Dispatcher(ProcessRunner(timeout=settings.timeout), settings.converters)
    with dispatcher:
        # submit() blocks while every slot is busy, which stops the walk too
        for job in source.produce_jobs(root):
            dispatcher.submit(job)
    return dispatcher


@click.command()
@click.option(
    "-c",
    "--config",
    type=click.Path(exists=True, dir_okay=False, readable=True, path_type=Path),
    help=f"Specify a config file. Defaults to ROOT/{CONFIG_FILE_NAME} if present.",
)
@click.option("-v", "--verbose", is_flag=True, help="Log debug messages.")
@click.argument(
    "root",
    default=".",
    type=click.Path(
        exists=True, file_okay=False, dir_okay=True, readable=True, path_type=Path
    ),
)
@click.version_option()
def main(config: Optional[Path], verbose: bool, root: Path) -> None:
    logging.basicConfig(
        format="%(asctime)s %(threadName)-10s %(levelname)-7s %(message)s",
        level=logging.DEBUG if verbose else logging.INFO,
    )
    root = root.resolve()
    try:
        settings = Settings.find(root, config_path=config)
    except ConfigException as e:
        raise click.UsageError(str(e)) from e
    except PermissionError as e:
        raise click.UsageError(f"Could not read configuration file: {e}") from e

    logger.info("Process directory %s", root)
    dispatcher = run(root, settings)
    logger.info(
        "%d files converted, %d failed.", dispatcher.succeeded, dispatcher.failed
    )
    click.echo("All files processed")

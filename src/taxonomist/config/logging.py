"""Shared logging helpers for taxonomist."""

from __future__ import annotations

import logging


def configure_logging(*, level: int = logging.INFO, force: bool = False) -> None:
    """Initialise the root logger for CLI use.

    Defaults to INFO and a terse single-line format. Pass ``force=True`` to
    reconfigure handlers, e.g. when ``--verbose`` is parsed after startup.
    """

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%H:%M:%S",
        force=force,
    )

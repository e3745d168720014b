#  SPDX-License-Identifier: MPL-2.0
#  Copyright 2020-2022 John Mille <john@compose-x.io>

"""
Logging for ecs-topology. Messages up to INFO go to stdout, warnings and errors to stderr.
"""

from __future__ import annotations

import logging as logthings
import sys

LOGGER_NAME = "ecs-topology"
VALID_LEVELS = ["FATAL", "CRITICAL", "ERROR", "WARNING", "WARN", "INFO", "DEBUG"]


class TopologyFormatter(logthings.Formatter):
    """Adds the source location to DEBUG records only"""

    default_format = "%(asctime)s [%(levelname)8s] %(message)s"
    debug_format = (
        "%(asctime)s [%(levelname)8s] (%(filename)s.%(lineno)d, %(funcName)s) %(message)s"
    )
    date_format = "%Y-%m-%d %H:%M:%S"

    def __init__(self):
        super().__init__(self.default_format, self.date_format)
        self._debug = logthings.Formatter(self.debug_format, self.date_format)

    def format(self, record) -> str:
        if record.levelno <= logthings.DEBUG:
            return self._debug.format(record)
        return super().format(record)


class LevelRangeFilter(logthings.Filter):
    def __init__(self, lowest: int, highest: int):
        super().__init__()
        self.lowest = lowest
        self.highest = highest

    def filter(self, record) -> bool:
        return self.lowest <= record.levelno <= self.highest


def stream_handler(stream, lowest: int, highest: int) -> logthings.Handler:
    handler = logthings.StreamHandler(stream)
    handler.setFormatter(TopologyFormatter())
    handler.setLevel(lowest)
    handler.addFilter(LevelRangeFilter(lowest, highest))
    return handler


def setup_logging() -> logthings.Logger:
    app_logger = logthings.getLogger(LOGGER_NAME)
    for handler in list(app_logger.handlers):
        app_logger.removeHandler(handler)
    app_logger.addHandler(stream_handler(sys.stdout, logthings.INFO, logthings.INFO))
    app_logger.addHandler(
        stream_handler(sys.stderr, logthings.WARNING, logthings.CRITICAL)
    )
    app_logger.setLevel(logthings.INFO)
    return app_logger


def set_log_level(level_name: str) -> bool:
    """
    Changes the level of LOG and of its stdout handler.

    :param str level_name: case-insensitive level name
    :return: whether the level was valid and applied
    """
    level_name = level_name.upper()
    if level_name not in VALID_LEVELS:
        LOG.warning(f"Log level {level_name} is invalid. Must be one of {VALID_LEVELS}")
        return False
    level = logthings.getLevelName(level_name)
    LOG.setLevel(level)
    stdout_handler = LOG.handlers[0]
    stdout_handler.setLevel(min(level, logthings.INFO))
    stdout_handler.filters[0].lowest = min(level, logthings.INFO)
    return True


LOG = setup_logging()

import logging
import os
import sys

from aws_lambda_powertools import Logger

import common.constants as constants

# Synth output goes to stdout, so keep log records on stderr.
logger = Logger(
    service=constants.SERVICE_NAME,
    level=os.getenv("LOG_LEVEL", constants.DEFAULT_LOG_LEVEL).upper(),
    logger_handler=logging.StreamHandler(sys.stderr),
)


def set_log_level(level: str) -> None:
    logger.setLevel(level.upper())

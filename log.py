# -*- coding: utf-8 -*-
# -----------------------------------------------------------------------------
# log.py - Shared logging for the GotoStar driver.  Adapted from Alpyca's
# log.py
#
# Python Compatibility: Requires Python 3.7 or later
# GitHub: https://github.com/ASCOMInitiative/AlpycaDevice
#
# -----------------------------------------------------------------------------
# MIT License
#
# Copyright (c) 2022-2024 Bob Denny
#
# Permission is hereby granted, free of charge, to any person obtaining a copy
# of this software and associated documentation files (the "Software"), to deal
# in the Software without restriction, including without limitation the rights
# to use, copy, modify, merge, publish, distribute, sublicense, and/or sell
# copies of the Software, and to permit persons to whom the Software is
# furnished to do so, subject to the following conditions:
#
# The above copyright notice and this permission notice shall be included in all
# copies or substantial portions of the Software.
#
# THE SOFTWARE IS PROVIDED "AS IS", WITHOUT WARRANTY OF ANY KIND, EXPRESS OR
# IMPLIED, INCLUDING BUT NOT LIMITED TO THE WARRANTIES OF MERCHANTABILITY,
# FITNESS FOR A PARTICULAR PURPOSE AND NONINFRINGEMENT. IN NO EVENT SHALL THE
# AUTHORS OR COPYRIGHT HOLDERS BE LIABLE FOR ANY CLAIM, DAMAGES OR OTHER
# LIABILITY, WHETHER IN AN ACTION OF CONTRACT, TORT OR OTHERWISE, ARISING FROM,
# OUT OF OR IN CONNECTION WITH THE SOFTWARE OR THE USE OR OTHER DEALINGS IN THE
# SOFTWARE.
# -----------------------------------------------------------------------------

import logging
import logging.handlers
import sys
import time
from typing import Optional

from GotoStarConfig import GotoStarConfig

LOGGER_NAME = 'gotostar'

# Set by init_logging(), shared by every module that imports log
logger: Optional[logging.Logger] = None


def init_logging(config: GotoStarConfig) -> logging.Logger:
    """Create the shared logger from the [logging] and [driver] settings.

    Timestamps are UTC in ISO 8601 form with milliseconds. The file handler
    rotates at max_size_mb, keeping num_keep_logs old files. Verbose driver
    logging lowers the level to DEBUG so serial traffic is recorded.

    Args:
        config: Loaded configuration

    Returns:
        logging.Logger: The configured logger, also stored in log.logger
    """
    global logger

    new_logger = logging.getLogger(LOGGER_NAME)
    new_logger.setLevel(logging.DEBUG if config.verbose_logging else logging.INFO)
    new_logger.propagate = False

    # Re-initialization replaces handlers rather than stacking them
    for handler in list(new_logger.handlers):
        new_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(
        '%(asctime)s.%(msecs)03d %(levelname)s %(threadName)s %(message)s',
        '%Y-%m-%dT%H:%M:%S'
    )
    formatter.converter = time.gmtime

    file_handler = logging.handlers.RotatingFileHandler(
        config.log_file,
        mode='w',
        delay=True,
        maxBytes=config.max_size_mb * 1000000,
        backupCount=config.num_keep_logs
    )
    file_handler.setFormatter(formatter)
    new_logger.addHandler(file_handler)

    if config.log_to_stdout:
        stdout_handler = logging.StreamHandler(sys.stdout)
        stdout_handler.setFormatter(formatter)
        new_logger.addHandler(stdout_handler)

    logger = new_logger
    return new_logger

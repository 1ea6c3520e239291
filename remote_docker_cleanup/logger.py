# Copyright 2018-2020 Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License"). You
# may not use this file except in compliance with the License. A copy of
# the License is located at
#
#     http://aws.amazon.com/apache2.0/
#
# or in the "license" file accompanying this file. This file is
# distributed on an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF
# ANY KIND, either express or implied. See the License for the specific
# language governing permissions and limitations under the License.
"""Logging handler for nice formatted cleanup logs"""

import logging
import sys

PACKAGE_LOGGER_NAME = "remote_docker_cleanup"


class ColoredFormatter(logging.Formatter):
    COLORS = {
        "DEBUG": {"text": "\x1b[36;20m", "bold": "\x1b[1;36;20m"},
        "INFO": {"text": "\x1b[38;20m", "bold": "\x1b[1;38;20m"},
        "WARNING": {"text": "\x1b[33;20m", "bold": "\x1b[1;33;20m"},
        "ERROR": {"text": "\x1b[31;20m", "bold": "\x1b[1;31;20m"},
        "CRITICAL": {"text": "\x1b[31;1m", "bold": "\x1b[1;31;1m"},
        "RESET": "\x1b[0m",
    }

    def __init__(self, use_color=True):
        super().__init__()
        self.use_color = use_color

    def format(self, record):
        if not self.use_color:
            return logging.Formatter("%(asctime)s - %(levelname)s - %(message)s").format(record)

        colors = self.COLORS.get(record.levelname, self.COLORS["DEBUG"])
        reset = self.COLORS["RESET"]
        format_str = (
            f"{colors['bold']}%(asctime)s{reset} - "
            f"{colors['bold']}%(levelname)s{reset} - "
            f"{colors['text']}%(message)s{reset}"
        )
        return logging.Formatter(format_str).format(record)


def configure_logging(verbose=False, stream=None):
    """
    Attach a single console handler to the package logger. Colors are only used when the
    stream is a terminal, so CI logs stay free of escape codes.

    :param verbose: bool log at DEBUG instead of INFO
    :param stream: file-like object to log to, stdout by default
    :return: the package logger
    """
    stream = stream or sys.stdout
    package_logger = logging.getLogger(PACKAGE_LOGGER_NAME)
    package_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    for handler in list(package_logger.handlers):
        if getattr(handler, "_cleanup_console", False):
            package_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(stream)
    console_handler.setFormatter(ColoredFormatter(use_color=hasattr(stream, "isatty") and stream.isatty()))
    console_handler._cleanup_console = True
    package_logger.addHandler(console_handler)
    return package_logger

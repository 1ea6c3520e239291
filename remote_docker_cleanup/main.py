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
"""Remote docker cleanup entry point.

Inputs come from the command line or, when run as a workflow step, from the INPUT_* environment
variables set by the runner.

Usage:
    remote-docker-cleanup [-h] [--host HOST] [--username USERNAME] [--key-file KEY_FILE]
                          [--threshold-days DAYS] [--config CONFIG] [--dry-run] [--verbose]
"""

import argparse
import logging
import os
import sys

from remote_docker_cleanup.config import load_settings
from remote_docker_cleanup.constants import INPUT_ENV_VARS
from remote_docker_cleanup.exceptions import Stage, ValidationError
from remote_docker_cleanup.logger import configure_logging
from remote_docker_cleanup.pipeline import render_cleanup_script, run_cleanup
from remote_docker_cleanup.reporter import ResultReporter

LOGGER = logging.getLogger(__name__)


def get_input(args, name):
    value = getattr(args, name)
    if value is None:
        value = os.getenv(INPUT_ENV_VARS[name])
    return value


def read_key(args):
    """Read the private key from --key-file ('-' for stdin), falling back to $INPUT_KEY."""
    if args.key_file == "-":
        return sys.stdin.read()
    if args.key_file:
        try:
            with open(args.key_file) as f:
                return f.read()
        except OSError as e:
            raise ValidationError(f"Unable to read key file {args.key_file}: {e}")
    return os.getenv(INPUT_ENV_VARS["key"], "")


def build_parser():
    parser = argparse.ArgumentParser(
        description="Remove stopped containers and unused images from a remote docker host over SSH"
    )
    parser.add_argument("--host", help="Remote host name or IP address [$INPUT_HOST]")
    parser.add_argument("--username", help="Remote SSH user [$INPUT_USERNAME]")
    parser.add_argument("--key-file", help="Private key file, '-' for stdin [$INPUT_KEY holds the key itself]")
    parser.add_argument(
        "--threshold-days",
        help="Only remove resources older than this many days; prune everything unused when omitted "
        "[$INPUT_THRESHOLDDAYS]",
    )
    parser.add_argument("--config", help="Operator settings TOML file [$REMOTE_CLEANUP_CONFIG]")
    parser.add_argument("--dry-run", action="store_true", help="Print the cleanup script without connecting")
    parser.add_argument("--verbose", action="store_true", help="Print detailed progress")
    return parser


def main(argv=None):
    """CLI entry point. Returns the process exit status."""
    args = build_parser().parse_args(argv)
    configure_logging(verbose=args.verbose)
    reporter = ResultReporter()

    threshold_days = get_input(args, "threshold_days")

    if args.dry_run:
        try:
            print(render_cleanup_script(threshold_days), end="")
        except ValidationError as e:
            return reporter.report_failure(Stage.VALIDATING, e).exit_code
        return 0

    try:
        settings = load_settings(args.config)
        key = read_key(args)
    except ValidationError as e:
        return reporter.report_failure(Stage.VALIDATING, e).exit_code

    outcome = run_cleanup(
        host=get_input(args, "host") or "",
        username=get_input(args, "username") or "",
        key=key,
        threshold_days=threshold_days,
        settings=settings,
        reporter=reporter,
    )
    return outcome.exit_code


if __name__ == "__main__":
    sys.exit(main())

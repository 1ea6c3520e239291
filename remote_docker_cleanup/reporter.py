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
"""Turn the result of a cleanup run into a single success/failure signal."""

import logging
from dataclasses import dataclass, field

from remote_docker_cleanup.constants import ITEM_FAILURE_MARKER
from remote_docker_cleanup.exceptions import RemoteItemError, Stage

LOGGER = logging.getLogger(__name__)

STAGE_FAILURE_MESSAGES = {
    Stage.VALIDATING: "Validation failed",
    Stage.STAGING: "Credential staging failed",
    Stage.BUILDING: "Script build failed",
    Stage.EXECUTING: "Remote execution failed",
    Stage.UNSTAGING: "Credential cleanup failed",
    Stage.REPORTING: "Reporting failed",
}


@dataclass
class RunOutcome:
    succeeded: bool
    stage: Stage
    message: str
    result: object = None
    item_failures: list = field(default_factory=list)

    @property
    def exit_code(self) -> int:
        return 0 if self.succeeded else 1


def parse_item_failures(stderr):
    """
    Collect the per-item removal failures the cleanup script printed to stderr.

    :param stderr: str remote standard error
    :return: list of RemoteItemError
    """
    failures = []
    for line in (stderr or "").splitlines():
        line = line.strip()
        if not line.startswith(ITEM_FAILURE_MARKER):
            continue
        parts = line[len(ITEM_FAILURE_MARKER) :].split(None, 2)
        if len(parts) < 2:
            continue
        kind, item_id = parts[0], parts[1]
        detail = parts[2] if len(parts) > 2 else ""
        failures.append(RemoteItemError(kind, item_id, detail))
    return failures


class ResultReporter:
    def __init__(self, logger=None):
        self.logger = logger or LOGGER

    def report_failure(self, stage, error, result=None):
        message = f"{STAGE_FAILURE_MESSAGES.get(stage, 'Cleanup failed')}: {error}"
        if result is not None and result.stderr.strip():
            message = f"{message}\nSTDERR:\n{result.stderr.rstrip()}"
        self.logger.error(message)
        return RunOutcome(succeeded=False, stage=stage, message=message, result=result)

    def report_success(self, result):
        """
        Classify an ExecutionResult. A nonzero exit of the remote call is a failure; otherwise
        stdout is surfaced, and stderr plus any per-item failures are logged as warnings.
        """
        if not result.ok:
            return self.report_failure(
                Stage.EXECUTING, f"remote script exited with status {result.exit_code}", result
            )

        if result.stdout.strip():
            self.logger.info(f"STDOUT:\n{result.stdout.rstrip()}")
        if result.stderr.strip():
            self.logger.warning(f"STDERR:\n{result.stderr.rstrip()}")

        item_failures = parse_item_failures(result.stderr)
        for failure in item_failures:
            self.logger.warning(f"Skipped after error: {failure}")

        message = "Cleanup completed"
        if item_failures:
            message = f"{message} with {len(item_failures)} item(s) not removed"
        self.logger.info(message)
        return RunOutcome(
            succeeded=True, stage=Stage.SUCCEEDED, message=message, result=result, item_failures=item_failures
        )

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
"""
Cleanup run orchestration.

    Validating -> Staging -> Building -> Executing -> Unstaging -> Reporting

Unstaging always runs once staging was attempted, whichever later stage failed.
"""

import logging

from remote_docker_cleanup.config import CleanupPolicy, CleanupSettings, parse_threshold_days, validate_inputs
from remote_docker_cleanup.credentials import CredentialStager
from remote_docker_cleanup.exceptions import CleanupError, CredentialError, Stage, ValidationError
from remote_docker_cleanup.executor import RemoteExecutor
from remote_docker_cleanup.reporter import ResultReporter
from remote_docker_cleanup.script_builder import build_cleanup_script

LOGGER = logging.getLogger(__name__)


class CleanupSession:
    """
    One staged key plus the executor that uses it, behind a stage/execute/unstage interface.
    Usable as a context manager.
    """

    def __init__(self, target, key_material, executor, temp_dir=None):
        self.target = target
        self.executor = executor
        self._stager = CredentialStager(key_material, temp_dir=temp_dir)

    @property
    def credential(self):
        return self._stager.credential

    def stage(self):
        return self._stager.stage()

    def execute(self, script):
        if self.credential is None:
            raise CredentialError("No staged credential; call stage() before execute()")
        return self.executor.execute(script, self.target, self.credential)

    def unstage(self):
        self._stager.unstage()

    def __enter__(self):
        self.stage()
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        return self._stager.__exit__(exc_type, exc_value, traceback)


def render_cleanup_script(threshold_days=None):
    """Validate the threshold and return the script text without staging or connecting."""
    policy = CleanupPolicy(threshold_seconds=parse_threshold_days(threshold_days))
    return build_cleanup_script(policy).render()


def run_cleanup(
    host, username, key, threshold_days=None, settings=None, executor=None, reporter=None, temp_dir=None
):
    """
    Run one cleanup against a remote host.

    :param host: str remote host
    :param username: str remote user
    :param key: str private key material
    :param threshold_days: str|int|None optional age threshold in days
    :param settings: CleanupSettings operator settings, defaults when omitted
    :param executor: object with execute(script, target, credential), a RemoteExecutor by default
    :param reporter: ResultReporter
    :param temp_dir: str directory for the staged key, the system temp dir by default
    :return: RunOutcome
    """
    settings = settings or CleanupSettings()
    reporter = reporter or ResultReporter()

    stage = Stage.VALIDATING
    LOGGER.debug(f"Stage: {stage.value}")
    try:
        target, policy = validate_inputs(host, username, key, threshold_days, port=settings.port)
        executor = executor or RemoteExecutor(settings)
    except ValidationError as e:
        return reporter.report_failure(stage, e)

    mode = "aggressive" if policy.aggressive else f"older than {policy.threshold_days} days"
    LOGGER.info(f"Cleaning up docker resources on {target.label} ({mode})")

    session = CleanupSession(target, key, executor, temp_dir=temp_dir)
    result = None
    failure = None
    try:
        stage = Stage.STAGING
        LOGGER.debug(f"Stage: {stage.value}")
        session.stage()

        stage = Stage.BUILDING
        LOGGER.debug(f"Stage: {stage.value}")
        script = build_cleanup_script(policy)
        LOGGER.debug(f"Generated cleanup script:\n{script.render()}")

        stage = Stage.EXECUTING
        LOGGER.debug(f"Stage: {stage.value}")
        result = session.execute(script)
    except CleanupError as e:
        failure = (stage, e)
    finally:
        LOGGER.debug(f"Stage: {Stage.UNSTAGING.value}")
        try:
            session.unstage()
        except CredentialError as e:
            if failure is None:
                failure = (Stage.UNSTAGING, e)
            else:
                LOGGER.error(f"Also failed to remove the staged key: {e}")

    LOGGER.debug(f"Stage: {Stage.REPORTING.value}")
    if failure is not None:
        return reporter.report_failure(*failure)
    return reporter.report_success(result)

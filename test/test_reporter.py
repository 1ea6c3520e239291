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
"""Tests for classifying cleanup results."""

import logging

import pytest

from remote_docker_cleanup.exceptions import RemoteItemError, Stage, TransportError, ValidationError
from remote_docker_cleanup.executor import ExecutionResult
from remote_docker_cleanup.reporter import ResultReporter, RunOutcome, parse_item_failures

LOGGER = logging.getLogger(__name__)
LOGGER.setLevel(logging.INFO)


class TestParseItemFailures:
    def test_markers_collected(self):
        stderr = (
            "Error response from daemon: conflict\n"
            "cleanup-item-failed: container 3f2a1b\n"
            "Skipping image abc: inspect failed\n"
            "cleanup-item-failed: image sha256:deadbeef in use\n"
        )
        failures = parse_item_failures(stderr)
        assert [(f.kind, f.item_id, f.detail) for f in failures] == [
            ("container", "3f2a1b", ""),
            ("image", "sha256:deadbeef", "in use"),
        ]
        assert all(isinstance(f, RemoteItemError) for f in failures)
        assert str(failures[1]) == "failed to remove image sha256:deadbeef: in use"

    @pytest.mark.parametrize("stderr", [None, "", "cleanup-item-failed:", "cleanup-item-failed: image"])
    def test_nothing_to_collect(self, stderr):
        assert parse_item_failures(stderr) == []


class TestReportSuccess:
    def test_clean_run(self, caplog):
        reporter = ResultReporter()
        with caplog.at_level(logging.INFO, logger="remote_docker_cleanup.reporter"):
            outcome = reporter.report_success(ExecutionResult(0, "Total reclaimed space: 2GB\n", ""))
        assert outcome.succeeded
        assert outcome.stage == Stage.SUCCEEDED
        assert outcome.exit_code == 0
        assert outcome.message == "Cleanup completed"
        assert "Total reclaimed space: 2GB" in caplog.text

    def test_stderr_is_a_warning(self, caplog):
        reporter = ResultReporter()
        result = ExecutionResult(0, "", "cleanup-item-failed: container c1\n")
        with caplog.at_level(logging.INFO, logger="remote_docker_cleanup.reporter"):
            outcome = reporter.report_success(result)
        assert outcome.succeeded
        assert outcome.message == "Cleanup completed with 1 item(s) not removed"
        assert [f.item_id for f in outcome.item_failures] == ["c1"]
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert any("STDERR" in r.getMessage() for r in warnings)
        assert any("failed to remove container c1" in r.getMessage() for r in warnings)

    def test_nonzero_exit_fails(self):
        result = ExecutionResult(1, "", "Cannot connect to the Docker daemon\n")
        outcome = ResultReporter().report_success(result)
        assert not outcome.succeeded
        assert outcome.stage == Stage.EXECUTING
        assert outcome.exit_code == 1
        assert outcome.message.startswith("Remote execution failed: remote script exited with status 1")
        assert "Cannot connect to the Docker daemon" in outcome.message


class TestReportFailure:
    @pytest.mark.parametrize(
        "stage,prefix",
        [
            (Stage.VALIDATING, "Validation failed"),
            (Stage.STAGING, "Credential staging failed"),
            (Stage.EXECUTING, "Remote execution failed"),
            (Stage.UNSTAGING, "Credential cleanup failed"),
        ],
    )
    def test_message_names_stage(self, stage, prefix):
        outcome = ResultReporter().report_failure(stage, ValidationError("boom"))
        assert outcome == RunOutcome(succeeded=False, stage=stage, message=f"{prefix}: boom")

    def test_logged_as_error(self, caplog):
        with caplog.at_level(logging.ERROR, logger="remote_docker_cleanup.reporter"):
            ResultReporter().report_failure(Stage.EXECUTING, TransportError("host unreachable"))
        assert "Remote execution failed: host unreachable" in caplog.text

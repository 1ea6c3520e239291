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
"""Error taxonomy for a cleanup run."""

from enum import Enum


class Stage(Enum):
    VALIDATING = "validating"
    STAGING = "staging"
    BUILDING = "building"
    EXECUTING = "executing"
    UNSTAGING = "unstaging"
    REPORTING = "reporting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class CleanupError(Exception):
    """
    Base class for errors raised during a cleanup run. Fatal subclasses record the stage
    they belong to so the final report can say where the run stopped.
    """

    stage = None


class ValidationError(CleanupError):
    """Bad operator input. Raised before anything touches disk or network."""

    stage = Stage.VALIDATING


class CredentialError(CleanupError):
    """The private key could not be staged or unstaged."""

    stage = Stage.STAGING


class TransportError(CleanupError):
    """The SSH session could not be established or the remote call could not be made."""

    stage = Stage.EXECUTING


class RemoteItemError(CleanupError):
    """
    A single container or image could not be removed on the remote host. Never raised by the
    pipeline; collected from the script output and reported as a warning.
    """

    def __init__(self, kind, item_id, detail=""):
        self.kind = kind
        self.item_id = item_id
        self.detail = detail
        message = f"failed to remove {kind} {item_id}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

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
"""Short-lived staging of the SSH private key on local disk."""

import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass

from remote_docker_cleanup.constants import (
    CREDENTIAL_FILE_MODE,
    CREDENTIAL_FILE_PREFIX,
    CREDENTIAL_FILE_SUFFIX,
)
from remote_docker_cleanup.exceptions import CredentialError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Credential:
    path: str


class CredentialStager:
    """
    Writes private key material to a uniquely named, owner-only temp file and removes it again.

    Use as a context manager so the file is removed on every exit path:

        with CredentialStager(key) as credential:
            connect(key_filename=credential.path)
    """

    def __init__(self, key_material, temp_dir=None):
        self._key_material = key_material
        self._temp_dir = temp_dir
        self.credential = None

    def stage(self):
        if self.credential is not None:
            return self.credential

        data = self._key_material if self._key_material.endswith("\n") else f"{self._key_material}\n"
        try:
            fd, path = tempfile.mkstemp(
                prefix=CREDENTIAL_FILE_PREFIX, suffix=CREDENTIAL_FILE_SUFFIX, dir=self._temp_dir
            )
        except OSError as e:
            raise CredentialError(f"Unable to create a temporary key file: {e}")

        try:
            with os.fdopen(fd, "w") as key_file:
                os.chmod(path, CREDENTIAL_FILE_MODE)
                key_file.write(data)
        except OSError as e:
            _remove_quietly(path)
            raise CredentialError(f"Unable to write temporary key file {path}: {e}")

        self.credential = Credential(path=path)
        LOGGER.debug(f"Staged SSH key at {path}")
        return self.credential

    def unstage(self):
        if self.credential is None:
            return
        path = self.credential.path
        try:
            os.remove(path)
        except FileNotFoundError:
            pass
        except OSError as e:
            raise CredentialError(f"Unable to remove temporary key file {path}: {e}")
        self.credential = None
        LOGGER.debug(f"Removed staged SSH key {path}")

    def __enter__(self):
        return self.stage()

    def __exit__(self, exc_type, exc_value, traceback):
        try:
            self.unstage()
        except CredentialError:
            if exc_type is None:
                raise
            LOGGER.error(f"Failed to remove staged SSH key while handling {exc_type.__name__}")
        return False


def _remove_quietly(path):
    try:
        os.remove(path)
    except OSError as e:
        LOGGER.warning(f"Could not remove partially written key file {path}: {e}")


@contextmanager
def staged_credential(key_material, temp_dir=None):
    """
    Context manager yielding a staged Credential that is removed when the block exits.

    :param key_material: str private key
    :param temp_dir: str directory for the key file, the system temp dir by default
    """
    with CredentialStager(key_material, temp_dir=temp_dir) as credential:
        yield credential

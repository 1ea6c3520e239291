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
"""Run a cleanup script on the remote host over a single fabric connection."""

import base64
import hashlib
import io
import logging
import posixpath
import shlex
import uuid
from dataclasses import dataclass

import paramiko
from fabric import Connection
from invoke.exceptions import Failure

from remote_docker_cleanup.config import CleanupSettings
from remote_docker_cleanup.constants import DEFAULT_REMOTE_DIR, REMOTE_SCRIPT_PREFIX
from remote_docker_cleanup.exceptions import TransportError, ValidationError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ExecutionResult:
    exit_code: int
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


def host_key_fingerprint(key):
    """OpenSSH style SHA256 fingerprint of a paramiko host key."""
    digest = hashlib.sha256(key.asbytes()).digest()
    return "SHA256:" + base64.b64encode(digest).decode("ascii").rstrip("=")


class PinnedFingerprintPolicy(paramiko.MissingHostKeyPolicy):
    """Accept an unknown host only if its key matches a fingerprint pinned by the operator."""

    def __init__(self, fingerprint):
        if not fingerprint.startswith("SHA256:"):
            fingerprint = f"SHA256:{fingerprint}"
        self.fingerprint = fingerprint.rstrip("=")

    def missing_host_key(self, client, hostname, key):
        actual = host_key_fingerprint(key)
        if actual != self.fingerprint:
            raise paramiko.SSHException(
                f"Host key for {hostname} does not match pinned fingerprint "
                f"(expected {self.fingerprint}, got {actual})"
            )
        client.get_host_keys().add(hostname, key.get_name(), key)


def apply_host_key_policy(client, settings):
    """
    Configure how the SSH client verifies the remote host's identity.

    :param client: paramiko.SSHClient wrapped by the fabric connection
    :param settings: CleanupSettings
    """
    policy = settings.host_key_policy
    if policy in ("strict", "accept-new"):
        if settings.known_hosts_file:
            try:
                client.load_host_keys(settings.known_hosts_file)
            except OSError as e:
                raise TransportError(f"Unable to read known hosts file {settings.known_hosts_file}: {e}")
        else:
            client.load_system_host_keys()
        if policy == "strict":
            client.set_missing_host_key_policy(paramiko.RejectPolicy())
        else:
            client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    elif policy == "pinned":
        client.set_missing_host_key_policy(PinnedFingerprintPolicy(settings.host_key_fingerprint))
    elif policy == "off":
        LOGGER.warning("Host key verification is disabled; the remote host's identity is not checked")
        client.set_missing_host_key_policy(paramiko.AutoAddPolicy())
    else:
        raise ValidationError(f"Unknown host key policy {policy!r}")


class InlineDelivery:
    """Send the script as the argument of one ``bash -c`` call."""

    name = "inline"

    def deliver(self, connection, script_text):
        return connection.run(f"bash -c {shlex.quote(script_text)}", hide=True, warn=True, in_stream=False)


class UploadDelivery:
    """Upload the script over SFTP to a unique path, run it and remove it in the same call."""

    name = "upload"

    def __init__(self, remote_dir=DEFAULT_REMOTE_DIR):
        self.remote_dir = remote_dir

    def remote_path(self):
        return posixpath.join(self.remote_dir, f"{REMOTE_SCRIPT_PREFIX}{uuid.uuid4().hex}.sh")

    def deliver(self, connection, script_text):
        remote_path = self.remote_path()
        connection.put(io.BytesIO(script_text.encode("utf-8")), remote=remote_path)
        quoted = shlex.quote(remote_path)
        return connection.run(
            f"bash {quoted}; rc=$?; rm -f {quoted}; exit $rc", hide=True, warn=True, in_stream=False
        )


def get_delivery(settings):
    if settings.delivery == "inline":
        return InlineDelivery()
    if settings.delivery == "upload":
        return UploadDelivery(settings.remote_dir)
    raise ValidationError(f"Unknown script delivery {settings.delivery!r}")


class RemoteExecutor:
    def __init__(self, settings=None, delivery=None, connection_factory=Connection):
        self.settings = settings or CleanupSettings()
        self.delivery = delivery or get_delivery(self.settings)
        self._connection_factory = connection_factory

    def connect(self, target, credential):
        connection = self._connection_factory(
            host=target.host,
            user=target.username,
            port=target.port,
            connect_timeout=self.settings.connect_timeout,
            connect_kwargs={
                "key_filename": [credential.path],
                "look_for_keys": False,
                "allow_agent": False,
            },
        )
        apply_host_key_policy(connection.client, self.settings)
        return connection

    def execute(self, script, target, credential):
        """
        Run the script on the target in one remote invocation. The remote exit status is
        returned as-is; only failures to reach the host or start the command raise.

        :param script: CleanupScript
        :param target: ConnectionTarget
        :param credential: Credential staged private key
        :return: ExecutionResult
        """
        LOGGER.info(f"Connecting to {target.label} (host key policy: {self.settings.host_key_policy})")
        connection = self.connect(target, credential)
        try:
            connection.open()
            LOGGER.info(f"Running {len(script)} cleanup steps via {self.delivery.name} delivery")
            result = self.delivery.deliver(connection, script.render())
        except paramiko.AuthenticationException as e:
            raise TransportError(f"Authentication to {target.label} failed: {e}")
        except paramiko.SSHException as e:
            raise TransportError(f"SSH session with {target.label} failed: {e}")
        except OSError as e:
            raise TransportError(f"Unable to reach {target.label}: {e}")
        except Failure as e:
            raise TransportError(f"Remote command on {target.label} could not be run: {e}")
        finally:
            connection.close()

        LOGGER.debug(f"Remote script exited with status {result.exited}")
        return ExecutionResult(exit_code=result.exited, stdout=result.stdout or "", stderr=result.stderr or "")

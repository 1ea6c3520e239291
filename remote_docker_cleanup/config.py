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
"""Validation of run parameters and loading of operator settings."""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import toml

from remote_docker_cleanup.constants import (
    CONFIG_ENV_VAR,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_DELIVERY,
    DEFAULT_HOST_KEY_POLICY,
    DEFAULT_REMOTE_DIR,
    DEFAULT_SSH_PORT,
    DELIVERY_STRATEGIES,
    HOST_KEY_POLICIES,
    HOST_PATTERN,
    PRIVATE_KEY_MARKER_PATTERN,
    REMOTE_DIR_PATTERN,
    SECONDS_PER_DAY,
    THRESHOLD_DAYS_PATTERN,
    USERNAME_PATTERN,
)
from remote_docker_cleanup.exceptions import ValidationError

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConnectionTarget:
    host: str
    username: str
    port: int = DEFAULT_SSH_PORT

    @property
    def label(self) -> str:
        return f"{self.username}@{self.host}:{self.port}"


@dataclass(frozen=True)
class CleanupPolicy:
    """Age policy for a run. ``threshold_seconds`` of None selects aggressive mode."""

    threshold_seconds: int | None = None

    @property
    def aggressive(self) -> bool:
        return self.threshold_seconds is None

    @property
    def threshold_days(self) -> int | None:
        if self.threshold_seconds is None:
            return None
        return self.threshold_seconds // SECONDS_PER_DAY


@dataclass(frozen=True)
class CleanupSettings:
    """Operator-level settings that are not part of a single run's inputs."""

    port: int = DEFAULT_SSH_PORT
    host_key_policy: str = DEFAULT_HOST_KEY_POLICY
    known_hosts_file: str | None = None
    host_key_fingerprint: str | None = None
    connect_timeout: int = DEFAULT_CONNECT_TIMEOUT
    delivery: str = DEFAULT_DELIVERY
    remote_dir: str = DEFAULT_REMOTE_DIR


def validate_username(username: str) -> str:
    if not isinstance(username, str) or not USERNAME_PATTERN.fullmatch(username):
        raise ValidationError(f"Invalid username {username!r}: only letters, digits, '_' and '-' are allowed")
    return username


def validate_host(host: str) -> str:
    if not isinstance(host, str) or not HOST_PATTERN.fullmatch(host):
        raise ValidationError(f"Invalid host {host!r}: only letters, digits, '.' and '-' are allowed")
    return host


def validate_key_material(key: str) -> str:
    """
    Minimal structural check of the private key. The key itself is never echoed back in the
    error message.
    """
    if not key or not PRIVATE_KEY_MARKER_PATTERN.search(key):
        raise ValidationError("SSH key does not look like a private key (missing BEGIN ... PRIVATE KEY marker)")
    return key


def parse_threshold_days(value):
    """
    Parse the optional age threshold.

    :param value: str|int|None raw threshold in days
    :return: int threshold in seconds, or None when no threshold was given
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValidationError(f"thresholdDays must be a positive integer, got {value!r}")
    if isinstance(value, int):
        days = value
    else:
        text = str(value).strip()
        if not text:
            return None
        if not THRESHOLD_DAYS_PATTERN.fullmatch(text):
            raise ValidationError(f"thresholdDays must be a positive integer, got {value!r}")
        days = int(text)
    if days <= 0:
        raise ValidationError(f"thresholdDays must be a positive integer, got {value!r}")
    return days * SECONDS_PER_DAY


def validate_inputs(host, username, key, threshold_days=None, port=DEFAULT_SSH_PORT):
    """
    Turn raw run parameters into a connection target and a cleanup policy.

    :param host: str remote host name or IP address
    :param username: str remote user
    :param key: str private key material
    :param threshold_days: str|int|None optional age threshold in days
    :param port: int SSH port from operator settings
    :return: tuple of (ConnectionTarget, CleanupPolicy)
    """
    target = ConnectionTarget(host=validate_host(host), username=validate_username(username), port=port)
    validate_key_material(key)
    policy = CleanupPolicy(threshold_seconds=parse_threshold_days(threshold_days))
    return target, policy


def _positive_int(section, option, value):
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValidationError(f"[{section}] {option} must be a positive integer, got {value!r}")
    return value


def _section(data, name):
    section = data.get(name, {})
    if not isinstance(section, dict):
        raise ValidationError(f"[{name}] must be a table, got {section!r}")
    return section


def _optional_str(section, option, value):
    if value is not None and not isinstance(value, str):
        raise ValidationError(f"[{section}] {option} must be a string, got {value!r}")
    return value


def parse_settings(data: dict) -> CleanupSettings:
    """Build CleanupSettings from the parsed TOML document."""
    ssh = _section(data, "ssh")
    script = _section(data, "script")

    host_key_policy = ssh.get("host_key_policy", DEFAULT_HOST_KEY_POLICY)
    if host_key_policy not in HOST_KEY_POLICIES:
        raise ValidationError(f"[ssh] host_key_policy must be one of {list(HOST_KEY_POLICIES)}, got {host_key_policy!r}")

    fingerprint = _optional_str("ssh", "host_key_fingerprint", ssh.get("host_key_fingerprint"))
    if host_key_policy == "pinned" and not fingerprint:
        raise ValidationError("[ssh] host_key_fingerprint is required when host_key_policy is 'pinned'")

    delivery = script.get("delivery", DEFAULT_DELIVERY)
    if delivery not in DELIVERY_STRATEGIES:
        raise ValidationError(f"[script] delivery must be one of {list(DELIVERY_STRATEGIES)}, got {delivery!r}")

    remote_dir = script.get("remote_dir", DEFAULT_REMOTE_DIR)
    if not isinstance(remote_dir, str) or not REMOTE_DIR_PATTERN.fullmatch(remote_dir):
        raise ValidationError(f"[script] remote_dir must be an absolute path without special characters, got {remote_dir!r}")

    known_hosts_file = _optional_str("ssh", "known_hosts_file", ssh.get("known_hosts_file"))
    if known_hosts_file and host_key_policy == "pinned":
        raise ValidationError("[ssh] known_hosts_file is not used when host_key_policy is 'pinned'; remove one of them")
    if known_hosts_file:
        known_hosts_file = os.path.expanduser(known_hosts_file)

    return CleanupSettings(
        port=_positive_int("ssh", "port", ssh.get("port", DEFAULT_SSH_PORT)),
        host_key_policy=host_key_policy,
        known_hosts_file=known_hosts_file,
        host_key_fingerprint=fingerprint,
        connect_timeout=_positive_int("ssh", "connect_timeout", ssh.get("connect_timeout", DEFAULT_CONNECT_TIMEOUT)),
        delivery=delivery,
        remote_dir=remote_dir,
    )


def load_settings(path: str | Path | None = None) -> CleanupSettings:
    """
    Load operator settings from a TOML file. Falls back to $REMOTE_CLEANUP_CONFIG, and to the
    defaults when neither is set.

    Raises:
        ValidationError: If the file is missing, unparsable or holds invalid values.
    """
    path = path or os.getenv(CONFIG_ENV_VAR)
    if not path:
        return CleanupSettings()

    try:
        data = toml.load(path)
    except FileNotFoundError:
        raise ValidationError(f"Config file not found: {path}")
    except OSError as e:
        raise ValidationError(f"Unable to read config file {path}: {e}")
    except toml.TomlDecodeError as e:
        raise ValidationError(f"Config file {path} is not valid TOML: {e}")

    LOGGER.debug(f"Loaded cleanup settings from {path}")
    return parse_settings(data)

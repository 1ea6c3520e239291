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
"""Global variables for remote docker cleanup."""

import re

# Identifier patterns, the only gate between operator input and a command line
USERNAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
HOST_PATTERN = re.compile(r"^[A-Za-z0-9.-]+$")
PRIVATE_KEY_MARKER_PATTERN = re.compile(r"-----BEGIN [A-Z0-9 ]*PRIVATE KEY-----")
THRESHOLD_DAYS_PATTERN = re.compile(r"^[0-9]+$")
REMOTE_DIR_PATTERN = re.compile(r"^/[A-Za-z0-9._/-]*$")

SECONDS_PER_DAY = 86400

# Staged credential naming
CREDENTIAL_FILE_PREFIX = "cleanup-key-"
CREDENTIAL_FILE_SUFFIX = ".pem"
CREDENTIAL_FILE_MODE = 0o600

# Script assembly
STEP_SEPARATOR = " &&\n"
ITEM_FAILURE_MARKER = "cleanup-item-failed:"
REMOTE_SCRIPT_PREFIX = "cleanup-script-"

# Operator settings
CONFIG_ENV_VAR = "REMOTE_CLEANUP_CONFIG"
DEFAULT_SSH_PORT = 22
DEFAULT_CONNECT_TIMEOUT = 30
DEFAULT_REMOTE_DIR = "/tmp"
HOST_KEY_POLICIES = ("strict", "accept-new", "pinned", "off")
DEFAULT_HOST_KEY_POLICY = "strict"
DELIVERY_STRATEGIES = ("inline", "upload")
DEFAULT_DELIVERY = "inline"

# Workflow runner inputs, exposed to the process as INPUT_<NAME>
INPUT_ENV_VARS = {
    "host": "INPUT_HOST",
    "username": "INPUT_USERNAME",
    "key": "INPUT_KEY",
    "threshold_days": "INPUT_THRESHOLDDAYS",
}

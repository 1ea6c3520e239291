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
Compile a CleanupPolicy into the shell script that runs on the remote host.

Every step is produced by its own function and the steps are joined with STEP_SEPARATOR, so a
failing engine command (e.g. the docker daemon is down) ends the script with a nonzero status.
Inside the age-filtered loops each removal is best-effort: a failed removal prints a line
starting with ITEM_FAILURE_MARKER to stderr and the scan continues.

No operator-supplied text is ever placed in the script. The only value that varies is the
threshold, and it is embedded as an integer.
"""

import logging
from dataclasses import dataclass

from remote_docker_cleanup.constants import ITEM_FAILURE_MARKER, SECONDS_PER_DAY, STEP_SEPARATOR

LOGGER = logging.getLogger(__name__)

INDENT = "  "

# Docker reports creation time as RFC 3339 with nanoseconds, e.g. 2024-05-01T10:22:31.123456789Z
BSD_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"


@dataclass(frozen=True)
class CleanupScript:
    commands: tuple

    def render(self) -> str:
        return STEP_SEPARATOR.join(self.commands) + "\n"

    def __len__(self):
        return len(self.commands)


def prune_dangling_images():
    return 'docker image prune -f --filter "dangling=true"'


def prune_stopped_containers():
    return "docker container prune -f"


def prune_unused_images():
    return "docker image prune -a -f"


def _to_epoch_lines(kind):
    """
    Lines converting $created into $created_sec. GNU date is tried first and BSD date second;
    items neither can parse are skipped.
    """
    return [
        'created="${created%%.*}"',
        'created="${created%Z}"',
        'created_sec=$(date -u -d "$created" +%s 2>/dev/null'
        f' || date -j -u -f "{BSD_DATE_FORMAT}" "$created" +%s 2>/dev/null)',
        'if [ -z "$created_sec" ]; then',
        f'{INDENT}echo "Skipping {kind} $id: cannot parse creation time \'$created\'" >&2',
        f"{INDENT}continue",
        "fi",
        "age=$((now - created_sec))",
    ]


def _scan(header, body):
    """
    Wrap an enumeration loop in a brace group so the whole scan is a single step for
    STEP_SEPARATOR to chain on.
    """
    loop = [header] + [f"{INDENT}{line}" for line in body] + ["done"]
    return "\n".join(["{", f"{INDENT}now=$(date +%s)"] + [f"{INDENT}{line}" for line in loop] + ["}"])


def remove_aged_containers(threshold_seconds):
    """
    Remove containers that have exited and are older than the threshold. Containers in any
    other state (running, paused, restarting, created, dead) are left alone.
    """
    days = threshold_seconds // SECONDS_PER_DAY
    body = [
        '[ -n "$id" ] || continue',
        "if ! info=$(docker inspect --format '{{.Created}} {{.State.Status}}' \"$id\" 2>/dev/null); then",
        f'{INDENT}echo "Skipping container $id: inspect failed" >&2',
        f"{INDENT}continue",
        "fi",
        'created="${info%% *}"',
        'status="${info##* }"',
        *_to_epoch_lines("container"),
        f'if [ "$status" = "exited" ] && [ "$age" -gt {threshold_seconds} ]; then',
        f'{INDENT}echo "Removing stopped container $id (older than {days} days)"',
        f'{INDENT}docker rm -f "$id" || echo "{ITEM_FAILURE_MARKER} container $id" >&2',
        "fi",
    ]
    return _scan("docker ps -a --format '{{.ID}}' | while read -r id; do", body)


def remove_aged_images(threshold_seconds):
    """
    Remove images older than the threshold that no container, in any state, was created from.
    """
    days = threshold_seconds // SECONDS_PER_DAY
    body = [
        '[ -n "$id" ] || continue',
        "if ! created=$(docker inspect --format '{{.Created}}' \"$id\" 2>/dev/null); then",
        f'{INDENT}echo "Skipping image $id: inspect failed" >&2',
        f"{INDENT}continue",
        "fi",
        *_to_epoch_lines("image"),
        "in_use=$(docker ps -a -q --filter \"ancestor=$id\" | wc -l | tr -d ' ')",
        f'if [ "$in_use" -eq 0 ] && [ "$age" -gt {threshold_seconds} ]; then',
        f'{INDENT}echo "Removing unused image $ref ($id, older than {days} days)"',
        f'{INDENT}docker rmi -f "$id" || echo "{ITEM_FAILURE_MARKER} image $id" >&2',
        "fi",
    ]
    return _scan(
        "docker images --format '{{.ID}} {{.Repository}}:{{.Tag}}' | while read -r id ref; do", body
    )


def build_cleanup_script(policy):
    """
    Build the ordered cleanup steps for a policy. Dangling images are always pruned first,
    which shrinks the candidate set for the image scan.

    :param policy: CleanupPolicy
    :return: CleanupScript
    """
    commands = [prune_dangling_images()]
    if policy.aggressive:
        commands.append(prune_stopped_containers())
        commands.append(prune_unused_images())
    else:
        commands.append(remove_aged_containers(policy.threshold_seconds))
        commands.append(remove_aged_images(policy.threshold_seconds))

    script = CleanupScript(commands=tuple(commands))
    mode = "aggressive" if policy.aggressive else f"age-filtered ({policy.threshold_days} days)"
    LOGGER.debug(f"Built {mode} cleanup script with {len(script)} steps")
    return script

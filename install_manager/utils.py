# /*
# Copyright 2026 The Grove Authors.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# */

"""Utility functions for cluster CLI calls, command checks and YAML files."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any

import sh
import yaml

from install_manager.constants import CLI_KUBECTL, DEFAULT_CLI_TIMEOUT_SECONDS


def require_command(cmd: str) -> None:
    """Check if a command exists on the system PATH.

    Args:
        cmd: Name of the CLI command to check.

    Raises:
        RuntimeError: If the command is not found.
    """
    try:
        sh.which(cmd)
    except sh.ErrorReturnCode as err:
        raise RuntimeError(f"Required command '{cmd}' not found. Please install it first.") from err


def command_exists(cmd: str) -> bool:
    """Return True if *cmd* is on the system PATH."""
    try:
        require_command(cmd)
    except RuntimeError:
        return False
    return True


def run_kubectl(
    args: list[str],
    timeout: int = DEFAULT_CLI_TIMEOUT_SECONDS,
    input_data: str | None = None,
    cli: str = CLI_KUBECTL,
) -> tuple[bool, str, str]:
    """Run a cluster CLI command via subprocess and return (success, stdout, stderr).

    Uses subprocess instead of sh because not-found detection requires
    precise control over stdout/stderr separation.

    Args:
        args: CLI arguments (e.g. ``["get", "pods", "-n", "default"]``).
        timeout: Maximum seconds to wait for the command to complete.
        input_data: Text piped to the command's stdin, if any.
        cli: Binary to invoke (``kubectl`` or ``oc``).

    Returns:
        Tuple of (success, stdout, stderr).
    """
    try:
        result = subprocess.run(
            [cli, *args],
            capture_output=True,
            text=True,
            timeout=timeout,
            input=input_data,
        )
        return result.returncode == 0, result.stdout, result.stderr
    except (subprocess.SubprocessError, OSError) as exc:
        return False, "", str(exc)


def is_not_found(stderr: str) -> bool:
    """Return True if CLI stderr reports a missing object rather than a failure.

    Only the API server's NotFound status counts; client-side errors such as
    an unknown context also say "not found" but are failures.
    """
    return "(NotFound)" in stderr


def dump_yaml(obj: dict[str, Any]) -> str:
    """Serialize a manifest dict to YAML."""
    return yaml.safe_dump(obj, default_flow_style=False, sort_keys=False)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a single-document YAML manifest file.

    Args:
        path: File to read.

    Returns:
        Parsed document as a dictionary.

    Raises:
        ValueError: If the file does not contain a YAML mapping.
        OSError: If the file cannot be read.
        yaml.YAMLError: If the file is not valid YAML.
    """
    with open(path) as f:
        doc = yaml.safe_load(f)
    if not isinstance(doc, dict):
        raise ValueError(f"{path} does not contain a YAML object")
    return doc


def nested_get(obj: dict[str, Any] | None, *keys: str, default: Any = None) -> Any:
    """Safely traverse a nested dict by key path.

    Args:
        obj: Dictionary to traverse.
        *keys: Sequence of dictionary keys to traverse.
        default: Value to return if any key is missing.

    Returns:
        The value at the nested key path, or *default* if not found.
    """
    node: Any = obj
    for key in keys:
        if not isinstance(node, dict):
            return default
        node = node.get(key)
        if node is None:
            return default
    return node

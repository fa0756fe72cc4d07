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

"""CLI-backed cluster client: object lookup, create/delete, exec and SCC grants."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Protocol

from install_manager import logger
from install_manager.config import Flavor
from install_manager.constants import CLI_KUBECTL, OPENSHIFT_SCC
from install_manager.errors import ClusterAPIError
from install_manager.utils import is_not_found, run_kubectl

_VERSION_RE = re.compile(r"v?(\d+)\.(\d+)(?:\.(\d+))?")


def parse_version(text: str) -> tuple[int, int, int]:
    """Parse a server version string such as ``v1.11.0+d4cacc0``.

    Args:
        text: Version string reported by the API server.

    Returns:
        Tuple of (major, minor, patch).

    Raises:
        ValueError: If no version number can be found.
    """
    m = _VERSION_RE.search(text)
    if not m:
        raise ValueError(f"could not parse version '{text}'")
    return int(m.group(1)), int(m.group(2)), int(m.group(3) or 0)


class ClusterClient(Protocol):
    """Capabilities the installer needs from the cluster API."""

    cli: str
    flavor: Flavor

    @property
    def namespace(self) -> str: ...
    def set_namespace(self, namespace: str) -> None: ...
    def server_version(self) -> tuple[int, int, int]: ...
    def namespace_exists(self, name: str) -> bool: ...
    def get_pvc(self, name: str) -> dict[str, Any] | None: ...
    def get_pv(self, name: str) -> dict[str, Any] | None: ...
    def secret_exists(self, name: str) -> bool: ...
    def get_pod_by_label(self, label: str) -> dict[str, Any] | None: ...
    def find_by_label(self, kind: str, label: str) -> list[dict[str, Any]]: ...
    def create_object_by_yaml(self, text: str) -> None: ...
    def create_object_by_file(self, path: Path) -> None: ...
    def delete_object_by_yaml(self, text: str, ignore_not_found: bool = True) -> None: ...
    def exec(self, pod: str, container: str, command: list[str]) -> str: ...
    def add_user_to_scc(self, user: str) -> None: ...
    def remove_user_from_scc(self, user: str) -> None: ...


class KubectlClient:
    """Cluster client that shells out to ``kubectl`` (or ``oc`` on OpenShift).

    Every lookup distinguishes "not found" (``None``/``False``) from a failed
    call (:class:`ClusterAPIError`).
    """

    def __init__(
        self,
        cli: str = CLI_KUBECTL,
        flavor: Flavor = Flavor.KUBERNETES,
        namespace: str | None = None,
        timeout: int = 60,
    ) -> None:
        self.cli = cli
        self.flavor = flavor
        self.timeout = timeout
        self._namespace = namespace or self._current_namespace()

    # ------------------------------------------------------------------
    # Plumbing
    # ------------------------------------------------------------------

    def _run(self, args: list[str], input_data: str | None = None) -> tuple[bool, str, str]:
        logger.debug("%s %s", self.cli, " ".join(args))
        return run_kubectl(args, timeout=self.timeout, input_data=input_data, cli=self.cli)

    def _get_json(self, args: list[str]) -> dict[str, Any] | None:
        ok, stdout, stderr = self._run([*args, "-o", "json"])
        if not ok:
            if is_not_found(stderr):
                return None
            raise ClusterAPIError(f"'{self.cli} {' '.join(args)}' failed: {stderr.strip()}")
        try:
            return json.loads(stdout)
        except json.JSONDecodeError as err:
            raise ClusterAPIError(f"could not parse '{self.cli} {' '.join(args)}' output; {err}") from err

    def _current_namespace(self) -> str:
        ok, stdout, stderr = self._run(["config", "view", "--minify", "-o", "jsonpath={..namespace}"])
        if not ok:
            raise ClusterAPIError(f"could not determine the current namespace: {stderr.strip()}")
        return stdout.strip() or "default"

    # ------------------------------------------------------------------
    # Facts
    # ------------------------------------------------------------------

    @property
    def namespace(self) -> str:
        return self._namespace

    def set_namespace(self, namespace: str) -> None:
        self._namespace = namespace

    def server_version(self) -> tuple[int, int, int]:
        """Return the API server version.

        Raises:
            ClusterAPIError: If the version cannot be read or parsed.
        """
        ok, stdout, stderr = self._run(["version", "-o", "json"])
        if not ok:
            raise ClusterAPIError(f"could not read the cluster version: {stderr.strip()}")
        try:
            git_version = json.loads(stdout)["serverVersion"]["gitVersion"]
            return parse_version(git_version)
        except (json.JSONDecodeError, KeyError, TypeError, ValueError) as err:
            raise ClusterAPIError(f"could not parse the cluster version; {err}") from err

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def namespace_exists(self, name: str) -> bool:
        return self._get_json(["get", "namespace", name]) is not None

    def get_pvc(self, name: str) -> dict[str, Any] | None:
        return self._get_json(["get", "pvc", name, "-n", self._namespace])

    def get_pv(self, name: str) -> dict[str, Any] | None:
        return self._get_json(["get", "pv", name])

    def secret_exists(self, name: str) -> bool:
        return self._get_json(["get", "secret", name, "-n", self._namespace]) is not None

    def get_pod_by_label(self, label: str) -> dict[str, Any] | None:
        """Return the first pod in the current namespace matching *label*, or None."""
        result = self._get_json(["get", "pod", "-l", label, "-n", self._namespace])
        items = (result or {}).get("items", [])
        return items[0] if items else None

    def find_by_label(self, kind: str, label: str) -> list[dict[str, Any]]:
        """Return every object of *kind* matching *label* across all namespaces."""
        result = self._get_json(["get", kind, "-l", label, "--all-namespaces"])
        return (result or {}).get("items", [])

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create_object_by_yaml(self, text: str) -> None:
        ok, _, stderr = self._run(["create", "-n", self._namespace, "-f", "-"], input_data=text)
        if not ok:
            raise ClusterAPIError(stderr.strip())

    def create_object_by_file(self, path: Path) -> None:
        ok, _, stderr = self._run(["create", "-n", self._namespace, "-f", str(path)])
        if not ok:
            raise ClusterAPIError(stderr.strip())

    def delete_object_by_yaml(self, text: str, ignore_not_found: bool = True) -> None:
        args = ["delete", "-n", self._namespace, "-f", "-"]
        if ignore_not_found:
            args.append("--ignore-not-found")
        ok, _, stderr = self._run(args, input_data=text)
        if not ok:
            raise ClusterAPIError(stderr.strip())

    def exec(self, pod: str, container: str, command: list[str]) -> str:
        """Run *command* inside a pod container and return its stdout.

        Raises:
            ClusterAPIError: If the command fails; the message includes its output.
        """
        ok, stdout, stderr = self._run(["exec", pod, "-n", self._namespace, "-c", container, "--", *command])
        if not ok:
            detail = (stdout or stderr).strip()
            raise ClusterAPIError(f"exec in pod {pod} failed; {detail}")
        return stdout

    def _scc_policy(self, action: str, user: str) -> None:
        ok, _, stderr = self._run(["adm", "policy", action, OPENSHIFT_SCC, "-z", user, "-n", self._namespace])
        if not ok:
            raise ClusterAPIError(stderr.strip())

    def add_user_to_scc(self, user: str) -> None:
        self._scc_policy("add-scc-to-user", user)

    def remove_user_from_scc(self, user: str) -> None:
        self._scc_policy("remove-scc-from-user", user)

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

"""Service identity and authorization lifecycle.

Two strategies share one interface: native cluster RBAC, and an external
authorization service reached through :class:`UcpClient`. Teardown never
raises per step; it reports a list of outcomes and the caller decides.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from install_manager import console, logger
from install_manager.config import ClusterFacts, Flavor, InstallationRequest, RBACMode
from install_manager.constants import (
    CLUSTER_ROLE_BINDING_FILENAME,
    CLUSTER_ROLE_FILENAME,
    SERVICE_ACCOUNT_FILENAME,
)
from install_manager.errors import ClusterAPIError, ConfigurationError, InstallError, TeardownError
from install_manager.kube import ClusterClient
from install_manager.manifests import (
    cluster_role_binding_manifest,
    cluster_role_manifest,
    service_account_manifest,
)
from install_manager.ucp import UcpClient
from install_manager.utils import dump_yaml

TEARDOWN_FAILED_MESSAGE = (
    "could not remove one or more previous Trident artifacts; please delete them manually and try again"
)


@dataclass(frozen=True)
class TeardownOutcome:
    """Result of one teardown step.

    Attributes:
        step: What was removed (e.g. ``cluster role binding``).
        error: The failure, or None on success.
        escalate: Whether a failure of this step must abort the install.
    """

    step: str
    error: Exception | None = None
    escalate: bool = True

    @property
    def failed(self) -> bool:
        return self.error is not None


def teardown_failed(outcomes: list[TeardownOutcome]) -> bool:
    """Return True if any escalating teardown step failed."""
    return any(o.failed and o.escalate for o in outcomes)


def raise_for_teardown(outcomes: list[TeardownOutcome]) -> None:
    if teardown_failed(outcomes):
        raise TeardownError(TEARDOWN_FAILED_MESSAGE)


# ============================================================================
# Strategy interface
# ============================================================================

class RBACManager(ABC):
    """Creates and removes the control plane's identity and permissions."""

    def __init__(self, client: ClusterClient, request: InstallationRequest, facts: ClusterFacts) -> None:
        self.client = client
        self.request = request
        self.facts = facts

    @abstractmethod
    def create(self) -> None:
        """Create every authorization object, in dependency order.

        Raises:
            ClusterAPIError: On the first failing step, naming it.
        """

    @abstractmethod
    def teardown(self) -> list[TeardownOutcome]:
        """Remove leftovers of a previous install; never raises per step."""

    # ------------------------------------------------------------------
    # Shared steps
    # ------------------------------------------------------------------

    def _override_path(self, filename: str) -> Path | None:
        if not self.request.use_custom_yaml:
            return None
        path = self.request.setup_file(filename)
        return path if path.is_file() else None

    def _create(self, what: str, filename: str, manifest: dict) -> None:
        path = self._override_path(filename)
        try:
            if path is not None:
                self.client.create_object_by_file(path)
            else:
                self.client.create_object_by_yaml(dump_yaml(manifest))
        except ClusterAPIError as err:
            raise ClusterAPIError(f"could not create {what}; {err}") from err
        if path is not None:
            logger.info("Created %s from %s.", what, path)
        console.print(f"[green]\u2705 Created {what}.[/green]")

    def _delete(self, what: str, manifest: dict, escalate: bool = True) -> TeardownOutcome:
        return self._step(what, lambda: self.client.delete_object_by_yaml(dump_yaml(manifest)), escalate)

    @staticmethod
    def _step(what: str, action: Callable[[], object], escalate: bool = True) -> TeardownOutcome:
        try:
            action()
        except InstallError as err:
            console.print(f"[yellow]\u26a0\ufe0f  Could not remove {what}: {err}[/yellow]")
            return TeardownOutcome(step=what, error=err, escalate=escalate)
        logger.debug("Removed %s.", what)
        return TeardownOutcome(step=what)

    def _create_service_account(self) -> None:
        self._create("service account", SERVICE_ACCOUNT_FILENAME, service_account_manifest(self.request))

    def _delete_service_account(self) -> TeardownOutcome:
        return self._delete("service account", service_account_manifest(self.request))


# ============================================================================
# Native RBAC
# ============================================================================

class NativeRBAC(RBACManager):
    """Service account, cluster role and binding, plus an SCC grant on OpenShift."""

    @property
    def _openshift(self) -> bool:
        return self.facts.flavor is Flavor.OPENSHIFT

    def create(self) -> None:
        self._create_service_account()
        self._create("cluster role", CLUSTER_ROLE_FILENAME, cluster_role_manifest(self.request, self.facts))
        self._create(
            "cluster role binding",
            CLUSTER_ROLE_BINDING_FILENAME,
            cluster_role_binding_manifest(self.request, self.facts),
        )
        if self._openshift:
            try:
                self.client.add_user_to_scc(self.request.service_account_name)
            except ClusterAPIError as err:
                raise ClusterAPIError(f"could not modify security context constraint; {err}") from err
            console.print("[green]\u2705 Added service account to security context constraint.[/green]")

    def teardown(self) -> list[TeardownOutcome]:
        outcomes = [
            self._delete("cluster role binding", cluster_role_binding_manifest(self.request, self.facts)),
            self._delete("cluster role", cluster_role_manifest(self.request, self.facts)),
            self._delete_service_account(),
        ]
        if self._openshift:
            outcomes.append(self._step(
                "security context constraint grant",
                lambda: self.client.remove_user_from_scc(self.request.service_account_name),
            ))
        return outcomes


# ============================================================================
# External authorization service
# ============================================================================

class ExternalAuthRBAC(RBACManager):
    """Service account natively, role and grant through the external service.

    Failures talking to the external service during teardown are reported
    but never escalated.
    """

    def __init__(
        self, client: ClusterClient, request: InstallationRequest, facts: ClusterFacts, ucp: UcpClient
    ) -> None:
        super().__init__(client, request, facts)
        self.ucp = ucp

    def create(self) -> None:
        self._create_service_account()
        try:
            created = self.ucp.create_role()
        except ClusterAPIError as err:
            raise ClusterAPIError(f"could not create Trident UCP role; {err}") from err
        logger.info("Created Trident UCP role (created=%s).", created)
        try:
            added = self.ucp.add_role_to_service_account(self.request.namespace, self.request.service_account_name)
        except ClusterAPIError as err:
            raise ClusterAPIError(f"could not add Trident UCP role to service account; {err}") from err
        logger.info("Added Trident UCP role to service account (added=%s).", added)
        console.print("[green]\u2705 Granted Trident UCP role to service account.[/green]")

    def teardown(self) -> list[TeardownOutcome]:
        return [
            self._step(
                "Trident UCP role from service account",
                lambda: self.ucp.remove_role_from_service_account(
                    self.request.namespace, self.request.service_account_name
                ),
                escalate=False,
            ),
            self._step("Trident UCP role", self.ucp.delete_role, escalate=False),
            self._delete_service_account(),
        ]


def select_rbac_manager(
    client: ClusterClient,
    request: InstallationRequest,
    facts: ClusterFacts,
    ucp: UcpClient | None = None,
) -> RBACManager:
    """Pick the authorization strategy for this run.

    Raises:
        ConfigurationError: If external authorization is requested without a client.
    """
    if request.rbac_mode is RBACMode.NATIVE:
        return NativeRBAC(client, request, facts)
    if ucp is None:
        raise ConfigurationError("external authorization requires --ucp-host and --ucp-bearer-token")
    return ExternalAuthRBAC(client, request, facts, ucp)

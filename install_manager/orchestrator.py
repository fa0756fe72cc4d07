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

"""High-level installation workflows: install and manifest generation."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from rich.panel import Panel

from install_manager import console, logger
from install_manager.config import ClusterFacts, InstallationRequest
from install_manager.constants import (
    CLAIM_BOUND,
    CLUSTER_ROLE_BINDING_FILENAME,
    CLUSTER_ROLE_FILENAME,
    CSI_MIN_VERSION,
    DAEMONSET_FILENAME,
    DEPLOYMENT_FILENAME,
    NAMESPACE_FILENAME,
    PVC_FILENAME,
    SERVICE_ACCOUNT_FILENAME,
    SERVICE_FILENAME,
    SETUP_FILENAMES,
    STATEFULSET_FILENAME,
)
from install_manager.errors import ClusterAPIError, ConfigurationError
from install_manager.kube import ClusterClient
from install_manager.manifests import (
    cluster_role_binding_manifest,
    cluster_role_manifest,
    csi_daemonset_manifest,
    csi_service_manifest,
    csi_statefulset_manifest,
    deployment_manifest,
    namespace_manifest,
    pvc_manifest,
    service_account_manifest,
)
from install_manager.probes import (
    ProbeState,
    probe_claim,
    probe_installation,
    probe_namespace,
    probe_volume,
)
from install_manager.rbac import RBACManager, raise_for_teardown
from install_manager.readiness import wait_for_pvc_bound, wait_for_rest_interface, wait_for_trident_pod
from install_manager.storage import StorageBackend
from install_manager.utils import dump_yaml, nested_get
from install_manager.volumes import bootstrap_volume, load_backend
from install_manager.workloads import apply_workloads, create_pvc


@dataclass
class InstallResult:
    """Summary of an install run.

    Attributes:
        dry_run: The run stopped after the checks.
        already_installed: A compatible installation was found; nothing was created.
        version: Version reported by the management interface, when waited for.
        warnings: Non-fatal observations from the checks.
    """

    dry_run: bool = False
    already_installed: bool = False
    version: str | None = None
    warnings: list[str] = field(default_factory=list)


# ============================================================================
# Internal helpers
# ============================================================================

def _create_namespace(client: ClusterClient, request: InstallationRequest) -> None:
    path = request.setup_file(NAMESPACE_FILENAME)
    try:
        if request.use_custom_yaml and path.is_file():
            client.create_object_by_file(path)
        else:
            client.create_object_by_yaml(dump_yaml(namespace_manifest(request.namespace)))
    except ClusterAPIError as err:
        raise ClusterAPIError(f"could not create namespace {request.namespace}; {err}") from err
    console.print(f"[green]\u2705 Created namespace {request.namespace}.[/green]")


def _wait_for_control_plane(client: ClusterClient, request: InstallationRequest, facts: ClusterFacts) -> str:
    pod = wait_for_trident_pod(client, request, facts)
    return wait_for_rest_interface(client, request, nested_get(pod, "metadata", "name", default=""))


# ============================================================================
# Public API
# ============================================================================

def run_install(
    request: InstallationRequest,
    client: ClusterClient,
    facts: ClusterFacts,
    rbac: RBACManager,
    backend_loader: Callable[[Path], StorageBackend] = load_backend,
) -> InstallResult:
    """Bring the cluster to the installed state described by *request*.

    Every check runs before the first mutation. Existing compatible objects
    are reused; a compatible existing installation is only re-verified.

    Args:
        request: Validated installation request.
        client: Cluster client bound to the installation namespace.
        facts: Cluster flavor and version.
        rbac: Authorization strategy for this run.
        backend_loader: Loads the storage backend from the setup directory.

    Returns:
        Summary of what the run did.

    Raises:
        InstallError: On the first failing check or step; nothing is rolled back.
    """
    result = InstallResult(dry_run=request.dry_run)

    console.print(Panel.fit("Checking installation state", style="bold blue"))
    if request.csi and not facts.version_at_least(CSI_MIN_VERSION):
        floor = "{}.{}.{}".format(*CSI_MIN_VERSION)
        raise ConfigurationError(f"CSI Trident requires Kubernetes {floor} or later; cluster is {facts.version_string}")
    installation = probe_installation(client, request)
    installation.raise_if_incompatible()

    namespace = probe_namespace(client, request)
    claim = probe_claim(client, request)
    claim.raise_if_incompatible()
    volume = probe_volume(client, request)
    volume.raise_if_incompatible()
    for warning in volume.warnings:
        console.print(f"[yellow]\u26a0\ufe0f  {warning}[/yellow]")
    result.warnings.extend(volume.warnings)

    backend = None
    if not volume.exists:
        backend = backend_loader(request.setup_dir)
    else:
        logger.debug("PV %s exists, skipping storage driver check.", request.pv_name)

    if request.dry_run:
        console.print("[green]\u2705 Dry run completed, no problems found.[/green]")
        return result

    if installation.state is ProbeState.PRESENT_COMPATIBLE:
        console.print(
            f"[yellow]\u2139\ufe0f  Trident is already installed in namespace {request.namespace}; "
            "verifying readiness.[/yellow]"
        )
        result.already_installed = True
        result.version = _wait_for_control_plane(client, request, facts)
        return result

    console.print(Panel.fit(f"Installing Trident in namespace {request.namespace}", style="bold blue"))
    if not namespace.exists:
        _create_namespace(client, request)

    raise_for_teardown(rbac.teardown())
    rbac.create()

    if not claim.exists:
        create_pvc(client, request)
    if not volume.exists:
        bootstrap_volume(client, request, facts, backend)
    if claim.phase != CLAIM_BOUND:
        wait_for_pvc_bound(client, request)

    apply_workloads(client, request)

    console.print(Panel.fit("Waiting for Trident", style="bold blue"))
    result.version = _wait_for_control_plane(client, request, facts)
    console.print("[green]\u2705 Trident installation succeeded.[/green]")
    return result


def generate_manifests(request: InstallationRequest, facts: ClusterFacts) -> list[Path]:
    """Write the installation manifests to the setup directory for editing.

    All well-known files are removed first so that files of the other
    topology never linger.

    Returns:
        Paths of the files written.

    Raises:
        ConfigurationError: If a file cannot be written.
    """
    setup_dir = request.setup_dir
    documents: list[tuple[str, dict]] = [
        (NAMESPACE_FILENAME, namespace_manifest(request.namespace)),
        (SERVICE_ACCOUNT_FILENAME, service_account_manifest(request)),
        (CLUSTER_ROLE_FILENAME, cluster_role_manifest(request, facts)),
        (CLUSTER_ROLE_BINDING_FILENAME, cluster_role_binding_manifest(request, facts)),
        (PVC_FILENAME, pvc_manifest(request)),
    ]
    if request.csi:
        documents += [
            (SERVICE_FILENAME, csi_service_manifest(request)),
            (STATEFULSET_FILENAME, csi_statefulset_manifest(request)),
            (DAEMONSET_FILENAME, csi_daemonset_manifest(request)),
        ]
    else:
        documents.append((DEPLOYMENT_FILENAME, deployment_manifest(request)))

    written: list[Path] = []
    try:
        for filename in SETUP_FILENAMES:
            request.setup_file(filename).unlink(missing_ok=True)
        setup_dir.mkdir(parents=True, exist_ok=True)
        for filename, manifest in documents:
            path = request.setup_file(filename)
            path.write_text(dump_yaml(manifest))
            written.append(path)
    except OSError as err:
        raise ConfigurationError(f"could not write YAML file; {err}") from err

    console.print(f"[green]\u2705 Wrote installation YAML files to {setup_dir}[/green]")
    return written

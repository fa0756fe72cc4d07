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

"""Claim and workload submission, with validation of user override files."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

import yaml

from install_manager import console, logger
from install_manager.config import InstallationRequest
from install_manager.constants import (
    CONTAINER_TRIDENT,
    DAEMONSET_FILENAME,
    DEPLOYMENT_FILENAME,
    PVC_FILENAME,
    SERVICE_FILENAME,
    STATEFULSET_FILENAME,
)
from install_manager.errors import ClusterAPIError, ConfigurationError
from install_manager.kube import ClusterClient
from install_manager.manifests import (
    csi_daemonset_manifest,
    csi_service_manifest,
    csi_statefulset_manifest,
    deployment_manifest,
    pvc_manifest,
)
from install_manager.utils import dump_yaml, load_yaml_file, nested_get


@dataclass(frozen=True)
class WorkloadSpec:
    """One object submitted by the applier.

    Attributes:
        kind: Lower-case object kind used in messages.
        filename: Override file name in the setup directory.
        manifest: Rendered manifest used when no override applies.
        label_value: Identity label value the object must carry.
        has_pod_template: Whether the pod template and containers are checked.
    """

    kind: str
    filename: str
    manifest: dict[str, Any]
    label_value: str
    has_pod_template: bool = True


def workload_specs(request: InstallationRequest) -> list[WorkloadSpec]:
    """Return the workload objects for the request's topology, in submission order."""
    if not request.csi:
        return [WorkloadSpec("deployment", DEPLOYMENT_FILENAME, deployment_manifest(request), request.label_value)]
    return [
        WorkloadSpec("service", SERVICE_FILENAME, csi_service_manifest(request), request.label_value,
                     has_pod_template=False),
        WorkloadSpec("statefulset", STATEFULSET_FILENAME, csi_statefulset_manifest(request), request.label_value),
        WorkloadSpec("daemonset", DAEMONSET_FILENAME, csi_daemonset_manifest(request), request.node_label_value),
    ]


def _load_override(path: Path, kind: str) -> dict[str, Any]:
    try:
        return load_yaml_file(path)
    except (OSError, ValueError, yaml.YAMLError) as err:
        raise ConfigurationError(
            f"please correct the {kind} YAML file; could not load {kind} YAML file; {err}"
        ) from err


# ============================================================================
# Override validation
# ============================================================================

def validate_workload_file(path: Path, spec: WorkloadSpec, label_key: str) -> None:
    """Check a user-supplied workload file before it is submitted.

    Args:
        path: Override file.
        spec: Expected kind, label and shape.
        label_key: Identity label key.

    Raises:
        ConfigurationError: If the object or its pod template lacks the
            identity label, or the control-plane container is missing.
    """
    doc = _load_override(path, spec.kind)
    label = f'"{label_key}: {spec.label_value}"'

    def _fail(problem: str) -> ConfigurationError:
        return ConfigurationError(f"please correct the {spec.kind} YAML file; {problem}")

    if nested_get(doc, "metadata", "labels", label_key) != spec.label_value:
        raise _fail(f"the Trident {spec.kind} must have the label {label}")
    if not spec.has_pod_template:
        return
    if nested_get(doc, "spec", "template", "metadata", "labels", label_key) != spec.label_value:
        raise _fail(f"the Trident {spec.kind}'s pod template must have the label {label}")
    containers = nested_get(doc, "spec", "template", "spec", "containers", default=[])
    if not any(c.get("name") == CONTAINER_TRIDENT and c.get("image") for c in containers if isinstance(c, dict)):
        raise _fail(f"the Trident {spec.kind} must define the {CONTAINER_TRIDENT} container")


def validate_pvc_file(path: Path, request: InstallationRequest) -> None:
    """Check a user-supplied claim file: identity label, name and namespace.

    Raises:
        ConfigurationError: Naming the first mismatch.
    """
    doc = _load_override(path, "PVC")

    def _fail(problem: str) -> ConfigurationError:
        return ConfigurationError(f"please correct the PVC YAML file; {problem}")

    if nested_get(doc, "metadata", "labels", request.label_key) != request.label_value:
        raise _fail(f'the Trident PVC must have the label "{request.label_key}: {request.label_value}"')
    if nested_get(doc, "metadata", "name") != request.pvc_name:
        raise _fail(f"the Trident PVC must be named {request.pvc_name}")
    if nested_get(doc, "metadata", "namespace") != request.namespace:
        raise _fail(f"the Trident PVC must specify namespace {request.namespace}")


def _override(request: InstallationRequest, filename: str) -> Path | None:
    if not request.use_custom_yaml:
        return None
    path = request.setup_file(filename)
    return path if path.is_file() else None


# ============================================================================
# Submission
# ============================================================================

def create_pvc(client: ClusterClient, request: InstallationRequest) -> None:
    """Create the control-plane claim, from the override file when one applies.

    Raises:
        ConfigurationError: If the override file is invalid.
        ClusterAPIError: If the claim cannot be created.
    """
    path = _override(request, PVC_FILENAME)
    try:
        if path is not None:
            validate_pvc_file(path, request)
            client.create_object_by_file(path)
        else:
            client.create_object_by_yaml(dump_yaml(pvc_manifest(request)))
    except ClusterAPIError as err:
        raise ClusterAPIError(f"could not create PVC {request.pvc_name}; {err}") from err
    console.print(f"[green]\u2705 Created PVC {request.pvc_name}.[/green]")


def apply_workloads(client: ClusterClient, request: InstallationRequest) -> None:
    """Submit the control-plane workloads in order.

    Single topology submits one deployment; distributed submits the service,
    then the stateful-set, then the daemon-set. Each override file is
    validated before submission.

    Raises:
        ConfigurationError: If an override file is invalid.
        ClusterAPIError: On the first failed submission.
    """
    for spec in workload_specs(request):
        path = _override(request, spec.filename)
        try:
            if path is not None:
                validate_workload_file(path, spec, request.label_key)
                client.create_object_by_file(path)
                logger.info("Created Trident %s from %s.", spec.kind, path)
            else:
                client.create_object_by_yaml(dump_yaml(spec.manifest))
        except ClusterAPIError as err:
            raise ClusterAPIError(f"could not create Trident {spec.kind}; {err}") from err
        console.print(f"[green]\u2705 Created Trident {spec.kind}.[/green]")

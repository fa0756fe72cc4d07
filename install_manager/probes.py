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

"""Read-only existence and compatibility checks for every target object.

No function in this module mutates the cluster. Lookup failures propagate as
:class:`ClusterAPIError`; absence is reported as :attr:`ProbeState.ABSENT`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from install_manager import logger
from install_manager.config import InstallationRequest
from install_manager.constants import CLAIM_BOUND, CLAIM_LOST, VOLUME_BOUND, VOLUME_FAILED, VOLUME_RELEASED
from install_manager.errors import ClusterAPIError, IncompatibilityError
from install_manager.kube import ClusterClient
from install_manager.utils import nested_get
from install_manager.validation import quantity_bytes


class ProbeState(str, Enum):
    ABSENT = "absent"
    PRESENT_COMPATIBLE = "present-compatible"
    PRESENT_INCOMPATIBLE = "present-incompatible"


@dataclass(frozen=True)
class ResourceProbe:
    """Result of probing one target object.

    Attributes:
        kind: Human-readable object kind (e.g. ``PVC``).
        name: Object name.
        state: Whether the object is absent, usable, or in the way.
        obj: The fetched object, when present.
        remediation: What the operator must do, when incompatible.
        warnings: Non-fatal observations (e.g. capacity mismatch).
    """

    kind: str
    name: str
    state: ProbeState
    obj: dict[str, Any] | None = None
    remediation: str = ""
    warnings: list[str] = field(default_factory=list)

    @property
    def exists(self) -> bool:
        return self.state is not ProbeState.ABSENT

    @property
    def phase(self) -> str:
        return nested_get(self.obj, "status", "phase", default="")

    def raise_if_incompatible(self) -> None:
        if self.state is ProbeState.PRESENT_INCOMPATIBLE:
            raise IncompatibilityError(self.remediation)


def _absent(kind: str, name: str) -> ResourceProbe:
    return ResourceProbe(kind=kind, name=name, state=ProbeState.ABSENT)


def _incompatible(kind: str, name: str, obj: dict[str, Any], remediation: str) -> ResourceProbe:
    return ResourceProbe(kind=kind, name=name, state=ProbeState.PRESENT_INCOMPATIBLE, obj=obj, remediation=remediation)


def _has_identity_label(obj: dict[str, Any], request: InstallationRequest) -> bool:
    labels = nested_get(obj, "metadata", "labels", default={})
    return labels.get(request.label_key) == request.label_value


# ============================================================================
# Probes
# ============================================================================

def probe_namespace(client: ClusterClient, request: InstallationRequest) -> ResourceProbe:
    try:
        exists = client.namespace_exists(request.namespace)
    except ClusterAPIError as err:
        raise ClusterAPIError(f"could not check if namespace {request.namespace} exists; {err}") from err
    logger.debug("Namespace %s exists: %s", request.namespace, exists)
    if not exists:
        return _absent("namespace", request.namespace)
    return ResourceProbe(kind="namespace", name=request.namespace, state=ProbeState.PRESENT_COMPATIBLE)


def probe_claim(client: ClusterClient, request: InstallationRequest) -> ResourceProbe:
    """Classify the control-plane claim.

    A lost claim, a claim bound to another volume, or a claim without the
    identity label is incompatible.
    """
    name = request.pvc_name
    try:
        pvc = client.get_pvc(name)
    except ClusterAPIError as err:
        raise ClusterAPIError(f"could not establish the presence of PVC {name}; {err}") from err
    if pvc is None:
        logger.debug("PVC %s does not exist.", name)
        return _absent("PVC", name)

    phase = nested_get(pvc, "status", "phase", default="")
    if phase == CLAIM_LOST:
        return _incompatible("PVC", name, pvc, f"PVC {name} phase is Lost; please delete it and try again")
    if phase == CLAIM_BOUND and nested_get(pvc, "spec", "volumeName") != request.pv_name:
        return _incompatible(
            "PVC", name, pvc,
            f"PVC {name} is Bound, but not to PV {request.pv_name}; "
            "please specify a different PV and/or PVC",
        )
    if not _has_identity_label(pvc, request):
        return _incompatible(
            "PVC", name, pvc,
            f"PVC {name} does not have {request.label} label; please add label or delete PVC and try again",
        )

    logger.debug("PVC %s already exists in phase %s.", name, phase)
    return ResourceProbe(kind="PVC", name=name, state=ProbeState.PRESENT_COMPATIBLE, obj=pvc)


def _capacity_warnings(pv: dict[str, Any], request: InstallationRequest) -> list[str]:
    capacity = nested_get(pv, "spec", "capacity", "storage")
    if capacity is None:
        return [f"Could not determine size of existing PV {request.pv_name}."]
    try:
        actual = quantity_bytes(str(capacity))
    except ValueError:
        return [f"Could not determine size of existing PV {request.pv_name}."]
    if actual != request.volume_bytes:
        return [
            f"Existing PV {request.pv_name} size ({capacity}) does not match request ({request.volume_size})."
        ]
    return []


def probe_volume(client: ClusterClient, request: InstallationRequest) -> ResourceProbe:
    """Classify the control-plane persistent volume.

    Released or failed volumes, volumes bound to another claim or namespace,
    and unlabelled volumes are incompatible. A capacity mismatch is only a
    warning.
    """
    name = request.pv_name
    try:
        pv = client.get_pv(name)
    except ClusterAPIError as err:
        raise ClusterAPIError(f"could not establish the presence of PV {name}; {err}") from err
    if pv is None:
        logger.debug("PV %s does not exist.", name)
        return _absent("PV", name)

    phase = nested_get(pv, "status", "phase", default="")
    if phase in (VOLUME_RELEASED, VOLUME_FAILED):
        return _incompatible("PV", name, pv, f"PV {name} phase is {phase}; please delete it and try again")

    claim_ref = nested_get(pv, "spec", "claimRef")
    if phase == VOLUME_BOUND and claim_ref:
        if claim_ref.get("name") != request.pvc_name:
            return _incompatible(
                "PV", name, pv,
                f"PV {name} is Bound, but not to PVC {request.pvc_name}; please delete PV and try again",
            )
        if claim_ref.get("namespace") != request.namespace:
            return _incompatible(
                "PV", name, pv,
                f"PV {name} is Bound to a PVC in namespace {claim_ref.get('namespace')}; "
                "please delete PV and try again",
            )
    if not _has_identity_label(pv, request):
        return _incompatible(
            "PV", name, pv,
            f"PV {name} does not have {request.label} label; please add label or delete PV and try again",
        )

    warnings = _capacity_warnings(pv, request)
    logger.debug("PV %s already exists in phase %s.", name, phase)
    return ResourceProbe(kind="PV", name=name, state=ProbeState.PRESENT_COMPATIBLE, obj=pv, warnings=warnings)


def probe_installation(client: ClusterClient, request: InstallationRequest) -> ResourceProbe:
    """Look for an existing control-plane workload carrying the identity label.

    An installation in the target namespace is compatible (a re-run only
    verifies readiness); one in any other namespace is not.
    """
    kind = "statefulset" if request.csi else "deployment"
    try:
        found = client.find_by_label(kind, request.label)
    except ClusterAPIError as err:
        raise ClusterAPIError(f"could not check if a Trident {kind} exists; {err}") from err
    if not found:
        return _absent(kind, request.service_account_name)

    obj = found[0]
    namespace = nested_get(obj, "metadata", "namespace", default="")
    name = nested_get(obj, "metadata", "name", default=request.service_account_name)
    if namespace != request.namespace:
        return _incompatible(kind, name, obj, f"Trident is already installed in namespace {namespace}")
    return ResourceProbe(kind=kind, name=name, state=ProbeState.PRESENT_COMPATIBLE, obj=obj)

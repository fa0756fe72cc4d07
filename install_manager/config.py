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

"""Configuration classes, installation request and cluster facts."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from install_manager.constants import (
    CLI_KUBECTL,
    CSI_SUFFIX,
    DEFAULT_BACKOFF_INITIAL_SECONDS,
    DEFAULT_BACKOFF_MAX_SECONDS,
    DEFAULT_ETCD_IMAGE,
    DEFAULT_K8S_TIMEOUT_SECONDS,
    DEFAULT_SETUP_DIR,
    DEFAULT_TRIDENT_IMAGE,
    DEFAULT_VOLUME_SIZE,
    LABEL_KEY,
    ORCHESTRATOR_NAME,
    TRIDENT_CSI_LABEL_VALUE,
    TRIDENT_LABEL_VALUE,
    TRIDENT_NODE_LABEL_VALUE,
)


# ============================================================================
# Configuration classes
# ============================================================================

class InstallerSettings(BaseSettings):
    """Installer defaults, auto-loaded from TRIDENT_* env vars.

    Attributes:
        namespace: Installation namespace, or None to use the current one.
        trident_image: Control-plane image.
        etcd_image: Bootstrap-dependency (etcd) image.
        volume_size: Default size of the control-plane volume.
        k8s_timeout: Seconds to wait on each readiness condition.
        setup_dir: Directory holding backend.json and custom YAML files.
        backoff_initial: First readiness back-off interval in seconds.
        backoff_max: Upper bound on a single readiness back-off interval.
        cli: Cluster CLI binary used for every cluster operation.
    """

    model_config = SettingsConfigDict(env_prefix="TRIDENT_", extra="ignore")

    namespace: str | None = None
    trident_image: str = DEFAULT_TRIDENT_IMAGE
    etcd_image: str = DEFAULT_ETCD_IMAGE
    volume_size: str = DEFAULT_VOLUME_SIZE
    k8s_timeout: float = Field(default=DEFAULT_K8S_TIMEOUT_SECONDS, gt=0)
    setup_dir: Path = DEFAULT_SETUP_DIR
    backoff_initial: float = Field(default=DEFAULT_BACKOFF_INITIAL_SECONDS, gt=0)
    backoff_max: float = Field(default=DEFAULT_BACKOFF_MAX_SECONDS, gt=0)
    cli: str = CLI_KUBECTL


# ============================================================================
# Enumerations
# ============================================================================

class Topology(str, Enum):
    """Deployment shape of the control plane."""

    SINGLE = "single"
    DISTRIBUTED = "distributed"


class RBACMode(str, Enum):
    """Authorization back end used to grant the service identity its rights."""

    NATIVE = "native"
    EXTERNAL = "external"


class Flavor(str, Enum):
    """Cluster vendor variant."""

    KUBERNETES = "kubernetes"
    OPENSHIFT = "openshift"


# ============================================================================
# Cluster facts
# ============================================================================

@dataclass(frozen=True)
class ClusterFacts:
    """Facts read once from the cluster at start-up.

    Attributes:
        flavor: Cluster vendor variant.
        version: Server version as (major, minor, patch).
        namespace: The client's current namespace.
        cli: Name of the cluster CLI (used in remediation hints).
    """

    flavor: Flavor
    version: tuple[int, int, int]
    namespace: str
    cli: str = CLI_KUBECTL

    @property
    def version_string(self) -> str:
        return "v{}.{}.{}".format(*self.version)

    def version_at_least(self, minimum: tuple[int, int, int]) -> bool:
        return self.version >= minimum


# ============================================================================
# Installation request
# ============================================================================

def default_name(topology: Topology) -> str:
    """Default claim/volume/backend-volume name for a topology."""
    if topology is Topology.DISTRIBUTED:
        return ORCHESTRATOR_NAME + CSI_SUFFIX
    return ORCHESTRATOR_NAME


@dataclass(frozen=True)
class InstallationRequest:
    """Validated, immutable installation parameters.

    Built once by :func:`install_manager.validation.build_request` and passed
    explicitly to every component.

    Attributes:
        topology: Single-replica or distributed deployment.
        namespace: Installation namespace.
        pvc_name: Name of the control-plane volume claim.
        pv_name: Name of the persistent volume bound to the claim.
        volume_name: Name of the volume allocated on the storage backend.
        volume_size: Requested size as given by the user.
        volume_bytes: Requested size in bytes.
        trident_image: Control-plane image.
        etcd_image: Bootstrap-dependency image.
        rbac_mode: Native RBAC or external authorization service.
        k8s_timeout: Seconds to wait on each readiness condition.
        setup_dir: Directory holding backend.json and custom YAML files.
        dry_run: Run every check, change nothing.
        use_custom_yaml: Prefer files in setup_dir over rendered manifests.
        generate_yaml: Write manifests to setup_dir instead of installing.
        debug: Render debug-enabled workloads.
        backoff_initial: First readiness back-off interval in seconds.
        backoff_max: Upper bound on a single readiness back-off interval.
    """

    topology: Topology
    namespace: str
    pvc_name: str
    pv_name: str
    volume_name: str
    volume_size: str
    volume_bytes: int
    trident_image: str
    etcd_image: str
    rbac_mode: RBACMode
    k8s_timeout: float
    setup_dir: Path
    dry_run: bool = False
    use_custom_yaml: bool = False
    generate_yaml: bool = False
    debug: bool = False
    backoff_initial: float = DEFAULT_BACKOFF_INITIAL_SECONDS
    backoff_max: float = DEFAULT_BACKOFF_MAX_SECONDS

    @property
    def csi(self) -> bool:
        return self.topology is Topology.DISTRIBUTED

    @property
    def label_key(self) -> str:
        return LABEL_KEY

    @property
    def label_value(self) -> str:
        return TRIDENT_CSI_LABEL_VALUE if self.csi else TRIDENT_LABEL_VALUE

    @property
    def label(self) -> str:
        """Identity label as a ``key=value`` selector."""
        return f"{self.label_key}={self.label_value}"

    @property
    def node_label_value(self) -> str:
        return TRIDENT_NODE_LABEL_VALUE

    @property
    def service_account_name(self) -> str:
        return default_name(self.topology)

    def setup_file(self, filename: str) -> Path:
        return self.setup_dir / filename

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

"""Constants: names, labels, file names, version floors and defaults."""

from __future__ import annotations

import re
from pathlib import Path

# -- Resolved paths --
DEFAULT_SETUP_DIR = Path.cwd() / "setup"

# -- Orchestrator identity --
ORCHESTRATOR_NAME = "trident"
PREFERRED_NAMESPACE = ORCHESTRATOR_NAME
CSI_SUFFIX = "-csi"

CONTAINER_TRIDENT = "trident-main"
CONTAINER_ETCD = "etcd"
CONTAINER_CSI_PROVISIONER = "csi-provisioner"
CONTAINER_CSI_REGISTRAR = "driver-registrar"

# Management interface reachable from inside the control-plane pod
POD_SERVER = "127.0.0.1:8000"
MANAGEMENT_CLI = "tridentctl"

# -- Images --
DEFAULT_TRIDENT_IMAGE = "netapp/trident:18.07.0"
DEFAULT_ETCD_IMAGE = "quay.io/coreos/etcd:v3.2.19"
QUALIFIED_ETCD_VERSION = "v3.2.19"
CSI_PROVISIONER_IMAGE = "quay.io/k8scsi/csi-provisioner:v0.3.1"
CSI_REGISTRAR_IMAGE = "quay.io/k8scsi/driver-registrar:v0.3.0"

# -- Identity labels --
LABEL_KEY = "app"
TRIDENT_LABEL_VALUE = "trident.netapp.io"
TRIDENT_CSI_LABEL_VALUE = "controller.csi.trident.netapp.io"
TRIDENT_NODE_LABEL_VALUE = "node.csi.trident.netapp.io"

# -- Volume defaults --
DEFAULT_VOLUME_SIZE = "2Gi"
VOLUME_STORAGE_CLASS = ""
CHAP_SECRET_PREFIX = "trident-chap"

# -- Version floors (major, minor, patch) --
CHAP_MIN_VERSION = (1, 7, 0)
CSI_MIN_VERSION = (1, 11, 0)

# -- Timeouts & back-off --
DEFAULT_K8S_TIMEOUT_SECONDS = 180
DEFAULT_BACKOFF_INITIAL_SECONDS = 0.5
DEFAULT_BACKOFF_MAX_SECONDS = 60.0
DEFAULT_CLI_TIMEOUT_SECONDS = 60

# -- Cluster CLIs --
CLI_KUBECTL = "kubectl"
CLI_OPENSHIFT = "oc"
OPENSHIFT_SCC = "privileged"

# -- Setup directory file names --
BACKEND_CONFIG_FILENAME = "backend.json"
NAMESPACE_FILENAME = "trident-namespace.yaml"
SERVICE_ACCOUNT_FILENAME = "trident-serviceaccount.yaml"
CLUSTER_ROLE_FILENAME = "trident-clusterrole.yaml"
CLUSTER_ROLE_BINDING_FILENAME = "trident-clusterrolebinding.yaml"
PVC_FILENAME = "trident-pvc.yaml"
DEPLOYMENT_FILENAME = "trident-deployment.yaml"
SERVICE_FILENAME = "trident-service.yaml"
STATEFULSET_FILENAME = "trident-statefulset.yaml"
DAEMONSET_FILENAME = "trident-daemonset.yaml"

SETUP_FILENAMES = (
    NAMESPACE_FILENAME,
    SERVICE_ACCOUNT_FILENAME,
    CLUSTER_ROLE_FILENAME,
    CLUSTER_ROLE_BINDING_FILENAME,
    PVC_FILENAME,
    DEPLOYMENT_FILENAME,
    SERVICE_FILENAME,
    STATEFULSET_FILENAME,
    DAEMONSET_FILENAME,
)

# -- Naming authority (DNS-1123), matched with fullmatch --
DNS1123_LABEL_REGEX = re.compile(r"[a-z0-9]([-a-z0-9]*[a-z0-9])?")
DNS1123_SUBDOMAIN_REGEX = re.compile(
    r"[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*"
)
DNS1123_LABEL_MAX_LENGTH = 63
DNS1123_SUBDOMAIN_MAX_LENGTH = 253
DNS1123_LABEL_FORMAT = (
    "a DNS-1123 label must consist of lower case alphanumeric characters or '-', "
    "and must start and end with an alphanumeric character"
)
DNS1123_SUBDOMAIN_FORMAT = (
    "a DNS-1123 subdomain must consist of lower case alphanumeric characters, '-' or '.', "
    "and must start and end with an alphanumeric character"
)

# -- Phases --
CLAIM_BOUND = "Bound"
CLAIM_LOST = "Lost"
VOLUME_BOUND = "Bound"
VOLUME_RELEASED = "Released"
VOLUME_FAILED = "Failed"
POD_RUNNING = "Running"

# -- External authorization (UCP) --
UCP_ROLE_NAME = "trident"
UCP_GRANT_OBJECT = "kubernetesnamespaces"
UCP_REQUEST_TIMEOUT_SECONDS = 30

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

"""Manifest builders for every object the installer creates.

Each builder returns a plain dict ready for YAML serialization. Builders that
depend on the cluster flavor or version take :class:`ClusterFacts`.
"""

from __future__ import annotations

import base64

from install_manager.config import ClusterFacts, Flavor, InstallationRequest
from install_manager.constants import (
    CONTAINER_CSI_PROVISIONER,
    CONTAINER_CSI_REGISTRAR,
    CONTAINER_ETCD,
    CONTAINER_TRIDENT,
    CSI_PROVISIONER_IMAGE,
    CSI_REGISTRAR_IMAGE,
    LABEL_KEY,
    MANAGEMENT_CLI,
    POD_SERVER,
    VOLUME_STORAGE_CLASS,
)

ETCD_DATA_DIR = "/var/etcd/data"
ETCD_CLIENT_URL = "http://127.0.0.1:8001"
CSI_SOCKET_DIR = "/var/lib/csi/sockets/pluginproxy/"
CSI_PLUGIN_DIR = "/var/lib/kubelet/plugins/csi.trident.netapp.io/"
CSI_DRIVER_NAME = "csi.trident.netapp.io"
CSI_SERVICE_PORT = 34571

RBAC_RULES = [
    {"apiGroups": [""], "resources": ["namespaces"], "verbs": ["get", "list"]},
    {"apiGroups": [""], "resources": ["persistentvolumes"],
     "verbs": ["get", "list", "watch", "create", "delete"]},
    {"apiGroups": [""], "resources": ["persistentvolumeclaims"],
     "verbs": ["get", "list", "watch", "update"]},
    {"apiGroups": ["storage.k8s.io"], "resources": ["storageclasses"], "verbs": ["get", "list", "watch"]},
    {"apiGroups": [""], "resources": ["events"], "verbs": ["list", "watch", "create", "update", "patch"]},
    {"apiGroups": [""], "resources": ["secrets"], "verbs": ["get", "list", "create", "delete"]},
    {"apiGroups": ["trident.netapp.io"], "resources": ["*"], "verbs": ["*"]},
]

CSI_RBAC_RULES = [
    {"apiGroups": [""], "resources": ["nodes"], "verbs": ["get", "list", "watch", "update"]},
    {"apiGroups": ["storage.k8s.io"], "resources": ["volumeattachments"],
     "verbs": ["get", "list", "watch", "update"]},
    {"apiGroups": [""], "resources": ["persistentvolumeclaims/status"], "verbs": ["update", "patch"]},
]


def _labels(value: str) -> dict[str, str]:
    return {LABEL_KEY: value}


def _rbac_api_version(facts: ClusterFacts) -> str:
    if facts.flavor is Flavor.OPENSHIFT:
        return "authorization.openshift.io/v1"
    if facts.version_at_least((1, 8, 0)):
        return "rbac.authorization.k8s.io/v1"
    return "rbac.authorization.k8s.io/v1beta1"


# ============================================================================
# Namespace & RBAC
# ============================================================================

def namespace_manifest(namespace: str) -> dict:
    return {"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": namespace}}


def service_account_manifest(request: InstallationRequest) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "ServiceAccount",
        "metadata": {"name": request.service_account_name, "namespace": request.namespace},
    }


def cluster_role_manifest(request: InstallationRequest, facts: ClusterFacts) -> dict:
    """Build the cluster role, using the API group the cluster flavor and version expect.

    Args:
        request: Installation request (topology decides the CSI rules).
        facts: Cluster flavor and version.

    Returns:
        ClusterRole resource as a dictionary.
    """
    rules = list(RBAC_RULES)
    if request.csi:
        rules.extend(CSI_RBAC_RULES)
    return {
        "apiVersion": _rbac_api_version(facts),
        "kind": "ClusterRole",
        "metadata": {"name": request.service_account_name},
        "rules": rules,
    }


def cluster_role_binding_manifest(request: InstallationRequest, facts: ClusterFacts) -> dict:
    """Build the binding between the service account and the cluster role.

    OpenShift's authorization API names the subject through ``userNames``;
    upstream RBAC uses a ``subjects`` list.

    Args:
        request: Installation request with namespace and topology.
        facts: Cluster flavor and version.

    Returns:
        ClusterRoleBinding resource as a dictionary.
    """
    name = request.service_account_name
    binding: dict = {
        "apiVersion": _rbac_api_version(facts),
        "kind": "ClusterRoleBinding",
        "metadata": {"name": name},
        "roleRef": {"name": name},
    }
    if facts.flavor is Flavor.OPENSHIFT:
        binding["userNames"] = [f"system:serviceaccount:{request.namespace}:{name}"]
    else:
        binding["roleRef"].update({"apiGroup": "rbac.authorization.k8s.io", "kind": "ClusterRole"})
        binding["subjects"] = [{"kind": "ServiceAccount", "name": name, "namespace": request.namespace}]
    return binding


# ============================================================================
# Claim, volume & session secret
# ============================================================================

def pvc_manifest(request: InstallationRequest) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {
            "name": request.pvc_name,
            "namespace": request.namespace,
            "labels": _labels(request.label_value),
        },
        "spec": {
            "accessModes": ["ReadWriteOnce"],
            "storageClassName": VOLUME_STORAGE_CLASS,
            "resources": {"requests": {"storage": request.volume_size}},
        },
    }


def _pv_manifest(request: InstallationRequest, source_key: str, source: dict) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "PersistentVolume",
        "metadata": {"name": request.pv_name, "labels": _labels(request.label_value)},
        "spec": {
            "capacity": {"storage": request.volume_size},
            "accessModes": ["ReadWriteOnce"],
            "persistentVolumeReclaimPolicy": "Retain",
            "storageClassName": VOLUME_STORAGE_CLASS,
            "claimRef": {"name": request.pvc_name, "namespace": request.namespace},
            source_key: source,
        },
    }


def nfs_pv_manifest(request: InstallationRequest, server: str, path: str) -> dict:
    return _pv_manifest(request, "nfs", {"server": server, "path": path})


def iscsi_pv_manifest(request: InstallationRequest, portal: str, iqn: str, lun: int) -> dict:
    return _pv_manifest(request, "iscsi", {
        "targetPortal": portal,
        "iqn": iqn,
        "lun": lun,
        "fsType": "ext4",
        "readOnly": False,
    })


def chap_iscsi_pv_manifest(
    request: InstallationRequest, portal: str, iqn: str, lun: int, secret_name: str
) -> dict:
    pv = iscsi_pv_manifest(request, portal, iqn, lun)
    pv["spec"]["iscsi"].update({
        "chapAuthDiscovery": True,
        "chapAuthSession": True,
        "secretRef": {"name": secret_name},
    })
    return pv


def _b64(value: str) -> str:
    return base64.b64encode(value.encode("utf-8")).decode("utf-8")


def chap_secret_manifest(
    secret_name: str, namespace: str, username: str, initiator_secret: str, target_secret: str
) -> dict:
    """Build the iSCSI CHAP session secret referenced by an authenticated volume.

    Args:
        secret_name: Derived secret name.
        namespace: Installation namespace.
        username: CHAP user name for both directions.
        initiator_secret: Initiator-side CHAP secret.
        target_secret: Target-side CHAP secret.

    Returns:
        Secret resource as a dictionary with base64-encoded data.
    """
    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {"name": secret_name, "namespace": namespace},
        "type": "kubernetes.io/iscsi-chap",
        "data": {
            "discovery.sendtargets.auth.username": _b64(username),
            "discovery.sendtargets.auth.password": _b64(initiator_secret),
            "discovery.sendtargets.auth.username_in": _b64(username),
            "discovery.sendtargets.auth.password_in": _b64(target_secret),
            "node.session.auth.username": _b64(username),
            "node.session.auth.password": _b64(initiator_secret),
            "node.session.auth.username_in": _b64(username),
            "node.session.auth.password_in": _b64(target_secret),
        },
    }


# ============================================================================
# Workloads
# ============================================================================

def _trident_args(request: InstallationRequest, *extra: str) -> list[str]:
    args = [f"--etcd_v3={ETCD_CLIENT_URL}", *extra]
    if request.debug:
        args.append("-debug")
    return args


def _liveness_probe() -> dict:
    return {
        "exec": {"command": [MANAGEMENT_CLI, "-s", POD_SERVER, "version"]},
        "failureThreshold": 2,
        "initialDelaySeconds": 120,
        "periodSeconds": 120,
        "timeoutSeconds": 90,
    }


def _etcd_container(request: InstallationRequest) -> dict:
    return {
        "name": CONTAINER_ETCD,
        "image": request.etcd_image,
        "command": ["/usr/local/bin/etcd"],
        "args": [
            "-name=etcd1",
            "-advertise-client-urls=" + ETCD_CLIENT_URL,
            "-listen-client-urls=" + ETCD_CLIENT_URL,
            "-initial-advertise-peer-urls=http://127.0.0.1:8002",
            "-listen-peer-urls=http://127.0.0.1:8002",
            "-data-dir=" + ETCD_DATA_DIR,
            "-initial-cluster=etcd1=http://127.0.0.1:8002",
        ],
        "volumeMounts": [{"name": "etcd-vol", "mountPath": ETCD_DATA_DIR}],
    }


def _etcd_volume(request: InstallationRequest) -> dict:
    return {"name": "etcd-vol", "persistentVolumeClaim": {"claimName": request.pvc_name}}


def deployment_manifest(request: InstallationRequest) -> dict:
    """Build the single-replica control-plane deployment."""
    labels = _labels(request.label_value)
    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {"name": request.service_account_name, "labels": labels},
        "spec": {
            "replicas": 1,
            "strategy": {"type": "Recreate"},
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "serviceAccount": request.service_account_name,
                    "containers": [
                        {
                            "name": CONTAINER_TRIDENT,
                            "image": request.trident_image,
                            "command": ["/usr/local/bin/trident_orchestrator"],
                            "args": _trident_args(request, "--k8s_pod"),
                            "livenessProbe": _liveness_probe(),
                        },
                        _etcd_container(request),
                    ],
                    "volumes": [_etcd_volume(request)],
                },
            },
        },
    }


def csi_service_manifest(request: InstallationRequest) -> dict:
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {"name": request.service_account_name, "labels": _labels(request.label_value)},
        "spec": {
            "selector": _labels(request.label_value),
            "ports": [{"protocol": "TCP", "port": CSI_SERVICE_PORT, "targetPort": CSI_SERVICE_PORT}],
        },
    }


def csi_statefulset_manifest(request: InstallationRequest) -> dict:
    """Build the distributed control-plane stateful-set (controller role)."""
    labels = _labels(request.label_value)
    name = request.service_account_name
    return {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": {"name": name, "labels": labels},
        "spec": {
            "serviceName": name,
            "replicas": 1,
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "serviceAccount": name,
                    "containers": [
                        {
                            "name": CONTAINER_TRIDENT,
                            "image": request.trident_image,
                            "command": ["/usr/local/bin/trident_orchestrator"],
                            "args": _trident_args(
                                request,
                                "--csi_node_name=$(KUBE_NODE_NAME)",
                                "--csi_endpoint=$(CSI_ENDPOINT)",
                                "--csi_role=controller",
                            ),
                            "env": [
                                {"name": "KUBE_NODE_NAME",
                                 "valueFrom": {"fieldRef": {"apiVersion": "v1", "fieldPath": "spec.nodeName"}}},
                                {"name": "CSI_ENDPOINT", "value": "unix://plugin/csi.sock"},
                            ],
                            "livenessProbe": _liveness_probe(),
                            "volumeMounts": [{"name": "socket-dir", "mountPath": "/plugin"}],
                        },
                        _etcd_container(request),
                        {
                            "name": CONTAINER_CSI_PROVISIONER,
                            "image": CSI_PROVISIONER_IMAGE,
                            "args": ["--v=9", "--provisioner=" + CSI_DRIVER_NAME, "--csi-address=$(ADDRESS)"],
                            "env": [{"name": "ADDRESS", "value": CSI_SOCKET_DIR + "csi.sock"}],
                            "volumeMounts": [{"name": "socket-dir", "mountPath": CSI_SOCKET_DIR}],
                        },
                    ],
                    "volumes": [{"name": "socket-dir", "emptyDir": {}}, _etcd_volume(request)],
                },
            },
        },
    }


def csi_daemonset_manifest(request: InstallationRequest) -> dict:
    """Build the per-node agent daemon-set (node role)."""
    labels = _labels(request.node_label_value)
    name = request.service_account_name
    return {
        "apiVersion": "apps/v1",
        "kind": "DaemonSet",
        "metadata": {"name": name, "labels": labels},
        "spec": {
            "selector": {"matchLabels": labels},
            "template": {
                "metadata": {"labels": labels},
                "spec": {
                    "serviceAccount": name,
                    "hostNetwork": True,
                    "hostIPC": True,
                    "containers": [
                        {
                            "name": CONTAINER_TRIDENT,
                            "image": request.trident_image,
                            "securityContext": {"privileged": True},
                            "command": ["/usr/local/bin/trident_orchestrator"],
                            "args": [
                                "--no_persistence",
                                "--rest=false",
                                "--csi_node_name=$(KUBE_NODE_NAME)",
                                "--csi_endpoint=$(CSI_ENDPOINT)",
                                "--csi_role=node",
                            ] + (["-debug"] if request.debug else []),
                            "env": [
                                {"name": "KUBE_NODE_NAME",
                                 "valueFrom": {"fieldRef": {"apiVersion": "v1", "fieldPath": "spec.nodeName"}}},
                                {"name": "CSI_ENDPOINT", "value": "unix:/" + CSI_PLUGIN_DIR + "csi.sock"},
                            ],
                            "volumeMounts": [
                                {"name": "plugin-dir", "mountPath": CSI_PLUGIN_DIR},
                                {"name": "pods-mount-dir", "mountPath": "/var/lib/kubelet/pods",
                                 "mountPropagation": "Bidirectional"},
                                {"name": "dev-dir", "mountPath": "/dev"},
                            ],
                        },
                        {
                            "name": CONTAINER_CSI_REGISTRAR,
                            "image": CSI_REGISTRAR_IMAGE,
                            "args": ["--v=9", "--csi-address=$(ADDRESS)"],
                            "env": [{"name": "ADDRESS", "value": CSI_PLUGIN_DIR + "csi.sock"}],
                            "volumeMounts": [{"name": "plugin-dir", "mountPath": CSI_PLUGIN_DIR}],
                        },
                    ],
                    "volumes": [
                        {"name": "plugin-dir", "hostPath": {"path": CSI_PLUGIN_DIR, "type": "DirectoryOrCreate"}},
                        {"name": "pods-mount-dir", "hostPath": {"path": "/var/lib/kubelet/pods", "type": "Directory"}},
                        {"name": "dev-dir", "hostPath": {"path": "/dev", "type": "Directory"}},
                    ],
                },
            },
        },
    }

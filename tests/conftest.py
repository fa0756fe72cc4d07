from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
import yaml

from install_manager.config import ClusterFacts, Flavor
from install_manager.constants import BACKEND_CONFIG_FILENAME
from install_manager.errors import ClusterAPIError
from install_manager.storage import StoragePool, VolumeAccessInfo, VolumeConfig, register_driver
from install_manager.validation import build_request

WORKLOAD_KINDS = {"Deployment": "deployment", "StatefulSet": "statefulset", "DaemonSet": "daemonset"}


class FakeClusterClient:
    """In-memory cluster that records every call.

    ``fail`` maps an operation key (e.g. ``"delete:ClusterRole"``,
    ``"get_pvc"``, ``"exec"``) to the exception that call should raise.
    """

    def __init__(self, namespace: str = "trident", flavor: Flavor = Flavor.KUBERNETES, cli: str = "kubectl"):
        self.cli = cli
        self.flavor = flavor
        self._namespace = namespace
        self.namespaces: set[str] = set()
        self.pvcs: dict[str, dict] = {}
        self.pvs: dict[str, dict] = {}
        self.secrets: set[str] = set()
        self.workloads: dict[str, list[dict]] = {}
        self.pods: list[dict] = []
        self.pod_phase = "Running"
        self.bind_claims = True
        self.exec_output = json.dumps({"client": {"version": "18.07.0"}, "server": {"version": "18.07.0"}})
        self.fail: dict[str, Exception] = {}
        self.calls: list[tuple] = []

    # -- helpers used by tests --

    def _check(self, key: str) -> None:
        if key in self.fail:
            raise self.fail[key]

    def created(self) -> list[tuple[str, str]]:
        return [(kind, name) for op, kind, name in self._ops() if op == "create"]

    def deleted(self) -> list[tuple[str, str]]:
        return [(kind, name) for op, kind, name in self._ops() if op == "delete"]

    def created_kinds(self) -> list[str]:
        return [kind for kind, _ in self.created()]

    def mutations(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in ("create", "delete", "scc_add", "scc_remove")]

    def _ops(self):
        return [c for c in self.calls if c[0] in ("create", "delete")]

    def _bind(self) -> None:
        if not self.bind_claims:
            return
        for pv_name, pv in self.pvs.items():
            ref = pv["spec"].get("claimRef") or {}
            pvc = self.pvcs.get(ref.get("name"))
            if pvc is None or pvc["status"]["phase"] == "Bound":
                continue
            pvc["spec"]["volumeName"] = pv_name
            pvc["status"]["phase"] = "Bound"
            pv["status"]["phase"] = "Bound"

    def _apply(self, obj: dict[str, Any]) -> None:
        kind = obj["kind"]
        name = obj["metadata"]["name"]
        self._check(f"create:{kind}")
        self.calls.append(("create", kind, name))
        if kind == "Namespace":
            self.namespaces.add(name)
        elif kind == "PersistentVolumeClaim":
            obj.setdefault("status", {})["phase"] = "Pending"
            self.pvcs[name] = obj
        elif kind == "PersistentVolume":
            obj.setdefault("status", {})["phase"] = "Available"
            self.pvs[name] = obj
        elif kind == "Secret":
            self.secrets.add(name)
        elif kind in WORKLOAD_KINDS:
            obj["metadata"].setdefault("namespace", self._namespace)
            self.workloads.setdefault(WORKLOAD_KINDS[kind], []).append(obj)
            if kind != "DaemonSet":
                self.pods.append({
                    "metadata": {"name": f"{name}-0", "labels": obj["spec"]["template"]["metadata"]["labels"]},
                    "status": {"phase": self.pod_phase},
                })
        self._bind()

    # -- ClusterClient --

    @property
    def namespace(self) -> str:
        return self._namespace

    def set_namespace(self, namespace: str) -> None:
        self._namespace = namespace

    def server_version(self) -> tuple[int, int, int]:
        return (1, 11, 0)

    def namespace_exists(self, name: str) -> bool:
        self.calls.append(("get_namespace", name))
        self._check("get_namespace")
        return name in self.namespaces

    def get_pvc(self, name: str):
        self.calls.append(("get_pvc", name))
        self._check("get_pvc")
        return self.pvcs.get(name)

    def get_pv(self, name: str):
        self.calls.append(("get_pv", name))
        self._check("get_pv")
        return self.pvs.get(name)

    def secret_exists(self, name: str) -> bool:
        self.calls.append(("get_secret", name))
        self._check("get_secret")
        return name in self.secrets

    def get_pod_by_label(self, label: str):
        self.calls.append(("get_pod", label))
        key, _, value = label.partition("=")
        for pod in self.pods:
            if pod["metadata"]["labels"].get(key) == value:
                return pod
        return None

    def find_by_label(self, kind: str, label: str):
        self.calls.append(("find", kind, label))
        self._check("find")
        key, _, value = label.partition("=")
        return [o for o in self.workloads.get(kind, []) if o["metadata"].get("labels", {}).get(key) == value]

    def create_object_by_yaml(self, text: str) -> None:
        self._apply(yaml.safe_load(text))

    def create_object_by_file(self, path: Path) -> None:
        self.calls.append(("create_file", str(path)))
        self._apply(yaml.safe_load(Path(path).read_text()))

    def delete_object_by_yaml(self, text: str, ignore_not_found: bool = True) -> None:
        obj = yaml.safe_load(text)
        self.calls.append(("delete", obj["kind"], obj["metadata"]["name"]))
        self._check(f"delete:{obj['kind']}")

    def exec(self, pod: str, container: str, command: list[str]) -> str:
        self.calls.append(("exec", pod, container, tuple(command)))
        self._check("exec")
        return self.exec_output

    def add_user_to_scc(self, user: str) -> None:
        self.calls.append(("scc_add", "scc", user))
        self._check("scc_add")

    def remove_user_from_scc(self, user: str) -> None:
        self.calls.append(("scc_remove", "scc", user))
        self._check("scc_remove")


class FakeUcp:
    def __init__(self, fail: tuple[str, ...] = ()):
        self.calls: list[str] = []
        self.fail = set(fail)

    def _call(self, name: str) -> bool:
        self.calls.append(name)
        if name in self.fail:
            raise ClusterAPIError(f"{name} failed")
        return True

    def create_role(self) -> bool:
        return self._call("create_role")

    def add_role_to_service_account(self, namespace: str, service_account: str) -> bool:
        return self._call("add_role")

    def remove_role_from_service_account(self, namespace: str, service_account: str) -> bool:
        return self._call("remove_role")

    def delete_role(self) -> bool:
        return self._call("delete_role")


@register_driver("fake")
class FakeDriver:
    """Driver whose pools and access info come straight from backend.json."""

    name = "fake"

    def __init__(self):
        self.config: dict = {}
        self.created: list[VolumeConfig] = []

    def initialize(self, config):
        self.config = config

    def default_backend_name(self):
        return "fake_backend"

    def protocol(self):
        return "file"

    def pools(self):
        return [StoragePool(name=n) for n in self.config.get("pools", ["pool-a"])]

    def create_volume(self, config, pool):
        self.created.append(config)
        return VolumeAccessInfo(**self.config.get("accessInfo", {}))


NFS_BACKEND = {
    "version": 1,
    "storageDriverName": "static",
    "backendName": "nfs_backend",
    "protocol": "nfs",
    "nfsServerIP": "10.0.0.5",
    "nfsPath": "/exports/trident",
}

CHAP_BACKEND = {
    "version": 1,
    "storageDriverName": "static",
    "backendName": "san.backend",
    "protocol": "iscsi",
    "iscsiTargetPortal": "10.0.0.9:3260",
    "iscsiTargetIQN": "iqn.1992-08.com.netapp:sn.1234",
    "iscsiLunNumber": 0,
    "useCHAP": True,
    "chapUsername": "Trident_User",
    "chapInitiatorSecret": "initsecret123",
    "chapTargetSecret": "targetsecret12",
}


def write_backend(setup_dir: Path, config: dict) -> Path:
    setup_dir.mkdir(parents=True, exist_ok=True)
    path = setup_dir / BACKEND_CONFIG_FILENAME
    path.write_text(json.dumps(config))
    return path


@pytest.fixture
def client() -> FakeClusterClient:
    return FakeClusterClient()


@pytest.fixture
def facts() -> ClusterFacts:
    return ClusterFacts(flavor=Flavor.KUBERNETES, version=(1, 11, 0), namespace="default")


@pytest.fixture
def setup_dir(tmp_path: Path) -> Path:
    path = tmp_path / "setup"
    write_backend(path, NFS_BACKEND)
    return path


@pytest.fixture
def make_request(setup_dir: Path):
    def _make(**overrides):
        kwargs = dict(
            namespace="trident",
            volume_size="2Gi",
            trident_image="netapp/trident:18.07.0",
            etcd_image="quay.io/coreos/etcd:v3.2.19",
            k8s_timeout=0.5,
            setup_dir=setup_dir,
            backoff_initial=0.01,
            backoff_max=0.05,
        )
        kwargs.update(overrides)
        return build_request(**kwargs)
    return _make

import pytest
import yaml

from install_manager.config import ClusterFacts, Flavor
from install_manager.constants import (
    DAEMONSET_FILENAME,
    DEPLOYMENT_FILENAME,
    NAMESPACE_FILENAME,
    SERVICE_FILENAME,
    STATEFULSET_FILENAME,
)
from install_manager.errors import (
    ClusterAPIError,
    ConfigurationError,
    IncompatibilityError,
    ReadinessTimeout,
    TeardownError,
)
from install_manager import orchestrator
from install_manager.orchestrator import generate_manifests, run_install
from install_manager.rbac import NativeRBAC

from conftest import CHAP_BACKEND, write_backend

LABELS = {"app": "trident.netapp.io"}


def _install(client, request, facts, **kwargs):
    return run_install(request, client, facts, NativeRBAC(client, request, facts), **kwargs)


def _no_backend(setup_dir):
    raise AssertionError("backend should not be loaded")


def _bound_pair(client):
    client.pvcs["trident"] = {
        "metadata": {"name": "trident", "namespace": "trident", "labels": dict(LABELS)},
        "spec": {"volumeName": "trident"},
        "status": {"phase": "Bound"},
    }
    client.pvs["trident"] = {
        "metadata": {"name": "trident", "labels": dict(LABELS)},
        "spec": {"capacity": {"storage": "2Gi"}, "claimRef": {"name": "trident", "namespace": "trident"}},
        "status": {"phase": "Bound"},
    }


def test_fresh_install(client, make_request, facts):
    result = _install(client, make_request(), facts)
    assert client.created() == [
        ("Namespace", "trident"),
        ("ServiceAccount", "trident"),
        ("ClusterRole", "trident"),
        ("ClusterRoleBinding", "trident"),
        ("PersistentVolumeClaim", "trident"),
        ("PersistentVolume", "trident"),
        ("Deployment", "trident"),
    ]
    assert result.version == "18.07.0"
    assert not result.already_installed


def test_teardown_precedes_create(client, make_request, facts):
    _install(client, make_request(), facts)
    ops = [(op, kind) for op, kind, _ in client.mutations()]
    assert ops.index(("delete", "ServiceAccount")) < ops.index(("create", "ServiceAccount"))


def test_second_run_is_idempotent(client, make_request, facts):
    _install(client, make_request(), facts)
    before = list(client.mutations())
    result = _install(client, make_request(), facts, backend_loader=_no_backend)
    assert client.mutations() == before
    assert result.already_installed
    assert result.version == "18.07.0"


def test_existing_bound_claim_and_volume_are_reused(client, make_request, facts):
    _bound_pair(client)
    client.namespaces.add("trident")
    _install(client, make_request(), facts, backend_loader=_no_backend)
    kinds = client.created_kinds()
    assert "PersistentVolumeClaim" not in kinds
    assert "PersistentVolume" not in kinds
    assert "Namespace" not in kinds
    assert kinds[-1] == "Deployment"


def test_bound_claim_without_volume_bootstraps_volume(client, make_request, facts, monkeypatch):
    _bound_pair(client)
    del client.pvs["trident"]
    client.namespaces.add("trident")

    def _unexpected_wait(client, request):
        raise AssertionError("claim is already bound")

    monkeypatch.setattr(orchestrator, "wait_for_pvc_bound", _unexpected_wait)
    _install(client, make_request(), facts)
    kinds = client.created_kinds()
    assert "PersistentVolumeClaim" not in kinds
    assert kinds.count("PersistentVolume") == 1
    assert kinds[-1] == "Deployment"


def test_claim_bound_elsewhere_aborts_before_mutation(client, make_request, facts):
    _bound_pair(client)
    client.pvcs["trident"]["spec"]["volumeName"] = "other"
    with pytest.raises(IncompatibilityError, match="please specify a different PV and/or PVC"):
        _install(client, make_request(), facts)
    assert client.mutations() == []


def test_installation_in_other_namespace_aborts(client, make_request, facts):
    client.workloads["deployment"] = [{"metadata": {"name": "trident", "namespace": "storage", "labels": LABELS}}]
    with pytest.raises(IncompatibilityError):
        _install(client, make_request(), facts)
    assert client.mutations() == []


def test_chap_on_old_cluster_stops_before_workloads(client, make_request, tmp_path):
    write_backend(tmp_path, CHAP_BACKEND)
    old = ClusterFacts(flavor=Flavor.KUBERNETES, version=(1, 6, 0), namespace="default")
    with pytest.raises(ConfigurationError, match="CHAP"):
        _install(client, make_request(setup_dir=tmp_path), old)
    kinds = client.created_kinds()
    assert "PersistentVolume" not in kinds
    assert "Deployment" not in kinds


def test_csi_on_old_cluster_fails_before_any_check(client, make_request):
    old = ClusterFacts(flavor=Flavor.KUBERNETES, version=(1, 10, 0), namespace="default")
    with pytest.raises(ConfigurationError, match="CSI Trident requires Kubernetes 1.11.0 or later"):
        _install(client, make_request(csi=True), old)
    assert client.calls == []


def test_distributed_install(client, make_request, facts):
    result = _install(client, make_request(csi=True), facts)
    assert client.created_kinds()[-3:] == ["Service", "StatefulSet", "DaemonSet"]
    assert ("ServiceAccount", "trident-csi") in client.created()
    assert result.version == "18.07.0"


def test_teardown_failure_aborts_before_create(client, make_request, facts):
    client.fail["delete:ClusterRole"] = ClusterAPIError("denied")
    with pytest.raises(TeardownError):
        _install(client, make_request(), facts)
    assert client.created_kinds() == ["Namespace"]


def test_dry_run_makes_no_changes(client, make_request, facts):
    result = _install(client, make_request(dry_run=True), facts)
    assert result.dry_run
    assert client.mutations() == []


def test_dry_run_checks_backend(client, make_request, facts, tmp_path):
    with pytest.raises(ConfigurationError, match="storage backend config file does not exist"):
        _install(client, make_request(dry_run=True, setup_dir=tmp_path), facts)


def test_pod_never_running(client, make_request, facts):
    client.pod_phase = "ContainerCreating"
    with pytest.raises(ReadinessTimeout, match="describe pod trident-0"):
        _install(client, make_request(), facts)


def test_capacity_mismatch_is_reported_as_warning(client, make_request, facts):
    _bound_pair(client)
    client.pvs["trident"]["spec"]["capacity"]["storage"] = "1Gi"
    result = _install(client, make_request(dry_run=True), facts)
    assert len(result.warnings) == 1


def test_namespace_override_file(client, make_request, facts, setup_dir):
    path = setup_dir / NAMESPACE_FILENAME
    path.write_text(yaml.safe_dump({"apiVersion": "v1", "kind": "Namespace", "metadata": {"name": "trident"}}))
    _install(client, make_request(use_custom_yaml=True), facts)
    assert ("create_file", str(path)) in client.calls


# -- generation --

def test_generate_single_topology(make_request, facts, setup_dir):
    written = generate_manifests(make_request(), facts)
    assert len(written) == 6
    assert (setup_dir / DEPLOYMENT_FILENAME).is_file()
    doc = yaml.safe_load((setup_dir / DEPLOYMENT_FILENAME).read_text())
    assert doc["kind"] == "Deployment"


def test_generate_removes_stale_files(make_request, facts, setup_dir):
    (setup_dir / DEPLOYMENT_FILENAME).write_text("stale")
    written = generate_manifests(make_request(csi=True), facts)
    assert not (setup_dir / DEPLOYMENT_FILENAME).exists()
    names = {p.name for p in written}
    assert {SERVICE_FILENAME, STATEFULSET_FILENAME, DAEMONSET_FILENAME} <= names
    assert len(written) == 8


def test_generate_creates_missing_directory(make_request, facts, tmp_path):
    target = tmp_path / "new" / "setup"
    generate_manifests(make_request(setup_dir=target), facts)
    assert (target / NAMESPACE_FILENAME).is_file()

import pytest

from install_manager.errors import ClusterAPIError, IncompatibilityError
from install_manager.probes import ProbeState, probe_claim, probe_installation, probe_namespace, probe_volume

LABELS = {"app": "trident.netapp.io"}


def _pvc(phase="Bound", volume="trident", labels=LABELS):
    return {
        "metadata": {"name": "trident", "namespace": "trident", "labels": dict(labels)},
        "spec": {"volumeName": volume},
        "status": {"phase": phase},
    }


def _pv(phase="Bound", claim="trident", namespace="trident", labels=LABELS, capacity="2Gi"):
    spec = {"claimRef": {"name": claim, "namespace": namespace}}
    if capacity is not None:
        spec["capacity"] = {"storage": capacity}
    return {"metadata": {"name": "trident", "labels": dict(labels)}, "spec": spec, "status": {"phase": phase}}


def test_namespace_absent_then_present(client, make_request):
    req = make_request()
    assert probe_namespace(client, req).state is ProbeState.ABSENT
    client.namespaces.add("trident")
    assert probe_namespace(client, req).state is ProbeState.PRESENT_COMPATIBLE


def test_lookup_failure_is_not_absence(client, make_request):
    client.fail["get_pvc"] = ClusterAPIError("connection refused")
    with pytest.raises(ClusterAPIError, match="could not establish the presence of PVC trident"):
        probe_claim(client, make_request())


def test_claim_absent(client, make_request):
    probe = probe_claim(client, make_request())
    assert probe.state is ProbeState.ABSENT
    assert not probe.exists


def test_claim_bound_to_intended_volume_is_compatible(client, make_request):
    client.pvcs["trident"] = _pvc()
    probe = probe_claim(client, make_request())
    assert probe.state is ProbeState.PRESENT_COMPATIBLE
    assert probe.phase == "Bound"


def test_pending_claim_is_compatible(client, make_request):
    client.pvcs["trident"] = _pvc(phase="Pending", volume="")
    assert probe_claim(client, make_request()).state is ProbeState.PRESENT_COMPATIBLE


@pytest.mark.parametrize("pvc,fragment", [
    (_pvc(phase="Lost"), "PVC trident phase is Lost; please delete it and try again"),
    (_pvc(volume="other"), "PVC trident is Bound, but not to PV trident"),
    (_pvc(labels={}), "PVC trident does not have app=trident.netapp.io label"),
])
def test_incompatible_claims(client, make_request, pvc, fragment):
    client.pvcs["trident"] = pvc
    probe = probe_claim(client, make_request())
    assert probe.state is ProbeState.PRESENT_INCOMPATIBLE
    with pytest.raises(IncompatibilityError, match=fragment):
        probe.raise_if_incompatible()


def test_volume_compatible_without_warnings(client, make_request):
    client.pvs["trident"] = _pv()
    probe = probe_volume(client, make_request())
    assert probe.state is ProbeState.PRESENT_COMPATIBLE
    assert probe.warnings == []


def test_volume_capacity_compared_by_value(client, make_request):
    client.pvs["trident"] = _pv(capacity="2048Mi")
    assert probe_volume(client, make_request()).warnings == []


def test_volume_capacity_mismatch_only_warns(client, make_request):
    client.pvs["trident"] = _pv(capacity="1Gi")
    probe = probe_volume(client, make_request())
    assert probe.state is ProbeState.PRESENT_COMPATIBLE
    assert "does not match request" in probe.warnings[0]


def test_volume_unknown_capacity_only_warns(client, make_request):
    client.pvs["trident"] = _pv(capacity=None)
    probe = probe_volume(client, make_request())
    assert probe.state is ProbeState.PRESENT_COMPATIBLE
    assert "Could not determine size" in probe.warnings[0]


@pytest.mark.parametrize("pv,fragment", [
    (_pv(phase="Released"), "PV trident phase is Released; please delete it and try again"),
    (_pv(phase="Failed"), "PV trident phase is Failed; please delete it and try again"),
    (_pv(claim="other"), "PV trident is Bound, but not to PVC trident"),
    (_pv(namespace="elsewhere"), "PV trident is Bound to a PVC in namespace elsewhere"),
    (_pv(labels={"app": "something"}), "PV trident does not have app=trident.netapp.io label"),
])
def test_incompatible_volumes(client, make_request, pv, fragment):
    client.pvs["trident"] = pv
    probe = probe_volume(client, make_request())
    with pytest.raises(IncompatibilityError, match=fragment):
        probe.raise_if_incompatible()


def test_installation_absent(client, make_request):
    assert probe_installation(client, make_request()).state is ProbeState.ABSENT


def test_installation_in_target_namespace_is_compatible(client, make_request):
    client.workloads["deployment"] = [
        {"metadata": {"name": "trident", "namespace": "trident", "labels": LABELS}}
    ]
    assert probe_installation(client, make_request()).state is ProbeState.PRESENT_COMPATIBLE


def test_installation_elsewhere_is_incompatible(client, make_request):
    client.workloads["deployment"] = [
        {"metadata": {"name": "trident", "namespace": "storage", "labels": LABELS}}
    ]
    probe = probe_installation(client, make_request())
    with pytest.raises(IncompatibilityError, match="already installed in namespace storage"):
        probe.raise_if_incompatible()


def test_csi_installation_is_looked_up_as_statefulset(client, make_request):
    probe_installation(client, make_request(csi=True))
    assert ("find", "statefulset", "app=controller.csi.trident.netapp.io") in client.calls

import time

import pytest

from install_manager.errors import ClusterAPIError, ReadinessTimeout
from install_manager.readiness import (
    query_server_version,
    wait_for,
    wait_for_pvc_bound,
    wait_for_rest_interface,
    wait_for_trident_pod,
)


def _pod(phase, message=""):
    status = {"phase": phase}
    if message:
        status["message"] = message
    return {"metadata": {"name": "trident-0", "labels": {"app": "trident.netapp.io"}}, "status": status}


def test_wait_for_returns_first_truthy_value():
    calls = []

    def check():
        calls.append(1)
        return "ready" if len(calls) == 3 else None

    assert wait_for(check, 5, "thing", 0.001, 0.005) == "ready"
    assert len(calls) == 3


def test_wait_for_timeout_is_bounded():
    start = time.monotonic()
    with pytest.raises(ReadinessTimeout) as exc_info:
        wait_for(lambda: False, 0.3, "thing", 0.02, 0.05)
    elapsed = time.monotonic() - start
    assert exc_info.value.elapsed >= 0.3
    # at most one more increment after the deadline, plus scheduling slack
    assert elapsed < 0.3 + 0.05 + 0.5


def test_wait_for_treats_install_errors_as_not_ready():
    attempts = iter([ClusterAPIError("flaky"), None, "ok"])

    def check():
        outcome = next(attempts)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert wait_for(check, 5, "thing", 0.001, 0.005) == "ok"


def test_wait_for_timeout_mentions_last_error():
    def check():
        raise ClusterAPIError("connection refused")

    with pytest.raises(ReadinessTimeout, match="connection refused"):
        wait_for(check, 0.1, "thing", 0.01, 0.02)


def test_wait_for_propagates_unexpected_errors():
    def check():
        raise KeyError("bug")

    with pytest.raises(KeyError):
        wait_for(check, 1, "thing", 0.01, 0.02)


def test_pvc_bound_timeout(client, make_request):
    client.pvcs["trident"] = {"metadata": {"name": "trident"}, "spec": {}, "status": {"phase": "Pending"}}
    with pytest.raises(ReadinessTimeout, match="PVC trident was not bound after"):
        wait_for_pvc_bound(client, make_request())


def test_pvc_already_bound(client, make_request):
    client.pvcs["trident"] = {"metadata": {"name": "trident"}, "spec": {}, "status": {"phase": "Bound"}}
    wait_for_pvc_bound(client, make_request())


def test_pod_running(client, make_request, facts):
    client.pods.append(_pod("Running"))
    pod = wait_for_trident_pod(client, make_request(), facts)
    assert pod["metadata"]["name"] == "trident-0"


def test_pod_timeout_message_is_enriched(client, make_request, facts):
    client.pods.append(_pod("Pending", "0/3 nodes are available"))
    with pytest.raises(ReadinessTimeout) as exc_info:
        wait_for_trident_pod(client, make_request(), facts)
    message = str(exc_info.value)
    assert "Pod status is Pending." in message
    assert "0/3 nodes are available" in message
    assert "Use 'kubectl describe pod trident-0 -n trident' for more information." in message


def test_pod_timeout_without_pod(client, make_request, facts):
    with pytest.raises(ReadinessTimeout, match="Trident pod was not running after 0.50 seconds") as exc_info:
        wait_for_trident_pod(client, make_request(), facts)
    assert "describe pod" not in str(exc_info.value)


def test_query_server_version(client):
    assert query_server_version(client, "trident-0") == "18.07.0"
    assert client.calls[-1] == (
        "exec", "trident-0", "trident-main", ("tridentctl", "-s", "127.0.0.1:8000", "version", "-o", "json")
    )


def test_rest_interface_timeout_recommends_logs(client, make_request):
    client.exec_output = "not json"
    with pytest.raises(ReadinessTimeout, match="use 'tridentctl logs' to learn more"):
        wait_for_rest_interface(client, make_request(), "trident-0")


def test_rest_interface_exec_failure_is_retried(client, make_request):
    client.fail["exec"] = ClusterAPIError("container not found")
    with pytest.raises(ReadinessTimeout, match="Trident REST interface was not available"):
        wait_for_rest_interface(client, make_request(), "trident-0")
    assert sum(1 for c in client.calls if c[0] == "exec") > 1

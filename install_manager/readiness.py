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

"""Bounded exponential-backoff waits for claim binding, pod start and the REST interface."""

from __future__ import annotations

import json
import time
from collections.abc import Callable
from typing import Any, TypeVar

from tenacity import RetryCallState, RetryError, Retrying, retry_if_result, stop_after_delay, wait_exponential

from install_manager import console, logger
from install_manager.config import ClusterFacts, InstallationRequest
from install_manager.constants import CLAIM_BOUND, CONTAINER_TRIDENT, MANAGEMENT_CLI, POD_RUNNING, POD_SERVER
from install_manager.errors import InstallError, ReadinessTimeout
from install_manager.kube import ClusterClient
from install_manager.utils import nested_get

T = TypeVar("T")


def wait_for(
    check: Callable[[], T | None],
    timeout: float,
    description: str,
    initial: float,
    maximum: float,
) -> T:
    """Poll *check* until it returns a truthy value or *timeout* elapses.

    An :class:`InstallError` raised by *check* counts as "not ready yet" and
    is remembered for the timeout message.

    Args:
        check: Readiness predicate; a truthy return value ends the wait.
        timeout: Seconds after which no further attempt starts.
        description: What is being waited for, used in log lines.
        initial: First back-off interval in seconds.
        maximum: Upper bound on a single back-off interval.

    Returns:
        The first truthy value returned by *check*.

    Raises:
        ReadinessTimeout: If *check* never succeeded; carries the elapsed time.
    """
    start = time.monotonic()
    last_error: InstallError | None = None

    def _attempt() -> T | None:
        nonlocal last_error
        try:
            return check()
        except InstallError as err:
            last_error = err
            return None

    def _log_increment(retry_state: RetryCallState) -> None:
        increment = retry_state.next_action.sleep if retry_state.next_action else 0.0
        logger.debug("%s not yet ready, waiting (increment %.2fs).", description, increment)

    retryer = Retrying(
        stop=stop_after_delay(timeout),
        wait=wait_exponential(multiplier=initial, max=maximum),
        retry=retry_if_result(lambda result: not result),
        before_sleep=_log_increment,
    )
    try:
        return retryer(_attempt)
    except RetryError as err:
        elapsed = time.monotonic() - start
        message = f"{description} not ready after {elapsed:.2f} seconds"
        if last_error is not None:
            message = f"{message}; {last_error}"
        raise ReadinessTimeout(message, elapsed) from err


# ============================================================================
# Control-plane waits
# ============================================================================

def wait_for_pvc_bound(client: ClusterClient, request: InstallationRequest) -> None:
    """Wait for the control-plane claim to reach the Bound phase.

    Raises:
        ReadinessTimeout: If the claim is not bound within the request timeout.
    """
    def _bound() -> bool:
        pvc = client.get_pvc(request.pvc_name)
        return nested_get(pvc, "status", "phase") == CLAIM_BOUND

    console.print(f"[yellow]\u2139\ufe0f  Waiting for PVC {request.pvc_name} to be bound...[/yellow]")
    try:
        wait_for(_bound, request.k8s_timeout, f"PVC {request.pvc_name}",
                 request.backoff_initial, request.backoff_max)
    except ReadinessTimeout as err:
        raise ReadinessTimeout(
            f"PVC {request.pvc_name} was not bound after {int(request.k8s_timeout)} seconds", err.elapsed
        ) from err
    console.print(f"[green]\u2705 PVC {request.pvc_name} is bound.[/green]")


def wait_for_trident_pod(client: ClusterClient, request: InstallationRequest, facts: ClusterFacts) -> dict[str, Any]:
    """Wait for the control-plane pod to be running.

    Returns:
        The running pod object.

    Raises:
        ReadinessTimeout: With the last observed phase and message and a
            ``describe pod`` hint, if the pod is not running in time.
    """
    last_pod: dict[str, Any] | None = None

    def _running() -> dict[str, Any] | None:
        nonlocal last_pod
        pod = client.get_pod_by_label(request.label)
        last_pod = pod or last_pod
        if nested_get(pod, "status", "phase") == POD_RUNNING:
            return pod
        return None

    console.print("[yellow]\u2139\ufe0f  Waiting for Trident pod to start...[/yellow]")
    try:
        pod = wait_for(_running, request.k8s_timeout, "Trident pod", request.backoff_initial, request.backoff_max)
    except ReadinessTimeout as err:
        parts = [f"Trident pod was not running after {request.k8s_timeout:3.2f} seconds."]
        if last_pod is not None:
            phase = nested_get(last_pod, "status", "phase", default="")
            if phase:
                parts.append(f"Pod status is {phase}.")
                message = nested_get(last_pod, "status", "message", default="")
                if message:
                    parts.append(message)
            name = nested_get(last_pod, "metadata", "name", default="")
            parts.append(
                f"Use '{facts.cli} describe pod {name} -n {request.namespace}' for more information."
            )
        raise ReadinessTimeout(" ".join(parts), err.elapsed) from err

    name = nested_get(pod, "metadata", "name", default="")
    console.print(f"[green]\u2705 Trident pod {name} started in namespace {request.namespace}.[/green]")
    return pod


def query_server_version(client: ClusterClient, pod_name: str) -> str:
    """Ask the management interface inside the pod for its version.

    Raises:
        ClusterAPIError: If the exec fails.
        ValueError: If the reply is not the expected JSON.
    """
    output = client.exec(pod_name, CONTAINER_TRIDENT, [MANAGEMENT_CLI, "-s", POD_SERVER, "version", "-o", "json"])
    version = nested_get(json.loads(output), "server", "version")
    if not version:
        raise ValueError("version reply has no server version")
    return version


def wait_for_rest_interface(client: ClusterClient, request: InstallationRequest, pod_name: str) -> str:
    """Wait until the management interface answers a version query.

    Returns:
        The server version reported by the control plane.

    Raises:
        ReadinessTimeout: If the interface does not answer in time.
    """
    def _version() -> str | None:
        try:
            return query_server_version(client, pod_name)
        except ValueError as err:
            logger.debug("Unparseable version reply from %s: %s", pod_name, err)
            return None

    console.print("[yellow]\u2139\ufe0f  Waiting for Trident REST interface...[/yellow]")
    try:
        version = wait_for(_version, request.k8s_timeout, "Trident REST interface",
                           request.backoff_initial, request.backoff_max)
    except ReadinessTimeout as err:
        raise ReadinessTimeout(
            f"Trident REST interface was not available after {request.k8s_timeout:3.2f} seconds; "
            f"use '{MANAGEMENT_CLI} logs' to learn more",
            err.elapsed,
        ) from err
    console.print(f"[green]\u2705 Trident REST interface is up (version {version}).[/green]")
    return version

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

"""REST client for an external authorization service (Docker UCP)."""

from __future__ import annotations

import requests

from install_manager import logger
from install_manager.constants import UCP_GRANT_OBJECT, UCP_REQUEST_TIMEOUT_SECONDS, UCP_ROLE_NAME
from install_manager.errors import ClusterAPIError

# Operations the control plane needs on Kubernetes objects in its grant scope.
ROLE_OPERATIONS = {
    "Kubernetes Namespace": {"Namespace Get": [], "Namespace List": []},
    "Kubernetes Persistent Volume": {
        "PersistentVolume Create": [], "PersistentVolume Delete": [],
        "PersistentVolume Get": [], "PersistentVolume List": [], "PersistentVolume Watch": [],
    },
    "Kubernetes Persistent Volume Claim": {
        "PersistentVolumeClaim Get": [], "PersistentVolumeClaim List": [],
        "PersistentVolumeClaim Update": [], "PersistentVolumeClaim Watch": [],
    },
    "Kubernetes Storage Class": {"StorageClass Get": [], "StorageClass List": [], "StorageClass Watch": []},
    "Kubernetes Event": {"Event Create": [], "Event List": [], "Event Update": [], "Event Watch": []},
    "Kubernetes Secret": {"Secret Create": [], "Secret Delete": [], "Secret Get": [], "Secret List": []},
}


def service_account_subject(namespace: str, service_account: str) -> str:
    return f"system:serviceaccount:{namespace}:{service_account}"


class UcpClient:
    """Manage the control-plane role and its grant to the service account.

    Args:
        host: UCP host name or address (scheme optional, defaults to https).
        token: Bearer token authorizing the calls.
        session: Optional pre-built session (tests inject one).
    """

    def __init__(self, host: str, token: str, session: requests.Session | None = None) -> None:
        if not host.startswith(("http://", "https://")):
            host = f"https://{host}"
        self.base_url = host.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"Authorization": f"Bearer {token}", "Accept": "application/json"})

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.debug("UCP %s %s", method, url)
        try:
            resp = self.session.request(method, url, timeout=UCP_REQUEST_TIMEOUT_SECONDS, **kwargs)
            resp.raise_for_status()
        except requests.RequestException as err:
            raise ClusterAPIError(f"UCP {method} {path} failed; {err}") from err
        return resp

    def _grant_path(self, namespace: str, service_account: str) -> str:
        subject = service_account_subject(namespace, service_account)
        return f"/collectionGrants/{subject}/{UCP_GRANT_OBJECT}/{UCP_ROLE_NAME}"

    def create_role(self) -> bool:
        """Create the control-plane role.

        Returns:
            True if the service answered with a created (or accepted) status.

        Raises:
            ClusterAPIError: On transport failure or an error status.
        """
        body = {"id": UCP_ROLE_NAME, "name": UCP_ROLE_NAME, "system_role": False, "operations": ROLE_OPERATIONS}
        resp = self._request("POST", "/roles", json=body)
        return resp.status_code in (200, 201)

    def add_role_to_service_account(self, namespace: str, service_account: str) -> bool:
        resp = self._request("PUT", self._grant_path(namespace, service_account), params={"type": "grantobject"})
        return resp.status_code in (200, 201, 204)

    def remove_role_from_service_account(self, namespace: str, service_account: str) -> bool:
        resp = self._request("DELETE", self._grant_path(namespace, service_account))
        return resp.status_code in (200, 204)

    def delete_role(self) -> bool:
        resp = self._request("DELETE", f"/roles/{UCP_ROLE_NAME}")
        return resp.status_code in (200, 204)

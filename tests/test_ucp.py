import pytest
import requests

from install_manager.errors import ClusterAPIError
from install_manager.ucp import UcpClient


class FakeResponse:
    def __init__(self, status_code=200):
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Client Error")


class FakeSession:
    def __init__(self, status_code=200, error=None):
        self.headers = {}
        self.status_code = status_code
        self.error = error
        self.requests = []

    def request(self, method, url, **kwargs):
        self.requests.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return FakeResponse(self.status_code)


def test_host_defaults_to_https_and_sets_bearer_token():
    session = FakeSession()
    client = UcpClient("ucp.example.com/", "s3cret", session=session)
    assert client.base_url == "https://ucp.example.com"
    assert session.headers["Authorization"] == "Bearer s3cret"


def test_explicit_scheme_is_kept():
    assert UcpClient("http://10.0.0.1", "t", session=FakeSession()).base_url == "http://10.0.0.1"


def test_create_role_posts_role_definition():
    session = FakeSession(status_code=201)
    assert UcpClient("ucp", "t", session=session).create_role()
    method, url, kwargs = session.requests[0]
    assert (method, url) == ("POST", "https://ucp/roles")
    assert kwargs["json"]["name"] == "trident"
    assert kwargs["timeout"] > 0


def test_grant_targets_service_account_subject():
    session = FakeSession()
    UcpClient("ucp", "t", session=session).add_role_to_service_account("trident", "trident")
    method, url, kwargs = session.requests[0]
    assert method == "PUT"
    assert url == "https://ucp/collectionGrants/system:serviceaccount:trident:trident/kubernetesnamespaces/trident"
    assert kwargs["params"] == {"type": "grantobject"}


def test_teardown_calls():
    session = FakeSession(status_code=204)
    client = UcpClient("ucp", "t", session=session)
    assert client.remove_role_from_service_account("trident", "trident")
    assert client.delete_role()
    assert [r[0] for r in session.requests] == ["DELETE", "DELETE"]
    assert session.requests[1][1] == "https://ucp/roles/trident"


def test_error_status_is_wrapped():
    client = UcpClient("ucp", "t", session=FakeSession(status_code=403))
    with pytest.raises(ClusterAPIError, match="UCP POST /roles failed; 403"):
        client.create_role()


def test_transport_error_is_wrapped():
    client = UcpClient("ucp", "t", session=FakeSession(error=requests.ConnectionError("refused")))
    with pytest.raises(ClusterAPIError, match="refused"):
        client.delete_role()

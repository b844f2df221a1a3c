"""Tests for the REST client and path helpers."""

from __future__ import annotations

import pytest
import requests

from stateful_migrator.client import (
    KubeClient,
    build_session,
    is_conflict,
    is_not_found,
    resource_path,
    status_code,
)

from .fakes import FakeApiServer, FakeSession, make_pod, make_response


class TestResourcePath:
    def test_core_namespaced_object(self):
        assert resource_path("v1", "pods", "default", "web-0") == "/api/v1/namespaces/default/pods/web-0"

    def test_group_collection(self):
        assert (
            resource_path("migration.dcnlab.com/v1", "checkpointbackups", "ns1")
            == "/apis/migration.dcnlab.com/v1/namespaces/ns1/checkpointbackups"
        )

    def test_cluster_scoped(self):
        assert resource_path("v1", "namespaces", name="stateful-migration") == "/api/v1/namespaces/stateful-migration"
        assert (
            resource_path("apiextensions.k8s.io/v1", "customresourcedefinitions")
            == "/apis/apiextensions.k8s.io/v1/customresourcedefinitions"
        )


class TestErrorClassification:
    def _error(self, status: int) -> requests.HTTPError:
        return requests.HTTPError(response=make_response(status, {}))

    def test_not_found(self):
        assert is_not_found(self._error(404))
        assert not is_not_found(self._error(500))

    def test_conflict(self):
        assert is_conflict(self._error(409))
        assert not is_conflict(self._error(404))

    def test_connection_error_has_no_status(self):
        assert status_code(requests.ConnectionError("boom")) is None
        assert not is_not_found(requests.ConnectionError("boom"))


class TestKubeClient:
    def test_get_missing_object_raises_not_found(self, api):
        with pytest.raises(requests.HTTPError) as excinfo:
            api.get(resource_path("v1", "pods", "default", "nope"))
        assert is_not_found(excinfo.value)

    def test_list_passes_label_selector(self, api, api_server: FakeApiServer):
        api_server.seed(resource_path("v1", "pods", "default"), make_pod("a-0", labels={"app": "a"}))
        api_server.seed(resource_path("v1", "pods", "default"), make_pod("b-0", labels={"app": "b"}))

        pods = api.list(resource_path("v1", "pods", "default"), label_selector="app=a")

        assert [p["metadata"]["name"] for p in pods] == ["a-0"]

    def test_update_with_stale_resource_version_conflicts(self, api, api_server):
        path = resource_path("v1", "pods", "default")
        api_server.seed(path, make_pod("a-0"))
        pod = api.get(f"{path}/a-0")
        api.update(f"{path}/a-0", {**pod, "metadata": {**pod["metadata"], "labels": {"x": "1"}}})

        with pytest.raises(requests.HTTPError) as excinfo:
            api.update(f"{path}/a-0", pod)
        assert is_conflict(excinfo.value)

    def test_test_connection_uses_limit(self, api, api_server):
        api_server.seed(resource_path("v1", "pods", "default"), make_pod("a-0"))
        api_server.seed(resource_path("v1", "pods", "default"), make_pod("a-1"))

        assert api.test_connection(resource_path("v1", "pods")) == 1

    def test_repr_redacts_token(self):
        client = KubeClient("https://api.test/", token="secret-token", session=FakeSession(FakeApiServer()))
        assert "secret-token" not in repr(client)
        assert client.api_url == "https://api.test"


class TestBuildSession:
    def test_bearer_token_and_tls(self):
        session = build_session("abc", ca_cert="/tmp/ca.crt")
        assert session.headers["Authorization"] == "Bearer abc"
        assert session.verify == "/tmp/ca.crt"

    def test_insecure(self):
        session = build_session("", verify_tls=False)
        assert "Authorization" not in session.headers
        assert session.verify is False

"""Shared fixtures: fake API servers wired into real clients."""

from __future__ import annotations

import pytest

from stateful_migrator.client import KubeClient, resource_path
from stateful_migrator.cli import build_components
from stateful_migrator.config import AppConfig, EndpointConfig

from .fakes import FakeApiServer, FakeSession, make_pod, make_workload

CLUSTERS = ("c1", "c2")


@pytest.fixture
def api_server() -> FakeApiServer:
    return FakeApiServer()


@pytest.fixture
def karmada_server() -> FakeApiServer:
    server = FakeApiServer()
    for name in CLUSTERS:
        server.add_cluster(name)
    return server


@pytest.fixture
def api(api_server) -> KubeClient:
    return KubeClient("https://api.test", token="local-token", session=FakeSession(api_server))


@pytest.fixture
def karmada(karmada_server) -> KubeClient:
    return KubeClient("https://karmada.test", token="karmada-token", session=FakeSession(karmada_server))


@pytest.fixture
def app_config(tmp_path) -> AppConfig:
    return AppConfig(
        api_server=EndpointConfig(url="https://api.test"),
        karmada=EndpointConfig(url="https://karmada.test"),
        crd_search_paths=(str(tmp_path / "missing.yaml"),),
    )


@pytest.fixture
def components(app_config, api, karmada):
    return build_components(app_config, api=api, karmada=karmada, karmada_available=True)


def seed_statefulset(server: FakeApiServer, pods: list[str], name: str = "app",
                     namespace: str = "default") -> None:
    """A StatefulSet selecting ``app=<name>`` plus its pods."""
    server.seed(
        resource_path("apps/v1", "statefulsets", namespace),
        make_workload("StatefulSet", name, namespace),
    )
    for pod in pods:
        server.seed(
            resource_path("v1", "pods", namespace),
            make_pod(pod, namespace, labels={"app": name}),
        )

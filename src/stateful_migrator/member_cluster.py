"""
Access to member clusters through the Karmada aggregated cluster proxy.

Every request is sent to the Karmada API server as
``/apis/cluster.karmada.io/v1alpha1/clusters/<cluster>/proxy/<remote path>``
and forwarded unchanged to the member cluster's API.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import requests
import yaml

from .client import KubeClient, is_not_found, resource_path
from .crds import CHECKPOINT_BACKUP_CRD_YAML
from .models import CHECKPOINT_BACKUP_CRD_NAME, KARMADA_CLUSTER_API_VERSION
from .validation import validate_dns_label

__all__ = [
    "DEFAULT_CRD_SEARCH_PATHS",
    "MemberClusterClient",
    "load_crd_definition",
]

logger = logging.getLogger(__name__)

# Tried in order before falling back to the built-in definition.
DEFAULT_CRD_SEARCH_PATHS = (
    "/etc/crds/migration.dcnlab.com_checkpointbackups.yaml",
    "/app/crds/migration.dcnlab.com_checkpointbackups.yaml",
    "config/crd/bases/migration.dcnlab.com_checkpointbackups.yaml",
)

_CRD_API_VERSION = "apiextensions.k8s.io/v1"


def load_crd_definition(search_paths: Sequence[str] = DEFAULT_CRD_SEARCH_PATHS) -> dict:
    """Return the CheckpointBackup CRD as a dict.

    The first readable file in *search_paths* holding a YAML mapping
    wins; otherwise the built-in definition is used.
    """
    for path in search_paths:
        try:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
        except OSError:
            continue
        definition = yaml.safe_load(text)
        if not isinstance(definition, dict):
            logger.warning("Ignoring CheckpointBackup CRD file %s: not a YAML mapping", path)
            continue
        logger.debug("Using CheckpointBackup CRD from %s", path)
        return definition
    logger.debug("No mounted CRD file found, using built-in definition")
    return yaml.safe_load(CHECKPOINT_BACKUP_CRD_YAML)


class MemberClusterClient:
    """Reads and writes member-cluster objects via the Karmada proxy."""

    def __init__(
        self,
        karmada: KubeClient,
        crd_search_paths: Sequence[str] = DEFAULT_CRD_SEARCH_PATHS,
    ):
        self.karmada = karmada
        self.crd_search_paths = tuple(crd_search_paths)

    @staticmethod
    def proxy_path(cluster: str, remote_path: str) -> str:
        validate_dns_label(cluster, "cluster name")
        return (
            f"/apis/{KARMADA_CLUSTER_API_VERSION}/clusters/{cluster}/proxy"
            f"{remote_path}"
        )

    # ------------------------------------------------------------------
    # Pods
    # ------------------------------------------------------------------

    def get_pod(self, cluster: str, namespace: str, name: str) -> dict:
        """GET a pod from *cluster*. A missing pod raises an HTTP 404 error."""
        pod = self.karmada.get(
            self.proxy_path(cluster, resource_path("v1", "pods", namespace, name))
        )
        logger.debug("Fetched pod %s/%s from cluster %s", namespace, name, cluster)
        return pod

    def update_pod(self, cluster: str, pod: dict) -> dict:
        meta = pod.get("metadata") or {}
        namespace, name = meta.get("namespace", ""), meta.get("name", "")
        updated = self.karmada.update(
            self.proxy_path(cluster, resource_path("v1", "pods", namespace, name)),
            pod,
        )
        logger.info("Updated pod %s/%s on cluster %s", namespace, name, cluster)
        return updated

    # ------------------------------------------------------------------
    # Bootstrap checks
    # ------------------------------------------------------------------

    def test_cluster_connection(self, cluster: str) -> None:
        self.karmada.list(
            self.proxy_path(cluster, resource_path("v1", "namespaces")), limit=1,
        )
        logger.debug("Cluster %s reachable through the Karmada proxy", cluster)

    def ensure_namespace(self, cluster: str, namespace: str) -> bool:
        """Create *namespace* on *cluster* if missing. Returns True if created."""
        try:
            self.karmada.get(
                self.proxy_path(cluster, resource_path("v1", "namespaces", name=namespace))
            )
            logger.debug("Namespace %s already exists on cluster %s", namespace, cluster)
            return False
        except requests.HTTPError as exc:
            if not is_not_found(exc):
                raise

        body = {
            "apiVersion": "v1",
            "kind": "Namespace",
            "metadata": {
                "name": namespace,
                "labels": {
                    "created-by": "stateful-migration-operator",
                    "cluster": cluster,
                },
            },
        }
        self.karmada.create(
            self.proxy_path(cluster, resource_path("v1", "namespaces")), body,
        )
        logger.info("Created namespace %s on cluster %s", namespace, cluster)
        return True

    def ensure_crd(self, cluster: str) -> bool:
        """Install the CheckpointBackup CRD on *cluster* if missing.

        Returns True if the CRD was installed by this call.
        """
        crd_path = resource_path(
            _CRD_API_VERSION, "customresourcedefinitions", name=CHECKPOINT_BACKUP_CRD_NAME,
        )
        try:
            self.karmada.get(self.proxy_path(cluster, crd_path))
            logger.debug("CheckpointBackup CRD present on cluster %s", cluster)
            return False
        except requests.HTTPError as exc:
            if not is_not_found(exc):
                raise

        logger.info("CheckpointBackup CRD missing on cluster %s, installing", cluster)
        definition = load_crd_definition(self.crd_search_paths)
        self.karmada.create(
            self.proxy_path(cluster, resource_path(_CRD_API_VERSION, "customresourcedefinitions")),
            definition,
        )
        logger.info("Installed CheckpointBackup CRD on cluster %s", cluster)
        return True

    def bootstrap(self, cluster: str, namespace: str) -> None:
        """Make *cluster* ready to receive CheckpointBackups in *namespace*.

        An unreachable cluster fails here, before anything is written to it.
        """
        self.test_cluster_connection(cluster)
        self.ensure_namespace(cluster, namespace)
        self.ensure_crd(cluster)

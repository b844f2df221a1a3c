"""
Karmada PropagationPolicy management.

One policy per CheckpointBackup binds it to exactly one member cluster;
one extra policy propagates the shared namespace to every source cluster.
Policies are not garbage-collected through owner references, so they
are created, updated and deleted explicitly here.
"""

from __future__ import annotations

import copy
import logging
from collections.abc import Sequence

import requests

from .client import KubeClient, is_not_found, resource_path
from .models import (
    KARMADA_POLICY_API_VERSION,
    OPERATOR_LABELS,
    PROPAGATION_POLICY_KIND,
    PROPAGATION_POLICY_PLURAL,
)

__all__ = [
    "KARMADA_LABEL_PREFIXES",
    "PropagationPolicyManager",
    "build_policy",
    "policy_name_for",
]

logger = logging.getLogger(__name__)

# Labels Karmada stamps on a policy (e.g. its permanent ID) must survive
# our full-object updates.
KARMADA_LABEL_PREFIXES = ("propagationpolicy.karmada.io/", "karmada.io/")


def policy_name_for(object_name: str) -> str:
    return f"{object_name}-policy"


def build_policy(
    name: str,
    namespace: str,
    target_api_version: str,
    target_kind: str,
    target_name: str,
    clusters: Sequence[str],
    labels: dict[str, str] | None = None,
) -> dict:
    """A PropagationPolicy selecting one object and pinning it to *clusters*."""
    metadata: dict = {"name": name, "namespace": namespace}
    if labels:
        metadata["labels"] = dict(labels)
    return {
        "apiVersion": KARMADA_POLICY_API_VERSION,
        "kind": PROPAGATION_POLICY_KIND,
        "metadata": metadata,
        "spec": {
            "resourceSelectors": [
                {
                    "apiVersion": target_api_version,
                    "kind": target_kind,
                    "name": target_name,
                },
            ],
            "placement": {
                "clusterAffinity": {"clusterNames": list(clusters)},
            },
        },
    }


def _managed_view(spec: dict | None) -> tuple:
    """The parts of a policy spec this controller owns.

    Karmada defaults other fields (conflict resolution, tolerations, ...)
    on admission, so they are ignored when deciding whether to update.
    """
    spec = spec or {}
    selectors = tuple(
        (s.get("apiVersion", ""), s.get("kind", ""), s.get("name", ""))
        for s in spec.get("resourceSelectors") or []
    )
    affinity = (spec.get("placement") or {}).get("clusterAffinity") or {}
    return selectors, tuple(affinity.get("clusterNames") or [])


class PropagationPolicyManager:
    """Creates, updates and deletes PropagationPolicies on Karmada.

    *enabled* is decided once at start-up from a connection check. When
    it is False every operation is logged and skipped, and the rest of
    the reconcile pipeline carries on without cross-cluster propagation.
    """

    def __init__(self, karmada: KubeClient | None, enabled: bool = True):
        self.karmada = karmada
        self.enabled = enabled and karmada is not None

    @classmethod
    def disabled(cls) -> "PropagationPolicyManager":
        return cls(None, enabled=False)

    @staticmethod
    def _path(namespace: str, name: str | None = None) -> str:
        return resource_path(KARMADA_POLICY_API_VERSION, PROPAGATION_POLICY_PLURAL, namespace, name)

    # ------------------------------------------------------------------
    # Upsert / delete
    # ------------------------------------------------------------------

    def apply(self, policy: dict, update_existing: bool = True) -> str:
        """Create *policy*, or replace the existing one with the same name.

        Returns one of ``"created"``, ``"updated"``, ``"unchanged"`` or
        ``"skipped"`` (manager disabled).
        """
        meta = policy["metadata"]
        name, namespace = meta["name"], meta["namespace"]
        if not self.enabled:
            logger.info("Karmada unavailable, skipping PropagationPolicy %s/%s", namespace, name)
            return "skipped"

        try:
            existing = self.karmada.get(self._path(namespace, name))
        except requests.HTTPError as exc:
            if not is_not_found(exc):
                raise
            self.karmada.create(self._path(namespace), policy)
            logger.info("Created PropagationPolicy %s/%s", namespace, name)
            return "created"

        if not update_existing:
            logger.debug("PropagationPolicy %s/%s already exists", namespace, name)
            return "unchanged"

        desired = copy.deepcopy(policy)
        existing_meta = existing.get("metadata") or {}
        labels = dict(desired["metadata"].get("labels") or {})
        for key, value in (existing_meta.get("labels") or {}).items():
            if key.startswith(KARMADA_LABEL_PREFIXES):
                labels[key] = value
        if labels:
            desired["metadata"]["labels"] = labels

        if (
            _managed_view(existing.get("spec")) == _managed_view(desired["spec"])
            and (existing_meta.get("labels") or {}) == labels
        ):
            logger.debug("PropagationPolicy %s/%s up to date", namespace, name)
            return "unchanged"

        desired["metadata"]["resourceVersion"] = existing_meta.get("resourceVersion", "")
        self.karmada.update(self._path(namespace, name), desired)
        logger.info("Updated PropagationPolicy %s/%s", namespace, name)
        return "updated"

    def delete(self, namespace: str, name: str) -> bool:
        """Delete a policy. Returns False when it was already gone or disabled."""
        if not self.enabled:
            logger.debug("Karmada unavailable, not deleting PropagationPolicy %s/%s", namespace, name)
            return False
        try:
            self.karmada.delete(self._path(namespace, name))
        except requests.HTTPError as exc:
            if is_not_found(exc):
                return False
            raise
        logger.info("Deleted PropagationPolicy %s/%s", namespace, name)
        return True

    # ------------------------------------------------------------------
    # Policies used by the controller
    # ------------------------------------------------------------------

    def ensure_for_object(
        self,
        api_version: str,
        kind: str,
        name: str,
        namespace: str,
        cluster: str,
    ) -> str:
        """Upsert ``<name>-policy`` binding one object to one cluster."""
        policy = build_policy(
            policy_name_for(name), namespace, api_version, kind, name, [cluster],
        )
        return self.apply(policy)

    def delete_for_object(self, namespace: str, name: str) -> bool:
        return self.delete(namespace, policy_name_for(name))

    def ensure_for_namespace(self, namespace: str, clusters: Sequence[str]) -> str:
        """Create ``<namespace>-propagation`` if it does not exist yet.

        An existing namespace policy is left untouched.
        """
        labels = dict(OPERATOR_LABELS)
        labels["resource-type"] = "namespace"
        policy = build_policy(
            f"{namespace}-propagation", namespace, "v1", "Namespace", namespace,
            clusters, labels=labels,
        )
        return self.apply(policy, update_existing=False)

"""
Fan-out of a StatefulMigration into CheckpointBackups.

The desired set is every discovered pod on every source cluster. Each
unit is created or fully replaced, then bound to its cluster with a
PropagationPolicy. Units whose pod has disappeared are swept afterwards.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field

import requests

from .client import KubeClient, is_not_found, resource_path
from .models import (
    CHECKPOINT_BACKUP_KIND,
    CHECKPOINT_BACKUP_PLURAL,
    LABEL_MIGRATION,
    LABEL_TARGET_CLUSTER,
    LABEL_TARGET_POD,
    MIGRATION_API_VERSION,
    CheckpointBackupSpec,
    PodIdentity,
    PodRef,
    StatefulMigration,
)
from .propagation import PropagationPolicyManager
from .selectors import selector_from_labels
from .validation import validate_dns_subdomain

__all__ = [
    "BackupFanout",
    "FanoutSummary",
    "backup_name",
    "build_checkpoint_backup",
]

logger = logging.getLogger(__name__)


def backup_name(migration_name: str, pod_name: str, cluster: str) -> str:
    """Deterministic CheckpointBackup name for one (pod, cluster) pair."""
    return validate_dns_subdomain(
        f"{migration_name}-{pod_name}-{cluster}", "CheckpointBackup name",
    )


def build_checkpoint_backup(
    migration: StatefulMigration, pod: PodIdentity, cluster: str
) -> dict:
    """The desired CheckpointBackup for *pod* on *cluster*."""
    spec = CheckpointBackupSpec(
        schedule=migration.schedule,
        pod_ref=PodRef(name=pod.name, namespace=pod.namespace),
        resource_ref=migration.resource_ref,
        registry=migration.registry,
        containers=pod.containers,
    )
    return {
        "apiVersion": MIGRATION_API_VERSION,
        "kind": CHECKPOINT_BACKUP_KIND,
        "metadata": {
            "name": backup_name(migration.name, pod.name, cluster),
            "namespace": migration.namespace,
            "labels": {
                LABEL_MIGRATION: migration.name,
                LABEL_TARGET_CLUSTER: cluster,
                LABEL_TARGET_POD: pod.name,
            },
            "ownerReferences": [migration.owner_reference()],
        },
        "spec": spec.to_dict(),
    }


@dataclass
class FanoutSummary:
    """Names of the units touched by one pass."""
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)

    @property
    def writes(self) -> int:
        return len(self.created) + len(self.updated) + len(self.deleted)


class BackupFanout:
    """Creates, updates and deletes the CheckpointBackups of a migration."""

    def __init__(self, api: KubeClient, policies: PropagationPolicyManager):
        self.api = api
        self.policies = policies

    @staticmethod
    def _path(namespace: str, name: str | None = None) -> str:
        return resource_path(MIGRATION_API_VERSION, CHECKPOINT_BACKUP_PLURAL, namespace, name)

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    def upsert(self, desired: dict, summary: FanoutSummary) -> None:
        """Create *desired*, or replace the spec of the existing unit.

        Only ``spec`` is replaced; metadata (labels, owner references,
        resourceVersion) of an existing unit is kept as stored.
        """
        meta = desired["metadata"]
        name, namespace = meta["name"], meta["namespace"]
        try:
            existing = self.api.get(self._path(namespace, name))
        except requests.HTTPError as exc:
            if not is_not_found(exc):
                raise
            self.api.create(self._path(namespace), desired)
            logger.info("Created CheckpointBackup %s/%s", namespace, name)
            summary.created.append(name)
            return

        if existing.get("spec") == desired["spec"]:
            summary.unchanged.append(name)
            return
        existing["spec"] = desired["spec"]
        self.api.update(self._path(namespace, name), existing)
        logger.info("Updated CheckpointBackup %s/%s", namespace, name)
        summary.updated.append(name)

    def reconcile(
        self, migration: StatefulMigration, pods: Sequence[PodIdentity]
    ) -> FanoutSummary:
        """Upsert one unit and its policy per (cluster, pod).

        Clusters are walked in configured order, pods in discovery order.
        The first error aborts the pass.
        """
        summary = FanoutSummary()
        for cluster in migration.source_clusters:
            for pod in pods:
                desired = build_checkpoint_backup(migration, pod, cluster)
                self.upsert(desired, summary)
                self.policies.ensure_for_object(
                    MIGRATION_API_VERSION,
                    CHECKPOINT_BACKUP_KIND,
                    desired["metadata"]["name"],
                    migration.namespace,
                    cluster,
                )
        return summary

    # ------------------------------------------------------------------
    # Cleanup
    # ------------------------------------------------------------------

    def list_backups(self, migration: StatefulMigration) -> list[dict]:
        """All units labelled for *migration*, from a single list call."""
        return self.api.list(
            self._path(migration.namespace),
            label_selector=selector_from_labels({LABEL_MIGRATION: migration.name}),
        )

    def _delete(self, namespace: str, name: str) -> bool:
        try:
            self.api.delete(self._path(namespace, name))
        except requests.HTTPError as exc:
            if not is_not_found(exc):
                raise
            deleted = False
        else:
            logger.info("Deleted CheckpointBackup %s/%s", namespace, name)
            deleted = True
        self.policies.delete_for_object(namespace, name)
        return deleted

    def collect_orphans(
        self,
        migration: StatefulMigration,
        pods: Sequence[PodIdentity],
        summary: FanoutSummary | None = None,
    ) -> list[str]:
        """Delete units whose ``target-pod`` is missing or no longer desired.

        Only the pod name is compared. A unit for a cluster that was
        dropped from ``sourceClusters`` survives as long as its pod exists.
        """
        wanted = {pod.name for pod in pods}
        removed: list[str] = []
        for backup in self.list_backups(migration):
            meta = backup.get("metadata") or {}
            pod_name = (meta.get("labels") or {}).get(LABEL_TARGET_POD)
            if pod_name and pod_name in wanted:
                continue
            logger.info(
                "CheckpointBackup %s/%s is orphaned (target-pod=%s)",
                migration.namespace, meta.get("name", ""), pod_name,
            )
            if self._delete(migration.namespace, meta.get("name", "")):
                removed.append(meta.get("name", ""))
        if summary is not None:
            summary.deleted.extend(removed)
        return removed

    def delete_all(self, migration: StatefulMigration) -> list[str]:
        """Delete every unit labelled for *migration* (teardown)."""
        removed: list[str] = []
        for backup in self.list_backups(migration):
            name = (backup.get("metadata") or {}).get("name", "")
            if self._delete(migration.namespace, name):
                removed.append(name)
        return removed

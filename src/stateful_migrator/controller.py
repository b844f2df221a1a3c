"""
Lifecycle controller for StatefulMigration objects.

Processing order of a normal pass:
  1. Finalizer  -- attach the cleanup finalizer if missing
  2. Label      -- mark the workload (or pod) as under migration
  3. Discover   -- resolve the workload into pods
  4. Namespace  -- ensure the shared namespace and its PropagationPolicy
  5. Clusters   -- check each source cluster, ensure the migration namespace
                   and the CheckpointBackup CRD on it
  6. Fan-out    -- upsert one CheckpointBackup + policy per (cluster, pod)
  7. Sweep      -- delete CheckpointBackups whose pod is gone

Deletion (deletionTimestamp set):
  remove label -> delete all CheckpointBackups -> remove finalizer

Every step is idempotent; any failure aborts the pass and the whole
sequence is retried from the top.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from .client import KubeClient, is_not_found, resource_path
from .fanout import BackupFanout, FanoutSummary
from .member_cluster import MemberClusterClient
from .models import (
    MIGRATION_API_VERSION,
    MIGRATION_FINALIZER,
    OPERATOR_LABELS,
    REQUEUE_AFTER_SECONDS,
    SHARED_NAMESPACE,
    STATEFUL_MIGRATION_PLURAL,
    StatefulMigration,
)
from .propagation import PropagationPolicyManager
from .workloads import WorkloadRegistry

__all__ = ["MigrationBackupController", "ReconcileResult"]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of a successful pass. ``requeue_after`` is in seconds."""
    requeue_after: float | None = None
    summary: FanoutSummary | None = None


class MigrationBackupController:
    """Converges StatefulMigrations into CheckpointBackups.

    All collaborators are built and connection-checked before the
    controller is constructed. *members* is None and *policies* is
    disabled when the Karmada API was unreachable at start-up.
    """

    def __init__(
        self,
        api: KubeClient,
        workloads: WorkloadRegistry,
        fanout: BackupFanout,
        policies: PropagationPolicyManager,
        members: MemberClusterClient | None = None,
        requeue_after: float = REQUEUE_AFTER_SECONDS,
    ):
        self.api = api
        self.workloads = workloads
        self.fanout = fanout
        self.policies = policies
        self.members = members
        self.requeue_after = requeue_after

    @staticmethod
    def _path(namespace: str, name: str | None = None) -> str:
        return resource_path(MIGRATION_API_VERSION, STATEFUL_MIGRATION_PLURAL, namespace, name)

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        try:
            obj = self.api.get(self._path(namespace, name))
        except requests.HTTPError as exc:
            if is_not_found(exc):
                logger.info("StatefulMigration %s/%s not found, ignoring", namespace, name)
                return ReconcileResult()
            raise
        migration = StatefulMigration.from_dict(obj)

        if migration.deletion_timestamp:
            if MIGRATION_FINALIZER not in migration.finalizers:
                logger.debug("StatefulMigration %s is being deleted, nothing to clean up", migration.key)
                return ReconcileResult()
            return self.reconcile_delete(migration)

        if MIGRATION_FINALIZER not in migration.finalizers:
            migration = self._set_finalizers(
                migration, migration.finalizers + [MIGRATION_FINALIZER],
            )
            logger.info("Added finalizer to StatefulMigration %s", migration.key)

        return self.reconcile_normal(migration)

    # ------------------------------------------------------------------
    # Normal pass
    # ------------------------------------------------------------------

    def reconcile_normal(self, migration: StatefulMigration) -> ReconcileResult:
        handler = self.workloads.for_migration(migration)

        handler.add_label(migration)
        pods = handler.resolve_pods(migration)
        logger.info(
            "StatefulMigration %s: %d pod(s) x %d cluster(s)",
            migration.key, len(pods), len(migration.source_clusters),
        )

        self.ensure_shared_namespace(migration)

        if self.members is not None:
            for cluster in migration.source_clusters:
                self.members.bootstrap(cluster, migration.namespace)

        summary = self.fanout.reconcile(migration, pods)
        self.fanout.collect_orphans(migration, pods, summary)

        logger.info(
            "Reconciled StatefulMigration %s: %d created, %d updated, %d unchanged, %d deleted",
            migration.key, len(summary.created), len(summary.updated),
            len(summary.unchanged), len(summary.deleted),
        )
        return ReconcileResult(requeue_after=self.requeue_after, summary=summary)

    def ensure_shared_namespace(self, migration: StatefulMigration) -> None:
        """Ensure the shared namespace exists and is propagated to the source clusters."""
        path = resource_path("v1", "namespaces", name=SHARED_NAMESPACE)
        try:
            self.api.get(path)
        except requests.HTTPError as exc:
            if not is_not_found(exc):
                raise
            body = {
                "apiVersion": "v1",
                "kind": "Namespace",
                "metadata": {"name": SHARED_NAMESPACE, "labels": dict(OPERATOR_LABELS)},
            }
            self.api.create(resource_path("v1", "namespaces"), body)
            logger.info("Created namespace %s", SHARED_NAMESPACE)

        self.policies.ensure_for_namespace(SHARED_NAMESPACE, migration.source_clusters)

    # ------------------------------------------------------------------
    # Deletion
    # ------------------------------------------------------------------

    def reconcile_delete(self, migration: StatefulMigration) -> ReconcileResult:
        handler = self.workloads.for_migration(migration)
        handler.remove_label(migration)

        removed = self.fanout.delete_all(migration)
        logger.info(
            "Deleted %d CheckpointBackup(s) of StatefulMigration %s", len(removed), migration.key,
        )

        self._set_finalizers(
            migration, [f for f in migration.finalizers if f != MIGRATION_FINALIZER],
        )
        logger.info("Removed finalizer from StatefulMigration %s", migration.key)
        return ReconcileResult()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _set_finalizers(
        self, migration: StatefulMigration, finalizers: list[str]
    ) -> StatefulMigration:
        """PUT the migration with a new finalizer list and return the stored object."""
        obj = migration.raw
        obj.setdefault("metadata", {})["finalizers"] = finalizers
        updated = self.api.update(self._path(migration.namespace, migration.name), obj)
        return StatefulMigration.from_dict(updated or obj)

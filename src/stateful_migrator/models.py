"""
Shared data models and constants for the migration controllers.

The API objects themselves travel as plain JSON dicts; the dataclasses
here wrap the parts of them the controllers read and build.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any


# ------------------------------------------------------------------
# API groups and kinds
# ------------------------------------------------------------------

MIGRATION_GROUP = "migration.dcnlab.com"
MIGRATION_VERSION = "v1"
MIGRATION_API_VERSION = f"{MIGRATION_GROUP}/{MIGRATION_VERSION}"

STATEFUL_MIGRATION_KIND = "StatefulMigration"
STATEFUL_MIGRATION_PLURAL = "statefulmigrations"
CHECKPOINT_BACKUP_KIND = "CheckpointBackup"
CHECKPOINT_BACKUP_PLURAL = "checkpointbackups"
CHECKPOINT_BACKUP_CRD_NAME = f"{CHECKPOINT_BACKUP_PLURAL}.{MIGRATION_GROUP}"

KARMADA_POLICY_API_VERSION = "policy.karmada.io/v1alpha1"
PROPAGATION_POLICY_KIND = "PropagationPolicy"
PROPAGATION_POLICY_PLURAL = "propagationpolicies"
KARMADA_CLUSTER_API_VERSION = "cluster.karmada.io/v1alpha1"


# ------------------------------------------------------------------
# Well-known labels, finalizer and shared namespace
# ------------------------------------------------------------------

# Marks a workload (or pod) as under migration management.
MIGRATION_LABEL = "checkpoint-migration.dcn.io"

MIGRATION_FINALIZER = "migrationbackup.migration.dcnlab.com/finalizer"

# Correlation labels on every CheckpointBackup.
LABEL_MIGRATION = "stateful-migration"
LABEL_TARGET_CLUSTER = "target-cluster"
LABEL_TARGET_POD = "target-pod"

# Namespace shared by all migrations and propagated to every member cluster.
SHARED_NAMESPACE = "stateful-migration"

OPERATOR_LABELS = {
    "created-by": "stateful-migration-operator",
    "app.kubernetes.io/name": "stateful-migration",
    "app.kubernetes.io/part-of": "stateful-migration-operator",
}

# Success re-queue interval, catches drift that produces no event.
REQUEUE_AFTER_SECONDS = 300


# ------------------------------------------------------------------
# Spec fragments
# ------------------------------------------------------------------

@dataclass(frozen=True)
class ResourceRef:
    """Reference to the workload being migrated."""
    api_version: str
    kind: str
    name: str
    namespace: str = ""

    @classmethod
    def from_dict(cls, data: dict | None) -> "ResourceRef":
        data = data or {}
        return cls(
            api_version=data.get("apiVersion", ""),
            kind=data.get("kind", ""),
            name=data.get("name", ""),
            namespace=data.get("namespace", "") or "",
        )

    def to_dict(self) -> dict:
        out = {"apiVersion": self.api_version, "kind": self.kind, "name": self.name}
        if self.namespace:
            out["namespace"] = self.namespace
        return out


@dataclass(frozen=True)
class PodRef:
    name: str
    namespace: str = ""

    def to_dict(self) -> dict:
        out = {"name": self.name}
        if self.namespace:
            out["namespace"] = self.namespace
        return out


@dataclass(frozen=True)
class SecretRef:
    name: str


@dataclass(frozen=True)
class Registry:
    """Where checkpoint images are pushed."""
    url: str
    repository: str
    secret_ref: SecretRef | None = None

    @classmethod
    def from_dict(cls, data: dict | None) -> "Registry":
        data = data or {}
        secret = data.get("secretRef")
        return cls(
            url=data.get("url", ""),
            repository=data.get("repository", ""),
            secret_ref=SecretRef(name=secret.get("name", "")) if secret else None,
        )

    def to_dict(self) -> dict:
        out: dict[str, Any] = {"url": self.url, "repository": self.repository}
        if self.secret_ref is not None:
            out["secretRef"] = {"name": self.secret_ref.name}
        return out


@dataclass(frozen=True)
class Container:
    name: str
    image: str

    def to_dict(self) -> dict:
        return {"name": self.name, "image": self.image}


# ------------------------------------------------------------------
# Top-level objects
# ------------------------------------------------------------------

@dataclass(frozen=True)
class PodIdentity:
    """A pod discovered for the current pass. Never persisted."""
    namespace: str
    name: str
    cluster: str | None = None  # member cluster, when resolved through the proxy
    containers: tuple[Container, ...] = ()

    @classmethod
    def from_pod(cls, pod: dict, cluster: str | None = None) -> "PodIdentity":
        meta = pod.get("metadata") or {}
        spec = pod.get("spec") or {}
        containers = tuple(
            Container(name=c.get("name", ""), image=c.get("image", ""))
            for c in spec.get("containers") or []
        )
        return cls(
            namespace=meta.get("namespace", ""),
            name=meta.get("name", ""),
            cluster=cluster,
            containers=containers,
        )


@dataclass
class StatefulMigration:
    """A parsed StatefulMigration. ``raw`` is the object as returned by the API."""
    name: str
    namespace: str
    uid: str
    resource_ref: ResourceRef
    source_clusters: list[str]
    registry: Registry
    schedule: str
    raw: dict = field(default_factory=dict, repr=False)

    @classmethod
    def from_dict(cls, obj: dict) -> "StatefulMigration":
        meta = obj.get("metadata") or {}
        spec = obj.get("spec") or {}
        namespace = meta.get("namespace", "")
        resource_ref = ResourceRef.from_dict(spec.get("resourceRef"))
        if not resource_ref.namespace:
            # resourceRef.namespace is optional and defaults to the migration's own.
            resource_ref = replace(resource_ref, namespace=namespace)
        return cls(
            name=meta.get("name", ""),
            namespace=namespace,
            uid=meta.get("uid", ""),
            resource_ref=resource_ref,
            source_clusters=list(spec.get("sourceClusters") or []),
            registry=Registry.from_dict(spec.get("registry")),
            schedule=spec.get("schedule", ""),
            raw=obj,
        )

    @property
    def finalizers(self) -> list[str]:
        return list((self.raw.get("metadata") or {}).get("finalizers") or [])

    @property
    def deletion_timestamp(self) -> str | None:
        return (self.raw.get("metadata") or {}).get("deletionTimestamp")

    @property
    def key(self) -> str:
        return f"{self.namespace}/{self.name}"

    def owner_reference(self) -> dict:
        return {
            "apiVersion": MIGRATION_API_VERSION,
            "kind": STATEFUL_MIGRATION_KIND,
            "name": self.name,
            "uid": self.uid,
            "controller": True,
            "blockOwnerDeletion": True,
        }


@dataclass(frozen=True)
class CheckpointBackupSpec:
    schedule: str
    pod_ref: PodRef
    resource_ref: ResourceRef
    registry: Registry
    containers: tuple[Container, ...] = ()

    def to_dict(self) -> dict:
        out: dict[str, Any] = {
            "schedule": self.schedule,
            "podRef": self.pod_ref.to_dict(),
            "resourceRef": self.resource_ref.to_dict(),
            "registry": self.registry.to_dict(),
        }
        if self.containers:
            out["containers"] = [c.to_dict() for c in self.containers]
        return out

"""
In-memory stand-in for a Kubernetes API server.

``FakeSession`` is injected into :class:`KubeClient` in place of a
``requests.Session`` and answers with real ``requests.Response`` objects,
so the client's URL building and error handling run unmodified.

Supported behaviour: get/list/create/update/delete on any resource path,
label-selector filtering, resourceVersion conflicts, finalizer-gated
deletion, and the Karmada cluster proxy (routed to per-cluster servers).
"""

from __future__ import annotations

import copy
import itertools
import json
import re
from http import HTTPStatus
from urllib.parse import urlsplit

import requests

_PROXY_RE = re.compile(r"^/apis/cluster\.karmada\.io/v1alpha1/clusters/([^/]+)/proxy(/.*)$")


# ------------------------------------------------------------------
# Label selectors
# ------------------------------------------------------------------

def _split_requirements(selector: str) -> list[str]:
    parts, depth, current = [], 0, ""
    for ch in selector:
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current.strip())
            current = ""
        else:
            current += ch
    if current.strip():
        parts.append(current.strip())
    return parts


def matches_selector(labels: dict, selector: str | None) -> bool:
    if not selector:
        return True
    for req in _split_requirements(selector):
        m = re.match(r"^(\S+)\s+(in|notin)\s+\((.*)\)$", req)
        if m:
            key, op, values = m.group(1), m.group(2), set(m.group(3).split(","))
            if op == "in" and labels.get(key) not in values:
                return False
            if op == "notin" and key in labels and labels[key] in values:
                return False
        elif req.startswith("!"):
            if req[1:] in labels:
                return False
        elif "!=" in req:
            key, value = req.split("!=", 1)
            if labels.get(key) == value:
                return False
        elif "=" in req:
            key, value = req.split("=", 1)
            if labels.get(key) != value:
                return False
        elif req not in labels:
            return False
    return True


# ------------------------------------------------------------------
# Server
# ------------------------------------------------------------------

class FakeApiServer:

    def __init__(self) -> None:
        self.store: dict[tuple[str, str, str], dict[str, dict]] = {}
        self.calls: list[tuple[str, str]] = []
        self.clusters: dict[str, FakeApiServer] = {}
        self._rv = itertools.count(1)
        self._uid = itertools.count(1)
        self._failures: list[tuple[str, str, int]] = []

    # --- test helpers -------------------------------------------------

    def add_cluster(self, name: str) -> "FakeApiServer":
        member = FakeApiServer()
        self.clusters[name] = member
        return member

    def fail(self, method: str, path_fragment: str, status: int) -> None:
        """Answer the next *method* request whose path contains the fragment with *status*."""
        self._failures.append((method, path_fragment, status))

    def seed(self, path: str, obj: dict) -> dict:
        """Store *obj* under a collection path, bypassing the call log."""
        status, body = self._create(path, copy.deepcopy(obj))
        assert status == 201, body
        return body

    def objects(self, path: str) -> dict[str, dict]:
        gv, ns, plural, _ = self._parse(path)
        return self.store.get((gv, ns, plural), {})

    def object(self, path: str) -> dict | None:
        gv, ns, plural, name = self._parse(path)
        return self.store.get((gv, ns, plural), {}).get(name)

    @property
    def writes(self) -> list[tuple[str, str]]:
        return [c for c in self.calls if c[0] != "GET"]

    # --- routing --------------------------------------------------------

    @staticmethod
    def _parse(path: str) -> tuple[str, str, str, str | None]:
        segs = path.strip("/").split("/")
        if segs[0] == "api":
            gv, rest = segs[1], segs[2:]
        else:
            gv, rest = f"{segs[1]}/{segs[2]}", segs[3:]
        if rest[0] == "namespaces" and len(rest) >= 3:
            return gv, rest[1], rest[2], rest[3] if len(rest) > 3 else None
        return gv, "", rest[0], rest[1] if len(rest) > 1 else None

    def handle(self, method: str, path: str, params: dict | None, body: dict | None) -> tuple[int, dict]:
        m = _PROXY_RE.match(path)
        if m:
            self.calls.append((method, path))
            member = self.clusters.get(m.group(1))
            if member is None:
                return 404, _status(404, f"cluster {m.group(1)} not found")
            return member.handle(method, m.group(2), params, body)

        self.calls.append((method, path))
        for i, (f_method, fragment, status) in enumerate(self._failures):
            if f_method == method and fragment in path:
                del self._failures[i]
                return status, _status(status, "injected failure")

        gv, ns, plural, name = self._parse(path)
        if method == "GET":
            if name is None:
                return self._list(gv, ns, plural, params or {})
            obj = self.store.get((gv, ns, plural), {}).get(name)
            if obj is None:
                return 404, _status(404, f"{plural} {name!r} not found")
            return 200, copy.deepcopy(obj)
        if method == "POST":
            return self._create(path, copy.deepcopy(body or {}))
        if method == "PUT":
            return self._update(gv, ns, plural, name, copy.deepcopy(body or {}))
        if method == "DELETE":
            return self._delete(gv, ns, plural, name)
        return 405, _status(405, "method not allowed")

    # --- verbs ----------------------------------------------------------

    def _list(self, gv, ns, plural, params) -> tuple[int, dict]:
        selector = params.get("labelSelector")
        items = []
        for (s_gv, s_ns, s_plural), objs in self.store.items():
            if s_gv != gv or s_plural != plural or (ns and s_ns != ns):
                continue
            for obj in objs.values():
                labels = (obj.get("metadata") or {}).get("labels") or {}
                if matches_selector(labels, selector):
                    items.append(copy.deepcopy(obj))
        items.sort(key=lambda o: (o["metadata"].get("namespace", ""), o["metadata"]["name"]))
        limit = params.get("limit")
        if limit:
            items = items[: int(limit)]
        return 200, {"kind": "List", "items": items}

    def _create(self, path, obj) -> tuple[int, dict]:
        gv, ns, plural, _ = self._parse(path)
        meta = obj.setdefault("metadata", {})
        name = meta.get("name")
        bucket = self.store.setdefault((gv, ns, plural), {})
        if name in bucket:
            return 409, _status(409, f"{plural} {name!r} already exists")
        if ns:
            meta["namespace"] = ns
        meta["uid"] = meta.get("uid") or f"uid-{next(self._uid)}"
        meta["resourceVersion"] = str(next(self._rv))
        meta.pop("deletionTimestamp", None)
        bucket[name] = obj
        return 201, copy.deepcopy(obj)

    def _update(self, gv, ns, plural, name, obj) -> tuple[int, dict]:
        bucket = self.store.get((gv, ns, plural), {})
        stored = bucket.get(name)
        if stored is None:
            return 404, _status(404, f"{plural} {name!r} not found")
        meta = obj.setdefault("metadata", {})
        stored_meta = stored["metadata"]
        rv = meta.get("resourceVersion")
        if rv and rv != stored_meta["resourceVersion"]:
            return 409, _status(409, "the object has been modified")
        for key in ("uid", "namespace", "deletionTimestamp"):
            if key in stored_meta:
                meta[key] = stored_meta[key]
        meta["resourceVersion"] = stored_meta["resourceVersion"]
        if obj == stored:
            return 200, copy.deepcopy(stored)
        meta["resourceVersion"] = str(next(self._rv))
        if meta.get("deletionTimestamp") and not meta.get("finalizers"):
            del bucket[name]
            return 200, copy.deepcopy(obj)
        bucket[name] = obj
        return 200, copy.deepcopy(obj)

    def _delete(self, gv, ns, plural, name) -> tuple[int, dict]:
        bucket = self.store.get((gv, ns, plural), {})
        stored = bucket.get(name)
        if stored is None:
            return 404, _status(404, f"{plural} {name!r} not found")
        meta = stored["metadata"]
        if meta.get("finalizers"):
            if not meta.get("deletionTimestamp"):
                meta["deletionTimestamp"] = "2026-01-01T00:00:00Z"
                meta["resourceVersion"] = str(next(self._rv))
            return 200, copy.deepcopy(stored)
        del bucket[name]
        return 200, _status(200, "deleted")


def _status(code: int, message: str) -> dict:
    return {"kind": "Status", "code": code, "message": message}


class FakeSession:
    """Quacks like ``requests.Session`` for :class:`KubeClient`."""

    def __init__(self, server: FakeApiServer):
        self.server = server
        self.headers: dict[str, str] = {}

    def request(self, method, url, params=None, json=None, timeout=None, **kwargs):
        path = urlsplit(url).path
        status, body = self.server.handle(method, path, params, json)
        return make_response(status, body, url)


def make_response(status: int, body: dict, url: str = "https://fake") -> requests.Response:
    resp = requests.Response()
    resp.status_code = status
    resp._content = json.dumps(body).encode()
    resp.url = url
    resp.reason = HTTPStatus(status).phrase
    resp.headers["Content-Type"] = "application/json"
    return resp


# ------------------------------------------------------------------
# Object factories
# ------------------------------------------------------------------

def make_pod(name: str, namespace: str = "default", labels: dict | None = None,
             images: dict[str, str] | None = None) -> dict:
    images = images or {"app": "nginx:1.27"}
    return {
        "apiVersion": "v1",
        "kind": "Pod",
        "metadata": {"name": name, "namespace": namespace, "labels": dict(labels or {})},
        "spec": {"containers": [{"name": c, "image": i} for c, i in images.items()]},
    }


def make_workload(kind: str, name: str, namespace: str = "default",
                  match_labels: dict | None = None, selector: dict | None = None) -> dict:
    if selector is None:
        selector = {"matchLabels": dict(match_labels or {"app": name})}
    return {
        "apiVersion": "apps/v1",
        "kind": kind,
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"selector": selector},
    }


def make_migration(name: str = "mig1", namespace: str = "default",
                   kind: str = "StatefulSet", workload: str = "app",
                   clusters: list[str] | None = None, schedule: str = "*/5 * * * *",
                   workload_namespace: str = "default") -> dict:
    return {
        "apiVersion": "migration.dcnlab.com/v1",
        "kind": "StatefulMigration",
        "metadata": {"name": name, "namespace": namespace},
        "spec": {
            "resourceRef": {
                "apiVersion": "v1" if kind == "Pod" else "apps/v1",
                "kind": kind,
                "namespace": workload_namespace,
                "name": workload,
            },
            "sourceClusters": list(clusters if clusters is not None else ["c1", "c2"]),
            "registry": {"url": "registry.example.com", "repository": "checkpoints",
                         "secretRef": {"name": "registry-creds"}},
            "schedule": schedule,
        },
    }

"""
Kubernetes-style REST client for the control-plane API server.

Used for the local store (StatefulMigrations, CheckpointBackups,
workloads, pods, namespaces) and for the Karmada API server
(PropagationPolicies and the aggregated cluster proxy).
"""

from __future__ import annotations

import logging
from typing import Any

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

__all__ = [
    "KubeClient",
    "build_session",
    "is_conflict",
    "is_not_found",
    "resource_path",
    "status_code",
]

logger = logging.getLogger(__name__)

# Retry on transient gateway errors and connection failures. PUT is safe to
# retry because every update carries a resourceVersion.
_DEFAULT_RETRY = Retry(
    total=3,
    backoff_factor=0.5,
    status_forcelist=[502, 503, 504],
    allowed_methods=["GET", "PUT", "POST", "DELETE"],
    raise_on_status=False,
)


# ---------------------------------------------------------------------------
# Error classification
# ---------------------------------------------------------------------------

def status_code(exc: BaseException) -> int | None:
    """HTTP status of a failed request, or None for connection errors."""
    if isinstance(exc, requests.HTTPError) and exc.response is not None:
        return exc.response.status_code
    return None


def is_not_found(exc: BaseException) -> bool:
    return status_code(exc) == 404


def is_conflict(exc: BaseException) -> bool:
    return status_code(exc) == 409


# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

def resource_path(
    api_version: str,
    plural: str,
    namespace: str | None = None,
    name: str | None = None,
) -> str:
    """Build the REST path for a resource collection or a single object.

    ``v1`` maps to the core group under ``/api``; everything else lives
    under ``/apis/<group>/<version>``.
    """
    base = "/api/v1" if api_version == "v1" else f"/apis/{api_version}"
    path = f"{base}/namespaces/{namespace}/{plural}" if namespace else f"{base}/{plural}"
    if name:
        path = f"{path}/{name}"
    return path


def build_session(
    token: str = "",
    ca_cert: str | None = None,
    verify_tls: bool = True,
    retry: Retry | None = None,
) -> requests.Session:
    """Create a requests.Session with bearer auth, TLS settings and retries."""
    session = requests.Session()
    session.headers.update({
        "Content-Type": "application/json",
        "Accept": "application/json",
    })
    if token:
        session.headers["Authorization"] = f"Bearer {token}"
    if not verify_tls:
        session.verify = False
    elif ca_cert:
        session.verify = ca_cert
    adapter = HTTPAdapter(max_retries=retry or _DEFAULT_RETRY)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


# ---------------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------------

class KubeClient:
    """Thin JSON client for a Kubernetes-compatible API server.

    Every failed request raises ``requests.HTTPError`` (or another
    ``requests.RequestException``); callers classify it with
    :func:`is_not_found` / :func:`is_conflict`.
    """

    # (connect, read) in seconds.
    DEFAULT_TIMEOUT = (10, 60)

    def __init__(
        self,
        api_url: str,
        token: str = "",
        ca_cert: str | None = None,
        verify_tls: bool = True,
        session: requests.Session | None = None,
    ):
        self.api_url = api_url.rstrip("/")
        self._token_hint = token[:4] + "***" if len(token) > 4 else "***"
        self.session = session or build_session(token, ca_cert, verify_tls)

    def __repr__(self) -> str:
        return f"KubeClient(api_url={self.api_url!r}, token={self._token_hint!r})"

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        body: Any = None,
    ) -> dict:
        url = f"{self.api_url}{path}"
        logger.debug("%s %s %s", method, url, params or "")
        resp = self.session.request(
            method, url, params=params, json=body, timeout=self.DEFAULT_TIMEOUT,
        )
        resp.raise_for_status()
        if not resp.content:
            return {}
        return resp.json()

    # ------------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------------

    def get(self, path: str, params: dict | None = None) -> dict:
        return self._request("GET", path, params=params)

    def list(
        self,
        path: str,
        label_selector: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """GET a collection and return its ``items``."""
        params: dict[str, Any] = {}
        if label_selector:
            params["labelSelector"] = label_selector
        if limit:
            params["limit"] = limit
        data = self._request("GET", path, params=params or None)
        return data.get("items") or []

    def create(self, path: str, body: dict) -> dict:
        """POST *body* to a collection path."""
        return self._request("POST", path, body=body)

    def update(self, path: str, body: dict) -> dict:
        """PUT the full object. Fails with 409 when resourceVersion is stale."""
        return self._request("PUT", path, body=body)

    def delete(self, path: str) -> dict:
        return self._request("DELETE", path)

    # ------------------------------------------------------------------
    # Connectivity
    # ------------------------------------------------------------------

    def test_connection(self, path: str) -> int:
        """List *path* with ``limit=1``; return the number of items seen.

        Raises the underlying request error when the server is unreachable
        or the collection does not exist.
        """
        items = self.list(path, limit=1)
        logger.info("Connected to %s (%d item(s) on %s)", self.api_url, len(items), path)
        return len(items)

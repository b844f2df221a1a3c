"""
Restore-side controller. Only acknowledges StatefulMigrations for now.
"""

from __future__ import annotations

import logging

import requests

from .client import KubeClient, is_not_found, resource_path
from .controller import ReconcileResult
from .models import MIGRATION_API_VERSION, STATEFUL_MIGRATION_PLURAL

__all__ = ["MigrationRestoreController"]

logger = logging.getLogger(__name__)


class MigrationRestoreController:

    def __init__(self, api: KubeClient):
        self.api = api

    def reconcile(self, namespace: str, name: str) -> ReconcileResult:
        path = resource_path(MIGRATION_API_VERSION, STATEFUL_MIGRATION_PLURAL, namespace, name)
        try:
            self.api.get(path)
        except requests.HTTPError as exc:
            if is_not_found(exc):
                return ReconcileResult()
            raise
        logger.info("Restore controller received StatefulMigration %s/%s", namespace, name)
        return ReconcileResult()

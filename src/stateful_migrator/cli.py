"""
CLI entry points: ``run`` starts the controllers, ``reconcile`` performs
a single pass for one StatefulMigration and prints the outcome.
"""

from __future__ import annotations

import argparse
import logging
import signal
import sys
from dataclasses import dataclass

import requests

from .client import KubeClient, resource_path
from .config import DEFAULT_CONFIG_PATH, AppConfig, ConfigError, load_config, merge_cli_overrides
from .controller import MigrationBackupController
from .fanout import BackupFanout
from .logging_setup import setup_logging
from .manager import ControllerManager, list_migration_keys
from .member_cluster import MemberClusterClient
from .models import KARMADA_POLICY_API_VERSION, PROPAGATION_POLICY_PLURAL
from .propagation import PropagationPolicyManager
from .restore import MigrationRestoreController
from .workloads import WorkloadRegistry

__all__ = ["Components", "build_components", "main_reconcile", "main_run"]

logger = logging.getLogger(__name__)


# ------------------------------------------------------------------
# Wiring
# ------------------------------------------------------------------

@dataclass
class Components:
    api: KubeClient
    backup: MigrationBackupController
    restore: MigrationRestoreController
    karmada_available: bool


def _client(endpoint) -> KubeClient:
    return KubeClient(
        endpoint.url,
        token=endpoint.token,
        ca_cert=endpoint.ca_cert or None,
        verify_tls=endpoint.verify_tls,
    )


def connect_karmada(cfg: AppConfig) -> KubeClient | None:
    """Build the Karmada client and check it once. None means unavailable."""
    if cfg.karmada is None:
        logger.warning("No Karmada endpoint configured - PropagationPolicies will be skipped")
        return None
    karmada = _client(cfg.karmada)
    try:
        karmada.test_connection(
            resource_path(KARMADA_POLICY_API_VERSION, PROPAGATION_POLICY_PLURAL)
        )
    except requests.RequestException as exc:
        logger.error("Failed to connect to Karmada at %s: %s", cfg.karmada.url, exc)
        logger.warning("Continuing without Karmada - PropagationPolicies will be skipped")
        return None
    return karmada


def build_components(
    cfg: AppConfig,
    api: KubeClient | None = None,
    karmada: KubeClient | None = None,
    karmada_available: bool | None = None,
) -> Components:
    """Build every collaborator up front and inject them into the controllers.

    Clients may be passed in (tests); otherwise they are built from *cfg*
    and the Karmada connection is checked here, once.
    """
    api = api or _client(cfg.api_server)
    if karmada_available is None:
        karmada = connect_karmada(cfg) if karmada is None else karmada
        karmada_available = karmada is not None

    if karmada_available:
        policies = PropagationPolicyManager(karmada)
        members = MemberClusterClient(karmada, cfg.crd_search_paths)
    else:
        policies = PropagationPolicyManager.disabled()
        members = None

    backup = MigrationBackupController(
        api=api,
        workloads=WorkloadRegistry.default(api, members),
        fanout=BackupFanout(api, policies),
        policies=policies,
        members=members,
    )
    return Components(
        api=api,
        backup=backup,
        restore=MigrationRestoreController(api),
        karmada_available=karmada_available,
    )


# ------------------------------------------------------------------
# Argument parsing
# ------------------------------------------------------------------

def _common_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        "-c",
        default=DEFAULT_CONFIG_PATH,
        help="Path to YAML config file (default: config/config.yaml)",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose (debug) logging",
    )


def _load(args, log_prefix: str) -> AppConfig:
    try:
        cfg = merge_cli_overrides(load_config(args.config), args)
    except ConfigError as exc:
        setup_logging(verbose=args.verbose)
        logger.error("Configuration error: %s", exc)
        sys.exit(1)
    log_path = setup_logging(verbose=cfg.verbose, log_prefix=log_prefix, log_dir=cfg.log_dir)
    if log_path:
        logger.info("Log file: %s", log_path)
    return cfg


# ------------------------------------------------------------------
# run
# ------------------------------------------------------------------

def main_run(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="stateful-migrator run",
        description="Run the migration backup and restore controllers.",
    )
    _common_args(parser)
    parser.add_argument(
        "--workers", "-w", type=int, default=None,
        help="Worker threads per controller (overrides controller.workers)",
    )
    parser.add_argument(
        "--namespace", "-n", default=None,
        help="Only watch StatefulMigrations in this namespace (default: all)",
    )
    args = parser.parse_args(argv)
    cfg = _load(args, "controller")

    components = build_components(cfg)
    manager = ControllerManager(
        list_keys=lambda: list_migration_keys(components.api, cfg.controller.namespace),
        resync_seconds=cfg.controller.resync_seconds,
    )
    manager.add_controller("migrationbackup", components.backup, cfg.controller.workers)
    manager.add_controller("migrationrestore", components.restore, 1)

    def _handle_signal(signum, _frame):
        logger.info("Received signal %d, shutting down", signum)
        manager.stop()

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    manager.start()
    manager.wait()


# ------------------------------------------------------------------
# reconcile
# ------------------------------------------------------------------

def main_reconcile(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(
        prog="stateful-migrator reconcile",
        description="Run one reconcile pass for a single StatefulMigration.",
    )
    _common_args(parser)
    parser.add_argument("namespace", help="Namespace of the StatefulMigration")
    parser.add_argument("name", help="Name of the StatefulMigration")
    args = parser.parse_args(argv)
    cfg = _load(args, "reconcile")

    components = build_components(cfg)
    try:
        result = components.backup.reconcile(args.namespace, args.name)
    except Exception as exc:
        logger.error("Reconcile of %s/%s failed: %s", args.namespace, args.name, exc)
        sys.exit(1)

    summary = result.summary
    print(f"StatefulMigration: {args.namespace}/{args.name}")
    print(f"Karmada:           {'available' if components.karmada_available else 'unavailable'}")
    if summary is None:
        print("Result:            nothing to converge (not found or deleted)")
        return
    print(f"Created:           {len(summary.created)}")
    print(f"Updated:           {len(summary.updated)}")
    print(f"Unchanged:         {len(summary.unchanged)}")
    print(f"Deleted:           {len(summary.deleted)}")
    for name in summary.created:
        print(f"  + {name}")
    for name in summary.deleted:
        print(f"  - {name}")

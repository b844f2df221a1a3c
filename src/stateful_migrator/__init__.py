"""
Fans StatefulMigrations out into per-pod, per-cluster CheckpointBackups
and propagates them to member clusters with Karmada.
"""

__version__ = "0.1.0"

"""Rollout, workload, pod and rollout-history helpers for Kubernetes-style objects."""

__version__ = "0.1.0"

__all__ = [
    "client",
    "conditions",
    "constants",
    "features",
    "finder",
    "history",
    "history_finder",
    "parse",
    "pods",
    "rollouts",
    "workloads",
]
"""Scaling-safety checks and learner membership reconciliation for etcd clusters."""

__version__ = "0.1.0"
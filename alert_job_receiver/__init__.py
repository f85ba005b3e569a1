"""Alertmanager webhook receiver that creates Kubernetes Jobs from templated definitions."""

__version__ = "0.1.0"

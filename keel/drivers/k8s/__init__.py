"""Kubernetes scheduler driver."""

from keel.drivers.k8s.k8s import SCHED_NAME, K8sDriver, register

__all__ = ["K8sDriver", "SCHED_NAME", "register"]

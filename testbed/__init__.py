"""Provisioning of short-lived multi-node test clusters."""

__version__ = "0.1.0"

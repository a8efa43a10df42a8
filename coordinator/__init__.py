"""Coordination and escalation layer for multi-agent deal analysis."""

__version__ = "0.1.0"

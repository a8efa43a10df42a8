"""Coordination services."""

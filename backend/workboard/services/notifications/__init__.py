"""Automation notification queueing and dispatch."""

"""Automation rules: triggers, conditions, actions and the engine running them."""

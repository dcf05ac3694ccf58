"""Test doubles for agent_panel."""

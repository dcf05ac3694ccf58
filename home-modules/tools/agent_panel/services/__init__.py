"""Orchestration services: window discovery, layout, focus history, activation and close."""

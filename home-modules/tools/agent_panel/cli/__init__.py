"""Command line interface for ap."""

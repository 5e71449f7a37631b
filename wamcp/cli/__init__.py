"""Command-line interface for wamcp."""

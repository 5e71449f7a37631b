"""Utility helpers for wamcp."""

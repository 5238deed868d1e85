"""Shared helpers for instrumentations."""

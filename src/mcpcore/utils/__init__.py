"""Utilities — tracing helpers."""

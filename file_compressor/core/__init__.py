"""Shared primitives: exceptions, artifact storage, helpers."""

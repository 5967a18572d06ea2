"""Request-facing services."""

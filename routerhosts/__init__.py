"""Serialized write queue, error mapping, ULID helpers and host service layer."""

__version__ = "0.1.0"

__all__ = ["errors", "ids", "models", "service", "write_queue"]
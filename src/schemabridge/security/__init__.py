"""Security helpers."""

from schemabridge.security.redact import redact_output

__all__ = ["redact_output"]

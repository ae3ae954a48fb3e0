"""SchemaBridge: stream a coding agent's answers about your database schema to a chat UI."""

__version__ = "0.1.0"

"""Agent transports (CLI subprocess, in-process SDK, remote agent service)."""

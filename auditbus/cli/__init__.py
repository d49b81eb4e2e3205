"""Auditbus CLI: Typer-based command-line interface.

Provides the ``auditbus`` command with subcommands for publishing events
onto the pipeline, querying the metadata index, reading archived payloads
and inspecting the routing rules.

All output uses Rich for formatted terminal display.
"""

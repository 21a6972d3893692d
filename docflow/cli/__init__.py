"""DocFlow CLI — Typer-based command-line interface.

Provides the ``docflow`` command with subcommands for ingesting merged
pull requests, recording manual edits, reverting transactions, inspecting
and verifying the ledger, and running an offline demo.

All output uses Rich for formatted terminal display.
"""

"""clawker CLI — Typer-based command-line interface.

Provides the ``clawker`` command with ``build`` and ``demo`` subcommands.
Progress and diagnostics go to stderr through Rich; stdout carries only
command results.
"""

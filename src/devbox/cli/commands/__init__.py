# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/cli/commands/__init__.py

"""
Command handlers for devbox CLI operations.

This package contains the business logic for all CLI commands,
separated from the CLI interface layer. Commands are organized by type:

- info: Read-only commands (diff, list, status)
- actions: State-changing commands (run, rm, clean, patch, refresh, build)
"""

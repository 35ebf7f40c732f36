# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/cli/__init__.py

"""Command Line Interface package for devbox."""

from .main import main, app

__all__ = ['main', 'app']

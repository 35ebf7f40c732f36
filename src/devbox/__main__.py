# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.16
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/__main__.py

from devbox.cli.main import main

main()

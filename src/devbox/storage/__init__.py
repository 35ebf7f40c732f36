# Author: PB & Claude
# Maintainer: PB
# Original date: 2026.10.13
# License: (c) HRDAG, 2025, GPL-2 or newer
#
# ------
# src/devbox/storage/__init__.py

"""Whole-tree filesystem operations used when precise patching is not possible."""

from devbox.storage.mirror import clear_tree, mirror_tree

__all__ = ["clear_tree", "mirror_tree"]

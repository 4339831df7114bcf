"""
pnpm Catalog Updates

A tool for checking pnpm workspace catalogs against the npm registry and
applying safe version updates with timestamped backups.
"""

__version__ = "0.1.0"
__author__ = "Imranur Rahman"

from .cli import main

__all__ = ["main"]

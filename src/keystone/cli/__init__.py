"""Command line interface for keystone"""

from .commands import app, main

__all__ = ["app", "main"]

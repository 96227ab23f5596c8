"""
CLI module for phoundation-fs.

Provides command-line access to the restricted filesystem layer for
inspecting trees, files and mount points.
"""

from phoundation_fs.cli.main import cli

__all__ = ["cli"]

"""
Configuration management for gardensync.
"""

from .config_loader import SyncConfig

__all__ = ["SyncConfig"]

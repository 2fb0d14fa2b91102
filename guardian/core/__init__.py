"""Core: configuration, logging, errors, shared IO helpers."""

from guardian.core.config import Settings, get_config

__all__ = ["Settings", "get_config"]

"""Environment settings for the evaluation orchestrator."""

from .app import AppSettings, get_settings


__all__ = ["AppSettings", "get_settings"]

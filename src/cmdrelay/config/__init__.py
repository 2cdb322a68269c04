"""Configuration management for cmdrelay.

Loads and validates settings with Pydantic models. Values come from
the command line, an optional YAML file and environment variables.
"""

from cmdrelay.config.settings import LogLevel, RelaySettings, load_settings

__all__ = ["LogLevel", "RelaySettings", "load_settings"]

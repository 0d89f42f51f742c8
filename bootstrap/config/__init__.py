# bootstrap/config/__init__.py
"""
Host Configuration Module

Loads the layered YAML configuration and validates it into ``HostSettings``.
"""

from configs.config_loader import ConfigLoader
from .host_config import HostConfig, HostSettings

__all__ = ['ConfigLoader', 'HostConfig', 'HostSettings']

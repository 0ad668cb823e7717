"""
Data models for the OODA agent.
"""

from .config import (
    ModelConfig,
    LoopConfig,
    SearxngConfig,
    ToolsConfig,
    ServerConfig,
    LoggingConfig,
    AppConfig,
)

__all__ = [
    "ModelConfig",
    "LoopConfig",
    "SearxngConfig",
    "ToolsConfig",
    "ServerConfig",
    "LoggingConfig",
    "AppConfig",
]

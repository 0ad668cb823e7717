"""
Configuration models for the OODA agent.

Defines dataclasses for the unified YAML configuration file.
"""

from dataclasses import dataclass, field
from typing import Optional


@dataclass
class ModelConfig:
    """Configuration for the model driving the loop."""
    base_url: Optional[str] = None
    api_key: Optional[str] = None
    model: str = "gpt-3.5-turbo"
    temperature: float = 0.0
    # Tokens kept free for the completion; also sent as max_tokens.
    min_tokens_for_completion: int = 256
    timeout: float = 60.0


@dataclass
class LoopConfig:
    """Configuration for the per-task control loop."""
    max_steps: int = 10
    max_response_bytes: int = 2048
    eviction: str = "oldest"


@dataclass
class SearxngConfig:
    """Configuration for the SearXNG search backend."""
    url: str = "http://localhost:8080/search"
    timeout: int = 30


@dataclass
class ToolsConfig:
    """Configuration for tools and their registration."""
    searxng: SearxngConfig = field(default_factory=SearxngConfig)
    duplicate_policy: str = "overwrite"
    enabled: list[str] = field(
        default_factory=lambda: ["Calculate", "WebSearch", "SandboxedPython", "Conclude"]
    )


@dataclass
class ServerConfig:
    """Configuration for the FastAPI server."""
    host: str = "0.0.0.0"
    port: int = 8000
    workers: int = 1
    reload: bool = False


@dataclass
class LoggingConfig:
    """Configuration for logging."""
    level: str = "INFO"


@dataclass
class AppConfig:
    """
    Unified application configuration container.

    Holds all configuration sections loaded from config/config.yaml.
    """
    version: str = "1.0"
    model: ModelConfig = field(default_factory=ModelConfig)
    loop: LoopConfig = field(default_factory=LoopConfig)
    tools: ToolsConfig = field(default_factory=ToolsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def log_level(self) -> str:
        """Shortcut for logging.level."""
        return self.logging.level

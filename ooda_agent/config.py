"""
Configuration access for the OODA agent.

Loads a .env file into the environment, then reads config/config.yaml
(or the file named by CONFIG_PATH) through the config loader.
"""

from dotenv import load_dotenv

from .config_loader import load_app_config
from .models import AppConfig

load_dotenv()


def get_config() -> AppConfig:
    """Get the application configuration."""
    return load_app_config()

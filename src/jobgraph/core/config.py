"""JobGraph configuration. Reads from jobgraph.toml and env vars."""

import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict

from pydantic import Field
from pydantic_settings import BaseSettings

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib

logger = logging.getLogger("jobgraph.config")


class JobGraphSettings(BaseSettings):
    """Daemon settings."""

    # Server
    host: str = "0.0.0.0"
    port: int = 8410
    log_level: str = "info"

    # Database (SQLite by default for zero-setup)
    database_url: str = Field(
        default="sqlite+aiosqlite:///jobgraph.db",
        alias="JOBGRAPH_DATABASE_URL",
    )

    # Query paging
    default_page_size: int = 50
    max_page_size: int = 100

    # Analytics
    complex_chain_depth: int = 3
    most_depended_default_limit: int = 10

    model_config = {"env_prefix": "JOBGRAPH_", "env_file": ".env", "populate_by_name": True}


class ClientSettings(BaseSettings):
    """CLI client settings."""

    host: str = Field(default="http://localhost:8410", alias="JOBGRAPH_HOST")

    model_config = {"env_prefix": "JOBGRAPH_"}


def _read_toml(path: Path) -> Dict[str, Any]:
    try:
        with path.open("rb") as f:
            return tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError) as e:
        logger.warning(f"Ignoring unreadable config file {path}: {e}")
        return {}


def _load_toml_config() -> Dict[str, Any]:
    """Load configuration from jobgraph.toml files.

    Searches for jobgraph.toml in:
    1. JOBGRAPH_HOME (~/.jobgraph/jobgraph.toml by default)
    2. Current directory (./jobgraph.toml)

    Returns:
        Combined configuration dict, local values overriding global ones
    """
    config: Dict[str, Any] = {}

    home = Path(os.environ.get("JOBGRAPH_HOME", "~/.jobgraph")).expanduser()
    global_config_path = home / "jobgraph.toml"
    if global_config_path.exists():
        config.update(_read_toml(global_config_path))

    local_config_path = Path("jobgraph.toml")
    if local_config_path.exists():
        config.update(_read_toml(local_config_path))

    return config


def get_settings() -> JobGraphSettings:
    toml_config = _load_toml_config()
    settings = JobGraphSettings()

    # Environment wins over toml: only fill fields the env did not set
    for key, value in toml_config.items():
        if key in JobGraphSettings.model_fields and key not in settings.model_fields_set:
            setattr(settings, key, value)

    return settings


def get_client_settings() -> ClientSettings:
    return ClientSettings()

import json
import logging
import os
from pathlib import Path
from typing import Optional, Union

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError

from catalog_sync.domain.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".catalogsync.json"
CONFIG_PATH_ENV = "CATALOG_SYNC_CONFIG"


class MetaCollections(BaseModel):
    """Documents holding the ordered list fields."""
    modinfo: str = "meta/modinfo"
    toolinfo: str = "meta/toolinfo"
    repositories: str = "meta/repos"


class CollectionsConfig(BaseModel):
    mods: str = "mods"
    tools: str = "tools"
    meta: MetaCollections = Field(default_factory=MetaCollections)


class StoreConfig(BaseModel):
    database_url: str = ""
    collections: CollectionsConfig = Field(default_factory=CollectionsConfig)


class GitHubConfig(BaseModel):
    token: str = ""


class Config(BaseModel):
    store: StoreConfig = Field(default_factory=StoreConfig)
    github: GitHubConfig = Field(default_factory=GitHubConfig)


def resolve_config_path(path: Optional[Union[str, Path]] = None) -> Path:
    return Path(path or os.getenv(CONFIG_PATH_ENV) or DEFAULT_CONFIG_PATH).expanduser()


def load_config(path: Optional[Union[str, Path]] = None) -> Config:
    """
    Reads the JSON configuration file once per process.

    DATABASE_URL and GITHUB_TOKEN from the environment (or a .env file) take
    precedence over the file values.

    Raises:
        ConfigError: The file is missing, unreadable, not JSON, or has the wrong shape.
    """
    # Load environment variables from .env file
    load_dotenv()

    config_path = resolve_config_path(path)
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        raise ConfigError(
            f"Could not find or read config from '{config_path}' - please create it or specify a different path"
        ) from None
    except OSError as e:
        raise ConfigError(f"Could not read config from '{config_path}': {e}") from e
    except ValueError as e:
        raise ConfigError(f"Config file '{config_path}' is not valid JSON: {e}") from e

    try:
        config = Config.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"Config file '{config_path}' is invalid: {e}") from e

    if os.getenv("DATABASE_URL"):
        config.store.database_url = os.environ["DATABASE_URL"]
    if os.getenv("GITHUB_TOKEN"):
        config.github.token = os.environ["GITHUB_TOKEN"]

    if not config.store.database_url:
        raise ConfigError("store.database_url is not set in the config file or DATABASE_URL.")

    logger.debug(f"Loaded config from {config_path}")
    return config

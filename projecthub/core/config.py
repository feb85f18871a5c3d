import configparser
import os
from pathlib import Path
from typing import Any, Dict, Literal

from pydantic import BaseModel, SecretStr
from pydantic_settings import BaseSettings


class PROJECTHUB_MONGO(BaseModel):
    URI: str
    DB_NAME: str


class PROJECTHUB_AUTH(BaseModel):
    JWT_SECRET: SecretStr
    JWT_ALGORITHM: str = "HS256"
    TOKEN_EXPIRATION_HOURS: float = 2.0


class PROJECTHUB_GRAPH(BaseModel):
    WRITE_RETRIES: int = 3
    RETRY_DELAY: float = 0.05
    DELETE_POLICY: Literal["none", "detach", "cascade"] = "none"


class PROJECTHUB_API(BaseModel):
    HOST: str = "127.0.0.1"
    PORT: int = 4000
    STORE: Literal["memory", "mongo"] = "mongo"


class PROJECTHUB_LOGGER(BaseModel):
    USE_STRUCTLOG: bool = False


class PROJECTHUB_DIR_PATHS(BaseModel):
    ROOT: str
    LOGGER_DIR: str
    STRUCT_LOGGER_DIR: str


def load_ini_as_dict(ini_path: Path) -> Dict[str, Any]:
    """
    Load and parse an INI file into a nested dictionary with normalized keys.

    Sections and keys are converted to uppercase for uniform access. Tilde (`~`)
    in values is expanded to the user home directory.

    Args:
        ini_path (Path): Path to the `.ini` configuration file.

    Returns:
        Dict[str, Any]: A dictionary where each section is a key mapped to another
        dictionary of key-value pairs from that section.

    Example:
        .. code-block:: ini

            [projecthub_mongo]
            uri = mongodb://localhost:27017

        .. code-block:: python

            config = load_ini_as_dict(Path("config.ini"))
            print(config["PROJECTHUB_MONGO"]["URI"])
    """
    if not ini_path.exists():
        return {}

    config = configparser.ConfigParser(interpolation=configparser.ExtendedInterpolation())
    config.optionxform = str
    config.read(ini_path)

    result = {}
    for section in config.sections():
        result[section.upper()] = {
            key.upper(): os.path.expanduser(value) if value.startswith("~") else value
            for key, value in config[section].items()
        }
    return result


def load_ini_settings() -> Dict[str, Any]:
    ini_path = Path(__file__).parent / "config.ini"
    return load_ini_as_dict(ini_path)


class CoreSettings(BaseSettings):
    """Settings for every projecthub component.

    Values are resolved from, in order of precedence: constructor kwargs, environment variables (nested keys joined
    with ``__``, e.g. ``PROJECTHUB_GRAPH__DELETE_POLICY=cascade``), a ``.env`` file, and finally the bundled
    ``config.ini``.
    """

    PROJECTHUB_MONGO: PROJECTHUB_MONGO
    PROJECTHUB_AUTH: PROJECTHUB_AUTH
    PROJECTHUB_GRAPH: PROJECTHUB_GRAPH
    PROJECTHUB_API: PROJECTHUB_API
    PROJECTHUB_LOGGER: PROJECTHUB_LOGGER
    PROJECTHUB_DIR_PATHS: PROJECTHUB_DIR_PATHS

    model_config = {
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "extra": "ignore",
    }

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        def _expand_tilde(obj):
            if isinstance(obj, str):
                return os.path.expanduser(obj) if obj.startswith("~") else obj
            if isinstance(obj, dict):
                return {k: _expand_tilde(v) for k, v in obj.items()}
            if isinstance(obj, (list, tuple, set)):
                t = type(obj)
                return t(_expand_tilde(v) for v in obj)
            return obj

        def env_settings_expanded():
            data = env_settings()
            return _expand_tilde(data)

        return (
            init_settings,  # constructor kwargs
            env_settings_expanded,  # env vars (with '~' expanded) take precedence
            dotenv_settings,  # then .env
            load_ini_settings,  # then INI file (lowest precedence)
            file_secret_settings,
        )


_settings: CoreSettings | None = None


def get_settings(reload: bool = False) -> CoreSettings:
    """Return the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None or reload:
        _settings = CoreSettings()
    return _settings

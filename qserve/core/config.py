"""Configuration loader for qserve.

Loads from configs/default.toml (or QSERVE_CONFIG) and overrides with
environment variables.
"""

import os
import tomllib
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_CONFIG_PATH = Path(__file__).parent.parent / "configs" / "default.toml"


@dataclass
class IndexConfig:
    path: str


@dataclass
class ServerConfig:
    host: str
    port: int
    drain_timeout: float


@dataclass
class SearchConfig:
    matching_model: str
    weighting_model: str
    window: int


@dataclass
class LoggingConfig:
    level: str
    format: str


@dataclass
class QServeConfig:
    index: IndexConfig
    server: ServerConfig
    search: SearchConfig
    logging: LoggingConfig
    properties: dict[str, str] = field(default_factory=dict)


def _validate_config(config: QServeConfig) -> None:
    """Validate configuration values.

    Args:
        config: QServeConfig to validate

    Raises:
        ValueError: If validation fails
    """
    if config.server.port < 1 or config.server.port > 65535:
        raise ValueError(f"server.port must be in [1, 65535], got {config.server.port}")
    if config.server.drain_timeout < 0:
        raise ValueError(
            f"server.drain_timeout must be >= 0, got {config.server.drain_timeout}"
        )

    if config.search.window < 0:
        raise ValueError(f"search.window must be >= 0, got {config.search.window}")
    if not config.search.matching_model:
        raise ValueError("search.matching_model must not be empty")
    if not config.search.weighting_model:
        raise ValueError("search.weighting_model must not be empty")

    valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if config.logging.level.upper() not in valid_levels:
        raise ValueError(f"logging.level must be one of {valid_levels}, got {config.logging.level}")
    valid_formats = {"json", "text"}
    if config.logging.format not in valid_formats:
        raise ValueError(
            f"logging.format must be one of {valid_formats}, got {config.logging.format}"
        )


def load_config(config_path: Path | None = None) -> QServeConfig:
    """Load configuration from TOML file and override with env vars.

    Args:
        config_path: Path to TOML config file. Defaults to QSERVE_CONFIG,
            then the packaged configs/default.toml

    Returns:
        QServeConfig instance with merged configuration

    Raises:
        ValueError: If configuration validation fails
    """
    if config_path is None:
        env_path = os.getenv("QSERVE_CONFIG")
        config_path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH

    with open(config_path, "rb") as f:
        config_dict = tomllib.load(f)

    index_dict = config_dict.get("index", {})
    server_dict = config_dict.get("server", {})
    search_dict = config_dict.get("search", {})
    logging_dict = config_dict.get("logging", {})

    # Override with environment variables (QSERVE_ prefix)
    index_path = os.getenv("QSERVE_INDEX_PATH", index_dict.get("path", "index.db"))
    host = os.getenv("QSERVE_HOST", server_dict.get("host", "127.0.0.1"))
    port = int(os.getenv("QSERVE_PORT", server_dict.get("port", 4567)))
    drain_timeout = float(
        os.getenv("QSERVE_DRAIN_TIMEOUT", server_dict.get("drain_timeout", 30.0))
    )
    matching_model = os.getenv(
        "QSERVE_MATCHING_MODEL", search_dict.get("matching_model", "Matching")
    )
    weighting_model = os.getenv(
        "QSERVE_WEIGHTING_MODEL", search_dict.get("weighting_model", "BM25")
    )
    window = int(os.getenv("QSERVE_WINDOW", search_dict.get("window", 1000)))
    log_level = os.getenv("QSERVE_LOG_LEVEL", logging_dict.get("level", "INFO"))
    log_format = os.getenv("QSERVE_LOG_FORMAT", logging_dict.get("format", "json"))

    # Engine properties are plain strings regardless of their TOML type
    properties = {
        str(key): str(value).lower() if isinstance(value, bool) else str(value)
        for key, value in config_dict.get("properties", {}).items()
    }

    config = QServeConfig(
        index=IndexConfig(path=index_path),
        server=ServerConfig(host=host, port=port, drain_timeout=drain_timeout),
        search=SearchConfig(
            matching_model=matching_model,
            weighting_model=weighting_model,
            window=window,
        ),
        logging=LoggingConfig(level=log_level, format=log_format),
        properties=properties,
    )

    _validate_config(config)

    return config


# Global config instance
_config: QServeConfig | None = None


def get_config() -> QServeConfig:
    """Get the global config instance, loading it if necessary."""
    global _config
    if _config is None:
        _config = load_config()
    return _config

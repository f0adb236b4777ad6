"""TOML configuration for the quiz server and client.

The file groups related concerns into tables (limits, store, providers,
generation, polling, server, logging). Defaults live in ``_DEFAULTS``; user
files may only override known keys and every value is validated into a
frozen dataclass before use.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, MutableMapping, Optional

try:  # Python >= 3.11 ships ``tomllib`` in the stdlib.
    import tomllib
except ModuleNotFoundError as exc:  # pragma: no cover - defensive guard
    raise RuntimeError("Python 3.11+ is required for tomllib support.") from exc

from . import workspace

__all__ = [
    "CONFIG_PATH_ENV",
    "ConfigError",
    "LimitsConfig",
    "StoreConfig",
    "OpenAIConfig",
    "GenerationConfig",
    "PollingConfig",
    "ServerConfig",
    "LoggingConfig",
    "QuizConfig",
    "load_config",
    "resolve_config_path",
    "default_config",
    "config_template",
    "write_template",
]

CONFIG_PATH_ENV = "PDF_QUIZ_CONFIG"
CONFIG_FILENAME = "pdf_quiz.toml"

MIB = 1024 * 1024


class ConfigError(RuntimeError):
    """Raised when configuration parsing or validation fails."""


@dataclass(frozen=True)
class LimitsConfig:
    max_files: int
    max_file_bytes: int
    max_total_bytes: int
    allowed_extensions: tuple[str, ...]


@dataclass(frozen=True)
class StoreConfig:
    name_prefix: str
    expires_after_days: int


@dataclass(frozen=True)
class OpenAIConfig:
    model: str
    fallback_model: str
    temperature: float
    max_output_tokens: int
    api_base: Optional[str]
    request_timeout_seconds: int


@dataclass(frozen=True)
class GenerationConfig:
    question_count: int
    options_per_question: int


@dataclass(frozen=True)
class PollingConfig:
    upload_timeout_seconds: float
    generation_timeout_seconds: float
    initial_interval_seconds: float
    max_interval_seconds: float
    backoff: float


@dataclass(frozen=True)
class ServerConfig:
    host: str
    port: int
    cors_origins: tuple[str, ...]
    debug: bool


@dataclass(frozen=True)
class LoggingConfig:
    level: str
    verbose: bool


@dataclass(frozen=True)
class QuizConfig:
    limits: LimitsConfig
    store: StoreConfig
    openai: OpenAIConfig
    generation: GenerationConfig
    polling: PollingConfig
    server: ServerConfig
    logging: LoggingConfig


def _merge_dict(
    base: MutableMapping[str, Any],
    override: Mapping[str, Any],
    *,
    path: str = "",
) -> None:
    for key, value in override.items():
        dotted = f"{path}{key}"
        if key not in base:
            raise ConfigError(f"Unknown configuration key '{dotted}'.")
        base_value = base[key]
        if isinstance(base_value, MutableMapping):
            if not isinstance(value, Mapping):
                raise ConfigError(
                    "Expected table for '{0}', found {1}.".format(
                        dotted,
                        type(value).__name__,
                    )
                )
            _merge_dict(base_value, value, path=f"{dotted}.")
        else:
            base[key] = value


def _require_positive_int(value: Any, *, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigError(f"'{field}' must be a positive integer.")
    return value


def _require_positive_number(value: Any, *, field: str) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{field}' must be a number.")
    if value <= 0:
        raise ConfigError(f"'{field}' must be greater than zero.")
    return float(value)


def _require_float_range(
    value: Any, *, field: str, min_value: float, max_value: float
) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ConfigError(f"'{field}' must be a number.")
    number = float(value)
    if not (min_value <= number <= max_value):
        raise ConfigError(
            f"'{field}' must be between {min_value} and {max_value}."
        )
    return number


def _require_bool(value: Any, *, field: str) -> bool:
    if not isinstance(value, bool):
        raise ConfigError(f"'{field}' must be a boolean.")
    return value


def _require_string(value: Any, *, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{field}' must be a non-empty string.")
    return value.strip()


def _coerce_optional_string(value: Any, *, field: str) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str) or not value.strip():
        raise ConfigError(f"'{field}' must be a non-empty string when set.")
    return value.strip()


def _require_string_list(value: Any, *, field: str) -> tuple[str, ...]:
    if not isinstance(value, list) or not value:
        raise ConfigError(f"'{field}' must be a non-empty list of strings.")
    items = []
    for item in value:
        items.append(_require_string(item, field=field))
    return tuple(items)


def _build_limits(section: Mapping[str, Any]) -> LimitsConfig:
    max_files = _require_positive_int(
        section.get("max_files"), field="limits.max_files"
    )
    max_file_bytes = _require_positive_int(
        section.get("max_file_bytes"), field="limits.max_file_bytes"
    )
    max_total_bytes = _require_positive_int(
        section.get("max_total_bytes"), field="limits.max_total_bytes"
    )
    if max_total_bytes < max_file_bytes:
        raise ConfigError(
            "limits.max_total_bytes must be at least limits.max_file_bytes."
        )
    extensions = []
    for raw in _require_string_list(
        section.get("allowed_extensions"), field="limits.allowed_extensions"
    ):
        ext = raw.lower()
        extensions.append(ext if ext.startswith(".") else f".{ext}")
    return LimitsConfig(
        max_files=max_files,
        max_file_bytes=max_file_bytes,
        max_total_bytes=max_total_bytes,
        allowed_extensions=tuple(extensions),
    )


def _build_store(section: Mapping[str, Any]) -> StoreConfig:
    return StoreConfig(
        name_prefix=_require_string(
            section.get("name_prefix"), field="store.name_prefix"
        ),
        expires_after_days=_require_positive_int(
            section.get("expires_after_days"),
            field="store.expires_after_days",
        ),
    )


def _build_openai(section: Mapping[str, Any]) -> OpenAIConfig:
    return OpenAIConfig(
        model=_require_string(
            section.get("model"), field="providers.openai.model"
        ),
        fallback_model=_require_string(
            section.get("fallback_model"),
            field="providers.openai.fallback_model",
        ),
        temperature=_require_float_range(
            section.get("temperature"),
            field="providers.openai.temperature",
            min_value=0.0,
            max_value=2.0,
        ),
        max_output_tokens=_require_positive_int(
            section.get("max_output_tokens"),
            field="providers.openai.max_output_tokens",
        ),
        api_base=_coerce_optional_string(
            section.get("api_base"), field="providers.openai.api_base"
        ),
        request_timeout_seconds=_require_positive_int(
            section.get("request_timeout_seconds"),
            field="providers.openai.request_timeout_seconds",
        ),
    )


def _build_generation(section: Mapping[str, Any]) -> GenerationConfig:
    count = _require_positive_int(
        section.get("question_count"), field="generation.question_count"
    )
    if count > 10:
        raise ConfigError("generation.question_count cannot exceed 10.")
    options = _require_positive_int(
        section.get("options_per_question"),
        field="generation.options_per_question",
    )
    if not 2 <= options <= 4:
        raise ConfigError(
            "generation.options_per_question must be between 2 and 4."
        )
    return GenerationConfig(
        question_count=count,
        options_per_question=options,
    )


def _build_polling(section: Mapping[str, Any]) -> PollingConfig:
    initial = _require_positive_number(
        section.get("initial_interval_seconds"),
        field="polling.initial_interval_seconds",
    )
    maximum = _require_positive_number(
        section.get("max_interval_seconds"),
        field="polling.max_interval_seconds",
    )
    if maximum < initial:
        raise ConfigError(
            "polling.max_interval_seconds must be at least "
            "polling.initial_interval_seconds."
        )
    backoff = _require_float_range(
        section.get("backoff"),
        field="polling.backoff",
        min_value=1.0,
        max_value=10.0,
    )
    return PollingConfig(
        upload_timeout_seconds=_require_positive_number(
            section.get("upload_timeout_seconds"),
            field="polling.upload_timeout_seconds",
        ),
        generation_timeout_seconds=_require_positive_number(
            section.get("generation_timeout_seconds"),
            field="polling.generation_timeout_seconds",
        ),
        initial_interval_seconds=initial,
        max_interval_seconds=maximum,
        backoff=backoff,
    )


def _build_server(section: Mapping[str, Any]) -> ServerConfig:
    port = _require_positive_int(section.get("port"), field="server.port")
    if port > 65535:
        raise ConfigError("'server.port' must be at most 65535.")
    return ServerConfig(
        host=_require_string(section.get("host"), field="server.host"),
        port=port,
        cors_origins=_require_string_list(
            section.get("cors_origins"), field="server.cors_origins"
        ),
        debug=_require_bool(section.get("debug"), field="server.debug"),
    )


def _build_logging(section: Mapping[str, Any]) -> LoggingConfig:
    level = _require_string(section.get("level"), field="logging.level").upper()
    allowed = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
    if level not in allowed:
        raise ConfigError(
            "logging.level must be one of "
            "DEBUG, INFO, WARNING, ERROR, CRITICAL."
        )
    verbose = _require_bool(section.get("verbose"), field="logging.verbose")
    return LoggingConfig(level=level, verbose=verbose)


def _table(tree: Mapping[str, Any], name: str) -> Mapping[str, Any]:
    section = tree.get(name, {})
    if not isinstance(section, Mapping):
        raise ConfigError(f"{name} table must be a mapping.")
    return section


def _build_config(tree: Mapping[str, Any]) -> QuizConfig:
    providers = _table(tree, "providers")
    return QuizConfig(
        limits=_build_limits(_table(tree, "limits")),
        store=_build_store(_table(tree, "store")),
        openai=_build_openai(_table(providers, "openai")),
        generation=_build_generation(_table(tree, "generation")),
        polling=_build_polling(_table(tree, "polling")),
        server=_build_server(_table(tree, "server")),
        logging=_build_logging(_table(tree, "logging")),
    )


def _load_toml(path: Path) -> Mapping[str, Any]:
    try:
        with path.open("rb") as fh:
            return tomllib.load(fh)
    except FileNotFoundError as exc:
        raise ConfigError(f"Config file not found: {path}") from exc
    except tomllib.TOMLDecodeError as exc:
        raise ConfigError(f"Failed to parse config TOML: {exc}") from exc


def resolve_config_path(
    *,
    explicit_path: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
) -> tuple[Path, bool]:
    """Return the config path and whether the caller asked for it explicitly."""

    env_map = os.environ if env is None else env
    if explicit_path is not None:
        return explicit_path.expanduser().resolve(), True
    env_override = (env_map.get(CONFIG_PATH_ENV) or "").strip()
    if env_override:
        return Path(env_override).expanduser().resolve(), True
    layout = workspace.ensure_workspace(env=env_map, create=False)
    return layout.path_for("config") / CONFIG_FILENAME, False


def load_config(
    *,
    explicit_path: Optional[Path] = None,
    env: Mapping[str, str] | None = None,
) -> QuizConfig:
    """Load the TOML config, applying defaults and validation.

    A missing file at the default location yields the defaults; a missing
    file the caller pointed at explicitly is an error.
    """

    path, explicit = resolve_config_path(explicit_path=explicit_path, env=env)
    tree = copy.deepcopy(_DEFAULTS)
    if explicit or path.exists():
        toml_data = _load_toml(path)
        if not isinstance(toml_data, Mapping):
            raise ConfigError("Config TOML must contain a table at the root.")
        _merge_dict(tree, toml_data)
    return _build_config(tree)


def default_config() -> QuizConfig:
    """Return the validated default configuration."""

    return _build_config(copy.deepcopy(_DEFAULTS))


def config_template() -> str:
    """Return the TOML template recommended for new installs."""

    return _CONFIG_TEMPLATE.strip() + "\n"


def write_template(
    path: Path, *, overwrite: bool = False, mode: int = 0o600
) -> Path:
    """Write the default template to ``path``."""

    path.parent.mkdir(parents=True, exist_ok=True)
    if path.exists() and not overwrite:
        raise ConfigError(f"Config already exists: {path}")
    with path.open("w", encoding="utf-8") as fh:
        fh.write(config_template())
    try:
        path.chmod(mode)
    except PermissionError:  # pragma: no cover - depends on filesystem
        pass
    return path


_DEFAULTS: Dict[str, Any] = {
    "limits": {
        "max_files": 10,
        "max_file_bytes": 20 * MIB,
        "max_total_bytes": 200 * MIB,
        "allowed_extensions": [".pdf"],
    },
    "store": {
        "name_prefix": "Quiz PDFs",
        "expires_after_days": 7,
    },
    "providers": {
        "openai": {
            "model": "gpt-4o",
            "fallback_model": "gpt-4o",
            "temperature": 0.7,
            "max_output_tokens": 4000,
            "api_base": None,
            "request_timeout_seconds": 60,
        },
    },
    "generation": {
        "question_count": 10,
        "options_per_question": 4,
    },
    "polling": {
        "upload_timeout_seconds": 120,
        "generation_timeout_seconds": 60,
        "initial_interval_seconds": 0.5,
        "max_interval_seconds": 5.0,
        "backoff": 1.5,
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8000,
        "cors_origins": ["*"],
        "debug": False,
    },
    "logging": {
        "level": "INFO",
        "verbose": False,
    },
}


_CONFIG_TEMPLATE = """
# PDF Quiz configuration

[limits]
# Maximum number of PDFs per upload batch
max_files = 10
# Per-file and aggregate size limits in bytes
max_file_bytes = 20971520
max_total_bytes = 209715200
allowed_extensions = [".pdf"]

[store]
# Remote vector stores are named "<prefix> - <timestamp>"
name_prefix = "Quiz PDFs"
# Days of inactivity before the provider expires a store
expires_after_days = 7

[providers.openai]
# Model used by the file-search assistant
model = "gpt-4o"
# Model used for the structured-output fallback
fallback_model = "gpt-4o"
temperature = 0.7
max_output_tokens = 4000
# Optional API base override
# api_base = "https://api.openai.com/v1"
request_timeout_seconds = 60

[generation]
question_count = 10
options_per_question = 4

[polling]
# Ceilings for batch attach and generation runs
upload_timeout_seconds = 120
generation_timeout_seconds = 60
initial_interval_seconds = 0.5
max_interval_seconds = 5.0
backoff = 1.5

[server]
host = "127.0.0.1"
port = 8000
cors_origins = ["*"]
# Include tracebacks in error responses
debug = false

[logging]
level = "INFO"
verbose = false
"""

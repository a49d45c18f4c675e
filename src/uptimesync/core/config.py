from __future__ import annotations

import os
import re
import uuid
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import find_dotenv, load_dotenv

from .client import DEFAULT_BASE_URL


class ConfigError(ValueError):
    """Raised when runtime configuration cannot be resolved."""
    pass


# ---------- Typed sections ----------

@dataclass
class AppSection:
    run_id: Optional[str] = None
    dry_run: bool = False


@dataclass
class ApiSection:
    base_url: str = DEFAULT_BASE_URL
    token: str = ""          # secret – never log in clear text
    verify_tls: bool = True
    timeout_sec: int = 30


@dataclass
class StateSection:
    path: str = "uptimesync.state.json"


@dataclass
class LoggingSection:
    base_dir: str = "logs"
    console_level: str = "INFO"   # INFO..CRITICAL
    file_level: str = "DEBUG"     # DEBUG..CRITICAL


@dataclass
class AppConfig:
    """Typed configuration object built by `load_config`."""
    app: AppSection
    api: ApiSection
    state: StateSection
    logging: LoggingSection

    @property
    def run_id(self) -> str:
        """
        Return a stable run identifier for this process.
        Generated lazily when first accessed if not provided.
        """
        if not self.app.run_id:
            self.app.run_id = uuid.uuid4().hex[:12]
        return self.app.run_id


# ---------- Sources ----------

_DEFAULT_FILES: Tuple[str, ...] = (
    "./uptimesync.yml",
    os.path.expanduser("~/.config/uptimesync/config.yml"),
    "/etc/uptimesync/config.yml",
)

_SECTIONS = {
    "app": AppSection,
    "api": ApiSection,
    "state": StateSection,
    "logging": LoggingSection,
}

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_TRUE = {"1", "true", "yes", "y", "on"}

Layer = Dict[str, Dict[str, Any]]


def _read_yaml_file(path: str) -> Dict[str, Any]:
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"Top-level YAML must be a mapping: {path}")
    return data


def _load_first_existing(files: Tuple[str, ...]) -> Tuple[Dict[str, Any], str]:
    for p in files:
        if os.path.exists(p):
            return _read_yaml_file(p), p
    return {}, "no file"


def _load_env_file() -> None:
    """Load a .env file (searched from the current directory) into os.environ."""
    env_path = find_dotenv(usecwd=True)
    if env_path:
        load_dotenv(env_path, override=False)


def _env_layer(prefix: str) -> Dict[str, Any]:
    """USYNC_API__TOKEN=x -> {"api": {"token": "x"}}; other shapes are ignored."""
    out: Dict[str, Dict[str, Any]] = {}
    for key, val in os.environ.items():
        if not key.startswith(prefix):
            continue
        section, sep, name = key[len(prefix):].lower().partition("__")
        if sep and section and name:
            out.setdefault(section, {})[name] = val
    return out


# ---------- Layer handling ----------

def _check_layer(layer: Dict[str, Any], source: str) -> Layer:
    """Reject unknown sections/keys and drop unset (None) values."""
    out: Layer = {}
    for name, values in layer.items():
        section = _SECTIONS.get(name)
        if section is None:
            raise ConfigError(f"Unknown configuration section '{name}' ({source})")
        if values is None:
            continue
        if not isinstance(values, dict):
            raise ConfigError(f"Section '{name}' must be a mapping ({source})")
        extra = sorted(set(values) - set(section.__dataclass_fields__))
        if extra:
            raise ConfigError(f"Unknown key(s) in '{name}' ({source}): " + ", ".join(extra))
        out[name] = {k: v for k, v in values.items() if v is not None}
    return out


def _expand_env_refs(value: Any) -> Any:
    # "${VAR}" anywhere in a string; unset variables expand to ""
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)
    return value


def _coerce(section: str, key: str, value: Any) -> Any:
    """Convert env/YAML strings to the type declared on the section dataclass."""
    declared = _SECTIONS[section].__dataclass_fields__[key].type
    if declared == "bool" and not isinstance(value, bool):
        return str(value).strip().lower() in _TRUE
    if declared == "int" and not isinstance(value, int):
        try:
            return int(str(value).strip())
        except ValueError:
            raise ConfigError(f"{section}.{key} must be an integer, got {value!r}") from None
    return value


def _require_api(merged: Layer) -> None:
    if merged["app"]["dry_run"]:
        return
    missing = [f"api.{k}" for k in ("base_url", "token") if not merged["api"][k]]
    if missing:
        raise ConfigError("Missing required configuration for non-dry run: " + ", ".join(missing))


# ---------- Public API ----------

def load_config(
    cli_overrides: Optional[Dict[str, Any]] = None,
    files: Tuple[str, ...] = _DEFAULT_FILES,
    env_prefix: str = "USYNC_",
) -> AppConfig:
    """
    Build an AppConfig from (lowest to highest precedence):
      1) section dataclass defaults
      2) first existing YAML file
      3) environment variables (USYNC_<SECTION>__<KEY>; a .env file is honoured)
      4) CLI overrides (None means "not given")

    Strings may reference ${ENV_VAR}; values are coerced to the declared
    bool/int types. api.base_url and api.token are required unless dry_run.
    """
    _load_env_file()
    file_cfg, file_src = _load_first_existing(files)

    layers = [
        _check_layer(file_cfg, file_src),
        _check_layer(_env_layer(env_prefix), "environment"),
        _check_layer(cli_overrides or {}, "command line"),
    ]

    merged: Layer = {name: asdict(section()) for name, section in _SECTIONS.items()}
    for layer in layers:
        for name, values in layer.items():
            for key, value in values.items():
                merged[name][key] = _coerce(name, key, _expand_env_refs(value))

    _require_api(merged)
    return AppConfig(**{name: section(**merged[name]) for name, section in _SECTIONS.items()})

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from ebookwf.application.config_models import EngineConfig
from ebookwf.domain.constants import API_KEY_ENV_VAR, CONFIG_DIRNAME, CONFIG_FILENAME


class ConfigLoadError(Exception):
    def __init__(self, message: str, *, path: Path | None = None, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.cause = cause

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.message}: {self.path}"


def _defaults() -> dict[str, Any]:
    return {
        "sessions_root": str(Path(CONFIG_DIRNAME) / "sessions"),
        "client": "openrouter",
        "generation": {},
        "steps": {},
        "page": {},
    }


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge mapping keys. For non-dict values, overlay wins.

    Per-step overrides merge by key, so a project file can change one
    parameter of a step without restating the rest.
    """
    merged: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            merged[k] = _deep_merge(merged[k], v)  # type: ignore[arg-type]
        else:
            merged[k] = v
    return merged


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    """
    Load YAML file and ensure root is a mapping.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:  # pragma: no cover
        raise ConfigLoadError("Failed to read config file", path=path, cause=e) from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigLoadError("Malformed YAML", path=path, cause=e) from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigLoadError("YAML root must be a mapping", path=path)

    return data


def load_config(
    *,
    project_root: Path | None = None,
    user_home: Path | None = None,
    environ: dict[str, str] | None = None,
) -> EngineConfig:
    """
    Load and merge config with precedence (highest wins):
    project > user > defaults.

    Files:
      - user:    user_home/.ebookwf/config.yml
      - project: project_root/.ebookwf/config.yml

    The API key falls back to the OPENROUTER_API_KEY environment variable
    when no file sets generation.api_key.

    Raises:
        ConfigLoadError: If a file is malformed or the merged config is invalid
    """
    project_root = project_root or Path.cwd()
    user_home = user_home or Path.home()
    environ = os.environ if environ is None else environ

    cfg: dict[str, Any] = _defaults()

    user_path = user_home / CONFIG_DIRNAME / CONFIG_FILENAME
    cfg = _deep_merge(cfg, _load_yaml_mapping(user_path))

    project_path = project_root / CONFIG_DIRNAME / CONFIG_FILENAME
    cfg = _deep_merge(cfg, _load_yaml_mapping(project_path))

    generation = cfg.get("generation")
    if isinstance(generation, dict) and not generation.get("api_key"):
        api_key = environ.get(API_KEY_ENV_VAR)
        if api_key:
            generation["api_key"] = api_key

    try:
        config = EngineConfig.model_validate(cfg)
    except ValidationError as e:
        raise ConfigLoadError(f"Invalid configuration ({e.error_count()} error(s))", cause=e) from e

    # Relative sessions roots resolve against the project root
    if not config.sessions_root.is_absolute():
        config = config.model_copy(update={"sessions_root": project_root / config.sessions_root})
    return config

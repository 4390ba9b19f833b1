"""Deployment document loader (YAML or JSON)."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.constructor import SafeConstructor
from ruamel.yaml.nodes import ScalarNode, SequenceNode

from deploy_orchestrator.config.schema import Config, EngineSettings
from deploy_orchestrator.engine.intrinsics import FIND_IN_MAP, GET_ATT, JOIN, REF, SELECT

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised for configuration loading / validation errors."""


# Field name → environment variable.
_TOP_LEVEL_ENV_MAP: dict[str, str] = {
    "target": "DEPLOY_TARGET",
    "state_path": "DEPLOY_STATE_PATH",
}


class _TemplateConstructor(SafeConstructor):
    """Safe constructor that understands the short intrinsic tags."""


def _construct_ref(constructor: SafeConstructor, node: Any) -> dict[str, Any]:
    return {REF: constructor.construct_scalar(node)}


def _construct_get_att(constructor: SafeConstructor, node: Any) -> dict[str, Any]:
    if isinstance(node, ScalarNode):
        name, _, attr = str(constructor.construct_scalar(node)).partition(".")
        return {GET_ATT: [name, attr]}
    return {GET_ATT: constructor.construct_sequence(node, deep=True)}


def _sequence_intrinsic(fn: str) -> Any:
    def _construct(constructor: SafeConstructor, node: Any) -> dict[str, Any]:
        if not isinstance(node, SequenceNode):
            return {fn: constructor.construct_scalar(node)}
        return {fn: constructor.construct_sequence(node, deep=True)}

    return _construct


_TemplateConstructor.add_constructor("!Ref", _construct_ref)
_TemplateConstructor.add_constructor("!GetAtt", _construct_get_att)
_TemplateConstructor.add_constructor("!Join", _sequence_intrinsic(JOIN))
_TemplateConstructor.add_constructor("!FindInMap", _sequence_intrinsic(FIND_IN_MAP))
_TemplateConstructor.add_constructor("!Select", _sequence_intrinsic(SELECT))


def _yaml() -> YAML:
    yaml = YAML(typ="safe", pure=True)
    yaml.Constructor = _TemplateConstructor
    return yaml


def _read_document(path: Path) -> Any:
    if path.suffix.lower() == ".json":
        return json.loads(path.read_text(encoding="utf-8"))
    return _yaml().load(path)


def _resolve_top_level(raw: dict[str, Any], config_dir: Path) -> dict[str, str]:
    """Resolve ``target``/``state_path`` from document, env vars and ``.env``.

    Priority (highest wins): document value > env var > ``.env`` file.
    Returns the ``.env`` values for later use.
    """
    env_file = config_dir / ".env"
    dotenv_vals = dotenv_values(env_file, encoding="utf-8-sig") if env_file.is_file() else {}

    for field, env_key in _TOP_LEVEL_ENV_MAP.items():
        val = raw.get(field)
        if val is None:
            val = os.environ.get(env_key)
        if val is None:
            val = dotenv_vals.get(env_key)
        if val is not None:
            raw[field] = val

    return {k: v for k, v in dotenv_vals.items() if v is not None}


def _resolve_settings(raw_settings: Any, dotenv_vals: dict[str, str]) -> EngineSettings:
    """Build engine settings: document > env var > ``.env`` file > default."""
    if raw_settings is None:
        raw_settings = {}
    if not isinstance(raw_settings, dict):
        raise ConfigError("'settings' must be a mapping")

    for key, val in dotenv_vals.items():
        if key.startswith("DEPLOY_") and key not in os.environ:
            field = key.removeprefix("DEPLOY_").lower()
            if field in EngineSettings.model_fields and field not in raw_settings:
                raw_settings[field] = val

    return EngineSettings(**raw_settings)


def load_config(path: Path | str) -> Config:
    """Load a deployment document and return a ``Config`` object.

    Raises:
        ConfigError: On parse errors, missing sections, or validation failures.
    """
    path = Path(path)

    try:
        raw = _read_document(path)
    except Exception as exc:
        raise ConfigError(f"Failed to read {path}: {exc}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"{path}: expected a mapping at the top level")

    try:
        dotenv_vals = _resolve_top_level(raw, path.parent)
        raw["settings"] = _resolve_settings(raw.get("settings"), dotenv_vals)
        config = Config.model_validate(raw)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc

    config.config_dir = path.parent

    logger.info("Loaded config from %s (%d resources)", path, len(config.resources))
    return config

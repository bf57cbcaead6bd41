from __future__ import annotations

import copy
import os
import tomllib
from pathlib import Path
from typing import Any

from clippy.models import ProviderConfig

CONFIG_DIR = Path("~/.clippy").expanduser()
CONFIG_FILE = CONFIG_DIR / "config.toml"

DEFAULTS: dict[str, Any] = {
    "llm": {
        "provider": "",
        "model": "",
        "base_url": "",
        "api_key": "",
        "timeout": 120,
    },
}

# environment variable -> key under [llm]
ENV_VARS: dict[str, str] = {
    "CLIPPY_PROVIDER": "provider",
    "CLIPPY_MODEL": "model",
    "CLIPPY_BASE_URL": "base_url",
    "CLIPPY_API_KEY": "api_key",
}


def load(path: Path | None = None, environ: dict[str, str] | None = None) -> dict[str, Any]:
    """Load config: defaults, then ~/.clippy/config.toml, then CLIPPY_* env vars."""
    path = path or CONFIG_FILE
    env = os.environ if environ is None else environ
    config = copy.deepcopy(DEFAULTS)
    if path.exists():
        with open(path, "rb") as f:
            on_disk = tomllib.load(f)
        config = _deep_merge(config, on_disk)
    for var, key in ENV_VARS.items():
        value = env.get(var)
        if value:
            config["llm"][key] = value
    return config


def save(config: dict[str, Any], path: Path | None = None) -> None:
    """Save config dict to ~/.clippy/config.toml (manual TOML serialization)."""
    path = path or CONFIG_FILE
    path.parent.mkdir(parents=True, exist_ok=True)
    lines = _dict_to_toml(config)
    path.write_text("\n".join(lines).lstrip("\n") + "\n")


def provider_config(config: dict[str, Any]) -> ProviderConfig:
    llm = config["llm"]
    return ProviderConfig(
        api_key=str(llm.get("api_key", "")),
        base_url=str(llm.get("base_url", "")),
        model=str(llm.get("model", "")),
        provider=str(llm.get("provider", "")).strip().lower(),
        timeout=float(llm.get("timeout", 120)),
    )


def _deep_merge(base: dict, override: dict) -> dict:
    result = dict(base)
    for k, v in override.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


def _dict_to_toml(d: dict[str, Any], prefix: str = "") -> list[str]:
    """Minimal TOML serializer for simple nested dicts with scalar values."""
    lines: list[str] = []
    sections: list[tuple[str, dict]] = []

    for k, v in d.items():
        if isinstance(v, dict):
            sections.append((k, v))
        else:
            lines.append(f'{k} = {_toml_value(v)}')

    for section_key, section_val in sections:
        header = f"[{section_key}]" if not prefix else f"[{prefix}.{section_key}]"
        lines.append("")
        lines.append(header)
        for sk, sv in section_val.items():
            lines.append(f'{sk} = {_toml_value(sv)}')

    return lines


def _toml_value(v: Any) -> str:
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, (int, float)):
        return str(v)
    if isinstance(v, str):
        escaped = v.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    raise ValueError(f"Unsupported TOML value type: {type(v)}")

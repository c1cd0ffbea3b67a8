"""Configuration loading for the Suno relay."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

import yaml

_DEFAULT_CONFIG = "config.yaml"
_PLACEHOLDER_KEY = "YOUR_KIE_API_KEY"
_ENV_KEY = "MUSICAPI_KEY"


def load_config(config_path: str | Path | None = None) -> dict:
    """Load the YAML configuration file.

    Args:
        config_path: Path to config.yaml. Defaults to ./config.yaml.

    Returns:
        Parsed config dict (empty if the file is empty).

    Raises:
        FileNotFoundError: If the config file doesn't exist.
    """
    path = Path(config_path or _DEFAULT_CONFIG)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


@dataclass
class RelaySettings:
    """Resolved settings for the client, store and service.

    Attributes:
        default_key: API key used when a caller sends none.
        base_url: KIE.ai API base URL.
        timeout: Per-attempt request timeout in seconds.
        model: Default Suno model for new jobs.
        callback_url: Callback URL the upstream requires on submission.
        data_dir: Directory holding history files.
        scoped: Keep a separate history per user.
        history_limit: Maximum records returned by history listings.
    """
    default_key: str | None = None
    base_url: str = "https://api.kie.ai"
    timeout: float = 60.0
    model: str = "V5"
    callback_url: str = "https://google.com"
    data_dir: Path = Path("data")
    scoped: bool = True
    history_limit: int = 50

    @classmethod
    def from_config(cls, config: dict, base_dir: Path | None = None) -> RelaySettings:
        """Build settings from a parsed config dict, applying defaults.

        Relative ``history.data_dir`` values are resolved against ``base_dir``.
        """
        api = config.get("api") or {}
        generation = config.get("generation") or {}
        history = config.get("history") or {}

        key = api.get("api_key") or ""
        if not key or key == _PLACEHOLDER_KEY:
            key = os.environ.get(_ENV_KEY, "")

        data_dir = Path(history.get("data_dir", "data"))
        if base_dir is not None and not data_dir.is_absolute():
            data_dir = base_dir / data_dir

        return cls(
            default_key=key or None,
            base_url=api.get("base_url", "https://api.kie.ai"),
            timeout=float(api.get("timeout", 60.0)),
            model=generation.get("model", "V5"),
            callback_url=generation.get("callback_url", "https://google.com"),
            data_dir=data_dir,
            scoped=bool(history.get("scoped", True)),
            history_limit=int(history.get("limit", 50)),
        )


def load_settings(config_path: str | Path | None = None) -> RelaySettings:
    """Load config.yaml and resolve it into settings relative to its directory."""
    path = Path(config_path or _DEFAULT_CONFIG)
    config = load_config(path)
    return RelaySettings.from_config(config, base_dir=path.resolve().parent)

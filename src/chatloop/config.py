"""Client configuration.

Config discovery (first match wins):
  1. explicit ``path`` argument
  2. ``./chatloop.yaml``
  3. ``~/.config/chatloop/config.yaml``
  4. Built-in defaults

Example::

    profile: gemini
    profiles:
      openai:
        provider: openai
        api_key: sk-...
        model: gpt-4o
      gemini:
        provider: gemini
        api_key: ...
        model: gemini-1.5-flash
        max_attempts: 3
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

_logger = logging.getLogger(__name__)

_DEFAULT_URLS = {
    "openai": "https://api.openai.com/v1",
    "gemini": "https://generativelanguage.googleapis.com/v1beta",
}
_DEFAULT_MODELS = {
    "openai": "gpt-4o",
    "gemini": "gemini-1.5-flash",
}


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class ProviderProfile:
    """Connection settings for one provider endpoint.

    ``url`` and ``model`` default to the provider's public endpoint and
    default model when left empty.  ``extra_params`` are merged into every
    request body.
    """

    provider: str = "openai"  # "openai" | "gemini"
    url: str = ""
    api_key: str = ""
    model: str = ""
    timeout: float = 900
    max_attempts: int = 5
    extra_params: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.url:
            self.url = _DEFAULT_URLS.get(self.provider, _DEFAULT_URLS["openai"])
        if not self.model:
            self.model = _DEFAULT_MODELS.get(self.provider, _DEFAULT_MODELS["openai"])


@dataclass
class ClientConfig:
    """Top-level config: the active profile name plus named profiles."""

    profile: str = "openai"
    profiles: dict[str, ProviderProfile] = field(
        default_factory=lambda: {"openai": ProviderProfile()}
    )

    @property
    def active_profile(self) -> ProviderProfile:
        return self.profiles.get(self.profile, ProviderProfile())


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./chatloop.yaml"),
    Path.home() / ".config" / "chatloop" / "config.yaml",
]


def _parse_profile(raw: dict[str, Any]) -> ProviderProfile:
    return ProviderProfile(
        provider=raw.get("provider", "openai"),
        url=raw.get("url", ""),
        api_key=raw.get("api_key", ""),
        model=raw.get("model", ""),
        timeout=raw.get("timeout", 900),
        max_attempts=raw.get("max_attempts", 5),
        extra_params=raw.get("extra_params", {}),
    )


def load_config(path: str | Path | None = None) -> ClientConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    ClientConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s, using defaults", path)
            return ClientConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found, using defaults")
        return ClientConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    profiles: dict[str, ProviderProfile] = {}
    for name, praw in (raw.get("profiles") or {}).items():
        profiles[name] = _parse_profile(praw or {})

    if not profiles:
        profiles["openai"] = ProviderProfile()

    return ClientConfig(
        profile=raw.get("profile", next(iter(profiles))),
        profiles=profiles,
    )

"""Pydantic Settings with YAML file support.

Priority (highest first): init kwargs > env vars > .env > config.yaml > config.default.yaml
"""

from __future__ import annotations

import os
from functools import lru_cache
from pathlib import Path
from typing import Any

from dotenv import load_dotenv
from pydantic import BaseModel
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict, YamlConfigSettingsSource

from newsarchive.models import ContentMode, FailurePolicy


# ---------------------------------------------------------------------------
# Sub-models
# ---------------------------------------------------------------------------

class SourceConfig(BaseModel):
    """Where the manifest and the documents live.

    ``base`` is either a local directory or an http(s) URL.
    """

    base: str = "."
    manifest_path: str = "newsletters.json"
    manifest_key: str = "files"
    content_dir: str = "newsletters"
    timeout: float | None = None  # seconds; None applies no timeout


class IngestConfig(BaseModel):
    content_mode: ContentMode = ContentMode.MARKUP
    failure_policy: FailurePolicy = FailurePolicy.DROP
    title_min_length: int = 10
    title_max_length: int = 150
    text_title_min_length: int = 1
    text_title_max_length: int = 100
    title_truncate: int = 100
    excerpt_min_length: int = 50
    excerpt_max_length: int = 300
    excerpt_truncate: int = 200
    date_fallback_warning: bool = False
    max_concurrency: int | None = None  # None = every identifier at once


class ConverterConfig(BaseModel):
    """Options passed to the document converter."""

    style_map: dict[str, str] = {
        "Title": "h1",
        "Heading 1": "h1",
        "Heading 2": "h2",
        "Heading 3": "h3",
        "Subtitle": "h2.subtitle",
        "Quote": "blockquote",
        "Intense Quote": "blockquote.intense",
        "List Paragraph": "li",
    }
    inline_images: bool = True


class SearchConfig(BaseModel):
    """Defaults for CLI search output."""

    max_results: int = 20
    snippet_length: int = 120


# ---------------------------------------------------------------------------
# Main settings
# ---------------------------------------------------------------------------

def _yaml_files() -> list[Path]:
    """Return YAML config file paths relative to the project root."""
    root = Path(os.environ.get("NEWSARCHIVE_ROOT", "."))
    files = []
    default_cfg = root / "config.default.yaml"
    if default_cfg.exists():
        files.append(default_cfg)
    user_cfg = root / "config.yaml"
    if user_cfg.exists():
        files.append(user_cfg)
    return files


class Settings(BaseSettings):
    """Application settings loaded from YAML + env vars."""

    model_config = SettingsConfigDict(
        env_prefix="NEWSARCHIVE_",
        env_nested_delimiter="__",
    )

    source: SourceConfig = SourceConfig()
    ingest: IngestConfig = IngestConfig()
    converter: ConverterConfig = ConverterConfig()
    search: SearchConfig = SearchConfig()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            YamlConfigSettingsSource(
                settings_cls,
                yaml_file=_yaml_files(),
            ),
        )

    @property
    def base_location(self) -> str:
        """``source.base`` with relative folders resolved against the project root."""
        base = self.source.base
        if base.startswith(("http://", "https://")) or Path(base).is_absolute():
            return base
        return str(Path(os.environ.get("NEWSARCHIVE_ROOT", ".")) / base)

    @property
    def manifest_ref(self) -> str:
        return self.source.manifest_path

    def content_ref(self, identifier: str) -> str:
        """Location of one document relative to ``source.base``."""
        content_dir = self.source.content_dir.strip("/")
        return f"{content_dir}/{identifier}" if content_dir else identifier


# ---------------------------------------------------------------------------
# Singleton accessor
# ---------------------------------------------------------------------------

@lru_cache(maxsize=1)
def get_settings(**kwargs: Any) -> Settings:
    """Lazy singleton for settings. Call reset_settings() to reload."""
    root = Path(os.environ.get("NEWSARCHIVE_ROOT", "."))
    load_dotenv(root / ".env", override=False)
    return Settings(**kwargs)


def reset_settings() -> None:
    """Clear the settings cache so the next get_settings() reloads from disk."""
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Config persistence
# ---------------------------------------------------------------------------

def _deep_merge(base: dict, override: dict) -> dict:
    """Recursively merge *override* into *base* (mutates base)."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


def save_user_config(overrides: dict) -> Path:
    """Write user overrides to config.yaml and reset the settings cache.

    Deep-merges *overrides* into the existing config.yaml (if any) so
    keys not present in *overrides* are preserved.
    """
    import yaml

    root = Path(os.environ.get("NEWSARCHIVE_ROOT", "."))
    config_path = root / "config.yaml"

    existing: dict = {}
    if config_path.exists():
        with open(config_path) as f:
            existing = yaml.safe_load(f) or {}

    _deep_merge(existing, overrides)

    with open(config_path, "w") as f:
        yaml.dump(existing, f, default_flow_style=False, allow_unicode=True, sort_keys=False)

    reset_settings()
    return config_path

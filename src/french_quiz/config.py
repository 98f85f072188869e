"""Application configuration using pydantic-settings."""

import functools
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict


def _find_project_root() -> Path:
    """Find project root by locating pyproject.toml."""
    current = Path(__file__).resolve()
    for parent in [current] + list(current.parents):
        if (parent / "pyproject.toml").exists():
            return parent
    return Path(__file__).resolve().parent.parent.parent


class YamlSettingsSource(PydanticBaseSettingsSource):
    """Custom settings source that loads from settings.yaml."""

    def get_field_value(self, field_name: str) -> tuple[Any, str, bool]:
        """Not used - we implement __call__ instead."""
        return None, "", False

    def __call__(self) -> dict[str, Any]:
        """Load settings from YAML file."""
        yaml_path = _find_project_root() / "config" / "settings.yaml"
        if not yaml_path.exists():
            return {}

        with open(yaml_path, encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested structure to match Settings field names
        flattened = {}
        if 'server' in data:
            flattened['host'] = data['server'].get('host')
            flattened['port'] = data['server'].get('port')
            flattened['allowed_origins'] = data['server'].get('allowed_origins')
        if 'supabase' in data:
            flattened['supabase_url'] = data['supabase'].get('url')
            flattened['supabase_timeout_seconds'] = data['supabase'].get('timeout_seconds')
        if 'transfer' in data:
            flattened['transfer_ttl_minutes'] = data['transfer'].get('ttl_minutes')
            flattened['transfer_api_url'] = data['transfer'].get('api_url')
        if 'rate_limit' in data:
            flattened['rate_limit_max_requests'] = data['rate_limit'].get('max_requests')
            flattened['rate_limit_window_seconds'] = data['rate_limit'].get('window_seconds')
        if 'storage' in data:
            flattened['data_subdir'] = data['storage'].get('data_subdir')

        # Remove None values
        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Hosted transfer table
    supabase_url: str = Field(default="http://localhost:54321")
    supabase_service_key: str = Field(default="", description="Elevated key used for inserts")
    supabase_anon_key: str = Field(default="", description="Restricted key used for reads/patches")
    supabase_timeout_seconds: float = Field(default=10.0)

    # Transfer codes
    transfer_ttl_minutes: int = Field(default=15)
    transfer_api_url: str = Field(default="http://localhost:8000", description="Base URL devices call")

    # Edge rate limiting
    rate_limit_max_requests: int = Field(default=20)
    rate_limit_window_seconds: int = Field(default=60)

    # Server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    allowed_origins: list[str] = Field(default_factory=lambda: ["*"])

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)
    data_subdir: str = Field(default="data/device")

    @property
    def data_dir(self) -> Path:
        d = self.project_root / self.data_subdir
        d.mkdir(parents=True, exist_ok=True)
        return d

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """Customise settings sources to include YAML file.

        Priority order (highest to lowest):
        1. init_settings (arguments passed to Settings())
        2. env_settings (environment variables)
        3. dotenv_settings (.env file)
        4. YamlSettingsSource (settings.yaml)
        5. file_secret_settings
        """
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            YamlSettingsSource(settings_cls),
            file_secret_settings,
        )


@functools.lru_cache
def get_settings() -> Settings:
    """Get application settings singleton."""
    return Settings()

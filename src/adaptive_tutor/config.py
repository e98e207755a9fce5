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

        with open(yaml_path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

        # Flatten nested sections to match Settings field names
        flattened = {}
        if "generation" in data:
            generation = data["generation"]
            flattened["generation_model"] = generation.get("model")
            flattened["generation_temperature"] = generation.get("temperature")
            flattened["generation_timeout_seconds"] = generation.get("timeout_seconds")
            flattened["generation_max_attempts"] = generation.get("max_attempts")
            flattened["generation_backoff_seconds"] = generation.get("backoff_seconds")
        if "tutor" in data:
            tutor = data["tutor"]
            flattened["cache_max_entries"] = tutor.get("cache_max_entries")
            flattened["memory_max_entries"] = tutor.get("memory_max_entries")
            flattened["difficulty_history_size"] = tutor.get("difficulty_history_size")
            flattened["recent_sessions_days"] = tutor.get("recent_sessions_days")
        if "storage" in data:
            flattened["data_dir"] = data["storage"].get("data_dir")
        if "knowledge" in data:
            flattened["knowledge_graph_path"] = data["knowledge"].get("graph_path")

        return {k: v for k, v in flattened.items() if v is not None}


class Settings(BaseSettings):
    """Application settings loaded from environment and config files."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Generation
    openai_api_key: str | None = Field(default=None, description="OpenAI API key")
    generation_model: str = Field(default="gpt-4o-mini")
    generation_temperature: float = Field(default=0.7)
    generation_timeout_seconds: float = Field(default=30.0)
    generation_max_attempts: int = Field(default=3)
    generation_backoff_seconds: float = Field(default=2.0)

    # Tutor state bounds
    cache_max_entries: int = Field(default=100)
    memory_max_entries: int = Field(default=20)
    difficulty_history_size: int = Field(default=10)
    recent_sessions_days: int = Field(default=7)

    # Paths
    project_root: Path = Field(default_factory=_find_project_root)
    data_dir: Path | None = Field(default=None)
    knowledge_graph_path: Path | None = Field(default=None)

    @property
    def resolved_data_dir(self) -> Path:
        if self.data_dir is None:
            return self.project_root / "data"
        if self.data_dir.is_absolute():
            return self.data_dir
        return self.project_root / self.data_dir

    @property
    def profiles_dir(self) -> Path:
        d = self.resolved_data_dir / "profiles"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def sessions_dir(self) -> Path:
        d = self.resolved_data_dir / "sessions"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def messages_dir(self) -> Path:
        d = self.resolved_data_dir / "messages"
        d.mkdir(parents=True, exist_ok=True)
        return d

    @property
    def graph_path(self) -> Path:
        if self.knowledge_graph_path is None:
            return self.project_root / "config" / "knowledge" / "graph.yaml"
        if self.knowledge_graph_path.is_absolute():
            return self.knowledge_graph_path
        return self.project_root / self.knowledge_graph_path

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


def load_knowledge_data(path: Path | None = None) -> dict:
    """Load the concept graph and quiz bank from YAML."""
    graph_path = path or get_settings().graph_path
    if not graph_path.exists():
        raise FileNotFoundError(f"Knowledge graph file not found: {graph_path}")
    with open(graph_path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return {
        "concepts": data.get("concepts", []),
        "quizzes": data.get("quizzes", []),
    }

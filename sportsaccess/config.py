"""
Configuration models loaded from YAML with Pydantic.
"""

from datetime import time
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .domain.models import ClassDefinition
from .domain.time_window import Schedule


class ScheduleConfig(BaseModel):
    """Daily operating window and access grace period."""
    day_start_hour: int = 7
    day_end_hour: int = 18
    slot_minutes: int = 30
    grace_minutes: int = 10

    @field_validator("day_start_hour", "day_end_hour")
    @classmethod
    def validate_hour(cls, v: int) -> int:
        """Validate hour is between 0 and 23."""
        if not 0 <= v <= 23:
            raise ValueError(f"Hour must be between 0 and 23, got {v}")
        return v

    @field_validator("slot_minutes")
    @classmethod
    def validate_slot_minutes(cls, value: int) -> int:
        """Slots must tile an hour evenly."""
        if value <= 0 or 60 % value != 0:
            raise ValueError(f"slot_minutes must be a positive divisor of 60, got {value}")
        return value

    @field_validator("grace_minutes")
    @classmethod
    def validate_grace(cls, value: int) -> int:
        if value < 0:
            raise ValueError("grace_minutes must not be negative")
        return value

    @model_validator(mode="after")
    def validate_hours_order(self) -> "ScheduleConfig":
        """Ensure the configured window opens before it closes."""
        if self.day_end_hour <= self.day_start_hour:
            raise ValueError("day_end_hour must be later than day_start_hour")
        return self

    def get_start_time(self) -> time:
        return time(hour=self.day_start_hour, minute=0)

    def get_end_time(self) -> time:
        return time(hour=self.day_end_hour, minute=0)

    def to_schedule(self) -> Schedule:
        return Schedule(
            day_start=self.get_start_time(),
            day_end=self.get_end_time(),
            slot_minutes=self.slot_minutes,
            grace_minutes=self.grace_minutes,
        )


class ClassConfig(BaseModel):
    """Catalog entry used when no store provides the class list."""
    id: str
    name: str
    duration_minutes: int

    @field_validator("duration_minutes")
    @classmethod
    def validate_duration(cls, value: int) -> int:
        """Ensure class duration is positive."""
        if value <= 0:
            raise ValueError("duration_minutes must be greater than zero")
        return value

    def to_definition(self) -> ClassDefinition:
        return ClassDefinition(id=self.id, name=self.name, duration_minutes=self.duration_minutes)


def _default_classes() -> List[ClassConfig]:
    return [
        ClassConfig(id="fut", name="Fútbol", duration_minutes=60),
        ClassConfig(id="voley", name="Vóleibol", duration_minutes=60),
        ClassConfig(id="esc", name="Escalada", duration_minutes=90),
        ClassConfig(id="gim", name="Gimnasio", duration_minutes=60),
    ]


class StoreConfig(BaseModel):
    """Primary (HTTP) and fallback (local YAML) reservation stores."""
    api_base_url: Optional[str] = None
    timeout_seconds: float = 10.0
    use_fallback: bool = True
    fallback_path: Path = Path("data/reservations.yaml")

    @field_validator("timeout_seconds")
    @classmethod
    def validate_timeout(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("timeout_seconds must be greater than zero")
        return value

    @field_validator("api_base_url")
    @classmethod
    def normalize_base_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = value.strip().rstrip("/")
        return value or None


class AppConfig(BaseModel):
    """Application configuration."""
    timezone: str = "America/Santiago"
    schedule: ScheduleConfig = Field(default_factory=ScheduleConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    classes: List[ClassConfig] = Field(default_factory=_default_classes)

    @field_validator("classes")
    @classmethod
    def validate_classes(cls, value: List[ClassConfig]) -> List[ClassConfig]:
        """Ensure class ids are unique."""
        seen_ids: set[str] = set()
        for entry in value:
            if entry.id in seen_ids:
                raise ValueError(f"Duplicate class id detected: {entry.id}")
            seen_ids.add(entry.id)
        return value

    @classmethod
    def load_from_yaml(cls, config_path: Path) -> "AppConfig":
        """
        Load configuration from YAML file.

        Args:
            config_path: Path to the YAML config file

        Returns:
            AppConfig instance

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If config is invalid
        """
        if not config_path.exists():
            raise FileNotFoundError(
                f"Config file not found: {config_path}\n"
                f"Please create a config.yaml file. See config.example.yaml for reference."
            )

        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(f"Invalid YAML in {config_path}: {exc}") from exc

        if not isinstance(data, dict):
            raise ValueError("Config file must contain a mapping at the root level.")

        return cls(**data)

    @classmethod
    def load_or_default(cls, config_path: Optional[Path]) -> "AppConfig":
        """Load the given file, or the default location if it exists, else defaults."""
        if config_path is not None:
            return cls.load_from_yaml(config_path)
        default_path = get_default_config_path()
        if default_path.exists():
            return cls.load_from_yaml(default_path)
        return cls()

    def find_class(self, class_id: str) -> ClassConfig | None:
        """Find a catalog entry by id."""
        for entry in self.classes:
            if entry.id == class_id:
                return entry
        return None

    def class_catalog(self) -> List[ClassDefinition]:
        return [entry.to_definition() for entry in self.classes]


def get_default_config_path() -> Path:
    """Get the default configuration file path."""
    # Look for config.yaml in current directory
    current_dir = Path.cwd()
    config_path = current_dir / "config.yaml"

    if not config_path.exists():
        # Try in the project root (parent of the package)
        project_root = Path(__file__).parent.parent
        config_path = project_root / "config.yaml"

    return config_path

from typing import Literal, Optional, Set

from pydantic import BaseModel, Field, ValidationError


class ConfigSchema(BaseModel):
    storage_backend: Literal["sqlite", "json"] = "sqlite"
    storage_path: str = "health_diary.db"
    storage_key: str = "health-diary-storage"
    week_start: int = Field(1, ge=0, le=6)
    sync_url: Optional[str] = None
    sync_api_key: Optional[str] = Field(None, json_schema_extra={"secret": True})
    sync_debounce_seconds: float = Field(1.5, ge=0)
    sync_timeout: float = Field(10.0, gt=0)
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


def secret_fields() -> Set[str]:
    """Names of the settings that are kept out of the YAML file when encrypting."""
    return {
        name
        for name, field in ConfigSchema.model_fields.items()
        if isinstance(field.json_schema_extra, dict) and field.json_schema_extra.get("secret")
    }


def validate_settings(data: dict) -> ConfigSchema:
    try:
        return ConfigSchema(**data)
    except ValidationError as e:
        raise ValueError(str(e))

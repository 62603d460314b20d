import os
from typing import Optional, Union

import yaml
import keyring

from settings_schema import ConfigSchema, secret_fields, validate_settings

APP_VERSION = "1.0.0"


class YamlConfig:
    """Stores a :class:`ConfigSchema` as YAML.

    With ``ENCRYPT_SETTINGS=1`` the schema's secret fields are written to the
    system keyring and the file only records ``true`` in their place.
    """

    SERVICE = "health-diary"

    def __init__(self, path: str = "settings.yaml", encrypt: Optional[bool] = None) -> None:
        self.path = path
        if encrypt is None:
            encrypt = os.environ.get("ENCRYPT_SETTINGS") == "1"
        self.encrypt = encrypt
        self.secret_keys = secret_fields()

    def _read(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ValueError(f"invalid YAML in {self.path}: {e}") from e
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ValueError(f"{self.path} does not contain a mapping")
        return data

    def load(self) -> dict:
        """Raw settings with secrets resolved; unresolvable secrets are left out."""
        data = self._read()
        if self.encrypt:
            for key in self.secret_keys & set(data):
                secret = keyring.get_password(self.SERVICE, key)
                if secret is None:
                    del data[key]
                else:
                    data[key] = secret
        return data

    def load_settings(self) -> ConfigSchema:
        return validate_settings(self.load())

    def save(self, settings: Union[ConfigSchema, dict]) -> ConfigSchema:
        """Validate and write ``settings``; nothing is written when they are invalid."""
        if not isinstance(settings, ConfigSchema):
            settings = validate_settings(settings)
        out = settings.model_dump(exclude_none=True)
        if self.encrypt:
            for key in self.secret_keys & set(out):
                keyring.set_password(self.SERVICE, key, str(out[key]))
                out[key] = True
        with open(self.path, "w", encoding="utf-8") as f:
            yaml.safe_dump(out, f, sort_keys=True)
        return settings


def load_config(path: str = "settings.yaml") -> ConfigSchema:
    """Read and validate ``path``; a missing file gives the defaults."""
    return YamlConfig(path).load_settings()

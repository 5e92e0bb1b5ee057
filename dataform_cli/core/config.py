import os
import sys
from typing import Optional, Dict
from pydantic import BaseModel, Field, ConfigDict, field_validator


DEFAULT_IMAGE = "dataformco/dataform:latest"

_ENV_LOADED = False


def _load_env_file(path: str, allow_override: bool = False) -> None:
    """
    Minimal .env loader: loads KEY=VALUE pairs into os.environ.
    - Ignores empty lines and lines starting with '#'
    - Supports values wrapped in single or double quotes
    - Does not override existing environment variables unless allow_override
    """
    if not path or not os.path.exists(path):
        return
    try:
        with open(path, "r", encoding="utf-8") as f:
            for raw_line in f:
                line = raw_line.strip()
                if not line or line.startswith("#"):
                    continue
                if line.startswith("export "):
                    line = line[len("export "):].strip()
                if "=" not in line:
                    continue
                key, value = line.split("=", 1)
                key = key.strip()
                value = value.strip()
                if (value.startswith('"') and value.endswith('"')) or (value.startswith("'") and value.endswith("'")):
                    value = value[1:-1]
                if allow_override or key not in os.environ:
                    os.environ[key] = value
    except PermissionError as e:
        print(f"FATAL: Permission denied reading environment file {path}: {e}", file=sys.stderr)
        raise


def load_env_if_present(force_reload: bool = False) -> None:
    """
    Load environment variables from DATAFORM_ENV_FILE when set, otherwise
    from .env.local then .env (first value wins).
    """
    global _ENV_LOADED
    if _ENV_LOADED and not force_reload:
        return

    custom = os.environ.get("DATAFORM_ENV_FILE")
    if custom:
        _load_env_file(custom)
    else:
        for env_file in ('.env.local', '.env'):
            _load_env_file(env_file)

    _ENV_LOADED = True


class Settings(BaseModel):
    """Task runtime configuration derived from environment variables."""
    model_config = ConfigDict(validate_assignment=True, populate_by_name=True)

    default_image: str = Field(DEFAULT_IMAGE, alias="DATAFORM_DEFAULT_IMAGE")
    shell: str = Field("/bin/sh", alias="DATAFORM_SHELL")
    docker_bin: str = Field("docker", alias="DATAFORM_DOCKER_BIN")
    working_dir_root: Optional[str] = Field(None, alias="DATAFORM_WORKING_DIR_ROOT")
    output_dir: Optional[str] = Field(None, alias="DATAFORM_OUTPUT_DIR")
    namespace_files_dir: Optional[str] = Field(None, alias="DATAFORM_NAMESPACE_FILES_DIR")
    kubernetes_namespace: str = Field("default", alias="DATAFORM_KUBERNETES_NAMESPACE")
    log_json: bool = Field(False, alias="DATAFORM_LOG_JSON")
    log_level: str = Field("INFO", alias="LOG_LEVEL")

    @field_validator('default_image', 'shell', 'docker_bin', mode='before')
    def validate_not_empty_str(cls, v):
        if v is None or not str(v).strip():
            raise ValueError("must be a non-empty string")
        return str(v).strip()

    @field_validator('working_dir_root', 'output_dir', 'namespace_files_dir', mode='before')
    def blank_to_none(cls, v):
        if v is None or not str(v).strip():
            return None
        return os.path.expanduser(str(v).strip())

    @field_validator('log_json', mode='before')
    def coerce_bool(cls, v):
        if isinstance(v, bool):
            return v
        if isinstance(v, str):
            val = v.strip().lower()
            if val in {"true", "1", "yes", "y", "on"}:
                return True
            if val in {"false", "0", "no", "n", "off", ""}:
                return False
        raise ValueError("Invalid boolean value")

    @field_validator('log_level', mode='before')
    def normalize_level(cls, v):
        return str(v or "INFO").strip().upper()


_settings: Optional[Settings] = None


def get_settings(reload: bool = False) -> Settings:
    """
    Get task settings, reading the environment on first call.
    Set reload=True to pick up environment changes.
    """
    global _settings
    if _settings is None or reload:
        load_env_if_present(force_reload=reload)
        env: Dict[str, str] = dict(os.environ)
        fields = {
            field.alias: env[field.alias]
            for field in Settings.model_fields.values()
            if field.alias in env
        }
        _settings = Settings(**fields)
    return _settings

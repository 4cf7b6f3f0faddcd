"""Configuration for sops-decrypt-hook."""

import os
import re
from dataclasses import dataclass, fields, replace
from enum import Enum
from pathlib import Path
from typing import Optional

import yaml

from .errors import ConfigError


class SecretFormat(str, Enum):
    DOTENV = "dotenv"
    JSON = "json"
    YAML = "yaml"
    INI = "ini"


class KeyTransform(str, Enum):
    NONE = "none"
    UPPERCASE = "uppercase"
    LOWERCASE = "lowercase"

    def apply(self, name: str) -> str:
        if self is KeyTransform.UPPERCASE:
            return name.upper()
        if self is KeyTransform.LOWERCASE:
            return name.lower()
        return name


# Variables a secrets file may never set: shell internals, loader hooks and
# interpreter search paths.
DEFAULT_PROTECTED_VARS = frozenset({
    "PATH", "HOME", "USER", "SHELL", "LD_LIBRARY_PATH", "LD_PRELOAD",
    "SHELLOPTS", "IFS", "PS1", "PS2", "PS3", "PS4",
    "LD_AUDIT", "LD_DEBUG", "LD_BIND_NOW", "LD_TRACE_LOADED_OBJECTS",
    "DYLD_LIBRARY_PATH", "DYLD_INSERT_LIBRARIES", "DYLD_PRINT_TO_FILE",
    "BASH_ENV", "ENV", "PROMPT_COMMAND", "PERL5LIB", "PYTHONPATH", "NODE_PATH",
})

DEFAULT_MAX_FILE_SIZE = 10 * 1024 * 1024

CONFIG_ENV_VAR = "SOPS_DECRYPT_HOOK_CONFIG"
LOCAL_CONFIG_NAME = ".sops-hook.yaml"


@dataclass(frozen=True)
class FileSpec:
    """One encrypted secret file and how to export it."""

    path: str
    format: SecretFormat = SecretFormat.DOTENV
    prefix: str = ""
    filter: Optional[str] = None
    required: bool = True


@dataclass(frozen=True)
class PipelineConfig:
    """Run-wide settings. Immutable once a run starts."""

    sops_files: tuple = ()
    file_configs: tuple = ()
    protected_vars: frozenset = DEFAULT_PROTECTED_VARS
    validate_paths: bool = True
    validate_keys: bool = True
    max_file_size: int = DEFAULT_MAX_FILE_SIZE
    fail_on_error: bool = False
    verbose: bool = False
    allow_overwrite: bool = False
    global_prefix: str = ""
    key_transform: KeyTransform = KeyTransform.NONE
    sops_binary: str = "sops"
    decrypt_timeout: Optional[float] = None

    @property
    def file_specs(self) -> list[FileSpec]:
        """Effective file list; ``file_configs`` wins when non-empty."""
        if self.file_configs:
            return list(self.file_configs)
        return [FileSpec(path=str(p)) for p in self.sops_files]

    def with_overrides(self, **overrides) -> "PipelineConfig":
        """Return a copy with the non-None overrides applied."""
        changes = {k: v for k, v in overrides.items() if v is not None}
        return replace(self, **changes)


def get_config_dir() -> Path:
    """Get config directory following XDG spec."""
    xdg_config = os.environ.get("XDG_CONFIG_HOME")
    if xdg_config:
        base = Path(xdg_config)
    else:
        base = Path.home() / ".config"
    return base / "sops-decrypt-hook"


def get_default_config_file() -> Path:
    """Get default config file path."""
    # Check environment variable first
    env_file = os.environ.get(CONFIG_ENV_VAR)
    if env_file:
        return Path(env_file).expanduser()

    # Project-local config next to the secrets
    local_file = Path.cwd() / LOCAL_CONFIG_NAME
    if local_file.exists():
        return local_file

    return get_config_dir() / "config.yaml"


def get_age_key_file() -> Path:
    """Get age key file path."""
    env_key = os.environ.get("SOPS_AGE_KEY_FILE")
    if env_key:
        return Path(env_key).expanduser()

    # Default locations
    for path in [
        Path.home() / ".config" / "sops" / "age" / "keys.txt",
        Path.home() / ".sops" / "age" / "keys.txt",
    ]:
        if path.exists():
            return path

    return Path.home() / ".config" / "sops" / "age" / "keys.txt"


# camelCase names from the Nix hook arguments
_ALIASES = {
    "sopsFiles": "sops_files",
    "fileConfigs": "file_configs",
    "files": "file_configs",
    "protectedVars": "protected_vars",
    "validatePaths": "validate_paths",
    "validateKeys": "validate_keys",
    "maxFileSize": "max_file_size",
    "failOnError": "fail_on_error",
    "allowOverwrite": "allow_overwrite",
    "globalPrefix": "global_prefix",
    "keyTransform": "key_transform",
    "sopsBinary": "sops_binary",
    "decryptTimeout": "decrypt_timeout",
}

_BOOL_FIELDS = ("validate_paths", "validate_keys", "fail_on_error", "verbose", "allow_overwrite")
_STR_FIELDS = ("global_prefix", "sops_binary")


def _enum_value(enum_cls, value, where: str):
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"{where}: invalid value {value!r} (expected one of: {allowed})")


def _string_list(value, where: str) -> tuple:
    if isinstance(value, str):
        return (value,)
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ConfigError(f"{where}: expected a list of strings")
    return tuple(value)


def check_filter(pattern: str, where: str = "filter") -> str:
    """Make sure a filter is a valid regular expression."""
    try:
        re.compile(pattern)
    except re.error as e:
        raise ConfigError(f"{where}: invalid regular expression {pattern!r}: {e}")
    return pattern


def check_max_file_size(size, where: str = "max_file_size") -> int:
    if isinstance(size, bool) or not isinstance(size, int) or size < 0:
        raise ConfigError(f"{where}: expected a non-negative integer")
    return size


def check_timeout(timeout, where: str = "decrypt_timeout") -> float:
    if isinstance(timeout, bool) or not isinstance(timeout, (int, float)) or timeout <= 0:
        raise ConfigError(f"{where}: expected a positive number")
    return float(timeout)


def file_spec_from_dict(data, where: str = "file_configs") -> FileSpec:
    """Build a FileSpec from a config mapping (or a bare path string)."""
    if isinstance(data, str):
        return FileSpec(path=data)
    if not isinstance(data, dict):
        raise ConfigError(f"{where}: expected a mapping, got {type(data).__name__}")

    unknown = set(data) - {f.name for f in fields(FileSpec)}
    if unknown:
        raise ConfigError(f"{where}: unknown keys: {', '.join(sorted(unknown))}")
    if not isinstance(data.get("path"), str) or not data["path"]:
        raise ConfigError(f"{where}: 'path' is required")

    spec = FileSpec(path=data["path"])
    if "format" in data:
        spec = replace(spec, format=_enum_value(SecretFormat, data["format"], f"{where}.format"))
    if data.get("prefix") is not None:
        spec = replace(spec, prefix=str(data["prefix"]))
    if data.get("filter") is not None:
        spec = replace(spec, filter=check_filter(str(data["filter"]), f"{where}.filter"))
    if "required" in data:
        if not isinstance(data["required"], bool):
            raise ConfigError(f"{where}.required: expected a boolean")
        spec = replace(spec, required=data["required"])
    return spec


def config_from_dict(data: dict) -> PipelineConfig:
    """
    Build a PipelineConfig from a parsed config document.

    Accepts snake_case keys and the camelCase names used by Nix-side
    hook configurations. Anything unknown or mistyped raises ConfigError.
    """
    if not isinstance(data, dict):
        raise ConfigError("Config must be a mapping at the top level")

    known = {f.name for f in fields(PipelineConfig)}
    values = {}
    for raw_key, value in data.items():
        key = _ALIASES.get(raw_key, raw_key)
        if key not in known:
            raise ConfigError(f"Unknown config key: {raw_key}")
        values[key] = value

    kwargs = {}
    if "sops_files" in values:
        kwargs["sops_files"] = _string_list(values["sops_files"] or [], "sops_files")
    if "file_configs" in values:
        entries = values["file_configs"] or []
        if not isinstance(entries, list):
            raise ConfigError("file_configs: expected a list")
        kwargs["file_configs"] = tuple(
            file_spec_from_dict(entry, f"file_configs[{i}]") for i, entry in enumerate(entries)
        )
    if "protected_vars" in values:
        kwargs["protected_vars"] = frozenset(_string_list(values["protected_vars"] or [], "protected_vars"))
    for name in _BOOL_FIELDS:
        if name in values:
            if not isinstance(values[name], bool):
                raise ConfigError(f"{name}: expected a boolean")
            kwargs[name] = values[name]
    for name in _STR_FIELDS:
        if name in values:
            kwargs[name] = "" if values[name] is None else str(values[name])
    if "max_file_size" in values:
        kwargs["max_file_size"] = check_max_file_size(values["max_file_size"])
    if "key_transform" in values:
        kwargs["key_transform"] = _enum_value(KeyTransform, values["key_transform"], "key_transform")
    if values.get("decrypt_timeout") is not None:
        kwargs["decrypt_timeout"] = check_timeout(values["decrypt_timeout"])

    return PipelineConfig(**kwargs)


def load_config(config_file: Path = None) -> PipelineConfig:
    """
    Load the pipeline configuration from a YAML file.

    With no explicit path the default location is used, and a missing
    default file simply means default settings. An explicitly named file
    must exist.
    """
    explicit = config_file is not None or bool(os.environ.get(CONFIG_ENV_VAR))
    config_file = config_file or get_default_config_file()

    if not config_file.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {config_file}")
        return PipelineConfig()

    try:
        with open(config_file) as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Failed to parse {config_file}: {e}") from e

    return config_from_dict(data or {})

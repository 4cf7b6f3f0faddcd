"""Tests for configuration."""

import pytest

from sops_decrypt_hook import config
from sops_decrypt_hook.config import (
    DEFAULT_PROTECTED_VARS,
    FileSpec,
    KeyTransform,
    PipelineConfig,
    SecretFormat,
    config_from_dict,
    load_config,
)
from sops_decrypt_hook.errors import ConfigError


class TestDefaults:
    """Tests for default settings."""

    def test_pipeline_defaults(self):
        cfg = PipelineConfig()
        assert cfg.validate_paths and cfg.validate_keys
        assert cfg.max_file_size == 10485760
        assert not cfg.fail_on_error
        assert not cfg.verbose
        assert not cfg.allow_overwrite
        assert cfg.global_prefix == ""
        assert cfg.key_transform is KeyTransform.NONE
        assert cfg.protected_vars == DEFAULT_PROTECTED_VARS

    def test_default_protected_vars(self):
        for name in ("PATH", "HOME", "LD_PRELOAD", "BASH_ENV", "PROMPT_COMMAND", "NODE_PATH", "IFS"):
            assert name in DEFAULT_PROTECTED_VARS
        assert len(DEFAULT_PROTECTED_VARS) == 25

    def test_file_spec_defaults(self):
        spec = FileSpec("secrets.env")
        assert spec.format is SecretFormat.DOTENV
        assert spec.prefix == ""
        assert spec.filter is None
        assert spec.required

    def test_simple_form_builds_specs(self):
        cfg = PipelineConfig(sops_files=("a.env", "b.env"))
        assert cfg.file_specs == [FileSpec("a.env"), FileSpec("b.env")]

    def test_with_overrides_ignores_none(self):
        cfg = PipelineConfig().with_overrides(verbose=True, global_prefix=None)
        assert cfg.verbose
        assert cfg.global_prefix == ""


class TestConfigFromDict:
    """Tests for building a config from a parsed document."""

    def test_snake_case(self):
        cfg = config_from_dict({
            "sops_files": ["a.env"],
            "fail_on_error": True,
            "key_transform": "uppercase",
            "max_file_size": 1024,
            "protected_vars": ["ONLY_THIS"],
        })
        assert cfg.sops_files == ("a.env",)
        assert cfg.fail_on_error
        assert cfg.key_transform is KeyTransform.UPPERCASE
        assert cfg.max_file_size == 1024
        assert cfg.protected_vars == frozenset({"ONLY_THIS"})

    def test_camel_case_aliases(self):
        cfg = config_from_dict({
            "sopsFiles": ["a.env"],
            "fileConfigs": [{"path": "b.json", "format": "json", "prefix": "APP_", "required": False}],
            "globalPrefix": "ENV_",
            "allowOverwrite": True,
        })
        assert cfg.file_specs == [FileSpec("b.json", SecretFormat.JSON, "APP_", None, False)]
        assert cfg.global_prefix == "ENV_"
        assert cfg.allow_overwrite

    def test_files_entries_may_be_strings(self):
        cfg = config_from_dict({"files": ["plain.env"]})
        assert cfg.file_specs == [FileSpec("plain.env")]

    @pytest.mark.parametrize("data", [
        {"unknown_key": 1},
        {"fail_on_error": "yes"},
        {"key_transform": "titlecase"},
        {"max_file_size": -1},
        {"files": [{"format": "json"}]},
        {"files": [{"path": "a", "format": "toml"}]},
        {"files": [{"path": "a", "filter": "("}]},
        {"files": [{"path": "a", "colour": "red"}]},
        {"decrypt_timeout": 0},
        ["not", "a", "mapping"],
    ])
    def test_invalid(self, data):
        with pytest.raises(ConfigError):
            config_from_dict(data)


class TestLoadConfig:
    """Tests for finding and reading the config file."""

    def test_xdg_config_respected(self, monkeypatch, tmp_path):
        """XDG_CONFIG_HOME is respected."""
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert config.get_config_dir() == tmp_path / "sops-decrypt-hook"

    def test_env_override_config_file(self, monkeypatch, tmp_path):
        """SOPS_DECRYPT_HOOK_CONFIG overrides the default location."""
        custom_path = tmp_path / "custom.yaml"
        monkeypatch.setenv("SOPS_DECRYPT_HOOK_CONFIG", str(custom_path))
        assert config.get_default_config_file() == custom_path

    def test_local_config_found(self, monkeypatch, tmp_path):
        monkeypatch.delenv("SOPS_DECRYPT_HOOK_CONFIG", raising=False)
        monkeypatch.chdir(tmp_path)
        (tmp_path / ".sops-hook.yaml").write_text("sops_files: [a.env]\n")
        assert config.get_default_config_file() == tmp_path / ".sops-hook.yaml"

    def test_missing_default_means_defaults(self, monkeypatch, tmp_path):
        monkeypatch.delenv("SOPS_DECRYPT_HOOK_CONFIG", raising=False)
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
        monkeypatch.chdir(tmp_path)
        assert load_config() == PipelineConfig()

    def test_missing_explicit_file(self, tmp_path):
        with pytest.raises(ConfigError):
            load_config(tmp_path / "nope.yaml")

    def test_load_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text(
            "files:\n"
            "  - path: secrets/db.json\n"
            "    format: json\n"
            "    prefix: DB_\n"
            "    filter: \"^DB_\"\n"
            "key_transform: uppercase\n"
            "verbose: true\n"
        )
        cfg = load_config(path)
        assert cfg.file_specs == [FileSpec("secrets/db.json", SecretFormat.JSON, "DB_", "^DB_")]
        assert cfg.key_transform is KeyTransform.UPPERCASE
        assert cfg.verbose

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == PipelineConfig()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("files: [unclosed\n")
        with pytest.raises(ConfigError):
            load_config(path)

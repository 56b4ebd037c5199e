"""
Unit tests for configuration.

Tests cover:
- Option parsing (string type, field visibility)
- CompileOptions defaults and environment loading
- GeneratorSettings defaults, environment and YAML loading
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from avrogen.config import (
    CacheStrategy,
    CompileOptions,
    FieldVisibility,
    GeneratorSettings,
    StringType,
)


class TestOptionValues:
    """Tests for option enums."""

    def test_string_type_from_str(self):
        assert StringType.from_str("CharSequence") is StringType.CHAR_SEQUENCE
        assert StringType.from_str("String") is StringType.STRING
        assert StringType.from_str("Utf8") is StringType.UTF8

    def test_invalid_string_type(self):
        with pytest.raises(ValueError, match="Invalid string type"):
            StringType.from_str("Text")

    def test_field_visibility_case_insensitive(self):
        assert FieldVisibility.from_str("PRIVATE") is FieldVisibility.PRIVATE
        assert FieldVisibility.from_str("Public_Deprecated") is FieldVisibility.PUBLIC_DEPRECATED

    def test_invalid_field_visibility(self):
        with pytest.raises(ValueError, match="Invalid field visibility"):
            FieldVisibility.from_str("protected")


class TestCompileOptions:
    """Tests for CompileOptions."""

    def test_defaults(self):
        options = CompileOptions()
        assert options.string_type is StringType.CHAR_SEQUENCE
        assert options.field_visibility is FieldVisibility.PUBLIC_DEPRECATED
        assert options.enable_decimal_logical_type is True
        assert options.use_namespace is False

    def test_frozen(self):
        with pytest.raises(AttributeError):
            CompileOptions().use_namespace = True

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("AVROGEN_STRING_TYPE", "String")
        monkeypatch.setenv("AVROGEN_FIELD_VISIBILITY", "private")
        monkeypatch.setenv("AVROGEN_ENABLE_DECIMAL_LOGICAL_TYPE", "false")
        monkeypatch.setenv("AVROGEN_USE_NAMESPACE", "true")

        options = GeneratorSettings().compile_options()

        assert options.to_dict() == {
            "string_type": "String",
            "field_visibility": "private",
            "enable_decimal_logical_type": False,
            "use_namespace": True,
        }


class TestGeneratorSettings:
    """Tests for GeneratorSettings."""

    def test_defaults(self):
        settings = GeneratorSettings()
        assert settings.source_dirs == [Path("src/main/avro")]
        assert settings.output_dir == Path("target/compiled_avro")
        assert settings.cache_strategy is CacheStrategy.LAST_MODIFIED
        assert settings.max_workers == 1
        assert settings.compile_options() == CompileOptions()

    def test_env_prefix(self, monkeypatch):
        monkeypatch.setenv("AVROGEN_STRING_TYPE", "Utf8")
        monkeypatch.setenv("AVROGEN_USE_NAMESPACE", "true")
        monkeypatch.setenv("AVROGEN_CACHE_STRATEGY", "hash")

        settings = GeneratorSettings()

        assert settings.string_type is StringType.UTF8
        assert settings.use_namespace is True
        assert settings.cache_strategy is CacheStrategy.HASH

    def test_option_spellings(self):
        settings = GeneratorSettings(string_type="String", field_visibility="PUBLIC")
        assert settings.compile_options().string_type is StringType.STRING
        assert settings.compile_options().field_visibility is FieldVisibility.PUBLIC

    def test_invalid_values(self):
        with pytest.raises(ValidationError):
            GeneratorSettings(log_format="xml")
        with pytest.raises(ValidationError):
            GeneratorSettings(max_workers=0)

    def test_from_yaml(self, tmp_path):
        config = tmp_path / "avrogen.yaml"
        config.write_text(
            "source_dirs: [avro, shared/avro]\n"
            "output_dir: build/generated\n"
            "string_type: String\n"
            "use_namespace: true\n"
        )

        settings = GeneratorSettings.from_yaml(config)

        assert settings.source_dirs == [tmp_path / "avro", tmp_path / "shared" / "avro"]
        assert settings.output_dir == tmp_path / "build" / "generated"
        assert settings.string_type is StringType.STRING
        assert settings.use_namespace is True

    def test_from_yaml_overrides(self, tmp_path):
        config = tmp_path / "avrogen.yaml"
        config.write_text("string_type: String\n")

        settings = GeneratorSettings.from_yaml(config, string_type="Utf8", output_dir=None)

        assert settings.string_type is StringType.UTF8
        assert settings.output_dir == Path("target/compiled_avro")

    def test_from_yaml_rejects_non_mapping(self, tmp_path):
        config = tmp_path / "avrogen.yaml"
        config.write_text("- a\n- b\n")

        with pytest.raises(ValueError, match="expected a mapping"):
            GeneratorSettings.from_yaml(config)

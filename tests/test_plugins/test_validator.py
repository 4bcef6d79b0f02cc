"""Tests for flowplug.plugins.validator -- manifests, compatibility, config schema."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from flowplug.exceptions import ConfigValidationError
from flowplug.models import ConfigFieldSchema
from flowplug.plugins.validator import (
    ManifestValidator,
    coerce_config_value,
    merge_config_defaults,
    validate_config_value,
)


@pytest.fixture()
def validator() -> ManifestValidator:
    return ManifestValidator()


def _codes(result) -> dict[str, str]:
    return {err.field: err.code for err in result.errors}


class TestValidate:
    def test_valid_manifest(self, validator, manifest_data) -> None:
        result = validator.validate(
            manifest_data(
                "jira-sync",
                version="1.2.0",
                extension_points=["commands", "hooks"],
                dependencies=[{"name": "jira-auth", "versionRange": "^1.0.0"}],
                config_schema={"project": {"type": "string", "description": "Jira key"}},
            )
        )
        assert result.valid is True
        assert result.errors == []
        manifest = result.manifest
        assert manifest.name == "jira-sync"
        assert manifest.entry_point == "plugin.py"
        assert manifest.dependencies[0].version_range == "^1.0.0"
        assert manifest.config_schema["project"].type == "string"

    def test_scoped_name_accepted(self, validator, manifest_data) -> None:
        assert validator.validate(manifest_data("@team/code-stats")).valid

    def test_non_object(self, validator) -> None:
        result = validator.validate(["not", "an", "object"])
        assert result.valid is False
        assert result.manifest is None
        assert result.errors[0].field == "manifest"
        assert result.errors[0].code == "SCHEMA_ERROR"
        assert result.errors[0].message == "Manifest must be a JSON object"

    def test_missing_fields_reported_together(self, validator, manifest_data) -> None:
        data = manifest_data("jira-sync")
        del data["version"]
        del data["entryPoint"]
        result = validator.validate(data)
        assert result.valid is False
        codes = _codes(result)
        assert codes["version"] == "MISSING_FIELD"
        assert codes["entryPoint"] == "MISSING_FIELD"
        messages = [err.message for err in result.errors]
        assert "Required field 'version' is missing" in messages

    def test_wrong_type(self, validator, manifest_data) -> None:
        data = manifest_data("jira-sync")
        data["name"] = 123
        assert _codes(validator.validate(data)) == {"name": "INVALID_TYPE"}

    def test_extension_points_must_be_a_list(self, validator, manifest_data) -> None:
        result = validator.validate(manifest_data("jira-sync", extensionPoints="commands"))
        assert _codes(result) == {"extensionPoints": "INVALID_TYPE"}

    def test_unknown_extension_point(self, validator, manifest_data) -> None:
        result = validator.validate(manifest_data("jira-sync", extension_points=["commands", "widgets"]))
        assert _codes(result) == {"extensionPoints.1": "INVALID_VALUE"}

    def test_invalid_version(self, validator, manifest_data) -> None:
        result = validator.validate(manifest_data("jira-sync", version="abc"))
        assert _codes(result) == {"version": "INVALID_VALUE"}
        assert result.errors[0].message == "'abc' is not a valid version"

    def test_invalid_host_range(self, validator, manifest_data) -> None:
        result = validator.validate(manifest_data("jira-sync", flowplug_version="^abc"))
        assert _codes(result) == {"flowplugVersion": "INVALID_VALUE"}

    def test_invalid_name(self, validator, manifest_data) -> None:
        assert _codes(validator.validate(manifest_data("has space"))) == {"name": "INVALID_VALUE"}
        assert _codes(validator.validate(manifest_data(""))) == {"name": "INVALID_VALUE"}

    def test_dependency_missing_range(self, validator, manifest_data) -> None:
        result = validator.validate(manifest_data("a", dependencies=[{"name": "b"}]))
        assert _codes(result) == {"dependencies.0.versionRange": "MISSING_FIELD"}

    def test_unknown_config_type(self, validator, manifest_data) -> None:
        result = validator.validate(manifest_data("a", config_schema={"retries": {"type": "integer"}}))
        assert _codes(result) == {"configSchema.retries.type": "INVALID_VALUE"}


class TestValidateFile:
    def test_valid_file(self, validator, make_plugin) -> None:
        plugin_dir = make_plugin("jira-sync")
        result = validator.validate_file(plugin_dir / "flowplug-plugin.json")
        assert result.valid
        assert result.manifest.name == "jira-sync"

    def test_missing_file(self, validator, tmp_path: Path) -> None:
        path = tmp_path / "flowplug-plugin.json"
        result = validator.validate_file(path)
        assert result.valid is False
        assert result.errors[0].code == "SCHEMA_ERROR"
        assert result.errors[0].message == f"Failed to read manifest file: {path}"

    def test_invalid_json(self, validator, tmp_path: Path) -> None:
        path = tmp_path / "flowplug-plugin.json"
        path.write_text("{nope", encoding="utf-8")
        result = validator.validate_file(path)
        assert result.errors[0].message == f"Invalid JSON in manifest file: {path}"

    def test_field_errors_from_file(self, validator, tmp_path: Path) -> None:
        path = tmp_path / "flowplug-plugin.json"
        path.write_text(json.dumps({"name": "x"}), encoding="utf-8")
        result = validator.validate_file(path)
        assert result.valid is False
        assert {err.code for err in result.errors} == {"MISSING_FIELD"}


class TestCompatibility:
    def test_compatible(self, validator) -> None:
        result = validator.check_compatibility(">=0.12.0", "0.12.0")
        assert result.compatible is True
        assert result.required_range == ">=0.12.0"
        assert result.actual_version == "0.12.0"
        assert result.message == "flowplug 0.12.0 is compatible with required range >=0.12.0"

    def test_incompatible(self, validator) -> None:
        result = validator.check_compatibility("^1.0.0", "0.12.0")
        assert result.compatible is False
        assert result.message == "flowplug 0.12.0 does not satisfy required range ^1.0.0"

    def test_pure(self, validator) -> None:
        first = validator.check_compatibility("^0.12.0", "0.12.3")
        second = validator.check_compatibility("^0.12.0", "0.12.3")
        assert first == second


SCHEMA = {
    "project": ConfigFieldSchema(type="string"),
    "retries": ConfigFieldSchema(type="number", default=3),
    "dryRun": ConfigFieldSchema(type="boolean", default=False),
    "labels": ConfigFieldSchema(type="array"),
}


class TestConfigValues:
    def test_matching_types_accepted(self) -> None:
        validate_config_value("project", "CORE", SCHEMA)
        validate_config_value("retries", 5, SCHEMA)
        validate_config_value("retries", 2.5, SCHEMA)
        validate_config_value("dryRun", True, SCHEMA)
        validate_config_value("labels", ["a"], SCHEMA)

    def test_mismatch_raises(self) -> None:
        with pytest.raises(ConfigValidationError) as exc_info:
            validate_config_value("retries", "five", SCHEMA)
        assert str(exc_info.value) == 'Invalid config value for "retries": expected number, got string'

    def test_bool_is_not_a_number(self) -> None:
        with pytest.raises(ConfigValidationError, match="got boolean"):
            validate_config_value("retries", True, SCHEMA)

    def test_undeclared_keys_accepted(self) -> None:
        validate_config_value("anything", object(), SCHEMA)
        validate_config_value("anything", 1, None)

    def test_merge_defaults(self) -> None:
        assert merge_config_defaults({}, SCHEMA) == {"retries": 3, "dryRun": False}
        assert merge_config_defaults({"retries": 9, "extra": "x"}, SCHEMA) == {
            "retries": 9,
            "dryRun": False,
            "extra": "x",
        }
        assert merge_config_defaults({"a": 1}, None) == {"a": 1}

    def test_coerce(self) -> None:
        assert coerce_config_value("42", SCHEMA["project"]) == "42"
        assert coerce_config_value("42", SCHEMA["retries"]) == 42
        assert coerce_config_value("true", SCHEMA["dryRun"]) is True
        assert coerce_config_value('["a", "b"]', SCHEMA["labels"]) == ["a", "b"]
        assert coerce_config_value("hello", None) == "hello"

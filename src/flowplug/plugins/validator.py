"""Manifest validation, host-version compatibility, and config-schema checks.

:class:`ManifestValidator` turns untrusted manifest JSON into a
:class:`~flowplug.models.PluginManifest` or a list of per-field
:class:`~flowplug.models.ManifestError` entries. It never raises: every
problem pydantic finds is reported, not just the first.

The config helpers (:func:`validate_config_value`,
:func:`merge_config_defaults`) enforce a manifest's ``configSchema`` and
are shared by the plugin manager and the startup bootstrap.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional, Union

from pydantic import ValidationError

from flowplug.exceptions import ConfigValidationError
from flowplug.models import (
    CompatibilityResult,
    ConfigFieldSchema,
    ManifestError,
    ManifestValidationResult,
    PluginManifest,
)
from flowplug.versioning import satisfies

MANIFEST_FILENAME = "flowplug-plugin.json"

_INVALID_VALUE_TYPES = {
    "literal_error",
    "enum",
    "value_error",
    "string_too_short",
    "string_pattern_mismatch",
    "too_short",
}


class ManifestValidator:
    """Validate plugin manifests and check them against the host version."""

    def validate(self, data: Any) -> ManifestValidationResult:
        """Validate already-parsed manifest data.

        Args:
            data: The decoded JSON value of a ``flowplug-plugin.json``.

        Returns:
            A :class:`ManifestValidationResult`; ``manifest`` is set only
            when ``valid`` is true.
        """
        if not isinstance(data, dict):
            return _failure(
                [ManifestError(field="manifest", message="Manifest must be a JSON object", code="SCHEMA_ERROR")]
            )
        try:
            manifest = PluginManifest.model_validate(data)
        except ValidationError as exc:
            return _failure([_map_error(err) for err in exc.errors()])
        return ManifestValidationResult(valid=True, manifest=manifest, errors=[])

    def validate_file(self, path: Union[str, Path]) -> ManifestValidationResult:
        """Read a manifest file from disk and validate it."""
        manifest_path = Path(path)
        try:
            text = manifest_path.read_text(encoding="utf-8")
        except OSError:
            return _failure(
                [
                    ManifestError(
                        field="manifest",
                        message=f"Failed to read manifest file: {manifest_path}",
                        code="SCHEMA_ERROR",
                    )
                ]
            )
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            return _failure(
                [
                    ManifestError(
                        field="manifest",
                        message=f"Invalid JSON in manifest file: {manifest_path}",
                        code="SCHEMA_ERROR",
                    )
                ]
            )
        return self.validate(data)

    def check_compatibility(self, required_range: str, host_version: str) -> CompatibilityResult:
        """Check whether *host_version* satisfies a plugin's *required_range*.

        This is a pure function of its arguments.
        """
        compatible = satisfies(host_version, required_range)
        if compatible:
            message = f"flowplug {host_version} is compatible with required range {required_range}"
        else:
            message = f"flowplug {host_version} does not satisfy required range {required_range}"
        return CompatibilityResult(
            compatible=compatible,
            required_range=required_range,
            actual_version=host_version,
            message=message,
        )


def _failure(errors: list[ManifestError]) -> ManifestValidationResult:
    return ManifestValidationResult(valid=False, manifest=None, errors=errors)


def _map_error(err: Any) -> ManifestError:
    loc = err.get("loc", ())
    field = ".".join(str(part) for part in loc) or "manifest"
    err_type = err.get("type", "")
    if err_type == "missing":
        code = "MISSING_FIELD"
        message = f"Required field '{field}' is missing"
    elif err_type in _INVALID_VALUE_TYPES:
        code = "INVALID_VALUE"
        message = _clean_message(err.get("msg", "Invalid value"))
    elif err_type.endswith("_type") or err_type.endswith("_parsing"):
        code = "INVALID_TYPE"
        message = _clean_message(err.get("msg", "Invalid type"))
    else:
        code = "SCHEMA_ERROR"
        message = _clean_message(err.get("msg", "Schema violation"))
    return ManifestError(field=field, message=message, code=code)


def _clean_message(msg: str) -> str:
    # pydantic prefixes messages raised from validators.
    prefix = "Value error, "
    return msg[len(prefix):] if msg.startswith(prefix) else msg


# --- Config schema helpers ---


def _type_name(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, dict):
        return "object"
    return type(value).__name__


def validate_config_value(key: str, value: Any, schema: Optional[dict[str, ConfigFieldSchema]]) -> None:
    """Check *value* against the declared type of *key*.

    Keys not declared in *schema* (or a missing schema) are accepted.

    Raises:
        ConfigValidationError: If the value has the wrong type.
    """
    if not schema or key not in schema:
        return
    expected = schema[key].type
    actual = _type_name(value)
    if actual != expected:
        raise ConfigValidationError(
            f'Invalid config value for "{key}": expected {expected}, got {actual}'
        )


def merge_config_defaults(
    stored: dict[str, Any], schema: Optional[dict[str, ConfigFieldSchema]]
) -> dict[str, Any]:
    """Overlay stored values on the schema's defaults.

    Stored values always win; declared keys without a stored value fall back
    to their ``default`` when the schema spells one out.
    """
    merged: dict[str, Any] = {}
    for key, field_schema in (schema or {}).items():
        if field_schema.has_default:
            merged[key] = field_schema.default
    merged.update(stored)
    return merged


def coerce_config_value(raw: str, field_schema: Optional[ConfigFieldSchema]) -> Any:
    """Convert a command-line string into the type a schema field expects.

    Used by ``flowplug plugin config set``. Without a schema the value is
    decoded as JSON when possible and kept as a string otherwise.
    """
    expected = field_schema.type if field_schema is not None else None
    if expected == "string":
        return raw
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw

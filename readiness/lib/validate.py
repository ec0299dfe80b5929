"""
Schema validation for language-model payloads.

Enforces JSON Schema validation at the provider boundary.
Fails hard with clear errors when data doesn't match schema.
"""

import json
from pathlib import Path
from typing import Any

import jsonschema


class SchemaValidationError(Exception):
    """Schema validation failed."""

    def __init__(self, schema_name: str, message: str, path: str = None):
        self.schema_name = schema_name
        self.path = path
        super().__init__(f"[{schema_name}] {message}" + (f" at {path}" if path else ""))


# Cache loaded schemas
_schema_cache: dict[str, dict] = {}

SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"


def _load_schema(schema_name: str) -> dict:
    """Load schema by name, with caching."""
    if schema_name not in _schema_cache:
        schema_path = SCHEMAS_DIR / f"{schema_name}.schema.json"
        if not schema_path.exists():
            raise SchemaValidationError(schema_name, f"Schema file not found: {schema_path}")
        _schema_cache[schema_name] = json.loads(schema_path.read_text())
    return _schema_cache[schema_name]


def validate(data: Any, schema_name: str) -> None:
    """
    Validate data against named schema.

    Args:
        data: Parsed JSON to validate
        schema_name: Schema name (e.g., "task_analysis", "task_suggestions")

    Raises:
        SchemaValidationError: If validation fails
    """
    schema = _load_schema(schema_name)

    try:
        jsonschema.validate(instance=data, schema=schema)
    except jsonschema.ValidationError as e:
        path = ".".join(str(p) for p in e.absolute_path) if e.absolute_path else "(root)"
        raise SchemaValidationError(schema_name, e.message, path) from None


def parse_and_validate(text: str, schema_name: str) -> Any:
    """
    Parse a JSON document and validate it against schema.

    Raises:
        SchemaValidationError: If text isn't JSON or doesn't match schema
    """
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise SchemaValidationError(schema_name, f"Invalid JSON: {e}") from None

    validate(data, schema_name)
    return data

"""
JSON Schema checks for ledger payloads and projects.yaml.

Anything read back from the store is untrusted: decoders call validate()
before touching fields, and the recorder calls validate_before_write() so a
bad payload never reaches a commit.
"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Any, Optional

import jsonschema
from jsonschema.exceptions import best_match
from jsonschema.validators import validator_for

SCHEMAS_DIR = Path(__file__).resolve().parent.parent / "schemas"


class ValidationError(Exception):
    """A payload does not match its schema."""

    def __init__(self, schema_name: str, message: str, path: Optional[str] = None):
        self.schema_name = schema_name
        self.message = message
        self.path = path
        location = f" at {path}" if path else ""
        super().__init__(f"[{schema_name}] {message}{location}")


@lru_cache(maxsize=None)
def _validator(schema_name: str):
    """Compiled validator for a bundled schema, built once per name."""
    schema_file = SCHEMAS_DIR / f"{schema_name}.schema.json"
    if not schema_file.is_file():
        raise ValidationError(schema_name, f"Schema file not found: {schema_file}")
    schema = json.loads(schema_file.read_text())
    cls = validator_for(schema)
    return cls(schema)


def _field_path(error: jsonschema.ValidationError) -> str:
    return ".".join(str(p) for p in error.absolute_path) or "(root)"


def validate(data: Any, schema_name: str) -> None:
    """Check data against a bundled schema.

    When several rules fail, the most relevant one is reported.

    Raises:
        ValidationError: on the first (best) mismatch
    """
    error = best_match(_validator(schema_name).iter_errors(data))
    if error is not None:
        raise ValidationError(schema_name, error.message, _field_path(error))


def validate_before_write(data: dict, schema_name: str, target: str) -> None:
    """validate(), with the write target named in the error."""
    try:
        validate(data, schema_name)
    except ValidationError as e:
        raise ValidationError(
            schema_name, f"Refusing to write invalid data to {target}: {e.message}", e.path
        ) from None

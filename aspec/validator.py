"""
JSON Schema validation of extracted payloads.
"""

import json
import logging
from typing import Any, Iterable, Union

from jsonschema.exceptions import SchemaError
from jsonschema.validators import validator_for

from .errors import ConfigurationError
from .models import ROOT_PATH, ValidationFinding, ValidationOutcome
from .specs import Spec

logger = logging.getLogger(__name__)


def json_pointer(path: Iterable[Any]) -> str:
    """Render a jsonschema error path as a JSON Pointer, or 'root' when empty."""
    parts = [str(p).replace("~", "~0").replace("/", "~1") for p in path]
    if not parts:
        return ROOT_PATH
    return "/" + "/".join(parts)


class SchemaValidator:
    """
    Checks JSON payloads against a spec's compiled schema.

    The validator class is picked from the schema's $schema keyword, falling
    back to the latest draft jsonschema supports.
    """

    def __init__(self, spec: Spec):
        self.spec = spec
        validator_cls = validator_for(spec.schema)
        try:
            validator_cls.check_schema(spec.schema)
        except SchemaError as e:
            raise ConfigurationError(f"failed to compile JSON schema {spec.slug}: {e.message}")
        self._validator = validator_cls(spec.schema)

    def validate(self, payload: Union[str, bytes]) -> ValidationOutcome:
        """
        Validate a payload.

        Args:
            payload: JSON text as returned by the provider

        Returns:
            ValidationOutcome with one finding per violation, ordered by path
        """
        try:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8")
            data = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError, TypeError) as e:
            return ValidationOutcome(
                valid=False,
                findings=[ValidationFinding(path=ROOT_PATH, message=f"Invalid JSON: {e}")],
            )

        findings = [
            ValidationFinding(path=json_pointer(error.absolute_path), message=error.message)
            for error in self._validator.iter_errors(data)
        ]
        if not findings:
            return ValidationOutcome(valid=True)

        findings.sort(key=lambda f: (f.path != ROOT_PATH, f.path, f.message))
        logger.debug(f"Payload failed validation with {len(findings)} findings")
        return ValidationOutcome(valid=False, findings=findings)

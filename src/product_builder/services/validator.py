"""Validation of the synthesized docker-compose document by JSON Schema."""

import jsonschema

COMPOSE_SCHEMA = {
    "type": "object",
    "required": ["version", "services"],
    "properties": {
        "version": {"type": "string"},
        "services": {
            "type": "object",
            "additionalProperties": {
                "type": "object",
                "properties": {
                    "image": {"type": "string"},
                    "ports": {"type": "array", "items": {"type": ["string", "integer"]}},
                    "links": {"type": "array", "items": {"type": "string"}},
                    "environment": {"type": ["object", "array"]},
                    "volumes": {"type": "array"},
                    "depends_on": {"type": ["object", "array"]},
                },
            },
        },
    },
}


def validate_compose(doc: dict) -> list[str]:
    """Return the schema violations of doc (empty if valid)."""
    validator = jsonschema.Draft7Validator(COMPOSE_SCHEMA)
    errors = sorted(validator.iter_errors(doc), key=lambda e: list(e.path))
    return [_format_error(e) for e in errors]


def _format_error(error: jsonschema.ValidationError) -> str:
    path = " -> ".join(str(p) for p in error.absolute_path) if error.absolute_path else "root"
    return f"{path}: {error.message}"

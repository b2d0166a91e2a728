"""Plugin parameter transformations.

A plugin definition describes its full configurable surface as an ordered
list of field descriptors (the UI form schema)::

    [
        {"field": "receivers", "name": "Receivers", "type": "input",
         "value": null, "validate": [{"required": true}]},
        {"field": "smtpPort", "name": "SMTP Port", "type": "input",
         "value": "25"},
    ]

An instance only stores the compact ``{field: value}`` map of the values it
was configured with. ``dehydrate`` turns a submitted form into that map and
``hydrate`` turns it back into a full, editable form. Both are pure.
"""

from __future__ import annotations

import copy
import json
import logging
from collections.abc import Mapping, Sequence
from typing import Any

from herald.lib.exceptions import SchemaParseError

logger = logging.getLogger(__name__)

FIELD_KEY = "field"
VALUE_KEY = "value"

FieldDescriptor = dict[str, Any]
StoredParams = dict[str, str]


def _loads(raw: str, what: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SchemaParseError(f"Invalid {what} JSON: {exc.msg}") from exc


def parse_schema(schema: str | Sequence[Mapping[str, Any]] | None) -> list[FieldDescriptor]:
    """Parse a plugin schema blob into a list of field descriptors.

    Descriptors without a ``field`` name are skipped.

    Raises:
        SchemaParseError: If the blob is not valid JSON or not a list.
    """
    if schema is None or schema == "":
        return []
    if isinstance(schema, str):
        schema = _loads(schema, "plugin schema")
    if not isinstance(schema, list):
        raise SchemaParseError("Plugin schema must be a JSON list of field descriptors")

    return [
        dict(descriptor)
        for descriptor in schema
        if isinstance(descriptor, Mapping) and descriptor.get(FIELD_KEY)
    ]


def submitted_values(submission: Any) -> dict[str, Any]:
    """Normalize a parameter submission to a ``{field: value}`` mapping.

    Accepts a mapping, the full UI form (a list of descriptors carrying
    ``field`` and ``value``), or either of those as a JSON string.
    """
    if submission is None or submission == "":
        return {}
    if isinstance(submission, str):
        submission = _loads(submission, "plugin params")

    if isinstance(submission, Mapping):
        return dict(submission)
    if isinstance(submission, list):
        return {
            item[FIELD_KEY]: item.get(VALUE_KEY)
            for item in submission
            if isinstance(item, Mapping) and item.get(FIELD_KEY)
        }
    raise SchemaParseError("Plugin params must be a JSON object or a list of form fields")


def _stored_value(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, dict)):
        return json.dumps(value)
    return str(value)


def dehydrate(submission: Any, schema: Sequence[FieldDescriptor]) -> StoredParams:
    """Reduce a submitted parameter set to the compact stored map.

    Only fields the schema declares are kept, in schema order. Fields the
    submission leaves out (or sets to ``None``) are omitted, not defaulted.
    """
    values = submitted_values(submission)
    stored: StoredParams = {}

    for descriptor in schema:
        name = descriptor[FIELD_KEY]
        value = values.get(name)
        if value is not None:
            stored[name] = _stored_value(value)

    dropped = set(values) - {d[FIELD_KEY] for d in schema}
    if dropped:
        logger.debug("Dropping params not declared by plugin schema: %s", sorted(dropped))

    return stored


def hydrate(stored: Mapping[str, Any] | None, schema: Sequence[FieldDescriptor]) -> list[FieldDescriptor]:
    """Expand stored values back into the full schema-ordered form.

    Every descriptor is copied with its metadata intact; ``value`` is the
    stored value when there is one, otherwise the descriptor's default.
    """
    stored = stored or {}
    params = []
    for descriptor in schema:
        item = copy.deepcopy(descriptor)
        name = item[FIELD_KEY]
        if name in stored:
            item[VALUE_KEY] = stored[name]
        else:
            item.setdefault(VALUE_KEY, None)
        params.append(item)
    return params


def load_stored_params(raw: str | None) -> StoredParams:
    """Decode an instance's persisted params column."""
    if not raw:
        return {}
    data = _loads(raw, "stored params")
    if not isinstance(data, dict):
        raise SchemaParseError("Stored params must be a JSON object")
    return data


def params_map_json(submission: Any, schema: Sequence[FieldDescriptor]) -> str:
    """Dehydrate a submission and serialize it for storage."""
    return json.dumps(dehydrate(submission, schema))


def ui_params_json(stored_json: str | None, schema_json: str | None) -> str:
    """Hydrate a persisted params column against a schema blob, as JSON."""
    return json.dumps(hydrate(load_stored_params(stored_json), parse_schema(schema_json)))

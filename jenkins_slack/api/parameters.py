"""Validation of build parameters against a job's declared parameters.

WHY: Modal submissions arrive as a loose name → string map. Sending
unknown names or an out-of-range choice to Jenkins either fails with an
unhelpful 400 or silently builds with defaults. Validating up front gives
the user a precise message and keeps the request ordered and complete.

HOW: parameter_schema() turns the job's ParameterDefinitions into a JSON
Schema (booleans and choices become enums). validate_parameters() fills
defaults for omitted parameters, normalizes boolean spellings, and runs
jsonschema over the result.

RULES:
- Unknown parameter names are rejected
- Choice parameters must use one of the declared choices
- Boolean parameters accept true/false (case-insensitive, also on/off)
- Omitted parameters take their declared default ("" when none)
- Result is an ordered dict in declaration order
"""

from __future__ import annotations

from collections import OrderedDict
from typing import Any, Dict, List, Mapping, Optional

import jsonschema

from jenkins_slack.errors import ParameterValidationError
from jenkins_slack.api.models import ParameterDefinition

BOOLEAN_TYPE = "BooleanParameterDefinition"
CHOICE_TYPE = "ChoiceParameterDefinition"

_TRUE_WORDS = {"true", "on", "yes", "1"}
_FALSE_WORDS = {"false", "off", "no", "0", ""}


def parameter_schema(definitions: List[ParameterDefinition]) -> Dict[str, Any]:
    """Build a JSON Schema describing valid submissions for the job."""
    properties: Dict[str, Any] = {}
    for definition in definitions:
        if definition.type == BOOLEAN_TYPE:
            prop: Dict[str, Any] = {"type": "string", "enum": ["true", "false"]}
        elif definition.type == CHOICE_TYPE and definition.choices:
            prop = {"type": "string", "enum": list(definition.choices)}
        else:
            prop = {"type": "string"}
        if definition.description:
            prop["description"] = definition.description
        properties[definition.name] = prop

    return {
        "type": "object",
        "properties": properties,
        "required": [d.name for d in definitions],
        "additionalProperties": False,
    }


def validate_parameters(
    definitions: List[ParameterDefinition],
    submitted: Optional[Mapping[str, Any]],
) -> "OrderedDict[str, str]":
    """Return submitted parameters completed and checked against definitions.

    RULES:
    - Raises ParameterValidationError on any schema violation
    - None values are treated as omitted
    """
    submitted = dict(submitted or {})
    known = {d.name for d in definitions}
    unknown = sorted(set(submitted) - known)
    if unknown:
        raise ParameterValidationError(
            "Unknown parameter(s): {}".format(", ".join(unknown))
        )

    result: "OrderedDict[str, str]" = OrderedDict()
    for definition in definitions:
        value = submitted.get(definition.name)
        if value is None:
            value = definition.default if definition.default is not None else ""
        value = str(value)
        if definition.type == BOOLEAN_TYPE:
            value = _normalize_boolean(value)
        result[definition.name] = value

    try:
        jsonschema.validate(instance=dict(result), schema=parameter_schema(definitions))
    except jsonschema.ValidationError as exc:
        field_name = ".".join(str(p) for p in exc.absolute_path) or "parameters"
        raise ParameterValidationError(
            "Invalid value for '{}': {}".format(field_name, exc.message)
        )

    return result


def _normalize_boolean(value: str) -> str:
    lowered = value.strip().lower()
    if lowered in _TRUE_WORDS:
        return "true"
    if lowered in _FALSE_WORDS:
        return "false"
    return value

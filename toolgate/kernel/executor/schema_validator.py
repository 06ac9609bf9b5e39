"""SchemaValidator: JSON Schema validation for tool request arguments.

Request schemas are stored as text in the configuration store and compiled
at call time. Evaluation fills declared defaults, coerces scalar values to
the declared type and reports every failing constraint, not just the first.
Schema problems are returned as results, never raised.
"""

import copy
import json
import math
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

import jsonschema
from jsonschema import Draft7Validator, FormatChecker
from jsonschema_specifications import REGISTRY as SPECIFICATIONS
from pydantic import BaseModel, Field
from referencing._core import Resolver
from referencing.exceptions import Unresolvable
from referencing.jsonschema import DRAFT7

PARAMETER_LOCATIONS: tuple[str, ...] = ("query", "path", "header", "body")
DEFAULT_LOCATION = "body"

# Keys accepted for each location in a request mapping
_REQUEST_KEYS: dict[str, tuple[str, ...]] = {
    "query": ("query",),
    "path": ("path", "params"),
    "header": ("header", "headers"),
    "body": ("body",),
}

DOT_NUMBER_PATTERN = re.compile(r"[0-9]{1,7}")
_NUMERIC_STRING = re.compile(r"-?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?")

_MISSING = object()

# Keywords whose values are data, not subschemas
_DATA_KEYWORDS = frozenset({"enum", "const", "default", "examples"})

# Largest magnitude rendered in positional notation when a number becomes text
POSITIONAL_LIMIT = 1e21


class ValidationErrorCode(str, Enum):
    """Standardized validation error codes."""

    SCHEMA_INVALID = "SCHEMA_INVALID"  # Data violates the schema
    SCHEMA_MALFORMED = "SCHEMA_MALFORMED"  # Schema cannot be parsed or compiled


class SchemaValidationError(Exception):
    """Raised by SchemaValidator.assert_valid when validation fails.

    Attributes:
        code: Standardized error code
        message: Human-readable error description
        path: JSON pointer to the first invalid field (if applicable)
        schema_path: Pointer within the schema that was violated
        errors: Every issue found
    """

    def __init__(
        self,
        code: ValidationErrorCode,
        message: str,
        path: str = "",
        schema_path: str = "",
        errors: list["ValidationIssue"] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.message = message
        self.path = path
        self.schema_path = schema_path
        self.errors = errors or []


class ValidationIssue(BaseModel):
    """One failing constraint."""

    instance_path: str = ""  # JSON pointer into the data
    schema_path: str = ""  # JSON pointer into the schema, rooted at "#"
    keyword: str
    message: str
    params: dict[str, Any] = Field(default_factory=dict)
    value: Any = None


class ValidationResult(BaseModel):
    """Outcome of validating data against a schema.

    data holds the coerced and defaulted copy of the input, or None when the
    schema itself could not be loaded.
    """

    valid: bool
    errors: list[ValidationIssue] = Field(default_factory=list)
    data: Any = None


class LocatedValidationResult(ValidationResult):
    """Validation outcome for parameters gathered from several request parts."""

    organized_data: dict[str, Any] | None = None
    location_map: dict[str, list[str]] = Field(default_factory=dict)


class SchemaCheck(BaseModel):
    """Outcome of checking a schema document on its own."""

    valid: bool
    error: str | None = None


@dataclass(frozen=True)
class CompiledSchema:
    """A schema that parsed, passed the Draft 7 meta-schema and has no dangling $ref."""

    schema: dict[str, Any] | bool
    validator: Draft7Validator
    resolver: Resolver


@dataclass(frozen=True)
class SchemaError:
    """A schema that could not be parsed ("parse") or compiled ("compile")."""

    keyword: str
    message: str

    def as_issue(self) -> ValidationIssue:
        return ValidationIssue(keyword=self.keyword, message=self.message)


class _OrganizationError(ValueError):
    pass


def build_format_checker() -> FormatChecker:
    """Return a format checker with the standard formats plus domain formats."""
    checker = FormatChecker()

    @checker.checks("dot-number")
    def is_dot_number(instance: object) -> bool:
        # USDOT carrier numbers: 1 to 7 digits
        if not isinstance(instance, str):
            return True
        return DOT_NUMBER_PATTERN.fullmatch(instance) is not None

    @checker.checks("http-status")
    def is_http_status(instance: object) -> bool:
        if isinstance(instance, bool) or not isinstance(instance, (int, float)):
            return True
        return 100 <= instance <= 599

    return checker


def _matches_type(value: Any, type_name: str) -> bool:
    if type_name == "null":
        return value is None
    if type_name == "boolean":
        return isinstance(value, bool)
    if type_name == "string":
        return isinstance(value, str)
    if type_name == "object":
        return isinstance(value, dict)
    if type_name == "array":
        return isinstance(value, list)
    if isinstance(value, bool):
        return False
    if type_name == "integer":
        return isinstance(value, int) or (isinstance(value, float) and value.is_integer())
    if type_name == "number":
        return isinstance(value, (int, float))
    return False


def _to_number(value: Any, integer: bool) -> Any:
    if isinstance(value, bool):
        return int(value)
    if value is None:
        return 0
    if not isinstance(value, str):
        return _MISSING

    text = value.strip()
    if not _NUMERIC_STRING.fullmatch(text):
        return _MISSING
    number = float(text)
    if not math.isfinite(number):
        return _MISSING
    if number.is_integer():
        return int(number)
    return _MISSING if integer else number


def _to_string(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer() and abs(value) < POSITIONAL_LIMIT:
        return str(int(value))
    if isinstance(value, (int, float)):
        return str(value)
    return _MISSING


def _to_boolean(value: Any) -> Any:
    if value == "true":
        return True
    if value == "false":
        return False
    if value is None:
        return False
    if isinstance(value, (int, float)) and value in (0, 1):
        return bool(value)
    return _MISSING


def _to_null(value: Any) -> Any:
    if value == "" or value is False:
        return None
    if isinstance(value, (int, float)) and value == 0:
        return None
    return _MISSING


_COERCERS = {
    "number": lambda value: _to_number(value, integer=False),
    "integer": lambda value: _to_number(value, integer=True),
    "string": _to_string,
    "boolean": _to_boolean,
    "null": _to_null,
}


def coerce_value(value: Any, declared_type: Any) -> Any:
    """Coerce a scalar to the declared JSON type when it does not already match.

    With a list of types, the first type the value can be coerced to wins.
    Objects and arrays are never produced by coercion.
    """
    if isinstance(declared_type, str):
        types = [declared_type]
    elif isinstance(declared_type, list):
        types = [t for t in declared_type if isinstance(t, str)]
    else:
        return value

    if any(_matches_type(value, t) for t in types):
        return value

    for type_name in types:
        coercer = _COERCERS.get(type_name)
        if coercer is None:
            continue
        coerced = coercer(value)
        if coerced is not _MISSING:
            return coerced

    return value


def _dereference(schema: Any, resolver: Resolver | None) -> tuple[Any, Resolver | None]:
    """Follow a chain of $ref until a schema without one is reached.

    In Draft 7 keywords beside $ref are ignored, so the target replaces the
    referring schema entirely. A cycle or a dangling reference stops the walk.
    """
    seen: set[int] = set()
    while isinstance(schema, dict) and isinstance(schema.get("$ref"), str) and resolver is not None:
        if id(schema) in seen:
            break
        seen.add(id(schema))
        try:
            resolved = resolver.lookup(schema["$ref"])
        except Unresolvable:
            break
        schema, resolver = resolved.contents, resolved.resolver
    return schema, resolver


def apply_defaults_and_coercion(
    schema: Any,
    instance: Any,
    resolver: Resolver | None = None,
    _active: set[tuple[int, int]] | None = None,
) -> None:
    """Fill defaults and coerce values in place.

    Follows properties, items (single schema form), allOf and, when a
    resolver is given, $ref.
    """
    schema, resolver = _dereference(schema, resolver)
    if not isinstance(schema, dict):
        return

    active = _active if _active is not None else set()
    key = (id(schema), id(instance))
    if key in active:
        return
    active.add(key)

    try:
        for subschema in schema.get("allOf") or []:
            apply_defaults_and_coercion(subschema, instance, resolver, active)

        if isinstance(instance, dict):
            properties = schema.get("properties")
            if isinstance(properties, dict):
                for name, subschema in properties.items():
                    target, target_resolver = _dereference(subschema, resolver)
                    if not isinstance(target, dict):
                        continue
                    if name not in instance:
                        if "default" not in target:
                            continue
                        instance[name] = copy.deepcopy(target["default"])
                    instance[name] = coerce_value(instance[name], target.get("type"))
                    apply_defaults_and_coercion(target, instance[name], target_resolver, active)

        elif isinstance(instance, list):
            items, items_resolver = _dereference(schema.get("items"), resolver)
            if isinstance(items, dict):
                for index, item in enumerate(instance):
                    instance[index] = coerce_value(item, items.get("type"))
                    apply_defaults_and_coercion(items, instance[index], items_resolver, active)
    finally:
        active.discard(key)


def _check_references(schema: Any, resolver: Resolver) -> None:
    """Resolve every $ref in a schema document.

    Raises:
        Unresolvable: If any reference cannot be resolved
    """
    if isinstance(schema, list):
        for item in schema:
            _check_references(item, resolver)
        return
    if not isinstance(schema, dict):
        return

    if isinstance(schema.get("$id"), str):
        resolver = resolver.in_subresource(DRAFT7.create_resource(schema))
    if isinstance(schema.get("$ref"), str):
        resolver.lookup(schema["$ref"])

    for keyword, value in schema.items():
        if keyword not in _DATA_KEYWORDS:
            _check_references(value, resolver)


def _pointer(parts: Iterable[Any], root: str = "") -> str:
    escaped = [str(p).replace("~", "~0").replace("/", "~1") for p in parts]
    if not escaped:
        return root
    return root + "/" + "/".join(escaped)


def _to_issues(errors: list[jsonschema.ValidationError]) -> list[ValidationIssue]:
    # "required" yields one error per missing property, in declaration order
    pending_required: dict[tuple[tuple[Any, ...], tuple[Any, ...]], list[str]] = {}
    issues: list[ValidationIssue] = []

    for error in errors:
        keyword = str(error.validator)
        params: dict[str, Any] = {}
        value: Any = error.instance

        if keyword == "required" and isinstance(error.instance, dict):
            key = (tuple(error.absolute_path), tuple(error.absolute_schema_path))
            missing = pending_required.setdefault(
                key,
                [name for name in error.validator_value if name not in error.instance],
            )
            if missing:
                params["missing_property"] = missing.pop(0)
            value = None
        elif not isinstance(error.validator_value, dict):
            params[keyword] = error.validator_value

        issues.append(
            ValidationIssue(
                instance_path=_pointer(error.absolute_path),
                schema_path=_pointer(error.absolute_schema_path, root="#"),
                keyword=keyword,
                message=error.message,
                params=params,
                value=value,
            )
        )

    return issues


def format_errors(issues: list[ValidationIssue]) -> list[dict[str, Any]]:
    """Flatten issues into API-friendly entries.

    Returns:
        List of {field, message, value, constraint} dicts
    """
    formatted = []
    for issue in issues:
        field = issue.instance_path[1:] if issue.instance_path.startswith("/") else issue.instance_path
        formatted.append(
            {
                "field": field or issue.params.get("missing_property") or "root",
                "message": issue.message,
                "value": issue.value,
                "constraint": issue.keyword,
            }
        )
    return formatted


class SchemaValidator:
    """Validates data against JSON Schema (Draft 7).

    Compiled schemas are cached per instance, keyed by their text (or their
    canonical JSON form for already-parsed schemas).
    """

    def __init__(self) -> None:
        """Initialize validator and register custom formats."""
        self._format_checker = build_format_checker()
        self._compiled: dict[str, CompiledSchema | SchemaError] = {}

    def load(self, schema: str | Mapping[str, Any] | bool) -> CompiledSchema | SchemaError:
        """Parse and compile a schema, using the cache when possible.

        Args:
            schema: JSON text or an already-parsed schema

        Returns:
            CompiledSchema, or SchemaError with keyword "parse" or "compile"
        """
        if isinstance(schema, str):
            cache_key = schema
        else:
            try:
                cache_key = json.dumps(schema, sort_keys=True)
            except (TypeError, ValueError) as e:
                return SchemaError("compile", f"Schema is not JSON-serializable: {e}")

        cached = self._compiled.get(cache_key)
        if cached is not None:
            return cached

        parsed = self._parse(schema)
        loaded = parsed if isinstance(parsed, SchemaError) else self._compile(parsed)
        self._compiled[cache_key] = loaded
        return loaded

    def _parse(self, schema: str | Mapping[str, Any] | bool) -> Any:
        if isinstance(schema, str):
            try:
                return json.loads(schema)
            except ValueError as e:
                return SchemaError("parse", f"Error parsing JSON Schema: {e}")
        if isinstance(schema, Mapping):
            return copy.deepcopy(dict(schema))
        return schema

    def _compile(self, parsed: Any) -> CompiledSchema | SchemaError:
        if not isinstance(parsed, (dict, bool)):
            return SchemaError(
                "compile",
                f"Schema must be an object or a boolean, got {type(parsed).__name__}",
            )
        try:
            Draft7Validator.check_schema(parsed)
        except jsonschema.exceptions.SchemaError as e:
            return SchemaError("compile", f"Schema is malformed: {e.message}")

        # References are resolved up front, whether or not the data reaches them.
        # Remote references are not retrieved.
        resolver = SPECIFICATIONS.resolver_with_root(DRAFT7.create_resource(parsed))
        try:
            _check_references(parsed, resolver)
        except Unresolvable as e:
            return SchemaError("compile", f"Schema could not be compiled: unresolvable $ref '{e.ref}'")

        return CompiledSchema(
            schema=parsed,
            validator=Draft7Validator(parsed, registry=SPECIFICATIONS, format_checker=self._format_checker),
            resolver=resolver,
        )

    def validate(self, schema: str | Mapping[str, Any] | bool, data: Any) -> ValidationResult:
        """Validate data against a schema.

        The input data is not modified; the result carries a coerced copy.

        Args:
            schema: JSON text or an already-parsed schema
            data: Data to validate (typically dict)

        Returns:
            ValidationResult listing every failing constraint
        """
        loaded = self.load(schema)
        if isinstance(loaded, SchemaError):
            return ValidationResult(valid=False, errors=[loaded.as_issue()], data=None)
        return self._evaluate(loaded, data)

    def _evaluate(self, compiled: CompiledSchema, data: Any) -> ValidationResult:
        working = copy.deepcopy(data)
        apply_defaults_and_coercion(compiled.schema, working, compiled.resolver)

        try:
            errors = list(compiled.validator.iter_errors(working))
        except Unresolvable as e:
            issue = SchemaError("compile", f"Schema could not be compiled: {e}").as_issue()
            return ValidationResult(valid=False, errors=[issue], data=None)

        issues = _to_issues(errors)
        return ValidationResult(valid=not issues, errors=issues, data=working)

    def assert_valid(self, schema: str | Mapping[str, Any] | bool, data: Any) -> Any:
        """Validate and raise on failure.

        Returns:
            The coerced and defaulted data

        Raises:
            SchemaValidationError: SCHEMA_MALFORMED if the schema cannot be
                loaded, SCHEMA_INVALID if the data violates it
        """
        result = self.validate(schema, data)
        if result.valid:
            return result.data

        first = result.errors[0]
        if first.keyword in ("parse", "compile"):
            raise SchemaValidationError(
                code=ValidationErrorCode.SCHEMA_MALFORMED,
                message=first.message,
                errors=result.errors,
            )
        raise SchemaValidationError(
            code=ValidationErrorCode.SCHEMA_INVALID,
            message=first.message,
            path=first.instance_path,
            schema_path=first.schema_path,
            errors=result.errors,
        )

    def validate_by_location(
        self,
        schema: str | Mapping[str, Any] | bool,
        request: Mapping[str, Any],
    ) -> LocatedValidationResult:
        """Gather parameters from their declared request locations and validate them.

        Each schema property may declare "location" (query, path, header or
        body; body when absent). The request mapping carries one mapping per
        location under "query", "path" (or "params"), "header" (or "headers")
        and "body".

        Returns:
            LocatedValidationResult with the flat organized data and the
            location map of the schema
        """
        loaded = self.load(schema)
        if isinstance(loaded, SchemaError):
            return LocatedValidationResult(valid=False, errors=[loaded.as_issue()], data=None)

        try:
            organized = self._organize(loaded.schema, request)
            location_map = self.location_map(loaded.schema)
        except _OrganizationError as e:
            issue = ValidationIssue(
                keyword="organization",
                message=f"Error organizing parameters: {e}",
            )
            return LocatedValidationResult(valid=False, errors=[issue], data=None)

        result = self._evaluate(loaded, organized)
        return LocatedValidationResult(
            valid=result.valid,
            errors=result.errors,
            data=result.data,
            organized_data=organized,
            location_map=location_map,
        )

    def location_map(self, schema: Mapping[str, Any] | bool) -> dict[str, list[str]]:
        """Group property names by their declared location.

        Raises:
            _OrganizationError: If a property declares an unknown location
        """
        grouped: dict[str, list[str]] = {location: [] for location in PARAMETER_LOCATIONS}
        for name, location in self._declared_locations(schema):
            grouped[location].append(name)
        return grouped

    def _declared_locations(self, schema: Mapping[str, Any] | bool) -> list[tuple[str, str]]:
        if not isinstance(schema, Mapping):
            return []
        properties = schema.get("properties") or {}
        if not isinstance(properties, Mapping):
            raise _OrganizationError("schema properties must be an object")

        declared = []
        for name, subschema in properties.items():
            location = DEFAULT_LOCATION
            if isinstance(subschema, Mapping):
                location = subschema.get("location", DEFAULT_LOCATION)
            if location not in PARAMETER_LOCATIONS:
                raise _OrganizationError(f"property '{name}' declares unknown location '{location}'")
            declared.append((name, location))
        return declared

    def _organize(self, schema: Mapping[str, Any] | bool, request: Mapping[str, Any]) -> dict[str, Any]:
        if not isinstance(request, Mapping):
            raise _OrganizationError("request must be a mapping of locations")

        parts = {location: self._request_part(request, location) for location in PARAMETER_LOCATIONS}
        organized: dict[str, Any] = {}
        for name, location in self._declared_locations(schema):
            value = self._pick(parts[location], name, location)
            if value is not _MISSING:
                organized[name] = value
        return organized

    def _request_part(self, request: Mapping[str, Any], location: str) -> Mapping[str, Any]:
        for key in _REQUEST_KEYS[location]:
            part = request.get(key)
            if part is None:
                continue
            if not isinstance(part, Mapping):
                raise _OrganizationError(f"request '{key}' must be a mapping")
            return part
        return {}

    def _pick(self, part: Mapping[str, Any], name: str, location: str) -> Any:
        if name in part:
            return part[name]
        if location == "header":
            lowered = name.lower()
            for key, value in part.items():
                if isinstance(key, str) and key.lower() == lowered:
                    return value
        return _MISSING

    def validate_schema(self, schema: str | Mapping[str, Any]) -> SchemaCheck:
        """Check that a schema document is usable as a request schema.

        A usable schema parses, declares type, properties or $ref, and
        passes the Draft 7 meta-schema.
        """
        parsed = self._parse(schema)
        if isinstance(parsed, SchemaError):
            return SchemaCheck(valid=False, error=parsed.message)
        if not isinstance(parsed, dict) or not any(k in parsed for k in ("type", "properties", "$ref")):
            return SchemaCheck(valid=False, error="Schema must have type, properties, or $ref")

        loaded = self.load(parsed)
        if isinstance(loaded, SchemaError):
            return SchemaCheck(valid=False, error=loaded.message)
        return SchemaCheck(valid=True)

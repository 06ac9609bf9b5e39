"""Schema validation tests.

Covers:
- Valid arguments accepted, invalid arguments reported with every violation
- Malformed and uncompilable schemas reported, never raised
- Default filling and permissive type coercion
- Custom and standard formats
- Location-based parameter partitioning
"""

import json

import pytest

from toolgate.kernel.executor.schema_validator import (
    CompiledSchema,
    SchemaError,
    SchemaValidationError,
    SchemaValidator,
    ValidationErrorCode,
    apply_defaults_and_coercion,
    format_errors,
)


@pytest.mark.unit
@pytest.mark.P0
@pytest.mark.oracle_schema
class TestSchemaValidator:
    """validate(): validity and error reporting."""

    def test_valid_input_accepted(self) -> None:
        """Valid tool call input passes validation."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {"name": {"type": "string"}, "age": {"type": "integer"}},
            "required": ["name"],
        }

        result = validator.validate(schema, {"name": "John", "age": 30})

        assert result.valid is True
        assert result.errors == []
        assert result.data == {"name": "John", "age": 30}

    def test_schema_given_as_text(self) -> None:
        """Schemas stored as JSON text are parsed before use."""
        validator = SchemaValidator()

        schema = json.dumps({"type": "object", "properties": {"city": {"type": "string"}}})

        result = validator.validate(schema, {"city": "Lima"})

        assert result.valid is True

    def test_missing_required_field_rejected(self) -> None:
        """Missing required field is reported with its name."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "required": ["name"],
        }

        result = validator.validate(schema, {"age": 30})

        assert result.valid is False
        assert len(result.errors) == 1
        error = result.errors[0]
        assert error.keyword == "required"
        assert error.instance_path == ""
        assert error.schema_path == "#/required"
        assert error.params["missing_property"] == "name"
        assert "name" in error.message

    def test_every_violation_reported(self) -> None:
        """All failing constraints are returned, not just the first."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {"a": {"type": "string"}, "b": {"type": "string"}, "n": {"type": "number"}},
            "required": ["a", "b"],
        }

        result = validator.validate(schema, {"n": "not_a_number"})

        assert result.valid is False
        keywords = [e.keyword for e in result.errors]
        assert keywords.count("required") == 2
        assert "type" in keywords
        missing = [e.params["missing_property"] for e in result.errors if e.keyword == "required"]
        assert missing == ["a", "b"]

    def test_wrong_type_rejected(self) -> None:
        """Wrong data type that cannot be coerced is rejected."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {"amount": {"type": "number"}},
            "required": ["amount"],
        }

        result = validator.validate(schema, {"amount": "not_a_number"})

        assert result.valid is False
        assert result.errors[0].keyword == "type"
        assert result.errors[0].instance_path == "/amount"
        assert result.errors[0].value == "not_a_number"

    def test_extra_fields_rejected(self) -> None:
        """Unknown fields rejected when additionalProperties is false."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {"name": {"type": "string"}},
            "required": ["name"],
            "additionalProperties": False,
        }

        result = validator.validate(schema, {"name": "John", "extra_field": "not_allowed"})

        assert result.valid is False
        assert result.errors[0].keyword == "additionalProperties"
        assert "extra_field" in result.errors[0].message

    def test_nested_validation_failure(self) -> None:
        """Nested object failures point into the data."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {
                "user": {
                    "type": "object",
                    "properties": {"name": {"type": "string"}},
                    "required": ["name"],
                }
            },
            "required": ["user"],
        }

        result = validator.validate(schema, {"user": {}})

        assert result.valid is False
        assert result.errors[0].instance_path == "/user"
        assert result.errors[0].params["missing_property"] == "name"

    def test_input_not_mutated(self) -> None:
        """Coercion and defaults apply to a copy of the data."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {"count": {"type": "integer"}, "unit": {"type": "string", "default": "kg"}},
        }
        data = {"count": "5"}

        result = validator.validate(schema, data)

        assert result.data == {"count": 5, "unit": "kg"}
        assert data == {"count": "5"}


@pytest.mark.unit
@pytest.mark.P0
@pytest.mark.oracle_schema
class TestSchemaLoading:
    """Malformed schemas are reported as results."""

    @pytest.mark.parametrize("text", ["{not json", "", '{"type": "object",}'])
    def test_malformed_json_reported_as_parse_error(self, text: str) -> None:
        """Unparseable schema text yields one parse issue and no data."""
        validator = SchemaValidator()

        result = validator.validate(text, {"a": 1})

        assert result.valid is False
        assert len(result.errors) == 1
        assert result.errors[0].keyword == "parse"
        assert result.errors[0].message.startswith("Error parsing JSON Schema")
        assert result.data is None

    def test_meta_schema_violation_reported_as_compile_error(self) -> None:
        """A schema that breaks the Draft 7 meta-schema is a compile error."""
        validator = SchemaValidator()

        result = validator.validate({"type": "nonsense"}, {})

        assert result.valid is False
        assert result.errors[0].keyword == "compile"
        assert result.data is None

    def test_unresolvable_ref_reported_as_compile_error(self) -> None:
        """An unresolvable $ref does not raise."""
        validator = SchemaValidator()

        schema = {"type": "object", "properties": {"a": {"$ref": "#/definitions/missing"}}}

        result = validator.validate(schema, {"a": 1})

        assert result.valid is False
        assert result.errors[0].keyword == "compile"

    def test_ref_unreached_by_data_still_rejected(self) -> None:
        """A dangling $ref fails compilation even when the data never reaches it."""
        validator = SchemaValidator()

        schema = {"type": "object", "properties": {"a": {"$ref": "#/definitions/missing"}}}

        result = validator.validate(schema, {})

        assert result.valid is False
        assert len(result.errors) == 1
        assert result.errors[0].keyword == "compile"
        assert "#/definitions/missing" in result.errors[0].message
        assert result.data is None
        assert isinstance(validator.load(schema), SchemaError)
        assert validator.validate_schema(schema).valid is False

    def test_nested_ref_inside_combinator_checked(self) -> None:
        """References under anyOf and items are resolved at load time too."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "definitions": {"tag": {"type": "string"}},
            "properties": {
                "tags": {"type": "array", "items": {"$ref": "#/definitions/tag"}},
                "owner": {"anyOf": [{"type": "null"}, {"$ref": "#/definitions/person"}]},
            },
        }

        result = validator.validate(schema, {"tags": ["a"]})

        assert result.valid is False
        assert result.errors[0].keyword == "compile"
        assert "#/definitions/person" in result.errors[0].message

    def test_ref_looking_values_in_enum_ignored(self) -> None:
        """A "$ref" key inside enum data is a value, not a reference."""
        validator = SchemaValidator()

        schema = {"type": "object", "properties": {"v": {"enum": [{"$ref": "#/nowhere"}]}}}

        assert isinstance(validator.load(schema), CompiledSchema)
        assert validator.validate(schema, {"v": {"$ref": "#/nowhere"}}).valid is True

    def test_non_object_schema_reported(self) -> None:
        """JSON that is not a schema object is a compile error."""
        validator = SchemaValidator()

        result = validator.validate("[1, 2]", {})

        assert result.errors[0].keyword == "compile"

    def test_load_returns_tagged_results(self) -> None:
        """load() tags outcomes instead of raising."""
        validator = SchemaValidator()

        assert isinstance(validator.load('{"type": "object"}'), CompiledSchema)
        error = validator.load("{broken")
        assert isinstance(error, SchemaError)
        assert error.keyword == "parse"

    def test_compiled_schemas_cached(self) -> None:
        """Identical schemas are compiled once."""
        validator = SchemaValidator()

        first = validator.load('{"type": "object"}')
        second = validator.load('{"type": "object"}')
        third = validator.load({"type": "object"})
        fourth = validator.load({"type": "object"})

        assert first is second
        assert third is fourth


@pytest.mark.unit
@pytest.mark.P0
@pytest.mark.oracle_schema
class TestCoercionAndDefaults:
    """Permissive type coercion and default filling."""

    @pytest.mark.parametrize(
        ("declared", "value", "expected"),
        [
            ("number", "12.5", 12.5),
            ("number", "12", 12),
            ("integer", "42", 42),
            ("integer", True, 1),
            ("string", 7, "7"),
            ("string", False, "false"),
            ("boolean", "true", True),
            ("boolean", 0, False),
            (["integer", "null"], "", None),
        ],
    )
    def test_scalar_coerced(self, declared: object, value: object, expected: object) -> None:
        """Scalars are coerced to the declared type."""
        validator = SchemaValidator()

        schema = {"type": "object", "properties": {"v": {"type": declared}}}

        result = validator.validate(schema, {"v": value})

        assert result.valid is True
        assert result.data["v"] == expected
        assert type(result.data["v"]) is type(expected)

    def test_non_numeric_string_not_coerced(self) -> None:
        """Text that is not a number stays text and fails."""
        validator = SchemaValidator()

        schema = {"type": "object", "properties": {"v": {"type": "integer"}}}

        result = validator.validate(schema, {"v": "12.5"})

        assert result.valid is False
        assert result.data["v"] == "12.5"

    def test_array_items_coerced(self) -> None:
        """Items of a typed array are coerced."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {"ids": {"type": "array", "items": {"type": "integer"}}},
        }

        result = validator.validate(schema, {"ids": ["1", "2", 3]})

        assert result.valid is True
        assert result.data["ids"] == [1, 2, 3]

    def test_default_satisfies_required(self) -> None:
        """Defaults are filled before required is checked."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {"units": {"type": "string", "default": "metric"}},
            "required": ["units"],
        }

        result = validator.validate(schema, {})

        assert result.valid is True
        assert result.data == {"units": "metric"}

    def test_nested_defaults_filled(self) -> None:
        """Defaults apply inside nested objects that are present."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {
                "options": {
                    "type": "object",
                    "properties": {"lang": {"type": "string", "default": "es"}},
                }
            },
        }

        result = validator.validate(schema, {"options": {}})

        assert result.data == {"options": {"lang": "es"}}

    def test_coercion_follows_ref(self) -> None:
        """Values are coerced to the type of the referenced definition."""
        validator = SchemaValidator()

        schema = {
            "definitions": {"n": {"type": "integer"}},
            "properties": {"a": {"$ref": "#/definitions/n"}},
        }

        result = validator.validate(schema, {"a": "5"})

        assert result.valid is True
        assert result.data == {"a": 5}

    def test_defaults_follow_ref(self) -> None:
        """Defaults declared on a referenced definition are filled, nested ones too."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "definitions": {
                "units": {"type": "string", "default": "metric"},
                "options": {"type": "object", "properties": {"units": {"$ref": "#/definitions/units"}}},
            },
            "properties": {
                "units": {"$ref": "#/definitions/units"},
                "options": {"$ref": "#/definitions/options"},
            },
        }

        result = validator.validate(schema, {"options": {}})

        assert result.valid is True
        assert result.data == {"units": "metric", "options": {"units": "metric"}}

    def test_recursive_schema_coerced_at_every_level(self) -> None:
        """A self-referencing schema is followed as deep as the data goes."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {
                "name": {"type": "string"},
                "children": {"type": "array", "items": {"$ref": "#"}},
            },
        }

        result = validator.validate(schema, {"name": 1, "children": [{"name": 2, "children": [{"name": 3}]}]})

        assert result.valid is True
        assert result.data == {"name": "1", "children": [{"name": "2", "children": [{"name": "3"}]}]}

    @pytest.mark.parametrize(
        "schema",
        [
            {"allOf": [{"$ref": "#"}], "properties": {"v": {"type": "integer"}}},
            {"definitions": {"a": {"$ref": "#/definitions/b"}, "b": {"$ref": "#/definitions/a"}}, "$ref": "#/definitions/a"},
        ],
    )
    def test_reference_cycles_terminate(self, schema: dict) -> None:
        """Cyclic references do not loop while filling defaults."""
        compiled = SchemaValidator().load(schema)
        assert isinstance(compiled, CompiledSchema)
        data = {"v": "7"}

        apply_defaults_and_coercion(compiled.schema, data, compiled.resolver)

        assert data == ({"v": 7} if "properties" in schema else {"v": "7"})

    @pytest.mark.parametrize(
        ("value", "expected"),
        [(1e20, "100000000000000000000"), (1e300, "1e+300"), (-1e21, "-1e+21"), (2.5, "2.5")],
    )
    def test_float_to_string_notation(self, value: float, expected: str) -> None:
        """Integral floats print positionally only below 1e21 in magnitude."""
        validator = SchemaValidator()

        schema = {"type": "object", "properties": {"s": {"type": "string"}}}

        result = validator.validate(schema, {"s": value})

        assert result.data["s"] == expected


@pytest.mark.unit
@pytest.mark.P1
@pytest.mark.oracle_schema
class TestFormats:
    """Custom and standard formats."""

    @pytest.mark.parametrize(
        ("value", "valid"),
        [("1", True), ("1234567", True), ("12345678", False), ("12a4", False), ("", False)],
    )
    def test_dot_number_format(self, value: str, valid: bool) -> None:
        """dot-number accepts 1 to 7 digits."""
        validator = SchemaValidator()

        schema = {"type": "object", "properties": {"dot": {"type": "string", "format": "dot-number"}}}

        result = validator.validate(schema, {"dot": value})

        assert result.valid is valid
        if not valid:
            assert result.errors[0].keyword == "format"

    @pytest.mark.parametrize(("value", "valid"), [(100, True), (404, True), (599, True), (99, False), (600, False)])
    def test_http_status_format(self, value: int, valid: bool) -> None:
        """http-status accepts numbers in [100, 599]."""
        validator = SchemaValidator()

        schema = {"type": "object", "properties": {"status": {"type": "number", "format": "http-status"}}}

        assert validator.validate(schema, {"status": value}).valid is valid

    def test_http_status_from_numeric_string(self) -> None:
        """Numeric strings are coerced before the format check."""
        validator = SchemaValidator()

        schema = {"type": "object", "properties": {"status": {"type": "integer", "format": "http-status"}}}

        result = validator.validate(schema, {"status": "503"})

        assert result.valid is True
        assert result.data == {"status": 503}

    def test_standard_formats_enforced(self) -> None:
        """email and date formats are checked."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {
                "email": {"type": "string", "format": "email"},
                "day": {"type": "string", "format": "date"},
            },
        }

        assert validator.validate(schema, {"email": "ops@example.com", "day": "2024-02-29"}).valid is True

        result = validator.validate(schema, {"email": "not-an-email", "day": "2024-02-30"})
        assert result.valid is False
        assert sorted(e.instance_path for e in result.errors) == ["/day", "/email"]


@pytest.mark.unit
@pytest.mark.P0
@pytest.mark.oracle_schema
class TestValidateByLocation:
    """validate_by_location(): parameters scattered across a request."""

    SCHEMA = {
        "type": "object",
        "properties": {
            "a": {"type": "integer", "location": "query"},
            "b": {"type": "integer", "location": "path"},
            "c": {"type": "integer"},
        },
        "required": ["a", "b", "c"],
    }

    def test_parameters_partitioned_by_location(self) -> None:
        """Each property is read from its declared location."""
        validator = SchemaValidator()

        request = {"query": {"a": 1}, "params": {"b": 2}, "headers": {}, "body": {"c": 3}}

        result = validator.validate_by_location(self.SCHEMA, request)

        assert result.valid is True
        assert result.organized_data == {"a": 1, "b": 2, "c": 3}
        assert result.location_map == {"query": ["a"], "path": ["b"], "header": [], "body": ["c"]}

    def test_canonical_location_keys_accepted(self) -> None:
        """path/header keys work as well as params/headers."""
        validator = SchemaValidator()

        request = {"query": {"a": "1"}, "path": {"b": "2"}, "header": {}, "body": {"c": 3}}

        result = validator.validate_by_location(json.dumps(self.SCHEMA), request)

        assert result.valid is True
        assert result.data == {"a": 1, "b": 2, "c": 3}

    def test_value_in_wrong_location_ignored(self) -> None:
        """A value sent in another location than declared does not count."""
        validator = SchemaValidator()

        request = {"query": {"a": 1, "b": 2}, "body": {"c": 3}}

        result = validator.validate_by_location(self.SCHEMA, request)

        assert result.valid is False
        assert result.organized_data == {"a": 1, "c": 3}
        assert result.errors[0].params["missing_property"] == "b"

    def test_header_lookup_case_insensitive(self) -> None:
        """Header parameters match regardless of case."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {"X-Tenant": {"type": "string", "location": "header"}},
            "required": ["X-Tenant"],
        }

        result = validator.validate_by_location(schema, {"headers": {"x-tenant": "acme"}})

        assert result.valid is True
        assert result.organized_data == {"X-Tenant": "acme"}

    def test_unknown_location_reported(self) -> None:
        """Unknown locations fail closed with an organization issue."""
        validator = SchemaValidator()

        schema = {"type": "object", "properties": {"sid": {"type": "string", "location": "cookie"}}}

        result = validator.validate_by_location(schema, {"body": {"sid": "x"}})

        assert result.valid is False
        assert result.errors[0].keyword == "organization"
        assert result.data is None

    def test_parse_error_reported(self) -> None:
        """Malformed schema text yields a parse issue."""
        validator = SchemaValidator()

        result = validator.validate_by_location("{oops", {"body": {}})

        assert result.valid is False
        assert result.errors[0].keyword == "parse"


@pytest.mark.unit
@pytest.mark.P1
@pytest.mark.oracle_schema
class TestSchemaHelpers:
    """validate_schema(), format_errors() and assert_valid()."""

    def test_validate_schema_accepts_usable_schema(self) -> None:
        validator = SchemaValidator()

        assert validator.validate_schema('{"type": "object"}').valid is True
        assert validator.validate_schema({"$ref": "#/definitions/x", "definitions": {"x": {}}}).valid is True

    def test_validate_schema_requires_structure(self) -> None:
        validator = SchemaValidator()

        check = validator.validate_schema('{"description": "nothing"}')

        assert check.valid is False
        assert check.error == "Schema must have type, properties, or $ref"

    def test_validate_schema_reports_parse_and_compile_errors(self) -> None:
        validator = SchemaValidator()

        assert validator.validate_schema("{nope").valid is False
        check = validator.validate_schema('{"type": 5}')
        assert check.valid is False
        assert "malformed" in check.error

    def test_format_errors(self) -> None:
        """Issues flatten to field/message/value/constraint entries."""
        validator = SchemaValidator()

        schema = {
            "type": "object",
            "properties": {"user": {"type": "object", "properties": {"age": {"type": "integer"}}}},
            "required": ["title"],
        }

        result = validator.validate(schema, {"user": {"age": "old"}})
        formatted = format_errors(result.errors)

        assert {"field": "title", "message": "'title' is a required property", "value": None, "constraint": "required"} in formatted
        assert {"field": "user/age", "message": "'old' is not of type 'integer'", "value": "old", "constraint": "type"} in formatted

    def test_assert_valid_returns_coerced_data(self) -> None:
        validator = SchemaValidator()

        schema = {"type": "object", "properties": {"n": {"type": "number"}}}

        assert validator.assert_valid(schema, {"n": "3"}) == {"n": 3}

    def test_assert_valid_raises_schema_invalid(self) -> None:
        validator = SchemaValidator()

        schema = {"type": "object", "properties": {"n": {"type": "number"}}}

        with pytest.raises(SchemaValidationError) as exc_info:
            validator.assert_valid(schema, {"n": "three"})

        assert exc_info.value.code == ValidationErrorCode.SCHEMA_INVALID
        assert exc_info.value.path == "/n"
        assert exc_info.value.schema_path == "#/properties/n/type"

    def test_assert_valid_raises_schema_malformed(self) -> None:
        validator = SchemaValidator()

        with pytest.raises(SchemaValidationError) as exc_info:
            validator.assert_valid("{broken", {})

        assert exc_info.value.code == ValidationErrorCode.SCHEMA_MALFORMED

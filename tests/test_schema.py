import pytest

from opforge.errors import SchemaConstructionError, SchemaValidationError
from opforge.schema.composition import CompositionSchema, RefSchema
from opforge.schema.dsl import (
    all_of,
    any_of,
    array,
    boolean,
    integer,
    not_,
    null,
    number,
    object_,
    one_of,
    ref,
    string,
)
from opforge.schema.serialize import collect_refs, find_example_conflicts


class TestStringSchema:
    def test_constraints_serialized(self):
        doc = string().min(3).max(50).pattern("^[a-z]+$").description("Username").to_openapi()
        assert doc == {
            "type": "string",
            "minLength": 3,
            "maxLength": 50,
            "pattern": "^[a-z]+$",
            "description": "Username",
        }

    def test_absent_constraints_omitted(self):
        assert string().to_openapi() == {"type": "string"}

    def test_format_shortcuts(self):
        assert string().email().to_openapi()["format"] == "email"
        assert string().url().to_openapi()["format"] == "uri"
        assert string().uuid().to_openapi()["format"] == "uuid"
        assert string().date().to_openapi()["format"] == "date"
        assert string().date_time().to_openapi()["format"] == "date-time"

    def test_min_greater_than_max_rejected(self):
        with pytest.raises(SchemaConstructionError):
            string().max(2).min(5)

    def test_invalid_regex_rejected(self):
        with pytest.raises(SchemaConstructionError):
            string().pattern("[unclosed")

    def test_unknown_format_rejected(self):
        with pytest.raises(SchemaConstructionError):
            string().format("not-a-format")


class TestNumberSchema:
    def test_bounds(self):
        doc = number().min(0).max(100).multiple_of(5).to_openapi()
        assert doc == {"type": "number", "minimum": 0, "maximum": 100, "multipleOf": 5}

    def test_positive_uses_exclusive_minimum(self):
        assert integer().positive().to_openapi() == {"type": "integer", "exclusiveMinimum": 0}

    def test_min_with_exclusive_min_rejected(self):
        with pytest.raises(SchemaConstructionError):
            number().min(1).exclusive_min(0)

    def test_low_above_high_rejected(self):
        with pytest.raises(SchemaConstructionError):
            number().min(10).max(1)

    def test_equal_exclusive_bounds_rejected(self):
        with pytest.raises(SchemaConstructionError):
            number().exclusive_min(5).max(5)

    def test_multiple_of_must_be_positive(self):
        with pytest.raises(SchemaConstructionError):
            number().multiple_of(0)

    def test_integer_format(self):
        assert integer().format("int64").to_openapi()["format"] == "int64"
        with pytest.raises(SchemaConstructionError):
            integer().format("double")


class TestCommonRefinements:
    def test_required_and_optional_conflict(self):
        with pytest.raises(SchemaConstructionError):
            string().required().optional()

    def test_nullable_emits_type_list(self):
        assert string().nullable().to_openapi() == {"type": ["string", "null"]}

    def test_enum_and_const(self):
        assert string().enum("a", "b").to_openapi()["enum"] == ["a", "b"]
        assert string().const("x").to_openapi()["const"] == "x"
        with pytest.raises(SchemaConstructionError):
            string().enum()

    def test_read_only_write_only_exclusive(self):
        with pytest.raises(SchemaConstructionError):
            string().read_only().write_only()

    def test_named_examples(self):
        doc = string().examples({"short": "ab", "long": {"summary": "Long", "value": "abcdef"}}).to_openapi()
        assert doc["examples"] == {
            "short": {"value": "ab"},
            "long": {"summary": "Long", "value": "abcdef"},
        }

    def test_invalid_example_name_rejected(self):
        with pytest.raises(SchemaConstructionError):
            string().examples({"bad name": "x"})

    def test_frozen_schema_rejects_mutation(self):
        schema = string().freeze()
        assert schema.frozen
        with pytest.raises(SchemaConstructionError):
            schema.min(1)

    def test_copy_is_mutable_and_independent(self):
        original = object_({"id": string()}).freeze()
        clone = original.copy()
        clone.add_property("name", string())
        assert not clone.frozen
        assert list(original.properties) == ["id"]


class TestArrayAndObject:
    def test_array(self):
        doc = array(string()).min_items(1).max_items(3).unique_items().to_openapi()
        assert doc == {
            "type": "array",
            "minItems": 1,
            "maxItems": 3,
            "uniqueItems": True,
            "items": {"type": "string"},
        }

    def test_array_item_must_be_schema(self):
        with pytest.raises(SchemaConstructionError):
            array("string")

    def test_object_required_from_children(self):
        doc = object_({
            "id": string().required(),
            "nick": string(),
            "age": integer().optional(),
        }).to_openapi()
        assert list(doc["properties"]) == ["id", "nick", "age"]
        assert doc["required"] == ["id"]

    def test_property_must_be_schema(self):
        with pytest.raises(SchemaConstructionError):
            object_({"id": "string"})

    def test_additional_properties(self):
        assert object_().additional_properties(False).to_openapi() == {
            "type": "object",
            "additionalProperties": False,
        }
        doc = object_().additional_properties(integer()).to_openapi()
        assert doc["additionalProperties"] == {"type": "integer"}

    def test_boolean_and_null(self):
        assert boolean().to_openapi() == {"type": "boolean"}
        assert null().to_openapi() == {"type": "null"}


class TestComposition:
    def test_one_of_has_no_type(self):
        doc = one_of(string(), integer()).to_openapi()
        assert "type" not in doc
        assert doc["oneOf"] == [{"type": "string"}, {"type": "integer"}]

    def test_not_emits_single_object(self):
        assert not_(null()).to_openapi() == {"not": {"type": "null"}}

    def test_chained_slots(self):
        schema = all_of(object_({"a": string()})).any_of(object_({"b": string()}))
        assert isinstance(schema, CompositionSchema)
        assert schema.slots == ["allOf", "anyOf"]

    def test_slot_on_typed_schema_rejected(self):
        with pytest.raises(SchemaConstructionError):
            string().one_of(integer())

    def test_empty_slot_rejected(self):
        with pytest.raises(SchemaConstructionError):
            any_of()

    def test_ref(self):
        schema = ref("User").description("The owner")
        assert isinstance(schema, RefSchema)
        assert schema.to_openapi() == {"$ref": "#/components/schemas/User", "description": "The owner"}

    def test_ref_name_pattern(self):
        with pytest.raises(SchemaConstructionError):
            ref("User Profile")

    def test_collect_refs(self):
        schema = object_({"owner": ref("User"), "items": array(one_of(ref("A"), ref("B")))})
        assert collect_refs(schema) == {"User", "A", "B"}

    def test_find_example_conflicts(self):
        schema = object_({"name": string().example("x").examples({"one": "y"})})
        assert find_example_conflicts(schema) == ["#/properties/name"]


class TestValidation:
    def test_valid_object(self):
        schema = object_({
            "name": string().min(1).required(),
            "email": string().email().required(),
            "age": integer().min(0),
        })
        schema.validate({"name": "Ann", "email": "ann@example.com", "age": 30})

    def test_missing_required_field(self):
        schema = object_({"name": string().required()})
        with pytest.raises(SchemaValidationError) as exc:
            schema.validate({})
        assert exc.value.errors() == [{"field": "name", "message": "field is required"}]

    def test_nested_errors_flattened(self):
        schema = object_({"user": object_({"email": string().email().required()}).required()})
        with pytest.raises(SchemaValidationError) as exc:
            schema.validate({"user": {"email": "nope"}})
        assert exc.value.errors()[0]["field"] == "user.email"
        assert "email" in exc.value.errors()[0]["message"]

    def test_type_mismatch(self):
        assert not integer().is_valid("3")
        assert not integer().is_valid(True)
        assert integer().is_valid(3)

    def test_numeric_bounds(self):
        schema = number().exclusive_min(0).max(10)
        assert schema.is_valid(10)
        assert not schema.is_valid(0)
        assert not schema.is_valid(11)

    def test_nullable_accepts_none(self):
        assert string().nullable().is_valid(None)
        assert not string().is_valid(None)

    def test_additional_properties_false(self):
        schema = object_({"a": string()}).additional_properties(False)
        assert schema.is_valid({"a": "x"})
        assert not schema.is_valid({"a": "x", "b": "y"})

    def test_array_unique_items(self):
        schema = array(integer()).unique_items()
        assert schema.is_valid([1, 2])
        assert not schema.is_valid([1, 1])

    def test_unique_items_distinguishes_bool_from_int(self):
        schema = array(one_of(integer(), boolean())).unique_items()
        assert schema.is_valid([1, True])
        assert schema.is_valid([0, False])
        assert not schema.is_valid([True, True])

    def test_array_item_errors_carry_index(self):
        schema = object_({"ids": array(integer())})
        with pytest.raises(SchemaValidationError) as exc:
            schema.validate({"ids": [1, "two"]})
        assert exc.value.errors()[0]["field"] == "ids.[1]"

    def test_multiple_failures_collected(self):
        schema = object_({"name": string().required(), "age": integer().min(0)})
        with pytest.raises(SchemaValidationError) as exc:
            schema.validate({"age": -1})
        assert {e["field"] for e in exc.value.errors()} == {"name", "age"}

    def test_formats(self):
        assert string().uuid().is_valid("123e4567-e89b-12d3-a456-426614174000")
        assert not string().uuid().is_valid("not-a-uuid")
        assert string().date().is_valid("2024-02-29")
        assert not string().date().is_valid("2024-13-01")

    def test_refs_resolved_from_components(self):
        schema = object_({"owner": ref("User").required()})
        user = object_({"id": integer().required()})
        schema.validate({"owner": {"id": 1}}, components={"User": user})
        with pytest.raises(SchemaValidationError) as exc:
            schema.validate({"owner": {}}, components={"User": user})
        assert exc.value.errors() == [{"field": "owner.id", "message": "field is required"}]

    def test_unknown_ref_accepts_anything(self):
        assert object_({"owner": ref("User")}).is_valid({"owner": 42})

    def test_one_of_exactly_one(self):
        schema = one_of(number(), integer())
        assert not schema.is_valid(3)
        assert schema.is_valid(3.5)

    def test_not(self):
        assert not_(string()).is_valid(1)
        assert not not_(string()).is_valid("x")

    def test_to_dict(self):
        err = SchemaValidationError("age", "too young", 3)
        assert err.to_dict() == {"field": "age", "message": "too young"}
        assert str(err) == "Field: age, Error: too young"

"""Tests for flattening validation error trees into field -> message maps."""

from rpcgate.validation.flatten import field_path, flatten, join_segments
from rpcgate.validation.types import ErrorKind, MissingField, ValidationError, ValuePointer
from rpcgate.validation.validator import SchemaValidator


def _value_error(segments, message, *sub_errors):
    return ValidationError(
        kind=ErrorKind.INVALID_TYPE,
        message=message,
        target=ValuePointer(tuple(segments)),
        schema_path="/type",
        sub_errors=tuple(sub_errors),
    )


class TestFieldPaths:
    def test_required_error_uses_missing_field_name(self) -> None:
        error = ValidationError(
            kind=ErrorKind.OBJECT_REQUIRED,
            message="Title is required",
            target=MissingField("title", ValuePointer(("post",))),
            schema_path="/allOf/0/required/0",
            params={"key": "title"},
        )
        assert flatten(error) == {"title": "Title is required"}

    def test_value_error_joins_segments(self) -> None:
        assert field_path(_value_error(("post", "tags", 0, "name"), "x")) == "post.tags[0].name"

    def test_root_error_maps_to_empty_key(self) -> None:
        assert flatten(_value_error((), "bad")) == {"": "bad"}

    def test_join_segments(self) -> None:
        assert join_segments(()) == ""
        assert join_segments((0,)) == "[0]"
        assert join_segments(("a", "b")) == "a.b"


class TestFlatten:
    def test_none_is_empty(self) -> None:
        assert flatten(None) == {}

    def test_parent_and_children_all_collected(self) -> None:
        tree = _value_error(
            (), "Data does not match any schemas",
            _value_error(("name",), "name bad"),
            _value_error(("age",), "age bad"),
        )
        assert flatten(tree) == {
            "": "Data does not match any schemas",
            "name": "name bad",
            "age": "age bad",
        }

    def test_last_sibling_wins_on_collision(self) -> None:
        tree = _value_error((), "root", _value_error(("name",), "first"), _value_error(("name",), "second"))
        assert flatten(tree)["name"] == "second"

    def test_child_overrides_parent_on_collision(self) -> None:
        tree = _value_error(("name",), "parent", _value_error(("name",), "child"))
        assert flatten(tree) == {"name": "child"}

    def test_depth_first_order(self) -> None:
        # the first branch's grandchild is visited before the second branch
        tree = _value_error(
            (), "root",
            _value_error(("a",), "a", _value_error(("x",), "from a")),
            _value_error(("x",), "from second branch"),
        )
        assert flatten(tree)["x"] == "from second branch"

    def test_deep_tree_does_not_recurse(self) -> None:
        node = _value_error(("leaf",), "leaf")
        for depth in range(5000):
            node = _value_error(("level",), f"level {depth}", node)
        assert flatten(node) == {"level": "level 0", "leaf": "leaf"}

    def test_flatten_validator_output(self) -> None:
        schema = {
            "anyOf": [
                {"required": ["title"]},
                {"properties": {"body": {"type": "string"}}, "required": ["body"]},
            ]
        }
        result = SchemaValidator().validate({"body": 3}, schema)
        assert flatten(result.error) == {
            "": 'Data does not match any schemas from "anyOf"',
            "title": "Title is required",
            "body": "Invalid type: integer (expected string)",
        }

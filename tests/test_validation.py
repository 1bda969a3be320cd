"""Tests for runtime argument validation."""

import pytest

from apidoc_dsl.config import Configuration
from apidoc_dsl.declarations import evaluate
from apidoc_dsl.errors import ParamInvalid, ParamMissing, UnknownParam
from apidoc_dsl.registry import DocRegistry
from apidoc_dsl.validation import check_arguments, validate_arguments
from apidoc_dsl.validators import Marker


def _create_body(d):
    (
        d.param("name", str, "Name")
        .optional("count", Marker.NUMBER, "How many")
        .optional(
            "options",
            dict,
            "Options",
            lambda o: o.param("color", ["red", "blue"]).optional("size", int),
        )
    )


class TestCheckArguments:
    """check_arguments against a documented method."""

    def setup_method(self):
        self.registry = DocRegistry()
        self.registry.define_method("Api", "create", evaluate(_create_body, "Api"))
        self.method = self.registry.get_method_description("Api#create")

    def test_valid_arguments(self):
        assert check_arguments(self.method, {"name": "x", "count": "3", "options": {"color": "red"}})

    def test_missing_required(self):
        with pytest.raises(ParamMissing) as excinfo:
            check_arguments(self.method, {"count": 1})
        assert str(excinfo.value) == "Missing parameter name"

    def test_missing_required_hash_key(self):
        with pytest.raises(ParamMissing) as excinfo:
            check_arguments(self.method, {"name": "x", "options": {"size": 1}})
        assert excinfo.value.param.full_name == "options[color]"

    def test_missing_message_option(self):
        registry = DocRegistry()
        registry.define_method(
            "Api",
            "login",
            evaluate(lambda d: d.param("token", str, missing_message=lambda: "Log in first")),
        )
        with pytest.raises(ParamMissing) as excinfo:
            check_arguments(registry.get_method_description("Api#login"), {})
        assert str(excinfo.value) == "Log in first"

    def test_invalid_value(self):
        with pytest.raises(ParamInvalid) as excinfo:
            check_arguments(self.method, {"name": "x", "count": "many"})
        assert excinfo.value.param == "count"

    def test_strict_rejects_unknown_names(self):
        assert check_arguments(self.method, {"name": "x", "extra": 1})
        with pytest.raises(UnknownParam):
            check_arguments(self.method, {"name": "x", "extra": 1}, strict=True)

    def test_value_checks_can_be_disabled(self):
        registry = DocRegistry(config=Configuration(validate_value=False))
        registry.define_method("Api", "create", evaluate(_create_body, "Api"))
        method = registry.get_method_description("Api#create")
        assert check_arguments(method, {"name": 42, "count": "many"})
        with pytest.raises(ParamMissing):
            check_arguments(method, {})


class TestValidateArgumentsDecorator:
    """Call-time checking through the decorator."""

    def setup_method(self):
        self.registry = DocRegistry()

    def test_function_with_explicit_class(self):
        self.registry.define_method("Api", "create", evaluate(_create_body, "Api"))
        calls = []

        @validate_arguments(self.registry, klass="Api")
        def create(name, count=None, **options):
            calls.append((name, count, options))
            return "created"

        assert create("x", count=2) == "created"
        with pytest.raises(ParamInvalid):
            create(3)
        with pytest.raises(ParamInvalid):
            create("x", options={"color": "green"})
        assert calls == [("x", 2, {})]

    def test_method_owner_is_inferred(self):
        class Greeter:
            @validate_arguments(self.registry)
            def greet(self, name):
                return f"hello {name}"

        class LoudGreeter(Greeter):
            pass

        self.registry.define_method(Greeter, "greet", evaluate(lambda d: d.param("name", str)))
        assert Greeter().greet("bob") == "hello bob"
        with pytest.raises(ParamInvalid):
            LoudGreeter().greet(42)

    def test_undocumented_function_is_not_checked(self):
        @validate_arguments(self.registry, klass="Nowhere")
        def anything(value):
            return value

        assert anything(1) == 1

    def test_disabled_validation(self):
        registry = DocRegistry(config=Configuration(validate=False))
        registry.define_method("Api", "create", evaluate(_create_body, "Api"))

        @validate_arguments(registry, klass="Api")
        def create(name):
            return name

        assert create(42) == 42

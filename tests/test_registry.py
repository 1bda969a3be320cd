"""Tests for the documentation registry: build, versions, reload and query."""

import json
import threading

import pytest

from apidoc_dsl.config import Configuration
from apidoc_dsl.declarations import (
    ClassDeclaration,
    GroupDeclaration,
    MethodDeclaration,
    MethodUpdate,
    evaluate,
)
from apidoc_dsl.errors import (
    InvalidQueryKey,
    MultipleDefinition,
    ReturnShapeConflict,
    UndefinedGroup,
    UnresolvedReference,
    ValidatorNotFound,
)
from apidoc_dsl.registry import (
    BuildFailure,
    DocRegistry,
    check_query_key,
    get_registry,
    set_registry,
    superclass_for,
)


class Base:
    pass


class Child(Base):
    pass


class GrandChild(Child):
    pass


class Standalone:
    pass


def _method(registry, klass, name, body):
    return registry.define_method(klass, name, evaluate(body, klass))


class TestVersions:
    """Version inheritance along the class chain."""

    def test_inherits_nearest_ancestor_version(self):
        registry = DocRegistry()
        registry.define_class(Base, evaluate(lambda d: d.dsl_versions("2.0")))
        assert registry.class_versions(GrandChild) == ["2.0"]
        assert registry.class_versions(Standalone) == ["1.0"]

    def test_default_version_is_configurable(self):
        registry = DocRegistry(config=Configuration(default_version="3.1"))
        assert registry.class_versions("Anything") == ["3.1"]

    def test_method_lands_in_inherited_version(self):
        registry = DocRegistry()
        registry.define_class(Base, evaluate(lambda d: d.dsl_versions("2.0")))
        _method(registry, Child, "run", lambda d: d.param("fast", bool))
        assert registry.get_method_description(Child, "run") is not None
        assert registry.get_class_description("2.0#Child").version == "2.0"
        assert registry.get_class_description("Child") is None

    def test_method_explicit_versions(self):
        registry = DocRegistry()
        _method(registry, "IO", "puts", lambda d: d.dsl_versions("1.0", "2.0"))
        assert registry.get_method_description("1.0#IO#puts") is not None
        assert registry.get_method_description("2.0#IO#puts") is not None

    def test_available_versions_newest_first(self):
        registry = DocRegistry()
        for version in ("1.0", "10.0", "2.0", "beta"):
            registry.define_class("IO", evaluate(lambda d, v=version: d.dsl_versions(v)))
        assert registry.available_versions() == ["10.0", "2.0", "1.0", "beta"]

    def test_superclass_for(self):
        assert superclass_for(Child) is Base
        assert superclass_for(Base) is None
        assert superclass_for("Child") is None
        assert superclass_for(json.decoder) is json


class TestDefinitions:
    """define_class / define_method / update_method / remove_method."""

    def setup_method(self):
        self.registry = DocRegistry()

    def test_define_class_is_an_upsert(self):
        first = self.registry.define_class("IO", evaluate(lambda d: d.short("IO").tags("a")))[0]
        second = self.registry.define_class(
            "IO", evaluate(lambda d: d.desc("Long text").tags("b").property("mode", str))
        )[0]
        assert self.registry.get_class_description("IO") is second
        assert second.short_description == "IO"
        assert second.full_description == "Long text"
        assert second.tag_list == ["a", "b"]
        assert [p.name for p in second.properties] == ["mode"]
        # earlier snapshot untouched
        assert first.tag_list == ["a"]
        assert first.properties == []

    def test_first_method_creates_the_class(self):
        _method(self.registry, "IO", "puts", lambda d: d.short("Print"))
        class_description = self.registry.get_class_description("IO")
        assert class_description is not None
        assert list(class_description.methods) == ["puts"]

    def test_redefinition_leaves_only_the_second_build(self):
        _method(self.registry, "IO", "puts", lambda d: d.param("old", str).raises(IOError))
        _method(self.registry, "IO", "puts", lambda d: d.param("new", int))

        class_description = self.registry.get_class_description("IO")
        assert list(class_description.methods) == ["puts"]
        method = class_description.method_description("puts")
        assert [p.name for p in method.plain_params] == ["new"]
        assert method.raises == []

    def test_update_method_merges_params(self):
        _method(self.registry, "IO", "puts", lambda d: d.param("options", dict, lambda o: o.param("color", str)))
        self.registry.update_method(
            "IO",
            "puts",
            evaluate(lambda d: d.param("options", dict, lambda o: o.param("size", int)).optional("sep", str)),
        )
        method = self.registry.get_method_description("IO#puts")
        assert [p.name for p in method.plain_params] == ["options", "sep"]
        assert [p.name for p in method.plain_params[0].validator.sub_params] == ["color", "size"]

    def test_remove_method_is_noop_when_absent(self):
        _method(self.registry, "IO", "puts", lambda d: d)
        self.registry.remove_method("IO", "missing")
        self.registry.remove_method("Ghost", "puts")
        self.registry.remove_method("IO", "puts", ["1.0"])
        assert self.registry.get_method_description("IO#puts") is None

    def test_block_parameter_at_most_once(self):
        with pytest.raises(MultipleDefinition):
            _method(self.registry, "IO", "each", lambda d: d.block(name="a").block(name="b"))

    def test_update_cannot_add_a_second_block_parameter(self):
        _method(self.registry, "IO", "each", lambda d: d.block("first"))
        with pytest.raises(MultipleDefinition):
            self.registry.update_method(
                "IO", "each", evaluate(lambda d: d.short("Each").block("second", name="other_block"))
            )
        method = self.registry.get_method_description("IO#each")
        assert [p.name for p in method.plain_params] == ["block"]
        assert method.short_description == ""

        # the description itself is left as it was
        with pytest.raises(MultipleDefinition):
            method.update(evaluate(lambda d: d.short("Each").block(name="other_block")))
        assert [p.name for p in method.plain_params] == ["block"]
        assert method.short_description == ""

    def test_update_may_extend_the_same_block_parameter(self):
        _method(self.registry, "IO", "each", lambda d: d.block("first"))
        self.registry.update_method("IO", "each", evaluate(lambda d: d.block("again")))
        method = self.registry.get_method_description("IO#each")
        assert [p.name for p in method.plain_params] == ["block"]

    def test_failing_write_publishes_nothing(self):
        _method(self.registry, "IO", "puts", lambda d: d.param("text", str))
        before = self.registry.state
        with pytest.raises(UndefinedGroup):
            _method(self.registry, "IO", "puts", lambda d: d.param_group("missing"))
        with pytest.raises(UndefinedGroup):
            self.registry.update_method("IO", "puts", evaluate(lambda d: d.param_group("missing")))
        assert self.registry.state is before
        method = self.registry.get_method_description("IO#puts")
        assert [p.name for p in method.plain_params] == ["text"]

    def test_failing_redefinition_in_a_load_keeps_the_previous_build(self):
        registry = DocRegistry()
        failures = registry.load(
            [
                MethodDeclaration("IO", name="puts", body=lambda d: d.dsl_versions("1.0", "2.0").param("text", str)),
                MethodDeclaration(
                    "IO",
                    name="puts",
                    body=lambda d: d.dsl_versions("1.0", "2.0").param_group("missing"),
                ),
            ]
        )
        assert [failure.target for failure in failures] == ["IO#puts"]
        for version in ("1.0", "2.0"):
            method = registry.get_method_description(f"{version}#IO#puts")
            assert [p.name for p in method.plain_params] == ["text"]

    def test_return_shape_conflict(self):
        with pytest.raises(ReturnShapeConflict):
            _method(self.registry, "IO", "lines", lambda d: d.returns(object_of=dict, array_of=str))

    def test_ignored_classes_and_methods(self):
        registry = DocRegistry(config=Configuration(ignored=["Secret", "IO#debug"]))
        assert registry.define_class("Secret") == []
        assert registry.define_method("IO", "debug", evaluate(lambda d: d)) == []
        registry.define_method("IO", "puts", evaluate(lambda d: d))
        assert list(registry.get_class_description("IO").methods) == ["puts"]

    def test_listing_descriptions(self):
        _method(self.registry, "IO", "puts", lambda d: d.dsl_versions("1.0", "2.0"))
        _method(self.registry, "IO", "gets", lambda d: d)
        _method(self.registry, "Math", "sqrt", lambda d: d)

        assert [c.id for c in self.registry.get_class_descriptions("1.0")] == ["IO", "Math"]
        assert len(self.registry.get_class_descriptions()) == 3
        assert [m.name for m in self.registry.get_method_descriptions("IO")] == ["puts", "gets"]
        assert [m.name for m in self.registry.get_method_descriptions("IO", "2.0")] == ["puts"]
        assert [m.id for m in self.registry.get_method_descriptions(version="1.0")] == [
            "IO#puts",
            "IO#gets",
            "Math#sqrt",
        ]
        assert self.registry.get_method_descriptions("Ghost") == []

    def test_lookup_by_class_handle(self):
        self.registry.define_class(Standalone, evaluate(lambda d: d.short("Standalone")))
        assert self.registry.get_class_description(Standalone).short_description == "Standalone"
        assert self.registry.get_class_description(Child) is None
        assert self.registry.get_method_description(Standalone, "missing") is None

    def test_class_full_names(self):
        registry = DocRegistry(config=Configuration(class_full_names=True))
        assert registry.get_class_name(Standalone) == f"{__name__}.Standalone"
        assert DocRegistry().get_class_name(Standalone) == "Standalone"
        assert DocRegistry().get_class_name(json.decoder) == "decoder"


class TestReferences:
    """Reference index, see links and return types."""

    def setup_method(self):
        self.registry = DocRegistry()

    def test_refs_index_and_collision(self, caplog):
        self.registry.define_class("Output", evaluate(lambda d: d.refs("Out")))
        self.registry.define_class("Other", evaluate(lambda d: d.refs("Out")))
        assert self.registry.resolve_reference("Out", "1.0").id == "Output"
        assert "keeping the first" in caplog.text

    def test_lazy_type_resolves_to_documented_class(self):
        self.registry.define_class(Standalone)
        _method(self.registry, "IO", "use", lambda d: d.param("item", "Standalone"))
        param = self.registry.get_method_description("IO#use").plain_params[0]
        assert param.validate(Standalone())
        assert param.validator.description == "Must be a Standalone"

    def test_return_object_of_documented_class_pulls_properties(self):
        self.registry.define_class("User", evaluate(lambda d: d.property("name", str, "User name")))
        _method(self.registry, "Api", "me", lambda d: d.returns(object_of="User", desc="Current user"))
        returns = self.registry.query("1.0", "Api", "me")["docs"]["classes"]["Api"]["methods"][0]["returns"]
        assert returns["description"] == "Current user"
        assert returns["object"]["meta"] == "object_of"
        assert returns["object"]["class"] == "User"
        assert [p["name"] for p in returns["object"]["data"]] == ["name"]

    def test_return_forward_reference_resolves_at_query_time(self):
        _method(self.registry, "Api", "me", lambda d: d.returns("User"))
        self.registry.define_class("User", evaluate(lambda d: d.property("id", int)))
        returns = self.registry.get_method_description("Api#me").returns.to_dict()
        assert returns["object"]["data"][0]["name"] == "id"

    def test_return_array_and_enum_shapes(self):
        _method(self.registry, "Api", "names", lambda d: d.returns(array_of=str))
        _method(self.registry, "Api", "mode", lambda d: d.returns(one_of=["a", "b"]))
        _method(self.registry, "Api", "plain", lambda d: d)
        api = self.registry.get_class_description("Api")
        assert api.method_description("names").returns.to_dict()["object"] == {
            "meta": "array_of",
            "class": "list",
            "data": "str",
        }
        assert api.method_description("mode").returns.to_dict()["object"]["data"] == ["a", "b"]
        assert api.method_description("plain").returns.to_dict()["object"] == {
            "meta": "object_of",
            "class": "object",
            "data": None,
        }

    def test_return_dict_with_block(self):
        _method(self.registry, "Api", "stats", lambda d: d.returns(dict, lambda r: r.param("count", int)))
        data = self.registry.get_method_description("Api#stats").returns.to_dict()["object"]["data"]
        assert [p["fullName"] for p in data] == ["count"]

    def test_see_links_resolve_to_doc_urls(self):
        _method(self.registry, "IO", "print", lambda d: d)
        _method(self.registry, "IO", "puts", lambda d: d.see("print").see("IO#print", "Same thing"))
        see = self.registry.get_method_description("IO#puts").to_dict()["see"]
        assert see == [
            {"link": "/apidoc/1.0/all/IO/print", "description": None},
            {"link": "/apidoc/1.0/all/IO/print", "description": "Same thing"},
        ]

    def test_dangling_see_link_raises_at_query_time(self):
        _method(self.registry, "IO", "puts", lambda d: d.see("Ghost#boo"))
        with pytest.raises(UnresolvedReference) as excinfo:
            self.registry.query("1.0", "IO")
        assert "Ghost#boo" in str(excinfo.value)

    def test_dangling_return_type_raises_at_query_time(self):
        _method(self.registry, "Api", "me", lambda d: d.returns("NoSuchEntity"))
        with pytest.raises(UnresolvedReference):
            self.registry.query("1.0", "Api")


class TestGroups:
    """Reusable parameter/property groups."""

    def setup_method(self):
        self.registry = DocRegistry()

    def test_group_and_inline_hash_merge(self):
        self.registry.define_group(
            "param", "Net", "connection", lambda g: g.param("options", dict, lambda o: o.param("name", str))
        )
        _method(
            self.registry,
            "Net",
            "connect",
            lambda d: d.param_group("connection").param("options", dict, lambda o: o.param("timeout", int)),
        )
        method = self.registry.get_method_description("Net#connect")
        assert [p.name for p in method.plain_params] == ["options"]
        assert [p.name for p in method.plain_params[0].validator.sub_params] == ["name", "timeout"]

    def test_group_lookup_walks_class_chain_then_global(self):
        self.registry.define_group("param", Base, "paging", lambda g: g.optional("page", int))
        self.registry.define_group("param", None, "verbose", lambda g: g.optional("verbose", bool))
        _method(self.registry, GrandChild, "list", lambda d: d.param_group("paging").param_group("verbose"))
        method = self.registry.get_method_description(GrandChild, "list")
        assert [p.name for p in method.plain_params] == ["page", "verbose"]
        assert method.plain_params[0].options["param_group"]["name"] == "paging"

    def test_group_meta_propagates(self):
        self.registry.define_group("param", None, "auth", lambda g: g.param("token", str))
        _method(self.registry, "Api", "call", lambda d: d.param_group("auth", meta={"secret": True}))
        param = self.registry.get_method_description("Api#call").plain_params[0]
        assert param.metadata == {"secret": True}

    def test_undefined_group(self):
        with pytest.raises(UndefinedGroup):
            _method(self.registry, "Api", "call", lambda d: d.param_group("nope"))

    def test_group_redefinition_in_one_build(self):
        self.registry.define_group("param", None, "auth", lambda g: g)
        with pytest.raises(MultipleDefinition):
            self.registry.define_group("param", None, "auth", lambda g: g)

    def test_property_groups(self):
        self.registry.define_group("prop", None, "geometry", lambda g: g.property("width", int))
        self.registry.define_class("Window", evaluate(lambda d: d.prop_group("geometry")))
        assert [p.name for p in self.registry.get_class_description("Window").properties] == ["width"]


class TestLoadAndReload:
    """Two-phase build, best-effort load and atomic reload."""

    @staticmethod
    def _declarations():
        return [
            MethodDeclaration("Net", name="connect", body=lambda d: d.param_group("conn").see("Net#close")),
            MethodDeclaration("Net", name="close", body=lambda d: d.short("Close")),
            ClassDeclaration("Net", body=lambda d: d.short("Networking").tags("net")),
            GroupDeclaration(kind="param", scope="Net", name="conn", block=lambda g: g.param("host", str)),
            MethodUpdate("Net", name="close", body=lambda d: d.optional("force", bool)),
        ]

    def test_load_orders_groups_classes_methods_updates(self):
        registry = DocRegistry()
        failures = registry.load(self._declarations())
        assert failures == []
        net = registry.get_class_description("Net")
        assert net.short_description == "Networking"
        assert [p.name for p in net.method_description("connect").plain_params] == ["host"]
        assert [p.name for p in net.method_description("close").plain_params] == ["force"]

    def test_load_is_best_effort(self, caplog):
        registry = DocRegistry()
        failures = registry.load(
            [
                MethodDeclaration("Api", name="bad", body=lambda d: d.param("x", 42)),
                MethodDeclaration("Api", name="good", body=lambda d: d.param("x", int)),
            ]
        )
        assert len(failures) == 1
        assert isinstance(failures[0], BuildFailure)
        assert failures[0].target == "Api#bad"
        assert isinstance(failures[0].error, ValidatorNotFound)
        assert failures[0].to_dict()["error"] == "ValidatorNotFound"
        assert registry.failures == failures
        assert registry.get_method_description("Api#good") is not None
        assert "Failed to build documentation for Api#bad" in caplog.text

    def test_reload_is_idempotent(self):
        registry = DocRegistry(source=self._declarations)
        registry.reload()
        first = json.dumps(registry.query("1.0"))
        registry.reload()
        assert json.dumps(registry.query("1.0")) == first

    def test_reload_replaces_state(self):
        records = [MethodDeclaration("Old", name="run")]
        registry = DocRegistry(source=lambda: records)
        registry.reload()
        records[:] = [MethodDeclaration("New", name="run")]
        registry.reload()
        assert registry.has_docs("1.0", "New")
        assert not registry.has_docs("1.0", "Old")

    def test_failed_reload_keeps_previous_state(self):
        calls = []

        def source():
            calls.append(1)
            if len(calls) > 1:
                raise RuntimeError("annotation source exploded")
            return [MethodDeclaration("Net", name="close")]

        registry = DocRegistry(source=source)
        registry.reload()
        with pytest.raises(RuntimeError):
            registry.reload()
        assert registry.get_method_description("Net#close") is not None

    def test_readers_see_old_snapshot_during_reload(self):
        observed = {}

        def source():
            reader = threading.Thread(
                target=lambda: observed.update(other=registry.has_docs("1.0", "Old"))
            )
            reader.start()
            reader.join()
            observed["builder"] = registry.has_docs("1.0", "Old")
            return [MethodDeclaration("New", name="run")]

        registry = DocRegistry()
        registry.load([MethodDeclaration("Old", name="run")])
        registry.source = source
        registry.reload()
        assert observed == {"other": True, "builder": False}
        assert registry.has_docs("1.0", "New")

    def test_load_documentation_builds_once(self):
        calls = []
        registry = DocRegistry(source=lambda: calls.append(1) or [])
        registry.load_documentation()
        registry.load_documentation()
        assert calls == [1]

    def test_reset_drops_everything(self):
        registry = DocRegistry(source=lambda: [MethodDeclaration("Net", name="close", body=lambda d: d.param_group("nope"))])
        registry.load_documentation()
        assert registry.has_docs() is False
        assert len(registry.failures) == 1
        registry.define_method("Net", "open", evaluate(lambda d: d))

        registry.reset()
        assert registry.has_docs() is False
        assert registry.failures == []
        assert registry.state.journal == []

        registry.load_documentation()
        assert len(registry.failures) == 1

    def test_global_registry(self):
        set_registry(None)
        try:
            assert get_registry() is get_registry()
        finally:
            set_registry(None)


class TestSnapshots:
    """Writers swap in a new snapshot; readers keep the one they started with."""

    def test_define_during_query_keeps_the_reader_snapshot(self):
        writes = []

        def translate(text, locale):
            if not writes:
                writes.append("late")
                writer = threading.Thread(
                    target=lambda: registry.define_method("IO", "late", evaluate(lambda d: d.short("Late")))
                )
                writer.start()
                writer.join()
            return text

        registry = DocRegistry(config=Configuration(translate=translate))
        registry.define_class("IO", evaluate(lambda d: d.short("IO")))
        _method(registry, "IO", "puts", lambda d: d.short("Print"))
        _method(registry, "IO", "print", lambda d: d.short("Print"))

        methods = registry.query("1.0", "IO")["docs"]["classes"]["IO"]["methods"]
        assert writes == ["late"]
        assert [method["name"] for method in methods] == ["puts", "print"]

        methods = registry.query("1.0", "IO")["docs"]["classes"]["IO"]["methods"]
        assert [method["name"] for method in methods] == ["puts", "print", "late"]

    def test_concurrent_defines_and_queries(self):
        registry = DocRegistry()
        registry.define_class("IO", evaluate(lambda d: d.short("IO")))
        errors = []

        def writer():
            for index in range(20):
                registry.define_method("IO", f"m{index}", evaluate(lambda d: d.param("text", str)))

        def reader():
            try:
                for _ in range(50):
                    registry.query("1.0", "IO")
            except Exception as exc:  # collected for the assertion below
                errors.append(exc)

        threads = [threading.Thread(target=writer)] + [threading.Thread(target=reader) for _ in range(3)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(registry.get_class_description("IO").methods) == 20

    def test_old_handles_render_against_their_snapshot(self):
        registry = DocRegistry()
        _method(registry, "IO", "print", lambda d: d)
        _method(registry, "IO", "puts", lambda d: d.see("IO#print"))
        old = registry.get_class_description("IO")

        registry.remove_method("IO", "print")

        assert registry.get_class_description("IO") is not old
        assert [method["name"] for method in old.to_dict()["methods"]] == ["print", "puts"]
        assert old.method_description("puts").to_dict()["see"][0]["link"] == "/apidoc/1.0/all/IO/print"
        with pytest.raises(UnresolvedReference):
            registry.query("1.0", "IO")

    def test_incremental_writes_keep_load_failures(self):
        registry = DocRegistry()
        registry.load([MethodDeclaration("Api", name="bad", body=lambda d: d.param_group("nope"))])
        registry.define_method("Api", "good", evaluate(lambda d: d))
        registry.define_method("Api", "other", evaluate(lambda d: d))
        assert [failure.target for failure in registry.failures] == ["Api#bad"]
        assert registry.get_method_description("Api#bad") is None
        assert sorted(registry.get_class_description("Api").methods) == ["good", "other"]


class TestQuery:
    """The camelCase documentation tree."""

    def setup_method(self):
        self.registry = DocRegistry(config=Configuration(app_name="Console DSL", copyright="ACME"))
        self.registry.define_class(
            "IO",
            evaluate(lambda d: d.short("Input/output").sections(only=["io"]).meta({"stable": True})),
        )
        _method(
            self.registry,
            "IO",
            "puts",
            lambda d: d.short("Print").param("text", str, "Text").tags("print"),
        )
        self.registry.define_class("Math", evaluate(lambda d: d.short("Math helpers")))

    def test_version_tree(self):
        docs = self.registry.query("1.0")["docs"]
        assert docs["name"] == "Console DSL"
        assert docs["copyright"] == "ACME"
        assert docs["docUrl"] == "/apidoc/1.0"
        assert list(docs["classes"]) == ["IO", "Math"]

        io = docs["classes"]["IO"]
        assert io["id"] == "IO"
        assert io["docUrl"] == "/apidoc/1.0/IO"
        assert io["shortDescription"] == "Input/output"
        assert io["version"] == "1.0"
        assert io["metadata"] == {"stable": True}
        assert io["sections"] == ["io"]
        method = io["methods"][0]
        assert method["docUrl"] == "/apidoc/1.0/IO/puts"
        assert method["params"][0]["fullName"] == "text"
        assert method["tags"] == ["print"]
        assert set(method) == {
            "docUrl",
            "name",
            "fullDescription",
            "shortDescription",
            "params",
            "raises",
            "returns",
            "metadata",
            "see",
            "show",
            "examples",
            "aliases",
            "signature",
            "deprecated",
            "tags",
        }

    def test_class_and_method_queries(self):
        classes = self.registry.query("1.0", "IO", "puts")["docs"]["classes"]
        assert list(classes) == ["IO"]
        assert [m["name"] for m in classes["IO"]["methods"]] == ["puts"]

    def test_unmatched_queries_return_empty_tree(self):
        for args in (("9.9", "Ghost"), ("1.0", "Ghost"), ("1.0", "IO", "missing"), ("9.9",)):
            tree = self.registry.query(*args)
            assert tree["docs"]["classes"] == {}
            assert tree["docs"]["name"] == "Console DSL"

    def test_section_filter(self):
        assert list(self.registry.query("1.0", section="io")["docs"]["classes"]) == ["IO", "Math"]
        assert list(self.registry.query("1.0", section="math")["docs"]["classes"]) == ["Math"]
        io = self.registry.query("1.0", "IO", section="io")["docs"]["classes"]["IO"]
        assert io["docUrl"] == "/apidoc/1.0/io/IO"

    def test_url_prefix_and_version_in_url(self):
        tree = self.registry.query("1.0", "IO", url_prefix="/app")
        assert tree["docs"]["classes"]["IO"]["docUrl"] == "/app/apidoc/1.0/IO"

        registry = DocRegistry(config=Configuration(version_in_url=False, doc_base_url="/docs"))
        _method(registry, "IO", "puts", lambda d: d)
        method = registry.query("1.0", "IO")["docs"]["classes"]["IO"]["methods"][0]
        assert method["docUrl"] == "/docs/IO/puts"

    @pytest.mark.parametrize("key", ["../etc", "a/b", "a\\b", ".."])
    def test_traversal_keys_are_rejected(self, key):
        with pytest.raises(InvalidQueryKey):
            self.registry.query(key)
        with pytest.raises(InvalidQueryKey):
            self.registry.query("1.0", key)
        with pytest.raises(InvalidQueryKey):
            self.registry.query("1.0", "IO", "puts", section=key)

    def test_check_query_key_accepts_plain_keys(self):
        check_query_key(None)
        check_query_key("1.0")
        check_query_key("IO")

    def test_markup_and_translation(self):
        class Upper:
            def to_html(self, text):
                return f"<p>{text.upper()}</p>"

        config = Configuration(
            markup=Upper(),
            translate=lambda text, locale: f"[{locale}] {text}" if text else text,
        )
        registry = DocRegistry(config=config)
        registry.define_class("IO", evaluate(lambda d: d.desc("input").short("IO")))
        io = registry.query("1.0", "IO", lang="fr")["docs"]["classes"]["IO"]
        assert io["fullDescription"] == "[fr] <p>INPUT</p>"
        assert io["shortDescription"] == "[fr] IO"

    def test_method_tags_walk_the_class_chain(self):
        registry = DocRegistry()
        registry.define_class(Base, evaluate(lambda d: d.tags("base", "shared")))
        registry.define_class(Child, evaluate(lambda d: d.tags("child", "shared")))
        _method(registry, Child, "run", lambda d: d.tags("run", "base"))
        assert registry.get_method_description(Child, "run").tag_list == ["base", "shared", "child", "run"]

    def test_app_info_per_version(self):
        registry = DocRegistry(config=Configuration(app_info={"1.0": "Configured"}))
        registry.define_class("IO")
        assert registry.query("1.0")["docs"]["info"] == "Configured"
        registry.define_class("IO", evaluate(lambda d: d.app_info("Declared")))
        assert registry.query("1.0")["docs"]["info"] == "Declared"

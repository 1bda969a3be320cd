"""Declaration records and the builder DSL that produces them.

The registry is fed with *declaration records* in a two-phase build: an
annotation-collection step (see :mod:`apidoc_dsl.collect`, or any code that
constructs records directly) produces ``ClassDeclaration``,
``MethodDeclaration``, ``MethodUpdate`` and ``GroupDeclaration`` objects, then
:meth:`apidoc_dsl.registry.DocRegistry.load` turns them into descriptions.

A record either carries ready :class:`DSLData` or a *body*: a callable that
receives a :class:`DeclarationBuilder` and calls its DSL methods. Bodies are
evaluated when the registry builds the entity, so errors raised by a body are
attributed to that one entity.

Example body::

    def io_puts(d):
        (d.short("Print a line")
          .param("text", str, "Text to print")
          .optional("options", dict, "Print options",
                    lambda o: o.param("color", ["red", "blue"]))
          .returns(type(None))
          .raises(TypeError, "text is not a string")
          .see("IO#print"))

    MethodDeclaration(klass=IO, name="puts", body=io_puts)

Nested blocks (hash parameters, group bodies) are plain callables receiving a
fresh builder, so ``lambda b: b.param(...).param(...)`` works thanks to
chaining.
"""

from __future__ import annotations

from collections.abc import Callable as CallableABC
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from .errors import DSLError, DuplicateReturn, ValidatorNotFound
from .validators import Marker, to_validator_spec

Block = Callable[["DeclarationBuilder"], Any]

PARAM_KINDS = ("required", "optional", "keyword", "block", "rest")
RETURN_SHAPES = ("object_of", "array_of", "one_of", "param_group")


@dataclass
class ParamSpec:
    """One ``param``/``property`` call.

    ``spec`` is classified into the validator spec union when possible; a raw
    value nothing recognizes is kept as is so the engine reports it
    (``ValidatorNotFound``) when the owning entity is built.
    """

    name: str
    spec: Any = None
    description: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)
    block: Optional[Block] = None

    def __post_init__(self) -> None:
        self.name = str(self.name)
        if self.spec is not None:
            try:
                self.spec = to_validator_spec(self.spec)
            except ValidatorNotFound:
                pass


@dataclass
class GroupUse:
    """Splice point of a named parameter (``param``) or property (``prop``) group."""

    kind: str
    name: str
    scope: Any = None
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ReturnSpec:
    object_of: Any = None
    array_of: Any = None
    one_of: Any = None
    param_group: Optional[str] = None
    description: Optional[str] = None
    scope: Any = None
    block: Optional[Block] = None

    @property
    def shapes(self) -> List[str]:
        return [shape for shape in RETURN_SHAPES if getattr(self, shape) is not None]


@dataclass
class RaiseSpec:
    error: Any
    description: Optional[str] = None
    metadata: Any = None


@dataclass
class SeeSpec:
    link: str
    description: Optional[str] = None
    scope: Any = None


@dataclass
class DSLData:
    """Everything one declaration block said about a class or method."""

    name: Optional[str] = None
    class_name: Optional[str] = None
    short_description: Optional[str] = None
    description: Optional[str] = None
    dsl_versions: List[str] = field(default_factory=list)
    deprecated: bool = False
    meta: Any = None
    params: List[Union[ParamSpec, GroupUse]] = field(default_factory=list)
    properties: List[Union[ParamSpec, GroupUse]] = field(default_factory=list)
    raises: List[RaiseSpec] = field(default_factory=list)
    returns: Optional[ReturnSpec] = None
    see: List[SeeSpec] = field(default_factory=list)
    show: bool = True
    examples: List[Dict[str, Any]] = field(default_factory=list)
    sections: Optional[List[str]] = None
    tag_list: List[str] = field(default_factory=list)
    aliases: List[str] = field(default_factory=list)
    signature: Optional[List[str]] = None
    refs: List[str] = field(default_factory=list)
    app_info: Optional[str] = None
    dsl_base_url: Optional[str] = None


def _split_desc(desc_or_options: Any, options: Dict[str, Any]) -> Dict[str, Any]:
    if isinstance(desc_or_options, Mapping):
        options.update(desc_or_options)
    elif isinstance(desc_or_options, str):
        options["desc"] = desc_or_options
    elif desc_or_options is not None:
        raise DSLError("Expected a description or an options mapping as third argument")
    if "in_" in options:
        options["in"] = options.pop("in_")
    return options


def _flatten(values: Any) -> List[Any]:
    if values is None:
        return []
    if isinstance(values, (list, tuple, set)):
        flat: List[Any] = []
        for value in values:
            flat.extend(_flatten(value))
        return flat
    return [values]


class DeclarationBuilder:
    """Fluent DSL collecting one :class:`DSLData` record.

    Args:
        class_scope: The class (or module, or class key) being described; it
            is the default scope of ``param_group``/``prop_group`` lookups and
            of ``returns`` shapes.
    """

    def __init__(self, class_scope: Any = None) -> None:
        self.class_scope = class_scope
        self.data = DSLData()

    # -- common -----------------------------------------------------------

    def dsl_versions(self, *versions: str) -> "DeclarationBuilder":
        self.data.dsl_versions.extend(str(v) for v in _flatten(versions))
        return self

    dsl_version = dsl_versions

    def desc(self, description: Optional[str]) -> "DeclarationBuilder":
        self.data.description = description
        return self

    description = desc
    full_description = desc

    def short(self, short: Optional[str]) -> "DeclarationBuilder":
        self.data.short_description = short
        return self

    short_description = short

    def meta(self, meta: Any) -> "DeclarationBuilder":
        self.data.meta = meta
        return self

    def tags(self, *tags: str) -> "DeclarationBuilder":
        self.data.tag_list.extend(_flatten(tags))
        return self

    def deprecated(self, value: bool = True) -> "DeclarationBuilder":
        self.data.deprecated = value
        return self

    def show(self, show: bool) -> "DeclarationBuilder":
        self.data.show = show
        return self

    # -- parameters ---------------------------------------------------------

    def param(
        self,
        name: str,
        spec: Any = None,
        desc_or_options: Any = None,
        block: Optional[Block] = None,
        **options: Any,
    ) -> "DeclarationBuilder":
        """Describe a parameter.

        Example:
            >>> b = DeclarationBuilder()
            >>> _ = b.param("greeting", str, "arbitrary text", type="required")
            >>> b.data.params[0].options["desc"]
            'arbitrary text'

        A callable third argument is taken as the nested block, so
        ``param("options", dict, lambda o: o.param("color", str))`` works.
        """
        if block is None and callable(desc_or_options) and not isinstance(desc_or_options, Mapping):
            desc_or_options, block = None, desc_or_options
        options = _split_desc(desc_or_options, dict(options))
        options.setdefault("type", "required")
        if options["type"] not in PARAM_KINDS:
            raise DSLError(f"Unsupported parameter type {options['type']!r} for '{name}'")
        self.data.params.append(
            ParamSpec(name, spec, options.get("desc"), options, block)
        )
        return self

    def required(self, name, spec=None, desc_or_options=None, block=None, **options):
        options["type"] = "required"
        return self.param(name, spec, desc_or_options, block, **options)

    def optional(self, name, spec=None, desc_or_options=None, block=None, **options):
        options["type"] = "optional"
        return self.param(name, spec, desc_or_options, block, **options)

    def keyword(self, name, spec=None, desc_or_options=None, block=None, **options):
        options["type"] = "keyword"
        return self.param(name, spec, desc_or_options, block, **options)

    def block(self, desc_or_options=None, **options):
        """Describe the callable a method accepts (at most one per method)."""
        options["type"] = "block"
        name = options.pop("name", "block")
        return self.param(name, CallableABC, desc_or_options, None, **options)

    def rest(self, name, desc_or_options=None, **options):
        """Describe a ``*args`` style parameter."""
        options["type"] = "rest"
        options.setdefault("default", "empty list")
        return self.param(name, Marker.REST, desc_or_options, None, **options)

    list_ = rest
    splat = rest

    def param_group(self, name: str, scope: Any = None, **options: Any) -> "DeclarationBuilder":
        """Splice the parameter group ``name`` (looked up in ``scope``)."""
        self.data.params.append(GroupUse("param", name, scope, options))
        return self

    # -- methods ------------------------------------------------------------

    def method(self, name: str, desc: Optional[str] = None) -> "DeclarationBuilder":
        self.data.name = name
        self.data.short_description = desc
        return self

    def aliases(self, *names: str) -> "DeclarationBuilder":
        self.data.aliases = [str(n) for n in _flatten(names)]
        return self

    def signature(self, *signature: str) -> "DeclarationBuilder":
        self.data.signature = [str(s) for s in _flatten(signature)]
        return self

    def raises(self, error_or_options: Any, desc: Optional[str] = None, **options: Any) -> "DeclarationBuilder":
        """Describe a possible error.

        Accepts ``raises(ValueError, "bad value", meta=...)`` or a single
        mapping ``raises({"error": ValueError, "desc": "bad value"})``.
        """
        if isinstance(error_or_options, Mapping):
            spec = RaiseSpec(
                error=error_or_options.get("error"),
                description=error_or_options.get("desc") or error_or_options.get("description"),
                metadata=error_or_options.get("meta"),
            )
        else:
            spec = RaiseSpec(error=error_or_options, description=desc, metadata=options.get("meta"))
        if spec.error is None:
            raise DSLError(f"raises: no error given in {error_or_options!r}")
        self.data.raises.append(spec)
        return self

    def returns(
        self,
        retobj_or_options: Any = None,
        desc_or_options: Any = None,
        block: Optional[Block] = None,
        **options: Any,
    ) -> "DeclarationBuilder":
        """Describe the return shape.

        ``returns(User)`` is short for ``returns(object_of=User)``; the other
        shapes are ``array_of=``, ``one_of=`` and ``param_group=``. A block is
        allowed for ``dict`` objects only.
        """
        if self.data.returns is not None:
            raise DuplicateReturn()
        self.data.returns = self._return_spec(retobj_or_options, desc_or_options, block, options)
        return self

    def _return_spec(self, retobj_or_options, desc_or_options, block, options) -> ReturnSpec:
        if block is None and callable(desc_or_options) and not isinstance(desc_or_options, Mapping):
            desc_or_options, block = None, desc_or_options
        options = _split_desc(desc_or_options, dict(options))
        if isinstance(retobj_or_options, Mapping):
            options.update(retobj_or_options)
        elif retobj_or_options is not None:
            options.setdefault("object_of", retobj_or_options)
        spec = ReturnSpec(
            object_of=options.get("object_of"),
            array_of=options.get("array_of"),
            one_of=options.get("one_of"),
            param_group=options.get("param_group"),
            description=options.get("desc"),
            scope=options.get("scope", self.class_scope),
            block=block,
        )
        if block is not None and spec.object_of is not dict:
            raise DSLError("A block can be specified for a dict return type only")
        return spec

    def see(self, link: Any, description: Optional[str] = None, scope: Any = None) -> "DeclarationBuilder":
        """Reference another method (``"Class#method"`` or ``"version#Class#method"``)."""
        if isinstance(link, Mapping):
            description = link.get("desc") or link.get("description")
            scope = link.get("scope")
            link = link.get("link")
        if not link:
            raise DSLError("Bad use of see: a link is required")
        self.data.see.append(SeeSpec(str(link), description, scope))
        return self

    def example(self, example: str, desc_or_options: Any = None, **options: Any) -> "DeclarationBuilder":
        options = _split_desc(desc_or_options, dict(options))
        self.data.examples.append(
            {"example": example, "desc": options.get("desc"), "for": options.get("for")}
        )
        return self

    def example_for(self, method_name: str, example: str, desc_or_options: Any = None, **options: Any) -> "DeclarationBuilder":
        options = _split_desc(desc_or_options, dict(options))
        self.data.examples.append({"example": example, "desc": options.get("desc"), "for": method_name})
        return self

    # -- classes ------------------------------------------------------------

    def app_info(self, app_info: str) -> "DeclarationBuilder":
        self.data.app_info = app_info
        return self

    def dsl_base_url(self, url: str) -> "DeclarationBuilder":
        self.data.dsl_base_url = url
        return self

    def name(self, new_name: str) -> "DeclarationBuilder":
        self.data.class_name = new_name
        return self

    label = name

    def refs(self, *class_names: str) -> "DeclarationBuilder":
        self.data.refs = [str(n) for n in _flatten(class_names)]
        return self

    referenced_on = refs

    def sections(self, only: Any = None, except_: Any = None) -> "DeclarationBuilder":
        """Store ``only - except_`` as the declared section set."""
        only_list = _flatten(only) or ["all"]
        excluded = set(_flatten(except_))
        self.data.sections = [section for section in only_list if section not in excluded]
        return self

    def property(
        self,
        name: str,
        spec: Any = None,
        desc_or_options: Any = None,
        block: Optional[Block] = None,
        **options: Any,
    ) -> "DeclarationBuilder":
        """Describe a class-level property (documented like a parameter)."""
        if block is None and callable(desc_or_options) and not isinstance(desc_or_options, Mapping):
            desc_or_options, block = None, desc_or_options
        options = _split_desc(desc_or_options, dict(options))
        options.setdefault("type", "required")
        self.data.properties.append(ParamSpec(name, spec, options.get("desc"), options, block))
        return self

    prop = property

    def prop_group(self, name: str, scope: Any = None, **options: Any) -> "DeclarationBuilder":
        self.data.properties.append(GroupUse("prop", name, scope, options))
        return self


def evaluate(body: Optional[Block], class_scope: Any = None, short: Optional[str] = None) -> DSLData:
    """Run a declaration body against a fresh builder and return its data."""
    builder = DeclarationBuilder(class_scope=class_scope)
    if short is not None:
        builder.short(short)
    if body is not None:
        body(builder)
    return builder.data


@dataclass
class _Declaration:
    klass: Any
    body: Optional[Block] = field(default=None, kw_only=True)
    data: Optional[DSLData] = field(default=None, kw_only=True)
    short: Optional[str] = field(default=None, kw_only=True)

    def dsl_data(self) -> DSLData:
        if self.data is not None:
            return self.data
        return evaluate(self.body, self.klass, self.short)


@dataclass
class ClassDeclaration(_Declaration):
    """Class-level declaration (``apidoc_class``)."""


@dataclass
class MethodDeclaration(_Declaration):
    name: str = ""


@dataclass
class MethodUpdate(_Declaration):
    """Extends an already built method instead of redefining it."""

    name: str = ""


@dataclass
class GroupDeclaration:
    """Named, scoped, reusable parameter (``param``) or property (``prop``) block."""

    kind: str
    scope: Any
    name: str
    block: Block


Declaration = Union[ClassDeclaration, MethodDeclaration, MethodUpdate, GroupDeclaration]

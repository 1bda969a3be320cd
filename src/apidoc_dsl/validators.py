"""Validator engine: raw specification -> executable validator.

A parameter declaration carries a *raw specification* (a Python type, a
compiled pattern, a list of allowed values, a predicate, a :class:`Marker`,
or a type name that may not be importable yet). At the declaration boundary
the raw value is classified into a tagged union (``TypeSpec``,
``PatternSpec``, ``EnumSpec``, ``CallableSpec``, ``MarkerSpec``,
``NamedSpec``) by :func:`to_validator_spec`. The :class:`ValidatorEngine` then
performs a first-match search over its plugin table of validator variants.

Probe order is LIFO with respect to registration: a variant registered later
is tried first, so a more specific variant can shadow a general one. Every
probe (``Variant.build``) returns ``None`` for "no match" and never raises;
only :meth:`ValidatorEngine.build` raises :class:`ValidatorNotFound`.

Built-in registration order (probe order is the reverse)::

    Lazy, Type, Regexp, Enum, Array, ArrayClass, Proc, Hash,
    Decimal, Number, Boolean, Rest, Nested

Example:
    >>> engine = ValidatorEngine()
    >>> validator = engine.build(None, [1, 2, 3])
    >>> validator.validate(2)
    True
    >>> validator.description
    'Must be one of: <code>1</code>, <code>2</code>, <code>3</code>.'

Extending the table::

    class SlugValidator(BaseValidator):
        @classmethod
        def build(cls, engine, param, spec, options, block):
            if isinstance(spec, MarkerSpec) and spec.marker == "slug":
                return cls(param, engine)
            return None
        ...

    engine.register(SlugValidator)   # probed before every built-in
"""

from __future__ import annotations

import builtins
import enum
import importlib
import inspect
import logging
import numbers
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple, Type, Union

from .config import Configuration
from .errors import ParamInvalid, ValidatorMergeError, ValidatorNotFound

logger = logging.getLogger(__name__)


class Marker(str, enum.Enum):
    """Convenience markers for common constraints."""

    DECIMAL = "decimal"
    NUMBER = "number"
    BOOLEAN = "boolean"
    REST = "rest"


@dataclass(frozen=True)
class TypeSpec:
    type: type


@dataclass(frozen=True)
class PatternSpec:
    pattern: "re.Pattern[str]"


@dataclass(frozen=True)
class EnumSpec:
    values: Tuple[Any, ...]


@dataclass(frozen=True)
class CallableSpec:
    func: Callable[[Any], Any]


@dataclass(frozen=True)
class MarkerSpec:
    marker: Marker


@dataclass(frozen=True)
class NamedSpec:
    """Deferred type name, resolved on first use."""

    name: str


ValidatorSpec = Union[TypeSpec, PatternSpec, EnumSpec, CallableSpec, MarkerSpec, NamedSpec]
_SPEC_TYPES = (TypeSpec, PatternSpec, EnumSpec, CallableSpec, MarkerSpec, NamedSpec)


def to_validator_spec(raw: Any) -> ValidatorSpec:
    """Classify a raw specification into the tagged union.

    Raises:
        ValidatorNotFound: If ``raw`` has no recognizable shape.
    """
    if isinstance(raw, _SPEC_TYPES):
        return raw
    if isinstance(raw, Marker):
        return MarkerSpec(raw)
    if isinstance(raw, type):
        return TypeSpec(raw)
    if isinstance(raw, re.Pattern):
        return PatternSpec(raw)
    if isinstance(raw, (list, tuple)):
        return EnumSpec(tuple(raw))
    if isinstance(raw, (set, frozenset)):
        return EnumSpec(tuple(sorted(raw, key=repr)))
    if isinstance(raw, str):
        return NamedSpec(raw)
    if callable(raw):
        return CallableSpec(raw)
    raise ValidatorNotFound(raw)


def _type_name(value: Any) -> str:
    if isinstance(value, type):
        return value.__name__
    return str(value)


def _code_list(values: Iterable[Any]) -> str:
    return ", ".join(f"<code>{value}</code>" for value in values)


class BaseValidator:
    """Base class of every validator variant.

    Subclasses implement the ``build`` classmethod (the probe) and
    :meth:`validate`; they usually override :attr:`description` and
    :attr:`expected_type`.
    """

    def __init__(self, param_description: Any, engine: "ValidatorEngine"):
        self.param_description = param_description
        self.engine = engine

    @classmethod
    def build(
        cls,
        engine: "ValidatorEngine",
        param: Any,
        spec: ValidatorSpec,
        options: Dict[str, Any],
        block: Optional[Callable[..., Any]],
    ) -> Optional["BaseValidator"]:
        raise NotImplementedError

    @property
    def kind(self) -> str:
        return type(self).__name__

    @property
    def param_name(self) -> Optional[str]:
        return getattr(self.param_description, "name", None)

    def validate(self, value: Any) -> bool:
        raise NotImplementedError

    def valid(self, value: Any) -> bool:
        """Return True or raise :class:`ParamInvalid`."""
        if self.validate(value):
            return True
        raise ParamInvalid(self.param_name, value, self.description)

    @property
    def description(self) -> str:
        raise NotImplementedError

    @property
    def expected_type(self) -> str:
        return "string"

    @property
    def sub_params(self) -> Optional[List[Any]]:
        return None

    def merge_with(self, other: "BaseValidator") -> "BaseValidator":
        if type(self) is type(other):
            return self
        raise ValidatorMergeError(self, other)

    def __str__(self) -> str:
        return self.description

    def __repr__(self) -> str:
        return f"<{self.kind} param={self.param_name!r}>"


class LazyValidator(BaseValidator):
    """Unresolved type reference.

    Holds the name verbatim; :meth:`resolve` asks the engine for a type with
    that name and builds the real validator. It yields ``None`` while the name
    cannot be resolved, so forward references never fail at declaration time.
    """

    def __init__(self, param_description, engine, name, options, block):
        super().__init__(param_description, engine)
        self.name = name
        self.options = options
        self.block = block

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if not isinstance(spec, NamedSpec):
            return None
        return cls(param, engine, spec.name, options, block)

    def resolve(self) -> Optional[BaseValidator]:
        resolved = self.engine.resolve_type(self.name)
        if resolved is None:
            logger.debug(f"Deferred type '{self.name}' for {self.param_name!r} is not resolvable yet")
            return None
        return self.engine.find(self.param_description, TypeSpec(resolved), self.options, self.block)

    def validate(self, value):
        validator = self.resolve()
        return validator.validate(value) if validator else False

    @property
    def description(self) -> str:
        return f"Must be a {self.name}"

    def __repr__(self) -> str:
        return f"<{self.kind} name={self.name!r} param={self.param_name!r}>"


class TypeValidator(BaseValidator):
    def __init__(self, param_description, engine, type_):
        super().__init__(param_description, engine)
        self.type = type_

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if not isinstance(spec, TypeSpec):
            return None
        if issubclass(spec.type, dict) and block is not None:
            return None
        return cls(param, engine, spec.type)

    def validate(self, value):
        if value is None:
            return False
        return isinstance(value, self.type)

    @property
    def description(self):
        return f"Must be a {self.type.__name__}"

    @property
    def expected_type(self):
        if issubclass(self.type, Mapping):
            return "hash"
        if issubclass(self.type, (list, tuple)):
            return "array"
        if issubclass(self.type, bool):
            return "boolean"
        if issubclass(self.type, numbers.Number):
            return "numeric"
        return "string"


class RegexpValidator(BaseValidator):
    def __init__(self, param_description, engine, pattern):
        super().__init__(param_description, engine)
        self.pattern = pattern

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if isinstance(spec, PatternSpec):
            return cls(param, engine, spec.pattern)
        return None

    def validate(self, value):
        return isinstance(value, str) and self.pattern.search(value) is not None

    @property
    def description(self):
        return f"Must match regular expression <code>/{self.pattern.pattern}/</code>."

    @property
    def expected_type(self):
        return "regexp"


class EnumValidator(BaseValidator):
    """Value must be one of a fixed list."""

    def __init__(self, param_description, engine, values):
        super().__init__(param_description, engine)
        self.values = list(values)

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if isinstance(spec, EnumSpec):
            return cls(param, engine, spec.values)
        return None

    def validate(self, value):
        return value in self.values

    @property
    def description(self):
        return f"Must be one of: {_code_list(self.values)}."


class ArrayValidator(BaseValidator):
    """List whose items optionally match a type (``of``) or enum (``in``).

    ``in`` may be a zero-argument callable, evaluated on first use.
    """

    def __init__(self, param_description, engine, options):
        super().__init__(param_description, engine)
        self.items_type = options.get("of")
        self._items_enum = options.get("in")

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if not isinstance(spec, TypeSpec) or spec.type not in (list, tuple):
            return None
        if block is not None:
            return None
        return cls(param, engine, options)

    @property
    def items_enum(self) -> Optional[List[Any]]:
        if callable(self._items_enum):
            self._items_enum = list(self._items_enum())
        return self._items_enum

    def validate(self, values):
        values = [] if values is None else values
        if not isinstance(values, (list, tuple, set, frozenset)):
            return False
        return all(self._validate_item(item) for item in values)

    def _validate_item(self, value) -> bool:
        return self._valid_type(value) and self._valid_value(value)

    def _valid_type(self, value) -> bool:
        if self.items_type is None:
            return True
        item_validator = self.engine.find(None, self.items_type)
        if item_validator is not None:
            return bool(item_validator.validate(value))
        return isinstance(self.items_type, type) and isinstance(value, self.items_type)

    def _valid_value(self, value) -> bool:
        items_enum = self.items_enum
        if items_enum:
            return value in items_enum
        return True

    @property
    def items_description(self) -> str:
        if self.items_enum:
            return repr(list(self.items_enum))
        if self.items_type is not None:
            return _type_name(self.items_type)
        return "any type"

    @property
    def description(self):
        return f"Must be an array of {self.items_description}"

    @property
    def expected_type(self):
        return "array"


class ArrayClassValidator(BaseValidator):
    """Value's class must be one of a list of classes."""

    def __init__(self, param_description, engine, classes):
        super().__init__(param_description, engine)
        self.classes = list(classes)

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if not isinstance(spec, EnumSpec) or not spec.values or block is not None:
            return None
        if not all(isinstance(value, type) for value in spec.values):
            return None
        return cls(param, engine, spec.values)

    def validate(self, value):
        return type(value) in self.classes

    @property
    def description(self):
        return f"Must be one of: {', '.join(_type_name(c) for c in self.classes)}."


def _single_argument(func: Callable[..., Any]) -> bool:
    try:
        signature = inspect.signature(func)
    except (TypeError, ValueError):
        return False
    positional = [
        p
        for p in signature.parameters.values()
        if p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD)
    ]
    required = [p for p in positional if p.default is p.empty]
    return len(required) == 1 or (not required and len(positional) >= 1)


class ProcValidator(BaseValidator):
    """Custom predicate.

    The callable receives the value and returns a truthy value when it is
    valid, or a string explaining why it is not.
    """

    def __init__(self, param_description, engine, func):
        super().__init__(param_description, engine)
        self.func = func
        self._help: Optional[str] = None

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if not isinstance(spec, CallableSpec) or not _single_argument(spec.func):
            return None
        return cls(param, engine, spec.func)

    def validate(self, value):
        result = self.func(value)
        if isinstance(result, str):
            self._help = result
            return False
        return bool(result)

    def valid(self, value):
        self._help = None
        if self.validate(value):
            return True
        raise ParamInvalid(self.param_name, value, self._help or self.description)

    @property
    def description(self):
        doc = inspect.getdoc(self.func)
        if doc:
            return doc.splitlines()[0]
        return f"Must satisfy {getattr(self.func, '__name__', 'custom check')}"


class HashValidator(BaseValidator):
    """Mapping whose keys are described by nested parameters.

    The nested block is evaluated against a builder tied to the owning
    parameter. Only keys present in the value are validated; presence of
    required keys is left to the validation caller.
    """

    def __init__(self, param_description, engine, block, group_scope=None):
        super().__init__(param_description, engine)
        self.block = block
        self.group_scope = group_scope
        self._sub_params: List[Any] = self._evaluate(block)
        self._index()

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if not isinstance(spec, TypeSpec) or not issubclass(spec.type, dict):
            return None
        if not callable(block):
            return None
        return cls(param, engine, block, _group_scope(options))

    def _evaluate(self, block) -> List[Any]:
        # parameters/declarations import this module
        from .declarations import DeclarationBuilder
        from .parameters import build_parameters

        param = self.param_description
        owner = getattr(param, "owner", None)
        scope = self.group_scope if self.group_scope is not None else getattr(owner, "class_scope", None)
        builder = DeclarationBuilder(class_scope=scope)
        block(builder)
        return build_parameters(
            owner, builder.data.params, parent=param, scope=scope, engine=self.engine
        )

    def _index(self) -> None:
        self._hash_params = {param.name: param for param in self._sub_params}

    @property
    def sub_params(self):
        return self._sub_params

    def validate(self, value):
        if not isinstance(value, Mapping):
            return False
        if self.engine.config.should_validate_values:
            for name, param in self._hash_params.items():
                if name in value:
                    param.validate(value[name])
        return True

    @property
    def description(self):
        return "Must be a Hash"

    @property
    def expected_type(self):
        return "hash"

    def merge_with(self, other):
        if not isinstance(other, HashValidator):
            return super().merge_with(other)
        from .parameters import unify

        merged = unify(self._sub_params + other.sub_params)
        for param in merged:
            param.parent = self.param_description
        self._sub_params = merged
        self._index()
        return self


class DecimalValidator(BaseValidator):
    _PATTERN = re.compile(r"[-+]?[0-9]+([,.][0-9]+)?")

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if isinstance(spec, MarkerSpec) and spec.marker == Marker.DECIMAL:
            return cls(param, engine)
        return None

    def validate(self, value):
        return value is not None and self._PATTERN.fullmatch(str(value)) is not None

    @property
    def description(self):
        return "Must be a decimal number"


class NumberValidator(BaseValidator):
    _PATTERN = re.compile(r"0|[1-9]\d*")

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if isinstance(spec, MarkerSpec) and spec.marker == Marker.NUMBER:
            return cls(param, engine)
        return None

    def validate(self, value):
        if isinstance(value, bool):
            return False
        return value is not None and self._PATTERN.fullmatch(str(value)) is not None

    @property
    def description(self):
        return "Must be a number"

    @property
    def expected_type(self):
        return "numeric"


class BooleanValidator(BaseValidator):
    VALUES = ("true", "false", "1", "0")

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if isinstance(spec, MarkerSpec) and spec.marker == Marker.BOOLEAN:
            return cls(param, engine)
        return None

    def validate(self, value):
        if isinstance(value, bool):
            return True
        return str(value) in self.VALUES

    @property
    def description(self):
        return f"Must be one of: {_code_list(self.VALUES)}"

    @property
    def expected_type(self):
        return "boolean"


class RestValidator(BaseValidator):
    """Splat parameter; any values are accepted."""

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if isinstance(spec, MarkerSpec) and spec.marker == Marker.REST:
            return cls(param, engine)
        return None

    def validate(self, value):
        return True

    @property
    def description(self):
        return "Must be a list of values"

    @property
    def expected_type(self):
        return "list"


class NestedValidator(BaseValidator):
    """List of mappings sharing one nested parameter block."""

    def __init__(self, param_description, engine, block, group_scope=None):
        super().__init__(param_description, engine)
        self.validator = HashValidator(param_description, engine, block, group_scope)

    @classmethod
    def build(cls, engine, param, spec, options, block):
        if not isinstance(spec, TypeSpec) or spec.type not in (list, tuple):
            return None
        if not callable(block):
            return None
        return cls(param, engine, block, _group_scope(options))

    def validate(self, value):
        value = [] if value is None else value
        if not isinstance(value, (list, tuple)):
            return False
        return all(self.validator.validate(child) for child in value)

    @property
    def description(self):
        return "Must be an Array of nested elements"

    @property
    def expected_type(self):
        return "array"

    @property
    def sub_params(self):
        return self.validator.sub_params

    def merge_with(self, other):
        if isinstance(other, NestedValidator):
            self.validator.merge_with(other.validator)
            return self
        return super().merge_with(other)


def _group_scope(options: Dict[str, Any]) -> Any:
    group = options.get("param_group") or {}
    return group.get("scope")


DEFAULT_VARIANTS: Tuple[Type[BaseValidator], ...] = (
    LazyValidator,
    TypeValidator,
    RegexpValidator,
    EnumValidator,
    ArrayValidator,
    ArrayClassValidator,
    ProcValidator,
    HashValidator,
    DecimalValidator,
    NumberValidator,
    BooleanValidator,
    RestValidator,
    NestedValidator,
)


def _import_type(name: str) -> Optional[type]:
    candidate = getattr(builtins, name, None)
    if isinstance(candidate, type):
        return candidate
    module_name, _, attr = name.rpartition(".")
    if not module_name:
        return None
    try:
        module = importlib.import_module(module_name)
    except ImportError:
        return None
    candidate = getattr(module, attr, None)
    return candidate if isinstance(candidate, type) else None


class ValidatorEngine:
    """Ordered plugin table of validator variants.

    Args:
        variants: Variants registered in order (defaults to
            :data:`DEFAULT_VARIANTS`). Probing happens in reverse order.
        config: Configuration consulted by validators (``validate_value``).
        type_resolver: Optional callable mapping a type name to a type; tried
            before builtins and dotted-path imports when resolving deferred
            validators.
    """

    def __init__(
        self,
        variants: Optional[Iterable[Type[BaseValidator]]] = None,
        config: Optional[Configuration] = None,
        type_resolver: Optional[Callable[[str], Optional[type]]] = None,
    ) -> None:
        self.config = config or Configuration()
        self.type_resolver = type_resolver
        self.types: Dict[str, type] = {}
        self._variants: List[Type[BaseValidator]] = []
        for variant in DEFAULT_VARIANTS if variants is None else variants:
            self.register(variant)

    def register(self, variant: Type[BaseValidator]) -> None:
        """Add a variant; it is probed before every variant registered so far."""
        self._variants.insert(0, variant)

    @property
    def variants(self) -> Tuple[Type[BaseValidator], ...]:
        """Variants in probe order."""
        return tuple(self._variants)

    def register_type(self, name: str, type_: type) -> None:
        self.types[name] = type_

    def resolve_type(self, name: str) -> Optional[type]:
        if name in self.types:
            return self.types[name]
        if self.type_resolver is not None:
            resolved = self.type_resolver(name)
            if resolved is not None:
                return resolved
        return _import_type(name)

    def find(
        self,
        param: Any,
        raw_spec: Any,
        options: Optional[Dict[str, Any]] = None,
        block: Optional[Callable[..., Any]] = None,
    ) -> Optional[BaseValidator]:
        """Return the first matching validator, or ``None``."""
        try:
            spec = to_validator_spec(raw_spec)
        except ValidatorNotFound:
            return None
        options = options or {}
        for variant in self._variants:
            validator = variant.build(self, param, spec, options, block)
            if validator is not None:
                return validator
        return None

    def build(
        self,
        param: Any,
        raw_spec: Any,
        options: Optional[Dict[str, Any]] = None,
        block: Optional[Callable[..., Any]] = None,
    ) -> BaseValidator:
        """Like :meth:`find` but raise :class:`ValidatorNotFound` on no match."""
        validator = self.find(param, raw_spec, options, block)
        if validator is None:
            raise ValidatorNotFound(raw_spec, getattr(param, "name", None))
        return validator


_default_engine: Optional[ValidatorEngine] = None


def get_default_engine() -> ValidatorEngine:
    """Return the process-wide engine used by standalone parameters."""
    global _default_engine
    if _default_engine is None:
        _default_engine = ValidatorEngine()
    return _default_engine


def find_validator(
    spec: Any,
    options: Optional[Dict[str, Any]] = None,
    block: Optional[Callable[..., Any]] = None,
    param: Any = None,
) -> BaseValidator:
    """Build a validator with the default engine (raises on no match)."""
    return get_default_engine().build(param, spec, options, block)

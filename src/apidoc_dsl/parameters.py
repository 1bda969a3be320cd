"""Parameter tree and the merge algorithm.

A :class:`ParameterDescription` is one node of a (possibly nested) parameter
tree. Nested nodes are produced by hash / nested-array validators and link to
their parent, so :attr:`ParameterDescription.full_name` can render the
``options[color]`` style path.

Merging lets one parameter be declared in several places (a reusable group and
inline, or an update declaration extending a finished method)::

    def user_group(b):
        b.param("user", dict, "User", lambda u: u.param("name", str))

    # method body
    b.param_group("user")
    b.param("user", dict, lambda u: u.param("password", str))

After :func:`unify` the method has one ``user`` parameter whose hash validator
holds both ``name`` and ``password``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any, Dict, List, Optional

from .errors import DSLError, UndefinedGroup, UnresolvedReference
from .validators import BaseValidator, LazyValidator, ValidatorEngine, get_default_engine

logger = logging.getLogger(__name__)


def _engine_for(owner: Any) -> ValidatorEngine:
    registry = getattr(owner, "registry", None)
    engine = getattr(registry, "engine", None)
    return engine if engine is not None else get_default_engine()


class ParameterDescription:
    """One documented parameter (or class property).

    Args:
        owner: Owning method or class description (may be ``None`` for
            standalone use).
        name: Parameter name.
        spec: Raw or classified validator specification; ``None`` means the
            parameter is documented without a validator.
        description: Description string, or an options mapping.
        options: ``type`` (``required``/``optional``/``keyword``/``block``/
            ``rest``), ``default``, ``meta``, ``show``, ``schema``,
            ``missing_message`` plus validator options (``of``, ``in``).
        block: Nested declaration block for ``dict``/``list`` parameters.
        parent: Parent node for nested parameters.
        engine: Validator engine; defaults to the owner's registry engine.
    """

    def __init__(
        self,
        owner: Any,
        name: str,
        spec: Any = None,
        description: Any = None,
        options: Optional[Dict[str, Any]] = None,
        block: Any = None,
        parent: Optional["ParameterDescription"] = None,
        engine: Optional[ValidatorEngine] = None,
    ) -> None:
        options = dict(options or {})
        if isinstance(description, Mapping):
            options.update(description)
        elif isinstance(description, str):
            options["desc"] = description
        elif description is not None:
            raise DSLError("Parameter description: expected description or options as 3rd argument")

        self.options = options
        self.owner = owner
        self.name = str(name)
        self.engine = engine or _engine_for(owner)
        self.desc: Optional[str] = options.get("desc")
        self.description = self.engine.config.markup_to_html(self.desc) if self.desc else ""
        self.kind: str = options.get("type", "required")
        self.schema = options.get("schema")
        self.default_value = options.get("default")
        self.metadata = options.get("meta")
        self.show: bool = options.get("show", True)
        self.parent = parent if parent is not None else options.get("parent")

        self._validator: Optional[BaseValidator] = None
        if spec is not None:
            self._validator = self.engine.build(self, spec, options, block)

    @property
    def validator(self) -> Optional[BaseValidator]:
        """The validator, resolving a deferred one on first successful use."""
        if isinstance(self._validator, LazyValidator):
            resolved = self._validator.resolve()
            if resolved is None:
                return None
            self._validator = resolved
        return self._validator

    @validator.setter
    def validator(self, value: Optional[BaseValidator]) -> None:
        self._validator = value

    @property
    def is_deferred(self) -> bool:
        return isinstance(self._validator, LazyValidator)

    def validate(self, value: Any) -> bool:
        validator = self.validator
        if validator is None:
            if isinstance(self._validator, LazyValidator):
                raise UnresolvedReference(self._validator.name, "type")
            return True
        return validator.valid(value)

    def parents_and_self(self) -> List["ParameterDescription"]:
        """Ancestors from the root down to this node."""
        chain: List[ParameterDescription] = []
        node: Optional[ParameterDescription] = self
        seen = set()
        while node is not None and id(node) not in seen:
            seen.add(id(node))
            chain.append(node)
            node = node.parent
        chain.reverse()
        return chain

    @property
    def full_name(self) -> str:
        parts = [p.name for p in self.parents_and_self() if p.show]
        if not parts:
            return self.name
        return parts[0] + "".join(f"[{part}]" for part in parts[1:])

    def merge_with(self, other: "ParameterDescription") -> "ParameterDescription":
        mine = self.validator
        theirs = other.validator
        if mine is not None and theirs is not None:
            self._validator = mine.merge_with(theirs)
        elif mine is None and theirs is not None:
            self._validator = theirs
        elif self._validator is None:
            self._validator = other._validator
        return self

    def to_dict(self, lang: Optional[str] = None) -> Dict[str, Any]:
        config = self.engine.config
        validator = self.validator
        data: Dict[str, Any] = {
            "name": self.name,
            "fullName": self.full_name,
            "description": config.translate_text(self.description, lang),
            "type": self.kind,
            "default": self.default_value,
            "validatorDescription": str(validator) if validator else None,
            "expectedKind": validator.expected_type if validator else None,
            "metadata": self.metadata,
            "show": self.show,
        }
        if self.kind == "required":
            del data["default"]
        if self.kind == "block":
            data["schema"] = self.schema
        sub_params = validator.sub_params if validator else None
        if sub_params is not None:
            data["params"] = [p.to_dict(lang) for p in sub_params if p.validator is not None]
        return data

    def __repr__(self) -> str:
        return f"<ParameterDescription {self.full_name!r} kind={self.kind}>"


def unify(params: List[ParameterDescription]) -> List[ParameterDescription]:
    """Collapse same-named parameters, keeping first-seen order."""
    grouped: Dict[str, ParameterDescription] = {}
    for param in params:
        if param.name in grouped:
            grouped[param.name].merge_with(param)
        else:
            grouped[param.name] = param
    return list(grouped.values())


def merge(
    target: List[ParameterDescription], source: List[ParameterDescription]
) -> List[ParameterDescription]:
    """Merge ``source`` into ``target`` in place.

    Parameters already present in ``target`` are merged into the existing
    nodes; new ones are appended in source order.
    """
    names = {param.name for param in target}
    to_merge = [param for param in source if param.name in names]
    to_add = [param for param in source if param.name not in names]
    unify(target + to_merge)
    target.extend(unify(to_add))
    return target


def build_parameters(
    owner: Any,
    items: List[Any],
    parent: Optional[ParameterDescription] = None,
    scope: Any = None,
    engine: Optional[ValidatorEngine] = None,
    group: Optional[Dict[str, Any]] = None,
) -> List[ParameterDescription]:
    """Turn ``ParamSpec``/``GroupUse`` items into parameter nodes.

    Group uses are expanded by evaluating the stored group block against a
    fresh builder scoped to the group's scope, so the same group yields
    separate nodes at every splice point.

    Raises:
        UndefinedGroup: A group is used but the owner has no registry, or the
            registry does not know it.
    """
    from .declarations import GroupUse, evaluate

    result: List[ParameterDescription] = []
    for item in items:
        if isinstance(item, GroupUse):
            group_scope = item.scope if item.scope is not None else scope
            registry = getattr(owner, "registry", None)
            if registry is None:
                raise UndefinedGroup(f"{item.kind}:{item.name}")
            body = registry.get_group(item.kind, group_scope, item.name)
            data = evaluate(body, group_scope)
            nested = data.params if item.kind == "param" else data.properties
            group_info = {"scope": group_scope, "name": item.name, "options": item.options}
            result.extend(build_parameters(owner, nested, parent, group_scope, engine, group_info))
            continue

        options = dict(item.options)
        if group is not None:
            options.setdefault("param_group", group)
            group_meta = group["options"].get("meta")
            if group_meta is not None and "meta" not in options:
                options["meta"] = group_meta
        result.append(
            ParameterDescription(
                owner,
                item.name,
                item.spec,
                item.description,
                options,
                item.block,
                parent=parent,
                engine=engine,
            )
        )
    return result

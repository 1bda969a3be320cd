"""Class, method, return, error and cross-reference descriptions.

These objects form the documentation model stored by
:class:`~apidoc_dsl.registry.DocRegistry`. They are built from
:class:`~apidoc_dsl.declarations.DSLData` records and serialize to the
camelCase JSON payload consumed by renderers (``to_dict``).

Lifecycle:
* ``ClassDescription`` is created by a class declaration or by the first
  method of a class, and updated in place by later class declarations.
  It belongs to one registry snapshot and renders against that snapshot.
* ``MethodDescription`` is built once per declaration; redefining the same
  method replaces the previous object once the new one is built.
* ``ReturnDescription`` and ``SeeDescription`` keep references by name
  and resolve them against the registry at query time, so declaration
  order does not matter.

Example (through a registry)::

    registry = DocRegistry()
    registry.define_method("IO", "puts", evaluate(lambda d: d.param("text", str)))
    payload = registry.get_method_description("IO#puts").to_dict()
    payload["params"][0]["fullName"]   # 'text'
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from .declarations import DSLData, GroupUse, RaiseSpec, ReturnSpec, SeeSpec, evaluate
from .errors import MultipleDefinition, ReturnShapeConflict, UnresolvedReference
from .parameters import ParameterDescription, build_parameters, merge, unify

if TYPE_CHECKING:  # pragma: no cover - for type checkers only
    from .registry import DocRegistry, RegistryState

logger = logging.getLogger(__name__)


def _display_name(value: Any) -> Any:
    if isinstance(value, type):
        return value.__name__
    if isinstance(value, (list, tuple)):
        return [_display_name(item) for item in value]
    return value


def _dedupe(values: List[Any]) -> List[Any]:
    seen = set()
    result = []
    for value in values:
        if value is None or value in seen:
            continue
        seen.add(value)
        result.append(value)
    return result


def _copy_meta(meta: Any) -> Any:
    return dict(meta) if isinstance(meta, dict) else meta


def _check_single_block(method_id: str, params: List[ParameterDescription]) -> None:
    """A method takes at most one block parameter."""
    blocks = _dedupe([param.name for param in params if param.kind == "block"])
    if len(blocks) > 1:
        raise MultipleDefinition(f"block parameter in {method_id}: {', '.join(blocks)}")


class ExceptionDescription:
    """One entry of a method's error catalog."""

    def __init__(self, error: Any, description: Optional[str] = None, metadata: Any = None):
        self.error = error
        self.description = description
        self.metadata = metadata

    @classmethod
    def from_spec(cls, spec: RaiseSpec) -> "ExceptionDescription":
        return cls(spec.error, spec.description, spec.metadata)

    @property
    def error_name(self) -> str:
        return _display_name(self.error) if isinstance(self.error, type) else str(self.error)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.error_name,
            "description": self.description,
            "metadata": self.metadata,
        }


class SeeDescription:
    """Cross-reference to another method, resolved at query time."""

    def __init__(self, spec: SeeSpec, method_description: "MethodDescription"):
        self.link = spec.link
        self.description = spec.description
        self.scope = spec.scope
        self.method_description = method_description

    def resolve(self) -> "MethodDescription":
        """Return the referenced method.

        ``link`` may be ``"method"`` (same class), ``"Class#method"`` or
        ``"version#Class#method"``; a ``scope`` names the class explicitly.

        Raises:
            UnresolvedReference: The link does not name a documented method.
        """
        owner = self.method_description.klass
        registry = owner.registry
        target = None
        if self.scope is not None:
            class_description = registry.get_class_description(self.scope, owner.version)
            if class_description is not None:
                target = class_description.method_description(self.link)
        elif "#" not in self.link:
            target = owner.method_description(self.link)
        else:
            target = registry.get_method_description(self.link, version=owner.version)
        if target is None:
            raise UnresolvedReference(self.link, "method referenced in 'see'")
        return target

    def to_dict(self, url_prefix: str = "") -> Dict[str, Any]:
        target = self.resolve()
        sections = target.klass.sections
        return {
            "link": target.doc_url(sections[0] if sections else None, url_prefix),
            "description": self.description,
        }


class ReturnDescription:
    """Return shape of a method.

    Exactly one of ``object_of``, ``array_of``, ``one_of`` or ``param_group``
    is selected. ``object_of`` naming a documented class pulls that class's
    property list from the registry when serialized.

    Raises:
        ReturnShapeConflict: More than one shape was selected.
    """

    def __init__(self, method_description: "MethodDescription", spec: ReturnSpec):
        shapes = spec.shapes
        if len(shapes) > 1:
            raise ReturnShapeConflict(shapes)
        self.method_description = method_description
        self.return_type = shapes[0] if shapes else "object_of"
        self.target = getattr(spec, self.return_type) if shapes else object
        self.description = spec.description
        self.scope = spec.scope
        self._params: Optional[List[ParameterDescription]] = None

        if self.return_type == "object_of" and spec.block is not None:
            data = evaluate(spec.block, self.scope)
            self._params = unify(self._build(data.params))
        elif self.return_type == "param_group":
            self._params = unify(self._build([GroupUse("param", self.target, self.scope)]))

    def _build(self, items: List[Any]) -> List[ParameterDescription]:
        registry = self.method_description.registry
        return build_parameters(
            self.method_description, items, scope=self.scope, engine=registry.engine
        )

    @property
    def registry(self) -> "DocRegistry":
        return self.method_description.registry

    def params_ordered(self) -> List[ParameterDescription]:
        if self._params is not None:
            return self._params
        if self.return_type != "object_of":
            return []
        version = self.method_description.version
        class_description = self.registry.resolve_reference(self.target, version)
        if class_description is not None:
            return class_description.property_descriptions
        if isinstance(self.target, str) and self.registry.engine.resolve_type(self.target) is None:
            raise UnresolvedReference(self.target, "return type")
        return []

    @property
    def return_class(self) -> str:
        if self.return_type == "object_of":
            return _display_name(self.target)
        if self.return_type == "array_of":
            return "list"
        return "object"

    def return_data(self, lang: Optional[str] = None) -> Any:
        if self.return_type in ("one_of", "array_of"):
            return _display_name(self.target)
        data = [param.to_dict(lang) for param in self.params_ordered() if param.validator is not None]
        return data or None

    def to_dict(self, lang: Optional[str] = None) -> Dict[str, Any]:
        config = self.registry.config
        return {
            "description": config.translate_text(self.description, lang),
            "object": {
                "meta": self.return_type,
                "class": self.return_class,
                "data": self.return_data(lang),
            },
        }


class MethodDescription:
    """Documented model of one method within a class-version."""

    def __init__(self, name: str, klass: "ClassDescription", dsl_data: DSLData):
        self.name = str(name)
        self.klass = klass
        config = self.registry.config

        self.full_description = config.markup_to_html(dsl_data.description or "")
        self.short_description = dsl_data.short_description or ""

        params = build_parameters(
            self, dsl_data.params, scope=klass.class_scope, engine=self.registry.engine
        )
        self._params = unify(params)
        _check_single_block(self.id, self._params)

        self.raises = [ExceptionDescription.from_spec(spec) for spec in dsl_data.raises]

        returns = dsl_data.returns or ReturnSpec(object_of=object, scope=klass.class_scope)
        self.returns = ReturnDescription(self, returns)

        self._tag_list = list(dsl_data.tag_list)
        self.see = [SeeDescription(spec, self) for spec in dsl_data.see]
        self.metadata = _copy_meta(dsl_data.meta)
        self.show = dsl_data.show
        self.deprecated = dsl_data.deprecated
        self.examples = list(dsl_data.examples)
        self.aliases = list(dsl_data.aliases)
        self.signature = dsl_data.signature

    @property
    def registry(self) -> "DocRegistry":
        return self.klass.registry

    @property
    def class_description(self) -> "ClassDescription":
        return self.klass

    @property
    def class_scope(self) -> Any:
        return self.klass.class_scope

    @property
    def id(self) -> str:
        return f"{self.klass.id}#{self.name}"

    @property
    def version(self) -> str:
        return self.klass.version

    @property
    def plain_params(self) -> List[ParameterDescription]:
        return self._params

    @property
    def param_descriptions(self) -> List[ParameterDescription]:
        return [param for param in self._params if param.validator is not None]

    @property
    def params(self) -> Dict[str, ParameterDescription]:
        return {param.name: param for param in sorted(self.param_descriptions, key=lambda p: p.name)}

    @property
    def tag_list(self) -> List[str]:
        """Class-chain tags (root first), class tags, then the method's own."""
        tags: List[str] = []
        for ancestor in reversed(self.registry.ancestor_descriptions(self.klass)):
            tags.extend(ancestor.tag_list)
        tags.extend(self.klass.tag_list)
        tags.extend(self._tag_list)
        return _dedupe(tags)

    def update(self, dsl_data: DSLData) -> None:
        """Extend this method in place (update declarations).

        Nothing changes when the update fails to build or would leave the
        method with a second block parameter.
        """
        config = self.registry.config
        params = build_parameters(
            self, dsl_data.params, scope=self.class_scope, engine=self.registry.engine
        )
        names = {param.name for param in self._params}
        _check_single_block(self.id, self._params + [p for p in params if p.name not in names])

        if dsl_data.description:
            self.full_description = config.markup_to_html(dsl_data.description)
        if dsl_data.short_description:
            self.short_description = dsl_data.short_description
        if isinstance(dsl_data.meta, dict) and isinstance(self.metadata, dict):
            self.metadata.update(dsl_data.meta)
        elif dsl_data.meta is not None:
            self.metadata = _copy_meta(dsl_data.meta)
        if not dsl_data.show:
            self.show = False
        self.raises.extend(ExceptionDescription.from_spec(spec) for spec in dsl_data.raises)
        self._tag_list = _dedupe(self._tag_list + list(dsl_data.tag_list))
        merge(self._params, params)

    def doc_url(self, section: Optional[str] = None, url_prefix: str = "") -> str:
        crumbs = []
        if self.registry.config.version_in_url:
            crumbs.append(self.version)
        if section:
            crumbs.append(section)
        crumbs.extend([self.klass.id, self.name])
        return self.registry.full_url("/".join(crumbs), url_prefix)

    def to_dict(
        self, lang: Optional[str] = None, section: Optional[str] = None, url_prefix: str = ""
    ) -> Dict[str, Any]:
        config = self.registry.config
        with self.registry.pinned(self.klass.state):
            return {
                "docUrl": self.doc_url(section, url_prefix),
                "name": self.name,
                "fullDescription": config.translate_text(self.full_description, lang),
                "shortDescription": config.translate_text(self.short_description, lang),
                "params": [param.to_dict(lang) for param in self.param_descriptions],
                "raises": [error.to_dict() for error in self.raises],
                "returns": self.returns.to_dict(lang),
                "metadata": self.metadata,
                "see": [see.to_dict(url_prefix) for see in self.see],
                "show": self.show,
                "deprecated": self.deprecated,
                "examples": self.examples,
                "aliases": self.aliases,
                "signature": self.signature,
                "tags": self.tag_list,
            }

    def __repr__(self) -> str:
        return f"<MethodDescription {self.version}#{self.id}>"


class ClassDescription:
    """Documented model of one version of one class or module.

    Args:
        registry: Owning registry.
        klass: Live class/module handle, or the class key string.
        class_key: Registry key (also the default display name and reference key).
        version: Version this description belongs to.
        dsl_data: Optional initial class declaration.
        state: Registry snapshot the description belongs to; rendering
            resolves references against it.
    """

    def __init__(
        self,
        registry: "DocRegistry",
        klass: Any,
        class_key: str,
        version: str,
        dsl_data: Optional[DSLData] = None,
        state: Optional["RegistryState"] = None,
    ) -> None:
        self.registry = registry
        self.state = state
        self.klass = klass
        self.id = class_key
        self.name = class_key
        self.version = version
        self.methods: Dict[str, MethodDescription] = {}
        self._properties: List[ParameterDescription] = []
        self.full_description = ""
        self.short_description: Optional[str] = None
        self.tag_list: List[str] = []
        self.metadata: Any = None
        self.deprecated = False
        self.show = True
        self._sections: Optional[List[str]] = None
        self.refs: List[str] = [class_key]
        self._dsl_base_url: Optional[str] = None
        if dsl_data is not None:
            self.update(dsl_data)

    @property
    def class_scope(self) -> Any:
        return self.klass

    def update(self, dsl_data: DSLData) -> None:
        """Merge a (later) class declaration into this description."""
        config = self.registry.config
        if dsl_data.class_name:
            self.name = dsl_data.class_name
        if dsl_data.description is not None:
            self.full_description = config.markup_to_html(dsl_data.description)
        if dsl_data.short_description is not None:
            self.short_description = dsl_data.short_description
        if dsl_data.tag_list:
            self.tag_list = _dedupe(self.tag_list + list(dsl_data.tag_list))
        if isinstance(dsl_data.meta, dict) and isinstance(self.metadata, dict):
            self.metadata.update(dsl_data.meta)
        elif dsl_data.meta is not None:
            self.metadata = _copy_meta(dsl_data.meta)
        if dsl_data.dsl_base_url:
            self._dsl_base_url = dsl_data.dsl_base_url
        self.deprecated = dsl_data.deprecated
        self.show = dsl_data.show
        if dsl_data.sections is not None:
            self._sections = list(dsl_data.sections)
        if dsl_data.refs:
            self.refs = _dedupe(self.refs + list(dsl_data.refs))
        if dsl_data.properties:
            properties = build_parameters(
                self, dsl_data.properties, scope=self.class_scope, engine=self.registry.engine
            )
            merge(self._properties, properties)

    @property
    def sections(self) -> List[str]:
        return list(self._sections) if self._sections else list(self.registry.config.sections)

    def in_section(self, section: Optional[str]) -> bool:
        if not section:
            return True
        sections = self.sections
        return "all" in sections or section in sections

    @property
    def dsl_base_url(self) -> str:
        if self._dsl_base_url:
            return self._dsl_base_url
        for ancestor in self.registry.ancestor_descriptions(self):
            if ancestor._dsl_base_url:
                return ancestor._dsl_base_url
        return self.registry.dsl_base_url(self.version)

    def add_method_description(self, method_description: MethodDescription) -> None:
        logger.debug(f"class_descriptions[{self.version}][{self.id}].methods[{method_description.name}] = {method_description!r}")
        self.methods[method_description.name] = method_description

    def method_description(self, method_name: str) -> Optional[MethodDescription]:
        return self.methods.get(str(method_name))

    def remove_method_description(self, method_name: str) -> Optional[MethodDescription]:
        return self.methods.pop(str(method_name), None)

    @property
    def method_descriptions(self) -> List[MethodDescription]:
        return list(self.methods.values())

    @property
    def properties(self) -> List[ParameterDescription]:
        return self._properties

    @property
    def property_descriptions(self) -> List[ParameterDescription]:
        return [prop for prop in self._properties if prop.validator is not None]

    def valid_method_name(self, method_name: str) -> bool:
        return str(method_name) in self.methods

    def doc_url(self, section: Optional[str] = None, url_prefix: str = "") -> str:
        crumbs = []
        if self.registry.config.version_in_url:
            crumbs.append(self.version)
        if section:
            crumbs.append(section)
        crumbs.append(self.id)
        return self.registry.full_url("/".join(crumbs), url_prefix)

    def to_dict(
        self,
        method_name: Optional[str] = None,
        lang: Optional[str] = None,
        section: Optional[str] = None,
        url_prefix: str = "",
    ) -> Dict[str, Any]:
        config = self.registry.config
        with self.registry.pinned(self.state):
            if method_name is None:
                methods = [m.to_dict(lang, section, url_prefix) for m in self.methods.values()]
            else:
                methods = [self.methods[str(method_name)].to_dict(lang, section, url_prefix)]
            return {
                "id": self.id,
                "name": self.name,
                "docUrl": self.doc_url(section, url_prefix),
                "dslUrl": self.dsl_base_url,
                "shortDescription": config.translate_text(self.short_description, lang),
                "fullDescription": config.translate_text(self.full_description, lang),
                "version": self.version,
                "metadata": self.metadata,
                "properties": [prop.to_dict(lang) for prop in self.property_descriptions],
                "methods": methods,
                "deprecated": self.deprecated,
                "show": self.show,
                "sections": self.sections,
                "tags": list(self.tag_list),
            }

    def __repr__(self) -> str:
        return f"<ClassDescription {self.version}#{self.id}>"

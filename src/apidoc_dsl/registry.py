"""Version-aware documentation registry.

The registry owns every :class:`~apidoc_dsl.descriptions.ClassDescription`,
keyed by ``(version, class_key)``, plus a reference index used to resolve
``see`` links and return types, the store of reusable parameter/property
groups, and the explicit class versions that drive version inheritance.

Key capabilities:
* Two-phase build: declaration records (see :mod:`apidoc_dsl.declarations`)
  are loaded best-effort; a failing record is logged and recorded as a
  :class:`BuildFailure` without aborting the rest of the build
* Copy-on-write writes: every writer builds a private :class:`RegistryState`
  behind the writer lock and swaps it in as a whole, so readers never see a
  half-built registry
* ``query()`` renders the camelCase documentation tree consumed by renderers
  and the HTTP surface

Example:
    from apidoc_dsl import DocRegistry, MethodDeclaration

    registry = DocRegistry()
    registry.load([
        MethodDeclaration("IO", name="puts", body=lambda d: d.param("text", str)),
    ])
    tree = registry.query("1.0", "IO")
    print(list(tree["docs"]["classes"]))   # ['IO']

Design notes:
* Each state keeps a journal of the writes that built it. A writer outside a
  build replays the journal into a fresh state, applies its change there and
  swaps; a failing write leaves the published state untouched. ``reload()``
  starts from an empty state instead.
* Readers pin the state they started with for the calling thread; nothing a
  description renders afterwards looks at a newer snapshot.
* Lookups for missing entities return ``None`` or empty results; only
  malformed query keys raise.
"""

from __future__ import annotations

import logging
import sys
import threading
import types
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from packaging import version as packaging_version

from .config import Configuration, config_from_env
from .declarations import (
    ClassDeclaration,
    Declaration,
    DSLData,
    GroupDeclaration,
    MethodDeclaration,
    MethodUpdate,
)
from .descriptions import ClassDescription, MethodDescription
from .errors import DSLError, InvalidQueryKey, MultipleDefinition, UndefinedGroup
from .validators import ValidatorEngine

logger = logging.getLogger(__name__)

AnnotationSource = Callable[[], Iterable[Declaration]]

_FORBIDDEN_KEY_PARTS = ("..", "/", "\\")


@dataclass
class BuildFailure:
    """A declaration record that could not be built."""

    target: str
    error: DSLError

    def to_dict(self) -> Dict[str, str]:
        return {
            "target": self.target,
            "error": type(self.error).__name__,
            "message": str(self.error),
        }


@dataclass
class RegistryState:
    """Complete, swappable snapshot of the registry contents."""

    class_descriptions: Dict[str, Dict[str, ClassDescription]] = field(default_factory=dict)
    refs: Dict[str, Dict[str, ClassDescription]] = field(default_factory=dict)
    groups: Dict[Tuple[str, str, str], Callable[..., Any]] = field(default_factory=dict)
    class_versions: Dict[str, List[str]] = field(default_factory=dict)
    app_info: Dict[str, str] = field(default_factory=dict)
    types: Dict[str, Any] = field(default_factory=dict)
    failures: List[BuildFailure] = field(default_factory=list)
    journal: List[Tuple[str, Tuple[Any, ...]]] = field(default_factory=list)


def superclass_for(klass: Any) -> Any:
    """Return the next link of the version-inheritance chain, or ``None``.

    Classes inherit from their first base other than ``object``; modules from
    their parent package; plain string keys have no ancestor.
    """
    if isinstance(klass, type):
        for base in klass.__bases__:
            if base is not object:
                return base
        return None
    if isinstance(klass, types.ModuleType):
        parent, _, _ = klass.__name__.rpartition(".")
        return sys.modules.get(parent) if parent else None
    return None


def check_query_key(key: Optional[str]) -> None:
    """Raise :class:`InvalidQueryKey` for path-traversal style keys."""
    if key is None:
        return
    if any(part in str(key) for part in _FORBIDDEN_KEY_PARTS):
        raise InvalidQueryKey(key)


def _version_sort_key(value: str) -> Tuple[int, Any]:
    try:
        return (1, packaging_version.parse(value))
    except packaging_version.InvalidVersion:
        return (0, value)


class DocRegistry:
    """Store, build and query documentation descriptions.

    Args:
        config: Registry configuration (defaults to :class:`Configuration`).
        source: Annotation source used by :meth:`reload`; a callable returning
            declaration records.
        engine: Validator engine; a fresh engine sharing ``config`` is created
            when omitted.
    """

    def __init__(
        self,
        config: Optional[Configuration] = None,
        source: Optional[AnnotationSource] = None,
        engine: Optional[ValidatorEngine] = None,
    ) -> None:
        self.config = config or Configuration()
        self.config.check()
        self.source = source
        self.engine = engine or ValidatorEngine(config=self.config)
        if self.engine.type_resolver is None:
            self.engine.type_resolver = self._resolve_type
        self._lock = threading.RLock()
        self._local = threading.local()
        self._state = RegistryState()
        self._loaded = False

    # -- state ----------------------------------------------------------------

    @property
    def state(self) -> RegistryState:
        """The snapshot visible to the calling thread.

        That is the state pinned by :meth:`pinned` (a build in progress or a
        reader's snapshot), else the published state.
        """
        pinned = getattr(self._local, "state", None)
        return pinned if pinned is not None else self._state

    @contextmanager
    def pinned(
        self, state: Optional[RegistryState], building: Optional[bool] = None
    ) -> Iterator[RegistryState]:
        """Make ``state`` the snapshot seen by the calling thread.

        Args:
            state: Snapshot to pin; ``None`` keeps the current one.
            building: Writers on this thread change ``state`` directly instead
                of copying it. ``None`` keeps the current mode while ``state``
                is the current snapshot and turns it off otherwise.
        """
        previous = (getattr(self._local, "state", None), getattr(self._local, "building", False))
        if state is None:
            state = self.state
        if building is None and state is not self.state:
            building = False
        self._local.state = state
        if building is not None:
            self._local.building = building
        try:
            yield state
        finally:
            self._local.state, self._local.building = previous

    def _building(self) -> bool:
        return getattr(self._local, "building", False)

    def _replaying(self) -> bool:
        return getattr(self._local, "replaying", False)

    @property
    def failures(self) -> List[BuildFailure]:
        return list(self.state.failures)

    def _resolve_type(self, name: str) -> Any:
        return self.state.types.get(name)

    def reset(self) -> None:
        """Drop every description (a full registry reset)."""
        with self._lock:
            self._state = RegistryState()
            self._loaded = False

    def _replay(self, previous: RegistryState) -> RegistryState:
        """Rebuild ``previous`` from its journal into a private state."""
        state = RegistryState(failures=list(previous.failures))
        self._local.replaying = True
        try:
            with self.pinned(state, building=True):
                for operation, args in previous.journal:
                    try:
                        self._record(operation, args)
                    except DSLError as exc:
                        # failed the same way when first applied
                        logger.debug(f"Replayed failing {operation}{args!r}: {exc}")
        finally:
            self._local.replaying = False
        return state

    def _record(self, operation: str, args: Tuple[Any, ...]) -> Any:
        try:
            return getattr(self, operation)(*args)
        finally:
            self.state.journal.append((operation, args))

    def _write(self, operation: str, *args: Any) -> Any:
        """Apply a writer operation copy-on-write, or in place during a build."""
        with self._lock:
            if self._building():
                return self._record(operation, args)
            state = self._replay(self._state)
            with self.pinned(state, building=True):
                result = self._record(operation, args)
            self._state = state
            return result

    # -- naming and versions -------------------------------------------------

    def get_class_name(self, klass: Any) -> str:
        """Return the registry key of a class handle, module or key string."""
        if isinstance(klass, str):
            return klass
        if isinstance(klass, types.ModuleType):
            name = klass.__name__
        elif isinstance(klass, type):
            name = f"{klass.__module__}.{klass.__qualname__}"
        else:
            raise DSLError(f"Cannot document {klass!r}: expected a class, module or key")
        if self.config.class_full_names:
            return name
        return name.rsplit(".", 1)[-1]

    def _scope_key(self, scope: Any) -> str:
        return "" if scope is None else self.get_class_name(scope)

    def set_class_versions(self, klass: Any, versions: Iterable[str]) -> None:
        self._write("_set_class_versions", klass, list(versions))

    def _set_class_versions(self, klass: Any, versions: List[str]) -> None:
        self.state.class_versions[self.get_class_name(klass)] = [str(v) for v in versions]

    def class_versions(self, klass: Any) -> List[str]:
        """Explicit versions of ``klass`` or its nearest ancestor, else the default."""
        state = self.state
        node = klass
        seen = set()
        while node is not None and id(node) not in seen:
            seen.add(id(node))
            versions = state.class_versions.get(self.get_class_name(node))
            if versions:
                return list(versions)
            node = superclass_for(node)
        return [self.config.default_version]

    def ancestor_descriptions(self, class_description: ClassDescription) -> List[ClassDescription]:
        """Documented ancestors of ``class_description`` in its version, nearest first."""
        version_map = self.state.class_descriptions.get(class_description.version, {})
        result = []
        seen = {id(class_description.klass)}
        node = superclass_for(class_description.klass)
        while node is not None and id(node) not in seen:
            seen.add(id(node))
            ancestor = version_map.get(self.get_class_name(node))
            if ancestor is not None:
                result.append(ancestor)
            node = superclass_for(node)
        return result

    def available_versions(self) -> List[str]:
        """Return documented versions sorted newest to oldest."""
        return sorted(self.state.class_descriptions, key=_version_sort_key, reverse=True)

    # -- URLs and per-version info ---------------------------------------------

    def full_url(self, path: str, url_prefix: str = "") -> str:
        url = f"{url_prefix}{self.config.doc_base_url}/{path.lstrip('/')}"
        return url.rstrip("/")

    def app_info(self, version: str, lang: Optional[str] = None) -> Optional[str]:
        info = self.state.app_info.get(version) or self.config.app_info.get(version)
        return self.config.translate_text(info, lang)

    def dsl_base_url(self, version: str) -> str:
        return self.config.dsl_base_url.get(version, "")

    # -- groups ---------------------------------------------------------------

    def define_group(self, kind: str, scope: Any, name: str, block: Callable[..., Any]) -> None:
        """Store a reusable group block, unevaluated."""
        self._write("_define_group", kind, scope, name, block)

    def _define_group(self, kind: str, scope: Any, name: str, block: Callable[..., Any]) -> None:
        key = (kind, self._scope_key(scope), str(name))
        groups = self.state.groups
        if key in groups:
            raise MultipleDefinition(f"{kind} group {key[1]}#{key[2]}")
        logger.debug(f"{kind}_groups[{key[1]}#{key[2]}] defined")
        groups[key] = block

    def get_group(self, kind: str, scope: Any, name: str) -> Callable[..., Any]:
        """Find a group in ``scope``, its ancestors, then the global scope.

        Raises:
            UndefinedGroup: No such group is defined.
        """
        state = self.state
        node = state.types.get(scope, scope) if isinstance(scope, str) else scope
        seen = set()
        while node is not None and id(node) not in seen:
            seen.add(id(node))
            block = state.groups.get((kind, self._scope_key(node), str(name)))
            if block is not None:
                return block
            node = superclass_for(node)
        block = state.groups.get((kind, "", str(name)))
        if block is not None:
            return block
        raise UndefinedGroup(f"{self._scope_key(scope)}#{name}")

    # -- writers --------------------------------------------------------------
    #
    # Public writers go through _write; the underscored implementations run
    # against the state pinned for the build and call each other directly.

    def _class_for(self, klass: Any, version: str) -> ClassDescription:
        """Existing description of ``klass`` in ``version``, else a new, uninstalled one."""
        key = self.get_class_name(klass)
        found = self.state.class_descriptions.get(version, {}).get(key)
        if found is not None:
            return found
        return ClassDescription(self, klass, key, version, state=self.state)

    def _install_class(self, class_description: ClassDescription) -> ClassDescription:
        version_map = self.state.class_descriptions.setdefault(class_description.version, {})
        if version_map.get(class_description.id) is not class_description:
            logger.debug(
                f"class_descriptions[{class_description.version}][{class_description.id}] = "
                f"{class_description!r}"
            )
            version_map[class_description.id] = class_description
            self._index_refs(class_description)
        return class_description

    def _index_refs(self, class_description: ClassDescription) -> None:
        state = self.state
        refs = state.refs.setdefault(class_description.version, {})
        for ref in class_description.refs:
            existing = refs.get(ref)
            if existing is not None and existing is not class_description:
                log = logger.debug if self._replaying() else logger.warning
                log(
                    f"Reference key '{ref}' of {class_description.id} already points to "
                    f"{existing.id} in version {class_description.version}; keeping the first"
                )
                continue
            refs[ref] = class_description
            if not isinstance(class_description.klass, str):
                state.types.setdefault(ref, class_description.klass)

    def define_class(self, klass: Any, dsl_data: Optional[DSLData] = None) -> List[ClassDescription]:
        """Create or update the descriptions of ``klass`` in each of its versions."""
        return self._write("_define_class", klass, dsl_data or DSLData())

    def _define_class(self, klass: Any, dsl_data: DSLData) -> List[ClassDescription]:
        key = self.get_class_name(klass)
        if self.config.is_ignored(key):
            logger.debug(f"Skipping ignored class {key}")
            return []
        if dsl_data.dsl_versions:
            self._set_class_versions(klass, dsl_data.dsl_versions)
        descriptions = []
        for version in self.class_versions(klass):
            class_description = self._class_for(klass, version)
            class_description.update(dsl_data)
            self._install_class(class_description)
            self._index_refs(class_description)
            if dsl_data.app_info:
                self.state.app_info[version] = dsl_data.app_info
            descriptions.append(class_description)
        return descriptions

    def define_method(self, klass: Any, method_name: str, dsl_data: Optional[DSLData] = None) -> List[MethodDescription]:
        """Build ``klass#method_name`` in each target version, replacing earlier builds.

        Every version is built before any is installed, so a failing
        redefinition keeps the previous build everywhere.
        """
        return self._write("_define_method", klass, method_name, dsl_data or DSLData())

    def _define_method(self, klass: Any, method_name: str, dsl_data: DSLData) -> List[MethodDescription]:
        key = self.get_class_name(klass)
        if self.config.is_ignored(key, method_name):
            logger.debug(f"Skipping ignored method {key}#{method_name}")
            return []
        versions = list(dsl_data.dsl_versions) or self.class_versions(klass)
        built = [
            MethodDescription(method_name, self._class_for(klass, version), dsl_data)
            for version in versions
        ]
        for method_description in built:
            class_description = self._install_class(method_description.klass)
            if class_description.remove_method_description(method_name) is not None:
                logger.debug(f"Redefining {class_description.version}#{key}#{method_name}")
            class_description.add_method_description(method_description)
        return built

    def update_method(self, klass: Any, method_name: str, dsl_data: DSLData) -> List[MethodDescription]:
        """Merge ``dsl_data`` into an existing method; define it when missing."""
        return self._write("_update_method", klass, method_name, dsl_data)

    def _update_method(self, klass: Any, method_name: str, dsl_data: DSLData) -> List[MethodDescription]:
        key = self.get_class_name(klass)
        if self.config.is_ignored(key, method_name):
            return []
        versions = list(dsl_data.dsl_versions) or self.class_versions(klass)
        descriptions = []
        for version in versions:
            method_description = self.get_method_description(klass, method_name, version)
            if method_description is None:
                logger.debug(f"Update of undocumented {version}#{key}#{method_name}; defining it")
                class_description = self._class_for(klass, version)
                method_description = MethodDescription(method_name, class_description, dsl_data)
                self._install_class(class_description).add_method_description(method_description)
            else:
                method_description.update(dsl_data)
            descriptions.append(method_description)
        return descriptions

    def remove_method(self, klass: Any, method_name: str, versions: Optional[Iterable[str]] = None) -> None:
        """Remove a method from the given versions (all versions by default)."""
        self._write("_remove_method", klass, method_name, list(versions) if versions is not None else None)

    def _remove_method(self, klass: Any, method_name: str, versions: Optional[List[str]]) -> None:
        key = self.get_class_name(klass)
        state = self.state
        for version in versions if versions is not None else list(state.class_descriptions):
            class_description = state.class_descriptions.get(version, {}).get(key)
            if class_description is not None:
                class_description.remove_method_description(method_name)

    # -- readers ----------------------------------------------------------------

    def get_class_description(self, klass: Any, version: Optional[str] = None) -> Optional[ClassDescription]:
        """Look up a class by key, ``"version#key"`` or live handle."""
        if isinstance(klass, ClassDescription):
            return klass
        if isinstance(klass, str):
            key = klass
            if "#" in key:
                version, key = key.split("#", 1)
            version = version or self.config.default_version
        elif isinstance(klass, (type, types.ModuleType)):
            key = self.get_class_name(klass)
            version = version or self.class_versions(klass)[0]
        else:
            return None
        state = self.state
        found = state.class_descriptions.get(version, {}).get(key)
        if found is None:
            found = state.refs.get(version, {}).get(key)
        return found

    def get_method_description(
        self, klass: Any, method_name: Optional[str] = None, version: Optional[str] = None
    ) -> Optional[MethodDescription]:
        """Look up ``"Class#method"``, ``"version#Class#method"`` or class + name."""
        if method_name is None:
            if not isinstance(klass, str) or "#" not in klass:
                return None
            parts = klass.split("#")
            if len(parts) == 3:
                version, klass, method_name = parts
            elif len(parts) == 2:
                klass, method_name = parts
            else:
                return None
        class_description = self.get_class_description(klass, version)
        if class_description is None:
            return None
        return class_description.method_description(method_name)

    def get_class_descriptions(self, version: Optional[str] = None) -> List[ClassDescription]:
        state = self.state
        versions = [version] if version is not None else list(state.class_descriptions)
        return [
            class_description
            for ver in versions
            for class_description in state.class_descriptions.get(ver, {}).values()
        ]

    def get_method_descriptions(self, klass: Any = None, version: Optional[str] = None) -> List[MethodDescription]:
        if klass is not None:
            class_description = self.get_class_description(klass, version)
            return class_description.method_descriptions if class_description else []
        return [
            method_description
            for class_description in self.get_class_descriptions(version)
            for method_description in class_description.method_descriptions
        ]

    def resolve_reference(self, target: Any, version: str) -> Optional[ClassDescription]:
        """Resolve a class handle or reference key within ``version``."""
        if isinstance(target, str):
            key = target
        elif isinstance(target, (type, types.ModuleType)):
            key = self.get_class_name(target)
        else:
            return None
        state = self.state
        found = state.refs.get(version, {}).get(key)
        if found is None:
            found = state.class_descriptions.get(version, {}).get(key)
        return found

    def has_docs(self, version: Optional[str] = None, class_name: Optional[str] = None) -> bool:
        state = self.state
        if version is None:
            return any(state.class_descriptions.values())
        classes = state.class_descriptions.get(version, {})
        if class_name is None:
            return bool(classes)
        return class_name in classes or class_name in state.refs.get(version, {})

    def query(
        self,
        version: str,
        class_name: Optional[str] = None,
        method_name: Optional[str] = None,
        lang: Optional[str] = None,
        section: Optional[str] = None,
        url_prefix: str = "",
    ) -> Dict[str, Any]:
        """Render the documentation tree for a version, class or method.

        Returns:
            ``{"docs": {...}}`` whose ``classes`` mapping is empty when nothing
            matches.

        Raises:
            InvalidQueryKey: A key contains ``..``, ``/`` or ``\\``.
            UnresolvedReference: A ``see`` link or return type names nothing.
        """
        for key in (version, class_name, method_name, section, lang):
            check_query_key(key)

        with self.pinned(self.state) as state:
            classes = state.class_descriptions.get(version, {})
            if class_name is not None:
                selected = classes.get(class_name) or state.refs.get(version, {}).get(class_name)
                if selected is None or (
                    method_name is not None and not selected.valid_method_name(method_name)
                ):
                    selected_classes: Dict[str, ClassDescription] = {}
                else:
                    selected_classes = {selected.id: selected}
            else:
                method_name = None
                selected_classes = dict(classes)

            crumbs = [version] if self.config.version_in_url else []
            if section:
                crumbs.append(section)
            return {
                "docs": {
                    "name": self.config.app_name,
                    "info": self.app_info(version, lang),
                    "copyright": self.config.copyright,
                    "docUrl": self.full_url("/".join(crumbs), url_prefix),
                    "dslUrl": self.dsl_base_url(version),
                    "classes": {
                        key: class_description.to_dict(method_name, lang, section, url_prefix)
                        for key, class_description in selected_classes.items()
                        if class_description.in_section(section)
                    },
                }
            }

    # -- build ----------------------------------------------------------------

    def _target_name(self, declaration: Declaration) -> str:
        if isinstance(declaration, GroupDeclaration):
            return f"{declaration.kind}_group {self._scope_key(declaration.scope)}#{declaration.name}"
        key = self.get_class_name(declaration.klass)
        if isinstance(declaration, (MethodDeclaration, MethodUpdate)):
            return f"{key}#{declaration.name}"
        return key

    def _apply(self, declaration: Declaration) -> None:
        if isinstance(declaration, GroupDeclaration):
            self.define_group(declaration.kind, declaration.scope, declaration.name, declaration.block)
        elif isinstance(declaration, ClassDeclaration):
            self.define_class(declaration.klass, declaration.dsl_data())
        elif isinstance(declaration, MethodUpdate):
            self.update_method(declaration.klass, declaration.name, declaration.dsl_data())
        elif isinstance(declaration, MethodDeclaration):
            self.define_method(declaration.klass, declaration.name, declaration.dsl_data())
        else:
            raise DSLError(f"Unknown declaration record {declaration!r}")

    def load(self, declarations: Iterable[Declaration]) -> List[BuildFailure]:
        """Build descriptions from declaration records, best effort.

        Groups are defined first, then classes, then methods, then method
        updates; relative order within each kind is kept. A record raising
        :class:`DSLError` is logged and skipped.

        Returns:
            The failures of this call (also kept in :attr:`failures`).
        """
        records = list(declarations)
        ordered = (
            [d for d in records if isinstance(d, GroupDeclaration)]
            + [d for d in records if isinstance(d, ClassDeclaration)]
            + [d for d in records if isinstance(d, MethodDeclaration)]
            + [d for d in records if isinstance(d, MethodUpdate)]
            + [
                d
                for d in records
                if not isinstance(d, (GroupDeclaration, ClassDeclaration, MethodDeclaration, MethodUpdate))
            ]
        )
        failures: List[BuildFailure] = []
        with self._lock:
            if self._building():
                self._load(ordered, failures)
            else:
                state = self._replay(self._state)
                with self.pinned(state, building=True):
                    self._load(ordered, failures)
                self._state = state
            self._loaded = True
        return failures

    def _load(self, ordered: List[Declaration], failures: List[BuildFailure]) -> None:
        for declaration in ordered:
            try:
                self._apply(declaration)
            except DSLError as exc:
                try:
                    target = self._target_name(declaration)
                except DSLError:
                    target = repr(declaration)
                logger.warning(f"Failed to build documentation for {target}: {exc}")
                failures.append(BuildFailure(target, exc))
        self.state.failures.extend(failures)

    def reload(self) -> "DocRegistry":
        """Rebuild everything from :attr:`source` and swap it in atomically.

        If the source raises, the previous state is kept and the exception
        propagates.
        """
        with self._lock:
            new_state = RegistryState()
            with self.pinned(new_state, building=True):
                declarations = list(self.source()) if self.source is not None else []
                self.load(declarations)
            self._state = new_state
            self._loaded = True
            logger.info(
                f"Documentation reloaded: "
                f"{sum(len(classes) for classes in new_state.class_descriptions.values())} "
                f"class descriptions, {len(new_state.failures)} failures"
            )
        return self

    def load_documentation(self) -> "DocRegistry":
        """Build from :attr:`source` unless already built."""
        if not self._loaded:
            self.reload()
        return self


# Global registry instance
_registry: Optional[DocRegistry] = None


def get_registry() -> DocRegistry:
    """Return the process-wide registry (configured from the environment)."""
    global _registry
    if _registry is None:
        _registry = DocRegistry(config=config_from_env())
    return _registry


def set_registry(registry: Optional[DocRegistry]) -> None:
    """Replace (or clear with ``None``) the process-wide registry."""
    global _registry
    _registry = registry

"""apidoc-dsl
==========

Documentation registry and validator engine for Python DSLs: classes and
their methods are annotated with declarative documentation (descriptions,
typed and nested parameters, return shapes, raised errors, cross references,
versions, sections) and the registry turns those annotations into a queryable,
versioned model rendered as camelCase JSON and usable for runtime argument
validation.

Key capabilities
----------------
- Fluent declaration DSL (:class:`~apidoc_dsl.declarations.DeclarationBuilder`)
  and decorators collecting it from modules (:mod:`apidoc_dsl.collect`).
- Pluggable validator engine with LIFO probing and deferred (by-name) types.
- Parameter merge across inline declarations, reusable groups and nested hash
  parameters.
- Versioned registry with inheritance along the class chain, a reference index
  and atomic, best-effort reload.
- FastAPI delivery of the JSON tree and an ``apidoc-dsl`` CLI.

Design principles
-----------------
1. **Two-phase build** – Annotations are collected into declaration records
    first, then built; one bad record never aborts the build.
2. **Lazy references** – ``see`` links and return types are resolved at
    query time, so declaration order does not matter.
3. **Snapshot reads** – Readers use the current registry state without locking;
    writers and reloads swap in a completely built state.

Minimal quick start
-------------------
>>> from apidoc_dsl import DocRegistry, MethodDeclaration
>>> registry = DocRegistry()
>>> _ = registry.load([MethodDeclaration("IO", name="puts", body=lambda d: d.param("text", str))])
>>> registry.query("1.0", "IO", "puts")["docs"]["classes"]["IO"]["methods"][0]["name"]
'puts'

Public surface
--------------
Only a curated subset is exported at the package level to keep the import
surface stable; advanced modules can be imported explicitly.
"""

__version__ = "0.1.0"

from .collect import (
    ModuleSource,
    apidoc_class,
    apidoc_method,
    apidoc_update,
    collect_module,
    param_group,
    prop_group,
)
from .config import Configuration, config_from_env
from .declarations import (
    ClassDeclaration,
    DeclarationBuilder,
    GroupDeclaration,
    MethodDeclaration,
    MethodUpdate,
)
from .errors import (
    DSLError,
    ParamInvalid,
    ParamMissing,
    UnknownParam,
    UnresolvedReference,
    ValidatorNotFound,
)
from .registry import DocRegistry, get_registry
from .validation import check_arguments, validate_arguments
from .validators import Marker, ValidatorEngine

__all__ = [
    "ClassDeclaration",
    "Configuration",
    "DSLError",
    "DeclarationBuilder",
    "DocRegistry",
    "GroupDeclaration",
    "Marker",
    "MethodDeclaration",
    "MethodUpdate",
    "ModuleSource",
    "ParamInvalid",
    "ParamMissing",
    "UnknownParam",
    "UnresolvedReference",
    "ValidatorEngine",
    "ValidatorNotFound",
    "apidoc_class",
    "apidoc_method",
    "apidoc_update",
    "check_arguments",
    "collect_module",
    "config_from_env",
    "get_registry",
    "param_group",
    "prop_group",
    "validate_arguments",
]

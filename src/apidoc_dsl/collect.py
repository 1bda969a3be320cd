"""Annotation collection: decorators and module walkers.

Decorators attach declaration bodies to Python objects without touching the
registry; :func:`collect_module` later walks a module in definition order and
turns the attached bodies into declaration records. Because collection is a
separate step, a registry can be rebuilt at any time from the same modules
(:class:`ModuleSource` is the re-runnable annotation source used by
:meth:`apidoc_dsl.registry.DocRegistry.reload`).

Example::

    from apidoc_dsl.collect import apidoc_class, apidoc_method, param_group

    @apidoc_class(lambda d: d.short("Console output").dsl_versions("2.0"))
    class Console:
        @param_group("print_options")
        def print_options(d):
            d.optional("color", ["red", "blue"], "Text color")

        @apidoc_method(lambda d: d.param("text", str, "Text").param_group("print_options"))
        def puts(self, text, color=None):
            ...

    registry = DocRegistry(source=ModuleSource(["my_dsl.console"]))
    registry.reload()

A module can document itself by binding a body to ``__apidoc__``::

    __apidoc__ = lambda d: d.short("Top-level helpers")
"""

from __future__ import annotations

import importlib
import logging
import types
from typing import Any, Callable, Iterable, List, Optional, Sequence

from .declarations import (
    ClassDeclaration,
    Declaration,
    GroupDeclaration,
    MethodDeclaration,
    MethodUpdate,
)

logger = logging.getLogger(__name__)

ATTRIBUTE = "__apidoc__"
GROUP_ATTRIBUTE = "__apidoc_group__"


def _attach(target: Any, record: tuple) -> Any:
    # vars() so a subclass never inherits its parent's records
    records = list(vars(target).get(ATTRIBUTE) or [])
    records.append(record)
    setattr(target, ATTRIBUTE, records)
    return target


def _split(body_or_short: Any) -> tuple:
    if isinstance(body_or_short, str):
        return None, body_or_short
    return body_or_short, None


def apidoc_class(body_or_short: Any = None) -> Any:
    """Document the decorated class.

    Usable bare (``@apidoc_class``), with a short description
    (``@apidoc_class("Console output")``) or with a declaration body.
    """
    if isinstance(body_or_short, type):
        return _attach(body_or_short, ("class", None, None, None))
    body, short = _split(body_or_short)

    def decorator(cls):
        return _attach(cls, ("class", body, short, None))

    return decorator


def apidoc_method(body_or_short: Any = None, *, name: Optional[str] = None) -> Callable[[Any], Any]:
    """Document the decorated function or method.

    Args:
        body_or_short: Declaration body, or a short description.
        name: Documented name (defaults to the function name).
    """
    body, short = _split(body_or_short)

    def decorator(func):
        return _attach(func, ("method", body, short, name))

    return decorator


def apidoc_update(body: Callable[..., Any], *, name: Optional[str] = None) -> Callable[[Any], Any]:
    """Extend an already documented method instead of redefining it."""

    def decorator(func):
        return _attach(func, ("update", body, None, name))

    return decorator


def _group_decorator(kind: str, name: str, scope: Any) -> Callable[[Any], Any]:
    def decorator(func):
        setattr(func, GROUP_ATTRIBUTE, (kind, name, scope))
        return func

    return decorator


def param_group(name: str, scope: Any = None) -> Callable[[Any], Any]:
    """Register the decorated function as a reusable parameter group.

    The scope defaults to the enclosing class; module-level groups are global.
    """
    return _group_decorator("param", name, scope)


def prop_group(name: str, scope: Any = None) -> Callable[[Any], Any]:
    """Register the decorated function as a reusable property group."""
    return _group_decorator("prop", name, scope)


def _unwrap(value: Any) -> Any:
    if isinstance(value, (staticmethod, classmethod)):
        return value.__func__
    if isinstance(value, property):
        return value.fget
    return value


def _records_for(owner: Any, attr_name: str, value: Any) -> List[Declaration]:
    value = _unwrap(value)
    result: List[Declaration] = []
    group = getattr(value, GROUP_ATTRIBUTE, None)
    if group is not None and not isinstance(value, type):
        kind, name, scope = group
        if scope is None and isinstance(owner, type):
            scope = owner
        result.append(GroupDeclaration(kind=kind, scope=scope, name=name, block=value))

    if isinstance(value, type) or not callable(value):
        return result
    for kind, body, short, name in getattr(value, ATTRIBUTE, None) or []:
        method_name = name or getattr(value, "__name__", attr_name)
        if kind == "method":
            result.append(MethodDeclaration(owner, name=method_name, body=body, short=short))
        elif kind == "update":
            result.append(MethodUpdate(owner, name=method_name, body=body))
    return result


def collect_class(cls: type) -> List[Declaration]:
    """Declaration records of one class (and its nested classes)."""
    records: List[Declaration] = []
    for kind, body, short, _ in cls.__dict__.get(ATTRIBUTE, None) or []:
        if kind == "class":
            records.append(ClassDeclaration(cls, body=body, short=short))
    for attr_name, value in list(vars(cls).items()):
        if attr_name == ATTRIBUTE:
            continue
        if isinstance(value, type) and value.__qualname__.startswith(f"{cls.__qualname__}."):
            records.extend(collect_class(value))
            continue
        records.extend(_records_for(cls, attr_name, value))
    return records


def collect_module(module: types.ModuleType) -> List[Declaration]:
    """Walk ``module`` in definition order and emit its declaration records.

    Only objects defined in ``module`` are collected, so imported classes
    are documented once, by their own module.
    """
    records: List[Declaration] = []
    namespace = vars(module)
    module_body = namespace.get(ATTRIBUTE)
    if callable(module_body):
        records.append(ClassDeclaration(module, body=module_body))
    for attr_name, value in list(namespace.items()):
        if attr_name == ATTRIBUTE:
            continue
        if getattr(value, "__module__", None) != module.__name__:
            continue
        if isinstance(value, type):
            records.extend(collect_class(value))
        else:
            records.extend(_records_for(module, attr_name, value))
    logger.debug(f"Collected {len(records)} declaration records from {module.__name__}")
    return records


class ModuleSource:
    """Re-runnable annotation source over a list of module names.

    Args:
        names: Dotted module names, collected in order.
        reload: ``importlib.reload`` each module before collecting, so edited
            annotations are picked up without a restart.
    """

    def __init__(self, names: Sequence[str], reload: bool = False):
        self.names = list(names)
        self.reload = reload

    def modules(self) -> Iterable[types.ModuleType]:
        for name in self.names:
            module = importlib.import_module(name)
            if self.reload:
                module = importlib.reload(module)
            yield module

    def __call__(self) -> List[Declaration]:
        records: List[Declaration] = []
        for module in self.modules():
            records.extend(collect_module(module))
        return records

    def __repr__(self) -> str:
        return f"ModuleSource({self.names!r}, reload={self.reload})"

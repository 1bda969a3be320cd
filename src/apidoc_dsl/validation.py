"""Runtime argument validation against documented parameters.

:func:`check_arguments` checks a mapping of argument values against a
:class:`~apidoc_dsl.descriptions.MethodDescription`:

* every ``required`` parameter must be present (``ParamMissing``), including
  required keys of documented hash parameters;
* with ``strict=True`` undocumented names are rejected (``UnknownParam``);
* present values are validated (``ParamInvalid``) when both ``validate`` and
  ``validate_value`` are enabled in the registry configuration.

:func:`validate_arguments` wraps a function so every call is checked::

    @apidoc_method(lambda d: d.param("text", str))
    @validate_arguments(registry)
    def puts(text):
        ...

    puts(42)   # ParamInvalid: Invalid parameter 'text' value 42: Must be a str
"""

from __future__ import annotations

import functools
import inspect
import sys
from collections.abc import Mapping
from typing import Any, Callable, Iterable, Optional

from .errors import ParamMissing, UnknownParam
from .parameters import ParameterDescription


def _check_params(
    params: Iterable[ParameterDescription],
    arguments: Mapping,
    strict: bool,
    validate_values: bool,
) -> None:
    params = list(params)
    if strict:
        known = {param.name for param in params}
        for name in arguments:
            if str(name) not in known:
                raise UnknownParam(name)
    for param in params:
        if param.name not in arguments:
            if param.kind == "required":
                raise ParamMissing(param)
            continue
        value = arguments[param.name]
        if validate_values:
            param.validate(value)
        validator = param.validator
        sub_params = validator.sub_params if validator is not None else None
        if sub_params is not None and isinstance(value, Mapping):
            _check_params(sub_params, value, strict, validate_values)


def check_arguments(method_description: Any, arguments: Mapping, strict: bool = False) -> bool:
    """Check ``arguments`` (name -> value) against a documented method.

    Raises:
        ParamMissing: A required parameter (or required hash key) is absent.
        UnknownParam: ``strict`` is set and an argument is not documented.
        ParamInvalid: A present value fails its validator.
        UnresolvedReference: A parameter's deferred type never resolved.
    """
    config = method_description.registry.config
    _check_params(
        method_description.plain_params,
        arguments,
        strict,
        config.should_validate_values,
    )
    return True


def _bound_arguments(signature: inspect.Signature, args: tuple, kwargs: dict) -> dict:
    bound = signature.bind(*args, **kwargs)
    arguments = {}
    for name, value in bound.arguments.items():
        kind = signature.parameters[name].kind
        if kind is inspect.Parameter.VAR_KEYWORD:
            arguments.update(value)
        elif name not in ("self", "cls"):
            arguments[name] = value
    return arguments


def _owners(func: Callable[..., Any], args: tuple) -> list:
    if "." in func.__qualname__.replace(".<locals>.", "") and args:
        first = args[0]
        cls = first if isinstance(first, type) else type(first)
        return list(cls.__mro__)
    return [sys.modules.get(func.__module__)]


def validate_arguments(
    registry: Any = None,
    *,
    klass: Any = None,
    name: Optional[str] = None,
    strict: bool = False,
) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """Decorate a function so its call arguments are checked before it runs.

    Args:
        registry: Registry holding the documentation (process-wide registry
            when omitted).
        klass: Documented class or module; inferred from the first argument
            for methods and from the defining module for functions.
        name: Documented method name (defaults to the function name).
        strict: Reject undocumented arguments.
    """

    def decorator(func):
        signature = inspect.signature(func)
        method_name = name or func.__name__

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            from .registry import get_registry

            active = registry or get_registry()
            if active.config.validate:
                owners = [klass] if klass is not None else _owners(func, args)
                for owner in owners:
                    if owner is None or owner is object:
                        continue
                    method_description = active.get_method_description(owner, method_name)
                    if method_description is not None:
                        check_arguments(
                            method_description,
                            _bound_arguments(signature, args, kwargs),
                            strict,
                        )
                        break
            return func(*args, **kwargs)

        return wrapper

    return decorator

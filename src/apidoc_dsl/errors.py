"""Exception hierarchy for the documentation registry.

Every error raised by the package derives from :class:`DSLError` so callers
(the registry's best-effort ``load``, the HTTP surface, the CLI) can catch a
single base class.

Build-time errors:
* ``ValidatorNotFound``: no validator variant matched a specification.
* ``ValidatorMergeError``: one parameter declared with two incompatible
  validator kinds.
* ``ReturnShapeConflict`` / ``DuplicateReturn``: malformed ``returns``.
* ``MultipleDefinition``: a group (or a ``block`` parameter) defined twice.
* ``UndefinedGroup``: a group used before (or without) its definition.

Validation-time errors (surfaced to the validation caller):
* ``ParamInvalid``: value rejected by a validator.
* ``ParamMissing`` / ``UnknownParam``: presence and strictness checks.

Query-time errors:
* ``InvalidQueryKey``: query key containing path traversal separators.
* ``UnresolvedReference``: a ``see`` or return reference names an entity
  the registry does not know.

Setup errors:
* ``ConfigurationError``: invalid configuration for the boundary using it.
"""

from __future__ import annotations

from typing import Any, Optional


class DSLError(Exception):
    """Base class of every error raised by ``apidoc_dsl``."""


class ValidatorNotFound(DSLError):
    """No registered validator variant accepted the raw specification."""

    def __init__(self, spec: Any, param_name: Optional[str] = None):
        self.spec = spec
        self.param_name = param_name
        super().__init__(str(self))

    def __str__(self) -> str:
        if self.param_name:
            return f"Validator for {self.spec!r} not found (parameter '{self.param_name}')"
        return f"Validator for {self.spec!r} not found"


class ValidatorMergeError(DSLError):
    """Two validators of different kinds were declared for one parameter."""

    def __init__(self, left: Any, right: Any):
        self.left = left
        self.right = right
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"Don't know how to merge {self.left!r} with {self.right!r}"


class ParamError(DSLError):
    """Base class for errors attached to a single parameter."""

    def __init__(self, param: Any):
        self.param = param
        super().__init__(str(self))


class ParamMissing(ParamError):
    """A required parameter was not supplied.

    ``param`` is the :class:`~apidoc_dsl.parameters.ParameterDescription`; its
    ``missing_message`` option (string or zero-argument callable) overrides the
    default message.
    """

    def __str__(self) -> str:
        message = getattr(self.param, "options", {}).get("missing_message")
        if message is None:
            return f"Missing parameter {getattr(self.param, 'name', self.param)}"
        if callable(message):
            return str(message())
        return str(message)


class UnknownParam(ParamError):
    def __str__(self) -> str:
        return f"Unknown parameter {self.param}"


class ParamInvalid(ParamError):
    """A value failed validation.

    Attributes:
        param: Parameter name.
        value: Offending value.
        error: Human description of the constraint that failed.
    """

    def __init__(self, param: Any, value: Any, error: Optional[str]):
        self.value = value
        self.error = error
        super().__init__(param)

    def __str__(self) -> str:
        return f"Invalid parameter '{self.param}' value {self.value!r}: {self.error}"


class MultipleDefinition(DSLError):
    def __init__(self, value: Any):
        self.value = value
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"Multiple definition of {self.value}"


class UndefinedGroup(DSLError):
    def __init__(self, key: str):
        self.key = key
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"Group {self.key} is not defined"


class ReturnShapeConflict(DSLError):
    """A ``returns`` declaration selected more than one shape tag."""

    def __init__(self, shapes: Any = None):
        self.shapes = list(shapes or [])
        super().__init__(str(self))

    def __str__(self) -> str:
        selected = ", ".join(self.shapes) if self.shapes else "several shapes"
        return f"A 'returns' statement must select exactly one shape, got: {selected}"


class DuplicateReturn(DSLError):
    def __str__(self) -> str:
        return "A 'returns' statement cannot be used more than once"


class UnresolvedReference(DSLError):
    """A cross-reference could not be resolved at query time."""

    def __init__(self, link: Any, context: str = "reference"):
        self.link = link
        self.context = context
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"{self.context.capitalize()} '{self.link}' does not resolve to a documented entity"


class InvalidQueryKey(DSLError, ValueError):
    def __init__(self, key: Any):
        self.key = key
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"Invalid query key {self.key!r}"


class ConfigurationError(DSLError):
    def __init__(self, value: Any):
        self.value = value
        super().__init__(str(self))

    def __str__(self) -> str:
        return f"Configuration error: {self.value}"

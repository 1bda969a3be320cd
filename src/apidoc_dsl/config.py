"""Registry configuration and collaborator hooks.

The :class:`Configuration` dataclass plays the role ``ParserConfig`` plays for
a parser: explicit, inspectable settings passed to the registry at
construction time. Two collaborators hang off it:

* ``markup`` – any object exposing ``to_html(text) -> str``. Used whenever a
  free-form description is stored. ``None`` (or an object without
  ``to_html``) means descriptions pass through unchanged.
* ``translate`` – a callable ``(text, locale) -> str`` applied only at query
  time, so the stored model stays locale neutral.

Environment overrides (read by :func:`config_from_env`)::

    APIDOC_DSL_DEFAULT_VERSION=2.0
    APIDOC_DSL_APP_NAME="Billing DSL"
    APIDOC_DSL_CONFIG="version_in_url=false,class_full_names=true,doc_base_url=/docs"

Example:
    >>> config = Configuration(app_name="My DSL", default_version="2.0")
    >>> config.check()
    >>> config.is_ignored("Secret")
    False
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from typing import Any, Callable, Dict, List, Optional, Protocol, runtime_checkable

from .errors import ConfigurationError


@runtime_checkable
class Markup(Protocol):
    """Markup-to-HTML collaborator."""

    def to_html(self, text: str) -> str:  # pragma: no cover - protocol
        ...


Translator = Callable[[Optional[str], Optional[str]], Optional[str]]


@dataclass
class Configuration:
    """Settings shared by every description in a registry.

    Args:
        app_name: Name rendered in the ``docs`` envelope.
        copyright: Optional copyright line.
        doc_base_url: URL prefix of generated documentation links.
        default_version: Version used when neither the entity nor any ancestor
            declares one.
        version_in_url: Include the version crumb in documentation links.
        validate: Enables runtime argument checks (``validate_arguments``).
        validate_value: Enables value checks (hash sub-keys, call arguments).
        class_full_names: Use dotted ``module.Class`` keys instead of bare names.
        ignored: Class keys or ``Class#method`` pairs skipped while building.
        sections: Sections an entity belongs to when it declares none.
        default_section: Section assumed by delivery layers.
        default_locale: Locale used when a request names none.
        reload_on_request: Delivery layers call ``reload`` before every query.
        app_info: Per-version application description.
        dsl_base_url: Per-version base URL of the documented DSL.
        markup: Markup collaborator (see module docstring).
        translate: Translator collaborator (see module docstring).
    """

    app_name: str = "Another DSL"
    copyright: Optional[str] = None
    doc_base_url: str = "/apidoc"
    default_version: str = "1.0"
    version_in_url: bool = True
    validate: bool = True
    validate_value: bool = True
    class_full_names: bool = False
    ignored: List[str] = field(default_factory=list)
    sections: List[str] = field(default_factory=lambda: ["all"])
    default_section: Optional[str] = None
    default_locale: str = "en"
    reload_on_request: bool = False
    app_info: Dict[str, str] = field(default_factory=dict)
    dsl_base_url: Dict[str, str] = field(default_factory=dict)
    markup: Optional[Any] = None
    translate: Optional[Translator] = None

    def check(self) -> None:
        """Raise :class:`ConfigurationError` if the settings are unusable."""
        if not self.default_version:
            raise ConfigurationError("default_version must not be empty")
        if not self.doc_base_url.startswith("/"):
            raise ConfigurationError(
                f"doc_base_url must start with '/', got {self.doc_base_url!r}"
            )
        if self.markup is not None and not callable(getattr(self.markup, "to_html", None)):
            raise ConfigurationError("markup collaborator must provide to_html(text)")
        if self.translate is not None and not callable(self.translate):
            raise ConfigurationError("translate collaborator must be callable")

    @property
    def should_validate_values(self) -> bool:
        return self.validate and self.validate_value

    def is_ignored(self, class_key: str, method_name: Optional[str] = None) -> bool:
        ignored = set(self.ignored)
        if class_key in ignored:
            return True
        return method_name is not None and f"{class_key}#{method_name}" in ignored

    def markup_to_html(self, text: Optional[str]) -> str:
        if text is None:
            return ""
        to_html = getattr(self.markup, "to_html", None)
        if callable(to_html):
            return to_html(text)
        return text

    def translate_text(self, text: Optional[str], locale: Optional[str]) -> Optional[str]:
        if self.translate is None:
            return text
        return self.translate(text, locale)


_BOOL_TRUE = {"1", "true", "yes", "on"}


def _coerce(current: Any, raw: str) -> Any:
    if isinstance(current, bool):
        return raw.strip().lower() in _BOOL_TRUE
    if isinstance(current, list):
        return [item.strip() for item in raw.split(";") if item.strip()]
    return raw.strip()


def config_from_env(base: Optional[Configuration] = None) -> Configuration:
    """Build a configuration from environment variables.

    ``APIDOC_DSL_CONFIG`` holds comma separated ``key=value`` pairs; list
    values use ``;`` as separator (``ignored=Secret;IO#debug``). Unknown keys
    raise :class:`ConfigurationError` so typos are not silently ignored.
    """
    config = base or Configuration()

    default_version = os.getenv("APIDOC_DSL_DEFAULT_VERSION")
    if default_version:
        config.default_version = default_version.strip()

    app_name = os.getenv("APIDOC_DSL_APP_NAME")
    if app_name:
        config.app_name = app_name

    config_str = os.getenv("APIDOC_DSL_CONFIG", "")
    scalar_fields = {
        f.name
        for f in fields(config)
        if f.name not in ("app_info", "dsl_base_url", "markup", "translate")
    }
    for pair in config_str.split(","):
        if "=" not in pair:
            continue
        key, value = pair.split("=", 1)
        key = key.strip()
        if key not in scalar_fields:
            raise ConfigurationError(f"unknown setting {key!r} in APIDOC_DSL_CONFIG")
        setattr(config, key, _coerce(getattr(config, key), value))

    config.check()
    return config

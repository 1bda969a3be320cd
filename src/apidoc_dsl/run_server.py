"""Executable entry point for serving documentation over HTTP.

The application is built by :func:`build_app`, so ASGI servers should use
uvicorn's factory mode, or run ``python -m apidoc_dsl.run_server`` directly
for local development.

Environment Variables:
    PORT (int): Override listening port (default 8000).
    APIDOC_DSL_MODULES: ``;`` separated module names to collect declarations from.
    APIDOC_DSL_LOG_LEVEL: Logging level name (default INFO).
    APIDOC_DSL_*: Registry configuration, see :func:`apidoc_dsl.config.config_from_env`.

Example:
    $ APIDOC_DSL_MODULES=my_dsl.console python -m apidoc_dsl.run_server
    $ uvicorn --factory apidoc_dsl.run_server:build_app --host 0.0.0.0 --port 8000 --workers 4
"""

from __future__ import annotations

import logging
import os

import uvicorn
from fastapi import FastAPI

from .app import create_app
from .collect import ModuleSource
from .config import config_from_env
from .registry import DocRegistry, set_registry


def build_app() -> FastAPI:
    """Build a registry from the environment, load it and wrap it in the app."""
    names = [name.strip() for name in os.getenv("APIDOC_DSL_MODULES", "").split(";") if name.strip()]
    config = config_from_env()
    registry = DocRegistry(config=config, source=ModuleSource(names, reload=config.reload_on_request))
    registry.load_documentation()
    set_registry(registry)
    return create_app(registry)


def main() -> None:
    """Launch the ASGI server with development-friendly defaults."""
    logging.basicConfig(
        level=os.getenv("APIDOC_DSL_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(build_app(), host="0.0.0.0", port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    main()

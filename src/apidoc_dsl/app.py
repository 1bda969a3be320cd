"""FastAPI application serving the documentation tree as JSON.

Quick start (run the server)::

    APIDOC_DSL_MODULES=my_dsl.console uvicorn --factory apidoc_dsl.run_server:build_app

Core endpoints (with the default ``doc_base_url`` of ``/apidoc``)::

    GET /health                               Health probe + build summary
    GET /versions                             Documented versions, newest first
    GET /failures                             Declarations that failed to build
    GET /apidoc/{version}                     Every class of a version
    GET /apidoc/{version}/{class}             One class
    GET /apidoc/{version}/{class}/{method}    One method of a class

Documentation endpoints accept ``lang`` and ``section`` query parameters and a
``reload`` flag (honored when the registry has an annotation source).

Example::

    curl "http://localhost:8000/apidoc/1.0/Console/puts?lang=en" | jq '.docs.classes'

Error handling:
    * Unknown version/class/method: JSON 404 ``{"error": "Not Found", ...}``
    * Path-traversal style keys: JSON 400
    * Dangling ``see`` links or return types: JSON 500 naming the reference
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .errors import InvalidQueryKey, UnresolvedReference
from .registry import DocRegistry, get_registry

logger = logging.getLogger(__name__)


class HealthResponse(BaseModel):
    """Response model for the health endpoint."""

    status: str = Field(..., description="healthy or unhealthy")
    versions: List[str] = Field(default_factory=list, description="Documented versions")
    failures: int = Field(0, description="Number of declarations that failed to build")
    error: Optional[str] = Field(None, description="Error detail when unhealthy")


class VersionsResponse(BaseModel):
    """Response model for the versions endpoint."""

    versions: List[str] = Field(..., description="Documented versions, newest first")
    default_version: str = Field(..., description="Configured default version")


class BuildFailureModel(BaseModel):
    target: str = Field(..., description="Class, method or group that failed")
    error: str = Field(..., description="Error class name")
    message: str = Field(..., description="Error message")


class FailuresResponse(BaseModel):
    failures: List[BuildFailureModel] = Field(default_factory=list)


def create_app(registry: Optional[DocRegistry] = None) -> FastAPI:
    """Build the FastAPI application around ``registry``.

    Args:
        registry: Registry to serve; the process-wide registry when omitted.
    """
    registry = registry or get_registry()
    base_url = registry.config.doc_base_url.rstrip("/")

    app = FastAPI(
        title=f"{registry.config.app_name} documentation",
        description="JSON documentation tree built from apidoc declarations",
    )
    app.state.registry = registry

    def _docs(
        request: Request,
        version: str,
        class_name: Optional[str],
        method_name: Optional[str],
        lang: Optional[str],
        section: Optional[str],
        reload: bool,
    ) -> Dict[str, Any]:
        if (reload or registry.config.reload_on_request) and registry.source is not None:
            registry.reload()
        tree = registry.query(
            version,
            class_name,
            method_name,
            lang=lang or registry.config.default_locale,
            section=section or registry.config.default_section,
            url_prefix=request.scope.get("root_path", ""),
        )
        if not tree["docs"]["classes"]:
            target = "/".join(part for part in (version, class_name, method_name) if part)
            raise HTTPException(status_code=404, detail=f"No documentation for {target}")
        return tree

    @app.get("/health", response_model=HealthResponse)
    def health() -> HealthResponse:
        """Health check endpoint."""
        try:
            return HealthResponse(
                status="healthy",
                versions=registry.available_versions(),
                failures=len(registry.failures),
            )
        except Exception as e:
            logger.exception("Health check failed")
            return HealthResponse(status="unhealthy", error=str(e))

    @app.get("/versions", response_model=VersionsResponse)
    def versions() -> VersionsResponse:
        """List documented versions."""
        return VersionsResponse(
            versions=registry.available_versions(),
            default_version=registry.config.default_version,
        )

    @app.get("/failures", response_model=FailuresResponse)
    def failures() -> FailuresResponse:
        """Declarations skipped during the last build."""
        return FailuresResponse(
            failures=[BuildFailureModel(**failure.to_dict()) for failure in registry.failures]
        )

    @app.get(base_url + "/{version}")
    def version_docs(
        request: Request,
        version: str,
        lang: Optional[str] = Query(None, description="Locale passed to the translator"),
        section: Optional[str] = Query(None, description="Only classes in this section"),
        reload: bool = Query(False, description="Rebuild from the annotation source first"),
    ) -> Dict[str, Any]:
        """Documentation tree of every class in ``version``."""
        return _docs(request, version, None, None, lang, section, reload)

    @app.get(base_url + "/{version}/{class_name}")
    def class_docs(
        request: Request,
        version: str,
        class_name: str,
        lang: Optional[str] = Query(None),
        section: Optional[str] = Query(None),
        reload: bool = Query(False),
    ) -> Dict[str, Any]:
        """Documentation tree of one class."""
        return _docs(request, version, class_name, None, lang, section, reload)

    @app.get(base_url + "/{version}/{class_name}/{method_name}")
    def method_docs(
        request: Request,
        version: str,
        class_name: str,
        method_name: str,
        lang: Optional[str] = Query(None),
        section: Optional[str] = Query(None),
        reload: bool = Query(False),
    ) -> Dict[str, Any]:
        """Documentation tree of one method."""
        return _docs(request, version, class_name, method_name, lang, section, reload)

    @app.exception_handler(404)
    async def not_found_handler(request, exc):
        """Custom 404 handler with more helpful error messages."""
        return JSONResponse(
            status_code=404,
            content={
                "error": "Not Found",
                "detail": (
                    str(exc.detail)
                    if hasattr(exc, "detail")
                    else "The requested resource was not found"
                ),
                "path": str(request.url.path),
            },
        )

    @app.exception_handler(InvalidQueryKey)
    async def invalid_key_handler(request, exc):
        return JSONResponse(
            status_code=400,
            content={"error": "Bad Request", "detail": str(exc)},
        )

    @app.exception_handler(UnresolvedReference)
    async def unresolved_reference_handler(request, exc):
        logger.error(f"Unresolved reference while rendering {request.url.path}: {exc}")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal Server Error", "detail": str(exc)},
        )

    return app

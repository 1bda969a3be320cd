#!/usr/bin/env python3
"""
Example client for the apidoc-dsl documentation server.

Start a server first, for example::

    APIDOC_DSL_MODULES=apidoc_samples.console_dsl PYTHONPATH=tests apidoc-dsl-server

then run this script to walk the documented versions, classes and methods.
"""

from typing import Any, Dict, List, Optional

import httpx


class DocsClient:
    """Client for the JSON documentation endpoints."""

    def __init__(self, base_url: str = "http://localhost:8000", doc_base_url: str = "/apidoc"):
        self.client = httpx.Client(base_url=base_url, timeout=30.0)
        self.doc_base_url = doc_base_url.rstrip("/")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.client.close()

    def get_health(self) -> Dict:
        """Check API health status."""
        response = self.client.get("/health")
        response.raise_for_status()
        return response.json()

    def get_versions(self) -> List[str]:
        response = self.client.get("/versions")
        response.raise_for_status()
        return response.json()["versions"]

    def get_docs(
        self,
        version: str,
        class_name: Optional[str] = None,
        method_name: Optional[str] = None,
        lang: Optional[str] = None,
        section: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Fetch a documentation tree.

        Returns:
            The ``docs`` envelope, or None when nothing is documented there (404)
        """
        path = "/".join(
            [self.doc_base_url, version] + [p for p in (class_name, method_name) if p]
        )
        params = {k: v for k, v in {"lang": lang, "section": section}.items() if v}
        response = self.client.get(path, params=params)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()["docs"]

    def print_method(self, method: Dict[str, Any], indent: str = "    ") -> None:
        print(f"{indent}{method['name']}: {method.get('shortDescription') or ''}")
        for param in method.get("params", []):
            kind = param["type"]
            expected = param.get("validatorDescription") or ""
            print(f"{indent}  - {param['fullName']} ({kind}) {expected}")
        returns = method.get("returns") or {}
        returned = returns.get("object", {}).get("class")
        if returned:
            print(f"{indent}  returns {returned}")


def main():
    """Walk every documented version."""

    print("apidoc-dsl Client Example")
    print("=" * 50)

    with DocsClient() as client:
        health = client.get_health()
        print(f"Status: {health['status']} (failed declarations: {health['failures']})")

        for version in client.get_versions():
            docs = client.get_docs(version)
            if docs is None:
                continue
            print(f"\n{docs['name']} {version}  {docs['docUrl']}")
            for class_key, klass in docs["classes"].items():
                print(f"  {class_key}: {klass.get('shortDescription') or ''}")
                for method in klass["methods"]:
                    client.print_method(method)


if __name__ == "__main__":
    try:
        main()
    except httpx.ConnectError:
        print("\nError: Could not connect to API server.")
        print("Make sure the server is running: python -m apidoc_dsl.run_server")

"""
CLI commands for building and inspecting DSL documentation.
"""

import argparse
import json
import logging
import sys
from pathlib import Path

from .collect import ModuleSource
from .config import config_from_env
from .errors import DSLError
from .registry import DocRegistry


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )


def _build_registry(args) -> DocRegistry:
    registry = DocRegistry(config=config_from_env(), source=ModuleSource(args.modules))
    registry.reload()
    for failure in registry.failures:
        print(f"✗ {failure.target}: {failure.error}", file=sys.stderr)
    return registry


def cmd_json(args):
    """Print the documentation tree as JSON."""
    setup_logging(args.verbose)

    registry = _build_registry(args)
    version = args.doc_version or registry.config.default_version
    try:
        tree = registry.query(
            version,
            args.class_name,
            args.method_name,
            lang=args.lang,
            section=args.section,
        )
    except DSLError as e:
        print(f"✗ {e}", file=sys.stderr)
        return 1

    output = json.dumps(tree, indent=args.indent, default=str)
    if args.output:
        Path(args.output).write_text(output + "\n", encoding="utf-8")
        print(f"✓ Wrote documentation for {version} to: {args.output}")
    else:
        print(output)
    return 1 if args.strict and registry.failures else 0


def cmd_versions(args):
    """List documented versions."""
    setup_logging(args.verbose)

    registry = _build_registry(args)
    default_version = registry.config.default_version
    versions = registry.available_versions()
    if not versions:
        print("No documented versions")
        return 1
    print("Documented versions:")
    for version in versions:
        default_marker = " (default)" if version == default_version else ""
        print(f"  {version}{default_marker}")
    return 0


def main(argv=None):
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="DSL documentation CLI",
        prog="apidoc-dsl"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging"
    )

    subparsers = parser.add_subparsers(
        dest="command",
        help="Available commands"
    )

    # JSON command
    json_parser = subparsers.add_parser(
        "json",
        help="Print the documentation tree of the given modules"
    )
    json_parser.add_argument("modules", nargs="+", help="Modules to collect declarations from")
    json_parser.add_argument(
        "--doc-version",
        help="Documentation version (default: configured default version)"
    )
    json_parser.add_argument("--class", dest="class_name", help="Only this class")
    json_parser.add_argument("--method", dest="method_name", help="Only this method (needs --class)")
    json_parser.add_argument("--lang", help="Locale passed to the translator")
    json_parser.add_argument("--section", help="Only classes in this section")
    json_parser.add_argument("--indent", type=int, default=2, help="JSON indentation (default: 2)")
    json_parser.add_argument("-o", "--output", help="Write to this file instead of stdout")
    json_parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 when any declaration failed to build"
    )
    json_parser.set_defaults(func=cmd_json)

    # Versions command
    versions_parser = subparsers.add_parser(
        "versions",
        help="List documented versions"
    )
    versions_parser.add_argument("modules", nargs="+", help="Modules to collect declarations from")
    versions_parser.set_defaults(func=cmd_versions)

    args = parser.parse_args(argv)

    if not hasattr(args, 'func'):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

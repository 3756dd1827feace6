"""Command-line interface for graph-ops."""

import argparse
import json
import logging
import sys
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Optional

from graph_ops import __version__
from graph_ops.graph import Graph
from graph_ops.importer import ExternalGraph, GraphImporter, GraphImportError
from graph_ops.ops.base import OpBindingError
from graph_ops.ops.registry import default_registry
from graph_ops.serializer import SerializationError, load_graph, serialize_graph


def _load_graph_file(path: str) -> Graph:
    """Load a graph file with user-friendly error handling."""
    try:
        return load_graph(path)
    except FileNotFoundError:
        print(f"Error: file not found: {path}", file=sys.stderr)
        sys.exit(1)
    except SerializationError as e:
        print(f"Error: invalid graph file: {e}", file=sys.stderr)
        sys.exit(1)


def _write_output(text: str, path: Optional[str]) -> None:
    """Write text to stdout or a file."""
    if path is None:
        print(text)
    else:
        Path(path).parent.mkdir(parents=True, exist_ok=True)
        Path(path).write_text(text)


def cmd_ops(args: argparse.Namespace) -> None:
    """Handle the 'ops' subcommand."""
    registry = default_registry()
    info: Dict[str, Any] = {}
    for op_name, external_names in registry.list_registered_ops().items():
        cls = registry.get_op_class(op_name)
        info[op_name] = {
            "external_names": external_names,
            "fields": {
                spec.name: {
                    "type": spec.type.__name__,
                    **({} if spec.required else {"default": spec.default}),
                }
                for spec in cls.describe_fields()
            },
            "mappings": {m.external_name: m.to_dict() for m in cls.mappings},
        }

    if args.json:
        output = json.dumps(info, indent=2)
    else:
        lines = []
        for op_name, entry in info.items():
            aliases = ", ".join(entry["external_names"]) or "-"
            lines.append(f"{op_name} ({aliases})")
            for field_name, spec in entry["fields"].items():
                default = f" = {spec['default']!r}" if "default" in spec else ""
                lines.append(f"  {field_name}: {spec['type']}{default}")
        output = "\n".join(lines)

    _write_output(output, args.output)


def cmd_import(args: argparse.Namespace) -> None:
    """Handle the 'import' subcommand."""
    try:
        external = ExternalGraph.load(args.external_file)
    except FileNotFoundError:
        print(f"Error: file not found: {args.external_file}", file=sys.stderr)
        sys.exit(1)
    except GraphImportError as e:
        print(f"Error: invalid external graph: {e}", file=sys.stderr)
        sys.exit(1)

    importer = GraphImporter(strict=not args.skip_unsupported)
    try:
        graph = importer.import_graph(external)
    except OpBindingError as e:
        print(f"Error: import failed: {e}", file=sys.stderr)
        sys.exit(1)

    for name in importer.skipped:
        print(f"Skipped node: {name}", file=sys.stderr)

    _write_output(serialize_graph(graph), args.output)


def cmd_info(args: argparse.Namespace) -> None:
    """Handle the 'info' subcommand."""
    graph = _load_graph_file(args.graph_file)

    op_counts: Dict[str, int] = defaultdict(int)
    for _, record in graph.ops:
        op_counts[record.op_name] += 1

    info = {
        "graph_name": graph.name,
        "num_ops": len(graph.ops),
        "num_variables": len(graph.variables),
        "num_placeholders": len(graph.placeholders),
        "num_constants": len(graph.constants),
        "placeholder_shapes": {
            v.name: list(v.shape) if v.shape is not None else None for v in graph.placeholders
        },
        "op_distribution": dict(sorted(op_counts.items(), key=lambda x: -x[1])),
        "unresolved_ops": [name for name, record in graph.ops if not record.is_resolved],
    }

    if args.json:
        output = json.dumps(info, indent=2)
    else:
        lines = [
            f"Graph: {info['graph_name']}",
            f"Ops: {info['num_ops']}",
            f"Variables: {info['num_variables']}",
            f"Placeholders: {info['num_placeholders']}",
            f"Constants: {info['num_constants']}",
            "",
            "Placeholder shapes:",
        ]
        for name, shape in info["placeholder_shapes"].items():
            lines.append(f"  {name}: {shape}")
        lines.append("")
        lines.append("Op distribution:")
        for op, count in info["op_distribution"].items():
            lines.append(f"  {op}: {count}")
        if info["unresolved_ops"]:
            lines.append("")
            lines.append("Ops with unresolved configuration inputs:")
            for name in info["unresolved_ops"]:
                lines.append(f"  {name}")
        output = "\n".join(lines)

    _write_output(output, args.output)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for graph-ops CLI."""
    parser = argparse.ArgumentParser(prog="graph-ops", description="graph-ops CLI tools")
    parser.add_argument("--version", action="version", version=f"graph-ops {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # ops subcommand
    ops_parser = subparsers.add_parser("ops", help="List registered operators")
    ops_parser.add_argument("--json", action="store_true", help="Output in JSON format")
    ops_parser.add_argument("-o", "--output", default=None, help="Output file")

    # import subcommand
    import_parser = subparsers.add_parser("import", help="Import an external graph JSON file")
    import_parser.add_argument("external_file", help="Path to external graph JSON file")
    import_parser.add_argument(
        "--skip-unsupported",
        action="store_true",
        help="Skip nodes that cannot be imported instead of failing",
    )
    import_parser.add_argument("-o", "--output", default=None, help="Output graph JSON file")

    # info subcommand
    info_parser = subparsers.add_parser("info", help="Show graph summary information")
    info_parser.add_argument("graph_file", help="Path to graph JSON file")
    info_parser.add_argument("--json", action="store_true", help="Output in JSON format")
    info_parser.add_argument("-o", "--output", default=None, help="Output file")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """CLI entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.command is None:
        parser.print_help()
        sys.exit(2)

    if args.command == "ops":
        cmd_ops(args)
    elif args.command == "import":
        cmd_import(args)
    elif args.command == "info":
        cmd_info(args)

#!/usr/bin/env python3
"""
Command line entry point for the tabular -> RDF converter.

USAGE
------

Single file:

    python tabular_cli.py \
        --csv /data/countries.tsv \
        --data-prefix "http://onto.fel.cvut.cz/data/" \
        --input-graph schema.ttl \
        --replace \
        --output countries.ttl

Module configuration (JSON, same keys as the tabular module settings plus
"type", "csv_path" and "input_graph"):

    python tabular_cli.py --config /tmp/tabular.json --output - --quiet

Notes
-----
- Delimiter defaults to tab; pass --delimiter auto to sniff it.
- Encoding is detected via chardet; override with --encoding if needed.
- Schema defects are logged unless --exit-on-error is given.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from rdflib import Graph
from rdflib.util import guess_format

from module_registry import TABULAR_TYPE_URI, TabularModule, load_module
from stream_resources import StreamResourceRegistry
from tabular_rdf import build_summary


def setup_logging(verbose: bool = False, quiet: bool = False) -> None:
    """Set up logging configuration."""
    if quiet:
        level = logging.WARNING
    else:
        level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )


def load_input_graph(path: Path) -> Graph:
    if not path.exists():
        raise FileNotFoundError(f"Input graph not found: {path}")
    graph = Graph()
    graph.parse(str(path), format=guess_format(str(path)) or "turtle")
    logging.info("Loaded %d input triples from %s", len(graph), path)
    return graph


def write_graph(graph: Graph, out_path: Path, rdf_format: str = "turtle") -> None:
    target_path = str(out_path)
    logging.info("Writing RDF output to %s", target_path)
    rdf_content = graph.serialize(format=rdf_format)
    if target_path == "-":
        sys.stdout.write(rdf_content)
        if not rdf_content.endswith("\n"):
            sys.stdout.write("\n")
        sys.stdout.flush()
    else:
        if out_path.parent != Path("."):
            out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(rdf_content, encoding="utf-8")


def config_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Module configuration equivalent to the single-file command line flags."""
    config: Dict[str, Any] = {
        "type": TABULAR_TYPE_URI,
        "csv_path": str(args.csv),
        "delimiter": args.delimiter,
        "quote_character": args.quote_character,
        "skip_header": args.skip_header,
        "replace": args.replace,
        "output_mode": args.output_mode,
        "error_policy": "fail" if args.exit_on_error else "log",
    }
    optional = {
        "source_resource_uri": args.source_resource_uri,
        "data_prefix": args.data_prefix,
        "encoding": args.encoding,
        "table_group_uri": args.table_group_uri,
        "table_uri": args.table_uri,
        "input_graph": str(args.input_graph) if args.input_graph else None,
    }
    config.update({key: value for key, value in optional.items() if value is not None})
    return config


def parse_args(argv: Optional[List[str]] = None):
    p = argparse.ArgumentParser(description="Convert delimited tabular data (CSV/TSV) to RDF using a CSVW-style table schema.")
    p.add_argument("--config", type=Path, help="Path to module configuration JSON")
    p.add_argument("--csv", type=Path, help="Path to the tabular file (single-file mode)")
    p.add_argument("--source-resource-uri", help="Source locator of the table (defaults to the file URI of --csv)")
    p.add_argument("--input-graph", type=Path, help="RDF file holding the input graph, e.g. a csvw:TableSchema")
    p.add_argument("--data-prefix", help="Namespace for default property URLs")
    p.add_argument("--delimiter", default="\t", help="Cell delimiter (default: tab; 'auto' to sniff)")
    p.add_argument("--quote-character", default="'", help="Quote character (default: ')")
    p.add_argument("--encoding", help="Force encoding (otherwise detected)")
    p.add_argument("--skip-header", action="store_true", help="Treat the first line as data; names come from the schema")
    p.add_argument("--replace", action="store_true", help="Output only the generated graph instead of input + output")
    p.add_argument("--output-mode", default="STANDARD", type=str.upper, choices=["STANDARD", "MINIMAL"], help="STANDARD adds table metadata, MINIMAL emits cell edges only")
    p.add_argument("--exit-on-error", action="store_true", help="Abort on table schema defects instead of logging them")
    p.add_argument("--table-group-uri", help="URI of the table group node (STANDARD mode)")
    p.add_argument("--table-uri", help="URI of the table node (STANDARD mode)")
    p.add_argument("--output", "-o", type=Path, default=Path("table.ttl"), help="Output path ('-' for stdout)")
    p.add_argument("--format", default="turtle", help="rdflib serialization format (default: turtle)")
    p.add_argument("--summary-json", type=Path, help="Optional path to write column summary as JSON")
    p.add_argument("--verbose", "-v", action="store_true", help="Enable verbose logging")
    p.add_argument("--quiet", action="store_true", help="Suppress console summary output")
    return p.parse_args(argv)


def main(argv: Optional[List[str]] = None):
    args = parse_args(argv)
    if args.config and args.csv:
        print("[ERROR] --config and --csv are mutually exclusive", file=sys.stderr)
        sys.exit(2)

    if not args.config and not args.csv:
        print("[ERROR] Provide either --config or --csv", file=sys.stderr)
        sys.exit(2)

    setup_logging(args.verbose, args.quiet)

    try:
        if args.config:
            if not args.config.exists():
                raise FileNotFoundError(f"Module configuration not found: {args.config}")
            module_config = json.loads(args.config.read_text(encoding="utf-8"))
            if not isinstance(module_config, dict):
                raise ValueError("module configuration must be a JSON object")
        else:
            module_config = config_from_args(args)

        resources = StreamResourceRegistry()
        csv_path = module_config.pop("csv_path", None)
        if csv_path:
            resource = resources.register_file(Path(csv_path), module_config.get("source_resource_uri"))
            module_config.setdefault("source_resource_uri", resource.uri)

        input_graph_path = module_config.pop("input_graph", None)
        input_graph = load_input_graph(Path(input_graph_path)) if input_graph_path else Graph()

        module = load_module(module_config, resources)
        result = module.run(input_graph)
        write_graph(result.graph, args.output, args.format)

        to_stdout = str(args.output) == "-"
        if not args.quiet and not to_stdout:
            print(f"[OK] Wrote RDF: {args.output}")
            print(f"  rows_processed={result.rows_processed}, columns={len(result.columns)}, triples={len(result.graph)}")
            if result.warnings:
                print(f"  warnings={len(result.warnings)}")

        if args.summary_json:
            if not isinstance(module, TabularModule):
                raise ValueError("--summary-json is only available for the tabular module")
            summary_path = args.summary_json
            if summary_path.parent != Path("."):
                summary_path.parent.mkdir(parents=True, exist_ok=True)
            summary_path.write_text(json.dumps(build_summary(module.config, result), indent=2), encoding="utf-8")
            logging.info("Wrote column summary JSON to %s", summary_path)

        logging.info("Conversion completed successfully")

    except Exception as e:
        logging.error("Error during conversion: %s", e)
        print(f"[ERROR] {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()

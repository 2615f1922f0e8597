#!/usr/bin/env python3
"""
Test suite for tabular_cli.py
"""

import json
import sys
import tempfile
import unittest
from pathlib import Path

from rdflib import Graph, Literal, URIRef

sys.path.insert(0, str(Path(__file__).parent))

import tabular_cli

TESTDATA = Path(__file__).parent / "testdata"
DATA_PREFIX = "http://onto.fel.cvut.cz/data/"


class TestCommandLine(unittest.TestCase):
    """Test the command line entry point"""

    def setUp(self):
        self.tmpdir = tempfile.TemporaryDirectory()
        self.out_dir = Path(self.tmpdir.name)

    def tearDown(self):
        self.tmpdir.cleanup()

    def test_single_file(self):
        """Test single-file conversion with summary JSON"""
        output = self.out_dir / "countries.ttl"
        summary = self.out_dir / "summary.json"

        tabular_cli.main([
            "--csv", str(TESTDATA / "countries.tsv"),
            "--source-resource-uri", "http://test-file",
            "--data-prefix", DATA_PREFIX,
            "--replace",
            "--output", str(output),
            "--summary-json", str(summary),
            "--quiet",
        ])

        graph = Graph().parse(str(output), format="turtle")
        self.assertEqual(
            graph.value(URIRef("http://test-file#row-1"), URIRef(DATA_PREFIX + "name")),
            Literal("Andorra"),
        )
        payload = json.loads(summary.read_text(encoding="utf-8"))
        self.assertEqual(payload["rows_processed"], 3)
        self.assertEqual([c["name"] for c in payload["columns"]], ["country", "latitude", "longitude", "name"])

    def test_skip_header_with_schema(self):
        """Test headerless table named from the schema column list"""
        output = self.out_dir / "no_header.ttl"

        tabular_cli.main([
            "--csv", str(TESTDATA / "no_header.tsv"),
            "--source-resource-uri", "http://test-file",
            "--data-prefix", DATA_PREFIX,
            "--input-graph", str(TESTDATA / "no_header_schema.ttl"),
            "--skip-header",
            "--output-mode", "minimal",
            "--output", str(output),
            "--quiet",
        ])

        graph = Graph().parse(str(output), format="turtle")
        # input schema is kept without --replace
        self.assertEqual(len(set(graph.subjects(URIRef(DATA_PREFIX + "col_5"), None))), 3)
        self.assertIn(
            (URIRef("http://example.org/schema/c1"), URIRef("http://www.w3.org/ns/csvw#name"), Literal("col_1")),
            graph,
        )

    def test_module_configuration(self):
        """Test conversion driven by a JSON module configuration"""
        output = self.out_dir / "from_config.ttl"
        config_path = self.out_dir / "tabular.json"
        config_path.write_text(json.dumps({
            "type": "tabular",
            "csv_path": str(TESTDATA / "countries.tsv"),
            "source_resource_uri": "http://test-file",
            "data_prefix": DATA_PREFIX,
            "output_mode": "MINIMAL",
            "replace": True,
        }), encoding="utf-8")

        tabular_cli.main(["--config", str(config_path), "--output", str(output), "--quiet"])

        graph = Graph().parse(str(output), format="turtle")
        self.assertEqual(len(graph), 12)

    def test_duplicate_columns_exit_with_error(self):
        with self.assertRaises(SystemExit) as cm:
            tabular_cli.main([
                "--csv", str(TESTDATA / "duplicate_column_countries.tsv"),
                "--output", str(self.out_dir / "dup.ttl"),
                "--quiet",
            ])
        self.assertEqual(cm.exception.code, 1)

    def test_requires_input(self):
        with self.assertRaises(SystemExit) as cm:
            tabular_cli.main(["--output", str(self.out_dir / "none.ttl")])
        self.assertEqual(cm.exception.code, 2)

    def test_config_and_csv_exclusive(self):
        with self.assertRaises(SystemExit) as cm:
            tabular_cli.main(["--config", "a.json", "--csv", "a.tsv"])
        self.assertEqual(cm.exception.code, 2)

    def test_config_from_args(self):
        args = tabular_cli.parse_args(["--csv", "t.tsv", "--exit-on-error", "--output-mode", "minimal"])

        config = tabular_cli.config_from_args(args)

        self.assertEqual(config["error_policy"], "fail")
        self.assertEqual(config["output_mode"], "MINIMAL")
        self.assertNotIn("data_prefix", config)


if __name__ == "__main__":
    unittest.main()

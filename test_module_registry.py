#!/usr/bin/env python3
"""
Test suite for module_registry.py
"""

import sys
import unittest
from pathlib import Path

from rdflib import Graph, Literal, URIRef

sys.path.insert(0, str(Path(__file__).parent))

import module_registry
from module_registry import MergeModule, TabularModule, load_module
from stream_resources import StreamResourceRegistry
from tabular_rdf import Mode

SOURCE_URI = "http://test-file"


class TestModuleLoading(unittest.TestCase):
    """Test module resolution by type URI"""

    def setUp(self):
        self.resources = StreamResourceRegistry()
        self.resources.register(SOURCE_URI, b"a\tb\n1\t2\n")

    def test_default_type_is_tabular(self):
        module = load_module({"source_resource_uri": SOURCE_URI}, self.resources)
        self.assertIsInstance(module, TabularModule)

    def test_alias_and_full_uri(self):
        by_alias = load_module({"type": "tabular", "source_resource_uri": SOURCE_URI}, self.resources)
        by_uri = load_module(
            {"type": module_registry.TABULAR_TYPE_URI, "source_resource_uri": SOURCE_URI, "output_mode": "minimal"},
            self.resources,
        )
        self.assertIsInstance(by_alias, TabularModule)
        self.assertIs(by_uri.config.output_mode, Mode.MINIMAL)

    def test_unknown_type(self):
        with self.assertRaises(ValueError):
            load_module({"type": "http://example.org/Unknown"}, self.resources)

    def test_duplicate_registration(self):
        with self.assertRaises(ValueError):
            module_registry.register_module(module_registry.MERGE_TYPE_URI)(MergeModule)

    def test_tabular_execute(self):
        module = load_module(
            {"source_resource_uri": SOURCE_URI, "data_prefix": "http://x/", "replace": True},
            self.resources,
        )

        graph = module.execute(Graph())

        self.assertEqual(graph.value(URIRef(SOURCE_URI + "#row-1"), URIRef("http://x/b")), Literal("2"))


class TestMergeModule(unittest.TestCase):
    """Test the pass-through merge module"""

    def test_copies_input(self):
        """Test merge returns a copy of its input graph"""
        input_graph = Graph()
        triple = (URIRef("http://example.org/s"), URIRef("http://example.org/p"), Literal("o"))
        input_graph.add(triple)

        module = load_module({"type": "merge"})
        graph = module.execute(input_graph)

        self.assertIsInstance(module, MergeModule)
        self.assertIn(triple, graph)
        self.assertIsNot(graph, input_graph)

    def test_rejects_settings(self):
        with self.assertRaises(ValueError):
            load_module({"type": "merge", "replace": True})


if __name__ == "__main__":
    unittest.main()

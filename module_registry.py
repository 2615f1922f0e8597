"""
Pipeline modules addressed by type URI.

A module configuration is a JSON-style mapping whose optional "type" key names
the module (full type URI or a short alias); every other key is handed to the
module factory. The type is resolved once, when the module is loaded, so the
modules themselves never look at type tags.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Mapping, Optional

from rdflib import Graph

from stream_resources import StreamResourceRegistry
from tabular_rdf import ConversionResult, TabularConfig, convert_tabular


KBSS_MODULE = "http://onto.fel.cvut.cz/ontologies/lib/module/"
SML = "http://topbraid.org/sparqlmotionlib#"

TABULAR_TYPE_URI = KBSS_MODULE + "tabular"
MERGE_TYPE_URI = SML + "Merge"

MODULE_ALIASES = {
    "tabular": TABULAR_TYPE_URI,
    "merge": MERGE_TYPE_URI,
}

MODULE_REGISTRY: Dict[str, Any] = {}


def register_module(type_uri: str) -> Callable[[type], type]:
    def decorator(cls: type) -> type:
        if type_uri in MODULE_REGISTRY:
            raise ValueError(f"Module type already registered: {type_uri}")
        MODULE_REGISTRY[type_uri] = cls
        return cls

    return decorator


@register_module(TABULAR_TYPE_URI)
class TabularModule:
    """Converts a registered tabular stream resource to RDF."""

    type_uri = TABULAR_TYPE_URI

    def __init__(self, config: TabularConfig, resources: Optional[StreamResourceRegistry] = None):
        self.config = config
        self.resources = resources or StreamResourceRegistry()

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        resources: Optional[StreamResourceRegistry] = None,
    ) -> "TabularModule":
        return cls(TabularConfig.from_dict(config), resources)

    def run(self, input_graph: Optional[Graph] = None) -> ConversionResult:
        return convert_tabular(self.config, self.resources, input_graph)

    def execute(self, input_graph: Optional[Graph] = None) -> Graph:
        return self.run(input_graph).graph


@register_module(MERGE_TYPE_URI)
class MergeModule:
    """Passes the input graph through unchanged."""

    type_uri = MERGE_TYPE_URI

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        resources: Optional[StreamResourceRegistry] = None,
    ) -> "MergeModule":
        if config:
            raise ValueError("Unknown merge module settings: " + ", ".join(sorted(config)))
        return cls()

    def run(self, input_graph: Optional[Graph] = None) -> ConversionResult:
        graph = Graph()
        if input_graph is not None:
            for prefix, namespace in input_graph.namespaces():
                graph.bind(prefix, namespace, override=False)
            graph += input_graph
        return ConversionResult(graph=graph)

    def execute(self, input_graph: Optional[Graph] = None) -> Graph:
        return self.run(input_graph).graph


def resolve_module_type(type_tag: Optional[str]) -> str:
    """Map an alias to its type URI; no tag means the tabular module."""
    if not type_tag:
        return TABULAR_TYPE_URI
    return MODULE_ALIASES.get(type_tag, type_tag)


def load_module(config: Mapping[str, Any], resources: Optional[StreamResourceRegistry] = None):
    settings = dict(config)
    type_uri = resolve_module_type(settings.pop("type", None))
    factory = MODULE_REGISTRY.get(type_uri)
    if factory is None:
        raise ValueError(f"Unknown module type: {type_uri}")
    logging.debug("Loading module %s", type_uri)
    return factory.from_config(settings, resources)

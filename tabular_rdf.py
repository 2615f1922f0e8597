#!/usr/bin/env python3
# ----------------------------- requirements.txt -----------------------------
# rdflib==7.0.0
# chardet==5.2.0
# datasketch==1.5.9
# ---------------------------------------------------------------------------

"""
Delimited tabular data (CSV/TSV) -> RDF, driven by a CSVW-style table schema.

- Loosely follows "Generating RDF from Tabular Data on the Web" (csv2rdf).
- Resolves an optional csvw:TableSchema found in the input graph; otherwise the
  schema is synthesized from the header line.
- Streams rows one at a time and emits one edge per cell:
  (expanded about-URL, property-URL, literal or expanded value-URL).
- STANDARD output mode also emits TableGroup/Table/TableSchema/Column/Row
  metadata; MINIMAL emits the cell edges only.

Differences from the recommendation: a single table per run, no annotations,
no datatypes (cells become plain literals), no suppress-output.

Row numbering
-------------
``{_row}`` is always the 1-based number of the data row (FIRST_ROW_NUMBER),
whether or not a header line was consumed. ``{_sourceRow}`` is the physical
line where the row starts in the source, blank lines and multi-line quoted
cells included, so with a header the first data row usually has
``_row == 1`` and ``_sourceRow == 2``. Row URLs use the source line:
``<source>#row=<_sourceRow>``.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
from urllib.parse import quote

from datasketch import HyperLogLog
from rdflib import BNode, Graph, Literal, Namespace, URIRef
from rdflib.collection import Collection
from rdflib.namespace import RDF

from stream_resources import AUTO_DELIMITER, StreamResourceRegistry, iter_table_rows
from tabular_errors import (
    DuplicateColumnNameError,
    ErrorPolicy,
    ReadFailureError,
    SchemaColumnCountMismatchError,
    SchemaColumnMissingError,
    TableSchemaError,
    TabularError,
    report_defect,
)


CSVW = Namespace("http://www.w3.org/ns/csvw#")
# str.title shadows attribute access on Namespace
CSVW_TITLE = CSVW["title"]

FIRST_ROW_NUMBER = 1
ROW_PLACEHOLDER = "{_row}"
SOURCE_ROW_PLACEHOLDER = "{_sourceRow}"
DEFAULT_ABOUT_URL_FRAGMENT = "#row-" + ROW_PLACEHOLDER
AUTO_COLUMN_PREFIX = "column_"
PROGRESS_EVERY = 10000

TABLE_SCHEMA_QUERY = """
PREFIX csvw: <http://www.w3.org/ns/csvw#>
SELECT DISTINCT ?t WHERE {
    ?t a csvw:TableSchema .
}
"""


class Mode(str, Enum):
    """Output data mode."""

    STANDARD = "STANDARD"
    MINIMAL = "MINIMAL"

    @classmethod
    def parse(cls, value) -> "Mode":
        if isinstance(value, Mode):
            return value
        try:
            return cls(str(value).strip().upper())
        except ValueError:
            raise ValueError(f"Unknown output mode: {value!r} (expected STANDARD or MINIMAL)")


@dataclass
class TabularConfig:
    source_resource_uri: str
    delimiter: str = "\t"
    quote_character: str = "'"
    data_prefix: Optional[str] = None
    skip_header: bool = False
    replace: bool = False
    output_mode: Mode = Mode.STANDARD
    error_policy: ErrorPolicy = ErrorPolicy.LOG
    table_group_uri: Optional[str] = None
    table_uri: Optional[str] = None
    encoding: Optional[str] = None

    def __post_init__(self):
        self.output_mode = Mode.parse(self.output_mode)
        self.error_policy = ErrorPolicy.parse(self.error_policy)
        if self.delimiter != AUTO_DELIMITER and (not isinstance(self.delimiter, str) or len(self.delimiter) != 1):
            raise ValueError(f"delimiter must be a single character or '{AUTO_DELIMITER}', got {self.delimiter!r}")
        if not isinstance(self.quote_character, str) or len(self.quote_character) != 1:
            raise ValueError(f"quote_character must be a single character, got {self.quote_character!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "TabularConfig":
        """Build a config from a JSON-style mapping, rejecting unknown keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValueError("Unknown tabular module settings: " + ", ".join(unknown))
        if not data.get("source_resource_uri"):
            raise ValueError("tabular module requires 'source_resource_uri'")
        return cls(**data)


# ------------------------------ schema model ------------------------------

@dataclass(frozen=True)
class SchemaColumn:
    """A csvw:Column declared by an externally supplied table schema."""

    node: Any
    name: Optional[str] = None
    title: Optional[str] = None
    about_url: Optional[str] = None
    property_url: Optional[str] = None
    value_url: Optional[str] = None


@dataclass(frozen=True)
class TableSchema:
    """An externally supplied csvw:TableSchema.

    ``ordered`` tells whether the columns follow an explicit csvw:columns list
    or were merely collected from csvw:column statements.
    """

    node: Any
    columns: Tuple[SchemaColumn, ...] = ()
    about_url: Optional[str] = None
    ordered: bool = False

    def column_by_name(self, name: str) -> Optional[SchemaColumn]:
        for column in self.columns:
            if column.name is not None and column.name == name:
                return column
        return None


@dataclass(frozen=True)
class ResolvedColumn:
    name: str
    title: str
    property_url: str
    about_url: Optional[str] = None
    value_url: Optional[str] = None


@dataclass(frozen=True)
class ResolvedSchema:
    columns: Tuple[ResolvedColumn, ...]
    default_about_url: str
    external: bool = False
    defects: Tuple[TableSchemaError, ...] = ()


class ColumnProfile:
    """Streaming fill/distinct counts for one column (summary report only)."""

    __slots__ = ("name", "n_rows", "n_non_missing", "hll")

    def __init__(self, name: str):
        self.name = name
        self.n_rows = 0
        self.n_non_missing = 0
        self.hll = HyperLogLog(p=12)

    def update(self, cell: Optional[str]):
        self.n_rows += 1
        if not cell:
            return
        self.n_non_missing += 1
        self.hll.update(cell.encode("utf-8", "ignore"))

    def approx_distinct(self) -> int:
        if self.n_non_missing == 0:
            return 0
        return int(round(self.hll.count()))


@dataclass
class ConversionResult:
    graph: Graph
    rows_processed: int = 0
    columns: List[ResolvedColumn] = field(default_factory=list)
    profiles: List[ColumnProfile] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    defects: List[TabularError] = field(default_factory=list)


# ------------------------------ normalization & templates ------------------------------

_NON_WORD = re.compile(r"[^\w]")


def normalize_column_name(title: str) -> str:
    """Trim and replace anything but letters, digits and '_' with '_'."""
    return _NON_WORD.sub("_", title.strip())


def expand_uri_template(template: str, row_number: int, source_row_number: Optional[int] = None) -> str:
    """Substitute {_row} (and {_sourceRow} when known); other placeholders stay as-is."""
    expanded = template.replace(ROW_PLACEHOLDER, str(row_number))
    if source_row_number is not None:
        expanded = expanded.replace(SOURCE_ROW_PLACEHOLDER, str(source_row_number))
    return expanded


def default_property_url(column_name: str, source_uri: str, data_prefix: Optional[str]) -> str:
    encoded = quote(column_name, safe="")
    if data_prefix:
        return data_prefix + encoded
    return f"{source_uri}#{encoded}"


def default_about_url(source_uri: str) -> str:
    return source_uri + DEFAULT_ABOUT_URL_FRAGMENT


# ------------------------------ schema discovery ------------------------------

def _str_value(graph: Graph, node, predicate) -> Optional[str]:
    value = graph.value(node, predicate)
    if value is None:
        return None
    return str(value)


def _parse_schema_column(graph: Graph, node) -> SchemaColumn:
    return SchemaColumn(
        node=node,
        name=_str_value(graph, node, CSVW.name),
        title=_str_value(graph, node, CSVW_TITLE),
        about_url=_str_value(graph, node, CSVW.aboutUrl),
        property_url=_str_value(graph, node, CSVW.propertyUrl),
        value_url=_str_value(graph, node, CSVW.valueUrl),
    )


def parse_table_schema(graph: Graph, node) -> TableSchema:
    """Read one csvw:TableSchema, ordering columns by its csvw:columns list if present."""
    members = list(graph.objects(node, CSVW.column))
    order_node = graph.value(node, CSVW.columns)
    ordered_nodes: List[Any] = []
    if order_node is not None:
        for item in Collection(graph, order_node):
            if item not in ordered_nodes:
                ordered_nodes.append(item)

    if ordered_nodes:
        nodes = ordered_nodes + [m for m in members if m not in ordered_nodes]
    else:
        nodes = sorted(set(members), key=lambda n: (_str_value(graph, n, CSVW.name) or "", str(n)))

    return TableSchema(
        node=node,
        columns=tuple(_parse_schema_column(graph, n) for n in nodes),
        about_url=_str_value(graph, node, CSVW.aboutUrl),
        ordered=bool(ordered_nodes),
    )


def find_table_schemas(graph: Optional[Graph]) -> List[TableSchema]:
    """All csvw:TableSchema resources declared in the input graph."""
    if graph is None or len(graph) == 0:
        return []
    nodes = sorted({row[0] for row in graph.query(TABLE_SCHEMA_QUERY)}, key=str)
    return [parse_table_schema(graph, node) for node in nodes]


def select_table_schema(schemas: Sequence[TableSchema]) -> Optional[TableSchema]:
    """Pick the authoritative schema: exactly one, or none at all."""
    if len(schemas) == 1:
        logging.debug("Custom table schema found.")
        return schemas[0]
    if len(schemas) > 1:
        logging.warning(
            "More than one table schema found. Ignoring schemas %s.",
            ", ".join(str(s.node) for s in schemas),
        )
    else:
        logging.debug("No custom table schema found.")
    return None


def header_from_schema(schema: Optional[TableSchema], width: int) -> List[str]:
    """Column names for a headerless table of the given width.

    Names come from the schema's ordered column list; positions it does not
    cover are auto-named column_<n>.
    """
    names: List[str] = []
    if schema is not None:
        if schema.ordered:
            names = [column.name or column.title or "" for column in schema.columns]
        else:
            logging.info("Order of columns was not provided in the schema.")

    header = []
    for i in range(width):
        if i < len(names) and names[i]:
            header.append(names[i])
        else:
            header.append(f"{AUTO_COLUMN_PREFIX}{i + 1}")
    return header


# ------------------------------ column resolution ------------------------------

def check_duplicate_column(
    seen: Mapping[str, str],
    title: str,
    column_name: str,
    property_url: str,
) -> Dict[str, str]:
    """Return ``seen`` extended with the column; a repeated name is always fatal."""
    if column_name in seen:
        raise DuplicateColumnNameError(seen[column_name], title, column_name, property_url)
    extended = dict(seen)
    extended[column_name] = title
    return extended


def resolve_columns(
    header: Sequence[str],
    schema: Optional[TableSchema],
    source_uri: str,
    data_prefix: Optional[str] = None,
    policy: ErrorPolicy = ErrorPolicy.LOG,
    positional: bool = False,
) -> ResolvedSchema:
    """Turn header titles (plus an optional external schema) into column rules.

    With ``positional`` the i-th title belongs to the i-th schema column (a
    skipped header named from the schema's ordered list); otherwise schema
    columns are looked up by normalized name. Name collisions are checked
    before any schema defect is reported.
    """
    seen: Dict[str, str] = {}
    columns: List[ResolvedColumn] = []
    missing: List[str] = []
    for i, title in enumerate(header):
        name = normalize_column_name(title)

        schema_column: Optional[SchemaColumn] = None
        if schema is not None:
            if positional:
                if i < len(schema.columns):
                    schema_column = schema.columns[i]
            else:
                schema_column = schema.column_by_name(name)
                if schema_column is None:
                    missing.append(name)

        property_url = None
        about_url = None
        value_url = None
        if schema_column is not None:
            property_url = schema_column.property_url or None
            about_url = schema_column.about_url or None
            value_url = schema_column.value_url or None
        if property_url is None:
            property_url = default_property_url(name, source_uri, data_prefix)

        seen = check_duplicate_column(seen, title, name, property_url)
        columns.append(
            ResolvedColumn(
                name=name,
                title=title,
                property_url=property_url,
                about_url=about_url,
                value_url=value_url,
            )
        )

    defects: List[TableSchemaError] = []
    if schema is not None and len(header) != len(schema.columns):
        defects.append(SchemaColumnCountMismatchError(len(schema.columns), len(header)))
    defects.extend(SchemaColumnMissingError(name) for name in missing)
    for defect in defects:
        report_defect(defect, policy)

    table_about_url = schema.about_url if schema is not None and schema.about_url else None
    return ResolvedSchema(
        columns=tuple(columns),
        default_about_url=table_about_url or default_about_url(source_uri),
        external=schema is not None,
        defects=tuple(defects),
    )


# ------------------------------ RDF emission ------------------------------

def map_row(
    graph: Graph,
    resolved: ResolvedSchema,
    cells: Sequence[Optional[str]],
    row_number: int,
    source_row_number: Optional[int] = None,
) -> List[URIRef]:
    """Emit the cell edges of one row and return the subjects it describes.

    Cells missing at the end of a short row and empty cells are null: they
    produce no literal edge.
    """
    subjects: List[URIRef] = []
    for i, column in enumerate(resolved.columns):
        cell = cells[i] if i < len(cells) else None
        about_url = column.about_url or resolved.default_about_url
        subject = URIRef(expand_uri_template(about_url, row_number, source_row_number))
        predicate = URIRef(column.property_url)

        if column.value_url:
            value = URIRef(expand_uri_template(column.value_url, row_number, source_row_number))
            graph.add((subject, predicate, value))
        elif cell:
            graph.add((subject, predicate, Literal(cell)))

        if subject not in subjects:
            subjects.append(subject)
    return subjects


def add_table_metadata(graph: Graph, config: TabularConfig):
    """Emit the TableGroup and Table nodes; returns the table node."""
    group = URIRef(config.table_group_uri) if config.table_group_uri else BNode()
    graph.add((group, RDF.type, CSVW.TableGroup))

    table = URIRef(config.table_uri) if config.table_uri else BNode()
    graph.add((group, CSVW.table, table))
    graph.add((table, RDF.type, CSVW.Table))
    graph.add((table, CSVW.url, URIRef(config.source_resource_uri)))
    return table


def add_schema_metadata(graph: Graph, table, resolved: ResolvedSchema):
    schema = BNode()
    graph.add((table, CSVW.tableSchema, schema))
    graph.add((schema, RDF.type, CSVW.TableSchema))
    graph.add((schema, CSVW.aboutUrl, Literal(resolved.default_about_url, datatype=CSVW.uriTemplate)))

    column_nodes = []
    for column in resolved.columns:
        node = BNode()
        graph.add((node, RDF.type, CSVW.Column))
        graph.add((node, CSVW.name, Literal(column.name)))
        graph.add((node, CSVW_TITLE, Literal(column.title)))
        graph.add((node, CSVW.propertyUrl, Literal(column.property_url, datatype=CSVW.uriTemplate)))
        if column.about_url:
            graph.add((node, CSVW.aboutUrl, Literal(column.about_url, datatype=CSVW.uriTemplate)))
        if column.value_url:
            graph.add((node, CSVW.valueUrl, Literal(column.value_url, datatype=CSVW.uriTemplate)))
        graph.add((schema, CSVW.column, node))
        column_nodes.append(node)

    if column_nodes:
        columns_list = BNode()
        Collection(graph, columns_list, column_nodes)
    else:
        columns_list = RDF.nil
    graph.add((schema, CSVW.columns, columns_list))
    return schema


def add_row_metadata(graph: Graph, table, row_number: int, row_url: str, subjects: Iterable[URIRef]):
    row = BNode()
    graph.add((table, CSVW.row, row))
    graph.add((row, RDF.type, CSVW.Row))
    graph.add((row, CSVW.rownum, Literal(row_number)))
    graph.add((row, CSVW.url, URIRef(row_url)))
    for subject in subjects:
        graph.add((row, CSVW.describes, subject))
    return row


def assemble_output(input_graph: Graph, output_graph: Graph, replace: bool) -> Graph:
    """Replace: the output alone. Otherwise a new graph with both, input untouched."""
    if replace:
        return output_graph
    merged = Graph()
    for source in (input_graph, output_graph):
        for prefix, namespace in source.namespaces():
            merged.bind(prefix, namespace, override=False)
    merged += input_graph
    merged += output_graph
    return merged


def _new_output_graph(config: TabularConfig) -> Graph:
    graph = Graph()
    graph.bind("csvw", CSVW)
    if config.data_prefix:
        graph.bind("data", Namespace(config.data_prefix))
    return graph


# ------------------------------ conversion ------------------------------

def convert_tabular(
    config: TabularConfig,
    resources: StreamResourceRegistry,
    input_graph: Optional[Graph] = None,
) -> ConversionResult:
    """Convert the configured tabular resource into RDF.

    Raises ResourceNotFoundError before reading anything when the source is
    unknown, DuplicateColumnNameError on colliding column names, and schema
    defects when the error policy is ErrorPolicy.FAIL. A read failure in the
    middle of the rows stops the scan; what was emitted so far is kept.
    """
    resource = resources.get_resource_by_url(config.source_resource_uri)
    if input_graph is None:
        input_graph = Graph()

    output = _new_output_graph(config)
    result = ConversionResult(graph=output)
    standard = config.output_mode is Mode.STANDARD

    rows = iter_table_rows(resource, config.delimiter, config.quote_character, config.encoding)
    first = next(rows, None)

    if first is None:
        message = f"Input stream resource {resource.uri} to provide tabular data is empty."
        logging.warning(message)
        result.warnings.append(message)
        if standard:
            add_table_metadata(output, config)
        result.graph = assemble_output(input_graph, output, config.replace)
        return result

    schema = select_table_schema(find_table_schemas(input_graph))

    if config.skip_header:
        header = header_from_schema(schema, len(first[1]))
        positional = schema is not None and schema.ordered
        # first line is data: start over
        rows = iter_table_rows(resource, config.delimiter, config.quote_character, config.encoding)
    else:
        header = first[1]
        positional = False
    logging.info("Resolved %d columns for %s", len(header), resource.uri)

    resolved = resolve_columns(
        header, schema, resource.uri, config.data_prefix, config.error_policy, positional=positional
    )
    result.columns = list(resolved.columns)
    result.defects.extend(resolved.defects)
    result.warnings.extend(str(defect) for defect in resolved.defects)

    table = None
    if standard:
        table = add_table_metadata(output, config)
        add_schema_metadata(output, table, resolved)

    result.profiles = [ColumnProfile(column.name) for column in resolved.columns]
    width = len(resolved.columns)
    rows_processed = 0
    try:
        for source_row_number, cells in rows:
            row_number = FIRST_ROW_NUMBER + rows_processed
            rows_processed += 1

            if len(cells) != width:
                message = f"Row {row_number} has {len(cells)} cells, expected {width}."
                logging.warning(message)
                result.warnings.append(message)

            subjects = map_row(output, resolved, cells, row_number, source_row_number)
            if table is not None:
                add_row_metadata(output, table, row_number, f"{resource.uri}#row={source_row_number}", subjects)

            for i, profile in enumerate(result.profiles):
                profile.update(cells[i] if i < len(cells) else None)

            if rows_processed % PROGRESS_EVERY == 0:
                logging.info("Processed %d rows...", rows_processed)
    except ReadFailureError as e:
        logging.error("Error while reading file from resource uri %s: %s", resource.uri, e)
        result.defects.append(e)
        result.warnings.append(str(e))

    result.rows_processed = rows_processed
    logging.info("Finished mapping. Processed %d data rows.", rows_processed)
    result.graph = assemble_output(input_graph, output, config.replace)
    return result


def build_summary(config: TabularConfig, result: ConversionResult) -> Dict[str, Any]:
    """Column summary payload for --summary-json."""
    columns: List[Dict[str, Any]] = []
    for column, profile in zip(result.columns, result.profiles):
        columns.append(
            {
                "name": column.name,
                "title": column.title,
                "property_url": column.property_url,
                "non_missing": profile.n_non_missing,
                "approx_distinct": profile.approx_distinct(),
            }
        )
    return {
        "source": config.source_resource_uri,
        "rows_processed": result.rows_processed,
        "triples": len(result.graph),
        "columns": columns,
        "warnings": list(result.warnings),
    }

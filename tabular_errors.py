"""
Defects raised while mapping tabular data to RDF.

Schema defects (column count mismatch, missing column) go through an explicit
ErrorPolicy: either raise, or log and let the caller continue with defaults.
Duplicate column names are always raised since the colliding predicate cannot
be resolved.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Optional


class ErrorPolicy(str, Enum):
    """What to do with a non-fatal schema defect."""

    FAIL = "fail"
    LOG = "log"

    @classmethod
    def parse(cls, value) -> "ErrorPolicy":
        if isinstance(value, ErrorPolicy):
            return value
        if isinstance(value, bool):
            return cls.FAIL if value else cls.LOG
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ValueError(f"Unknown error policy: {value!r} (expected 'fail' or 'log')")


class TabularError(RuntimeError):
    """Base class for all tabular conversion defects."""


class TableSchemaError(TabularError):
    """The CSV table does not comply with the provided custom schema."""

    MAIN_MESSAGE = "CSV table schema is not compliant with provided custom schema."


class SchemaColumnCountMismatchError(TableSchemaError):
    def __init__(self, schema_columns: int, table_columns: int):
        self.schema_columns = schema_columns
        self.table_columns = table_columns
        super().__init__(
            f"{self.MAIN_MESSAGE}\n"
            f"The number of columns in the table schema ({schema_columns}) does not match "
            f"the number of columns in the table ({table_columns})."
        )


class SchemaColumnMissingError(TableSchemaError):
    def __init__(self, column_name: str):
        self.column_name = column_name
        super().__init__(f"{self.MAIN_MESSAGE}\nColumn with name '{column_name}' is missing.")


class DuplicateColumnNameError(TabularError):
    """Two column titles normalize to the same name and thus the same property URL."""

    def __init__(self, first_title: str, second_title: str, column_name: str, property_url: str):
        self.first_title = first_title
        self.second_title = second_title
        self.column_name = column_name
        self.property_url = property_url
        super().__init__(
            "Unable to create value of property csvw:propertyUrl due to collision. "
            f"Both column titles '{first_title}' and '{second_title}' are normalized to "
            f"'{column_name}' and thus would refer to the same property url <{property_url}>."
        )


class ResourceNotFoundError(TabularError):
    def __init__(self, uri: str):
        self.uri = uri
        super().__init__(f"Stream resource {uri} not found.")


class ReadFailureError(TabularError):
    """Reading the tabular source failed part way through."""

    def __init__(self, uri: str, line: Optional[int], cause: Exception):
        self.uri = uri
        self.line = line
        self.cause = cause
        where = f" at line {line}" if line else ""
        super().__init__(f"Error while reading tabular data from {uri}{where}: {cause}")


def report_defect(defect: TableSchemaError, policy: ErrorPolicy) -> None:
    """Raise the defect under ErrorPolicy.FAIL, otherwise log it."""
    if policy is ErrorPolicy.FAIL:
        raise defect
    logging.error(str(defect))

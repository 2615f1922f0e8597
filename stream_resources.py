"""
Stream resources and the delimited-text reader behind the tabular converter.

A stream resource is raw byte content registered under a source locator (URI).
Rows are read lazily, forward-only, with the stdlib csv reader; encoding is
detected on a sample via chardet unless forced.
"""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import chardet

from tabular_errors import ReadFailureError, ResourceNotFoundError


AUTO_DELIMITER = "auto"


@dataclass(frozen=True)
class StreamResource:
    uri: str
    content: bytes


class StreamResourceRegistry:
    """Source locator -> stream resource lookup."""

    def __init__(self):
        self._resources: Dict[str, StreamResource] = {}

    def register(self, uri: str, content: bytes) -> StreamResource:
        resource = StreamResource(uri=uri, content=content)
        self._resources[uri] = resource
        logging.debug("Registered stream resource %s (%d bytes)", uri, len(content))
        return resource

    def register_file(self, path: Path, uri: Optional[str] = None) -> StreamResource:
        """Register a file from disk, by default under its file:// URI."""
        if not path.exists():
            raise FileNotFoundError(f"Tabular file not found: {path}")
        return self.register(uri or path.resolve().as_uri(), path.read_bytes())

    def get_resource_by_url(self, uri: str) -> StreamResource:
        resource = self._resources.get(uri)
        if resource is None:
            raise ResourceNotFoundError(uri)
        return resource

    def __contains__(self, uri: str) -> bool:
        return uri in self._resources


# ------------------------------ decoding ------------------------------

def detect_encoding(raw: bytes, sample_bytes: int = 1024 * 1024) -> str:
    """Detect content encoding using chardet."""
    if not raw:
        return "utf-8"
    res = chardet.detect(raw[:sample_bytes])
    encoding = (res.get("encoding") or "utf-8").lower()
    confidence = res.get("confidence") or 0
    logging.debug("Detected encoding: %s (confidence: %.2f)", encoding, confidence)
    return encoding


def decode_content(resource: StreamResource, encoding: Optional[str] = None) -> str:
    enc = encoding or detect_encoding(resource.content)
    try:
        return resource.content.decode(enc, errors="replace")
    except LookupError:
        logging.warning("Unknown encoding '%s' for %s. Using UTF-8 as fallback.", enc, resource.uri)
        return resource.content.decode("utf-8", errors="replace")


def sniff_delimiter(text: str, sample_chars: int = 256 * 1024) -> str:
    """Guess the delimiter from a text sample; tab when sniffing fails."""
    try:
        dialect = csv.Sniffer().sniff(text[:sample_chars], delimiters=",;\t|")
        logging.info("Detected delimiter: %r", dialect.delimiter)
        return dialect.delimiter
    except csv.Error as e:
        logging.warning("Error detecting delimiter: %s. Using tab.", e)
        return "\t"


# ------------------------------ reading ------------------------------

def iter_table_rows(
    resource: StreamResource,
    delimiter: str = "\t",
    quote_character: str = "'",
    encoding: Optional[str] = None,
) -> Iterator[Tuple[int, List[str]]]:
    """Yield ``(line, row)`` pairs of a delimited resource, header line included.

    ``line`` is the 1-based physical line where the record starts, so blank
    lines and quoted cells spanning several lines are accounted for. Blank
    lines are skipped. Parser errors surface as ReadFailureError; rows yielded
    before the failure stay valid.
    """
    text = decode_content(resource, encoding)
    if delimiter == AUTO_DELIMITER:
        delimiter = sniff_delimiter(text)
    reader = csv.reader(io.StringIO(text, newline=""), delimiter=delimiter, quotechar=quote_character)
    while True:
        start_line = reader.line_num + 1
        try:
            row = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            raise ReadFailureError(resource.uri, reader.line_num, e) from e
        if not row:
            continue
        yield start_line, row

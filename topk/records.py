from __future__ import annotations

"""
Record parsing for the raw lines handed to a partition selector.

Input is semi-structured and noisy: an XML dump carries a declaration,
an opening and a closing wrapper element around the ``<row .../>`` lines,
and real dumps occasionally contain truncated rows. Every helper here is
tolerant by default, so a bad line is simply dropped.

Public helpers:

* transform_xml_to_map(line) -> Dict[str, str]
    Attribute map of one ``<row .../>`` line, empty for anything else.

* parse_record(line, id_field, score_field) -> Optional[Record]
    Tolerant parse, ``None`` for a malformed line.

* parse_record_strict(line, id_field, score_field) -> Record
    Same rules, but raises :class:`RecordParseError` with the reason.

* XmlRowParser / DelimitedRecordParser
    Configured parsers satisfying the :class:`RecordParser` protocol.
"""

import html
import re
from typing import Dict, Optional, Protocol

from .config import DEFAULT_ID_FIELD, DEFAULT_SCORE_FIELD
from .errors import RecordParseError
from .pipeline_types import Record

_ROW_RE = re.compile(r"^<row\s(?P<body>.*?)/?>$", re.S)
_ATTR_RE = re.compile(r'([A-Za-z_][\w.\-:]*)\s*=\s*"([^"]*)"')
_INT_RE = re.compile(r"^[+-]?\d+$")


class RecordParser(Protocol):
    """Anything that can turn one raw line into a Record (or reject it)."""

    def parse(self, line: str) -> Optional[Record]:
        ...


def transform_xml_to_map(line: str) -> Dict[str, str]:
    """
    Parse a single ``<row Key="value" ... />`` line into a dict.

    Returns an empty dict for the XML declaration, wrapper elements,
    blank lines and anything else that is not a row element.
    """
    if not isinstance(line, str):
        return {}
    m = _ROW_RE.match(line.strip())
    if not m:
        return {}
    return {key: html.unescape(val) for key, val in _ATTR_RE.findall(m.group("body"))}


def _parse_score(raw: Optional[str]) -> int:
    if raw is None:
        raise RecordParseError("missing score")
    s = raw.strip()
    if not _INT_RE.match(s):
        raise RecordParseError(f"non-integer score {raw!r}")
    return int(s)


def _record_from_fields(fields: Dict[str, str], id_field: str, score_field: str) -> Record:
    if not fields:
        raise RecordParseError("not a record row")
    identifier = (fields.get(id_field) or "").strip()
    if not identifier:
        raise RecordParseError(f"missing {id_field}")
    score = _parse_score(fields.get(score_field))
    return Record(identifier=identifier, score=score, attributes=dict(fields))


def parse_record_strict(
    line: str,
    id_field: str = DEFAULT_ID_FIELD,
    score_field: str = DEFAULT_SCORE_FIELD,
) -> Record:
    try:
        return _record_from_fields(transform_xml_to_map(line), id_field, score_field)
    except RecordParseError as e:
        e.line = line
        raise


def parse_record(
    line: str,
    id_field: str = DEFAULT_ID_FIELD,
    score_field: str = DEFAULT_SCORE_FIELD,
) -> Optional[Record]:
    """Tolerant form of :func:`parse_record_strict`: malformed lines give ``None``."""
    try:
        return parse_record_strict(line, id_field, score_field)
    except RecordParseError:
        return None


class XmlRowParser:
    """Parser for ``<row .../>`` dumps with configurable id/score attributes."""

    def __init__(self, id_field: str = DEFAULT_ID_FIELD, score_field: str = DEFAULT_SCORE_FIELD):
        self.id_field = id_field
        self.score_field = score_field

    def parse(self, line: str) -> Optional[Record]:
        return parse_record(line, self.id_field, self.score_field)


class DelimitedRecordParser:
    """
    Parser for delimited lines such as ``user42<TAB>1337``.

    Columns are addressed by position; extra columns are kept as
    attributes keyed by their index.
    """

    def __init__(self, delimiter: str = "\t", id_column: int = 0, score_column: int = 1):
        if id_column == score_column:
            raise ValueError("id_column and score_column must differ")
        self.delimiter = delimiter
        self.id_column = id_column
        self.score_column = score_column

    def parse(self, line: str) -> Optional[Record]:
        if not isinstance(line, str):
            return None
        parts = line.rstrip("\r\n").split(self.delimiter)
        fields = {str(i): p.strip() for i, p in enumerate(parts)}
        try:
            return _record_from_fields(fields, str(self.id_column), str(self.score_column))
        except RecordParseError:
            return None


def make_parser(
    input_format: str = "xml",
    id_field: str = DEFAULT_ID_FIELD,
    score_field: str = DEFAULT_SCORE_FIELD,
) -> RecordParser:
    """
    Build the parser for ``input_format``.

    For ``tsv`` the field names are column indexes; non-numeric names fall
    back to the first two columns.
    """
    if input_format == "xml":
        return XmlRowParser(id_field, score_field)
    if input_format == "tsv":
        id_col = int(id_field) if id_field.isdigit() else 0
        score_col = int(score_field) if score_field.isdigit() else 1
        return DelimitedRecordParser("\t", id_col, score_col)
    raise ValueError(f"Unknown input format: {input_format!r}")

"""
Tabular decoding of uploaded statement files.

Turns raw bytes into a RawMatrix. Text formats (CSV/TXT) are handled here;
spreadsheet formats are provided by ``spreadsheets`` and loaded lazily by
the default registry, so the rest of the engine never imports a
spreadsheet library directly.
"""

import csv
import io
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import PurePath
from typing import Dict, List, Mapping, Optional

import structlog

from statement_importer.engine.models import RawMatrix, SupportedFormat
from statement_importer.exceptions import EmptyOrUnreadableFileError, UnsupportedFormatError

logger = structlog.get_logger(__name__)

ALLOWED_EXTENSIONS = tuple(f".{fmt.value}" for fmt in SupportedFormat)
CANDIDATE_DELIMITERS = (";", ",", "\t", "|")
DELIMITER_SAMPLE_LINES = 10
FIXED_WIDTH_SPLIT = re.compile(r"\s{2,}")
REPLACEMENT_CHAR = "�"


def detect_supported_format(filename: str) -> SupportedFormat:
    """
    Map a filename to a supported format by extension.

    Raises:
        UnsupportedFormatError: If the extension is not one of the allowed ones.
    """
    suffix = PurePath(filename or "").suffix.lower().lstrip(".")
    try:
        return SupportedFormat(suffix)
    except ValueError:
        raise UnsupportedFormatError(filename, list(ALLOWED_EXTENSIONS)) from None


def read_text(data: bytes) -> str:
    """Decode statement text as UTF-8, falling back to ISO-8859-1."""
    text = data.decode("utf-8-sig", errors="replace")
    if REPLACEMENT_CHAR in text:
        logger.debug("text_decoding_fallback", encoding="iso-8859-1")
        text = data.decode("iso-8859-1")
    return text


def count_outside_quotes(line: str, char: str) -> int:
    count = 0
    in_quotes = False
    for ch in line:
        if ch == '"':
            in_quotes = not in_quotes
        elif ch == char and not in_quotes:
            count += 1
    return count


def detect_delimiter(lines: List[str]) -> Optional[str]:
    """
    Pick the delimiter of a text statement.

    A delimiter wins when it appears the same (non-zero) number of times on
    every sampled line. Failing that, ``;`` or ``,`` wins when it appears on
    nearly every line. Returns None for fixed-width text.
    """
    sample = [line for line in lines if line.strip()][:DELIMITER_SAMPLE_LINES]
    if not sample:
        return None

    for delimiter in CANDIDATE_DELIMITERS:
        counts = {count_outside_quotes(line, delimiter) for line in sample}
        if len(counts) == 1 and counts.pop() > 0:
            return delimiter

    for delimiter in (";", ","):
        hits = sum(1 for line in sample if count_outside_quotes(line, delimiter) > 0)
        if hits >= max(1, len(sample) - 1):
            return delimiter

    return None


class TabularDecoder(ABC):
    """Strategy turning file bytes into a RawMatrix."""

    @abstractmethod
    def decode(self, data: bytes) -> RawMatrix:
        """Decode ``data``. Raises EmptyOrUnreadableFileError on failure."""


class DelimitedTextDecoder(TabularDecoder):
    """CSV and TXT statements: delimited or fixed-width."""

    def decode(self, data: bytes) -> RawMatrix:
        if not data or not data.strip():
            raise EmptyOrUnreadableFileError("File is empty")

        text = read_text(data)
        lines = text.splitlines()
        delimiter = detect_delimiter(lines)

        if delimiter is None:
            matrix = [
                FIXED_WIDTH_SPLIT.split(line.strip()) if line.strip() else []
                for line in lines
            ]
        else:
            reader = csv.reader(io.StringIO(text), delimiter=delimiter, quotechar='"')
            matrix = [[cell.strip() for cell in row] for row in reader]

        if not any(any(cell for cell in row) for row in matrix):
            raise EmptyOrUnreadableFileError("File has no readable content")

        logger.debug(
            "text_decoded",
            delimiter=delimiter or "fixed-width",
            rows=len(matrix),
        )
        return matrix


@dataclass
class DecodedFile:
    """Decoded matrix with the format it was read as."""
    format: SupportedFormat
    matrix: RawMatrix


class DecoderRegistry:
    """Maps supported formats to decoder strategies."""

    def __init__(self, decoders: Mapping[SupportedFormat, TabularDecoder]):
        self._decoders: Dict[SupportedFormat, TabularDecoder] = dict(decoders)

    def register(self, fmt: SupportedFormat, decoder: TabularDecoder) -> None:
        self._decoders[SupportedFormat(fmt)] = decoder

    def decoder_for(self, fmt: SupportedFormat) -> TabularDecoder:
        try:
            return self._decoders[fmt]
        except KeyError:
            raise UnsupportedFormatError(
                f"*.{fmt.value}", [f".{known.value}" for known in self._decoders]
            ) from None


def default_registry() -> DecoderRegistry:
    """Registry with the text decoder and the spreadsheet decoders."""
    from statement_importer.engine.spreadsheets import XlsDecoder, XlsxDecoder

    text_decoder = DelimitedTextDecoder()
    return DecoderRegistry({
        SupportedFormat.CSV: text_decoder,
        SupportedFormat.TXT: text_decoder,
        SupportedFormat.XLS: XlsDecoder(),
        SupportedFormat.XLSX: XlsxDecoder(),
    })


def decode_file(
    filename: str,
    data: bytes,
    registry: Optional[DecoderRegistry] = None,
) -> DecodedFile:
    """
    Decode an uploaded statement into a matrix.

    Args:
        filename: Original filename, used for format detection.
        data: File contents.
        registry: Decoder registry (defaults to ``default_registry()``).

    Returns:
        DecodedFile with the detected format and matrix.

    Raises:
        UnsupportedFormatError: If the extension is not supported.
        EmptyOrUnreadableFileError: If nothing could be decoded.
    """
    fmt = detect_supported_format(filename)
    if not data:
        raise EmptyOrUnreadableFileError("File is empty", details={"filename": filename})

    registry = registry or default_registry()
    matrix = registry.decoder_for(fmt).decode(data)

    logger.info("file_decoded", filename=filename, format=fmt.value, rows=len(matrix))
    return DecodedFile(format=fmt, matrix=matrix)

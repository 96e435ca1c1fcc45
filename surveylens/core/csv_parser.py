"""
CSV Parser

Turns spreadsheet-exported survey text into a header row and field rows,
honoring quoted fields that contain delimiters.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple
import hashlib
import logging
import re

from surveylens.core.errors import ParseError

logger = logging.getLogger(__name__)

# Hex chars of the content hash used to namespace column ids
FINGERPRINT_LENGTH = 8

# Only CR, LF and CRLF end a line; other Unicode separators are cell content
LINE_BREAK_PATTERN = re.compile(r"\r\n|\r|\n")


@dataclass
class ParsedCSV:
    """Result of parsing one source file."""
    headers: List[str]
    rows: List[List[str]]
    fingerprint: str
    source_text: str = ""
    defect_count: int = 0
    defective_lines: List[int] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)


class CSVParser:
    """
    Line-oriented CSV tokenizer.

    A quote character toggles the in-quotes state, a doubled quote inside
    quotes is a literal quote, and only unquoted commas separate fields.
    Quoted fields never span lines: a row whose quotes are still open at the
    end of the line is skipped and counted as a defect.
    """

    def __init__(self, delimiter: str = ",", quote_char: str = '"'):
        self.delimiter = delimiter
        self.quote_char = quote_char

    def parse_bytes(self, data: bytes) -> ParsedCSV:
        """Decode raw file bytes and parse them."""
        try:
            text = data.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise ParseError(f"Source file is not valid UTF-8 text: {e}")
        return self.parse(text)

    def parse(self, text: str) -> ParsedCSV:
        """
        Parse CSV text.

        Args:
            text: Raw file contents

        Returns:
            ParsedCSV with headers, rows and defect bookkeeping

        Raises:
            ParseError: missing header, malformed header, or no content rows
        """
        if text.startswith("\ufeff"):
            text = text[1:]

        lines = [
            (number, line)
            for number, line in enumerate(LINE_BREAK_PATTERN.split(text), start=1)
            if line.strip()
        ]

        if not lines:
            raise ParseError("File is empty: a header and at least one row are required")

        header_number, header_line = lines[0]
        headers, closed = self.tokenize(header_line)
        if not closed:
            raise ParseError("Header row has an unterminated quote", line_number=header_number)
        headers = [h or f"Column {i + 1}" for i, h in enumerate(headers)]

        if len(lines) < 2:
            raise ParseError("File has a header but no response rows", line_number=header_number)

        rows = []
        defective_lines = []
        for number, line in lines[1:]:
            fields, closed = self.tokenize(line)
            if not closed:
                logger.warning(f"Skipping malformed row at line {number}: unterminated quote")
                defective_lines.append(number)
                continue
            rows.append(fields)

        if not rows:
            raise ParseError(f"All {len(defective_lines)} rows are malformed")

        return ParsedCSV(
            headers=headers,
            rows=rows,
            fingerprint=compute_fingerprint(text),
            source_text=text,
            defect_count=len(defective_lines),
            defective_lines=defective_lines,
        )

    def tokenize(self, line: str) -> Tuple[List[str], bool]:
        """
        Split one line into trimmed fields.

        Returns:
            (fields, closed) where closed is False if a quote was left open
        """
        fields = []
        current = []
        in_quotes = False
        i = 0
        quote = self.quote_char

        while i < len(line):
            char = line[i]
            if char == quote:
                if in_quotes and i + 1 < len(line) and line[i + 1] == quote:
                    current.append(quote)
                    i += 1
                else:
                    in_quotes = not in_quotes
            elif char == self.delimiter and not in_quotes:
                fields.append("".join(current).strip())
                current = []
            else:
                current.append(char)
            i += 1

        fields.append("".join(current).strip())
        return fields, not in_quotes


def compute_fingerprint(text: str, length: Optional[int] = None) -> str:
    """Short SHA-256 content hash of the source text."""
    digest = hashlib.sha256(text.encode("utf-8")).hexdigest()
    return digest[:length or FINGERPRINT_LENGTH]


def parse_csv(text: str) -> ParsedCSV:
    """Parse CSV text with the default comma/double-quote dialect."""
    return CSVParser().parse(text)

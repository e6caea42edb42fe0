"""Scraper for the plain-text report of nginx's stub_status module.

A report looks like::

    Active connections: 2
    server accepts handled requests
     8522429 8522429 8641727
    Reading: 0 Writing: 1 Waiting: 3
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping

from .base import (
    BaseScraper,
    FieldCountMismatch,
    MalformedReport,
    Measurement,
    NumericParseError,
)

MAX_UINT64 = 2**64 - 1


def parse_uint(token: str) -> int:
    """Parse a base-10 unsigned 64-bit integer, rejecting signs and blanks."""
    if not token.isascii() or not token.isdigit():
        raise NumericParseError(f"parsing {token!r}: invalid syntax")
    value = int(token)
    if value > MAX_UINT64:
        raise NumericParseError(f"parsing {token!r}: value out of range")
    return value


class _Reader:
    """Sequential reader over a report body; never moves backwards."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def read_until(self, delim: str) -> tuple[str, bool]:
        """Return text up to and including ``delim`` and whether it was found.

        When ``delim`` is missing the rest of the body is consumed.
        """
        idx = self._text.find(delim, self._pos)
        if idx < 0:
            chunk = self._text[self._pos:]
            self._pos = len(self._text)
            return chunk, False
        end = idx + len(delim)
        chunk = self._text[self._pos:end]
        self._pos = end
        return chunk, True


class StubStatusScraper(BaseScraper):
    def scrape(self, body: bytes, labels: Mapping[str, str]) -> Iterator[Measurement]:
        reader = _Reader(body.decode("utf-8", errors="replace"))
        yield from self._active_connections(reader, labels)
        yield from self._accepts_handled_requests(reader, labels)
        yield from self._reading_writing_waiting(reader, labels)

    def _active_connections(
        self, reader: _Reader, labels: Mapping[str, str]
    ) -> Iterator[Measurement]:
        _, found = reader.read_until(":")
        if not found:
            raise MalformedReport("incorrect nginx stats: missing active connections")
        line, found = reader.read_until("\n")
        if not found:
            raise MalformedReport("incorrect nginx stats: truncated active connections line")
        yield Measurement("active", parse_uint(line.strip()), labels)

    def _accepts_handled_requests(
        self, reader: _Reader, labels: Mapping[str, str]
    ) -> Iterator[Measurement]:
        # column header line, content not checked
        _, found = reader.read_until("\n")
        if not found:
            raise MalformedReport("incorrect nginx stats: missing header line")
        line, found = reader.read_until("\n")
        if not found:
            raise MalformedReport("incorrect nginx stats: missing accepts/handled/requests line")

        fields = line.split()
        if len(fields) != 3:
            raise FieldCountMismatch(
                f"unable to parse server accepts, handled, requests stats: "
                f"expected 3 fields, got {len(fields)}"
            )
        for name, token in zip(("accepts", "handled", "requests"), fields):
            yield Measurement(name, parse_uint(token), labels)

    def _reading_writing_waiting(
        self, reader: _Reader, labels: Mapping[str, str]
    ) -> Iterator[Measurement]:
        # last line, a missing trailing newline is fine
        line, _ = reader.read_until("\n")
        fields = line.split()
        if len(fields) != 6:
            raise FieldCountMismatch(
                f"unable to parse server reading, writing, waiting stats: "
                f"expected 6 fields, got {len(fields)}"
            )
        for name, token in zip(("reading", "writing", "waiting"), fields[1::2]):
            yield Measurement(name, parse_uint(token), labels)

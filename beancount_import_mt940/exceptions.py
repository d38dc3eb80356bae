#!/usr/bin/env python3

from __future__ import annotations


class Mt940Error(Exception):
    """Base class for all errors raised by this package."""


class FormatError(Mt940Error, ValueError):
    """The input could not be parsed as an MT940 statement file."""

    def __init__(self, detail: str, *, lineno: int | None = None) -> None:
        self.detail = detail
        self.lineno = lineno
        if lineno is None:
            message = detail
        else:
            message = f"line {lineno}: {detail}"
        super().__init__(message)


class StructuralError(FormatError):
    """Tags appear in an order that does not form a statement."""


class FieldFormatError(FormatError):
    """A known tag carries a value that does not match its layout."""

    def __init__(self, tag: str, value: str, detail: str, *, lineno: int) -> None:
        self.tag = tag
        self.value = value
        super().__init__(f":{tag}: {detail}: {value!r}", lineno=lineno)


class EmptyStatementError(Mt940Error):
    def __init__(self, kontobezeichnung: str, lineno: int) -> None:
        self.kontobezeichnung = kontobezeichnung
        self.lineno = lineno
        super().__init__(
            f"Statement for {kontobezeichnung!r} opened on line {lineno} "
            "has no transactions"
        )

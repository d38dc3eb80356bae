#!/usr/bin/env python3

from pathlib import Path

DATA_DIR = Path(__file__).parent / "data"


def data_file(name: str) -> Path:
    return DATA_DIR / name


def read_lines(name: str, encoding: str = "ISO-8859-1") -> list[str]:
    with open(data_file(name), encoding=encoding) as f:
        return f.readlines()


def make_statement(
    account: str = "531848396",
    statement_lines: tuple[str, ...] = (),
    opening: str = "C080402EUR100,00",
    closing: str = "C080430EUR100,00",
    reference: str = "STARTUMS",
) -> list[str]:
    """Builds the lines of a single statement around the given body lines."""
    return [
        f":20:{reference}",
        f":25:{account}",
        ":28C:1/1",
        f":60F:{opening}",
        *statement_lines,
        f":62F:{closing}",
    ]

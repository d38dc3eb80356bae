#!/usr/bin/env python3

from __future__ import annotations

import enum
import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal

from beancount_import_mt940.exceptions import FieldFormatError, StructuralError
from beancount_import_mt940.models import (
    Mt940Balance,
    Mt940Entry,
    Mt940File,
    Mt940Transaction,
    Sign,
)

logger = logging.getLogger(__name__)

TAG_LINE = re.compile(r"^:(?P<tag>[0-9A-Z]{2,3}[A-Z]?):(?P<value>.*)$")
LINE_BREAK = re.compile(r"\r\n|\r|\n")

BALANCE = re.compile(
    r"^(?P<sign>[CD])"
    r"(?P<date>\d{6})"
    r"(?P<currency>[A-Z]{3})"
    r"(?P<amount>\d+,\d*)\s*$"
)

STATEMENT_LINE = re.compile(
    r"^(?P<value_date>\d{6})"
    r"(?P<entry_date>\d{4})?"
    r"(?P<sign>RC|RD|C|D)"
    r"(?P<funds_code>[A-Z])?"
    r"(?P<amount>\d+,\d*)"
    r"(?P<type_code>[A-Z][A-Z0-9]{3})?"
    r"(?P<customer_reference>.*?)"
    r"(?://(?P<bank_reference>.*))?$"
)


class OpenField(enum.Enum):
    """The field an untagged line continues."""

    NONE = enum.auto()
    HEADER = enum.auto()
    BALANCE = enum.auto()
    STATEMENT_LINE = enum.auto()
    DESCRIPTION = enum.auto()


@dataclass(frozen=True)
class TransactionDraft:
    lineno: int
    value_date: date
    sign: Sign
    amount: Decimal
    entry_date: date | None = None
    transaction_type_code: str | None = None
    customer_reference: str | None = None
    bank_reference: str | None = None
    details: tuple[str, ...] = ()
    description: tuple[str, ...] = ()

    def finish(self) -> Mt940Transaction:
        return Mt940Transaction(
            value_date=self.value_date,
            sign=self.sign,
            amount=self.amount,
            entry_date=self.entry_date,
            transaction_type_code=self.transaction_type_code,
            customer_reference=self.customer_reference,
            bank_reference=self.bank_reference,
            supplementary_details="\n".join(self.details),
            description="\n".join(self.description),
            lineno=self.lineno,
        )


@dataclass(frozen=True)
class EntryDraft:
    lineno: int
    reference: str | None = None
    kontobezeichnung: str | None = None
    statement_number: str | None = None
    opening_balance: Mt940Balance | None = None
    transactions: tuple[Mt940Transaction, ...] = ()
    available_balance: Mt940Balance | None = None
    forward_balances: tuple[Mt940Balance, ...] = ()


@dataclass(frozen=True)
class ParserState:
    entries: tuple[Mt940Entry, ...] = ()
    entry: EntryDraft | None = None
    transaction: TransactionDraft | None = None
    open_field: OpenField = OpenField.NONE


def parse_amount(amount: str) -> Decimal:
    """Converts the MT940 decimal comma to a decimal point."""
    return Decimal(amount.replace(",", "."))


def parse_date(yymmdd: str) -> date:
    """Parses a YYMMDD date. Two-digit years always fall into 2000-2099."""
    return date(2000 + int(yymmdd[:2]), int(yymmdd[2:4]), int(yymmdd[4:6]))


def parse_entry_date(value_date: date, mmdd: str) -> date:
    """Completes an MMDD entry date with the year of its value date.

    Bookings around new year may be entered in December and valued in
    January (or the other way around), so the year moves along when the
    months are more than half a year apart.
    """
    month, day = int(mmdd[:2]), int(mmdd[2:])
    year = value_date.year
    if month - value_date.month > 6:
        year -= 1
    elif value_date.month - month > 6:
        year += 1
    return date(year, month, day)


def _field_date(tag: str, value: str, yymmdd: str, lineno: int) -> date:
    try:
        return parse_date(yymmdd)
    except ValueError as e:
        raise FieldFormatError(tag, value, f"invalid date {yymmdd}", lineno=lineno) from e


def parse_balance(tag: str, value: str, lineno: int) -> Mt940Balance:
    match = BALANCE.match(value)
    if match is None:
        raise FieldFormatError(
            tag, value, "expected <C|D>YYMMDD<currency><amount>", lineno=lineno
        )
    return Mt940Balance(
        sign=Sign(match.group("sign")),
        date=_field_date(tag, value, match.group("date"), lineno),
        currency=match.group("currency"),
        amount=parse_amount(match.group("amount")),
    )


def parse_statement_line(tag: str, value: str, lineno: int) -> TransactionDraft:
    match = STATEMENT_LINE.match(value)
    if match is None:
        raise FieldFormatError(
            tag,
            value,
            "expected YYMMDD[MMDD]<C|D|RC|RD><amount><type code><reference>",
            lineno=lineno,
        )
    value_date = _field_date(tag, value, match.group("value_date"), lineno)
    entry_date = None
    if match.group("entry_date"):
        try:
            entry_date = parse_entry_date(value_date, match.group("entry_date"))
        except ValueError as e:
            raise FieldFormatError(
                tag, value, f"invalid entry date {match.group('entry_date')}", lineno=lineno
            ) from e

    customer_reference = match.group("customer_reference").strip()
    bank_reference = (match.group("bank_reference") or "").strip()
    return TransactionDraft(
        lineno=lineno,
        value_date=value_date,
        sign=Sign(match.group("sign")),
        amount=parse_amount(match.group("amount")),
        entry_date=entry_date,
        transaction_type_code=match.group("type_code"),
        customer_reference=customer_reference or None,
        bank_reference=bank_reference or None,
    )


def _header_entry(state: ParserState, tag: str, lineno: int) -> EntryDraft:
    """Returns the entry a header tag belongs to, opening one if needed."""
    entry = state.entry
    if entry is None:
        return EntryDraft(lineno=lineno)
    if entry.opening_balance is not None:
        raise StructuralError(
            f"statement opened on line {entry.lineno} has no closing balance "
            f"before :{tag}:",
            lineno=lineno,
        )
    return entry


def _body_entry(state: ParserState, tag: str, lineno: int) -> EntryDraft:
    """Returns the open entry, which must have its opening balance by now."""
    entry = state.entry
    if entry is None:
        raise StructuralError(f":{tag}: outside of a statement", lineno=lineno)
    if entry.opening_balance is None:
        raise StructuralError(
            f":{tag}: before the opening balance of the statement opened on "
            f"line {entry.lineno}",
            lineno=lineno,
        )
    return entry


def _flush_transaction(
    entry: EntryDraft, transaction: TransactionDraft | None
) -> EntryDraft:
    if transaction is None:
        return entry
    return replace(entry, transactions=entry.transactions + (transaction.finish(),))


def handle_reference(state: ParserState, tag: str, value: str, lineno: int) -> ParserState:
    entry = _header_entry(state, tag, lineno)
    if entry.reference is not None:
        raise StructuralError(
            f"second :{tag}: in statement opened on line {entry.lineno}", lineno=lineno
        )
    return replace(
        state, entry=replace(entry, reference=value.strip()), open_field=OpenField.HEADER
    )


def handle_account(state: ParserState, tag: str, value: str, lineno: int) -> ParserState:
    entry = _header_entry(state, tag, lineno)
    if entry.kontobezeichnung is not None:
        raise StructuralError(
            f"second :{tag}: in statement opened on line {entry.lineno}", lineno=lineno
        )
    # kept untrimmed, some banks pad the account identification
    return replace(
        state, entry=replace(entry, kontobezeichnung=value), open_field=OpenField.HEADER
    )


def handle_statement_number(
    state: ParserState, tag: str, value: str, lineno: int
) -> ParserState:
    if state.entry is None:
        logger.debug(f"Skipping :{tag}: outside of a statement on line {lineno}")
        return replace(state, open_field=OpenField.NONE)
    entry = replace(state.entry, statement_number=value.strip())
    return replace(state, entry=entry, open_field=OpenField.HEADER)


def handle_opening_balance(
    state: ParserState, tag: str, value: str, lineno: int
) -> ParserState:
    entry = state.entry
    if entry is None:
        raise StructuralError(f":{tag}: outside of a statement", lineno=lineno)
    if entry.opening_balance is not None:
        raise StructuralError(
            f"second opening balance in statement opened on line {entry.lineno}",
            lineno=lineno,
        )
    balance = parse_balance(tag, value, lineno)
    return replace(
        state,
        entry=replace(entry, opening_balance=balance),
        open_field=OpenField.BALANCE,
    )


def handle_statement_line(
    state: ParserState, tag: str, value: str, lineno: int
) -> ParserState:
    entry = _flush_transaction(_body_entry(state, tag, lineno), state.transaction)
    transaction = parse_statement_line(tag, value, lineno)
    logger.debug(f"Parsed statement line {lineno}: {transaction=}")
    return replace(
        state,
        entry=entry,
        transaction=transaction,
        open_field=OpenField.STATEMENT_LINE,
    )


def handle_description(
    state: ParserState, tag: str, value: str, lineno: int
) -> ParserState:
    if state.entry is None:
        logger.debug(f"Skipping :{tag}: outside of a statement on line {lineno}")
        return replace(state, open_field=OpenField.NONE)
    if state.transaction is None:
        raise StructuralError(
            f":{tag}: before any :61: in statement opened on line {state.entry.lineno}",
            lineno=lineno,
        )
    transaction = replace(
        state.transaction, description=state.transaction.description + (value,)
    )
    return replace(state, transaction=transaction, open_field=OpenField.DESCRIPTION)


def handle_closing_balance(
    state: ParserState, tag: str, value: str, lineno: int
) -> ParserState:
    entry = _body_entry(state, tag, lineno)
    if entry.kontobezeichnung is None:
        raise StructuralError(
            f"statement opened on line {entry.lineno} has no :25: account "
            "identification",
            lineno=lineno,
        )
    closing_balance = parse_balance(tag, value, lineno)
    entry = _flush_transaction(entry, state.transaction)
    finished = Mt940Entry(
        kontobezeichnung=entry.kontobezeichnung,
        opening_balance=entry.opening_balance,  # type: ignore
        closing_balance=closing_balance,
        transactions=entry.transactions,
        reference=entry.reference,
        statement_number=entry.statement_number,
        available_balance=entry.available_balance,
        forward_balances=entry.forward_balances,
        lineno=entry.lineno,
    )
    logger.debug(
        f"Closed statement {finished.kontobezeichnung!r} with "
        f"{len(finished.transactions)} transactions on line {lineno}"
    )
    return ParserState(entries=state.entries + (finished,))


def _update_statement(
    state: ParserState,
    tag: str,
    lineno: int,
    update: Callable[[EntryDraft | Mt940Entry], EntryDraft | Mt940Entry],
) -> ParserState:
    """Applies `update` to the open statement or, after its closing balance,
    to the statement closed last. :64: and :65: follow :62F: in most files."""
    if state.entry is not None:
        return replace(state, entry=update(state.entry), open_field=OpenField.BALANCE)
    if state.entries:
        entries = state.entries[:-1] + (update(state.entries[-1]),)
        return replace(state, entries=entries, open_field=OpenField.BALANCE)
    logger.debug(f"Skipping :{tag}: outside of a statement on line {lineno}")
    return replace(state, open_field=OpenField.NONE)


def handle_available_balance(
    state: ParserState, tag: str, value: str, lineno: int
) -> ParserState:
    balance = parse_balance(tag, value, lineno)
    return _update_statement(
        state, tag, lineno, lambda entry: replace(entry, available_balance=balance)
    )


def handle_forward_balance(
    state: ParserState, tag: str, value: str, lineno: int
) -> ParserState:
    balance = parse_balance(tag, value, lineno)
    return _update_statement(
        state,
        tag,
        lineno,
        lambda entry: replace(
            entry, forward_balances=entry.forward_balances + (balance,)
        ),
    )


Handler = Callable[[ParserState, str, str, int], ParserState]

TAG_HANDLERS: dict[str, Handler] = {
    "20": handle_reference,
    "25": handle_account,
    "28": handle_statement_number,
    "28C": handle_statement_number,
    "60F": handle_opening_balance,
    "60M": handle_opening_balance,
    "61": handle_statement_line,
    "86": handle_description,
    "62F": handle_closing_balance,
    "62M": handle_closing_balance,
    "64": handle_available_balance,
    "65": handle_forward_balance,
}


def continue_field(state: ParserState, line: str, lineno: int) -> ParserState:
    transaction = state.transaction
    if state.open_field is OpenField.DESCRIPTION and transaction is not None:
        transaction = replace(transaction, description=transaction.description + (line,))
        return replace(state, transaction=transaction)
    if state.open_field is OpenField.STATEMENT_LINE and transaction is not None:
        transaction = replace(transaction, details=transaction.details + (line,))
        return replace(state, transaction=transaction)
    logger.debug(f"Skipping untagged line {lineno}: {line=}")
    return state


def step(state: ParserState, lineno: int, line: str) -> ParserState:
    """Folds one physical line into the parser state."""
    line = line.rstrip("\r\n")
    if not line:
        return state

    match = TAG_LINE.match(line)
    if match is None:
        return continue_field(state, line, lineno)

    tag, value = match.group("tag", "value")
    handler = TAG_HANDLERS.get(tag)
    if handler is None:
        logger.debug(f"Skipping unknown tag :{tag}: on line {lineno}")
        return replace(state, open_field=OpenField.NONE)
    return handler(state, tag, value, lineno)


def finish(state: ParserState, lineno: int) -> Mt940File:
    if state.entry is not None:
        raise StructuralError(
            f"statement opened on line {state.entry.lineno} has no closing balance",
            lineno=lineno,
        )
    if not state.entries:
        raise StructuralError("no :20: or :25: statement found", lineno=lineno or None)

    n_transactions = sum(len(entry.transactions) for entry in state.entries)
    logger.info(
        f"Parsed {len(state.entries)} statements with {n_transactions} transactions"
    )
    return Mt940File(entries=state.entries)


def parse(lines: Iterable[str]) -> Mt940File:
    """Parses MT940 statements from decoded text lines.

    Args:
      lines: An open text file, or any other iterable of lines. A single
        string is split at CR, LF and CRLF only, as a text file would be;
        other characters such as NEL (U+0085) stay part of the line.
    Returns:
      An Mt940File with one entry per statement, in file order.
    Raises:
      StructuralError: If there is no statement, or tags are out of order.
      FieldFormatError: If a known tag's value does not match its layout.
    """
    if isinstance(lines, str):
        lines = LINE_BREAK.split(lines)

    state = ParserState()
    lineno = 0
    for lineno, line in enumerate(lines, start=1):
        state = step(state, lineno, line)
    return finish(state, lineno)

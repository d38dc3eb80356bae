#!/usr/bin/env python3

from __future__ import annotations

import enum
from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Literal


class Sign(enum.Enum):
    CREDIT = "C"
    DEBIT = "D"
    REVERSAL_CREDIT = "RC"
    REVERSAL_DEBIT = "RD"

    @property
    def is_debit(self) -> bool:
        """A reversed credit takes money out of the account like a debit."""
        return self in (Sign.DEBIT, Sign.REVERSAL_CREDIT)

    def apply(self, amount: Decimal) -> Decimal:
        return -amount if self.is_debit else amount


@dataclass(frozen=True)
class Mt940Balance:
    sign: Sign
    date: date
    currency: str
    amount: Decimal

    @property
    def signed_amount(self) -> Decimal:
        return self.sign.apply(self.amount)


@dataclass(frozen=True)
class Mt940Transaction:
    value_date: date
    sign: Sign
    amount: Decimal
    entry_date: date | None = None
    transaction_type_code: str | None = None
    customer_reference: str | None = None
    bank_reference: str | None = None
    supplementary_details: str = ""
    description: str = ""
    lineno: int | None = None

    @property
    def is_debit(self) -> bool:
        return self.sign.is_debit

    @property
    def signed_amount(self) -> Decimal:
        return self.sign.apply(self.amount)


@dataclass(frozen=True)
class Mt940Entry:
    kontobezeichnung: str
    opening_balance: Mt940Balance
    closing_balance: Mt940Balance
    transactions: tuple[Mt940Transaction, ...] = ()
    reference: str | None = None
    statement_number: str | None = None
    available_balance: Mt940Balance | None = None
    forward_balances: tuple[Mt940Balance, ...] = ()
    lineno: int | None = None


@dataclass(frozen=True)
class Mt940File:
    entries: tuple[Mt940Entry, ...] = ()

    def iter_transactions(self) -> Iterator[Mt940Transaction]:
        for entry in self.entries:
            yield from entry.transactions


@dataclass
class InducedPosting:
    flag: Literal["*"] | Literal["!"]
    account: str


@dataclass
class ImportTransaction:
    date: date
    amount: Decimal
    payee: str
    account: str
    currency: str
    posting_type: str = ""
    reference: str = ""
    bank_reference: str = ""
    counterparty: str = ""
    entry_date: date | None = None
    lineno: int | None = None
    induced_postings: list[InducedPosting] = field(default_factory=list)
    meta: dict[str, str] = field(default_factory=dict)


@dataclass
class ImportBank:
    transactions: list[ImportTransaction] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.transactions)

    def __iter__(self) -> Iterator[ImportTransaction]:
        return iter(self.transactions)

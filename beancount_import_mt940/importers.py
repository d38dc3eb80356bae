#!/usr/bin/env python3

import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from datetime import date

from beancount.core import flags
from beancount.core.data import Directive
from beangulp import Importer

from beancount_import_mt940.exporter import convert
from beancount_import_mt940.models import ImportTransaction, Mt940File
from beancount_import_mt940.parser import TAG_LINE, parse
from beancount_import_mt940.utils import make_balance, make_transaction

logger = logging.getLogger(__name__)

STATEMENT_TAGS = {"20", "25"}
BODY_TAGS = {"60F", "60M", "61"}


@dataclass
class Mt940Importer(Importer):
    """Beancount importer for SWIFT MT940 account statements."""

    ledger_account: str
    kontobezeichnung: str | None = None
    file_encoding: str = "ISO-8859-1"
    flag: str = flags.FLAG_OKAY
    hooks: Sequence[Callable[[ImportTransaction], ImportTransaction]] = ()
    emit_balances: bool = True

    def matches(self, kontobezeichnung: str) -> bool:
        """Compares account identifications without their padding."""
        if self.kontobezeichnung is None:
            return True
        return kontobezeichnung.strip() == self.kontobezeichnung.strip()

    def read_file(self, filepath) -> Mt940File:
        with open(filepath, encoding=self.file_encoding) as f:
            return parse(f)

    def identify(self, filepath) -> bool:
        """Return true if this importer matches the given file.

        The file has to contain a statement header and a balance or statement
        line. If `kontobezeichnung` is configured, one of the :25: tags has to
        carry it.
        """
        try:
            with open(filepath, encoding=self.file_encoding) as f:
                lines = f.read().splitlines()
        except UnicodeDecodeError:
            logger.debug(f"{filepath} is not readable as {self.file_encoding}")
            return False

        tags = set()
        accounts = []
        for line in lines:
            match = TAG_LINE.match(line)
            if match is None:
                continue
            tags.add(match.group("tag"))
            if match.group("tag") == "25":
                accounts.append(match.group("value"))

        if not (tags & STATEMENT_TAGS and tags & BODY_TAGS):
            logger.debug(f"No MT940 statement found in {filepath}")
            return False
        if self.kontobezeichnung is None:
            return True
        if any(self.matches(account) for account in accounts):
            logger.info(f"{filepath} matched {self.kontobezeichnung=}")
            return True
        logger.debug(f"{self.kontobezeichnung=} not found in {accounts=}")
        return False

    def account(self, filepath) -> str:
        return self.ledger_account

    def extract(self, filepath, existing=None) -> list[Directive]:
        """Extract transactions and closing balances from a file.

        Args:
          filepath: Path of the MT940 file.
          existing: Directives already in the ledger. Unused, deduplication is
            left to beangulp.
        Returns:
          One Transaction per statement line of the matching statements,
          followed by one Balance per matching statement.
        Raises:
          FormatError: If the file is not a well-formed MT940 file.
        """
        fname = str(filepath)
        mt940_file = self.read_file(filepath)
        bank = convert(mt940_file)

        extracted_directives: list[Directive] = []
        for txn in bank:
            if not self.matches(txn.account):
                logger.debug(f"Skipping transaction of {txn.account=}")
                continue
            for i, hook in enumerate(self.hooks):
                logger.debug(
                    f"Processing hook {hook.__class__.__name__} {i + 1}/{len(self.hooks)}"
                )
                txn = hook(txn)

            transaction = make_transaction(
                account=self.ledger_account,
                txn=txn,
                fname=fname,
                lineno=txn.lineno or 0,
                flag=self.flag,
            )
            logger.info(f"New {transaction=}")
            extracted_directives.append(transaction)

        if self.emit_balances:
            for entry in mt940_file.entries:
                if not self.matches(entry.kontobezeichnung):
                    continue
                final_balance = make_balance(
                    fname=fname,
                    lineno=entry.lineno or 0,
                    account=self.ledger_account,
                    balance=entry.closing_balance,
                )
                logger.info(f"New {final_balance=}")
                extracted_directives.append(final_balance)

        return extracted_directives

    def date(self, filepath) -> date | None:
        """The value date of the latest statement line in the file."""
        dates = [
            transaction.value_date
            for entry in self.read_file(filepath).entries
            if self.matches(entry.kontobezeichnung)
            for transaction in entry.transactions
        ]
        return max(dates, default=None)

    def filename(self, filepath) -> str | None:
        if self.kontobezeichnung:
            return f"{self.kontobezeichnung.strip()}.sta"
        return None

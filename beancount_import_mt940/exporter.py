#!/usr/bin/env python3

from __future__ import annotations

import logging

from beancount_import_mt940.exceptions import EmptyStatementError
from beancount_import_mt940.models import (
    ImportBank,
    ImportTransaction,
    Mt940Entry,
    Mt940File,
    Mt940Transaction,
)

logger = logging.getLogger(__name__)


def entry_to_txn(entry: Mt940Entry, transaction: Mt940Transaction) -> ImportTransaction:
    return ImportTransaction(
        date=transaction.value_date,
        amount=transaction.signed_amount,
        payee=transaction.description,
        account=entry.kontobezeichnung,
        currency=entry.opening_balance.currency,
        posting_type=transaction.transaction_type_code or "",
        reference=transaction.customer_reference or "",
        bank_reference=transaction.bank_reference or "",
        entry_date=transaction.entry_date,
        lineno=transaction.lineno,
    )


def convert(file: Mt940File, require_transactions: bool = False) -> ImportBank:
    """Flattens all statements of a parsed file into one ImportBank.

    Transactions keep the order of the file. Statements without any
    transactions contribute nothing, unless `require_transactions` is set.
    """
    bank = ImportBank()
    for entry in file.entries:
        if not entry.transactions:
            if require_transactions:
                raise EmptyStatementError(
                    kontobezeichnung=entry.kontobezeichnung, lineno=entry.lineno or 0
                )
            logger.debug(f"No transactions in statement {entry.kontobezeichnung!r}")
            continue
        for transaction in entry.transactions:
            bank.transactions.append(entry_to_txn(entry, transaction))

    logger.info(f"Converted {len(bank)} transactions")
    return bank

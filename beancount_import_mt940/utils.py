#!/usr/bin/env python3

from datetime import timedelta
from decimal import Decimal

from beancount.core.amount import Amount
from beancount.core.data import EMPTY_SET, Balance, Posting, Transaction, new_metadata

from beancount_import_mt940.models import ImportTransaction, Mt940Balance


def make_posting(
    amount: Decimal | None,
    currency: str | None,
    account: str,
    flag: str | None = None,
):
    posting = Posting(
        account=account,
        units=Amount(amount, currency) if amount is not None else None,
        cost=None,
        price=None,
        flag=flag,
        meta=None,
    )
    return posting


def make_narration(description: str) -> str:
    """Joins the physical lines of a description into a single line."""
    return " ".join(description.split())


def make_transaction(
    account: str, txn: ImportTransaction, fname: str, lineno: int, flag: str
) -> Transaction:
    postings = [make_posting(account=account, amount=txn.amount, currency=txn.currency)]
    for posting in txn.induced_postings:
        postings.append(
            make_posting(
                account=posting.account, amount=None, currency=None, flag=posting.flag
            )
        )

    t = Transaction(
        meta=new_metadata(filename=fname, lineno=lineno, kvlist=txn.meta),
        date=txn.date,
        flag=flag,
        payee=txn.counterparty or None,
        narration=make_narration(txn.payee),
        tags=EMPTY_SET,
        links=EMPTY_SET,
        postings=postings,
    )
    return t


def make_balance(
    fname: str,
    lineno: int,
    account: str,
    balance: Mt940Balance,
) -> Balance:
    """Beancount checks balances at the start of a day, so the closing
    balance of a statement is asserted on the day after."""
    return Balance(
        meta=new_metadata(filename=fname, lineno=lineno),
        date=balance.date + timedelta(days=1),
        account=account,
        amount=Amount(balance.signed_amount, balance.currency),
        tolerance=None,
        diff_amount=None,
    )


def flatten_dict(dd, separator=":", prefix=""):
    return (
        {
            prefix + separator + k if prefix else k: v
            for kk, vv in dd.items()
            for k, v in flatten_dict(vv, separator, kk).items()
        }
        if isinstance(dd, dict)
        else {prefix: dd}
    )

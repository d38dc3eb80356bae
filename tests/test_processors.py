#!/usr/bin/env python3

from textwrap import dedent

import pytest
import yaml
from tests.utils import read_lines

from beancount_import_mt940 import exporter, parser, processors
from beancount_import_mt940.models import ImportTransaction
from beancount_import_mt940.utils import flatten_dict


def load_transactions(fname: str) -> list[ImportTransaction]:
    return exporter.convert(parser.parse(read_lines(fname))).transactions


def make_hook(cls, file_content: str) -> processors.TransactionHook:
    return cls(rule_sets=flatten_dict(yaml.safe_load(dedent(file_content))))


@pytest.fixture
def rent_txn():
    txn = load_transactions("rabobank.swi")[1]
    assert txn.payee == "HUUR APRIL\nLANDLORD BV"
    return txn


def test_account_processor_on_statement():
    account_processor = make_hook(
        processors.AccountProcessor,
        r"""
        Expenses:
          Groceries:
            - payee: 'albert heijn'
          Housing:
            Rent:
              - payee: '^huur '
                amount: '^-'
          Transport:
            - payee: '^(BEA|GEA) .* (NS REIZIGERS|UTRECHT CS)$'
        Income:
          Salary:
            - payee: '^\s*salaris'
              posting_type: '^N541$'
        """,
    )

    transactions = load_transactions("bank1.STA")
    augmented = [account_processor(txn) for txn in transactions]
    induced = {
        i: [p.account for p in txn.induced_postings]
        for i, txn in enumerate(augmented)
        if txn.induced_postings
    }
    assert induced == {
        1: ["Expenses:Groceries"],
        2: ["Income:Salary"],
        3: ["Expenses:Transport"],
        9: ["Expenses:Housing:Rent"],
        16: ["Expenses:Transport"],
    }
    assert all(p.flag == "!" for txn in augmented for p in txn.induced_postings)
    assert all(txn.induced_postings == [] for txn in transactions)


@pytest.mark.parametrize(
    "pattern, matched",
    [
        ("^landlord", True),
        ("bv$", True),
        ("^huur april$", True),
        ("april$", True),
        ("^bv", False),
        ("landlord$", False),
        ("april landlord", False),
    ],
)
def test_rules_anchor_at_description_lines(rent_txn, pattern, matched):
    account_processor = processors.AccountProcessor(
        rule_sets={"Expenses:Housing:Rent": [{"payee": pattern}]}
    )
    augmented_txn = account_processor(rent_txn)
    assert bool(augmented_txn.induced_postings) == matched


@pytest.mark.parametrize(
    "rule, matched_lines",
    [
        ({"account": r"^3xxxxxx\.013eur$"}, [6, 9, 13, 15, 18, 21]),
        ({"amount": "^-"}, [9, 13, 18]),
        ({"amount": "^-100.00$"}, [9]),
        ({"date": "^2008-04-04$"}, [9, 13]),
        ({"posting_type": "^N541$", "amount": "^[^-]"}, [6, 21]),
        ({"bank_reference": "."}, []),
    ],
)
def test_rules_on_non_description_fields(rule, matched_lines):
    account_processor = processors.AccountProcessor(rule_sets={"Expenses:Misc": [rule]})
    transactions = [account_processor(txn) for txn in load_transactions("rabobank.swi")]
    assert [txn.lineno for txn in transactions if txn.induced_postings] == matched_lines


def test_meta_processor_counterparty():
    meta_processor = make_hook(
        processors.MetaProcessor,
        r"""
        giro:
          - payee: '^GIRO\s+(?P<meta>\d+)\s+(?P<counterparty>.+)$'
        """,
    )

    transactions = load_transactions("bank1.STA")
    augmented = {i: meta_processor(txn) for i, txn in enumerate(transactions)}
    extracted = {
        i: (txn.meta["giro"], txn.counterparty)
        for i, txn in augmented.items()
        if txn.meta
    }
    assert extracted == {
        0: ("1234567", "J. JANSSEN"),
        11: ("7654321", "STICHTING"),
        12: ("2468024", "M. VISSER"),
    }
    assert augmented[0].payee == transactions[0].payee
    assert augmented[15] == transactions[15]
    assert transactions[0].counterparty == ""


def test_meta_processor_fixed_values():
    meta_processor = make_hook(
        processors.MetaProcessor,
        """
        kind:
          salary:
            - posting_type: N541
              payee: werkgever
          card:
            - posting_type: '^N42[26]$'
              payee: '^BEA '
        """,
    )

    transactions = [meta_processor(txn) for txn in load_transactions("bank1.STA")]
    kinds = {i: txn.meta["kind"] for i, txn in enumerate(transactions) if txn.meta}
    assert kinds == {1: "CARD", 2: "SALARY", 3: "CARD", 7: "CARD", 10: "CARD"}


@pytest.mark.parametrize(
    "file_content, expected_meta, expected_counterparty",
    [
        (
            """
            landlord:
              - payee: '^(?P<counterparty>.+ BV)$'
                posting_type: '(?P<meta>N102)'
            """,
            {"landlord": "N102"},
            "LANDLORD BV",
        ),
        (
            """
            rent:
              - reference: '(?P<meta>nonref)'
                payee: '(?P<meta>huur) april'
            """,
            {"rent": "NONREF HUUR"},
            "",
        ),
        (
            """
            rent:
              - payee: 'KOSTEN'
              - payee: '(?P<meta>april)$'
            """,
            {"rent": "APRIL"},
            "",
        ),
        (
            """
            rent:
              - payee: '(huur) april'
            """,
            {},
            "",
        ),
        (
            """
            rent:
              - payee: '(?P<meta>huur)|(?P<counterparty>kosten)'
            """,
            {"rent": "HUUR"},
            "",
        ),
    ],
)
def test_meta_processor_groups(
    rent_txn, file_content, expected_meta, expected_counterparty
):
    meta_processor = make_hook(processors.MetaProcessor, file_content)
    augmented_txn = meta_processor(rent_txn)
    assert augmented_txn.meta == expected_meta
    assert augmented_txn.counterparty == expected_counterparty
    assert rent_txn.meta == {}


@pytest.mark.parametrize(
    "file_content",
    [
        "rent: [{acount: 'huur'}]",
        "rent: [{entry_date: '2008'}]",
        "rent: [{meta: 'huur'}]",
        "rent: [{payee: '(?P<rfrnce>huur)'}]",
        "rent: [{payee: '(?P<lineno>huur)'}]",
        "rent: {april: {landlord: [{payee: 'huur'}]}}",
    ],
)
def test_meta_processor_rule_errors(rent_txn, file_content):
    meta_processor = make_hook(processors.MetaProcessor, file_content)
    with pytest.raises(ValueError):
        meta_processor(rent_txn)


def test_from_yaml(tmp_path):
    fname = tmp_path / "meta.yaml"
    fname.write_text(
        dedent(
            """
            category:
                groceries:
                    - payee: 'albert heijn'
            """
        )
    )
    meta_processor = processors.MetaProcessor.from_yaml(fname)
    assert meta_processor.rule_sets == {"category:groceries": [{"payee": "albert heijn"}]}

    txn = meta_processor(load_transactions("bank1.STA")[1])
    assert txn.meta == {"category": "GROCERIES"}


@pytest.mark.parametrize(
    "file_content",
    [
        "Expenses: {Rent: {payee: Landlord}}",
        "Expenses: {Rent: [Landlord]}",
        "Expenses: {Rent: [{payee: 1}]}",
    ],
)
def test_from_yaml_type_errors(tmp_path, file_content):
    fname = tmp_path / "rules.yaml"
    fname.write_text(file_content)
    with pytest.raises(TypeError):
        processors.AccountProcessor.from_yaml(fname)

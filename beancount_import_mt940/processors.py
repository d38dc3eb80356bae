#!/usr/bin/env python3

from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from collections.abc import Sequence
from copy import deepcopy
from datetime import date
from decimal import Decimal

import yaml
from beancount.core import flags

from beancount_import_mt940.models import ImportTransaction, InducedPosting
from beancount_import_mt940.utils import flatten_dict

logger = logging.getLogger(__name__)

# `^` and `$` anchor at every physical line of a multi-line :86: description.
RULE_FLAGS = re.IGNORECASE | re.MULTILINE

META_GROUP = "meta"


def rule_text(txn: ImportTransaction, field_name: str) -> str:
    """The text a rule regex is searched in.

    String fields are used as they are, except the account identification,
    which loses the padding some banks put after it. Amounts and dates are
    matched in their plain `str` form, so `amount: '^-'` selects debits.
    """
    value = getattr(txn, field_name, None)
    if field_name == "account":
        return value.strip()
    if isinstance(value, str):
        return value
    if isinstance(value, (Decimal, date)):
        return str(value)
    raise ValueError(
        f"Rules cannot match on {field_name!r}, "
        f"use one of {matchable_fields(txn)}"
    )


def matchable_fields(txn: ImportTransaction) -> list[str]:
    return [
        f for f, v in txn.__dict__.items() if isinstance(v, (str, Decimal, date))
    ]


def string_fields(txn: ImportTransaction) -> list[str]:
    return [f for f, v in txn.__dict__.items() if isinstance(v, str)]


class TransactionHook(ABC):
    """Matches imported transactions against regex rules and augments them.

    A rule set maps an identifier to a list of rules. Each rule maps a field
    of `ImportTransaction` to a regex; a rule matches when all of its regexes
    are found in their fields. Matching ignores case, and `^`/`$` anchor at
    line boundaries of multi-line descriptions.
    """

    def __init__(self, rule_sets: dict[str, Sequence[dict[str, str]]]) -> None:
        self.rule_sets = rule_sets

    @classmethod
    def from_yaml(cls, fname) -> TransactionHook:
        with open(fname) as f:
            rule_sets = flatten_dict(yaml.safe_load(f))

        for identifier, rule_set in rule_sets.items():
            if not isinstance(identifier, str):
                raise TypeError(f"{identifier=} was not of type `str`")
            if not isinstance(rule_set, list):
                raise TypeError(f"{rule_set=} for {identifier=} was not of type `list`")
            for rule in rule_set:
                if not isinstance(rule, dict):
                    raise TypeError(f"{rule=} was not of type `dict`")
                for field_name, regex in rule.items():
                    if not isinstance(field_name, str):
                        raise TypeError(f"{field_name=} was not of type `str`")
                    if not isinstance(regex, str):
                        raise TypeError(f"{regex=} was not of type `str`")

        logger.debug(f"Loaded {len(rule_sets)} rule sets from {fname}")
        return cls(rule_sets=rule_sets)

    @staticmethod
    def match_rule(
        rule: dict[str, str], txn: ImportTransaction
    ) -> list[re.Match] | None:
        """All matches of a rule, or None as soon as one of its regexes misses."""
        matches = []
        for field_name, pattern in rule.items():
            match = re.search(pattern, rule_text(txn, field_name), flags=RULE_FLAGS)
            if match is None:
                return None
            matches.append(match)
        return matches

    def __call__(self, original_txn: ImportTransaction) -> ImportTransaction:
        txn = deepcopy(original_txn)
        for identifier, rule_set in self.rule_sets.items():
            for rule in rule_set:
                matches = self.match_rule(rule, txn)
                if matches is None:
                    continue
                logger.debug(
                    f"{self.__class__.__name__} {identifier=} matched line {txn.lineno}"
                )
                self.augment(identifier=identifier, matches=matches, txn=txn)
        return txn

    @abstractmethod
    def augment(
        self, identifier: str, matches: list[re.Match], txn: ImportTransaction
    ) -> None:
        ...


class AccountProcessor(TransactionHook):
    """Adds a flagged counter-posting to the account named by the identifier."""

    def augment(
        self, identifier: str, matches: list[re.Match], txn: ImportTransaction
    ) -> None:
        posting = InducedPosting(flag=flags.FLAG_WARNING, account=identifier)
        txn.induced_postings.append(posting)


def split_meta_identifier(identifier: str) -> tuple[str, str | None]:
    """Splits `key` or `key:value` into the metadata key and its fixed value."""
    key, sep, value = identifier.partition(":")
    if not key or ":" in value or (sep and not value):
        raise ValueError(
            f"Metadata rule sets nest one or two levels deep, got {identifier!r}"
        )
    return key, value or None


class MetaProcessor(TransactionHook):
    """Writes metadata and rewrites string fields from named regex groups.

    Identifiers are either `key`, whose value is collected from `(?P<meta>...)`
    groups, or `key:value`. Any other named group replaces the string field of
    the same name, e.g. `(?P<counterparty>...)` sets the beancount payee.
    Captures from several regexes of one rule are joined by a space.
    """

    def augment(
        self, identifier: str, matches: list[re.Match], txn: ImportTransaction
    ) -> None:
        key, fixed_value = split_meta_identifier(identifier)

        captures: dict[str, list[str]] = {}
        for match in matches:
            for group, captured in match.groupdict().items():
                if captured is not None:
                    captures.setdefault(group, []).append(captured.strip())

        meta_values = captures.pop(META_GROUP, [])
        if fixed_value is not None:
            meta_values = [fixed_value]

        writable = string_fields(txn)
        unknown = [group for group in captures if group not in writable]
        if unknown:
            raise ValueError(
                f"Named groups {unknown} do not name a text field, "
                f"use {META_GROUP!r} or one of {writable}"
            )
        for group, values in captures.items():
            setattr(txn, group, " ".join(values))

        if meta_values:
            txn.meta[key] = " ".join(meta_values).upper()

"""
Validation and parsing of free-text ticker replies.

A reply is accepted only if:
  1. No rejection rule matches it (rules are configuration data — see
     ``TextGenConfig.rejection_rules``), and
  2. After stripping punctuation (except commas) and splitting on commas /
     whitespace, at least one token is 2–5 characters long.

Accepted tokens are uppercased and truncated to the first three.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

from stockswap.config import RejectionRule
from stockswap.errors import MalformedSuggestion

MAX_TICKERS = 3
MIN_TICKER_LEN = 2
MAX_TICKER_LEN = 5

_STRIP_RE = re.compile(r"[^\w\s,]")
_SPLIT_RE = re.compile(r"[,\s]+")


@dataclass(frozen=True)
class CompiledRule:
    name: str
    regex: re.Pattern[str]


def compile_rules(rules: Iterable[RejectionRule]) -> list[CompiledRule]:
    """Compile configured rejection rules once per client."""
    return [
        CompiledRule(
            name=rule.name,
            regex=re.compile(rule.pattern, re.IGNORECASE if rule.ignore_case else 0),
        )
        for rule in rules
    ]


def first_rejection(reply: str, rules: Iterable[CompiledRule]) -> Optional[str]:
    """Name of the first rule the reply matches, or ``None``."""
    for rule in rules:
        if rule.regex.search(reply):
            return rule.name
    return None


def extract_tickers(reply: str) -> list[str]:
    """Tokens of valid ticker length, uppercased, at most three, in reply order."""
    tokens = _SPLIT_RE.split(_STRIP_RE.sub("", reply))
    tickers = [
        t.upper() for t in tokens
        if t and MIN_TICKER_LEN <= len(t) <= MAX_TICKER_LEN
    ]
    return tickers[:MAX_TICKERS]


def parse_ticker_reply(reply: str, rules: Iterable[CompiledRule]) -> list[str]:
    """Validate a raw reply and return its tickers.

    Raises:
        MalformedSuggestion: If a rejection rule matches or no ticker survives.
    """
    text = (reply or "").strip()
    rule = first_rejection(text, rules)
    if rule is not None:
        raise MalformedSuggestion(
            f"Reply rejected by rule '{rule}': {text!r}", reply=text, rule=rule
        )
    tickers = extract_tickers(text)
    if not tickers:
        raise MalformedSuggestion(f"No ticker symbols in reply: {text!r}", reply=text)
    return tickers

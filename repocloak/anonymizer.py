"""
Case-preserving keyword substitution.

Given an ordered list of replacement rules, this module builds the
functions that rewrite text and relative paths. Rules DO NOT touch the
filesystem; they only map strings to strings.

Case policy for each match (in this order):
- all upper-case match  -> replacement upper-cased
- all lower-case match  -> replacement lower-cased
- leading capital       -> first letter upper, rest lower
- anything else         -> replacement unchanged

Reversing swaps original and replacement and reuses the same policy, so
only all-upper, all-lower and Title Case originals round-trip exactly.
A mixed-case original such as "CoViva" comes back as "Coviva".
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence

from .utils import split_pair

Transform = Callable[[str], str]


@dataclass(frozen=True)
class Replacement:
    original: Optional[str]
    replacement: str
    encrypted: bool = False
    decrypt_failed: bool = False

    @classmethod
    def parse(cls, value: str) -> "Replacement":
        """Parse ``ORIGINAL=REPLACEMENT`` as given on the command line."""
        original, replacement = split_pair(value)
        return cls(original=original, replacement=replacement)

    @classmethod
    def from_dict(cls, data: dict) -> "Replacement":
        return cls(
            original=data.get("original"),
            replacement=data.get("replacement", ""),
            encrypted=bool(data.get("encrypted", False)),
            decrypt_failed=bool(data.get("decryptFailed", False)),
        )

    def to_dict(self) -> dict:
        data = {"original": self.original, "replacement": self.replacement}
        if self.encrypted:
            data["encrypted"] = True
        if self.decrypt_failed:
            data["decryptFailed"] = True
        return data

    def inverted(self) -> "Replacement":
        return Replacement(original=self.replacement, replacement=self.original or "")


def _usable(replacements: Optional[Iterable[Replacement]]) -> List[Replacement]:
    # Empty search terms would match between every character; undecrypted
    # rules have no search term at all.
    return [r for r in (replacements or []) if r.original]


def invert_replacements(replacements: Optional[Iterable[Replacement]]) -> List[Replacement]:
    return [r.inverted() for r in _usable(replacements)]


# ---------------------------------------------------------------------------
# Case handling
# ---------------------------------------------------------------------------


def match_case(matched: str, replacement: str) -> str:
    """Shape ``replacement`` after the case pattern of ``matched``."""

    if matched == matched.upper():
        return replacement.upper()

    if matched == matched.lower():
        return replacement.lower()

    if matched[0] == matched[0].upper():
        return replacement[:1].upper() + replacement[1:].lower()

    return replacement


def _compile(original: str) -> "re.Pattern[str]":
    return re.compile(re.escape(original), re.IGNORECASE)


# ---------------------------------------------------------------------------
# Transform builders
# ---------------------------------------------------------------------------


def _sequential(rules: Sequence[Replacement], case_sensitive: bool) -> Transform:
    if case_sensitive:
        def transform(text: str) -> str:
            for rule in rules:
                text = text.replace(rule.original, rule.replacement)
            return text

        return transform

    compiled = [(_compile(rule.original), rule.replacement) for rule in rules]

    def transform(text: str) -> str:
        # Each rule sees the output of the rules before it.
        for pattern, replacement in compiled:
            text = pattern.sub(lambda m, r=replacement: match_case(m.group(0), r), text)
        return text

    return transform


def _simultaneous(rules: Sequence[Replacement], case_sensitive: bool) -> Transform:
    # Longest term first so "Acme Corp" wins over "Acme" at the same position.
    ordered = sorted(rules, key=lambda r: len(r.original), reverse=True)
    pattern = re.compile(
        "|".join(f"({re.escape(r.original)})" for r in ordered),
        0 if case_sensitive else re.IGNORECASE,
    )

    def substitute(m: "re.Match[str]") -> str:
        rule = ordered[m.lastindex - 1]
        if case_sensitive:
            return rule.replacement
        return match_case(m.group(0), rule.replacement)

    def transform(text: str) -> str:
        return pattern.sub(substitute, text)

    return transform


def create_anonymizer(
    replacements: Optional[Iterable[Replacement]],
    case_sensitive: bool = False,
    simultaneous: bool = False,
) -> Transform:
    """
    Build a text transform applying ``replacements``.

    By default rules run one after another in list order, so a later rule
    can match text produced by an earlier one. ``simultaneous=True``
    matches every rule in a single scan instead.
    """

    rules = _usable(replacements)
    if not rules:
        return lambda text: text

    if simultaneous:
        return _simultaneous(rules, case_sensitive)
    return _sequential(rules, case_sensitive)


def create_deanonymizer(
    replacements: Optional[Iterable[Replacement]],
    case_sensitive: bool = False,
    simultaneous: bool = False,
) -> Transform:
    """Build the reverse transform used when restoring a cloaked copy."""
    return create_anonymizer(
        invert_replacements(replacements),
        case_sensitive=case_sensitive,
        simultaneous=simultaneous,
    )


# ---------------------------------------------------------------------------
# Paths and counting
# ---------------------------------------------------------------------------


def anonymize_path(path: str, replacements: Optional[Iterable[Replacement]], simultaneous: bool = False) -> str:
    """Apply the rules to a relative path. Separators are treated like any other text."""
    return create_anonymizer(replacements, simultaneous=simultaneous)(path)


def deanonymize_path(path: str, replacements: Optional[Iterable[Replacement]], simultaneous: bool = False) -> str:
    return create_deanonymizer(replacements, simultaneous=simultaneous)(path)


def count_replacements(text: str, replacements: Optional[Iterable[Replacement]]) -> int:
    """Total case-insensitive matches of every rule's original in ``text``."""
    return sum(len(_compile(r.original).findall(text)) for r in _usable(replacements))

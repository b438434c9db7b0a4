"""Title cleaning -- strip tokens that every chapter title repeats.

Chapter titles usually come from filenames like "My Book - Chapter 01".
Cleaning looks at the whole ordered set at once and removes the leading
and trailing token runs the titles share, leaving what tells chapters
apart:

    ["My Book - Chapter 1", "My Book - Chapter 2"]  ->  ["Chapter 1", "Chapter 2"]

Rules (TitlePolicy controls each one):
  - Titles are split on whitespace. Bracketed groups such as "[Intro]" or
    "(Part 2)" are single tokens and never removed; they end a run.
  - Tokens compare by a normalized key: case-folded, punctuation removed.
    Punctuation-only tokens ("-", ":") have an empty key and act as
    separators inside a run.
  - Position k of the leading run is redundant when the most common key at
    k, among titles that matched every earlier position, is shared by at
    least max(2, n - outliers) titles. Trailing runs work the same way from
    the end. Matching is positional only, never arbitrary substrings.
  - A word directly before a surviving number is kept as its label
    ("Chapter" in "Chapter 1").
  - A title left empty or without any letters keeps its input text.

The pass is repeated until nothing changes, so clean_titles() is
idempotent: cleaning its own output is a no-op.
"""

from __future__ import annotations

import re
from collections import Counter
from collections.abc import Sequence
from dataclasses import dataclass

from loguru import logger

from ..models import CleanedTitle, InputChapter

log = logger.bind(stage="titles")

_TOKEN_RE = re.compile(
    r"\[[^\]]*\]|\([^)]*\)|（[^）]*）|【[^】]*】|[^\s\[(（【]+|\S"
)
_BRACKET_OPENERS = "[(（【"
_NON_WORD_RE = re.compile(r"[\W_]+")


@dataclass(frozen=True)
class TitlePolicy:
    """Tunable knobs for redundant-token removal.

    outliers: how many titles may lack a token that is still considered
        shared (1 = "all but one").
    """

    outliers: int = 1
    strip_leading: bool = True
    strip_trailing: bool = True
    keep_number_labels: bool = True

    def required(self, count: int) -> int:
        return max(2, count - self.outliers)


@dataclass(frozen=True)
class _Token:
    text: str
    key: str
    bracketed: bool

    @property
    def separator(self) -> bool:
        return not self.bracketed and not self.key

    @property
    def numeric(self) -> bool:
        return not self.bracketed and self.key.isdigit()

    @property
    def word(self) -> bool:
        return not self.bracketed and any(c.isalpha() for c in self.key)


def tokenize(title: str) -> list[_Token]:
    """Split a title into tokens with normalized comparison keys."""
    tokens = []
    for text in _TOKEN_RE.findall(title):
        bracketed = len(text) > 1 and text[0] in _BRACKET_OPENERS
        key = "" if bracketed else _NON_WORD_RE.sub("", text.casefold())
        tokens.append(_Token(text=text, key=key, bracketed=bracketed))
    return tokens


def _normalize(title: str) -> str:
    return " ".join(title.split())


def _shared_run_lengths(token_lists: list[list[_Token]], required: int) -> list[int]:
    """Length of the shared leading run for each title."""
    lengths = [0] * len(token_lists)
    active = list(range(len(token_lists)))
    k = 0
    while True:
        keys: Counter[str] = Counter()
        for i in active:
            tokens = token_lists[i]
            if k < len(tokens) and not tokens[k].bracketed:
                keys[tokens[k].key] += 1
        if not keys:
            break
        # Ties only happen with a loose policy; pick the key deterministically
        key, count = max(keys.items(), key=lambda kv: (kv[1], kv[0]))
        if count < required:
            break
        active = [
            i for i in active
            if k < len(token_lists[i])
            and not token_lists[i][k].bracketed
            and token_lists[i][k].key == key
        ]
        for i in active:
            lengths[i] = k + 1
        k += 1
    return lengths


def _clean_pass(titles: list[str], policy: TitlePolicy) -> list[str]:
    token_lists = [tokenize(t) for t in titles]
    required = policy.required(len(titles))

    leading = [0] * len(titles)
    trailing = [0] * len(titles)
    if policy.strip_leading:
        leading = _shared_run_lengths(token_lists, required)
    if policy.strip_trailing:
        trailing = _shared_run_lengths([t[::-1] for t in token_lists], required)

    cleaned = []
    for title, tokens, lead, trail in zip(titles, token_lists, leading, trailing):
        if not lead and not trail:
            cleaned.append(title)
            continue

        end = len(tokens) - trail
        if (
            policy.keep_number_labels
            and lead
            and lead < end
            and tokens[lead].numeric
            and tokens[lead - 1].word
        ):
            lead -= 1

        kept = tokens[lead:end] if lead < end else []
        while kept and kept[0].separator:
            kept.pop(0)
        while kept and kept[-1].separator:
            kept.pop()

        text = " ".join(t.text for t in kept)
        if not any(c.isalpha() for c in text):
            # Nothing meaningful left -- keep the title we were given
            cleaned.append(title)
        else:
            cleaned.append(text)
    return cleaned


def clean_titles(
    raw_titles: Sequence[str],
    policy: TitlePolicy | None = None,
) -> list[str]:
    """Clean a full, ordered set of chapter titles.

    Pure and order-preserving; returns one title per input. Never returns
    an empty string for a non-empty input title.
    """
    policy = policy or TitlePolicy()
    current = [_normalize(t) for t in raw_titles]

    if len(current) >= 2:
        # Each changing pass removes at least one token, so this terminates
        passes = 0
        while True:
            following = _clean_pass(current, policy)
            passes += 1
            if following == current:
                break
            current = following
        log.debug(f"Titles stable after {passes} pass(es)")

    # Whitespace-only input titles normalize to "" -- hand those back as-is
    return [text or raw for text, raw in zip(current, raw_titles)]


def clean_chapter_titles(
    chapters: Sequence[InputChapter],
    policy: TitlePolicy | None = None,
) -> list[CleanedTitle]:
    """clean_titles over discovered chapters, keyed by order_index."""
    ordered = sorted(chapters, key=lambda c: c.order_index)
    texts = clean_titles([c.raw_title for c in ordered], policy)
    return [
        CleanedTitle(
            chapter_index=chapter.order_index,
            text=text.strip() or f"Chapter {chapter.order_index + 1}",
        )
        for chapter, text in zip(ordered, texts)
    ]

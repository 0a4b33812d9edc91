"""Turn user-supplied tag tokens into tags.

Accepted forms:

* a DICOM keyword, e.g. ``StudyDate`` (exact, case-sensitive)
* ``GGGG,EEEE`` in hex, e.g. ``0008,0020`` (case-insensitive)
* ``(GGGG,EEEE)`` and bare ``GGGGEEEE``, as printed by most DICOM dump tools
"""

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from dcm_tags.dictionary import Tag, keyword_for, lookup_by_keyword
from dcm_tags.errors import MalformedNumericTag, UnknownKeyword

logger = logging.getLogger(__name__)

_NUMERIC_TAG = re.compile(
    r"^(?:\(([0-9A-Fa-f]{4}),([0-9A-Fa-f]{4})\)"
    r"|([0-9A-Fa-f]{4}),([0-9A-Fa-f]{4})"
    r"|([0-9A-Fa-f]{4})([0-9A-Fa-f]{4}))$"
)
_EIGHT_HEX = re.compile(r"^[0-9A-Fa-f]{8}$")


def _looks_numeric(token: str) -> bool:
    # Keywords never start with a digit and never contain punctuation.
    return (
        "," in token
        or "(" in token
        or ")" in token
        or token[:1].isdigit()
        or _EIGHT_HEX.match(token) is not None
    )


def resolve_tag(token: str) -> Tag:
    """Resolve a single token.

    Raises
    ------
    MalformedNumericTag
        The token uses numeric syntax but is not two 4-digit hex numbers.
    UnknownKeyword
        The token is not a keyword known to the data dictionary.
    """
    text = token.strip()
    if not text:
        raise UnknownKeyword(token)

    if _looks_numeric(text):
        match = _NUMERIC_TAG.match(text)
        if match is None:
            raise MalformedNumericTag(token)
        group, element = (g for g in match.groups() if g is not None)
        return Tag(int(group, 16), int(element, 16))

    tag = lookup_by_keyword(text)
    if tag is None:
        raise UnknownKeyword(token)
    return tag


@dataclass(frozen=True)
class RequestedTags:
    """Output columns: the literal tokens and their resolved tags.

    Order is the order the tokens were given in.  Duplicates are kept, so a
    tag requested twice produces two identical columns.
    """

    tokens: tuple
    tags: tuple

    def __len__(self) -> int:
        return len(self.tags)

    def columns(self):
        """Yield ``(token, tag)`` pairs in output order."""
        return zip(self.tokens, self.tags)

    @property
    def unique_tags(self) -> frozenset:
        return frozenset(self.tags)


def resolve_tags(tokens: Iterable[str]) -> RequestedTags:
    """Resolve every token, failing on the first one that does not resolve."""
    resolved_tokens = []
    resolved_tags = []
    for token in tokens:
        tag = resolve_tag(token)
        logger.info("Parsed tag: %s %s", keyword_for(tag), tag)
        resolved_tokens.append(token)
        resolved_tags.append(tag)
    return RequestedTags(tuple(resolved_tokens), tuple(resolved_tags))


def load_tag_file(path: Path) -> list[str]:
    """Read tag tokens from a text file, one per line.

    Blank lines and lines starting with ``#`` are ignored; surrounding
    whitespace is stripped.
    """
    tokens = []
    for line in Path(path).read_text(encoding="utf-8").splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        tokens.append(line)
    logger.info("Loaded %d tag(s) from %s", len(tokens), path)
    return tokens

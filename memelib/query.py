"""
Search expression compiler.

Turns a user search string, a view mode and a page number into one
parameterized SQL query over the ``meme`` table:

  1. tokenize()          — split on whitespace, honoring double quotes.
  2. parse_expression()  — build a predicate tree (And / Not / TagTerm / TextTerm).
  3. lower()             — emit SQL with ``?`` placeholders plus the bound values.
  4. compile_search()    — AND the mode clause, order by recency, paginate.

Grammar (terms are ANDed, there is no OR):

    artist:alice      meme carries tag (artist, alice)
    artist:           meme carries at least one tag in namespace artist
    cat               "cat" appears in summary or desc (substring, ASCII case-insensitive)
    -term             negation of any of the above
    "two words"       quotes keep spaces, colons and a leading dash literal

User text only ever reaches SQLite as a bound parameter. The single value
formatted into the SQL text is the page offset, a validated integer.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

from memelib.errors import QuerySyntaxError
from memelib.tags import escape_like
from memelib.types import SearchMode

logger = logging.getLogger(__name__)

PAGE_SIZE = 30

RESULT_COLUMNS = ("id", "content", "extra_data", "summary", "desc", "fav", "trash")

# ── Predicate tree ──────────────────────────────────────────────────────


@dataclass(frozen=True)
class TagTerm:
    """Tag existence; ``value=None`` means any value in the namespace."""

    namespace: str
    value: Optional[str] = None


@dataclass(frozen=True)
class TextTerm:
    """Substring of summary or desc."""

    text: str


@dataclass(frozen=True)
class Not:
    term: Union[TagTerm, TextTerm]


@dataclass(frozen=True)
class And:
    terms: Tuple[Union[TagTerm, TextTerm, Not], ...] = ()


Node = Union[TagTerm, TextTerm, Not, And]


@dataclass(frozen=True)
class Token:
    """One whitespace-delimited term with quotes removed.

    ``colon`` is the index in ``text`` of the first colon that was not
    inside quotes, or -1.
    """

    text: str
    negated: bool
    colon: int
    raw: str


@dataclass(frozen=True)
class CompiledQuery:
    sql: str
    params: Tuple[str, ...]


# ── Tokenizer ───────────────────────────────────────────────────────────


def tokenize(expression: str) -> List[Token]:
    """Split *expression* into terms.

    Raises:
        QuerySyntaxError: on an unterminated double quote.
    """
    tokens: List[Token] = []
    i, n = 0, len(expression)
    while i < n:
        if expression[i].isspace():
            i += 1
            continue
        start = i
        negated = False
        if expression[i] == "-":
            negated = True
            i += 1
        buf = ""
        colon = -1
        while i < n and not expression[i].isspace():
            ch = expression[i]
            if ch == '"':
                end = expression.find('"', i + 1)
                if end < 0:
                    raise QuerySyntaxError(
                        f"Unterminated quote in {expression[start:]!r}",
                        expression[start:],
                    )
                buf += expression[i + 1:end]
                i = end + 1
                continue
            if ch == ":" and colon < 0:
                colon = len(buf)
            buf += ch
            i += 1
        tokens.append(Token(buf, negated, colon, expression[start:i]))
    return tokens


# ── Parser ──────────────────────────────────────────────────────────────


def _parse_term(token: Token) -> Union[TagTerm, TextTerm, Not]:
    if token.negated and not token.raw[1:]:
        raise QuerySyntaxError("Dangling '-' without a term", token.raw)

    if token.colon >= 0:
        namespace = token.text[:token.colon]
        value = token.text[token.colon + 1:]
        if not namespace:
            raise QuerySyntaxError(
                f"Missing tag namespace in {token.raw!r}", token.raw,
            )
        # Only a bare trailing colon means "any value"; ns:"" is an error.
        if not value and not token.raw.endswith(":"):
            raise QuerySyntaxError(
                f"Empty tag value in {token.raw!r}", token.raw,
            )
        term: Union[TagTerm, TextTerm] = TagTerm(namespace, value or None)
    else:
        if not token.text:
            raise QuerySyntaxError(f"Empty term {token.raw!r}", token.raw)
        term = TextTerm(token.text)

    return Not(term) if token.negated else term


def parse_expression(expression: str) -> And:
    """Parse a search expression into a conjunction of terms.

    An empty or all-whitespace expression yields ``And(())``, which
    matches everything.

    Examples:
        >>> parse_expression("artist:alice -nsfw:")
        And(terms=(TagTerm(namespace='artist', value='alice'), Not(term=TagTerm(namespace='nsfw', value=None))))
        >>> parse_expression('"funny cat"')
        And(terms=(TextTerm(text='funny cat'),))
    """
    return And(tuple(_parse_term(t) for t in tokenize(expression or "")))


# ── Lowering ────────────────────────────────────────────────────────────

# Correlated on meme.id so several tag terms intersect instead of
# multiplying rows the way a plain JOIN would.
_TAG_EXISTS = (
    "EXISTS (SELECT 1 FROM meme_tag JOIN tag ON tag.id = meme_tag.tag_id "
    "WHERE meme_tag.meme_id = meme.id AND tag.namespace = ?{value_cond})"
)
_TEXT_MATCH = (
    "(meme.summary LIKE ? ESCAPE '\\' OR IFNULL(meme.desc, '') LIKE ? ESCAPE '\\')"
)


def lower(node: Node) -> Tuple[str, List[str]]:
    """Emit (sql, params) for a predicate tree. ``And(())`` lowers to ``""``."""
    if isinstance(node, TagTerm):
        if node.value is None:
            return _TAG_EXISTS.format(value_cond=""), [node.namespace]
        return (
            _TAG_EXISTS.format(value_cond=" AND tag.value = ?"),
            [node.namespace, node.value],
        )
    if isinstance(node, TextTerm):
        pattern = "%" + escape_like(node.text) + "%"
        return _TEXT_MATCH, [pattern, pattern]
    if isinstance(node, Not):
        sql, params = lower(node.term)
        return f"NOT {sql}", params
    if isinstance(node, And):
        parts: List[str] = []
        params: List[str] = []
        for term in node.terms:
            sql, p = lower(term)
            parts.append(sql)
            params.extend(p)
        return " AND ".join(parts), params
    raise TypeError(f"Unknown predicate node: {node!r}")


# ── Final query ─────────────────────────────────────────────────────────


def _page_offset(page: int) -> int:
    if isinstance(page, bool) or not isinstance(page, int):
        raise ValueError(f"page must be an int, got {type(page).__name__}")
    if page < 0:
        raise ValueError(f"page must be >= 0, got {page}")
    return page * PAGE_SIZE


def compile_search(
    expression: str,
    mode: SearchMode = SearchMode.NORMAL,
    page: int = 0,
) -> CompiledQuery:
    """Compile a search into one ready-to-run query.

    Results are ordered by update_time, most recent first; equal
    timestamps fall back to the higher id first. Each page holds
    PAGE_SIZE rows.

    Raises:
        QuerySyntaxError: malformed expression (no SQL is produced).
        ValueError: negative or non-integer page.
    """
    offset = _page_offset(page)
    mode = SearchMode(mode)
    predicate, params = lower(parse_expression(expression))

    conditions = [f"({predicate})"] if predicate else []
    conditions.append(mode.where_clause)
    sql = (
        f"SELECT {', '.join(RESULT_COLUMNS)} FROM meme "
        f"WHERE {' AND '.join(conditions)} "
        f"ORDER BY update_time DESC, id DESC "
        f"LIMIT {PAGE_SIZE} OFFSET {offset}"
    )
    logger.debug("[search] %r mode=%s page=%d → %s", expression, mode.value, page, sql)
    return CompiledQuery(sql, tuple(params))

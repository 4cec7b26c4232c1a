"""
Tests for memelib.query — tokenizer, parser, lowering and final SQL.

These run without a database: compile_search() must reject malformed
expressions before any SQL exists, and must never put user text into
the SQL string.
"""

import pytest

from memelib.errors import QuerySyntaxError, StorageError
from memelib.query import (
    PAGE_SIZE,
    And,
    Not,
    TagTerm,
    TextTerm,
    compile_search,
    lower,
    parse_expression,
    tokenize,
)
from memelib.types import SearchMode


# ===========================================================================
# 1. tokenize()
# ===========================================================================


class TestTokenize:
    def test_whitespace_split(self):
        assert [t.text for t in tokenize("  a   b\tc\n")] == ["a", "b", "c"]

    def test_empty(self):
        assert tokenize("") == []
        assert tokenize("   ") == []

    def test_negation_flag(self):
        (tok,) = tokenize("-cat")
        assert tok.negated
        assert tok.text == "cat"

    def test_quotes_group_words(self):
        assert [t.text for t in tokenize('"funny cat" dog')] == ["funny cat", "dog"]

    def test_quoted_value(self):
        (tok,) = tokenize('artist:"bob ross"')
        assert tok.text == "artist:bob ross"
        assert tok.colon == 6

    def test_quoted_colon_is_literal(self):
        (tok,) = tokenize('"12:30"')
        assert tok.colon == -1

    def test_quoted_dash_is_literal(self):
        (tok,) = tokenize('"-5"')
        assert not tok.negated
        assert tok.text == "-5"

    def test_unterminated_quote(self):
        with pytest.raises(QuerySyntaxError):
            tokenize('"oops')


# ===========================================================================
# 2. parse_expression()
# ===========================================================================


class TestParse:
    def test_tag_term(self):
        assert parse_expression("artist:alice") == And((TagTerm("artist", "alice"),))

    def test_namespace_only(self):
        assert parse_expression("artist:") == And((TagTerm("artist", None),))
        assert parse_expression('"artist":') == And((TagTerm("artist", None),))

    def test_text_term(self):
        assert parse_expression("cat") == And((TextTerm("cat"),))

    def test_negations(self):
        tree = parse_expression("-artist:bob -nsfw: -blurry")
        assert tree == And((
            Not(TagTerm("artist", "bob")),
            Not(TagTerm("nsfw", None)),
            Not(TextTerm("blurry")),
        ))

    def test_value_keeps_later_colons(self):
        assert parse_expression("time:12:30") == And((TagTerm("time", "12:30"),))

    def test_empty_expression_matches_all(self):
        assert parse_expression("") == And(())
        assert parse_expression(None) == And(())

    @pytest.mark.parametrize("expr", [
        "-",
        "cat -",
        ":alice",
        "-:alice",
        ":",
        '""',
        '-""',
        '"":x',
        'artist:"unterminated',
        'artist:""',
        '-artist:""',
    ])
    def test_malformed(self, expr):
        with pytest.raises(QuerySyntaxError):
            parse_expression(expr)

    def test_syntax_error_is_storage_error(self):
        with pytest.raises(StorageError):
            parse_expression(":x")

    def test_error_carries_term(self):
        with pytest.raises(QuerySyntaxError) as info:
            parse_expression("cat :alice")
        assert info.value.term == ":alice"


# ===========================================================================
# 3. lower()
# ===========================================================================


class TestLower:
    def test_tag_exists(self):
        sql, params = lower(TagTerm("artist", "alice"))
        assert sql.startswith("EXISTS (SELECT 1 FROM meme_tag")
        assert "meme_tag.meme_id = meme.id" in sql
        assert params == ["artist", "alice"]

    def test_namespace_only_has_no_value_condition(self):
        sql, params = lower(TagTerm("artist"))
        assert "tag.value" not in sql
        assert params == ["artist"]

    def test_negated_tag(self):
        sql, _ = lower(Not(TagTerm("artist", "bob")))
        assert sql.startswith("NOT EXISTS")

    def test_text_pattern(self):
        sql, params = lower(TextTerm("cat"))
        assert "meme.summary LIKE ?" in sql
        assert "IFNULL(meme.desc, '')" in sql
        assert params == ["%cat%", "%cat%"]

    def test_text_wildcards_escaped(self):
        _, params = lower(TextTerm("100%_done"))
        assert params[0] == "%100\\%\\_done%"

    def test_and_joins_in_order(self):
        sql, params = lower(And((TagTerm("a", "b"), TextTerm("c"))))
        assert " AND " in sql
        assert params == ["a", "b", "%c%", "%c%"]

    def test_empty_and(self):
        assert lower(And(())) == ("", [])


# ===========================================================================
# 4. compile_search()
# ===========================================================================


class TestCompileSearch:
    def test_columns_order_and_page(self):
        q = compile_search("", SearchMode.NORMAL, 0)
        assert q.sql.startswith(
            "SELECT id, content, extra_data, summary, desc, fav, trash FROM meme WHERE "
        )
        assert "ORDER BY update_time DESC, id DESC" in q.sql
        assert q.sql.endswith(f"LIMIT {PAGE_SIZE} OFFSET 0")
        assert q.params == ()

    def test_offset(self):
        assert compile_search("cat", page=2).sql.endswith("LIMIT 30 OFFSET 60")

    @pytest.mark.parametrize("mode, clause", [
        (SearchMode.NORMAL, "WHERE trash = 0 ORDER"),
        (SearchMode.ONLY_FAV, "WHERE fav = 1 AND trash = 0 ORDER"),
        (SearchMode.ONLY_TRASH, "WHERE trash = 1 ORDER"),
    ])
    def test_mode_clause_alone(self, mode, clause):
        assert clause in compile_search("", mode).sql

    def test_mode_anded_with_predicate(self):
        q = compile_search("artist:alice", SearchMode.ONLY_TRASH)
        assert ") AND trash = 1 ORDER" in q.sql
        assert q.params == ("artist", "alice")

    def test_mode_given_as_string(self):
        assert "trash = 1" in compile_search("", "OnlyTrash").sql

    def test_user_text_never_in_sql(self):
        hostile = "x');DROP TABLE meme;-- ns':\"v'v\" -\"evil evil\""
        q = compile_search(hostile)
        for fragment in ("DROP", "evil", "x')", "ns'"):
            assert fragment not in q.sql
        assert q.sql.count("?") == len(q.params)

    def test_malformed_expression_raises_before_sql(self):
        with pytest.raises(QuerySyntaxError):
            compile_search("artist:alice :bob")

    @pytest.mark.parametrize("page", [-1, 1.0, "1", True, None])
    def test_invalid_page(self, page):
        with pytest.raises(ValueError):
            compile_search("", page=page)

    def test_unknown_mode(self):
        with pytest.raises(ValueError):
            compile_search("", "Everything")

"""
Tests for memelib.memes — create, sparse update, touch, flags.
"""

import pytest

from memelib.memes import MemeRecords

DIGEST = "a" * 64
THUMB = "b" * 64


@pytest.fixture
def memes(conn, clock):
    return MemeRecords(conn, clock=clock)


class TestCreate:
    def test_create_and_get(self, memes):
        mid = memes.create(DIGEST, "cat on keyboard", extra_data='{"w": 10}', desc="a cat")
        m = memes.get(mid)
        assert m.id == mid
        assert m.content == DIGEST
        assert m.summary == "cat on keyboard"
        assert m.desc == "a cat"
        assert m.extra_data == '{"w": 10}'
        assert m.thumbnail is None

    def test_flags_default_false(self, memes):
        m = memes.get(memes.create(DIGEST, "x"))
        assert m.fav is False
        assert m.trash is False

    def test_timestamps_set_on_create(self, memes, clock):
        m = memes.get(memes.create(DIGEST, "x"))
        assert m.create_time is not None
        assert m.create_time == m.update_time

    def test_ids_increase(self, memes):
        assert memes.create(DIGEST, "one") < memes.create(DIGEST, "two")

    def test_shared_digest_allowed(self, memes):
        memes.create(DIGEST, "one")
        memes.create(DIGEST, "two")
        assert memes.count() == 2

    def test_get_missing(self, memes):
        assert memes.get(12345) is None


class TestSparseUpdate:
    def test_none_leaves_summary(self, memes):
        mid = memes.create(DIGEST, "original", desc="d")
        assert memes.update(mid, summary=None, desc="new desc") is True
        m = memes.get(mid)
        assert m.summary == "original"
        assert m.desc == "new desc"

    def test_summary_only(self, memes):
        mid = memes.create(DIGEST, "original", extra_data="e", desc="d", thumbnail=THUMB)
        before = memes.get(mid)
        memes.update(mid, summary="changed")
        after = memes.get(mid)
        assert after.summary == "changed"
        for field in ("content", "extra_data", "desc", "thumbnail", "fav", "trash",
                      "create_time", "update_time"):
            assert getattr(after, field) == getattr(before, field), field

    def test_all_columns(self, memes):
        mid = memes.create(DIGEST, "s")
        memes.update(mid, extra_data="x", summary="y", desc="z", thumbnail=THUMB)
        m = memes.get(mid)
        assert (m.extra_data, m.summary, m.desc, m.thumbnail) == ("x", "y", "z", THUMB)

    def test_all_none_is_noop(self, memes):
        mid = memes.create(DIGEST, "s")
        before = memes.get(mid)
        assert memes.update(mid) is False
        assert memes.get(mid) == before

    def test_empty_string_overwrites(self, memes):
        mid = memes.create(DIGEST, "s", desc="d")
        memes.update(mid, desc="")
        assert memes.get(mid).desc == ""

    def test_update_missing(self, memes):
        assert memes.update(999, summary="x") is False

    def test_update_does_not_bump_update_time(self, memes):
        mid = memes.create(DIGEST, "s")
        before = memes.get(mid).update_time
        memes.update(mid, summary="t")
        assert memes.get(mid).update_time == before


class TestTouchAndFlags:
    def test_touch_bumps_update_time(self, memes):
        mid = memes.create(DIGEST, "s")
        before = memes.get(mid)
        assert memes.touch(mid) is True
        after = memes.get(mid)
        assert after.update_time > before.update_time
        assert after.create_time == before.create_time
        assert after.summary == before.summary

    def test_touch_missing(self, memes):
        assert memes.touch(999) is False

    def test_set_favorite(self, memes):
        mid = memes.create(DIGEST, "s")
        memes.set_favorite(mid, True)
        assert memes.get(mid).fav is True
        memes.set_favorite(mid, True)
        assert memes.get(mid).fav is True
        memes.set_favorite(mid, False)
        assert memes.get(mid).fav is False

    def test_set_trash(self, memes):
        mid = memes.create(DIGEST, "s")
        memes.set_trash(mid, True)
        assert memes.get(mid).trash is True
        memes.set_trash(mid, False)
        assert memes.get(mid).trash is False
        assert memes.count() == 1

    def test_set_flag_missing(self, memes):
        assert memes.set_favorite(999, True) is False
        assert memes.set_trash(999, True) is False

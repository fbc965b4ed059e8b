"""Tests for short id assignment."""

import pytest
from datetime import datetime

from shared.models import AuthorSummary
from services.stats_builder.identity import AuthorRef, IdentityAssigner, short_id_prefix


class TestShortIdPrefix:
    """Test prefix extraction from display names."""

    def test_lowercases_and_strips_non_letters(self):
        assert short_id_prefix("Mr. T-1000!") == "mrt"

    def test_truncates_to_ten_letters(self):
        assert short_id_prefix("abcdefghijklmnop") == "abcdefghij"
        assert short_id_prefix("a1b2c3d4e5f6g7h8i9j0k") == "abcdefghij"

    def test_only_ascii_letters(self):
        assert short_id_prefix("Zoë") == "zo"

    def test_falls_back_when_no_letters(self):
        assert short_id_prefix("1234") == "a"
        assert short_id_prefix("") == "a"


class TestIdentityAssigner:
    """Test collision handling and ordering."""

    def test_first_poster_keeps_unsuffixed_id(self):
        assigner = IdentityAssigner()
        ids = assigner.assign([
            AuthorRef("bob99", "bob99", 5),
            AuthorRef("bob", "Bob", 1),
        ])

        assert ids == {"bob": "bob", "bob99": "bob2"}

    def test_suffix_increments(self):
        assigner = IdentityAssigner()
        ids = assigner.assign([
            AuthorRef("k1", "bob", 1),
            AuthorRef("k2", "Bob!", 2),
            AuthorRef("k3", "b.o.b", 3),
        ])

        assert [ids["k1"], ids["k2"], ids["k3"]] == ["bob", "bob2", "bob3"]

    def test_ties_broken_by_author_key(self):
        ids = IdentityAssigner().assign([
            AuthorRef("zed", "Sam", 7),
            AuthorRef("amy", "sam", 7),
        ])

        assert ids == {"amy": "sam", "zed": "sam2"}

    def test_names_without_letters_share_fallback(self):
        ids = IdentityAssigner().assign([
            AuthorRef("k1", "123", 1),
            AuthorRef("k2", "!!!", 2),
        ])

        assert ids == {"k1": "a", "k2": "a2"}

    def test_ids_unique_for_many_collisions(self):
        authors = [AuthorRef(f"key{i}", f"Same Name {i}", i) for i in range(200)]
        ids = IdentityAssigner().assign(authors)

        assert len(set(ids.values())) == 200
        assert ids["key0"] == "samename"
        assert ids["key1"] == "samename2"

    def test_reverse_table(self):
        assigner = IdentityAssigner()
        assigner.assign([AuthorRef("bob", "Bob", 1), AuthorRef("bob99", "bob99", 5)])

        assert assigner.display_names == {"bob": "Bob", "bob2": "bob99"}
        assert assigner.short_id_for("bob99") == "bob2"
        with pytest.raises(KeyError):
            assigner.short_id_for("nobody")

    def test_assign_summaries_orders_by_first_post(self):
        summaries = [
            AuthorSummary("late", "Late", 40, datetime(2024, 3, 2), 3),
            AuthorSummary("early", "Early", 10, datetime(2024, 3, 1), 1),
        ]

        identities = IdentityAssigner().assign_summaries(summaries)

        assert [i.author_key for i in identities] == ["early", "late"]
        assert [i.short_id for i in identities] == ["early", "late"]

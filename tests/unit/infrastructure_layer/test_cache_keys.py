"""
Unit Tests for Cache Key Builders

Key formats are part of the contract with every process sharing the Redis
instance, so they are pinned here.
"""

from fnmatch import fnmatch

import pytest

from tourcache.infrastructure.cache.cache_keys import (
    BLOG_KEYSPACE,
    KEYSPACES,
    TOUR_KEYSPACE,
    CacheKeys,
)


@pytest.mark.unit
class TestCacheKeys:

    @pytest.mark.parametrize(
        "key, expected",
        [
            (CacheKeys.tour(42), "tour:42"),
            (CacheKeys.tour_by_slug("gobi-tour"), "tour:slug:gobi-tour"),
            (CacheKeys.tours_list(2, 10), "tours:list:2:10"),
            (CacheKeys.tours_list(), "tours:list:all:all"),
            (CacheKeys.tours_featured(), "tours:featured"),
            (CacheKeys.tours_by_category("abc"), "tours:category:abc"),
            (CacheKeys.category(3), "category:3"),
            (CacheKeys.categories_list(), "categories:list"),
            (CacheKeys.blog_post(8), "blog:8"),
            (CacheKeys.blog_list(1), "blog:list:1"),
            (CacheKeys.settings("contact"), "settings:contact"),
            (CacheKeys.faq_list(), "faq:list"),
            (CacheKeys.testimonials(), "testimonials:list"),
        ],
    )
    def test_key_format(self, key, expected):
        assert key == expected

    def test_list_pattern_matches_every_page_but_not_other_views(self):
        pattern = CacheKeys.tours_list_pattern()

        assert fnmatch(CacheKeys.tours_list(1, 10), pattern)
        assert fnmatch(CacheKeys.tours_list(), pattern)
        assert not fnmatch(CacheKeys.tours_by_category("abc"), pattern)
        assert not fnmatch(CacheKeys.tours_featured(), pattern)


@pytest.mark.unit
class TestEntityKeySpace:

    def test_tour_keys_include_related_and_aggregates(self):
        keys = TOUR_KEYSPACE.keys_for("42", ["tour:slug:gobi-tour"])

        assert keys == ["tour:42", "tour:slug:gobi-tour", "tours:featured"]

    def test_duplicate_keys_are_dropped(self):
        keys = TOUR_KEYSPACE.keys_for(42, ["tour:42", "tours:featured"])

        assert keys == ["tour:42", "tours:featured"]

    def test_blog_keyspace_has_no_aggregates(self):
        assert BLOG_KEYSPACE.keys_for(5) == ["blog:5"]
        assert BLOG_KEYSPACE.list_pattern == "blog:list:*"

    def test_registry_lookup_by_name(self):
        assert set(KEYSPACES) == {"tour", "category", "blog"}
        assert KEYSPACES["tour"] is TOUR_KEYSPACE

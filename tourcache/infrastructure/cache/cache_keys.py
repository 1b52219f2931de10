"""
Cache Key Namespace

Every cached view lives under a structured, colon-separated key so that it can
be invalidated either exactly (``tour:42``) or by pattern (``tours:list:*``).

A write path that mutates an entity must delete every key that could hold a
view of it. EntityKeySpace collects those keys for one entity type so the
write path does not have to remember them.
"""

from dataclasses import dataclass, field

from tourcache.core.config.constants import (
    KEY_PREFIX_BLOG,
    KEY_PREFIX_CATEGORIES,
    KEY_PREFIX_CATEGORY,
    KEY_PREFIX_FAQ,
    KEY_PREFIX_SETTINGS,
    KEY_PREFIX_TESTIMONIALS,
    KEY_PREFIX_TOUR,
    KEY_PREFIX_TOURS,
)

ALL = "all"


class CacheKeys:
    """Named builders for every cached view."""

    @staticmethod
    def tour(tour_id: str | int) -> str:
        return f"{KEY_PREFIX_TOUR}:{tour_id}"

    @staticmethod
    def tour_by_slug(slug: str) -> str:
        return f"{KEY_PREFIX_TOUR}:slug:{slug}"

    @staticmethod
    def tours_list(page: int | None = None, limit: int | None = None) -> str:
        """Paginated listing, e.g. ``tours:list:2:10`` or ``tours:list:all:all``."""
        page_part = ALL if page is None else page
        limit_part = ALL if limit is None else limit
        return f"{KEY_PREFIX_TOURS}:list:{page_part}:{limit_part}"

    @staticmethod
    def tours_list_pattern() -> str:
        return f"{KEY_PREFIX_TOURS}:list:*"

    @staticmethod
    def tours_featured() -> str:
        return f"{KEY_PREFIX_TOURS}:featured"

    @staticmethod
    def tours_by_category(category_id: str | int) -> str:
        return f"{KEY_PREFIX_TOURS}:category:{category_id}"

    @staticmethod
    def category(category_id: str | int) -> str:
        return f"{KEY_PREFIX_CATEGORY}:{category_id}"

    @staticmethod
    def categories_list() -> str:
        return f"{KEY_PREFIX_CATEGORIES}:list"

    @staticmethod
    def blog_post(post_id: str | int) -> str:
        return f"{KEY_PREFIX_BLOG}:{post_id}"

    @staticmethod
    def blog_list(page: int | None = None) -> str:
        return f"{KEY_PREFIX_BLOG}:list:{ALL if page is None else page}"

    @staticmethod
    def blog_list_pattern() -> str:
        return f"{KEY_PREFIX_BLOG}:list:*"

    @staticmethod
    def settings(key: str) -> str:
        return f"{KEY_PREFIX_SETTINGS}:{key}"

    @staticmethod
    def faq_list() -> str:
        return f"{KEY_PREFIX_FAQ}:list"

    @staticmethod
    def testimonials() -> str:
        return f"{KEY_PREFIX_TESTIMONIALS}:list"


@dataclass(frozen=True)
class EntityKeySpace:
    """
    Invalidation set for one entity type.

    Attributes:
        direct_key: Template for the entity's own key, formatted with ``id``
        list_pattern: Glob matching every listing that may contain the entity
        aggregate_keys: Keys that summarise many entities and go stale on any change
    """

    name: str
    direct_key: str
    list_pattern: str | None = None
    aggregate_keys: tuple[str, ...] = field(default_factory=tuple)

    def key_for(self, entity_id: str | int) -> str:
        return self.direct_key.format(id=entity_id)

    def keys_for(self, entity_id: str | int, related_keys: tuple[str, ...] | list[str] = ()) -> list[str]:
        """Direct key, caller-supplied related keys and aggregates, without duplicates."""
        keys = [self.key_for(entity_id), *related_keys, *self.aggregate_keys]
        return list(dict.fromkeys(keys))


TOUR_KEYSPACE = EntityKeySpace(
    name="tour",
    direct_key=f"{KEY_PREFIX_TOUR}:{{id}}",
    list_pattern=CacheKeys.tours_list_pattern(),
    aggregate_keys=(CacheKeys.tours_featured(),),
)

CATEGORY_KEYSPACE = EntityKeySpace(
    name="category",
    direct_key=f"{KEY_PREFIX_CATEGORY}:{{id}}",
    aggregate_keys=(CacheKeys.categories_list(),),
)

BLOG_KEYSPACE = EntityKeySpace(
    name="blog",
    direct_key=f"{KEY_PREFIX_BLOG}:{{id}}",
    list_pattern=CacheKeys.blog_list_pattern(),
)

KEYSPACES: dict[str, EntityKeySpace] = {
    keyspace.name: keyspace
    for keyspace in (TOUR_KEYSPACE, CATEGORY_KEYSPACE, BLOG_KEYSPACE)
}

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field

from .posts import Post

DEFAULT_PAGINATE_PATH = "/page:num/"


@dataclass
class Paginator:
    """One page of the paginated post index.

    Attributes mirror what a ``home`` layout needs to draw page navigation.
    """

    page: int
    per_page: int
    total_pages: int
    total_posts: int
    posts: PostCollection
    url: str
    previous_page_url: str | None = None
    next_page_url: str | None = None

    @property
    def previous_page(self) -> int | None:
        return self.page - 1 if self.page > 1 else None

    @property
    def next_page(self) -> int | None:
        return self.page + 1 if self.page < self.total_pages else None


@dataclass
class YearGroup:
    """Posts published in one calendar year, newest first."""

    year: int
    posts: list[Post] = field(default_factory=list)


def page_url(number: int, path_pattern: str = DEFAULT_PAGINATE_PATH) -> str:
    """URL of index page ``number``; page 1 is always the site root."""
    if number <= 1:
        return "/"
    url = path_pattern.replace(":num", str(number))
    return url if url.startswith("/") else f"/{url}"


class PostCollection(Sequence[Post]):
    """Ordered list of posts with helpers for templates and the build."""

    def __init__(self, posts: Iterable[Post]):
        self._posts = list(posts)

    def __iter__(self) -> Iterator[Post]:
        return iter(self._posts)

    def __len__(self) -> int:
        return len(self._posts)

    def __getitem__(self, item):
        if isinstance(item, slice):
            return PostCollection(self._posts[item])
        return self._posts[item]

    def sorted(self, reverse: bool = True) -> PostCollection:
        """Sort by date, newest first by default; equal dates sort by slug."""
        by_slug = sorted(self._posts, key=lambda p: p.slug)
        return PostCollection(sorted(by_slug, key=lambda p: p.date, reverse=reverse))

    def published(self) -> PostCollection:
        return PostCollection(p for p in self._posts if not p.draft)

    def drafts(self) -> PostCollection:
        return PostCollection(p for p in self._posts if p.draft)

    def crossposted(self) -> PostCollection:
        return PostCollection(p for p in self._posts if p.crosspost_to_medium)

    def with_comments(self) -> PostCollection:
        return PostCollection(p for p in self._posts if p.comments)

    def latest(self, count: int = 5) -> PostCollection:
        return self.sorted()[:count]

    def link_neighbours(self) -> None:
        """Set ``previous`` (older) and ``next`` (newer) on every post.

        Assumes the collection is ordered newest first.
        """
        for index, post in enumerate(self._posts):
            post.next = self._posts[index - 1] if index > 0 else None
            post.previous = (
                self._posts[index + 1] if index + 1 < len(self._posts) else None
            )

    def by_year(self) -> list[YearGroup]:
        """Group posts by publish year, newest year first."""
        groups: dict[int, YearGroup] = {}
        for post in self.sorted():
            groups.setdefault(post.date.year, YearGroup(post.date.year)).posts.append(post)
        return list(groups.values())

    def paginate(
        self, per_page: int, path_pattern: str = DEFAULT_PAGINATE_PATH
    ) -> list[Paginator]:
        """Split the collection into index pages.

        Args:
            per_page: Posts per page; 0 or less puts every post on one page.
            path_pattern: URL pattern for pages after the first, with ``:num``.

        Returns:
            One Paginator per page. An empty collection still yields one page.
        """
        ordered = self.sorted()
        total = len(ordered)
        if per_page <= 0:
            per_page = max(total, 1)
        total_pages = max(1, -(-total // per_page))
        pages: list[Paginator] = []
        for number in range(1, total_pages + 1):
            start = (number - 1) * per_page
            pages.append(
                Paginator(
                    page=number,
                    per_page=per_page,
                    total_pages=total_pages,
                    total_posts=total,
                    posts=ordered[start : start + per_page],
                    url=page_url(number, path_pattern),
                    previous_page_url=(
                        page_url(number - 1, path_pattern) if number > 1 else None
                    ),
                    next_page_url=(
                        page_url(number + 1, path_pattern) if number < total_pages else None
                    ),
                )
            )
        return pages

    def __repr__(self) -> str:  # pragma: no cover - for debugging
        return f"PostCollection({len(self._posts)} posts)"

# blogdesk/services/search.py
from typing import List, Sequence

from blogdesk.models.post import Post
from blogdesk.services.post_lists import OperatorPostList


def filter_by_title(posts: Sequence[Post], query: str) -> List[Post]:
    needle = (query or "").strip().casefold()
    if not needle:
        return list(posts)
    return [p for p in posts if needle in p.title.casefold()]


class SearchFilterView:
    """Title search over an operator list; recomputed on every read."""

    def __init__(self, source: OperatorPostList, query: str = ""):
        self.source = source
        self.query = query

    def results(self) -> List[Post]:
        return filter_by_title(self.source.posts, self.query)

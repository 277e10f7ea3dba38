"""Feed composition: "popular with friends" first, then "for you".

The two sources are fetched concurrently and merged only after both
resolve. Popular events win: any id already in the popular list is dropped
from the "for you" page. The "for you" source pages on its own keyset
cursor, the ``(start_time, id)`` of the last raw row served. Dropping
duplicates, or the user answering events already shown, never shifts the
next page.
"""

from __future__ import annotations

import asyncio
import base64
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from starlette.concurrency import run_in_threadpool

from .config import settings
from .datastore import DataStore
from .errors import FeedCancelled, InvalidCursorError
from .schemas import EventCard, FeedPage

logger = logging.getLogger(__name__)

CancelCheck = Callable[[], Awaitable[bool]]
FeedPosition = tuple[datetime, str]


def encode_cursor(event: EventCard) -> str:
    raw = f"{event.start_time.isoformat()}|{event.id}"
    return base64.urlsafe_b64encode(raw.encode("utf-8")).decode("ascii").rstrip("=")


def decode_cursor(cursor: str | None) -> FeedPosition | None:
    """Position encoded by :func:`encode_cursor`; ``None`` means the start."""
    if not cursor:
        return None
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        raw = base64.urlsafe_b64decode(padded.encode("ascii")).decode("utf-8")
        start, event_id = raw.split("|", 1)
        return datetime.fromisoformat(start), event_id
    except ValueError:
        raise InvalidCursorError() from None


def merge_feed(
    popular: list[EventCard],
    for_you_raw: list[EventCard],
    *,
    page_size: int,
    cursor: str | None = None,
) -> FeedPage:
    popular_ids = {event.id for event in popular}
    for_you = [event for event in for_you_raw if event.id not in popular_ids]
    return FeedPage(
        popular=list(popular),
        for_you=for_you,
        # A full page hints that more may exist upstream; it is not a count.
        has_more=len(for_you_raw) == page_size,
        next_cursor=encode_cursor(for_you_raw[-1]) if for_you_raw else cursor,
    )


class FeedComposer:
    def __init__(
        self,
        store: DataStore,
        *,
        for_you_page_size: int | None = None,
        load_more_page_size: int | None = None,
        popular_limit: int | None = None,
    ):
        self.store = store
        self.for_you_page_size = for_you_page_size or settings.for_you_page_size
        self.load_more_page_size = load_more_page_size or settings.load_more_page_size
        self.popular_limit = popular_limit or settings.popular_limit

    async def _fetch_popular(self, user_id: str) -> list[EventCard]:
        return await run_in_threadpool(
            self.store.fetch_popular_events, user_id, limit=self.popular_limit
        )

    async def _fetch_for_you(
        self, user_id: str | None, *, limit: int, after: FeedPosition | None
    ) -> list[EventCard]:
        return await run_in_threadpool(
            self.store.fetch_for_you_events, user_id, limit=limit, after=after
        )

    async def _fetch_sources(
        self, user_id: str | None, *, limit: int, after: FeedPosition | None
    ) -> tuple[list[EventCard], list[EventCard]]:
        if user_id:
            try:
                popular, for_you = await asyncio.gather(
                    self._fetch_popular(user_id),
                    self._fetch_for_you(user_id, limit=limit, after=after),
                )
                return popular, for_you
            except Exception:
                logger.exception(
                    "Feed fetch failed for user %s; serving 'for you' only", user_id
                )
        for_you = await self._fetch_for_you(user_id, limit=limit, after=after)
        return [], for_you

    @staticmethod
    async def _raise_if_cancelled(cancelled: CancelCheck | None) -> None:
        if cancelled is not None and await cancelled():
            raise FeedCancelled()

    async def load_initial_feed(
        self, user_id: str | None, *, cancelled: CancelCheck | None = None
    ) -> FeedPage:
        popular, for_you = await self._fetch_sources(
            user_id, limit=self.for_you_page_size, after=None
        )
        await self._raise_if_cancelled(cancelled)
        return merge_feed(popular, for_you, page_size=self.for_you_page_size)

    async def load_more(
        self,
        user_id: str | None,
        for_you_cursor: str | None,
        *,
        cancelled: CancelCheck | None = None,
    ) -> FeedPage:
        """Next "for you" page after the caller's cursor.

        The popular list is fetched again only to drop its ids; it is not
        part of the returned page.
        """
        after = decode_cursor(for_you_cursor)
        popular, for_you = await self._fetch_sources(
            user_id, limit=self.load_more_page_size, after=after
        )
        await self._raise_if_cancelled(cancelled)
        page = merge_feed(
            popular,
            for_you,
            page_size=self.load_more_page_size,
            cursor=for_you_cursor,
        )
        return FeedPage(
            popular=[],
            for_you=page.for_you,
            has_more=page.has_more,
            next_cursor=page.next_cursor,
        )

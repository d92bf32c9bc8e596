"""Interaction Recorder.

Every entry point is a versioned read-modify-write on the user's activity
profile:

  load (or lazily create) -> validate -> mutate in memory -> save(version)

A concurrent writer makes ``save`` raise ``ProfileConflictError``; the whole
mutation is then replayed on a freshly loaded profile. The mutation helpers
below are pure functions over the profile so that replaying is safe.
"""

import logging
from datetime import datetime
from typing import Any, Callable, Optional

from feedrank.core.config import Settings, get_settings
from feedrank.domain.entities import (
    INTERACTION_TYPES,
    ActivityProfile,
    AuthorPreference,
    Book,
    GenrePreference,
    InteractionEvent,
    ReadingProgress,
    WritingProgress,
    utcnow,
)
from feedrank.domain.exceptions import (
    BookNotFoundError,
    InvalidInteractionError,
    ProfileConflictError,
)
from feedrank.domain.repositories import (
    IActivityProfileRepository,
    IBookRepository,
    IFeedCache,
)
from feedrank.domain.services import IInteractionService

logger = logging.getLogger(__name__)

# How strongly each interaction type moves the genre weight (0-100 scale)
GENRE_WEIGHT_INCREMENTS = {
    "complete": 10,
    "purchase": 15,
    "like": 5,
    "read": 3,
}
DEFAULT_GENRE_INCREMENT = 1
INITIAL_GENRE_WEIGHT = 50.0
INITIAL_WRITER_GENRE_WEIGHT = 60.0
WRITER_GENRE_INCREMENT = 15
MAX_GENRE_WEIGHT = 100.0


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------
def validate_interaction(
    user_id: str,
    book_id: str,
    interaction_type: str,
    duration: Optional[float] = None,
    metadata: Optional[dict] = None,
) -> None:
    _require_ids(user_id, book_id)
    if interaction_type not in INTERACTION_TYPES:
        raise InvalidInteractionError(f"Unknown interaction type: {interaction_type!r}")
    if duration is not None and duration < 0:
        raise InvalidInteractionError("duration must not be negative")
    if interaction_type == "review" and metadata and metadata.get("rating") is not None:
        rating = metadata["rating"]
        if isinstance(rating, bool) or not isinstance(rating, (int, float)) or not 1 <= rating <= 5:
            raise InvalidInteractionError("rating must be between 1 and 5")


def validate_progress(
    user_id: str, book_id: str, chapter: int, percent: float, reading_time: float
) -> None:
    _require_ids(user_id, book_id)
    if chapter < 0:
        raise InvalidInteractionError("chapter must not be negative")
    if not 0 <= percent <= 100:
        raise InvalidInteractionError("percent must be between 0 and 100")
    if reading_time < 0:
        raise InvalidInteractionError("reading_time must not be negative")


def _require_ids(user_id: str, book_id: str) -> None:
    if not user_id or not str(user_id).strip():
        raise InvalidInteractionError("user_id is required")
    if not book_id or not str(book_id).strip():
        raise InvalidInteractionError("book_id is required")


# ---------------------------------------------------------------------------
# Pure profile mutations
# ---------------------------------------------------------------------------
def _add_unique(items: list[str], value: str) -> bool:
    """Append ``value`` unless present; True when it was added."""
    if value in items:
        return False
    items.append(value)
    return True


def _discard(items: list[str], value: str) -> None:
    if value in items:
        items.remove(value)


def update_streak(profile: ActivityProfile, now: datetime) -> None:
    today = now.date()
    last = profile.last_streak_date.date() if profile.last_streak_date else None
    if last == today:
        return
    if last is not None and (today - last).days == 1:
        profile.current_streak += 1
    else:
        profile.current_streak = 1
    profile.longest_streak = max(profile.longest_streak, profile.current_streak)
    profile.last_streak_date = now


def touch_genre(
    profile: ActivityProfile,
    genre: str,
    increment: float,
    now: datetime,
    initial_weight: float = INITIAL_GENRE_WEIGHT,
) -> GenrePreference:
    """Raise the weight of an already known genre, or start a new one.

    A genre seen for the first time starts at ``initial_weight`` and does not
    receive the increment.
    """
    key = (genre or "").lower()
    pref = profile.genre_preferences.get(key)
    if pref is None:
        pref = GenrePreference(genre=genre, weight=initial_weight, last_interaction=now)
        profile.genre_preferences[key] = pref
        return pref
    pref.weight = min(MAX_GENRE_WEIGHT, pref.weight + increment)
    pref.last_interaction = now
    return pref


def _touch_author(
    profile: ActivityProfile, book: Book, now: datetime
) -> AuthorPreference:
    pref = profile.author_preferences.get(book.author_id)
    if pref is None:
        pref = AuthorPreference(
            author_id=book.author_id,
            author_name=book.author_name or "Unknown",
            last_interaction=now,
        )
        profile.author_preferences[book.author_id] = pref
    pref.last_interaction = now
    return pref


def _update_author_rating(pref: AuthorPreference, rating: float) -> None:
    if pref.average_rating == 0:
        pref.average_rating = float(rating)
        return
    books_read = pref.books_read or 1
    pref.average_rating = (pref.average_rating * (books_read - 1) + rating) / books_read


def _append_event(profile: ActivityProfile, event: InteractionEvent, log_limit: int) -> None:
    profile.interaction_events.append(event)
    if log_limit > 0 and len(profile.interaction_events) > log_limit:
        del profile.interaction_events[: len(profile.interaction_events) - log_limit]


def apply_interaction(
    profile: ActivityProfile,
    book: Book,
    interaction_type: str,
    now: datetime,
    duration: Optional[float] = None,
    metadata: Optional[dict] = None,
    log_limit: int = 1000,
) -> None:
    """Apply one interaction to ``profile`` in place."""
    metadata = dict(metadata or {})
    metadata.setdefault("word_count", book.statistics.word_count)
    _append_event(
        profile,
        InteractionEvent(
            type=interaction_type,
            book_id=book.id,
            genre=book.genre,
            author_id=book.author_id,
            duration=duration,
            timestamp=now,
            metadata=metadata,
        ),
        log_limit,
    )

    newly_completed = False
    if interaction_type in ("view", "read"):
        if book.id not in profile.completed_books and book.id not in profile.abandoned_books:
            _add_unique(profile.currently_reading, book.id)
    elif interaction_type == "complete":
        _discard(profile.currently_reading, book.id)
        _discard(profile.abandoned_books, book.id)
        newly_completed = _add_unique(profile.completed_books, book.id)
        if newly_completed:
            profile.total_books_read += 1
        progress = profile.reading_history.get(book.id)
        if progress is not None:
            progress.is_completed = True
    elif interaction_type == "abandon":
        if book.id not in profile.completed_books:
            _discard(profile.currently_reading, book.id)
            _add_unique(profile.abandoned_books, book.id)

    if interaction_type == "complete" and not newly_completed:
        # repeated completes only refresh recency
        known = profile.genre_preference(book.genre)
        if known is not None:
            known.last_interaction = now
    else:
        pref = touch_genre(
            profile,
            book.genre,
            GENRE_WEIGHT_INCREMENTS.get(interaction_type, DEFAULT_GENRE_INCREMENT),
            now,
        )
        if newly_completed:
            pref.read_count += 1

    if interaction_type != "view" or book.author_id in profile.author_preferences:
        author = _touch_author(profile, book, now)
        if newly_completed:
            author.books_read += 1
        rating = metadata.get("rating")
        if interaction_type == "review" and rating:
            _update_author_rating(author, rating)

    profile.last_active_at = now
    if duration:
        profile.total_reading_time += duration
    update_streak(profile, now)


def apply_reading_progress(
    profile: ActivityProfile,
    book: Book,
    chapter: int,
    percent: float,
    reading_time: float,
    now: datetime,
    log_limit: int = 1000,
) -> None:
    progress = profile.reading_history.get(book.id)
    if progress is None:
        progress = ReadingProgress(book_id=book.id, last_read_at=now)
        profile.reading_history[book.id] = progress
    progress.last_chapter_read = chapter
    progress.percentage_complete = percent
    progress.total_reading_time += reading_time
    progress.last_read_at = now

    if percent >= 100:
        apply_interaction(
            profile, book, "complete", now, duration=reading_time or None, log_limit=log_limit
        )
        return

    if book.id not in profile.completed_books and book.id not in profile.abandoned_books:
        _add_unique(profile.currently_reading, book.id)
    profile.last_active_at = now
    if reading_time:
        profile.total_reading_time += reading_time
    update_streak(profile, now)


def apply_writing_activity(
    profile: ActivityProfile, book_id: str, genre: str, now: datetime
) -> None:
    """A book was published by its author: writer-side genre boost and set move."""
    pref = touch_genre(
        profile, genre, WRITER_GENRE_INCREMENT, now, initial_weight=INITIAL_WRITER_GENRE_WEIGHT
    )
    pref.written_count += 1

    _discard(profile.currently_writing, book_id)
    if _add_unique(profile.completed_writing, book_id):
        profile.total_books_written += 1

    progress = profile.writing_progress.get(book_id)
    if progress is None:
        progress = WritingProgress(book_id=book_id, last_edited_at=now)
        profile.writing_progress[book_id] = progress
    progress.is_completed = True
    progress.last_edited_at = now

    profile.last_active_at = now
    update_streak(profile, now)


def apply_draft_edit(
    profile: ActivityProfile, book: Book, writing_time: float, now: datetime
) -> None:
    progress = profile.writing_progress.get(book.id)
    if progress is None:
        progress = WritingProgress(book_id=book.id, last_edited_at=now)
        profile.writing_progress[book.id] = progress
    progress.last_edited_at = now
    progress.total_writing_time += writing_time

    if book.status != "published" and book.id not in profile.completed_writing:
        _add_unique(profile.currently_writing, book.id)

    profile.total_writing_time += writing_time
    profile.last_active_at = now
    update_streak(profile, now)


def apply_author_following(
    profile: ActivityProfile,
    author_id: str,
    author_name: str,
    following: bool,
    now: datetime,
) -> None:
    pref = profile.author_preferences.get(author_id)
    if pref is None:
        pref = AuthorPreference(author_id=author_id, author_name=author_name or "Unknown")
        profile.author_preferences[author_id] = pref
    elif author_name:
        pref.author_name = author_name
    pref.is_following = following
    pref.last_interaction = now
    profile.last_active_at = now


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------
class InteractionService(IInteractionService):
    """Records user behaviour into the activity profile."""

    def __init__(
        self,
        profile_repository: IActivityProfileRepository,
        book_repository: IBookRepository,
        feed_cache: Optional[IFeedCache] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.profile_repository = profile_repository
        self.book_repository = book_repository
        self.feed_cache = feed_cache
        self.settings = settings or get_settings()
        self.clock = clock

    async def record_interaction(
        self,
        user_id: str,
        book_id: str,
        interaction_type: str,
        duration: Optional[float] = None,
        metadata: Optional[dict[str, Any]] = None,
    ) -> ActivityProfile:
        validate_interaction(user_id, book_id, interaction_type, duration, metadata)
        book = await self._require_book(book_id)
        limit = self.settings.interaction_log_limit

        profile = await self._mutate(
            user_id,
            lambda p, now: apply_interaction(
                p, book, interaction_type, now, duration, metadata, limit
            ),
        )
        logger.info("Recorded %s of book %s for user %s", interaction_type, book_id, user_id)
        return profile

    async def record_writing_activity(
        self, user_id: str, book_id: str, genre: str
    ) -> ActivityProfile:
        _require_ids(user_id, book_id)
        if not genre or not genre.strip():
            raise InvalidInteractionError("genre is required")
        return await self._mutate(
            user_id, lambda p, now: apply_writing_activity(p, book_id, genre.strip(), now)
        )

    async def record_draft_edit(
        self, user_id: str, book_id: str, writing_time: float = 0.0
    ) -> ActivityProfile:
        _require_ids(user_id, book_id)
        if writing_time < 0:
            raise InvalidInteractionError("writing_time must not be negative")
        book = await self._require_book(book_id)
        if book.author_id != user_id:
            raise InvalidInteractionError(f"User {user_id} is not the author of book {book_id}")
        return await self._mutate(
            user_id, lambda p, now: apply_draft_edit(p, book, writing_time, now)
        )

    async def update_reading_progress(
        self,
        user_id: str,
        book_id: str,
        chapter: int,
        percent: float,
        reading_time: float = 0.0,
    ) -> ActivityProfile:
        validate_progress(user_id, book_id, chapter, percent, reading_time)
        book = await self._require_book(book_id)
        limit = self.settings.interaction_log_limit
        return await self._mutate(
            user_id,
            lambda p, now: apply_reading_progress(
                p, book, chapter, percent, reading_time, now, limit
            ),
        )

    async def set_author_following(
        self,
        user_id: str,
        author_id: str,
        author_name: str = "",
        following: bool = True,
    ) -> ActivityProfile:
        if not user_id or not author_id:
            raise InvalidInteractionError("user_id and author_id are required")
        if user_id == author_id:
            raise InvalidInteractionError("Users cannot follow themselves")
        return await self._mutate(
            user_id,
            lambda p, now: apply_author_following(p, author_id, author_name, following, now),
        )

    # -- Helpers --
    async def _require_book(self, book_id: str) -> Book:
        book = await self.book_repository.get_by_id(book_id)
        if book is None:
            raise BookNotFoundError(book_id)
        return book

    async def _mutate(
        self,
        user_id: str,
        mutation: Callable[[ActivityProfile, datetime], None],
    ) -> ActivityProfile:
        """Versioned read-modify-write, replayed on conflict."""
        attempts = max(1, self.settings.profile_write_retries)
        attempt = 0
        while True:
            attempt += 1
            profile = await self.profile_repository.get(user_id)
            if profile is None:
                profile = ActivityProfile(user_id=user_id)
            now = self.clock()
            mutation(profile, now)
            profile.updated_at = now
            try:
                profile = await self.profile_repository.save(profile)
                break
            except ProfileConflictError:
                if attempt >= attempts:
                    logger.error(
                        "Giving up on profile write for user %s after %d attempts",
                        user_id,
                        attempts,
                    )
                    raise
                logger.warning(
                    "Profile write conflict for user %s (attempt %d/%d); retrying",
                    user_id,
                    attempt,
                    attempts,
                )

        if self.feed_cache is not None:
            await self.feed_cache.invalidate(user_id)
        return profile

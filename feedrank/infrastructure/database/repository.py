"""Repository implementations."""

from dataclasses import replace
from datetime import datetime
from typing import Any, Optional

from pydantic import TypeAdapter
from sqlalchemy import delete, func, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from feedrank.domain.entities import (
    ActivityProfile,
    AuthorEngagement,
    AuthorPreference,
    Book,
    BookStatistics,
    GenrePreference,
    InteractionEvent,
    ReadingProgress,
    WritingProgress,
)
from feedrank.domain.exceptions import ProfileConflictError
from feedrank.domain.repositories import IActivityProfileRepository, IBookRepository
from feedrank.infrastructure.database.models import (
    ActivityProfileModel,
    BookCompletionModel,
    BookModel,
)

# unscored books sort after every scored one
_QUALITY_ORDER = func.coalesce(BookModel.quality_score, -1)


def _visible():
    return (BookModel.status == "published") & (BookModel.is_public.is_(True))


# ---------------------------------------------------------------------------
# Book Repository
# ---------------------------------------------------------------------------
class BookRepository(IBookRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def rollback(self) -> None:
        await self.session.rollback()

    async def get_by_id(self, book_id: str) -> Optional[Book]:
        result = await self.session.execute(select(BookModel).where(BookModel.id == book_id))
        db_book = result.scalar_one_or_none()
        return self._to_entity(db_book) if db_book else None

    async def get_many(self, book_ids: list[str]) -> dict[str, Book]:
        if not book_ids:
            return {}
        result = await self.session.execute(
            select(BookModel).where(BookModel.id.in_(set(book_ids)))
        )
        return {m.id: self._to_entity(m) for m in result.scalars().all()}

    async def list_published(self, exclude_author_id: Optional[str] = None) -> list[Book]:
        query = select(BookModel).where(_visible())
        if exclude_author_id:
            query = query.where(BookModel.author_id != exclude_author_id)
        result = await self.session.execute(query.order_by(BookModel.id))
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_trending(self, limit: int = 20) -> list[Book]:
        result = await self.session.execute(
            select(BookModel)
            .where(_visible())
            .order_by(
                BookModel.views.desc(),
                BookModel.purchases.desc(),
                _QUALITY_ORDER.desc(),
                BookModel.id,
            )
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_new_releases(
        self, published_since: datetime, min_quality: float, limit: int = 20
    ) -> list[Book]:
        result = await self.session.execute(
            select(BookModel)
            .where(
                _visible(),
                BookModel.published_at >= published_since,
                or_(BookModel.quality_score.is_(None), BookModel.quality_score >= min_quality),
            )
            .order_by(BookModel.published_at.desc(), BookModel.id)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_by_genre(self, genre: str, limit: int = 20) -> list[Book]:
        result = await self.session.execute(
            select(BookModel)
            .where(
                _visible(),
                func.lower(BookModel.genre).contains(genre.lower(), autoescape=True),
            )
            .order_by(_QUALITY_ORDER.desc(), BookModel.views.desc(), BookModel.id)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_same_genre(self, book: Book, limit: int = 10) -> list[Book]:
        result = await self.session.execute(
            select(BookModel)
            .where(_visible(), BookModel.genre == book.genre, BookModel.id != book.id)
            .order_by(_QUALITY_ORDER.desc(), BookModel.views.desc(), BookModel.id)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_content_candidates(self, book: Book, limit: int = 100) -> list[Book]:
        # tag overlap over a JSON column is not portable across backends, so
        # the overlap test runs here over the visible catalog
        result = await self.session.execute(
            select(BookModel)
            .where(_visible(), BookModel.id != book.id)
            .order_by(BookModel.id)
        )
        genre = (book.genre or "").lower()
        tags = {t.lower() for t in book.tags or []}
        candidates = []
        for model in result.scalars().all():
            same_genre = bool(genre) and (model.genre or "").lower() == genre
            shares_tag = bool(tags & {t.lower() for t in model.tags or []})
            if same_genre or shares_tag:
                candidates.append(self._to_entity(model))
                if len(candidates) >= limit:
                    break
        return candidates

    async def list_exploration(
        self, excluded_genres: set[str], min_quality: float, limit: int
    ) -> list[Book]:
        query = select(BookModel).where(_visible(), BookModel.quality_score >= min_quality)
        if excluded_genres:
            query = query.where(func.lower(BookModel.genre).not_in(excluded_genres))
        result = await self.session.execute(
            query.order_by(_QUALITY_ORDER.desc(), BookModel.views.desc(), BookModel.id).limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def list_drafts(self, author_id: str, limit: Optional[int] = None) -> list[Book]:
        result = await self.session.execute(
            select(BookModel)
            .where(BookModel.author_id == author_id, BookModel.status == "draft")
            .order_by(BookModel.updated_at.desc(), BookModel.id)
            .limit(limit)
        )
        return [self._to_entity(m) for m in result.scalars().all()]

    async def author_engagement(self, limit: int = 10) -> list[AuthorEngagement]:
        result = await self.session.execute(
            select(
                BookModel.author_id,
                func.max(BookModel.author_name),
                func.count(BookModel.id),
                func.sum(BookModel.views),
                func.sum(BookModel.purchases),
                func.avg(BookModel.quality_score),
            )
            .where(_visible())
            .group_by(BookModel.author_id)
        )
        authors = []
        for author_id, name, books, views, purchases, avg_quality in result.all():
            views = int(views or 0)
            purchases = int(purchases or 0)
            avg_quality = float(avg_quality) if avg_quality is not None else None
            authors.append(
                AuthorEngagement(
                    author_id=author_id,
                    author_name=name or "Unknown",
                    total_books=books,
                    total_views=views,
                    total_purchases=purchases,
                    avg_quality=avg_quality,
                    engagement_score=(
                        books * 10
                        + views * 0.1
                        + purchases * 5
                        + (avg_quality if avg_quality is not None else 50) * 0.5
                    ),
                )
            )
        authors.sort(key=lambda a: (-a.engagement_score, a.author_id))
        return authors[:limit]

    @staticmethod
    def _to_entity(model: BookModel) -> Book:
        return Book(
            id=model.id,
            title=model.title,
            genre=model.genre,
            author_id=model.author_id,
            author_name=model.author_name or "",
            tags=list(model.tags or []),
            quality_score=model.quality_score,
            statistics=BookStatistics(
                views=model.views or 0,
                purchases=model.purchases or 0,
                total_reviews=model.total_reviews or 0,
                average_rating=model.average_rating or 0.0,
                word_count=model.word_count or 0,
            ),
            status=model.status,
            is_public=model.is_public,
            published_at=model.published_at,
            target_audience=model.target_audience,
            age_rating=model.age_rating,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )


# ---------------------------------------------------------------------------
# Activity profile documents
# ---------------------------------------------------------------------------
# Nested profile records are stored as JSON lists of plain dicts; pydantic
# validates them back into the domain dataclasses.
_GENRE_PREFERENCES = TypeAdapter(list[GenrePreference])
_AUTHOR_PREFERENCES = TypeAdapter(list[AuthorPreference])
_INTERACTION_EVENTS = TypeAdapter(list[InteractionEvent])
_READING_HISTORY = TypeAdapter(list[ReadingProgress])
_WRITING_PROGRESS = TypeAdapter(list[WritingProgress])


def _documents(profile: ActivityProfile) -> dict[str, Any]:
    return {
        "genre_preferences": _GENRE_PREFERENCES.dump_python(
            list(profile.genre_preferences.values()), mode="json"
        ),
        "author_preferences": _AUTHOR_PREFERENCES.dump_python(
            list(profile.author_preferences.values()), mode="json"
        ),
        "interaction_events": _INTERACTION_EVENTS.dump_python(
            profile.interaction_events, mode="json"
        ),
        "reading_history": _READING_HISTORY.dump_python(
            list(profile.reading_history.values()), mode="json"
        ),
        "writing_progress": _WRITING_PROGRESS.dump_python(
            list(profile.writing_progress.values()), mode="json"
        ),
        "currently_reading": list(profile.currently_reading),
        "completed_books": list(profile.completed_books),
        "abandoned_books": list(profile.abandoned_books),
        "currently_writing": list(profile.currently_writing),
        "completed_writing": list(profile.completed_writing),
        "total_books_read": profile.total_books_read,
        "total_books_written": profile.total_books_written,
        "total_reading_time": profile.total_reading_time,
        "total_writing_time": profile.total_writing_time,
        "last_active_at": profile.last_active_at,
        "current_streak": profile.current_streak,
        "longest_streak": profile.longest_streak,
        "last_streak_date": profile.last_streak_date,
        "updated_at": profile.updated_at,
    }


# ---------------------------------------------------------------------------
# Activity Profile Repository
# ---------------------------------------------------------------------------
class ActivityProfileRepository(IActivityProfileRepository):

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str) -> Optional[ActivityProfile]:
        result = await self.session.execute(
            select(ActivityProfileModel)
            .where(ActivityProfileModel.user_id == user_id)
            .execution_options(populate_existing=True)
        )
        db_profile = result.scalar_one_or_none()
        return self._to_entity(db_profile) if db_profile else None

    async def get_many(self, user_ids: list[str]) -> dict[str, ActivityProfile]:
        if not user_ids:
            return {}
        result = await self.session.execute(
            select(ActivityProfileModel)
            .where(ActivityProfileModel.user_id.in_(set(user_ids)))
            .execution_options(populate_existing=True)
        )
        return {m.user_id: self._to_entity(m) for m in result.scalars().all()}

    async def save(self, profile: ActivityProfile) -> ActivityProfile:
        new_version = profile.version + 1
        values = _documents(profile)
        try:
            if profile.version == 0:
                self.session.add(
                    ActivityProfileModel(
                        user_id=profile.user_id,
                        version=new_version,
                        created_at=profile.created_at,
                        **values,
                    )
                )
                await self.session.flush()
            else:
                result = await self.session.execute(
                    update(ActivityProfileModel)
                    .where(
                        ActivityProfileModel.user_id == profile.user_id,
                        ActivityProfileModel.version == profile.version,
                    )
                    .values(version=new_version, **values)
                )
                if result.rowcount != 1:
                    raise ProfileConflictError(profile.user_id, profile.version)
            await self._sync_completions(profile)
            await self.session.commit()
        except IntegrityError as exc:
            await self.session.rollback()
            raise ProfileConflictError(profile.user_id, profile.version) from exc
        except ProfileConflictError:
            await self.session.rollback()
            raise
        return replace(profile, version=new_version)

    async def completed_sets(self, exclude_user_id: Optional[str] = None) -> dict[str, set[str]]:
        query = select(BookCompletionModel.user_id, BookCompletionModel.book_id)
        if exclude_user_id:
            query = query.where(BookCompletionModel.user_id != exclude_user_id)
        result = await self.session.execute(
            query.order_by(BookCompletionModel.user_id, BookCompletionModel.book_id)
        )
        sets: dict[str, set[str]] = {}
        for user_id, book_id in result.all():
            sets.setdefault(user_id, set()).add(book_id)
        return sets

    async def completers_of(self, book_id: str) -> list[str]:
        result = await self.session.execute(
            select(BookCompletionModel.user_id)
            .where(BookCompletionModel.book_id == book_id)
            .order_by(BookCompletionModel.user_id)
        )
        return list(result.scalars().all())

    async def reader_counts(self, book_ids: list[str]) -> dict[str, int]:
        if not book_ids:
            return {}
        result = await self.session.execute(
            select(BookCompletionModel.book_id, func.count(BookCompletionModel.user_id))
            .where(BookCompletionModel.book_id.in_(set(book_ids)))
            .group_by(BookCompletionModel.book_id)
        )
        return {book_id: count for book_id, count in result.all()}

    async def _sync_completions(self, profile: ActivityProfile) -> None:
        result = await self.session.execute(
            select(BookCompletionModel.book_id).where(
                BookCompletionModel.user_id == profile.user_id
            )
        )
        stored = set(result.scalars().all())
        wanted = set(profile.completed_books)

        removed = stored - wanted
        if removed:
            await self.session.execute(
                delete(BookCompletionModel).where(
                    BookCompletionModel.user_id == profile.user_id,
                    BookCompletionModel.book_id.in_(removed),
                )
            )
        for book_id in sorted(wanted - stored):
            self.session.add(
                BookCompletionModel(
                    user_id=profile.user_id, book_id=book_id, completed_at=profile.updated_at
                )
            )

    @staticmethod
    def _to_entity(model: ActivityProfileModel) -> ActivityProfile:
        genres = _GENRE_PREFERENCES.validate_python(model.genre_preferences or [])
        authors = _AUTHOR_PREFERENCES.validate_python(model.author_preferences or [])
        reading = _READING_HISTORY.validate_python(model.reading_history or [])
        writing = _WRITING_PROGRESS.validate_python(model.writing_progress or [])
        return ActivityProfile(
            user_id=model.user_id,
            genre_preferences={p.genre.lower(): p for p in genres},
            author_preferences={p.author_id: p for p in authors},
            interaction_events=_INTERACTION_EVENTS.validate_python(model.interaction_events or []),
            reading_history={p.book_id: p for p in reading},
            writing_progress={p.book_id: p for p in writing},
            currently_reading=list(model.currently_reading or []),
            completed_books=list(model.completed_books or []),
            abandoned_books=list(model.abandoned_books or []),
            currently_writing=list(model.currently_writing or []),
            completed_writing=list(model.completed_writing or []),
            total_books_read=model.total_books_read,
            total_books_written=model.total_books_written,
            total_reading_time=model.total_reading_time,
            total_writing_time=model.total_writing_time,
            last_active_at=model.last_active_at,
            current_streak=model.current_streak,
            longest_streak=model.longest_streak,
            last_streak_date=model.last_streak_date,
            version=model.version,
            created_at=model.created_at,
            updated_at=model.updated_at,
        )

"""
SQLAlchemy-backed relational store. Accepts any SQLAlchemy URL (Postgres in
production, SQLite for tests).
"""

from __future__ import annotations

import time
from typing import Dict, Optional

from sqlalchemy import (
    Column,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    create_engine,
    delete,
    func,
    or_,
    select,
    update,
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, declarative_base, sessionmaker

from stories_backend.db import CATEGORY_SEARCH_LIMIT, SORTABLE_COLUMNS, STORY_SEARCH_LIMIT
from stories_backend.errors import ConflictError, NotFoundError, QuotaExceededError
from stories_backend.records import (
    Category,
    Chapter,
    ChoiceGroup,
    Slide,
    Story,
    StoryStatus,
)

Base = declarative_base()


class CategoryRow(Base):
    __tablename__ = "categories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), nullable=False, unique=True)
    name = Column(String, nullable=False, unique=True)
    image_url = Column(String, nullable=False, default="")
    dominant_color = Column(String(7), nullable=False)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class StoryRow(Base):
    __tablename__ = "stories"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), nullable=False, unique=True)
    title = Column(String, nullable=False, index=True)
    description = Column(Text, nullable=False)
    thumbnail_url = Column(String, nullable=False, default="")
    dominant_color = Column(String(7), nullable=False)
    category_id = Column(
        Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String, nullable=False, default="", index=True)
    status = Column(String, nullable=False, index=True)
    slide_count = Column(Integer, nullable=False, default=0)
    created_at = Column(Float, nullable=False, index=True)
    updated_at = Column(Float, nullable=False)


class ChapterRow(Base):
    __tablename__ = "chapters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), nullable=False, unique=True)
    story_id = Column(
        Integer, ForeignKey("stories.id", ondelete="CASCADE"), nullable=False, index=True
    )
    slide_count = Column(Integer, nullable=False, default=0)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class SlideRow(Base):
    __tablename__ = "slides"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), nullable=False, unique=True)
    story_id = Column(
        Integer, ForeignKey("stories.id", ondelete="CASCADE"), nullable=True, index=True
    )
    chapter_id = Column(
        Integer, ForeignKey("chapters.id", ondelete="CASCADE"), nullable=True, index=True
    )
    image_url = Column(String, nullable=False, default="")
    audio_url = Column(String, nullable=False, default="")
    content = Column(Text, nullable=False, default="")
    sequence = Column(Integer, nullable=False, index=True)
    created_at = Column(Float, nullable=False)
    updated_at = Column(Float, nullable=False)


class _ChoiceColumns:
    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(String, nullable=False, index=True)


class UserChoiceStoryRow(_ChoiceColumns, Base):
    __tablename__ = "user_choice_stories"
    __table_args__ = (UniqueConstraint("user_id", "category_id"),)

    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)


class UserChoiceDakwahRow(_ChoiceColumns, Base):
    __tablename__ = "user_choice_dakwahs"
    __table_args__ = (UniqueConstraint("user_id", "category_id"),)

    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)


class UserChoiceHadistRow(_ChoiceColumns, Base):
    __tablename__ = "user_choice_hadists"
    __table_args__ = (UniqueConstraint("user_id", "category_id"),)

    category_id = Column(Integer, ForeignKey("categories.id", ondelete="CASCADE"), nullable=False)


CHOICE_ROWS = {
    ChoiceGroup.STORY: UserChoiceStoryRow,
    ChoiceGroup.DAKWAH: UserChoiceDakwahRow,
    ChoiceGroup.HADIST: UserChoiceHadistRow,
}


def _escape_like(query: str) -> str:
    return query.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SqlDbClient:
    def __init__(self, database_url: str):
        if not database_url:
            raise ValueError("DATABASE_URL is required for SqlDbClient")
        self.engine = create_engine(
            database_url,
            future=True,
            pool_pre_ping=True,
            pool_recycle=1800,
        )
        self.Session = sessionmaker(
            bind=self.engine, class_=Session, expire_on_commit=False, future=True
        )
        Base.metadata.create_all(self.engine)

    # Row -> record

    def _to_category(self, row: CategoryRow) -> Category:
        return Category(
            id=row.id,
            uuid=row.uuid,
            name=row.name,
            image_url=row.image_url,
            dominant_color=row.dominant_color,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_slide(self, row: SlideRow) -> Slide:
        return Slide(
            id=row.id,
            uuid=row.uuid,
            story_id=row.story_id,
            chapter_id=row.chapter_id,
            image_url=row.image_url,
            audio_url=row.audio_url,
            content=row.content,
            sequence=row.sequence,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _slides(self, session: Session, *, story_id=None, chapter_id=None) -> list[Slide]:
        stmt = select(SlideRow)
        if story_id is not None:
            stmt = stmt.where(SlideRow.story_id == story_id)
        else:
            stmt = stmt.where(SlideRow.chapter_id == chapter_id)
        stmt = stmt.order_by(SlideRow.sequence.asc(), SlideRow.id.asc())
        return [self._to_slide(row) for row in session.execute(stmt).scalars()]

    def _to_chapter(self, session: Session, row: ChapterRow, story_uuid: str = "") -> Chapter:
        if not story_uuid:
            story_uuid = session.execute(
                select(StoryRow.uuid).where(StoryRow.id == row.story_id)
            ).scalar_one_or_none() or ""
        return Chapter(
            id=row.id,
            uuid=row.uuid,
            story_id=row.story_id,
            story_uuid=story_uuid,
            slide_count=row.slide_count,
            slides=self._slides(session, chapter_id=row.id),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )

    def _to_story(self, session: Session, row: StoryRow, *, with_children: bool) -> Story:
        category_row = session.get(CategoryRow, row.category_id)
        story = Story(
            id=row.id,
            uuid=row.uuid,
            title=row.title,
            description=row.description,
            thumbnail_url=row.thumbnail_url,
            dominant_color=row.dominant_color,
            category_id=row.category_id,
            user_id=row.user_id,
            status=StoryStatus(row.status),
            slide_count=row.slide_count,
            category=self._to_category(category_row) if category_row else None,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
        if with_children:
            story.slides = self._slides(session, story_id=row.id)
            chapter_rows = session.execute(
                select(ChapterRow).where(ChapterRow.story_id == row.id).order_by(ChapterRow.id)
            ).scalars()
            story.chapters = [self._to_chapter(session, c, row.uuid) for c in chapter_rows]
        return story

    # Categories

    def create_category(self, category: Category) -> Category:
        now = time.time()
        with self.Session() as session:
            row = CategoryRow(
                uuid=category.uuid,
                name=category.name,
                image_url=category.image_url,
                dominant_color=category.dominant_color,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError(f"category '{category.name}' already exists") from exc
            return self._to_category(row)

    def get_category_by_uuid(self, uuid: str) -> Optional[Category]:
        with self.Session() as session:
            row = session.execute(
                select(CategoryRow).where(CategoryRow.uuid == uuid)
            ).scalar_one_or_none()
            return self._to_category(row) if row else None

    def get_category_by_name(self, name: str) -> Optional[Category]:
        with self.Session() as session:
            row = session.execute(
                select(CategoryRow).where(CategoryRow.name == name)
            ).scalar_one_or_none()
            return self._to_category(row) if row else None

    def list_categories(self) -> list[Category]:
        with self.Session() as session:
            rows = session.execute(select(CategoryRow).order_by(CategoryRow.id.asc())).scalars()
            return [self._to_category(row) for row in rows]

    def search_categories(self, query: str, limit: int = CATEGORY_SEARCH_LIMIT) -> list[Category]:
        pattern = f"%{_escape_like(query)}%"
        with self.Session() as session:
            rows = session.execute(
                select(CategoryRow)
                .where(CategoryRow.name.ilike(pattern, escape="\\"))
                .order_by(CategoryRow.id.asc())
                .limit(limit)
            ).scalars()
            return [self._to_category(row) for row in rows]

    def update_category(self, category: Category) -> Category:
        with self.Session() as session:
            row = session.get(CategoryRow, category.id)
            if not row:
                raise NotFoundError("Category", category.uuid)
            row.name = category.name
            row.image_url = category.image_url
            row.dominant_color = category.dominant_color
            row.updated_at = time.time()
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise ConflictError(f"category '{category.name}' already exists") from exc
            return self._to_category(row)

    def _delete_stories(self, session: Session, story_ids) -> None:
        chapter_ids = select(ChapterRow.id).where(ChapterRow.story_id.in_(story_ids))
        session.execute(
            delete(SlideRow).where(
                or_(SlideRow.story_id.in_(story_ids), SlideRow.chapter_id.in_(chapter_ids))
            )
        )
        session.execute(delete(ChapterRow).where(ChapterRow.story_id.in_(story_ids)))
        session.execute(delete(StoryRow).where(StoryRow.id.in_(story_ids)))

    def delete_category(self, uuid: str) -> bool:
        with self.Session() as session:
            row = session.execute(
                select(CategoryRow).where(CategoryRow.uuid == uuid)
            ).scalar_one_or_none()
            if not row:
                return False
            story_ids = select(StoryRow.id).where(StoryRow.category_id == row.id)
            self._delete_stories(session, story_ids)
            for choice_row in CHOICE_ROWS.values():
                session.execute(delete(choice_row).where(choice_row.category_id == row.id))
            session.delete(row)
            session.commit()
            return True

    # Stories

    def check_duplicate_story(self, title: str, description: str) -> bool:
        with self.Session() as session:
            count = session.execute(
                select(func.count(StoryRow.id)).where(
                    StoryRow.title == title, StoryRow.description == description
                )
            ).scalar_one()
            return count > 0

    def create_story(self, story: Story) -> Story:
        now = time.time()
        with self.Session() as session:
            if not session.get(CategoryRow, story.category_id):
                raise NotFoundError("Category")
            row = StoryRow(
                uuid=story.uuid,
                title=story.title,
                description=story.description,
                thumbnail_url=story.thumbnail_url,
                dominant_color=story.dominant_color,
                category_id=story.category_id,
                user_id=story.user_id,
                status=story.status.value,
                slide_count=0,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            return self._to_story(session, row, with_children=False)

    def get_story_by_uuid(self, uuid: str) -> Optional[Story]:
        with self.Session() as session:
            row = session.execute(
                select(StoryRow).where(StoryRow.uuid == uuid)
            ).scalar_one_or_none()
            if not row:
                return None
            return self._to_story(session, row, with_children=True)

    def list_stories(
        self, page: int, limit: int, sort_column: str, descending: bool
    ) -> list[Story]:
        if sort_column not in SORTABLE_COLUMNS:
            raise ValueError(f"unsupported sort column: {sort_column}")
        column = getattr(StoryRow, sort_column)
        order = (column.desc(), StoryRow.id.desc()) if descending else (column.asc(), StoryRow.id.asc())
        with self.Session() as session:
            rows = session.execute(
                select(StoryRow).order_by(*order).limit(limit).offset((page - 1) * limit)
            ).scalars().all()
            return [self._to_story(session, row, with_children=False) for row in rows]

    def list_stories_by_category(self, category_id: int) -> list[Story]:
        with self.Session() as session:
            rows = session.execute(
                select(StoryRow).where(StoryRow.category_id == category_id).order_by(StoryRow.id)
            ).scalars().all()
            return [self._to_story(session, row, with_children=True) for row in rows]

    def search_stories(self, query: str, limit: int = STORY_SEARCH_LIMIT) -> list[Story]:
        pattern = f"%{_escape_like(query)}%"
        with self.Session() as session:
            rows = session.execute(
                select(StoryRow)
                .where(
                    or_(
                        StoryRow.title.ilike(pattern, escape="\\"),
                        StoryRow.description.ilike(pattern, escape="\\"),
                    )
                )
                .order_by(StoryRow.id.asc())
                .limit(limit)
            ).scalars().all()
            return [self._to_story(session, row, with_children=False) for row in rows]

    def update_story(self, story: Story) -> Story:
        with self.Session() as session:
            row = session.get(StoryRow, story.id)
            if not row:
                raise NotFoundError("Story", story.uuid)
            if not session.get(CategoryRow, story.category_id):
                raise NotFoundError("Category")
            row.title = story.title
            row.description = story.description
            row.thumbnail_url = story.thumbnail_url
            row.dominant_color = story.dominant_color
            row.category_id = story.category_id
            row.status = story.status.value
            row.updated_at = time.time()
            session.commit()
            return self._to_story(session, row, with_children=True)

    def delete_story(self, uuid: str) -> bool:
        with self.Session() as session:
            story_id = session.execute(
                select(StoryRow.id).where(StoryRow.uuid == uuid)
            ).scalar_one_or_none()
            if story_id is None:
                return False
            self._delete_stories(session, [story_id])
            session.commit()
            return True

    # Chapters

    def create_chapter(self, chapter: Chapter) -> Chapter:
        now = time.time()
        with self.Session() as session:
            story = session.get(StoryRow, chapter.story_id)
            if not story:
                raise NotFoundError("Story")
            row = ChapterRow(
                uuid=chapter.uuid,
                story_id=chapter.story_id,
                slide_count=0,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.commit()
            return self._to_chapter(session, row, story.uuid)

    def get_chapter_by_uuid(self, uuid: str) -> Optional[Chapter]:
        with self.Session() as session:
            row = session.execute(
                select(ChapterRow).where(ChapterRow.uuid == uuid)
            ).scalar_one_or_none()
            return self._to_chapter(session, row) if row else None

    def delete_chapter(self, uuid: str) -> bool:
        with self.Session() as session:
            row = session.execute(
                select(ChapterRow).where(ChapterRow.uuid == uuid)
            ).scalar_one_or_none()
            if not row:
                return False
            session.execute(delete(SlideRow).where(SlideRow.chapter_id == row.id))
            session.delete(row)
            session.commit()
            return True

    # Slides

    def count_slides(
        self, *, story_id: Optional[int] = None, chapter_id: Optional[int] = None
    ) -> int:
        if story_id is not None:
            stmt = select(StoryRow.slide_count).where(StoryRow.id == story_id)
        else:
            stmt = select(ChapterRow.slide_count).where(ChapterRow.id == chapter_id)
        with self.Session() as session:
            return session.execute(stmt).scalar_one_or_none() or 0

    def create_slide(self, slide: Slide, limit: int) -> Slide:
        """Guarded insert: lock the parent, re-check the quota, insert, bump the count."""
        if (slide.story_id is None) == (slide.chapter_id is None):
            raise ValueError("slide needs exactly one parent")
        if slide.story_id is not None:
            parent_model, parent_id, resource = StoryRow, slide.story_id, "Story"
        else:
            parent_model, parent_id, resource = ChapterRow, slide.chapter_id, "Chapter"

        now = time.time()
        with self.Session() as session:
            parent = session.execute(
                select(parent_model).where(parent_model.id == parent_id).with_for_update()
            ).scalar_one_or_none()
            if not parent:
                raise NotFoundError(resource)
            if parent.slide_count >= limit:
                raise QuotaExceededError(limit)
            row = SlideRow(
                uuid=slide.uuid,
                story_id=slide.story_id,
                chapter_id=slide.chapter_id,
                image_url=slide.image_url,
                audio_url=slide.audio_url,
                content=slide.content,
                sequence=slide.sequence,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            session.execute(
                update(parent_model)
                .where(parent_model.id == parent_id)
                .values(slide_count=parent_model.slide_count + 1, updated_at=now)
            )
            session.commit()
            return self._to_slide(row)

    def get_slide_by_uuid(self, uuid: str) -> Optional[Slide]:
        with self.Session() as session:
            row = session.execute(
                select(SlideRow).where(SlideRow.uuid == uuid)
            ).scalar_one_or_none()
            return self._to_slide(row) if row else None

    # Preferences

    def replace_user_choices(
        self, user_id: str, choices: Dict[ChoiceGroup, list[int]]
    ) -> None:
        with self.Session() as session:
            for choice_row in CHOICE_ROWS.values():
                session.execute(delete(choice_row).where(choice_row.user_id == user_id))
            for group, category_ids in choices.items():
                choice_row = CHOICE_ROWS[group]
                session.add_all(
                    choice_row(user_id=user_id, category_id=category_id)
                    for category_id in category_ids
                )
            try:
                session.commit()
            except IntegrityError as exc:
                session.rollback()
                raise NotFoundError("Category") from exc

    def list_user_choices(self, user_id: str) -> Dict[ChoiceGroup, list[Category]]:
        result: Dict[ChoiceGroup, list[Category]] = {}
        with self.Session() as session:
            for group, choice_row in CHOICE_ROWS.items():
                rows = session.execute(
                    select(CategoryRow)
                    .join(choice_row, choice_row.category_id == CategoryRow.id)
                    .where(choice_row.user_id == user_id)
                    .order_by(choice_row.id.asc())
                ).scalars()
                result[group] = [self._to_category(row) for row in rows]
        return result

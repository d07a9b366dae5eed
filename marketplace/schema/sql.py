from __future__ import annotations

import datetime
import uuid

from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, ForeignKey, Integer, String, Table, Text, UniqueConstraint, func
from sqlalchemy import Enum as SAEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from marketplace.core.database import Base
from marketplace.policy.access import PurchaseStatus, Role


def _new_id() -> str:
  return str(uuid.uuid4())


lesson_tags = Table(
  "lesson_tags",
  Base.metadata,
  Column("lesson_id", ForeignKey("lessons.id", ondelete="CASCADE"), primary_key=True),
  Column("tag_id", ForeignKey("tags.id", ondelete="CASCADE"), primary_key=True),
)


class User(Base):
  __tablename__ = "users"

  # Firebase uid doubles as the primary key so claims map straight onto rows.
  id: Mapped[str] = mapped_column(String, primary_key=True)
  email: Mapped[str | None] = mapped_column(String, unique=True, index=True, nullable=True)
  name: Mapped[str | None] = mapped_column(String, nullable=True)
  role: Mapped[Role] = mapped_column(SAEnum(Role, name="user_role"), default=Role.STUDENT, nullable=False)
  stripe_customer_id: Mapped[str | None] = mapped_column(String, nullable=True)
  stripe_account_id: Mapped[str | None] = mapped_column(String, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

  lessons: Mapped[list[Lesson]] = relationship("Lesson", back_populates="instructor")


class Lesson(Base):
  __tablename__ = "lessons"

  id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
  title: Mapped[str] = mapped_column(String(200), nullable=False)
  description: Mapped[str | None] = mapped_column(Text, nullable=True)
  price: Mapped[int] = mapped_column(Integer, nullable=False)
  category: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)
  thumbnail_url: Mapped[str | None] = mapped_column(String, nullable=True)
  published: Mapped[bool] = mapped_column(Boolean, default=False, server_default="false", nullable=False, index=True)
  instructor_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
  updated_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

  instructor: Mapped[User] = relationship("User", back_populates="lessons")
  purchases: Mapped[list[Purchase]] = relationship("Purchase", back_populates="lesson", passive_deletes=True)
  reviews: Mapped[list[Review]] = relationship("Review", back_populates="lesson", passive_deletes=True)
  tags: Mapped[list[Tag]] = relationship("Tag", secondary=lesson_tags, back_populates="lessons")


class Purchase(Base):
  __tablename__ = "purchases"
  __table_args__ = (UniqueConstraint("user_id", "lesson_id", name="ux_purchases_user_lesson"),)

  id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
  user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
  # Completed purchases block lesson deletion in the service layer; other rows go with the lesson.
  lesson_id: Mapped[str] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
  amount: Mapped[int] = mapped_column(Integer, nullable=False)
  platform_fee: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  instructor_earnings: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
  status: Mapped[PurchaseStatus] = mapped_column(SAEnum(PurchaseStatus, name="purchase_status"), default=PurchaseStatus.PENDING, nullable=False)
  stripe_session_id: Mapped[str | None] = mapped_column(String, nullable=True, unique=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

  lesson: Mapped[Lesson] = relationship("Lesson", back_populates="purchases")


class Review(Base):
  __tablename__ = "reviews"
  __table_args__ = (
    UniqueConstraint("user_id", "lesson_id", name="ux_reviews_user_lesson"),
    CheckConstraint("rating BETWEEN 1 AND 5", name="ck_reviews_rating_range"),
  )

  id: Mapped[str] = mapped_column(String, primary_key=True, default=_new_id)
  user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
  lesson_id: Mapped[str] = mapped_column(ForeignKey("lessons.id", ondelete="CASCADE"), nullable=False, index=True)
  rating: Mapped[int] = mapped_column(Integer, nullable=False)
  comment: Mapped[str | None] = mapped_column(Text, nullable=True)
  created_at: Mapped[datetime.datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())

  lesson: Mapped[Lesson] = relationship("Lesson", back_populates="reviews")


class Tag(Base):
  __tablename__ = "tags"

  id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
  name: Mapped[str] = mapped_column(String, unique=True, nullable=False)

  lessons: Mapped[list[Lesson]] = relationship("Lesson", secondary=lesson_tags, back_populates="tags")

"""Unit tests for the SQL built by the Postgres lessons repository."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import select
from sqlalchemy.dialects import postgresql

from marketplace.policy.access import SearchFilters, SortDirection, SortField, SortOptions
from marketplace.schema.sql import Lesson
from marketplace.storage.postgres_lessons_repo import PostgresLessonsRepository, _escape_like, _order_by, _search_conditions


def _compile(filters: SearchFilters, sort: SortOptions | None = None) -> str:
  stmt = select(Lesson.id)
  conditions = _search_conditions(filters)
  if conditions:
    stmt = stmt.where(*conditions)
  if sort is not None:
    stmt = stmt.order_by(*_order_by(sort))
  return str(stmt.compile(dialect=postgresql.dialect(), compile_kwargs={"literal_binds": True}))


def test_escape_like_neutralizes_wildcards() -> None:
  assert _escape_like("50%_off\\") == "50\\%\\_off\\\\"
  assert _escape_like("plain") == "plain"


def test_empty_filters_add_no_conditions() -> None:
  assert _search_conditions(SearchFilters()) == []


def test_text_query_searches_title_description_and_category() -> None:
  sql = _compile(SearchFilters(query="kick"))
  assert sql.count("ILIKE") == 3
  assert "'%kick%'" in sql


def test_structured_filters() -> None:
  sql = _compile(SearchFilters(category="skate", instructor_id="U1", min_price=100, max_price=500, published=True))
  assert "lessons.category = 'skate'" in sql
  assert "lessons.instructor_id = 'U1'" in sql
  assert "lessons.price >= 100" in sql
  assert "lessons.price <= 500" in sql
  assert "lessons.published IS true" in sql


def test_order_by_breaks_ties_on_id() -> None:
  sql = _compile(SearchFilters(), SortOptions(SortField.PRICE, SortDirection.ASC))
  assert "ORDER BY lessons.price ASC, lessons.id ASC" in sql
  default = _compile(SearchFilters(), SortOptions())
  assert "ORDER BY lessons.created_at DESC, lessons.id ASC" in default


async def _compiled_get_lesson(*, for_update: bool) -> str:
  session = AsyncMock()
  session.execute.return_value = MagicMock(**{"scalar_one_or_none.return_value": None})
  assert await PostgresLessonsRepository().get_lesson(session, "L1", for_update=for_update) is None
  stmt = session.execute.await_args.args[0]
  return str(stmt.compile(dialect=postgresql.dialect()))


@pytest.mark.anyio
async def test_get_lesson_for_update_locks_the_lesson_row() -> None:
  assert "FOR UPDATE OF lessons" in await _compiled_get_lesson(for_update=True)
  assert "FOR UPDATE" not in await _compiled_get_lesson(for_update=False)

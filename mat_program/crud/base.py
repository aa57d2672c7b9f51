from __future__ import annotations

from typing import Any, Generic, TypeVar

from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession


TModel = TypeVar("TModel")


def _payload(obj: Any) -> dict[str, Any]:
    if obj is None:
        return {}
    if isinstance(obj, BaseModel):
        return obj.model_dump(exclude_unset=True)
    return dict(obj)


class BaseCRUD(Generic[TModel]):
    """Create/lookup helpers shared by the user and guardian tables.

    Nothing here commits; the calling service owns the transaction.
    """

    def __init__(self, model: type[TModel], *, case_insensitive: tuple[str, ...] = ()) -> None:
        self.model = model
        self.case_insensitive = frozenset(case_insensitive)

    async def create(self, session: AsyncSession, *, obj_in: Any) -> TModel:
        data = {k: v for k, v in _payload(obj_in).items() if hasattr(self.model, k)}
        for key in self.case_insensitive & data.keys():
            if isinstance(data[key], str):
                data[key] = data[key].strip().lower()

        db_obj = self.model(**data)  # type: ignore[call-arg]
        session.add(db_obj)
        await session.flush()
        return db_obj

    async def find_one(self, session: AsyncSession, **filters: Any) -> TModel | None:
        q = select(self.model)
        for key, value in filters.items():
            column = getattr(self.model, key)
            if key in self.case_insensitive and isinstance(value, str):
                q = q.where(func.lower(column) == value.strip().lower())
            else:
                q = q.where(column == value)
        r = await session.execute(q.limit(1))
        return r.scalars().first()

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar, Union

T = TypeVar("T")


@dataclass(frozen=True)
class Success(Generic[T]):
    data: T | None = None
    message: str | None = None

    ok = True


@dataclass(frozen=True)
class Failure:
    message: str
    error: BaseException | None = None
    data: dict[str, Any] = field(default_factory=dict)

    ok = False

    @property
    def error_message(self) -> str:
        return str(self.error) if self.error is not None else self.message


ServiceResult = Union[Success[T], Failure]

"""
Policy conditions: a small expression tree rendered into USING / WITH CHECK
clauses and evaluable in Python against a row.

Evaluation follows SQL semantics closely enough for policy checks: a NULL
comparison is not true, so a missing identity or a NULL timestamp never
satisfies an ownership or "after now" test.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping
from uuid import UUID

Row = Mapping[str, Any]


class Condition(ABC):
    """Boolean expression over a single row."""

    @abstractmethod
    def render(self) -> str:
        """SQL text for this condition."""

    @abstractmethod
    def evaluate(self, row: Row, uid: UUID | None, now: datetime) -> bool:
        """True when the condition holds for row as seen by identity uid at time now."""


@dataclass(frozen=True)
class OwnedBy(Condition):
    """Row's owner column equals auth.uid(). Row values may be UUIDs or their string form."""

    column: str = "user_id"
    subselect: bool = True

    def render(self) -> str:
        uid = "(select auth.uid())" if self.subselect else "auth.uid()"
        return f"{uid} = {self.column}"

    def evaluate(self, row: Row, uid: UUID | None, now: datetime) -> bool:
        owner = row.get(self.column)
        return uid is not None and owner is not None and str(owner) == str(uid)


@dataclass(frozen=True)
class IsNull(Condition):
    column: str

    def render(self) -> str:
        return f"{self.column} is null"

    def evaluate(self, row: Row, uid: UUID | None, now: datetime) -> bool:
        return row.get(self.column) is None


@dataclass(frozen=True)
class After(Condition):
    """Column holds a timestamp strictly later than now()."""

    column: str

    def render(self) -> str:
        return f"{self.column} > now()"

    def evaluate(self, row: Row, uid: UUID | None, now: datetime) -> bool:
        value = row.get(self.column)
        return value is not None and value > now


class _Compound(Condition):
    operator = ""

    def __init__(self, *parts: Condition) -> None:
        if len(parts) < 2:
            raise ValueError(f"{type(self).__name__} needs at least two conditions")
        self.parts = parts

    def render(self) -> str:
        rendered = []
        for part in self.parts:
            text = part.render()
            if isinstance(part, _Compound):
                text = f"({text})"
            rendered.append(text)
        return f" {self.operator} ".join(rendered)

    def __eq__(self, other: object) -> bool:
        return type(other) is type(self) and other.parts == self.parts

    def __hash__(self) -> int:
        return hash((type(self), self.parts))

    def __repr__(self) -> str:
        return f"{type(self).__name__}{self.parts!r}"


class AllOf(_Compound):
    operator = "and"

    def evaluate(self, row: Row, uid: UUID | None, now: datetime) -> bool:
        return all(part.evaluate(row, uid, now) for part in self.parts)


class AnyOf(_Compound):
    operator = "or"

    def evaluate(self, row: Row, uid: UUID | None, now: datetime) -> bool:
        return any(part.evaluate(row, uid, now) for part in self.parts)

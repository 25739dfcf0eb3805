"""
Apply the schema catalog to a database, one unit per statement, in order.

State machine: IDLE -> CONNECTING -> APPLYING -> SUCCEEDED | FAILED.
Terminal states never transition again.
"""

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

import asyncpg

from sync_schema.db.session import ConnectResult, connect, scoped
from sync_schema.errors import AlreadyExists, FatalApplyError
from sync_schema.logging_config import get_logger
from sync_schema.schema.units import SchemaUnit

logger = get_logger(__name__)

# Raised by PostgreSQL for an existing relation (42P07) or object such as a policy (42710)
DUPLICATE_ERRORS = (
    asyncpg.exceptions.DuplicateTableError,
    asyncpg.exceptions.DuplicateObjectError,
)

STATEMENT_ERRORS = (asyncpg.PostgresError, asyncpg.InterfaceError, OSError)


class ApplyState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    APPLYING = "applying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


_TRANSITIONS: dict[ApplyState, frozenset[ApplyState]] = {
    ApplyState.IDLE: frozenset({ApplyState.CONNECTING, ApplyState.APPLYING}),
    ApplyState.CONNECTING: frozenset({ApplyState.APPLYING, ApplyState.FAILED}),
    ApplyState.APPLYING: frozenset({ApplyState.SUCCEEDED, ApplyState.FAILED}),
    ApplyState.SUCCEEDED: frozenset(),
    ApplyState.FAILED: frozenset(),
}


@dataclass
class ApplyResult:
    """Outcome of the applying phase."""

    state: ApplyState
    total: int
    applied: list[str] = field(default_factory=list)
    already_exists: list[AlreadyExists] = field(default_factory=list)
    error: FatalApplyError | None = None

    @property
    def ok(self) -> bool:
        return self.state is ApplyState.SUCCEEDED

    @property
    def failed_unit(self) -> str | None:
        return self.error.unit if self.error else None


class Applier:
    """
    Runs each unit of a catalog against one connection.

    With guarded=True units render with existence guards and a duplicate-object
    error is recorded as AlreadyExists instead of stopping the run.
    """

    def __init__(self, units: Iterable[SchemaUnit], *, guarded: bool = False) -> None:
        self.units = list(units)
        self.guarded = guarded
        self.state = ApplyState.IDLE
        self.position = 0

    @property
    def total(self) -> int:
        return len(self.units)

    def _transition(self, target: ApplyState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"invalid transition {self.state.value} -> {target.value}")
        self.state = target

    async def apply(self, conn: asyncpg.Connection) -> ApplyResult:
        """Execute every unit in order; stop at the first fatal failure."""
        self._transition(ApplyState.APPLYING)
        result = ApplyResult(state=self.state, total=self.total)
        for position, unit in enumerate(self.units, start=1):
            self.position = position
            try:
                await conn.execute(unit.render(self.guarded))
            except DUPLICATE_ERRORS as e:
                if not self.guarded:
                    return self._fail(result, unit, e)
                result.already_exists.append(AlreadyExists(unit.name, str(e)))
                logger.warning(
                    "schema_unit_already_exists",
                    unit=unit.name,
                    position=position,
                    total=self.total,
                )
                continue
            except STATEMENT_ERRORS as e:
                return self._fail(result, unit, e)
            result.applied.append(unit.name)
            logger.info(
                "schema_unit_applied", unit=unit.name, position=position, total=self.total
            )
        self._transition(ApplyState.SUCCEEDED)
        result.state = self.state
        logger.info(
            "schema_apply_succeeded",
            applied=len(result.applied),
            already_exists=len(result.already_exists),
        )
        return result

    def _fail(self, result: ApplyResult, unit: SchemaUnit, exc: Exception) -> ApplyResult:
        self._transition(ApplyState.FAILED)
        result.state = self.state
        result.error = FatalApplyError(unit.name, str(exc))
        logger.error(
            "schema_apply_failed",
            unit=unit.name,
            position=self.position,
            total=self.total,
            error=str(exc),
        )
        return result

    async def run(self, url: str, timeout: float = 10.0) -> ConnectResult | ApplyResult:
        """Connect, apply, release. Returns the failed ConnectResult if connecting fails."""
        self._transition(ApplyState.CONNECTING)
        connected = await connect(url, timeout=timeout)
        if not connected.ok:
            self._transition(ApplyState.FAILED)
            return connected
        async with scoped(connected.conn) as conn:
            return await self.apply(conn)

"""
Transactional boundary for aggregate mutations.

Each mutating operation reads its aggregate root under a row lock, validates
against that fresh state, applies its changes and then compare-and-swaps the
aggregate's version counter. Losing the swap means another request committed
first: the whole operation is rolled back and re-run from the read step, so
validation always sees the winner's state.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Optional, TypeVar

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from opsdesk.core.config import get_settings
from opsdesk.core.errors import ConcurrentModification

log = structlog.get_logger()

T = TypeVar("T")


async def compare_and_bump(session: AsyncSession, instance: Any, column: str = "version") -> int:
    """Increment ``instance.<column>`` only if the stored value still matches.

    Raises ConcurrentModification when the row was changed (or deleted) since
    ``instance`` was read. Returns the new version.
    """
    model = type(instance)
    expected = getattr(instance, column)
    result = await session.execute(
        update(model)
        .where(model.id == instance.id, getattr(model, column) == expected)
        .values({column: expected + 1})
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ConcurrentModification(
            f"{model.__name__} {instance.id} was modified concurrently",
            details={"resource": model.__tablename__, "id": str(instance.id), "expected_version": expected},
        )
    set_committed_value(instance, column, expected + 1)
    return expected + 1


async def run_in_transaction(
    session: AsyncSession,
    operation: Callable[[AsyncSession], Awaitable[T]],
    *,
    attempts: Optional[int] = None,
    label: str = "transaction",
) -> T:
    """Run ``operation`` and commit, retrying on lost version swaps.

    Any other exception rolls the session back and propagates unchanged, so a
    failed validation never leaves a partial write behind.
    """
    attempts = attempts or get_settings().max_transaction_attempts
    for attempt in range(1, attempts + 1):
        try:
            result = await operation(session)
            await session.commit()
            return result
        except ConcurrentModification:
            await session.rollback()
            if attempt >= attempts:
                log.warning("transaction.conflict_exhausted", label=label, attempts=attempts)
                raise
            log.info("transaction.retry", label=label, attempt=attempt)
        except Exception:
            await session.rollback()
            raise
    raise AssertionError("unreachable")  # pragma: no cover

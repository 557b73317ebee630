"""
Ordered strategy chains: try strategies in priority order and take the first
that yields usable data.

Strategies are zero-argument coroutine factories, evaluated lazily; once one
is accepted no later strategy is invoked. Source resolution (404 -> next
candidate) and alternate-provider probing (empty -> next endpoint) both run
through first_usable.
"""
from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Iterable, List, Optional, Sequence, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def first_usable(
    strategies: Iterable[Callable[[], Awaitable[T]]],
    *,
    accept: Callable[[T], bool] = bool,
    tolerate: Tuple[Type[BaseException], ...] = (Exception,),
    label: str = "",
) -> Optional[T]:
    """
    Return the first strategy result for which accept() holds, or None.
    Exceptions listed in `tolerate` are logged and the next strategy is
    tried; anything else propagates.
    """
    errors: List[str] = []
    for index, strategy in enumerate(strategies):
        try:
            result = await strategy()
        except tolerate as exc:
            msg = f"#{index}: {type(exc).__name__}: {exc}"
            errors.append(msg)
            logger.debug("Strategy %s %s", label, msg)
            continue
        if accept(result):
            return result
    if errors:
        logger.debug("No usable strategy for %s: %s", label, "; ".join(errors))
    return None


async def first_non_empty(
    strategies: Iterable[Callable[[], Awaitable[Sequence[Any]]]],
    *,
    tolerate: Tuple[Type[BaseException], ...] = (Exception,),
    label: str = "",
) -> List[Any]:
    """First non-empty list among strategies, or [] when all are empty or tolerated failures."""
    result = await first_usable(strategies, accept=lambda rows: bool(rows), tolerate=tolerate, label=label)
    return list(result) if result else []

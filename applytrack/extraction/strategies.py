"""Ordered, named extraction strategies.

Every heuristic field extractor is a list of ``Strategy`` objects tried in
order. The first strategy that returns a non-empty value wins. Strategies
never raise: an exception inside one is logged at DEBUG and treated as
"not found" so the next strategy gets its turn.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, Sequence, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Strategy(Generic[T]):
    """A single named heuristic returning an optional value."""

    name: str
    func: Callable[..., Optional[T]]

    def __call__(self, *args: Any) -> Optional[T]:
        return self.func(*args)


@dataclass(frozen=True)
class Extraction(Generic[T]):
    """Result of running a strategy chain."""

    value: Optional[T] = None
    strategy: Optional[str] = None

    @property
    def found(self) -> bool:
        return self.value is not None


def first_match(strategies: Sequence[Strategy[T]], *args: Any) -> Extraction[T]:
    """Run strategies in order and return the first non-empty value.

    Args:
        strategies: Ordered strategies to try
        *args: Arguments passed to every strategy

    Returns:
        Extraction holding the value and the name of the strategy that found it,
        or an empty Extraction when nothing matched
    """
    for strategy in strategies:
        try:
            value = strategy(*args)
        except Exception as e:
            logger.debug("Strategy %s failed: %s", strategy.name, e)
            continue
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return Extraction(value=value, strategy=strategy.name)
    return Extraction()


def normalize_whitespace(text: Optional[str]) -> str:
    """Collapse runs of whitespace and newlines to single spaces and trim."""
    if not text:
        return ""
    return re.sub(r"\s+", " ", text).strip()

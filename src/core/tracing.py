"""
Tracing: инъекция диагностических событий движков

Движки не пишут в stdout. Каждое диагностическое событие передаётся в
tracer: callable(event, fields). По умолчанию используется logging_tracer,
который пишет в стандартный logging на уровне DEBUG.

Имена событий:
- start_rebalance.input
- auction.input
- auction.values
- auction.progression
- auction.round
- auction.limits
- auction.weights
- auction.prices
- auction.metrics
"""

import logging
from typing import Any, Callable, Mapping, Optional

logger = logging.getLogger(__name__)

Tracer = Callable[[str, Mapping[str, Any]], None]


def logging_tracer(event: str, fields: Mapping[str, Any]) -> None:
    """Запись события в logging (DEBUG)."""
    if not logger.isEnabledFor(logging.DEBUG):
        return
    rendered = " ".join(f"{key}={value}" for key, value in fields.items())
    logger.debug("TRACE event=%s %s", event, rendered)


def null_tracer(event: str, fields: Mapping[str, Any]) -> None:
    """Tracer, игнорирующий все события."""


class RecordingTracer:
    """
    Tracer, сохраняющий события в памяти.

    Используется в тестах и для offline-анализа раундов.
    """

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, event: str, fields: Mapping[str, Any]) -> None:
        self.events.append((event, dict(fields)))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]

    def last(self, event: str) -> Optional[dict[str, Any]]:
        """Поля последнего события с данным именем (или None)."""
        for name, fields in reversed(self.events):
            if name == event:
                return fields
        return None


def resolve_tracer(tracer: Optional[Tracer]) -> Tracer:
    return logging_tracer if tracer is None else tracer

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, List, Sequence, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InputSubscription:
    name: str
    bind: Callable[[], Any]
    unbind: Callable[[Any], None]


class InputSubscriptions:
    """Binds input channels on begin and releases them on close, in reverse order."""

    def __init__(self, subscriptions: Sequence[InputSubscription]) -> None:
        self._subscriptions = list(subscriptions)
        self._bound: List[Tuple[InputSubscription, Any]] = []
        self._active = False

    @property
    def active(self) -> bool:
        return self._active

    @property
    def bound_names(self) -> List[str]:
        return [subscription.name for subscription, _token in self._bound]

    def begin(self) -> None:
        if self._active:
            return
        for subscription in self._subscriptions:
            try:
                token = subscription.bind()
            except Exception:
                logger.exception("Failed to bind input channel: %s", subscription.name)
                continue
            self._bound.append((subscription, token))
        self._active = True
        logger.info("Input channels bound: %s", ", ".join(self.bound_names) or "(none)")

    def close(self) -> None:
        if not self._active:
            return
        while self._bound:
            subscription, token = self._bound.pop()
            try:
                subscription.unbind(token)
            except Exception:
                logger.exception("Failed to unbind input channel: %s", subscription.name)
        self._active = False

    def __enter__(self) -> "InputSubscriptions":
        self.begin()
        return self

    def __exit__(self, exc_type, exc, tb) -> bool:
        self.close()
        return False

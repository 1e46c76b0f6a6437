from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from threading import Lock
from typing import Callable


@dataclass
class BackoffDecision:
    delay_seconds: float
    consecutive_failures: int


class IntegrationBackoffService(ABC):
    @abstractmethod
    def before_request(self, *, integration: str) -> BackoffDecision:
        """Retorna o delay aplicável antes da chamada externa."""

    @abstractmethod
    def register_success(self, *, integration: str) -> None:
        """Zera as falhas consecutivas."""

    @abstractmethod
    def register_failure(self, *, integration: str) -> int:
        """Incrementa as falhas consecutivas e retorna o total atual."""


class InMemoryIntegrationBackoffService(IntegrationBackoffService):
    """Backoff exponencial por integração.

    Sem falha nova por `cooldown_seconds` o contador zera, então uma queda
    antiga não atrasa o primeiro envio depois que a integração voltou.
    """

    def __init__(
        self,
        *,
        threshold: int = 3,
        max_backoff_seconds: float = 8.0,
        cooldown_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.threshold = threshold
        self.max_backoff_seconds = max_backoff_seconds
        self.cooldown_seconds = cooldown_seconds
        self._clock = clock
        self._failures: dict[str, int] = {}
        self._last_failure_at: dict[str, float] = {}
        self._lock = Lock()

    def _expire_if_cooled(self, integration: str) -> None:
        last_failure_at = self._last_failure_at.get(integration)
        if last_failure_at is not None and self._clock() - last_failure_at >= self.cooldown_seconds:
            self._failures.pop(integration, None)
            self._last_failure_at.pop(integration, None)

    def before_request(self, *, integration: str) -> BackoffDecision:
        with self._lock:
            self._expire_if_cooled(integration)
            failures = self._failures.get(integration, 0)
            if failures < self.threshold:
                return BackoffDecision(delay_seconds=0.0, consecutive_failures=failures)

            power = failures - self.threshold
            delay = min((2 ** power), self.max_backoff_seconds)
            return BackoffDecision(delay_seconds=float(delay), consecutive_failures=failures)

    def register_success(self, *, integration: str) -> None:
        with self._lock:
            self._failures.pop(integration, None)
            self._last_failure_at.pop(integration, None)

    def register_failure(self, *, integration: str) -> int:
        with self._lock:
            self._expire_if_cooled(integration)
            failures = self._failures.get(integration, 0) + 1
            self._failures[integration] = failures
            self._last_failure_at[integration] = self._clock()
            return failures

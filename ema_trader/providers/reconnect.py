"""Reconnect delay policies for the market data feed."""
from abc import ABC, abstractmethod


class ReconnectPolicy(ABC):
    def __init__(self) -> None:
        self.attempts = 0

    def next_delay(self) -> float:
        self.attempts += 1
        return self._delay(self.attempts)

    def reset(self) -> None:
        self.attempts = 0

    @abstractmethod
    def _delay(self, attempt: int) -> float:
        pass


class FixedDelayReconnect(ReconnectPolicy):
    """Same delay on every attempt, unbounded retries."""

    def __init__(self, delay: float = 5.0) -> None:
        super().__init__()
        self.delay = delay

    def _delay(self, attempt: int) -> float:
        return self.delay


class ExponentialBackoffReconnect(ReconnectPolicy):
    def __init__(self, base_delay: float = 5.0, max_delay: float = 60.0) -> None:
        super().__init__()
        self.base_delay = base_delay
        self.max_delay = max_delay

    def _delay(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)


def build_reconnect_policy(strategy: str, delay: float, max_delay: float) -> ReconnectPolicy:
    if strategy == "exponential":
        return ExponentialBackoffReconnect(delay, max_delay)
    return FixedDelayReconnect(delay)


__all__ = ["ReconnectPolicy", "FixedDelayReconnect", "ExponentialBackoffReconnect", "build_reconnect_policy"]

import random

import pytest


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingInvoker:
    """Invoker that records route ids and fails for selected routes."""

    def __init__(self, failing=()):
        self.calls = []
        self.failing = set(failing)

    async def __call__(self, route, request):
        self.calls.append(route.id)
        if route.id in self.failing:
            raise ConnectionError(f"{route.id} is down")
        return {"route": route.id}


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def invoker():
    return RecordingInvoker()

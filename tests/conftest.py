import random
from datetime import datetime, timedelta, timezone

import pytest

from combattracker.backend.service import CombatService
from combattracker.backend.store import InMemoryCombatStore


class StepClock:
    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start or datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.step = step

    def __call__(self) -> datetime:
        current = self.now
        self.now = self.now + self.step
        return current


@pytest.fixture
def clock() -> StepClock:
    return StepClock()


@pytest.fixture
def store() -> InMemoryCombatStore:
    return InMemoryCombatStore()


@pytest.fixture
def service(store: InMemoryCombatStore, clock: StepClock) -> CombatService:
    return CombatService(store, clock=clock, rng=random.Random(7))

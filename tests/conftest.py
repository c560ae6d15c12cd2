from __future__ import annotations

import pytest

from camlight.config import Config


class MemoryHostCache:
    """In-memory HostCache; `age` is what load() reports for the stored host."""

    def __init__(self, host: str | None = None, age: float = 0.0) -> None:
        self.host = host
        self.age = age
        self.stored: list[str] = []

    def load(self) -> tuple[str, float] | None:
        if self.host is None:
            return None
        return self.host, self.age

    def store(self, host: str) -> None:
        self.stored.append(host)
        self.host = host
        self.age = 0.0


@pytest.fixture
def memory_cache() -> MemoryHostCache:
    return MemoryHostCache()


@pytest.fixture
def host_config() -> Config:
    """Config with a fixed light host, so no discovery runs."""
    return Config.from_dict({"light": {"host": "key-light.local"}})

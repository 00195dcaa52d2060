"""Abstract base class for Mira agents."""
from __future__ import annotations

import abc
from typing import Any


class Agent(abc.ABC):
    """Base Mira agent; every role runs as a coroutine."""

    def __init__(self, name: str, description: str = "") -> None:
        self.name = name
        self.description = description

    @abc.abstractmethod
    async def run(self, *args: Any, **kwargs: Any) -> Any:
        """Execute the agent and return its result."""

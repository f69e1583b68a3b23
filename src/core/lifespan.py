"""
Lifespan manager for FastAPI.

Startup hooks (database pool, logging banner) register themselves with
``@manager.add`` at import time; the manager enters them in registration
order and merges whatever state each one yields into ``request.state``.
"""

from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any, AsyncIterator, Callable

from fastapi import FastAPI


class LifespanManager:
    """Runs registered lifespan contexts as one FastAPI lifespan."""

    def __init__(self):
        self._lifespans: list[Callable] = []

    @property
    def registered(self) -> list[str]:
        """Names of the registered lifespan contexts, in startup order."""
        return [lifespan.__name__ for lifespan in self._lifespans]

    def add(self, lifespan: Callable) -> Callable:
        """
        Decorator to register a lifespan context.

        Usage:
            @manager.add
            @asynccontextmanager
            async def database_lifespan():
                # startup
                yield {"session_maker": session_maker}
                # shutdown
        """
        if lifespan not in self._lifespans:
            self._lifespans.append(lifespan)
        return lifespan

    @asynccontextmanager
    async def __call__(self, app: FastAPI) -> AsyncIterator[dict[str, Any]]:
        """
        Enter every registered lifespan and yield their merged state.
        Shutdown runs in reverse order when the stack unwinds.
        """
        async with AsyncExitStack() as stack:
            state: dict[str, Any] = {}

            for lifespan in self._lifespans:
                try:
                    context = lifespan(app)
                except TypeError:
                    # Hooks that don't care about the app take no arguments
                    context = lifespan()

                state.update(await stack.enter_async_context(context) or {})

            yield state


manager = LifespanManager()

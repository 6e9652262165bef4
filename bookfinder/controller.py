"""Boundary between input events and the search session."""
import asyncio
import logging
from typing import Callable, Optional, Set

from bookfinder.session import SearchSession, StateListener
from bookfinder.state import SessionState

logger = logging.getLogger(__name__)


class SearchController:
    """
    Drive a SearchSession from text-field and button events.

    The controller keeps the text as typed; the session only ever sees
    it on submit. Submitting while a search is loading is allowed and
    supersedes that search. ``can_submit`` mirrors a disabled button for
    front-ends that prefer to block it instead.
    """

    def __init__(self, session: SearchSession):
        self.session = session
        self._query = ""
        self._tasks: Set[asyncio.Task] = set()

    @property
    def query(self) -> str:
        return self._query

    @property
    def state(self) -> SessionState:
        return self.session.state

    def get_state(self) -> SessionState:
        return self.session.state

    @property
    def can_submit(self) -> bool:
        return bool(self._query.strip()) and not self.session.is_loading

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        return self.session.subscribe(listener)

    def on_query_change(self, text: str):
        self._query = text or ""

    def on_submit(self) -> Optional[asyncio.Task]:
        """
        Submit the current text on the running event loop.

        Returns:
            The scheduled search task, or None for a blank query
        """
        if not self._query.strip():
            return None

        logger.debug(f"Submitting query {self._query!r}")
        task = asyncio.get_running_loop().create_task(self.session.submit(self._query))
        # Keep a reference until the task finishes
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _cancel_tasks(self):
        # A submit scheduled before a clear must not start after it
        for task in self._tasks:
            task.cancel()

    def on_clear(self):
        self._query = ""
        self._cancel_tasks()
        self.session.clear()

    def close(self):
        """Stop every pending search without changing the state."""
        self._cancel_tasks()
        self.session.close()

    async def wait_idle(self):
        """Wait for every submitted search task to finish."""
        while self._tasks:
            pending = list(self._tasks)
            self._tasks.difference_update(pending)
            results = await asyncio.gather(*pending, return_exceptions=True)
            for result in results:
                if isinstance(result, Exception):
                    logger.error(f"Search task failed: {result!r}")

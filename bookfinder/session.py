"""Search session: one authoritative result set per stream of queries.

A session turns submit/clear calls into state transitions::

    Idle --submit--> Loading --+--> Success
      ^                 ^      +--> Empty
      |                 |      +--> Failed
      +----clear--------+--submit (from any state)

Every submit issues a new ``CancellationToken`` and cancels the previous
one. Outcomes are applied only while their token is still the current
one, so a response that outlives its request never reaches the state.
"""
import logging
from typing import Callable, List, Optional

from bookfinder.client import CancellationToken
from bookfinder.mapper import map_item
from bookfinder.models import (
    CatalogItem,
    FetchCancelled,
    FetchFailure,
    FetchSuccess,
    RequestFailed,
    ResultItem,
)
from bookfinder.state import Empty, Failed, Idle, Loading, SessionState, Success

logger = logging.getLogger(__name__)

StateListener = Callable[[SessionState], None]


class SearchSession:
    """Owns the session state and the single in-flight search request."""

    def __init__(
        self,
        client,
        mapper: Callable[[CatalogItem], ResultItem] = map_item
    ):
        """
        Args:
            client: Object with ``async fetch(query, token) -> FetchOutcome``
            mapper: Converts each raw record into a result item
        """
        self.client = client
        self.mapper = mapper
        self._state: SessionState = Idle()
        self._query = ""
        self._sequence = 0
        self._current: Optional[CancellationToken] = None
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def query(self) -> str:
        """Query text of the most recent submit, or "" after a clear."""
        return self._query

    @property
    def is_loading(self) -> bool:
        return isinstance(self._state, Loading)

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        """Call ``listener`` with every new state. Returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: SessionState):
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def _cancel_current(self):
        if self._current is not None:
            if not self._current.cancelled:
                logger.debug(f"Superseding search request #{self._current.sequence}")
            self._current.cancel()
            self._current = None

    def _is_current(self, token: CancellationToken) -> bool:
        return self._current is token and token.sequence == self._sequence

    async def submit(self, query: str):
        """
        Start a search for ``query``, superseding any search in flight.

        Blank queries are ignored. Returns once this request has resolved
        or been superseded. Request failures are reported through the
        state; an unexpected error from the client also moves the session
        to Failed before it propagates.
        """
        query = (query or "").strip()
        if not query:
            return

        self._cancel_current()
        self._sequence += 1
        token = CancellationToken(self._sequence)
        self._current = token
        self._query = query
        self._set_state(Loading(query))

        try:
            outcome = await self.client.fetch(query, token)
        except Exception:
            # Never leave a current request stuck in Loading
            if self._is_current(token):
                self._current = None
                self._set_state(Failed(query, RequestFailed()))
            raise

        if not self._is_current(token):
            logger.debug(f"Discarding outcome of stale search request #{token.sequence}")
            return

        self._current = None

        if isinstance(outcome, FetchCancelled):
            # Only the session cancels tokens, and it always replaces the
            # current one when it does; nothing to apply.
            return
        if isinstance(outcome, FetchFailure):
            logger.warning(f"Search for {query!r} failed: {outcome.error.message}")
            self._set_state(Failed(query, outcome.error))
            return
        if isinstance(outcome, FetchSuccess):
            results = tuple(self.mapper(item) for item in outcome.items)
            if results:
                self._set_state(Success(query, results, outcome.truncated))
            else:
                self._set_state(Empty(query))
            return

        raise TypeError(f"Unexpected fetch outcome: {outcome!r}")

    def clear(self):
        """Cancel any search in flight, forget the query and return to Idle."""
        self._cancel_current()
        # Bump the sequence so nothing issued before the clear can match
        self._sequence += 1
        self._query = ""
        self._set_state(Idle())

    def close(self):
        """Cancel any search in flight without changing the state."""
        self._cancel_current()

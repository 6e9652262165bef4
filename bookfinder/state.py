"""Search session states.

Each state is its own frozen dataclass so that a session is always in
exactly one of them; there are no loading/error/empty flags to keep in
sync.
"""
from dataclasses import dataclass
from typing import Tuple, Union

from bookfinder.models import RequestFailed, ResultItem


@dataclass(frozen=True)
class Idle:
    """No search performed yet, or the session was cleared."""


@dataclass(frozen=True)
class Loading:
    query: str


@dataclass(frozen=True)
class Success:
    query: str
    results: Tuple[ResultItem, ...]
    truncated: bool = False


@dataclass(frozen=True)
class Empty:
    query: str


@dataclass(frozen=True)
class Failed:
    query: str
    reason: RequestFailed

    @property
    def message(self) -> str:
        return self.reason.message


SessionState = Union[Idle, Loading, Success, Empty, Failed]

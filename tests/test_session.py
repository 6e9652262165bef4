"""Tests for the search session state machine."""
import asyncio
from typing import List, NamedTuple

import httpx
import pytest

from bookfinder.client import CancellationToken, CatalogClient
from bookfinder.mapper import UNKNOWN_AUTHOR
from bookfinder.models import (
    CatalogItem,
    FetchCancelled,
    FetchFailure,
    FetchSuccess,
    NetworkUnavailable,
    RequestFailed,
)
from bookfinder.session import SearchSession
from bookfinder.state import Empty, Failed, Idle, Loading, Success


class Call(NamedTuple):
    query: str
    token: CancellationToken
    future: asyncio.Future


class ScriptedClient:
    """Fake catalog client whose responses the test resolves by hand.

    It ignores cancellation on purpose, so a superseded request can still
    "arrive" whenever the test decides.
    """

    def __init__(self):
        self.calls: List[Call] = []

    async def fetch(self, query, token):
        future = asyncio.get_running_loop().create_future()
        self.calls.append(Call(query, token, future))
        return await future

    def resolve(self, index, outcome):
        self.calls[index].future.set_result(outcome)


async def settle():
    for _ in range(10):
        await asyncio.sleep(0)


def found(*titles, truncated=False):
    return FetchSuccess(items=tuple(CatalogItem(title=t) for t in titles), truncated=truncated)


def titles(state):
    return [item.title for item in state.results]


@pytest.mark.asyncio
async def test_initial_state_is_idle():
    session = SearchSession(ScriptedClient())

    assert session.state == Idle()
    assert session.query == ""
    assert not session.is_loading


@pytest.mark.asyncio
@pytest.mark.parametrize("query", ["", "   ", "\t\n", None])
async def test_blank_query_is_ignored(query):
    client = ScriptedClient()
    session = SearchSession(client)

    await session.submit(query)

    assert session.state == Idle()
    assert client.calls == []


@pytest.mark.asyncio
async def test_blank_query_keeps_previous_results():
    client = ScriptedClient()
    session = SearchSession(client)

    task = asyncio.create_task(session.submit("dune"))
    await settle()
    client.resolve(0, found("Dune"))
    await task
    before = session.state

    await session.submit("   ")

    assert session.state is before
    assert len(client.calls) == 1


@pytest.mark.asyncio
async def test_submit_trims_query_and_goes_loading():
    client = ScriptedClient()
    session = SearchSession(client)

    task = asyncio.create_task(session.submit("  dune  "))
    await settle()

    assert session.state == Loading("dune")
    assert session.is_loading
    assert client.calls[0].query == "dune"

    client.resolve(0, found("Dune", "Dune Messiah"))
    await task

    assert isinstance(session.state, Success)
    assert titles(session.state) == ["Dune", "Dune Messiah"]
    assert session.query == "dune"


@pytest.mark.asyncio
async def test_success_carries_truncation_flag():
    client = ScriptedClient()
    session = SearchSession(client)

    task = asyncio.create_task(session.submit("book"))
    await settle()
    client.resolve(0, found("Book 1", truncated=True))
    await task

    assert session.state.truncated


@pytest.mark.asyncio
async def test_zero_items_is_empty():
    client = ScriptedClient()
    session = SearchSession(client)

    task = asyncio.create_task(session.submit("zzzzznotabook"))
    await settle()
    client.resolve(0, found())
    await task

    assert session.state == Empty("zzzzznotabook")


@pytest.mark.asyncio
async def test_failure_is_failed_state():
    client = ScriptedClient()
    session = SearchSession(client)

    task = asyncio.create_task(session.submit("dune"))
    await settle()
    client.resolve(0, FetchFailure(NetworkUnavailable()))
    await task

    assert isinstance(session.state, Failed)
    assert session.state.message == "Network unavailable. Please try again."


@pytest.mark.asyncio
async def test_new_submit_cancels_previous_token():
    client = ScriptedClient()
    session = SearchSession(client)

    first = asyncio.create_task(session.submit("dune"))
    await settle()
    second = asyncio.create_task(session.submit("foundation"))
    await settle()

    assert client.calls[0].token.cancelled
    assert not client.calls[1].token.cancelled
    assert client.calls[1].token.sequence > client.calls[0].token.sequence
    assert session.state == Loading("foundation")

    client.resolve(0, FetchCancelled())
    client.resolve(1, found("Foundation"))
    await asyncio.gather(first, second)

    assert titles(session.state) == ["Foundation"]


@pytest.mark.asyncio
async def test_stale_response_arriving_last_is_discarded():
    client = ScriptedClient()
    session = SearchSession(client)

    first = asyncio.create_task(session.submit("dune"))
    await settle()
    second = asyncio.create_task(session.submit("foundation"))
    await settle()

    client.resolve(1, found("Foundation", "Foundation and Empire"))
    await second
    client.resolve(0, found("Dune"))
    await first

    assert session.state.query == "foundation"
    assert titles(session.state) == ["Foundation", "Foundation and Empire"]


@pytest.mark.asyncio
async def test_stale_failure_arriving_first_is_discarded():
    client = ScriptedClient()
    session = SearchSession(client)

    first = asyncio.create_task(session.submit("dune"))
    await settle()
    second = asyncio.create_task(session.submit("foundation"))
    await settle()

    client.resolve(0, FetchFailure(RequestFailed(500)))
    await first

    assert session.state == Loading("foundation")

    client.resolve(1, found())
    await second

    assert session.state == Empty("foundation")


@pytest.mark.asyncio
async def test_only_latest_of_many_submits_is_observed():
    client = ScriptedClient()
    session = SearchSession(client)
    seen = []
    session.subscribe(seen.append)

    queries = ["d", "du", "dun", "dune"]
    tasks = []
    for query in queries:
        tasks.append(asyncio.create_task(session.submit(query)))
        await settle()

    # Resolve in reverse order; only "dune" may produce a terminal state
    for index in reversed(range(len(queries))):
        client.resolve(index, found(queries[index].upper()))
    await asyncio.gather(*tasks)

    terminal = [state for state in seen if not isinstance(state, Loading)]
    assert terminal == [Success("dune", terminal[0].results)]
    assert titles(session.state) == ["DUNE"]


@pytest.mark.asyncio
async def test_clear_resets_and_cancels_pending_request():
    client = ScriptedClient()
    session = SearchSession(client)

    task = asyncio.create_task(session.submit("dune"))
    await settle()

    session.clear()

    assert session.state == Idle()
    assert session.query == ""
    assert client.calls[0].token.cancelled

    # The stale response still arrives, but changes nothing
    client.resolve(0, found("Dune"))
    await task

    assert session.state == Idle()


@pytest.mark.asyncio
async def test_clear_from_results():
    client = ScriptedClient()
    session = SearchSession(client)

    task = asyncio.create_task(session.submit("dune"))
    await settle()
    client.resolve(0, found("Dune"))
    await task

    session.clear()

    assert session.state == Idle()
    assert session.query == ""


@pytest.mark.asyncio
async def test_submit_after_failure_recovers():
    client = ScriptedClient()
    session = SearchSession(client)

    task = asyncio.create_task(session.submit("dune"))
    await settle()
    client.resolve(0, FetchFailure(RequestFailed(500)))
    await task
    assert isinstance(session.state, Failed)

    task = asyncio.create_task(session.submit("dune"))
    await settle()
    client.resolve(1, found("Dune"))
    await task

    assert isinstance(session.state, Success)


@pytest.mark.asyncio
async def test_close_cancels_without_state_change():
    client = ScriptedClient()
    session = SearchSession(client)

    task = asyncio.create_task(session.submit("dune"))
    await settle()

    session.close()

    assert client.calls[0].token.cancelled
    assert session.state == Loading("dune")

    client.resolve(0, found("Dune"))
    await task

    assert session.state == Loading("dune")


@pytest.mark.asyncio
async def test_subscribers_see_every_transition():
    client = ScriptedClient()
    session = SearchSession(client)
    seen = []
    unsubscribe = session.subscribe(seen.append)

    task = asyncio.create_task(session.submit("dune"))
    await settle()
    client.resolve(0, found())
    await task
    session.clear()

    assert seen == [Loading("dune"), Empty("dune"), Idle()]

    unsubscribe()
    unsubscribe()
    session.clear()

    assert len(seen) == 3


@pytest.mark.asyncio
async def test_custom_mapper_is_used_in_order():
    client = ScriptedClient()
    session = SearchSession(client, mapper=lambda raw: raw.title)

    task = asyncio.create_task(session.submit("dune"))
    await settle()
    client.resolve(0, found("B", "A", "C"))
    await task

    assert session.state.results == ("B", "A", "C")


# End-to-end through the real client with a mocked transport

def catalog_session(handler) -> SearchSession:
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SearchSession(CatalogClient(search_url="https://openlibrary.test/search.json", client=http))


@pytest.mark.asyncio
async def test_end_to_end_dune():
    async def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["title"] == "dune"
        return httpx.Response(
            200,
            json={
                "numFound": 2,
                "docs": [
                    {
                        "key": "/works/OL893415W",
                        "title": "Dune",
                        "author_name": ["Frank Herbert"],
                        "first_publish_year": 1965,
                        "cover_i": 12345
                    },
                    {"title": "Dune Messiah"}
                ]
            }
        )

    session = catalog_session(handler)
    await session.submit("dune")
    await session.client.client.aclose()

    state = session.state
    assert isinstance(state, Success)
    assert not state.truncated
    first, second = state.results
    assert first.cover_url.endswith("12345-L.jpg")
    assert first.authors == "Frank Herbert"
    assert first.year == 1965
    assert second.title == "Dune Messiah"
    assert second.authors == UNKNOWN_AUTHOR
    assert second.cover_url is None
    assert second.year is None


@pytest.mark.asyncio
async def test_end_to_end_no_results():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"numFound": 0, "docs": []})

    session = catalog_session(handler)
    await session.submit("zzzzznotabook")
    await session.client.client.aclose()

    assert session.state == Empty("zzzzznotabook")


@pytest.mark.asyncio
async def test_end_to_end_server_error_then_recovery():
    async def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["title"] == "broken":
            return httpx.Response(500, text="Internal Server Error")
        return httpx.Response(200, json={"docs": [{"title": "Valid"}]})

    session = catalog_session(handler)

    await session.submit("broken")
    assert session.state == Failed("broken", RequestFailed(500))
    assert "500" in session.state.message

    await session.submit("valid")
    await session.client.client.aclose()

    assert isinstance(session.state, Success)
    assert titles(session.state) == ["Valid"]


@pytest.mark.asyncio
async def test_end_to_end_superseded_request_is_cancelled():
    gates = {"slow": asyncio.Event()}

    async def handler(request: httpx.Request) -> httpx.Response:
        title = request.url.params["title"]
        if title in gates:
            await gates[title].wait()
        return httpx.Response(200, json={"docs": [{"title": title}]})

    session = catalog_session(handler)

    slow = asyncio.create_task(session.submit("slow"))
    await settle()
    await session.submit("fast")
    gates["slow"].set()
    await slow
    await session.client.client.aclose()

    assert session.state.query == "fast"
    assert titles(session.state) == ["fast"]


class ExplodingClient:
    async def fetch(self, query, token):
        raise RuntimeError("catalog exploded")


@pytest.mark.asyncio
async def test_unexpected_client_error_leaves_failed_state():
    session = SearchSession(ExplodingClient())

    with pytest.raises(RuntimeError):
        await session.submit("dune")

    assert session.state == Failed("dune", RequestFailed(None))
    assert not session.is_loading


@pytest.mark.asyncio
async def test_stale_client_error_does_not_touch_state():
    client = ScriptedClient()
    session = SearchSession(client)

    first = asyncio.create_task(session.submit("dune"))
    await settle()
    second = asyncio.create_task(session.submit("foundation"))
    await settle()

    client.calls[0].future.set_exception(RuntimeError("late failure"))
    with pytest.raises(RuntimeError):
        await first

    assert session.state == Loading("foundation")

    client.resolve(1, found("Foundation"))
    await second

    assert titles(session.state) == ["Foundation"]


@pytest.mark.asyncio
async def test_end_to_end_unencodable_query_fails_cleanly():
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"docs": [{"title": "Dune"}]})

    session = catalog_session(handler)
    await session.submit("dune \udcff")

    assert session.state == Failed("dune \udcff", RequestFailed(None))

    await session.submit("dune")
    await session.client.client.aclose()

    assert titles(session.state) == ["Dune"]

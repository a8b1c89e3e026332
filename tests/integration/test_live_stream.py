import asyncio

import pytest

from fetch_event_source import BearerAuth, EventSourceMessage, HttpConfig, fetch_event_source
from fetch_event_source._auth import ENV_TOKEN

##################################################################
import logging
import os

logging.basicConfig(
    level=logging.DEBUG,
    format="%(levelname)s [%(asctime)s] %(name)s - %(message)s",
)

# httpcore es el motor interno de httpx
logging.getLogger("httpcore").setLevel(logging.INFO)
logging.getLogger("fetch_event_source").setLevel(logging.DEBUG)
##################################################################


def _headers():
    # El token es opcional para endpoints públicos.
    if os.getenv(ENV_TOKEN):
        return BearerAuth.from_env_or_value(None)
    return None


@pytest.mark.integration
@pytest.mark.asyncio
async def test_live_stream_delivers_messages(stream_url: str) -> None:
    messages: list[EventSourceMessage] = []
    signal = asyncio.Event()

    def onmessage(msg: EventSourceMessage) -> None:
        messages.append(msg)
        if len(messages) >= 3:
            signal.set()

    def onerror(err: Exception) -> None:
        raise err

    await asyncio.wait_for(
        fetch_event_source(
            stream_url,
            headers=_headers(),
            onmessage=onmessage,
            onerror=onerror,
            signal=signal,
            http_config=HttpConfig.from_env(),
        ),
        timeout=60,
    )

    assert messages, "Expected at least one message from the live stream"
    assert all(isinstance(m.data, str) for m in messages)


@pytest.mark.integration
@pytest.mark.asyncio
async def test_live_stream_resumes_with_last_event_id(stream_url: str) -> None:
    ids: list[str] = []
    signal = asyncio.Event()
    opened = 0

    def onopen_counter(response) -> None:
        nonlocal opened
        opened += 1
        if opened == 2:
            signal.set()

    def onmessage(msg: EventSourceMessage) -> None:
        if not msg.id:
            signal.set()
            return
        ids.append(msg.id)
        # Forzar un reintento cerrando el stream desde el lado cliente.
        raise RuntimeError("reconnect")

    await asyncio.wait_for(
        fetch_event_source(
            stream_url,
            headers=_headers(),
            onopen=onopen_counter,
            onmessage=onmessage,
            onerror=lambda err: 100,
            signal=signal,
        ),
        timeout=60,
    )

    if not ids:
        pytest.skip("Live stream does not send ids")
    assert opened == 2

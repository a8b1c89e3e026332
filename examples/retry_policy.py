import asyncio
import os
from typing import Optional

import dotenv
import httpx

from fetch_event_source import EventSourceMessage, EventSourceResponseError, fetch_event_source

dotenv.load_dotenv()

url = os.environ["FETCH_EVENT_SOURCE_TEST_URL"]
failures = 0


class ServerClosed(Exception):
    pass


def onclose() -> None:
    # El servidor no debería cerrar el stream: forzar un reintento.
    raise ServerClosed()


def onerror(err: Exception) -> Optional[float]:
    global failures
    failures += 1

    if isinstance(err, EventSourceResponseError):
        if err.is_client_error or err.is_content_type_error:
            # 4xx o content-type incorrecto: no tiene sentido reintentar.
            raise err
        print(f"Server error {err.status_code}, retrying.")
    elif isinstance(err, httpx.TransportError):
        print(f"Network error {err!r}, retrying.")

    if failures > 5:
        raise RuntimeError("Giving up after 5 retries") from err

    # Backoff exponencial: 1s, 2s, 4s...
    return 1000 * 2 ** (failures - 1)


def onmessage(msg: EventSourceMessage) -> None:
    global failures
    failures = 0
    print(msg.data)


asyncio.run(fetch_event_source(url, onmessage=onmessage, onclose=onclose, onerror=onerror))

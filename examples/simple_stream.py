import asyncio
import os

import dotenv

from fetch_event_source import EventSourceMessage, fetch_event_source

dotenv.load_dotenv()

url = os.environ["FETCH_EVENT_SOURCE_TEST_URL"]


def onmessage(msg: EventSourceMessage) -> None:
    print(f"[{msg.event or 'message'}] id={msg.id!r} data={msg.data}")


async def main() -> None:
    stop = asyncio.Event()
    # Cortar la suscripción pasados 30 segundos.
    asyncio.get_running_loop().call_later(30, stop.set)
    await fetch_event_source(url, onmessage=onmessage, signal=stop)


asyncio.run(main())

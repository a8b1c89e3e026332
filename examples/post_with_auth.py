import asyncio
import os
import time

import dotenv

from fetch_event_source import BearerAuth, fetch_event_source

dotenv.load_dotenv()

url = os.environ["FETCH_EVENT_SOURCE_TEST_URL"]


def fresh_token() -> str:
    # Sustituir por la lógica real de refresco. Se llama antes de cada intento.
    return f"{os.environ['FETCH_EVENT_SOURCE_TOKEN']}.{int(time.time())}"


async def main() -> None:
    await fetch_event_source(
        url,
        method="POST",
        json={"messages": [{"role": "user", "content": "Di: hola"}], "stream": True},
        headers=BearerAuth(token_provider=fresh_token),
        onmessage=lambda msg: print(msg.data),
    )


asyncio.run(main())

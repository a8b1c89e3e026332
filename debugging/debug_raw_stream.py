import asyncio
import os

import dotenv
import httpx

from fetch_event_source import EVENT_STREAM_CONTENT_TYPE, Line, LineTokenizer

dotenv.load_dotenv()

url = os.environ["FETCH_EVENT_SOURCE_TEST_URL"]


def show(line: Line) -> None:
    print(f"boundary={line.field_boundary:>3} raw={line.raw!r}")


async def main() -> None:
    tokenizer = LineTokenizer(show)
    async with httpx.AsyncClient(timeout=httpx.Timeout(None, connect=10.0)) as client:
        async with client.stream("GET", url, headers={"accept": EVENT_STREAM_CONTENT_TYPE}) as r:
            print("status:", r.status_code)
            print("headers:", dict(r.headers))
            i = 0
            async for chunk in r.aiter_bytes():
                print(f"--- chunk {i} ({len(chunk)} bytes)")
                tokenizer.feed(chunk)
                i += 1
            print("pending bytes:", tokenizer.pending_bytes)


asyncio.run(main())

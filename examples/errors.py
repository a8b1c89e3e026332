import asyncio
import os

import dotenv

from fetch_event_source import EventSourceResponseError, fetch_event_source

dotenv.load_dotenv()

url = os.environ["FETCH_EVENT_SOURCE_TEST_URL"]


def fatal(err: Exception) -> None:
    # Sin reintentos: cualquier error termina la sesión.
    raise err


async def main() -> None:
    try:
        await fetch_event_source(url + "/does-not-exist", onerror=fatal)
    except EventSourceResponseError as e:
        print("Status code:", e.status_code)
        print("Message:", e.message)
        print("Content-Type:", e.content_type)

        if e.is_client_error:
            print("Client error: check the URL or the credentials.")
        elif e.is_server_error:
            print("Server error: try again later.")
        elif e.is_content_type_error:
            print("The endpoint does not serve text/event-stream.")

        print("\nDetalles completos:")
        print(e.to_dict())


asyncio.run(main())

import asyncio

import httpx
import websockets

BASE_URL = "http://localhost:8080"
WS_URL = "ws://localhost:8080/logs"

def open_session(client: httpx.Client) -> str:
    """Load the entry page and return the session cookie it hands out."""
    resp = client.get("/")
    resp.raise_for_status()
    return client.cookies["idx"]

async def main():
    with httpx.Client(base_url=BASE_URL) as client:
        idx = open_session(client)
    print("Session:", idx)
    async with websockets.connect(WS_URL, additional_headers={"Cookie": f"idx={idx}"}) as ws:
        print("Awaiting webhooks... (press Ctrl+C to exit)")
        async for msg in ws:
            print("Received:", msg)

if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("Disconnected.")

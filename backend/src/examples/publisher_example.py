import sys
from typing import Optional

import httpx  # to install: pip install httpx

BASE_URL = "http://localhost:8080"

def publish(client: httpx.Client, payload: str, bearer: Optional[str] = None) -> int:
    """POST one payload to /webhook and return the status code."""
    headers = {"Content-Type": "application/json"}
    if bearer:
        headers["Authorization"] = f"Bearer {bearer}"
    resp = client.post("/webhook", content=payload, headers=headers)
    return resp.status_code

def main():
    bearer = sys.argv[1] if len(sys.argv) > 1 else None
    payload = '{"event": "order.created", "order_id": "ORD-1", "amount": 9.99, "currency": "USD"}'
    print("Client Message: ", payload)
    with httpx.Client(base_url=BASE_URL) as client:
        print("Server:", publish(client, payload, bearer))

if __name__ == "__main__":
    main()

#!/usr/bin/env python3
"""
Example client for the sliding-llama HTTP API server.

Start the server first:
    sliding-llama-server --demo

Then run this script to exercise the API.
"""

import json
import sys

import httpx

BASE_URL = "http://localhost:8000"


def generate(client: httpx.Client, text: str, stream: bool = False, **kwargs) -> dict:
    """Send one generation request to the server's session."""
    data = {"text": text, "stream": stream, **kwargs}

    if not stream:
        response = client.post(f"{BASE_URL}/v1/generate", json=data)
        response.raise_for_status()
        return response.json()

    full_text = ""
    finish_reason = None
    with client.stream("POST", f"{BASE_URL}/v1/generate", json=data) as response:
        response.raise_for_status()
        for line in response.iter_lines():
            if not line.startswith("data: "):
                continue
            content = line[6:]
            if content == "[DONE]":
                break
            chunk = json.loads(content)
            if chunk["text"]:
                print(chunk["text"], end="", flush=True)
                full_text += chunk["text"]
            finish_reason = chunk["finish_reason"] or finish_reason
    print()
    return {"text": full_text, "finish_reason": finish_reason}


def main():
    try:
        with httpx.Client(timeout=180.0) as client:
            print(client.get(f"{BASE_URL}/v1/health").json())

            print("\n=== Non-streaming Response ===")
            response = generate(client, "Hello!", max_new_tokens=30)
            print(f"Text: {response['text']}")
            print(f"Finish reason: {response['finish_reason']}")
            print(f"Usage: {response['usage']}")

            print("\n=== Streaming Continuation ===")
            print("Assistant:", end="", flush=True)
            generate(client, "continue", stream=True, max_new_tokens=30)

            print("\n=== Status and Reset ===")
            print(client.get(f"{BASE_URL}/v1/status").json())
            print(client.post(f"{BASE_URL}/v1/reset").json())

    except httpx.ConnectError:
        print(f"\nError: Could not connect to server at {BASE_URL}")
        print("\nMake sure the server is running:")
        print("  sliding-llama-server --demo")
        sys.exit(1)
    except httpx.HTTPStatusError as e:
        print(f"\nError: {e.response.status_code} {e.response.text}")
        sys.exit(1)


if __name__ == "__main__":
    main()

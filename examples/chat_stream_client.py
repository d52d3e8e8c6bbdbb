"""
Chat completion streaming example using event_stream_core.

This example demonstrates how to stream a chat completion with an
EventStreamSession, first with observers and then as a channel of
events. Set OPENAI_API_KEY (and optionally OPENAI_ORGANIZATION) before
running it.
"""

import asyncio
import json
import logging
import os
from dataclasses import dataclass, field
from typing import List, Optional

from event_stream_core import (
    APICredentials,
    EventStreamSession,
    JSONMessageDecoder,
    Request,
    StreamCompleted,
    StreamMessage,
)

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

API_URL = "https://api.openai.com/v1/chat/completions"


@dataclass
class Delta:
    content: Optional[str] = None


@dataclass
class Choice:
    index: int
    delta: Delta
    finish_reason: Optional[str] = None


@dataclass
class ChatChunk:
    id: str
    choices: List[Choice] = field(default_factory=list)


def build_request(credentials: APICredentials, prompt: str) -> Request:
    body = {
        "model": "gpt-4o-mini",
        "stream": True,
        "messages": [{"role": "user", "content": prompt}],
    }
    request = Request.create("POST", API_URL, body=json.dumps(body))
    return credentials.apply(request)


async def observer_demo(credentials: APICredentials) -> None:
    """Stream with the three observers."""
    logger.info("Streaming with observers...")
    pieces: List[str] = []

    def on_start() -> None:
        logger.info("Stream started")

    def on_message(data: bytes, chunk: Optional[ChatChunk]) -> None:
        if chunk is None:
            return
        for choice in chunk.choices:
            if choice.delta.content:
                pieces.append(choice.delta.content)

    def on_complete(status_code: Optional[int], forced: bool, error: Optional[Exception]) -> None:
        logger.info(f"Stream completed: status={status_code} forced={forced} error={error}")

    session = EventStreamSession(
        build_request(credentials, "Write a haiku about rivers."),
        JSONMessageDecoder(ChatChunk),
    )
    session.on_start(on_start).on_message(on_message).on_complete(on_complete)
    session.start()

    await session.wait_closed()
    logger.info(f"Reply: {''.join(pieces)}")


async def channel_demo(credentials: APICredentials) -> None:
    """Stream as tagged events, stopping after a few messages."""
    logger.info("Streaming as events...")
    session = EventStreamSession(
        build_request(credentials, "Count from one to fifty."),
        JSONMessageDecoder(ChatChunk),
    )

    received = 0
    async for event in session.events():
        if isinstance(event, StreamMessage) and event.message is not None:
            received += 1
            if received == 5:
                session.stop()
        elif isinstance(event, StreamCompleted):
            logger.info(f"Completed after {received} messages, forced={event.force_end}")


async def main():
    """Run all examples."""
    credentials = APICredentials(
        os.environ["OPENAI_API_KEY"],
        organization=os.environ.get("OPENAI_ORGANIZATION"),
    )

    await observer_demo(credentials)
    print()

    await channel_demo(credentials)


if __name__ == "__main__":
    asyncio.run(main())

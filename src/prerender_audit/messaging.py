"""
Outbound message queues.

Messages are fire-and-forget: the audit never waits for a reply on the
queue it sends to.
"""

import asyncio
import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any


class Queue(ABC):
    """Abstract interface for message queues."""

    @abstractmethod
    async def send(self, queue_url: str, message: dict[str, Any]) -> None:
        """
        Send a message.

        Args:
            queue_url: Destination queue
            message: JSON-serializable message body
        """
        pass


class InMemoryQueue(Queue):
    """Keeps sent messages in a list, per queue URL."""

    def __init__(self):
        self.messages: list[tuple[str, dict[str, Any]]] = []

    async def send(self, queue_url: str, message: dict[str, Any]) -> None:
        self.messages.append((queue_url, message))

    def sent_to(self, queue_url: str) -> list[dict[str, Any]]:
        return [message for url, message in self.messages if url == queue_url]


class FileQueue(Queue):
    """
    Appends messages to a JSON lines outbox file.

    Each line holds ``{"queueUrl": ..., "message": ...}``.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    async def send(self, queue_url: str, message: dict[str, Any]) -> None:
        line = json.dumps({"queueUrl": queue_url, "message": message}, ensure_ascii=False)

        def _append():
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as outbox:
                outbox.write(line + "\n")

        await asyncio.to_thread(_append)

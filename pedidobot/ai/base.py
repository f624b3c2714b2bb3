from __future__ import annotations

from typing import Protocol


class CompletionError(RuntimeError):
    pass


class CompletionProvider(Protocol):
    name: str

    def complete(self, messages: list[dict[str, str]]) -> str:
        """Return the assistant text for a chat transcript. Raises ``CompletionError``."""
        ...

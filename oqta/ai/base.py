from __future__ import annotations

from typing import Protocol

from oqta.ai.schema import ConversationSummaryResult


class SummaryProvider(Protocol):
    name: str

    def summarize(self, transcript: str) -> ConversationSummaryResult:
        ...

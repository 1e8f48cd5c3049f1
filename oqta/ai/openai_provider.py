from __future__ import annotations

import logging

from openai import OpenAI

from oqta.ai.schema import SUMMARY_JSON_SCHEMA, ConversationSummaryResult
from oqta.core.config import OPENAI_API_KEY, OPENAI_MODEL, OPENAI_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You analyse sales conversations between a business assistant and a potential client. "
    "Extract the customer's name (or 'Unknown'), their phone number in international format "
    "if they shared one (otherwise null), a 2-3 sentence summary of what they want, and the "
    "next action the sales team should take. Respond only with the requested JSON object."
)


class OpenAISummaryProvider:
    name = "openai"

    def __init__(self, api_key: str, *, model: str = OPENAI_MODEL, timeout: float = OPENAI_TIMEOUT_SECONDS):
        self.model = model
        self.client = OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

    def summarize(self, transcript: str) -> ConversationSummaryResult:
        completion = self.client.chat.completions.create(
            model=self.model,
            temperature=0.2,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": f"Conversation:\n{transcript}"},
            ],
            response_format={
                "type": "json_schema",
                "json_schema": {
                    "name": "conversation_summary",
                    "strict": True,
                    "schema": SUMMARY_JSON_SCHEMA,
                },
            },
        )
        content = completion.choices[0].message.content or ""
        logger.info("summary completion received model=%s chars=%s", self.model, len(content))
        return ConversationSummaryResult.model_validate_json(content)


def get_summary_provider() -> OpenAISummaryProvider | None:
    if not OPENAI_API_KEY:
        return None
    return OpenAISummaryProvider(OPENAI_API_KEY)

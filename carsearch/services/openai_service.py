from typing import AsyncIterator, Optional
from openai import AsyncOpenAI
import json
import logging

from carsearch.config import settings

logger = logging.getLogger(__name__)

class OpenAIService:
    def __init__(self, api_key: Optional[str] = None):
        api_key = api_key or settings.OPENAI_API_KEY
        if not api_key:
            logger.error("OPENAI_API_KEY is missing in environment variables!")

        self.client = AsyncOpenAI(api_key=api_key)

    async def complete_json(self, model: str, system_prompt: str, user_message: str) -> dict:
        """
        One-shot call in JSON mode. Returns the decoded object.
        json.JSONDecodeError (a ValueError) means the model answered with garbage.
        """
        response = await self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message}
            ],
            response_format={"type": "json_object"},
            temperature=0
        )
        return json.loads(response.choices[0].message.content or "")

    async def stream_text(self, model: str, system_prompt: str, user_message: str) -> AsyncIterator[str]:
        """Yields the reply as it is generated, fragment by fragment."""
        stream = await self.client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_message}
            ],
            temperature=0.7,
            stream=True
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta

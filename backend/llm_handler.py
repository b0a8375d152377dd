# backend/llm_handler.py
"""
LLM text service on top of LangChain's ChatOpenAI

Every caller treats this service as unreliable: failures surface as
AIServiceError and each call site falls back to deterministic behavior.
"""

import json
import logging
import re
from typing import Any, Iterator, List, Optional

from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from config import settings
from errors import AIServiceError

logger = logging.getLogger(__name__)

CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)


def create_chat_model(model_name: Optional[str] = None, temperature: Optional[float] = None) -> ChatOpenAI:
    """Build a ChatOpenAI client from settings"""
    return ChatOpenAI(
        model=model_name or settings.openai_model,
        temperature=settings.openai_temperature if temperature is None else temperature,
        max_tokens=settings.openai_max_tokens,
        api_key=settings.openai_api_key,
    )


class LLMService:
    """
    complete() and stream() over a chat model

    The ChatOpenAI client is created on first use so the service can be
    constructed without credentials; without an API key every call raises
    AIServiceError.
    """

    def __init__(self, chat_model: Any = None, enabled: Optional[bool] = None):
        self._chat_model = chat_model
        self.enabled = settings.llm_enabled if enabled is None else enabled

    @property
    def available(self) -> bool:
        if not self.enabled:
            return False
        return self._chat_model is not None or bool(settings.openai_api_key)

    @property
    def chat_model(self):
        if not self.available:
            raise AIServiceError("LLM is not configured")
        if self._chat_model is None:
            self._chat_model = create_chat_model()
            logger.info("ChatOpenAI initialized with model=%s", settings.openai_model)
        return self._chat_model

    @staticmethod
    def _messages(prompt: str, system_instruction: Optional[str]) -> List[Any]:
        messages = []
        if system_instruction:
            messages.append(SystemMessage(content=system_instruction))
        messages.append(HumanMessage(content=prompt))
        return messages

    def complete(self, prompt: str, system_instruction: Optional[str] = None) -> str:
        """One-shot completion; raises AIServiceError on any failure or empty reply"""
        model = self.chat_model
        try:
            response = model.invoke(self._messages(prompt, system_instruction))
        except Exception as e:
            logger.warning("LLM call failed: %s", e)
            raise AIServiceError(f"LLM call failed: {e}") from e

        text = response.content if isinstance(response.content, str) else str(response.content)
        logger.debug("LLM response: %d chars", len(text))
        if not text.strip():
            raise AIServiceError("Empty response from LLM")
        return text

    def stream(self, prompt: str, system_instruction: Optional[str] = None) -> Iterator[str]:
        """Yield text chunks as the model produces them"""
        model = self.chat_model
        try:
            for chunk in model.stream(self._messages(prompt, system_instruction)):
                if chunk.content:
                    yield chunk.content if isinstance(chunk.content, str) else str(chunk.content)
        except Exception as e:
            logger.warning("LLM stream failed: %s", e)
            raise AIServiceError(f"LLM stream failed: {e}") from e


def extract_json(response_text: str, opening: str = "[", closing: str = "]") -> Any:
    """
    Pull a JSON document out of a model reply

    Markdown fences are stripped; if the whole reply is not JSON, the span
    between the first opening and the last closing bracket is tried.
    """
    cleaned = CODE_FENCE.sub("", response_text.strip()).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        pass

    json_start = cleaned.find(opening)
    json_end = cleaned.rfind(closing) + 1
    if json_start == -1 or json_end <= json_start:
        raise AIServiceError("No JSON found in LLM response")
    try:
        return json.loads(cleaned[json_start:json_end])
    except json.JSONDecodeError as e:
        raise AIServiceError(f"JSON parse error: {e}") from e

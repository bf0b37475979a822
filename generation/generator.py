"""
Content Generator
Request key -> validated visa requirements payload via a selectable LLM provider.
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Union

from pydantic import ValidationError

from core import ContentPayload, GeneratedContent, Provider, RequestKey
from utils.exceptions import GenerationError

from .llm import BaseLLM, Message, get_llm
from .prompts import SYSTEM_INSTRUCTIONS, compose_user_prompt


logger = logging.getLogger("visa_cache.generation")

PREVIEW_CHARS = 600

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


class BaseContentGenerator(ABC):
    """Anything that turns a request key into a structured record."""

    @abstractmethod
    async def generate(self, key: RequestKey, provider: Union[Provider, str] = Provider.OPENAI) -> GeneratedContent:
        """Raise ``GenerationError`` on any failure."""
        pass

    async def aclose(self) -> None:
        return None


def _preview(value: Any) -> str:
    text = value if isinstance(value, str) else json.dumps(value, default=str)
    return text[:PREVIEW_CHARS]


def parse_json_payload(text: str, *, provider: str, key: RequestKey) -> Dict[str, Any]:
    """Parse provider output, tolerating a surrounding code fence."""
    clean = _FENCE_CLOSE.sub("", _FENCE_OPEN.sub("", str(text or "").strip()))
    try:
        parsed = json.loads(clean)
    except json.JSONDecodeError as exc:
        raise GenerationError(
            f"{provider} returned unparseable JSON: {exc.msg}",
            provider=provider,
            key=key.as_dict(),
            preview=_preview(text),
        ) from exc
    if not isinstance(parsed, dict):
        raise GenerationError(
            f"{provider} returned {type(parsed).__name__}, expected a JSON object",
            provider=provider,
            key=key.as_dict(),
            preview=_preview(text),
        )
    return parsed


def validate_payload(raw: Dict[str, Any], *, provider: str, key: RequestKey) -> ContentPayload:
    """Fixed-schema check. Any violation fails the whole result."""
    try:
        return ContentPayload.model_validate(raw)
    except ValidationError as exc:
        fields = sorted({str(err["loc"][0]) for err in exc.errors() if err.get("loc")})
        raise GenerationError(
            f"{provider} output failed schema validation",
            provider=provider,
            key=key.as_dict(),
            preview=_preview(raw),
            invalid_fields=",".join(fields),
        ) from exc


class ContentGenerator(BaseContentGenerator):
    """
    LLM-backed generator

    One adapter per provider is built lazily through ``llm_factory`` and
    reused. Each call is bounded by ``timeout_seconds``.
    """

    def __init__(
        self,
        llm_factory: Callable[[str], BaseLLM] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self._llm_factory = llm_factory or (lambda provider: get_llm(provider=provider))
        self._timeout = timeout_seconds
        self._llms: Dict[str, BaseLLM] = {}

    def _get_llm(self, provider: str) -> BaseLLM:
        if provider not in self._llms:
            self._llms[provider] = self._llm_factory(provider)
        return self._llms[provider]

    async def generate(self, key: RequestKey, provider: Union[Provider, str] = Provider.OPENAI) -> GeneratedContent:
        try:
            provider_name = Provider(provider).value
        except ValueError as exc:
            raise GenerationError(f"Unsupported provider: {provider}", provider=str(provider), key=key.as_dict()) from exc

        messages = [Message.system(SYSTEM_INSTRUCTIONS), Message.user(compose_user_prompt(key))]

        try:
            llm = self._get_llm(provider_name)
            call = llm.acomplete(messages, json_mode=True, temperature=0)
            if self._timeout:
                response = await asyncio.wait_for(call, timeout=self._timeout)
            else:
                response = await call
        except asyncio.TimeoutError as exc:
            raise GenerationError(
                f"{provider_name} timed out after {self._timeout}s",
                provider=provider_name,
                key=key.as_dict(),
            ) from exc
        except GenerationError:
            raise
        except Exception as exc:
            raise GenerationError(
                f"{provider_name} call failed: {exc}",
                provider=provider_name,
                key=key.as_dict(),
                status=getattr(exc, "status_code", None),
            ) from exc

        raw = parse_json_payload(response.content, provider=provider_name, key=key)
        payload = validate_payload(raw, provider=provider_name, key=key)
        logger.debug(f"Generated content for {key} via {provider_name} ({response.usage})")
        return GeneratedContent(provider=provider_name, payload=payload, raw_json=raw)

    async def aclose(self) -> None:
        for llm in self._llms.values():
            await llm.aclose()
        self._llms.clear()

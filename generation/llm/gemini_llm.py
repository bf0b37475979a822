"""
Google Gemini LLM
generateContent via google-generativeai
"""
from typing import List, Optional, Tuple

from .base import BaseLLM, Message, MessageRole, LLMResponse


class GeminiLLM(BaseLLM):
    """
    Gemini implementation

    Models:
    - gemini-1.5-pro (default)
    - gemini-1.5-flash
    """

    def __init__(
        self,
        model: str = "gemini-1.5-pro",
        api_key: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 4096,
        timeout: float = 60.0,
        **kwargs,
    ):
        super().__init__(model, temperature, max_tokens, timeout, **kwargs)
        self.api_key = api_key

    @property
    def provider(self) -> str:
        return "gemini"

    def _convert_messages(self, messages: List[Message]) -> Tuple[Optional[str], str]:
        """
        Gemini takes the system prompt separately from the conversation.

        Returns:
            (system_instruction, user_text)
        """
        system_parts = []
        user_parts = []
        for msg in messages:
            if msg.role == MessageRole.SYSTEM:
                system_parts.append(msg.content)
            else:
                user_parts.append(msg.content)
        system_instruction = "\n\n".join(system_parts) or None
        return system_instruction, "\n\n".join(user_parts)

    async def acomplete(
        self,
        messages: List[Message],
        json_mode: bool = False,
        **kwargs,
    ) -> LLMResponse:
        import google.generativeai as genai

        genai.configure(api_key=self.api_key)

        system_instruction, user_text = self._convert_messages(messages)

        generation_config = {
            "temperature": kwargs.get("temperature", self.temperature),
            "max_output_tokens": kwargs.get("max_tokens", self.max_tokens),
        }
        if json_mode:
            generation_config["response_mime_type"] = "application/json"

        model = genai.GenerativeModel(
            model_name=self.model,
            generation_config=generation_config,
            system_instruction=system_instruction,
        )

        response = await model.generate_content_async(
            user_text,
            request_options={"timeout": self.timeout},
        )

        usage = {}
        if getattr(response, "usage_metadata", None):
            usage = {
                "prompt_tokens": response.usage_metadata.prompt_token_count,
                "completion_tokens": response.usage_metadata.candidates_token_count,
                "total_tokens": response.usage_metadata.total_token_count,
            }

        return LLMResponse(
            content=response.text or "",
            model=self.model,
            usage=usage,
            finish_reason=response.candidates[0].finish_reason.name if response.candidates else None,
            raw_response=response,
        )

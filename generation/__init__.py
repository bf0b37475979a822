"""
Generation Module
Provider adapters and the content generator built on them
"""
from .generator import (
    BaseContentGenerator,
    ContentGenerator,
    parse_json_payload,
    validate_payload,
)
from .prompts import SYSTEM_INSTRUCTIONS, compose_user_prompt

__all__ = [
    "BaseContentGenerator",
    "ContentGenerator",
    "parse_json_payload",
    "validate_payload",
    "SYSTEM_INSTRUCTIONS",
    "compose_user_prompt",
]

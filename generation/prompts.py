"""Prompt text for visa requirement generation."""

from __future__ import annotations

import json

from core import CONTENT_FIELDS, MANDATORY_CONTENT_FIELDS, RequestKey


VISA_TYPES = ("Sticker Visa", "eVisa", "Visa on Arrival", "ETA")

_KEY_SHAPE = json.dumps(
    {name: ("string" if name in MANDATORY_CONTENT_FIELDS else "string|null") for name in CONTENT_FIELDS},
    indent=2,
)

SYSTEM_INSTRUCTIONS = f"""You write visa requirements for travelers.
Tailor every answer to the traveler's nationality, resident country and destination.

Return ONLY a JSON object with exactly these keys (strings or nulls), no markdown and no commentary:
{_KEY_SHAPE}

Rules:
- Keys typed "string" are always filled in.
- If a section does not apply to the visa type or destination, set it to null, never an empty string.
- Plain text inside values. Bullets use "• " on their own line; steps are numbered 1., 2., 3.
- how_to_apply_evisa, how_to_apply_voa and how_to_apply_eta are only filled for that visa type.
- embassy_contact names the destination's embassy located in the traveler's resident country.
- Links must be official government or authorized visa center URLs. If unsure, use null.
  embassy_link is always null.
"""


def compose_user_prompt(key: RequestKey) -> str:
    return (
        "Traveler profile:\n"
        f"- Resident country: {key.resident_country}\n"
        f"- Nationality: {key.nationality}\n"
        f"- Destination: {key.destination}\n"
        f"- Visa category: {key.visa_category}\n"
        f"- Visa type: {key.visa_type}  ({' | '.join(VISA_TYPES)})\n"
        "\n"
        "Task:\n"
        "Produce the JSON object exactly as specified in the system prompt, "
        "specific to this traveler's nationality and resident country. "
        "If a section doesn't apply, set it to null."
    )

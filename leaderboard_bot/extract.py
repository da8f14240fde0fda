from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any

import google.generativeai as genai

from .records import TeamEntry


DEFAULT_MODEL_NAME = "gemini-3-flash-preview"

logger = logging.getLogger(__name__)

# Placement -> points. Anything below 5th scores 0.
_PLACEMENT_POINTS: dict[int, int] = {1: 10, 2: 8, 3: 6, 4: 4, 5: 2}
DAMAGE_PER_POINT = 1000


def placement_points(placement: int) -> int:
    return _PLACEMENT_POINTS.get(placement, 0)


def expected_total(entry: TeamEntry) -> int:
    """Points the scoring system gives for `entry` (placement + 1/kill + 1/1000 damage)."""
    return placement_points(entry.placement) + entry.kills + entry.damage_dealt // DAMAGE_PER_POINT


PROMPT = """
class Team:
team_name: string - The exact name of the team.
placement: number - The rank/placement of the team in this game (1 for 1st, etc).
placement_points: number - Points awarded based on placement (1st=10, 2nd=8, 3rd=6, 4th=4, 5th=2, 6th-8th=0).
kills: number - Total kills (K.O.) confirmed for the team.
kill_points: number - 1 point per kill.
damage_dealt: number - Total damage dealt by the team.
damage_points: number - 1 point for every 1000 damage dealt (integer division).
total_points: number - Sum of placement, kill, and damage points.
players: array of Player objects, where each Player has:
    name: string - The exact name of the player.
    kills: number - Total kills from player
    damage_dealt: number - Total damage dealt by the player.

You are an Esports Tournament Scorer.

Attached are screenshots of the game results for a game.

YOUR TASK:

Identify the players in the screenshots.
Extract their Placement, Kills (K.O.), and Total Damage.
Calculate points based on this system:

Placement Points: 1st=10, 2nd=8, 3rd=6, 4th=4, 5th=2, 6th-8th=0.
Kill Points: 1 pt per Kill.
Damage Points: 1 pt per 1000 Damage (floor division).

JSON to return:
An array of objects, one per team
Return a strictly formatted JSON
""".strip()


@dataclass(frozen=True)
class ImagePart:
    data: bytes
    mime_type: str = "image/png"

    def as_blob(self) -> dict[str, Any]:
        return {"mime_type": self.mime_type, "data": self.data}


def _extract_text(resp: Any) -> str:
    try:
        return resp.text or ""
    except ValueError:
        # .text raises when the candidate was blocked or has no text part.
        parts = []
        for cand in getattr(resp, "candidates", None) or []:
            for part in getattr(getattr(cand, "content", None), "parts", None) or []:
                t = getattr(part, "text", None)
                if t:
                    parts.append(t)
        return "".join(parts)


class GeminiExtractor:
    """Turn result screenshots into the raw JSON text the validator expects."""

    def __init__(self, *, api_key: str, model_name: str = DEFAULT_MODEL_NAME):
        if not api_key or not str(api_key).strip():
            raise ValueError("api_key is required")
        self.model_name = str(model_name).strip() or DEFAULT_MODEL_NAME
        genai.configure(api_key=str(api_key).strip())
        self.model = genai.GenerativeModel(self.model_name)

    def extract(self, images: list[ImagePart]) -> str:
        if not images:
            raise ValueError("at least one screenshot is required")
        contents: list[Any] = [PROMPT, *(img.as_blob() for img in images)]
        resp = self.model.generate_content(contents)
        text = _extract_text(resp)
        logger.debug("Gemini (%s) returned %d chars for %d image(s)", self.model_name, len(text), len(images))
        return text

    async def aextract(self, images: list[ImagePart]) -> str:
        return await asyncio.to_thread(self.extract, images)

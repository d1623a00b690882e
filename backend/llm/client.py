from __future__ import annotations

import json
import logging
import os
from typing import Any, Protocol

import requests
from pydantic import ValidationError

from llm.schemas import NarrativeRequest, NarrativeResponse

logger = logging.getLogger(__name__)

DEFAULT_CHOICES: tuple[str, ...] = (
    "Take an aggressive approach",
    "Proceed with caution",
    "Attempt diplomacy",
    "Try a creative solution",
)
SCRIPTED_CONFIDENCE = 0.85


class NarrativeClientError(RuntimeError):
    pass


class NarrativeGenerator(Protocol):
    def generate(self, request: NarrativeRequest) -> NarrativeResponse: ...


class OllamaNarrativeClient:
    def __init__(
        self,
        *,
        base_url: str | None = None,
        model: str | None = None,
        timeout: int | None = None,
    ) -> None:
        self.base_url = (base_url or os.getenv("OLLAMA_URL") or "http://localhost:11434").rstrip(
            "/"
        )
        self.model = model or os.getenv("OLLAMA_MODEL") or "gpt-oss:20b"
        if timeout is None:
            timeout = int(os.getenv("OLLAMA_TIMEOUT", "30"))
        self.timeout = timeout

    def generate(self, request: NarrativeRequest) -> NarrativeResponse:
        try:
            content = self._chat(
                messages=_narrative_messages(request),
                temperature=0.7,
                format="json",
            )
        except requests.RequestException as exc:
            raise NarrativeClientError(f"Narrative request failed: {exc}") from exc
        return _parse_narrative(content)

    def _chat(
        self,
        *,
        messages: list[dict[str, str]],
        temperature: float,
        format: str | None = None,
    ) -> str:
        url = f"{self.base_url}/api/chat"
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {"temperature": temperature},
        }
        if format:
            payload["format"] = format
        response = requests.post(url, json=payload, timeout=self.timeout)
        response.raise_for_status()
        data = response.json()
        message = data.get("message", {})
        content = message.get("content")
        if not isinstance(content, str):
            raise NarrativeClientError("Invalid response from Ollama.")
        return content


class ScriptedNarrativeGenerator:
    """Offline generator with fixed wording, used when no model is configured."""

    def generate(self, request: NarrativeRequest) -> NarrativeResponse:
        mechanical = request.mechanical_result
        return NarrativeResponse(
            narrative=scripted_narrative(request),
            choices=list(DEFAULT_CHOICES),
            state_changes=dict(mechanical.get("state_changes") or {}) if mechanical else {},
            confidence=SCRIPTED_CONFIDENCE,
        )


def scripted_narrative(request: NarrativeRequest) -> str:
    traits = request.character_traits
    name = traits.get("name") or "Adventurer"
    job = traits.get("current_job") or "Beggar"
    kind = request.action.get("kind")

    if kind == "combat":
        narrative = f"{name} prepares for combat, drawing upon their {job} training."
    elif kind == "dialogue":
        narrative = f"{name} approaches the situation with diplomatic intent."
    elif kind == "skill_check":
        narrative = f"{name} focuses their skills to overcome the challenge."
    else:
        narrative = f"{name} takes action in the world."

    mechanical = request.mechanical_result
    if mechanical and isinstance(mechanical.get("success"), bool):
        if mechanical["success"]:
            narrative += " The action succeeds!"
        else:
            narrative += " The action fails, but valuable experience is gained."
    return narrative


def _narrative_messages(request: NarrativeRequest) -> list[dict[str, str]]:
    system = request.rules.get("system_prompt")
    if not isinstance(system, str):
        system = "You narrate outcomes for a text adventure. Do not alter mechanics."
    system += (
        " Return JSON only matching this schema: "
        "{"
        '"narrative": "string", '
        '"choices": ["string"], '
        '"state_changes": {"any": "json"}, '
        '"confidence": 0.0, '
        '"time_context": 0'
        "}. "
        "Copy state_changes from mechanical_result when one is given. "
        "No markdown, no extra keys."
    )
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": request.model_dump_json()},
    ]


def _parse_narrative(content: str) -> NarrativeResponse:
    payload = _extract_json(content)
    try:
        return NarrativeResponse.model_validate(payload)
    except ValidationError as exc:
        raise NarrativeClientError(f"Narrative reply failed validation: {exc}") from exc


def _extract_json(content: str) -> dict[str, Any]:
    try:
        data = json.loads(content)
        if isinstance(data, dict):
            return data
    except json.JSONDecodeError:
        pass

    start = content.find("{")
    end = content.rfind("}")
    if start >= 0 and end > start:
        try:
            data = json.loads(content[start : end + 1])
        except json.JSONDecodeError as exc:
            raise NarrativeClientError("Failed to parse narrative JSON.") from exc
        if isinstance(data, dict):
            return data
    logger.warning("Narrative reply was not JSON: %.200s", content)
    raise NarrativeClientError("Failed to parse narrative JSON.")

import json
from types import SimpleNamespace

import pytest
import requests

from llm.client import (
    DEFAULT_CHOICES,
    NarrativeClientError,
    OllamaNarrativeClient,
    ScriptedNarrativeGenerator,
    _extract_json,
    _narrative_messages,
)
from llm.schemas import NarrativeRequest, NarrativeResponse


def _request(kind: str = "combat", **overrides) -> NarrativeRequest:
    data = {
        "action": {"kind": kind},
        "encoded_state": {"player": {"name": "Aria"}},
        "rules": {"system_prompt": "You are the narrator."},
        "character_traits": {"name": "Aria", "current_job": "Knight"},
    }
    data.update(overrides)
    return NarrativeRequest(**data)


def test_scripted_combat_narrative() -> None:
    response = ScriptedNarrativeGenerator().generate(_request())
    assert response.narrative == "Aria prepares for combat, drawing upon their Knight training."
    assert response.choices == list(DEFAULT_CHOICES)
    assert response.confidence == 0.85


def test_scripted_defaults_and_outcome_suffix() -> None:
    request = _request(
        "skill_check",
        character_traits={"name": None},
        mechanical_result={"success": False, "state_changes": {"experience": 10}},
    )
    response = ScriptedNarrativeGenerator().generate(request)
    assert response.narrative == (
        "Adventurer focuses their skills to overcome the challenge."
        " The action fails, but valuable experience is gained."
    )
    assert response.state_changes == {"experience": 10}


def test_scripted_generic_action() -> None:
    response = ScriptedNarrativeGenerator().generate(
        _request("exploration_choice", mechanical_result={"success": True})
    )
    assert response.narrative == "Aria takes action in the world. The action succeeds!"


def test_messages_carry_system_prompt_and_request() -> None:
    messages = _narrative_messages(_request())
    assert messages[0]["role"] == "system"
    assert messages[0]["content"].startswith("You are the narrator.")
    assert "JSON only" in messages[0]["content"]
    payload = json.loads(messages[1]["content"])
    assert payload["action"] == {"kind": "combat"}


def test_extract_json_from_wrapped_text() -> None:
    assert _extract_json('{"narrative": "hi"}') == {"narrative": "hi"}
    assert _extract_json('Sure! {"narrative": "hi"} Enjoy.') == {"narrative": "hi"}
    with pytest.raises(NarrativeClientError):
        _extract_json("no json here")
    with pytest.raises(NarrativeClientError):
        _extract_json("[1, 2]")


def _fake_post(content, calls: list):
    def post(url, json=None, timeout=None):
        calls.append({"url": url, "json": json, "timeout": timeout})
        return SimpleNamespace(
            raise_for_status=lambda: None,
            json=lambda: {"message": {"content": content}},
        )

    return post


def test_ollama_client_parses_reply(monkeypatch) -> None:
    calls: list = []
    reply = '{"narrative": "The blade flashes.", "choices": ["Press on"], "confidence": 0.6}'
    monkeypatch.setattr(requests, "post", _fake_post(reply, calls))

    client = OllamaNarrativeClient(base_url="http://ollama:11434/", model="test-model", timeout=5)
    response = client.generate(_request())

    assert isinstance(response, NarrativeResponse)
    assert response.narrative == "The blade flashes."
    assert calls[0]["url"] == "http://ollama:11434/api/chat"
    assert calls[0]["json"]["model"] == "test-model"
    assert calls[0]["json"]["format"] == "json"
    assert calls[0]["timeout"] == 5


def test_ollama_client_rejects_invalid_reply(monkeypatch) -> None:
    monkeypatch.setattr(requests, "post", _fake_post('{"narrative": "x", "confidence": 3}', []))
    with pytest.raises(NarrativeClientError):
        OllamaNarrativeClient(timeout=1).generate(_request())


def test_ollama_client_wraps_transport_errors(monkeypatch) -> None:
    def post(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(requests, "post", post)
    with pytest.raises(NarrativeClientError):
        OllamaNarrativeClient(timeout=1).generate(_request())


def test_ollama_client_env_defaults(monkeypatch) -> None:
    monkeypatch.setenv("OLLAMA_URL", "http://env-host:1234")
    monkeypatch.setenv("OLLAMA_MODEL", "env-model")
    monkeypatch.setenv("OLLAMA_TIMEOUT", "12")
    client = OllamaNarrativeClient()
    assert client.base_url == "http://env-host:1234"
    assert client.model == "env-model"
    assert client.timeout == 12

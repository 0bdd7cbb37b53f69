"""Tests for the Gemini client and the inference calls built on it."""

import asyncio
import json

import httpx
import pytest

from nutricounter.core.errors import (
    InferenceRequestError,
    ResponseParseError,
    ResponseShapeError,
)
from nutricounter.core.models import ChatMessage, Profile
from nutricounter.shell.gemini_client import GeminiClient, GeminiConfig, extract_text, to_contents
from nutricounter.shell.inference import coach_reply, estimate_nutrition, recommend_goals


def _reply(text: str) -> dict:
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def _client(handler) -> GeminiClient:
    transport = httpx.MockTransport(handler)
    config = GeminiConfig(base_url="https://gemini.test/v1beta", model="gemini-2.0-flash")
    return GeminiClient(config=config, http_client=httpx.AsyncClient(transport=transport))


class TestExtractText:
    """Tests for extract_text."""

    def test_reads_first_candidate(self):
        """Text is read from the first part of the first candidate."""
        assert extract_text(_reply("hello")) == "hello"

    def test_missing_candidates(self):
        """A body without candidates is a shape error."""
        with pytest.raises(ResponseShapeError):
            extract_text({"promptFeedback": {"blockReason": "SAFETY"}})

    def test_empty_parts(self):
        """No parts is a shape error."""
        with pytest.raises(ResponseShapeError):
            extract_text({"candidates": [{"content": {"parts": []}}]})

    def test_non_string_text(self):
        """Text must be a string."""
        with pytest.raises(ResponseShapeError):
            extract_text(_reply(42))


class TestToContents:
    """Tests for to_contents."""

    def test_roles(self):
        """Coach messages map to model turns."""
        history = (ChatMessage(sender="ai", text="Hi"), ChatMessage(sender="user", text="Plan?"))
        assert to_contents(history) == [
            {"role": "model", "parts": [{"text": "Hi"}]},
            {"role": "user", "parts": [{"text": "Plan?"}]},
        ]


class TestGeminiClient:
    """Tests for GeminiClient requests."""

    def test_generate_sends_prompt_and_key(self):
        """The key travels only as the query parameter."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["path"] = request.url.path
            seen["key"] = request.url.params.get("key")
            seen["body"] = json.loads(request.content.decode())
            seen["auth"] = request.headers.get("Authorization")
            return httpx.Response(200, json=_reply("ok"))

        client = _client(handler)
        text = asyncio.run(client.generate("secret-key", "Describe rice"))

        assert text == "ok"
        assert seen["path"] == "/v1beta/models/gemini-2.0-flash:generateContent"
        assert seen["key"] == "secret-key"
        assert seen["body"] == {"contents": [{"parts": [{"text": "Describe rice"}]}]}
        assert seen["auth"] is None

    def test_non_2xx(self):
        """Error statuses raise with the status code."""
        client = _client(lambda request: httpx.Response(403, json={"error": {"message": "bad key"}}))

        with pytest.raises(InferenceRequestError) as excinfo:
            asyncio.run(client.generate("key", "prompt"))
        assert excinfo.value.status_code == 403

    def test_network_error(self):
        """Transport failures raise InferenceRequestError."""
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(InferenceRequestError):
            asyncio.run(_client(handler).generate("key", "prompt"))

    def test_non_json_body(self):
        """A 200 with a non-JSON body is a shape error."""
        client = _client(lambda request: httpx.Response(200, text="<html>oops</html>"))
        with pytest.raises(ResponseShapeError):
            asyncio.run(client.generate("key", "prompt"))

    def test_chat_body(self):
        """Chat sends history, the new message and the system instruction."""
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content.decode())
            return httpx.Response(200, json=_reply("Walk daily."))

        history = (ChatMessage(sender="ai", text="Hello!"),)
        text = asyncio.run(_client(handler).chat("key", history, "Plan my week", "Be a coach"))

        assert text == "Walk daily."
        assert seen["body"]["contents"] == [
            {"role": "model", "parts": [{"text": "Hello!"}]},
            {"role": "user", "parts": [{"text": "Plan my week"}]},
        ]
        assert seen["body"]["systemInstruction"] == {"parts": [{"text": "Be a coach"}]}


class TestInference:
    """Tests for estimate_nutrition, recommend_goals and coach_reply."""

    def test_estimate_parses_prose_wrapped_json(self):
        """One request, prose stripped, record returned."""
        calls = []

        def handler(request: httpx.Request) -> httpx.Response:
            calls.append(request)
            body = json.loads(request.content.decode())
            assert "1 cup of rice" in body["contents"][0]["parts"][0]["text"]
            return httpx.Response(200, json=_reply(
                'Here you go: {"food_name": "Rice", "portion_size": "1 cup", "calories": 206} Enjoy!'
            ))

        record = asyncio.run(estimate_nutrition(_client(handler), "key", "1 cup of rice"))
        assert len(calls) == 1
        assert record.calories == 206
        assert record.id is None

    def test_estimate_without_json(self):
        """Text with no object raises a parse error."""
        client = _client(lambda request: httpx.Response(200, json=_reply("I am not sure.")))
        with pytest.raises(ResponseParseError):
            asyncio.run(estimate_nutrition(client, "key", "mystery"))

    def test_goals_prompt_includes_profile(self):
        """The profile is sent and the goals rounded."""
        def handler(request: httpx.Request) -> httpx.Response:
            prompt = json.loads(request.content.decode())["contents"][0]["parts"][0]["text"]
            assert "- Age: 30" in prompt
            assert "- Height: 180 cm" in prompt
            return httpx.Response(200, json=_reply(
                '{"calories": 2499.5, "protein": 150.2, "carbs": 280, "fat": 80.7}'
            ))

        profile = Profile(age=30, height_cm=180, weight_kg=81)
        goals = asyncio.run(recommend_goals(_client(handler), "key", profile))
        assert (goals.calories, goals.protein, goals.carbs, goals.fat) == (2500, 150, 280, 81)

    def test_coach_reply(self):
        """Coach replies are returned as plain text."""
        client = _client(lambda request: httpx.Response(200, json=_reply("Drink water.")))
        reply = asyncio.run(coach_reply(client, "key", (), "hydration?", "system"))
        assert reply == "Drink water."

"""
Unit tests for the AI client wrapper.
"""

import pytest
from types import SimpleNamespace
from unittest.mock import MagicMock

from core.exceptions import AIServiceError
from core.llm import AIClient, strip_code_fences


def reply(text):
    message = SimpleNamespace(content=text)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


@pytest.fixture
def openai_client():
    return MagicMock()


def test_strip_code_fences():
    assert strip_code_fences('```json\n{"a": 1}\n```') == '{"a": 1}'
    assert strip_code_fences('  {"a": 1}  ') == '{"a": 1}'


class TestAIClient:
    """Test cases for AIClient class."""

    def test_complete_json(self, openai_client):
        openai_client.chat.completions.create.return_value = reply('{"amount": 12.5}')
        client = AIClient(api_key="sk-test", model="gpt-test", client=openai_client)

        result = client.complete_json([{"type": "text", "text": "hi"}], system_prompt="sys")

        assert result == {"amount": 12.5}
        kwargs = openai_client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "gpt-test"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "sys"}
        assert kwargs["messages"][1]["role"] == "user"

    def test_fenced_reply(self, openai_client):
        openai_client.chat.completions.create.return_value = reply('```json\n{"a": 1}\n```')
        client = AIClient(api_key="sk-test", client=openai_client)

        assert client.complete_json([]) == {"a": 1}

    def test_missing_key(self):
        with pytest.raises(AIServiceError) as exc_info:
            AIClient(api_key=None).complete_json([])
        assert "OPENAI_API_KEY" in str(exc_info.value)

    @pytest.mark.parametrize("text", ["", "not json", "[1, 2]"])
    def test_unusable_reply(self, openai_client, text):
        openai_client.chat.completions.create.return_value = reply(text)
        client = AIClient(api_key="sk-test", client=openai_client)

        with pytest.raises(AIServiceError):
            client.complete_json([])

    def test_request_failure(self, openai_client):
        openai_client.chat.completions.create.side_effect = ConnectionError("offline")
        client = AIClient(api_key="sk-test", client=openai_client)

        with pytest.raises(AIServiceError):
            client.complete_json([])

"""
chatbridge - Model and Configuration Tests

Verifies:
- Canonical node and chunk serialization
- Usage accumulation never clears observed values
- Conversation validation and chat-completions rendering
- Provider configuration parsing and validation
"""

import json

import pytest
from pydantic import ValidationError

from chatbridge.core.cancellation import CancellationToken, check_cancelled
from chatbridge.core.config import DEFAULT_BASE_URLS, ProviderConfig, ProviderType, positive_int
from chatbridge.core.conversation import ChatMessage, Conversation, FunctionCall, Role
from chatbridge.core.errors import ConfigurationError, StreamCancelledError
from chatbridge.core.models import (
    Capabilities,
    ChatChunk,
    MainTextFinishedNode,
    RawTextNode,
    StopReason,
    TokenUsage,
    ToolUseNode,
    WireRequest,
)


# ============================================================
# Canonical Chunks
# ============================================================

class TestNodes:
    """Test node and chunk serialization."""

    def test_node_to_dict_omits_none(self):
        node = ToolUseNode(id=3, tool_use_id="call_1", tool_name="lookup")

        assert node.to_dict() == {
            "id": 3,
            "tool_use_id": "call_1",
            "tool_name": "lookup",
            "input_json": "{}",
            "type": "tool_use",
        }

    def test_chunk_to_dict(self):
        chunk = ChatChunk(
            nodes=(MainTextFinishedNode(id=2, content="Hi"),),
            stop_reason=StopReason.END_TURN,
        )

        assert chunk.is_final
        assert chunk.to_dict() == {
            "text": "",
            "nodes": [{"id": 2, "content": "Hi", "type": "main_text_finished"}],
            "stop_reason": "end_turn",
        }

    def test_non_final_chunk(self):
        chunk = ChatChunk(text="a", nodes=(RawTextNode(id=1, content="a"),))

        assert not chunk.is_final
        assert chunk.to_dict()["stop_reason"] is None

    def test_nodes_are_frozen(self):
        node = RawTextNode(id=1, content="a")

        with pytest.raises(Exception):
            node.content = "b"


class TestTokenUsage:
    """Test usage accumulation."""

    def test_absent_values_do_not_clear(self):
        usage = TokenUsage()
        usage.update(input_tokens=10, output_tokens=1)
        usage.update(input_tokens=None, output_tokens=7)

        assert usage.input_tokens == 10
        assert usage.output_tokens == 7

    def test_non_counts_ignored(self):
        usage = TokenUsage()
        usage.update(input_tokens=True, output_tokens="5", cache_read_input_tokens=2.0)

        assert usage.input_tokens is None
        assert usage.output_tokens is None
        assert usage.cache_read_input_tokens == 2

    def test_has_any_and_node(self):
        usage = TokenUsage()
        assert not usage.has_any

        usage.update(cache_creation_input_tokens=4)
        node = usage.to_node(9)

        assert usage.has_any
        assert node.id == 9
        assert node.to_dict() == {"id": 9, "cache_creation_input_tokens": 4, "type": "token_usage"}


class TestCapabilities:
    """Test caller capability flags."""

    def test_defaults(self):
        caps = Capabilities()

        assert not caps.supports_tool_use_start
        assert not caps.supports_parallel_tool_use

    def test_from_camel_case_flags(self):
        caps = Capabilities.from_flags(supportToolUseStart=True, supportParallelToolUse=1)

        assert caps.supports_tool_use_start is True
        assert caps.supports_parallel_tool_use is True


class TestWireRequest:
    """Test the ready-to-send request."""

    def test_body_json_keeps_unicode(self):
        wire = WireRequest(url="https://x.test", headers={}, body={"text": "héllo"})

        assert "héllo" in wire.body_json()
        assert wire.to_dict()["body"] == {"text": "héllo"}


# ============================================================
# Conversation
# ============================================================

class TestConversation:
    """Test canonical conversation handling."""

    def test_tool_message_requires_call_id(self):
        with pytest.raises(ValidationError):
            ChatMessage(role="tool", content="result")

    def test_function_arguments_serialized(self):
        assert json.loads(FunctionCall(name="f", arguments={"a": 1}).arguments) == {"a": 1}
        assert FunctionCall(name="f", arguments=None).arguments == "{}"

    def test_content_parts_text(self):
        msg = ChatMessage(role=Role.USER, content=[
            {"type": "text", "text": "Hello "},
            {"type": "image_url", "image_url": {"url": "https://x.test/a.png"}},
            {"type": "text", "text": "world"},
        ])

        assert msg.text() == "Hello world"

    def test_system_prompt_merged(self):
        conversation = Conversation(
            system="Rule one",
            messages=[ChatMessage.system("Rule two"), ChatMessage.user("hi")],
        )

        assert conversation.system_prompt() == "Rule one\n\nRule two"
        assert [m.role for m in conversation.dialogue()] == [Role.USER]

    def test_empty_messages_dropped(self):
        conversation = Conversation(messages=[
            ChatMessage.user("   "),
            ChatMessage.user("hi"),
            ChatMessage.assistant(""),
        ])

        assert conversation.to_openai_messages() == [{"role": "user", "content": "hi"}]

    def test_tool_calls_rendered_as_text_without_tools(self):
        conversation = Conversation(messages=[
            ChatMessage.assistant("Checking", tool_calls=[
                {"id": "c1", "function": {"name": "lookup", "arguments": '{"q": 1}'}},
            ]),
        ])

        messages = conversation.to_openai_messages(include_tools=False)

        assert messages == [{
            "role": "assistant",
            "content": 'Checking\n[tool_call name=lookup id=c1]\n{"q": 1}',
        }]


# ============================================================
# Configuration
# ============================================================

class TestProviderType:
    """Test provider type parsing."""

    @pytest.mark.parametrize("raw,expected", [
        ("openai", ProviderType.OPENAI_COMPATIBLE),
        ("openai-responses", ProviderType.OPENAI_RESPONSES),
        ("Claude", ProviderType.ANTHROPIC),
        ("google", ProviderType.GEMINI_AI_STUDIO),
        (ProviderType.ANTHROPIC, ProviderType.ANTHROPIC),
    ])
    def test_aliases(self, raw, expected):
        assert ProviderType.parse(raw) == expected

    def test_unknown_type(self):
        with pytest.raises(ConfigurationError) as exc_info:
            ProviderType.parse("bedrock")

        assert exc_info.value.error.details == {"param": "type"}


class TestProviderConfig:
    """Test provider configuration."""

    def test_base_url_normalized(self):
        config = ProviderConfig(type="anthropic", base_url=" https://api.test/v1/ ", api_key="k", model="m")

        assert config.base_url == "https://api.test/v1"
        assert config.name == "anthropic"
        config.validate()

    @pytest.mark.parametrize("overrides,param", [
        ({"base_url": ""}, "base_url"),
        ({"base_url": "ftp://api.test"}, "base_url"),
        ({"model": " "}, "model"),
        ({"api_key": ""}, "api_key"),
        ({"timeout_seconds": 0}, "timeout"),
    ])
    def test_validation(self, overrides, param):
        values = {"type": "openai_compatible", "base_url": "https://api.test", "api_key": "k", "model": "m"}
        values.update(overrides)

        with pytest.raises(ConfigurationError) as exc_info:
            ProviderConfig(**values).validate()

        assert exc_info.value.error.details["param"] == param

    def test_authorization_header_replaces_api_key(self):
        config = ProviderConfig(
            type="openai_compatible",
            base_url="https://api.test",
            model="m",
            extra_headers={"Authorization": "Bearer proxy"},
        )

        config.validate()

    def test_from_env(self, monkeypatch):
        monkeypatch.setenv("CHATBRIDGE_TYPE", "gemini")
        monkeypatch.setenv("CHATBRIDGE_API_KEY", "gk")
        monkeypatch.setenv("CHATBRIDGE_MODEL", "gemini-pro")
        monkeypatch.setenv("CHATBRIDGE_TIMEOUT", "30")
        monkeypatch.delenv("CHATBRIDGE_BASE_URL", raising=False)
        monkeypatch.delenv("CHATBRIDGE_MAX_RETRIES", raising=False)

        config = ProviderConfig.from_env()

        assert config.type == ProviderType.GEMINI_AI_STUDIO
        assert config.base_url == DEFAULT_BASE_URLS[ProviderType.GEMINI_AI_STUDIO]
        assert config.timeout_seconds == 30.0
        assert config.max_retries == 2

    def test_from_env_bad_number(self, monkeypatch):
        monkeypatch.setenv("APP_TIMEOUT", "soon")

        with pytest.raises(ConfigurationError):
            ProviderConfig.from_env("APP")

    def test_positive_int(self):
        assert positive_int(5) == 5
        assert positive_int(2.9) == 2
        assert positive_int(0) is None
        assert positive_int(True) is None
        assert positive_int("5") is None


# ============================================================
# Cancellation
# ============================================================

class TestCancellationToken:
    """Test cooperative cancellation."""

    def test_cancel(self):
        token = CancellationToken()
        assert not token.is_cancelled

        token.cancel("closed tab")

        assert token.is_cancelled
        assert token.reason == "closed tab"
        with pytest.raises(StreamCancelledError):
            token.raise_if_cancelled("anthropic")

    def test_check_cancelled_without_token(self):
        check_cancelled(None)

"""Tests for chatloop core data types."""

from __future__ import annotations

from chatloop.types import (
    ChatMessage,
    ChatRole,
    Conversation,
    FunctionCall,
    FunctionResult,
    LLMResponse,
    PinLocation,
    StreamDelta,
    TokenUsageTracker,
)


class TestFunctionCall:
    def test_parsed_arguments(self):
        call = FunctionCall(name="add", arguments='{"a": 2, "b": 3}')
        assert call.parsed_arguments() == {"a": 2, "b": 3}

    def test_parsed_arguments_malformed(self):
        assert FunctionCall(name="add", arguments="{oops").parsed_arguments() == {}

    def test_parsed_arguments_non_object(self):
        assert FunctionCall(name="add", arguments="[1, 2]").parsed_arguments() == {}

    def test_parsed_arguments_empty(self):
        assert FunctionCall(name="add", arguments="").parsed_arguments() == {}


class TestChatMessage:
    def test_defaults(self):
        msg = ChatMessage(role=ChatRole.USER, content="hi")
        assert msg.pin_location is PinLocation.NONE
        assert msg.function_calls == []
        assert msg.function_result is None
        assert not msg.is_soft_deleted
        assert msg.created_at.tzinfo is not None

    def test_soft_delete_flags(self):
        assert ChatMessage(role=ChatRole.USER, is_deleted=True).is_soft_deleted
        assert ChatMessage(role=ChatRole.USER, is_unsent=True).is_soft_deleted

    def test_content_length_counts_result_value(self):
        msg = ChatMessage(
            role=ChatRole.FUNCTION,
            function_result=FunctionResult(name="f", value="12345"),
        )
        assert msg.content_length == 5
        assert ChatMessage(role=ChatRole.USER, content="abc").content_length == 3


class TestConversation:
    def test_helpers_append_in_order(self):
        conv = Conversation.with_system_message("Be brief.")
        conv.from_user("Hi", user_name="alice")
        conv.from_function_calls(FunctionCall(name="f", tool_call_id="c1"))
        conv.from_function(FunctionResult(name="f", value="ok", tool_call_id="c1"))
        conv.from_chatbot("Done")

        roles = [m.role for m in conv.messages]
        assert roles == [
            ChatRole.SYSTEM, ChatRole.USER, ChatRole.CHATBOT,
            ChatRole.FUNCTION, ChatRole.CHATBOT,
        ]
        assert conv.messages[1].user_name == "alice"
        assert conv.messages[2].has_function_calls
        assert len(conv) == 5

    def test_from_user_images(self):
        conv = Conversation()
        msg = conv.from_user("look", image_urls=["https://x/img.png"])
        assert msg.image_urls == ["https://x/img.png"]


class TestLLMResponse:
    def test_has_function_calls(self):
        assert not LLMResponse(content="hi").has_function_calls
        assert LLMResponse(function_calls=[FunctionCall(name="f")]).has_function_calls


class TestStreamDelta:
    def test_starts_function_call(self):
        assert StreamDelta(function_name="f").starts_function_call
        assert not StreamDelta(arguments="{}").starts_function_call


class TestTokenUsageTracker:
    def test_accumulates(self):
        tracker = TokenUsageTracker()
        tracker.add({"prompt_tokens": 10, "cached_tokens": 4, "completion_tokens": 5})
        tracker.add({"prompt_tokens": 1, "completion_tokens": 2})
        assert tracker.prompt_tokens == 11
        assert tracker.cached_tokens == 4
        assert tracker.completion_tokens == 7
        assert tracker.total_tokens == 18

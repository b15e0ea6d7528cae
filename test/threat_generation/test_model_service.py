"""
Unit tests for model_service.py

Tests the provider abstraction including:
- Capability queries for Bedrock and OpenAI providers
- Content block conversion per backend
- Response mapping (text, usage, finish reason)
- Error and timeout mapping to ProviderError
"""

from unittest.mock import Mock

import httpx
import pytest
from botocore.exceptions import ReadTimeoutError
from constants import ContentKind, IMAGE_MIME_TYPES
from content import DocumentBlock, ImageBlock, Message, TextBlock
from exceptions import ProviderError, ProviderTimeoutError
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from model_service import BedrockProvider, OpenAIProvider, _document_name


def _ai_message(content="{}", **metadata):
    return AIMessage(
        content=content,
        usage_metadata={"input_tokens": 10, "output_tokens": 5, "total_tokens": 15},
        response_metadata=metadata,
    )


@pytest.fixture
def chat_model():
    model = Mock()
    model.invoke.return_value = _ai_message('{"threats": []}', stopReason="end_turn")
    return model


@pytest.fixture
def http_client():
    client = Mock()
    client.get.return_value = Mock(content=b"binary-bytes", raise_for_status=Mock())
    return client


@pytest.fixture
def bedrock(chat_model, http_client):
    return BedrockProvider(chat_model, "claude-test", http_client=http_client)


@pytest.fixture
def openai(chat_model):
    return OpenAIProvider(chat_model, "gpt-test")


class TestCapabilities:
    """Tests for capability queries."""

    def test_bedrock_supports_documents(self, bedrock):
        assert bedrock.supports_content_type(ContentKind.DOCUMENT)
        assert bedrock.supports_content_type("image")
        assert bedrock.supports_document_type() is True
        assert bedrock.supported_image_mime_types() == IMAGE_MIME_TYPES

    def test_openai_does_not_support_documents(self, openai):
        assert openai.supports_content_type("text")
        assert not openai.supports_content_type("document")
        assert openai.supports_document_type() is False
        assert "image/webp" in openai.supported_image_mime_types()


class TestComplete:
    """Tests for the shared completion round trip."""

    def test_empty_messages_rejected(self, bedrock, chat_model):
        with pytest.raises(ValueError):
            bedrock.complete([])

        chat_model.invoke.assert_not_called()

    def test_maps_response(self, bedrock):
        response = bedrock.complete([Message(role="user", content="hello")])

        assert response.content == '{"threats": []}'
        assert response.model == "claude-test"
        assert response.finish_reason == "stop"
        assert response.usage.total_tokens == 15

    def test_system_prompt_becomes_first_message(self, bedrock, chat_model):
        bedrock.complete(
            [Message(role="user", content="hello")],
            system_prompt="be precise",
            max_tokens=1000,
            temperature=0.2,
        )

        messages, = chat_model.invoke.call_args.args
        assert isinstance(messages[0], SystemMessage)
        assert messages[0].content == "be precise"
        assert isinstance(messages[1], HumanMessage)
        assert chat_model.invoke.call_args.kwargs == {
            "max_tokens": 1000,
            "temperature": 0.2,
        }

    def test_system_message_used_without_explicit_prompt(self, openai, chat_model):
        openai.complete(
            [
                Message(role="system", content="from message"),
                Message(role="user", content="hi"),
                Message(role="assistant", content="earlier answer"),
            ]
        )

        messages = chat_model.invoke.call_args.args[0]
        assert [type(m) for m in messages] == [SystemMessage, HumanMessage, AIMessage]
        assert messages[0].content == "from message"

    def test_max_tokens_finish_reason_is_length(self, bedrock, chat_model):
        chat_model.invoke.return_value = _ai_message("{", stopReason="max_tokens")

        response = bedrock.complete([Message(role="user", content="hi")])

        assert response.finish_reason == "length"

    def test_list_content_is_joined(self, openai, chat_model):
        chat_model.invoke.return_value = _ai_message(
            [{"type": "text", "text": '{"a": '}, {"type": "text", "text": "1}"}],
            finish_reason="stop",
            model_name="gpt-test-2024",
        )

        response = openai.complete([Message(role="user", content="hi")])

        assert response.content == '{"a": 1}'
        assert response.model == "gpt-test-2024"


class TestBedrockContent:
    """Tests for Bedrock inline-bytes conversion."""

    def test_image_and_document_are_fetched_inline(self, bedrock, chat_model, http_client):
        # Arrange
        blocks = [
            TextBlock(text="context"),
            ImageBlock(url="https://files/diagram.png", mime_type="image/png"),
            DocumentBlock(url="https://files/design.pdf", filename="system_design.v2.pdf"),
        ]

        # Act
        bedrock.complete([Message(role="user", content=blocks)])

        # Assert
        content = chat_model.invoke.call_args.args[0][0].content
        assert content[0] == {"type": "text", "text": "context"}
        assert content[1] == {
            "type": "image",
            "image": {"format": "png", "source": {"bytes": b"binary-bytes"}},
        }
        assert content[2]["document"]["format"] == "pdf"
        assert content[2]["document"]["name"] == "system design v2"
        assert http_client.get.call_count == 2

    def test_unreadable_file_is_dropped(self, bedrock, http_client, chat_model):
        # Arrange
        def get(url):
            if url.endswith("broken.png"):
                raise httpx.ConnectError("404 gone")
            return Mock(content=b"png-bytes", raise_for_status=Mock())

        http_client.get.side_effect = get
        blocks = [
            TextBlock(text="system context"),
            ImageBlock(url="https://files.example.com/ok.png", mime_type="image/png"),
            ImageBlock(url="https://files.example.com/broken.png", mime_type="image/png"),
        ]

        # Act
        response = bedrock.complete([Message(role="user", content=blocks)])

        # Assert
        chat_model.invoke.assert_called_once()
        content = chat_model.invoke.call_args.args[0][0].content
        assert content == [
            {"type": "text", "text": "system context"},
            {"type": "image", "image": {"format": "png", "source": {"bytes": b"png-bytes"}}},
        ]
        assert response.content == '{"threats": []}'

    def test_nothing_convertible_is_provider_error(self, bedrock, http_client, chat_model):
        http_client.get.side_effect = httpx.ConnectError("refused")

        with pytest.raises(ProviderError) as exc_info:
            bedrock.complete(
                [
                    Message(
                        role="user",
                        content=[ImageBlock(url="https://x/a.png", mime_type="image/png")],
                    )
                ]
            )

        assert exc_info.value.provider == "bedrock"
        chat_model.invoke.assert_not_called()


class TestOpenAIContent:
    """Tests for OpenAI URL-based conversion."""

    def test_image_passed_by_url_with_high_detail(self, openai, chat_model):
        openai.complete(
            [
                Message(
                    role="user",
                    content=[ImageBlock(url="https://files/a.jpg", mime_type="image/jpeg")],
                )
            ]
        )

        content = chat_model.invoke.call_args.args[0][0].content
        assert content == [
            {"type": "image_url", "image_url": {"url": "https://files/a.jpg", "detail": "high"}}
        ]

    def test_documents_are_dropped(self, openai, chat_model):
        openai.complete(
            [
                Message(
                    role="user",
                    content=[
                        TextBlock(text="see attached"),
                        DocumentBlock(url="https://files/a.pdf", filename="a.pdf"),
                    ],
                )
            ]
        )

        content = chat_model.invoke.call_args.args[0][0].content
        assert content == [{"type": "text", "text": "see attached"}]

    def test_json_response_format(self, openai, chat_model):
        openai.complete([Message(role="user", content="hi")], response_format="json")

        assert chat_model.invoke.call_args.kwargs["response_format"] == {
            "type": "json_object"
        }


class TestErrorMapping:
    """Tests for provider error mapping."""

    def test_generic_failure_is_provider_error(self, openai, chat_model):
        chat_model.invoke.side_effect = RuntimeError("401 invalid api key")

        with pytest.raises(ProviderError) as exc_info:
            openai.complete([Message(role="user", content="hi")])

        assert not isinstance(exc_info.value, ProviderTimeoutError)
        assert str(exc_info.value) == "openai provider error: 401 invalid api key"

    @pytest.mark.parametrize(
        "error",
        [
            ReadTimeoutError(endpoint_url="https://bedrock-runtime"),
            httpx.ReadTimeout("read timed out"),
            TimeoutError(),
        ],
    )
    def test_timeouts_are_distinct(self, bedrock, chat_model, error):
        chat_model.invoke.side_effect = error

        with pytest.raises(ProviderTimeoutError) as exc_info:
            bedrock.complete([Message(role="user", content="hi")])

        assert "timed out after 120s" in str(exc_info.value)


class TestDocumentName:
    """Tests for _document_name."""

    def test_sanitizes_name(self):
        assert _document_name("my_design.v2.pdf") == "my design v2"

    def test_defaults_when_missing(self):
        assert _document_name(None) == "document"
        assert _document_name("___.pdf") == "document"

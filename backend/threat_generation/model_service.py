"""Model service layer: capability-typed LLM providers over langchain chat models."""

import re
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet, List, Optional, Sequence, Union

import httpx
from botocore.exceptions import ConnectTimeoutError, ReadTimeoutError
from constants import (
    DEFAULT_MAX_TOKENS,
    DEFAULT_TEMPERATURE,
    DEFAULT_TIMEOUT_SECONDS,
    ERROR_PROVIDER_TIMEOUT,
    FINISH_REASON_ERROR,
    FINISH_REASON_MAP,
    FINISH_REASON_STOP,
    IMAGE_MIME_TYPES,
    MODEL_PROVIDER_BEDROCK,
    MODEL_PROVIDER_OPENAI,
    RESPONSE_FORMAT_JSON,
    RESPONSE_FORMAT_TEXT,
    ContentKind,
)
from content import (
    CompletionResponse,
    ContentBlock,
    DocumentBlock,
    ImageBlock,
    Message,
    TextBlock,
    Usage,
)
from exceptions import ContextItemError, ProviderError, ProviderTimeoutError
from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from monitoring import logger

# Bedrock document names allow alphanumerics, whitespace, hyphens, parentheses and brackets
_DOCUMENT_NAME_INVALID = re.compile(r"[^A-Za-z0-9\s\-\(\)\[\]]")
_WHITESPACE_RUN = re.compile(r"\s+")


class LLMProvider(ABC):
    """
    Capability-negotiating interface for LLM backends.

    Implementations perform exactly one network round trip per complete()
    call and never retry; any failure surfaces as a single ProviderError.
    """

    name: str = "provider"
    content_types: FrozenSet[ContentKind] = frozenset({ContentKind.TEXT})

    @abstractmethod
    def complete(
        self,
        messages: Sequence[Message],
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        response_format: str = RESPONSE_FORMAT_TEXT,
    ) -> CompletionResponse:
        """Send a completion request to the LLM."""

    def supports_content_type(self, kind: Union[ContentKind, str]) -> bool:
        return ContentKind(kind) in self.content_types

    def supported_image_mime_types(self) -> List[str]:
        if ContentKind.IMAGE not in self.content_types:
            return []
        return list(IMAGE_MIME_TYPES)

    def supports_document_type(self) -> bool:
        return ContentKind.DOCUMENT in self.content_types


class ChatModelProvider(LLMProvider):
    """Shared round trip for providers backed by a langchain chat model."""

    def __init__(
        self,
        chat_model: Any,
        model_id: str,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        timeout_seconds: int = DEFAULT_TIMEOUT_SECONDS,
    ) -> None:
        self.chat_model = chat_model
        self.model_id = model_id
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.timeout_seconds = timeout_seconds

    def complete(
        self,
        messages: Sequence[Message],
        system_prompt: Optional[str] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
        response_format: str = RESPONSE_FORMAT_TEXT,
    ) -> CompletionResponse:
        if not messages:
            raise ValueError("messages must contain at least one message")

        lc_messages = self._build_messages(messages, system_prompt)
        invoke_kwargs = self._invoke_kwargs(
            max_tokens or self.max_tokens,
            self.temperature if temperature is None else temperature,
            response_format,
        )

        logger.info(
            "Invoking model",
            provider=self.name,
            model_id=self.model_id,
            message_count=len(lc_messages),
        )

        try:
            response = self.chat_model.invoke(lc_messages, **invoke_kwargs)
        except Exception as e:
            raise self._wrap_error(e) from e

        completion = self._to_completion(response)
        logger.info(
            "Model invocation completed",
            provider=self.name,
            model=completion.model,
            finish_reason=completion.finish_reason,
            usage=completion.usage.model_dump() if completion.usage else None,
        )
        return completion

    def _build_messages(
        self, messages: Sequence[Message], system_prompt: Optional[str]
    ) -> List[BaseMessage]:
        system_text = system_prompt
        lc_messages: List[BaseMessage] = []

        for message in messages:
            if message.role == "system":
                if system_text is None:
                    system_text = self._flatten_text(message.content)
                continue

            content = self._convert_content(message.content)
            if message.role == "assistant":
                lc_messages.append(AIMessage(content=content))
            else:
                lc_messages.append(HumanMessage(content=content))

        if system_text:
            lc_messages.insert(0, SystemMessage(content=system_text))
        return lc_messages

    @staticmethod
    def _flatten_text(content: Union[str, List[ContentBlock]]) -> str:
        if isinstance(content, str):
            return content
        return "\n".join(block.text for block in content if isinstance(block, TextBlock))

    def _convert_content(
        self, content: Union[str, List[ContentBlock]]
    ) -> Union[str, List[Dict[str, Any]]]:
        if isinstance(content, str):
            return content

        converted = []
        for block in content:
            if isinstance(block, TextBlock):
                converted.append({"type": "text", "text": block.text})
                continue
            if not isinstance(block, (ImageBlock, DocumentBlock)):
                raise ProviderError(
                    self.name, f"Unsupported content type: {type(block).__name__}"
                )

            try:
                if isinstance(block, ImageBlock):
                    item = self._convert_image(block)
                else:
                    item = self._convert_document(block)
            except ContextItemError as e:
                logger.warning(
                    "Dropping unreadable content block",
                    provider=self.name,
                    block_type=block.type,
                    reason=str(e),
                )
                continue
            if item is not None:
                converted.append(item)

        if content and not converted:
            raise ProviderError(self.name, "No content block could be converted")
        return converted

    @abstractmethod
    def _convert_image(self, block: ImageBlock) -> Dict[str, Any]:
        """Convert an image reference into the backend's content format."""

    @abstractmethod
    def _convert_document(self, block: DocumentBlock) -> Optional[Dict[str, Any]]:
        """Convert a document reference, or return None to drop it."""

    def _invoke_kwargs(
        self, max_tokens: int, temperature: float, response_format: str
    ) -> Dict[str, Any]:
        return {"max_tokens": max_tokens, "temperature": temperature}

    def _wrap_error(self, error: Exception) -> ProviderError:
        if isinstance(error, ProviderError):
            return error
        if _is_timeout(error):
            logger.error(
                "Model invocation timed out",
                provider=self.name,
                timeout_seconds=self.timeout_seconds,
                error=str(error),
            )
            return ProviderTimeoutError(
                self.name, f"{ERROR_PROVIDER_TIMEOUT} after {self.timeout_seconds}s"
            )
        logger.error("Model invocation failed", provider=self.name, error=str(error))
        return ProviderError(self.name, str(error) or type(error).__name__)

    def _to_completion(self, response: Any) -> CompletionResponse:
        metadata = getattr(response, "response_metadata", None) or {}
        usage_metadata = getattr(response, "usage_metadata", None)

        usage = None
        if usage_metadata:
            input_tokens = usage_metadata.get("input_tokens", 0)
            output_tokens = usage_metadata.get("output_tokens", 0)
            usage = Usage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                total_tokens=usage_metadata.get(
                    "total_tokens", input_tokens + output_tokens
                ),
            )

        raw_reason = metadata.get("finish_reason") or metadata.get("stopReason")
        if raw_reason is None:
            finish_reason = FINISH_REASON_STOP
        else:
            finish_reason = FINISH_REASON_MAP.get(str(raw_reason), FINISH_REASON_ERROR)

        return CompletionResponse(
            content=_extract_text(response.content),
            model=metadata.get("model_name") or metadata.get("model_id") or self.model_id,
            usage=usage,
            finish_reason=finish_reason,
        )


class BedrockProvider(ChatModelProvider):
    """
    Anthropic Claude on Amazon Bedrock.

    Supports: text, images (JPEG, PNG, GIF, WebP), PDFs. The Converse API
    only accepts inline bytes, so referenced files are fetched here.
    Files that cannot be fetched are dropped from the request.
    """

    name = MODEL_PROVIDER_BEDROCK
    content_types = frozenset({ContentKind.TEXT, ContentKind.IMAGE, ContentKind.DOCUMENT})

    def __init__(self, *args, http_client: Optional[httpx.Client] = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.http_client = http_client

    def _fetch(self, url: str) -> bytes:
        try:
            if self.http_client is not None:
                response = self.http_client.get(url)
            else:
                response = httpx.get(
                    url, timeout=self.timeout_seconds, follow_redirects=True
                )
            response.raise_for_status()
        except httpx.HTTPError as e:
            raise ContextItemError(url, f"failed to fetch: {e}") from e
        return response.content

    def _convert_image(self, block: ImageBlock) -> Dict[str, Any]:
        return {
            "type": "image",
            "image": {
                "format": block.mime_type.split("/", 1)[1],
                "source": {"bytes": self._fetch(block.url)},
            },
        }

    def _convert_document(self, block: DocumentBlock) -> Optional[Dict[str, Any]]:
        return {
            "type": "document",
            "document": {
                "format": "pdf",
                "name": _document_name(block.filename),
                "source": {"bytes": self._fetch(block.url)},
            },
        }


class OpenAIProvider(ChatModelProvider):
    """
    OpenAI chat completions.

    Supports: text, images (JPEG, PNG, GIF, WebP) passed by URL.
    PDFs are not supported and are dropped with a warning.
    """

    name = MODEL_PROVIDER_OPENAI
    content_types = frozenset({ContentKind.TEXT, ContentKind.IMAGE})

    def _convert_image(self, block: ImageBlock) -> Dict[str, Any]:
        return {"type": "image_url", "image_url": {"url": block.url, "detail": "high"}}

    def _convert_document(self, block: DocumentBlock) -> Optional[Dict[str, Any]]:
        logger.warning(
            "OpenAI does not support PDF documents, skipping",
            filename=block.filename,
        )
        return None

    def _invoke_kwargs(
        self, max_tokens: int, temperature: float, response_format: str
    ) -> Dict[str, Any]:
        kwargs = super()._invoke_kwargs(max_tokens, temperature, response_format)
        if response_format == RESPONSE_FORMAT_JSON:
            kwargs["response_format"] = {"type": "json_object"}
        return kwargs


def _extract_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    texts = []
    for block in content or []:
        if isinstance(block, str):
            texts.append(block)
        elif isinstance(block, dict) and block.get("type") == "text":
            texts.append(block.get("text", ""))
    return "".join(texts)


def _document_name(filename: Optional[str]) -> str:
    stem = (filename or "document").rsplit(".", 1)[0]
    cleaned = _WHITESPACE_RUN.sub(" ", _DOCUMENT_NAME_INVALID.sub(" ", stem)).strip()
    return cleaned or "document"


def _is_timeout(error: Exception) -> bool:
    if isinstance(error, (ReadTimeoutError, ConnectTimeoutError, httpx.TimeoutException)):
        return True
    if "timeout" in type(error).__name__.lower():
        return True
    return "timed out" in str(error).lower()

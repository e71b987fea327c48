import httpx
import openai
import pytest
from langchain_core.messages import AIMessage, HumanMessage, SystemMessage
from langchain_core.outputs import ChatGeneration, LLMResult

from rag_pipeline.chat.client import LangChainChatClient
from rag_pipeline.chat.fallback import CANNOT_ANSWER, ExtractiveChatClient
from rag_pipeline.chat.composer import ContextualChatComposer
from rag_pipeline.errors import ChatRequestError, TransportError
from rag_pipeline.types import ChatMessage

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


class FakeLLM:
    def __init__(self, *, texts: list[str] | None = None, error: Exception | None = None) -> None:
        self.texts = texts or []
        self.error = error
        self.batches: list[list] = []

    async def agenerate(self, batches: list[list]) -> LLMResult:
        self.batches.extend(batches)
        if self.error is not None:
            raise self.error
        return LLMResult(
            generations=[[ChatGeneration(message=AIMessage(content=text)) for text in self.texts]],
            llm_output={"token_usage": {"prompt_tokens": 12, "completion_tokens": 5}},
        )


@pytest.mark.asyncio
async def test_choices_are_returned_and_roles_mapped() -> None:
    llm = FakeLLM(texts=["Part one. ", "Part two."])
    client = LangChainChatClient(llm)

    completion = await client.complete(
        [
            ChatMessage(role="system", content="rules"),
            ChatMessage(role="user", content="question"),
            ChatMessage(role="assistant", content="earlier answer"),
        ]
    )

    assert completion.choices == ["Part one. ", "Part two."]
    assert completion.text == "Part one. Part two."
    assert completion.prompt_tokens == 12
    assert [type(message) for message in llm.batches[0]] == [SystemMessage, HumanMessage, AIMessage]


@pytest.mark.asyncio
async def test_connection_and_timeout_errors_become_transport_errors() -> None:
    for error in (openai.APIConnectionError(request=_REQUEST), openai.APITimeoutError(request=_REQUEST)):
        with pytest.raises(TransportError):
            await LangChainChatClient(FakeLLM(error=error)).complete([ChatMessage("user", "hi")])


@pytest.mark.asyncio
async def test_error_responses_become_chat_request_errors() -> None:
    response = httpx.Response(429, request=_REQUEST)
    error = openai.RateLimitError(
        "Rate limit reached",
        response=response,
        body={"type": "rate_limit_exceeded", "message": "Rate limit reached"},
    )

    with pytest.raises(ChatRequestError) as excinfo:
        await LangChainChatClient(FakeLLM(error=error)).complete([ChatMessage("user", "hi")])

    assert excinfo.value.status_code == 429
    assert excinfo.value.error_type == "rate_limit_exceeded"


@pytest.mark.asyncio
async def test_extractive_client_quotes_reference_content() -> None:
    composer = ContextualChatComposer(ExtractiveChatClient(max_lines=2))

    answer = await composer.compose_and_ask("What is required?", "Encrypt data.\nRotate keys.\nAudit.")
    refusal = await composer.compose_and_ask("What is required?", "")

    assert answer == "1. Encrypt data.\n2. Rotate keys."
    assert refusal == CANNOT_ANSWER

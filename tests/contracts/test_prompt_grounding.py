from rag_pipeline.chat.composer import (
    CONTEXT_HEADER,
    NO_CONTEXT_NOTICE,
    QUESTION_HEADER,
    ContextualChatComposer,
)
from rag_pipeline.chat.fallback import ExtractiveChatClient


def _composer() -> ContextualChatComposer:
    return ContextualChatComposer(ExtractiveChatClient())


def test_prompt_restricts_answers_to_reference_content() -> None:
    prompt = _composer().build_prompt("What must be encrypted?", "Customer data at rest.")

    assert "Answer strictly from the reference content" in prompt
    assert "do not rely on outside knowledge" in prompt
    assert "say so plainly" in prompt


def test_context_sits_between_headers_verbatim() -> None:
    context = "Line one.\nLine two with {braces}."
    prompt = _composer().build_prompt("Which lines?", context)

    body = prompt.split(CONTEXT_HEADER, 1)[1]
    assert body.startswith("\n" + context + "\n")
    assert prompt.endswith(f"{QUESTION_HEADER} Which lines?")


def test_blank_context_states_there_is_no_basis() -> None:
    prompt = _composer().build_prompt("Anything?", "  \n")

    assert NO_CONTEXT_NOTICE in prompt
    assert "no basis for an answer" in prompt

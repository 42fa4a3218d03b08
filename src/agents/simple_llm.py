"""Simple LLM streaming calls used as the agents' completion gateway."""

import logging
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from src.api.config import settings
from src.api.models.agent_team import AgentConfig
from src.api.services.orchestration.context_builder import TurnContext
from src.utils.llm_logger import get_llm_logger

logger = logging.getLogger(__name__)


class CompletionGateway(Protocol):
    """Produces a finite, ordered stream of text fragments for one agent turn."""

    def stream(
        self,
        *,
        session_id: str,
        agent: AgentConfig,
        context: TurnContext,
    ) -> AsyncIterator[str]:
        ...


def convert_to_langchain_messages(
    messages: List[Dict[str, str]],
    system_prompt: Optional[str] = None,
) -> List[BaseMessage]:
    """Convert role/content dicts into LangChain messages."""
    langchain_messages: List[BaseMessage] = []
    if system_prompt:
        langchain_messages.append(SystemMessage(content=system_prompt))
    for msg in messages:
        role = msg.get("role")
        content = msg.get("content", "")
        if role == "assistant":
            langchain_messages.append(AIMessage(content=content))
        elif role == "system":
            langchain_messages.append(SystemMessage(content=content))
        else:
            langchain_messages.append(HumanMessage(content=content))
    return langchain_messages


def create_llm(
    model_id: Optional[str] = None,
    temperature: Optional[float] = None,
) -> ChatOpenAI:
    """Create a streaming chat model from application settings."""
    llm_kwargs: Dict[str, Any] = {
        "model": model_id or settings.default_model_id,
        "streaming": True,
        "temperature": settings.llm_temperature if temperature is None else temperature,
        "max_retries": 0,
    }
    if settings.openai_api_key:
        llm_kwargs["api_key"] = settings.openai_api_key
    if settings.openai_base_url:
        llm_kwargs["base_url"] = settings.openai_base_url
    if settings.llm_request_timeout_seconds:
        llm_kwargs["timeout"] = settings.llm_request_timeout_seconds
    return ChatOpenAI(**llm_kwargs)


def _chunk_text(chunk: Any) -> str:
    content = getattr(chunk, "content", chunk)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        # Content blocks: keep text parts only.
        texts = []
        for block in content:
            if isinstance(block, str):
                texts.append(block)
            elif isinstance(block, dict) and block.get("type") == "text":
                texts.append(str(block.get("text") or ""))
        return "".join(texts)
    return ""


async def call_llm_stream(
    messages: List[Dict[str, str]],
    session_id: str = "unknown",
    model_id: Optional[str] = None,
    system_prompt: Optional[str] = None,
    temperature: Optional[float] = None,
    llm: Optional[Any] = None,
) -> AsyncIterator[str]:
    """
    Streaming LLM call, yields text fragments one by one.

    No retry is attempted; a provider failure propagates to the caller after
    being recorded by the LLM interaction logger.

    Args:
        messages: Message list [{"role": "user/assistant", "content": "..."}]
        session_id: Session ID (for logging)
        model_id: Model ID, if None uses the configured default model
        system_prompt: System prompt (optional)
        temperature: Sampling temperature override (optional)
        llm: Pre-built chat model (optional, mainly for tests)

    Yields:
        Non-empty text fragments in arrival order
    """
    llm_logger = get_llm_logger()
    chat_model = llm if llm is not None else create_llm(model_id, temperature)
    langchain_messages = convert_to_langchain_messages(messages, system_prompt)
    model_name = getattr(chat_model, "model_name", None) or model_id or settings.default_model_id

    full_response = ""
    try:
        async for chunk in chat_model.astream(langchain_messages):
            text = _chunk_text(chunk)
            if not text:
                continue
            full_response += text
            yield text
    except Exception as e:
        logger.error("LLM stream failed for session %s: %s", session_id, e)
        llm_logger.log_error(session_id, e, context=f"stream model={model_name} partial_chars={len(full_response)}")
        raise

    llm_logger.log_interaction(
        session_id=session_id,
        messages_sent=langchain_messages,
        response_received=AIMessage(content=full_response),
        model=model_name,
    )


class LLMCompletionGateway:
    """Completion gateway backed by an OpenAI-compatible chat model."""

    def __init__(self, llm_factory=create_llm):
        self.llm_factory = llm_factory

    def stream(
        self,
        *,
        session_id: str,
        agent: AgentConfig,
        context: TurnContext,
    ) -> AsyncIterator[str]:
        llm = self.llm_factory(agent.model_id, agent.temperature)
        return call_llm_stream(
            context.to_messages(),
            session_id=session_id,
            model_id=agent.model_id,
            system_prompt=context.instructions,
            llm=llm,
        )

"""Generation helpers shared by the pipeline nodes and the eval harness."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from langchain_core.messages import AIMessage, BaseMessage, HumanMessage
from langchain_core.prompts import ChatPromptTemplate, MessagesPlaceholder
from langchain_openai import ChatOpenAI

from digital_twin.services.errors import ProviderError
from digital_twin.services.settings import OPENAI_MAX_TOKENS, OPENAI_MODEL, OPENAI_TEMPERATURE

logger = logging.getLogger("digital_twin.generation")

HISTORY_TURNS = 6

PROMPT = ChatPromptTemplate.from_messages(
    [
        ("system", "{system_prompt}"),
        MessagesPlaceholder("history"),
        ("human", "Context from my personal data:\n{context}\n\nQuestion: {query}"),
    ]
)


def history_to_messages(history: Optional[Sequence[Dict[str, Any]]],
                        limit: int = HISTORY_TURNS) -> List[BaseMessage]:
    """Keep the last `limit` turns as chat messages; roles: user/human, assistant/ai."""
    messages: List[BaseMessage] = []
    for turn in list(history or [])[-limit:]:
        role = (turn.get("role") or "").lower()
        content = turn.get("content") or ""
        if role in ("user", "human"):
            messages.append(HumanMessage(content=content))
        elif role in ("assistant", "ai"):
            messages.append(AIMessage(content=content))
    return messages


class OpenAIGenerator:
    def __init__(self, llm: Optional[ChatOpenAI] = None):
        self.llm = llm or ChatOpenAI(
            model=OPENAI_MODEL,
            temperature=OPENAI_TEMPERATURE,
            max_tokens=OPENAI_MAX_TOKENS,
        )

    def generate(self, system_prompt: str, context: str, query: str,
                 history: Optional[Sequence[Dict[str, Any]]] = None) -> str:
        msgs = PROMPT.format_messages(
            system_prompt=system_prompt,
            history=history_to_messages(history),
            context=context,
            query=query,
        )
        try:
            out = self.llm.invoke(msgs)
        except Exception as exc:
            logger.error("Generation error: %s", exc)
            raise ProviderError("Failed to generate response") from exc
        return (out.content or "").strip()

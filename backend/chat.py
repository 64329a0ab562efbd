"""Conversational follow-up chat streamed as Server-Sent Events.

A stateless pass-through to one streaming completion: the decision
situation goes into a coaching system prompt, the last few turns are
replayed, and the answer is streamed back chunk by chunk.  When the
answer does not end with a question, one follow-up question is appended.
"""
from __future__ import annotations

import json
import logging
import random
from typing import AsyncIterator, Literal

from pydantic import BaseModel, ConfigDict, Field

from recommendation.completion import CompletionClient
from recommendation.settings import PipelineConfig

logger = logging.getLogger(__name__)

DONE_EVENT = "data: [DONE]\n\n"

FOLLOW_UP_QUESTIONS = [
    "What's most important to you right now in this decision?",
    "How do you feel about the timeline for making this choice?",
    "What would happen if you delayed this decision?",
    "Which of your concerns feels most pressing?",
    "What additional information would be most helpful?",
    "How might this decision affect other areas of your life?",
    "What's your gut feeling telling you so far?",
    "Are there any options you haven't fully considered yet?",
]

# Topic keywords checked in order against the lower-cased context.
_TOPIC_QUESTIONS = [
    (("buy", "purchase"), "What's your timeline for making this purchase?"),
    (("job", "career"), "How important is work-life balance in this decision?"),
    (("move", "relocat"), "What's drawing you to consider this change?"),
]

COACH_SYSTEM_PROMPT = """\
You are **Clarity**, a warm but incisive decision-making coach.
Your single goal: help the user arrive at a confident, informed decision.

================ USER SITUATION ================
- Decision: {context}
- Preferences: {preferences}
- Constraints: {constraints}{delta}

================ GUIDING PRINCIPLES ================
1. Empathize first: reflect the user's feelings in 1-2 sentences before advising.
2. Clarify: if critical info is missing, ask a single concise follow-up.
3. Focus: surface at most the three highest-impact considerations.
4. Reason transparently: share a brief "why this matters" for each point.
5. Action over abstraction: end with one clear next step the user can do today.
6. Brevity: aim for 250 words or fewer unless the user asks for depth.
7. Tone: conversational, like a trusted friend who knows decision science.
8. No formatting clutter: avoid bullet lists, headers, or markdown.
9. Safety and accuracy: no legal, medical, or financial absolutes.
"""


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ContextDelta(BaseModel):
    """Preferences and constraints changed since the previous turn."""

    model_config = ConfigDict(populate_by_name=True)

    added_preferences: list[str] = Field(default_factory=list, alias="addedPreferences")
    added_constraints: list[str] = Field(default_factory=list, alias="addedConstraints")
    removed_preferences: list[str] = Field(default_factory=list, alias="removedPreferences")
    removed_constraints: list[str] = Field(default_factory=list, alias="removedConstraints")


class ChatRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    context: str
    preferences: list[str]
    constraints: list[str]
    previous_messages: list[ChatMessage] = Field(alias="previousMessages")
    context_delta: ContextDelta | None = Field(default=None, alias="contextDelta")


def generate_follow_up_question(context: str, rng: random.Random | None = None) -> str:
    """Pick a follow-up question, preferring one that fits the topic."""
    lowered = context.lower()
    for keywords, question in _TOPIC_QUESTIONS:
        if any(keyword in lowered for keyword in keywords):
            return question
    return (rng or random).choice(FOLLOW_UP_QUESTIONS)


def ends_with_question(text: str) -> bool:
    return text.strip().endswith("?")


def build_system_message(request: ChatRequest) -> str:
    delta = ""
    if request.context_delta is not None:
        d = request.context_delta
        delta = (
            "\n- Recent Changes:"
            f"\n  - Added preferences: {', '.join(d.added_preferences) or 'none'}"
            f"\n  - Added constraints: {', '.join(d.added_constraints) or 'none'}"
            f"\n  - Removed preferences: {', '.join(d.removed_preferences) or 'none'}"
            f"\n  - Removed constraints: {', '.join(d.removed_constraints) or 'none'}"
        )
    return COACH_SYSTEM_PROMPT.format(
        context=request.context,
        preferences=" | ".join(request.preferences),
        constraints=" | ".join(request.constraints),
        delta=delta,
    )


def build_chat_messages(request: ChatRequest, history_window: int) -> list[dict[str, str]]:
    """System prompt, the last *history_window* turns, then the new message."""
    recent = request.previous_messages[-history_window:] if history_window else []
    return [
        {"role": "system", "content": build_system_message(request)},
        *({"role": m.role, "content": m.content} for m in recent),
        {"role": "user", "content": request.message},
    ]


def _event(payload: dict) -> str:
    return f"data: {json.dumps(payload)}\n\n"


async def stream_chat(
    request: ChatRequest,
    client: CompletionClient,
    config: PipelineConfig,
    rng: random.Random | None = None,
) -> AsyncIterator[str]:
    """Yield SSE events for one chat turn, ending with ``[DONE]``."""
    accumulated = ""
    try:
        async for content in client.stream(
            model=config.chat_model,
            messages=build_chat_messages(request, config.chat_history_window),
            temperature=config.chat_temperature,
            max_tokens=config.chat_max_tokens,
        ):
            accumulated += content
            yield _event({"content": content})

        if accumulated.strip() and not ends_with_question(accumulated):
            question = generate_follow_up_question(request.context, rng)
            yield _event({"content": f" {question}"})

        yield DONE_EVENT
    except Exception:
        logger.exception("Streaming error")
        yield _event({"error": "Stream interrupted"})

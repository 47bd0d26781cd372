"""Context assembly — builds the per-turn system prompt from memory."""

from __future__ import annotations

from hygieia.memory import MemoryStore
from hygieia.prompts import SYSTEM_PROMPT
from hygieia.tracing import get_tracer

tracer = get_tracer("hygieia.context")


def _format_messages(messages: list[dict[str, str | int]]) -> list[str]:
    lines = []
    for m in messages:
        ts = str(m["timestamp"])[:19].replace("T", " ")
        lines.append(f"[{ts}] {m['role']}: {m['content']}")
    return lines


async def build_system_prompt(
    memory: MemoryStore,
    thread_id: str,
    resource_id: str,
    incoming_message: str,
    context: dict[str, str],
) -> str:
    """Instructions, turn context, working memory and conversation history."""
    parts: list[str] = [SYSTEM_PROMPT]

    if context:
        parts.append("\n--- TURN CONTEXT ---")
        labels = {"user": "Current user", "date": "Current date", "time": "Current time"}
        for key, value in context.items():
            parts.append(f"{labels.get(key, key)}: {value}")

    with tracer.start_as_current_span("context.working_memory"):
        profile = await memory.get_working_memory(resource_id)
        parts.append("\n--- WORKING MEMORY ---")
        parts.append(profile)

    with tracer.start_as_current_span("context.recent") as span:
        recent = await memory.recent_messages(thread_id)
        span.set_attribute("thread_messages", await memory.message_count(thread_id))
        span.set_attribute("included", len(recent))
    recent_ids = {m["id"] for m in recent}

    with tracer.start_as_current_span("context.semantic_recall"):
        recalled = [
            m for m in await memory.semantic_recall(thread_id, incoming_message)
            if m["id"] not in recent_ids
        ]
    if recalled:
        parts.append("\n--- RELEVANT EARLIER MESSAGES ---")
        parts.extend(_format_messages(recalled))

    if recent:
        parts.append("\n--- RECENT CONVERSATION ---")
        parts.extend(_format_messages(recent))

    return "\n".join(parts)

"""Agent — the symptom-tracker LLM agent and its streaming turn entry point."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Any

from pydantic_ai import Agent, RunContext
from pydantic_ai.exceptions import AgentRunError
from pydantic_ai.models import Model
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.models.openrouter import OpenRouterModel, OpenRouterModelSettings
from pydantic_ai.providers.openai import OpenAIProvider
from pydantic_ai.providers.openrouter import OpenRouterProvider

from hygieia.config import Config
from hygieia.context import build_system_prompt
from hygieia.errors import ConfigError, StreamError
from hygieia.events import make_logger
from hygieia.memory import MemoryStore
from hygieia.tracing import get_tracer

atracer = get_tracer("hygieia.agent")
log = make_logger("hygieia.agent")


# ---------------------------------------------------------------------------
# Agent deps — passed to every tool call via RunContext
# ---------------------------------------------------------------------------

class AgentDeps:
    """Runtime dependencies injected into every tool and system prompt call."""

    def __init__(
        self,
        memory: MemoryStore,
        cfg: Config,
        thread_id: str = "",
        resource_id: str = "",
        context: dict[str, str] | None = None,
        current_message: str = "",
    ) -> None:
        self.memory = memory
        self.cfg = cfg
        self.thread_id = thread_id
        self.resource_id = resource_id
        self.context = context or {}
        self.current_message = current_message
        self.memory_updates: int = 0


# ---------------------------------------------------------------------------
# Build agent + register tools
# ---------------------------------------------------------------------------

def _build_model(cfg: Config) -> Model:
    """Create an LLM model from provider config."""
    provider = cfg.llm.provider.strip().lower()
    if provider == "openai":
        if not cfg.llm.api_key:
            raise ConfigError("OPENAI_API_KEY is not set in environment variables")
        openai_provider = OpenAIProvider(
            base_url=cfg.llm.base_url or None, api_key=cfg.llm.api_key
        )
        return OpenAIChatModel(cfg.llm.model, provider=openai_provider)
    if provider == "openrouter":
        if cfg.llm.api_key:
            openrouter_provider = OpenRouterProvider(api_key=cfg.llm.api_key)
            return OpenRouterModel(cfg.llm.model, provider=openrouter_provider)
        return OpenRouterModel(cfg.llm.model)
    if provider == "zai":
        base_url = cfg.llm.base_url or "https://api.z.ai/api/paas/v4"
        zai_provider = OpenAIProvider(base_url=base_url, api_key=cfg.llm.api_key or None)
        return OpenAIChatModel(cfg.llm.model, provider=zai_provider)

    raise ConfigError(
        f"Unsupported llm.provider '{cfg.llm.provider}'. Use 'openai', 'openrouter' or 'zai'."
    )


def _build_model_settings(cfg: Config):
    """Provider-specific model settings."""
    if cfg.llm.provider.strip().lower() == "openrouter":
        return OpenRouterModelSettings(
            openrouter_reasoning={"effort": cfg.llm.reasoning_effort},
        )
    return None


def create_agent(cfg: Config, model: Model | None = None) -> Agent[AgentDeps, str]:
    """Build the agent with its dynamic prompt, report and memory tools."""
    agent: Agent[AgentDeps, str] = Agent(
        model or _build_model(cfg),
        deps_type=AgentDeps,
        model_settings=_build_model_settings(cfg),
    )

    @agent.system_prompt
    async def dynamic_prompt(ctx: RunContext[AgentDeps]) -> str:
        return await build_system_prompt(
            ctx.deps.memory,
            ctx.deps.thread_id,
            ctx.deps.resource_id,
            ctx.deps.current_message,
            ctx.deps.context,
        )

    import hygieia.tools.report
    hygieia.tools.report.register(agent)

    @agent.tool
    async def update_working_memory(ctx: RunContext[AgentDeps], content: str) -> str:
        """Replace the user's health profile with ``content``.

        Always send the complete profile (every section of the template),
        not just the part that changed.
        """
        log.info("🧠 update_working_memory(%s) → %s", ctx.deps.resource_id, content[:80])
        await ctx.deps.memory.update_working_memory(ctx.deps.resource_id, content)
        ctx.deps.memory_updates += 1
        return "Working memory updated."

    return agent


# ---------------------------------------------------------------------------
# Streaming turns
# ---------------------------------------------------------------------------

class SymptomTrackerAgent:
    """The agent service the relay talks to: one streamed turn per message."""

    def __init__(self, cfg: Config, memory: MemoryStore, model: Model | None = None) -> None:
        self.cfg = cfg
        self.memory = memory
        self.agent = create_agent(cfg, model)

    async def open_turn(
        self,
        text: str,
        *,
        thread_id: str,
        resource_id: str,
        context: dict[str, str],
    ) -> AsyncIterator[Any]:
        """Run the agent on ``text`` and yield its raw stream events in order.

        Model/provider failures surface as StreamError.  The exchange is
        saved to the thread once the run completes.
        """
        deps = AgentDeps(
            memory=self.memory,
            cfg=self.cfg,
            thread_id=thread_id,
            resource_id=resource_id,
            context=context,
            current_message=text,
        )
        with atracer.start_as_current_span(
            "agent.turn",
            attributes={"thread_id": thread_id, "message_len": len(text)},
        ) as span:
            log.info("▶ turn start  thread=%s  msg=%s", thread_id, text[:100])
            try:
                async with self.agent.iter(text, deps=deps) as run:
                    async for node in run:
                        if Agent.is_model_request_node(node) or Agent.is_call_tools_node(node):
                            async with node.stream(run.ctx) as events:
                                async for event in events:
                                    yield event
                    output = run.result.output if run.result else ""
            except AgentRunError as exc:
                span.record_exception(exc)
                raise StreamError(str(exc)) from exc

            span.set_attribute("output_len", len(output))
            span.set_attribute("memory_updates", deps.memory_updates)
            log.info("◀ turn end    thread=%s  output=%s", thread_id, output[:120])

            await self.memory.save_message(thread_id, resource_id, "user", text)
            await self.memory.save_message(thread_id, resource_id, "assistant", output)

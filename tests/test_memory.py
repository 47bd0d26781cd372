"""Unit tests for hygieia.memory (semantic recall off, no network)."""

from __future__ import annotations

import pytest

from hygieia.memory import MemoryStore
from hygieia.prompts import WORKING_MEMORY_TEMPLATE


pytestmark = pytest.mark.unit


class TestWorkingMemory:
    async def test_new_user_gets_template(self, memory: MemoryStore):
        assert await memory.get_working_memory("telegram-7") == WORKING_MEMORY_TEMPLATE

    async def test_update_overwrites(self, memory: MemoryStore):
        await memory.update_working_memory("telegram-7", "# Profile v1")
        await memory.update_working_memory("telegram-7", "# Profile v2")
        assert await memory.get_working_memory("telegram-7") == "# Profile v2"

    async def test_profiles_are_per_resource(self, memory: MemoryStore):
        await memory.update_working_memory("telegram-7", "mine")
        assert await memory.get_working_memory("discord-7") == WORKING_MEMORY_TEMPLATE


class TestMessages:
    async def test_save_and_recent(self, memory: MemoryStore):
        first = await memory.save_message("telegram-42", "telegram-7", "user", "headache again")
        second = await memory.save_message("telegram-42", "telegram-7", "assistant", "Since when?")
        assert second > first

        recent = await memory.recent_messages("telegram-42")
        assert [m["role"] for m in recent] == ["user", "assistant"]
        assert recent[0]["content"] == "headache again"

    async def test_recent_limit_keeps_newest(self, memory: MemoryStore):
        for i in range(5):
            await memory.save_message("t", "r", "user", f"m{i}")
        recent = await memory.recent_messages("t", n=2)
        assert [m["content"] for m in recent] == ["m3", "m4"]

    async def test_threads_are_separate(self, memory: MemoryStore):
        await memory.save_message("telegram-1", "r", "user", "a")
        await memory.save_message("discord-1", "r", "user", "b")
        assert await memory.message_count("telegram-1") == 1
        assert await memory.message_count("discord-1") == 1
        assert await memory.message_count("nope") == 0

    async def test_semantic_recall_off(self, memory: MemoryStore):
        await memory.save_message("t", "r", "user", "migraine on Monday")
        assert await memory.semantic_recall("t", "migraine") == []

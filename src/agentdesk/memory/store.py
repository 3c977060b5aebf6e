"""Semantic and episodic memory: interface and in-process implementation."""

from __future__ import annotations

import copy
import itertools
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Protocol

from ..tasks.base import utcnow


class MemoryCategory(str, Enum):
    SUPPLIER = "supplier"
    CLIENT = "client"
    RULE = "rule"
    PREFERENCE = "preference"
    GENERAL = "general"


Outcome = Literal["success", "partial", "failed"]


@dataclass
class SemanticMemory:
    """A fact or rule agents consult while building their prompt."""

    id: str
    category: MemoryCategory
    key: str
    value: str
    source: str
    created_at: datetime
    updated_at: datetime
    confidence: float = 1.0


@dataclass
class EpisodicMemory:
    """Record of how a past task turned out."""

    id: str
    agent_id: str
    summary: str
    outcome: Outcome
    created_at: datetime
    task_id: Optional[str] = None
    context: Dict[str, Any] = field(default_factory=dict)
    lessons: str = ""


class MemoryStore(Protocol):
    """Memory operations used by agents."""

    def search_semantic(
        self, query: str, category: Optional[MemoryCategory] = None, limit: int = 20
    ) -> List[SemanticMemory]: ...

    def create_semantic(
        self, category: MemoryCategory, key: str, value: str, source: str, confidence: float = 1.0
    ) -> SemanticMemory: ...

    def create_episodic(
        self,
        agent_id: str,
        summary: str,
        outcome: Outcome,
        *,
        task_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        lessons: str = "",
    ) -> EpisodicMemory: ...


def _matches(query: str, *fields: str) -> bool:
    needle = query.lower()
    return any(needle in value.lower() for value in fields)


class InMemoryMemoryStore:
    """Keeps semantic and episodic memories in process memory."""

    def __init__(self) -> None:
        self._semantic: Dict[str, SemanticMemory] = {}
        self._episodic: List[EpisodicMemory] = []
        self._touched: Dict[str, int] = {}
        self._clock = itertools.count()

    # semantic

    def create_semantic(
        self,
        category: MemoryCategory,
        key: str,
        value: str,
        source: str,
        confidence: float = 1.0,
    ) -> SemanticMemory:
        if not 0.0 <= confidence <= 1.0:
            raise ValueError("confidence must be between 0 and 1")
        now = utcnow()
        memory = SemanticMemory(
            id=str(uuid.uuid4()),
            category=MemoryCategory(category),
            key=key,
            value=value,
            source=source,
            created_at=now,
            updated_at=now,
            confidence=confidence,
        )
        self._semantic[memory.id] = memory
        self._touched[memory.id] = next(self._clock)
        return copy.copy(memory)

    def get_semantic(self, memory_id: str) -> Optional[SemanticMemory]:
        memory = self._semantic.get(memory_id)
        return copy.copy(memory) if memory else None

    def update_semantic(
        self,
        memory_id: str,
        *,
        value: Optional[str] = None,
        confidence: Optional[float] = None,
        category: Optional[MemoryCategory] = None,
    ) -> Optional[SemanticMemory]:
        memory = self._semantic.get(memory_id)
        if memory is None:
            return None
        if value is not None:
            memory.value = value
        if confidence is not None:
            memory.confidence = confidence
        if category is not None:
            memory.category = MemoryCategory(category)
        memory.updated_at = utcnow()
        self._touched[memory.id] = next(self._clock)
        return copy.copy(memory)

    def _by_recency(self, items: List[SemanticMemory], limit: int) -> List[SemanticMemory]:
        ordered = sorted(items, key=lambda m: (m.updated_at, self._touched[m.id]), reverse=True)
        return [copy.copy(m) for m in ordered[:limit]]

    def search_semantic(
        self, query: str, category: Optional[MemoryCategory] = None, limit: int = 20
    ) -> List[SemanticMemory]:
        matches = [
            m
            for m in self._semantic.values()
            if (category is None or m.category == category) and _matches(query, m.key, m.value)
        ]
        return self._by_recency(matches, limit)

    def list_semantic(self, category: Optional[MemoryCategory] = None, limit: int = 50) -> List[SemanticMemory]:
        matches = [m for m in self._semantic.values() if category is None or m.category == category]
        return self._by_recency(matches, limit)

    def delete_semantic(self, memory_id: str) -> bool:
        self._touched.pop(memory_id, None)
        return self._semantic.pop(memory_id, None) is not None

    # episodic

    def create_episodic(
        self,
        agent_id: str,
        summary: str,
        outcome: Outcome,
        *,
        task_id: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        lessons: str = "",
    ) -> EpisodicMemory:
        memory = EpisodicMemory(
            id=str(uuid.uuid4()),
            agent_id=agent_id,
            summary=summary,
            outcome=outcome,
            created_at=utcnow(),
            task_id=task_id,
            context=copy.deepcopy(context or {}),
            lessons=lessons,
        )
        self._episodic.append(memory)
        return memory

    def search_episodic(self, query: str, agent_id: Optional[str] = None, limit: int = 20) -> List[EpisodicMemory]:
        matches = [
            m
            for m in reversed(self._episodic)
            if (agent_id is None or m.agent_id == agent_id) and _matches(query, m.summary, m.lessons)
        ]
        return matches[:limit]

    def list_episodic(self, agent_id: Optional[str] = None, limit: int = 50) -> List[EpisodicMemory]:
        matches = [m for m in reversed(self._episodic) if agent_id is None or m.agent_id == agent_id]
        return matches[:limit]

    def delete_episodic(self, memory_id: str) -> bool:
        for index, memory in enumerate(self._episodic):
            if memory.id == memory_id:
                del self._episodic[index]
                return True
        return False

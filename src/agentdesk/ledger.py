"""Audit trail and token usage ledger."""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from .config import ModelConfig
from .tasks.base import utcnow

logger = logging.getLogger(__name__)


@dataclass
class AuditEntry:
    id: str
    actor: str
    action: str
    resource_type: str
    resource_id: str
    created_at: datetime
    details: Optional[Dict[str, Any]] = None


class AuditLog:
    """Append-only record of who did what to which resource."""

    def __init__(self) -> None:
        self._entries: List[AuditEntry] = []

    def record(
        self,
        actor: str,
        action: str,
        resource_type: str,
        resource_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> AuditEntry:
        entry = AuditEntry(
            id=str(uuid.uuid4()),
            actor=actor,
            action=action,
            resource_type=resource_type,
            resource_id=resource_id,
            created_at=utcnow(),
            details=dict(details) if details else None,
        )
        self._entries.append(entry)
        logger.debug("audit %s %s %s/%s", actor, action, resource_type, resource_id)
        return entry

    def entries(self, limit: int = 100, resource_type: Optional[str] = None) -> List[AuditEntry]:
        """Most recent entries first."""

        matches = [
            entry
            for entry in reversed(self._entries)
            if resource_type is None or entry.resource_type == resource_type
        ]
        return matches[:limit]


@dataclass
class TokenUsageEntry:
    id: str
    agent_id: str
    model: str
    prompt_tokens: int
    completion_tokens: int
    total_tokens: int
    estimated_cost: float
    created_at: datetime


@dataclass
class UsageTotals:
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0
    calls: int = 0


class UsageLedger:
    """Per-call token usage with cost estimated from configured model prices.

    Prices are looked up by the model name reported in the response; models
    with no configured price are recorded at zero cost.
    """

    def __init__(self, models: Optional[Mapping[str, ModelConfig]] = None) -> None:
        self._prices: Dict[str, tuple[float, float]] = {}
        for config in (models or {}).values():
            self._prices[config.model] = (config.cost_per_input_token, config.cost_per_output_token)
        self._entries: List[TokenUsageEntry] = []

    def estimate_cost(self, model: str, prompt_tokens: int, completion_tokens: int) -> float:
        input_price, output_price = self._prices.get(model, (0.0, 0.0))
        return prompt_tokens * input_price + completion_tokens * output_price

    def record(self, agent_id: str, model: str, prompt_tokens: int, completion_tokens: int) -> TokenUsageEntry:
        entry = TokenUsageEntry(
            id=str(uuid.uuid4()),
            agent_id=agent_id,
            model=model,
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=prompt_tokens + completion_tokens,
            estimated_cost=self.estimate_cost(model, prompt_tokens, completion_tokens),
            created_at=utcnow(),
        )
        self._entries.append(entry)
        return entry

    def entries(self, agent_id: Optional[str] = None) -> List[TokenUsageEntry]:
        return [entry for entry in self._entries if agent_id is None or entry.agent_id == agent_id]

    def totals(self, agent_id: Optional[str] = None) -> UsageTotals:
        totals = UsageTotals()
        for entry in self.entries(agent_id):
            totals.prompt_tokens += entry.prompt_tokens
            totals.completion_tokens += entry.completion_tokens
            totals.total_tokens += entry.total_tokens
            totals.estimated_cost += entry.estimated_cost
            totals.calls += 1
        return totals

"""
Shared Pydantic models for all layers.
Ledger inputs, plans and results are immutable (frozen) after creation.
"""

from __future__ import annotations

from datetime import date, datetime
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, Field


AssetClass = Literal["equity", "fixed_income", "funds", "crypto", "cash"]
AgentName = Literal["analysis", "investments", "planning"]
MetricStatus = Literal["ok", "error", "not_found", "empty"]
CardStatus = Literal["ok", "empty", "partial_error"]
PeriodPreset = Literal["mtd", "ytd", "12m", "origin"]

VARIABLE_INCOME_CLASSES = ("equity", "funds", "crypto")
FIXED_INCOME_CLASSES = ("fixed_income", "cash")


class Operation(str, Enum):
    """Ledger operation kinds. Every kind must have a replay handler."""

    CREATE = "create"
    BUY = "buy"
    SELL = "sell"
    INCOME = "income"
    BALANCE_UPDATE = "balance_update"


# ─── Investments Ledger ────────────────────────────────────────

class Transaction(BaseModel):
    """Append-only ledger entry for one asset."""
    model_config = {"frozen": True}

    user_id: str
    asset_id: str
    reference_date: date
    operation: Operation
    quantity: float = Field(default=0.0, ge=0.0)
    price: float = Field(default=0.0, ge=0.0)
    gross_amount: float | None = Field(default=None, description="Total cash moved; wins over quantity*price when set")
    fees: float = Field(default=0.0, ge=0.0)
    currency: str = Field(default="BRL")
    asset_class: AssetClass = Field(default="equity")
    created_at: datetime | None = Field(default=None)
    sequence: int = Field(default=0, description="Insertion order, breaks same-day ties")
    metadata: dict[str, Any] = Field(default_factory=dict)

    @property
    def sort_key(self) -> tuple[date, datetime, int]:
        return (self.reference_date, self.created_at or datetime.min, self.sequence)


class PositionSnapshot(BaseModel):
    """Position written after every ledger-mutating operation."""
    model_config = {"frozen": True}

    user_id: str
    asset_id: str
    reference_date: date
    quantity: float = 0.0
    avg_price: float = 0.0
    market_price: float | None = None
    invested_amount: float = 0.0
    market_value: float = 0.0
    asset_class: AssetClass = "equity"
    source: str = Field(default="manual")
    action_type: str = Field(default="create")


class Asset(BaseModel):
    """Registered asset (unique per user by asset_id)."""
    model_config = {"frozen": True}

    user_id: str
    asset_id: str
    name: str
    ticker: str | None = None
    asset_class: AssetClass
    category: str = ""
    currency: str = "BRL"
    status: str = "open"
    account_id: str | None = None
    tags: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


# ─── Metrics Layer ─────────────────────────────────────────────

class PeriodWindow(BaseModel):
    """Concrete month-span window anchored at an as-of date."""
    model_config = {"frozen": True}

    months: int
    start: date
    end: date
    label: str


class InvestmentsFilters(BaseModel):
    """Normalized filters accepted by the investments metrics."""
    model_config = {"frozen": True}

    currencies: list[str] = Field(default_factory=list)
    asset_classes: list[str] = Field(default_factory=list)
    statuses: list[str] = Field(default_factory=list)
    account_ids: list[str] = Field(default_factory=list)
    tags: list[str] = Field(default_factory=list)
    as_of: date | None = None
    period_preset: PeriodPreset = "origin"


class MetricResult(BaseModel):
    """One entry of a metrics batch; never raises past the engine."""
    model_config = {"frozen": True}

    metric_id: str
    status: MetricStatus
    data: dict[str, Any] | None = None
    error: str | None = None
    meta: dict[str, Any] = Field(default_factory=dict)


class CardResult(BaseModel):
    """Dashboard card aggregating several metric results."""
    model_config = {"frozen": True}

    card_id: str
    title: str
    presentation: str = "generic"
    status: CardStatus
    metrics: list[MetricResult] = Field(default_factory=list)
    meta: dict[str, Any] = Field(default_factory=dict)


# ─── Orchestrator Layer (DOC) ──────────────────────────────────

class AgentTask(BaseModel):
    """One coordinator assignment inside an execution plan.

    `priority` is validation bookkeeping and output ordering only; the
    execution manager schedules by dependency readiness.
    """
    model_config = {"frozen": True}

    agent: AgentName
    priority: int = Field(..., ge=1)
    task_description: str
    expected_output: str
    memory_context: str = ""
    dependencies: list[str] = Field(default_factory=list)


class ExecutionDoc(BaseModel):
    """Direction document: a validated plan of coordinator tasks."""
    model_config = {"frozen": True}

    request_id: str
    original_query: str
    reasoning: str
    agents: list[AgentTask]


class AgentResult(BaseModel):
    """Structured coordinator output (also used for failures)."""
    model_config = {"frozen": True}

    agent: str
    task_completed: bool = True
    reasoning: str = ""
    result: dict[str, Any] = Field(default_factory=dict)
    tools_used: list[str] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class AgentInput(BaseModel):
    """Payload handed to a coordinator by the execution manager."""
    model_config = {"frozen": True}

    task_description: str
    expected_output: str
    memory_context: str = ""
    dependency_outputs: dict[str, AgentResult] = Field(default_factory=dict)


# ─── Model Layer (Policy) ──────────────────────────────────────

class ModelPolicy(BaseModel):
    """Configuration for Model Layer execution."""
    model_config = {"frozen": True}
    model_name: str
    temperature: float = 0.0
    timeout_seconds: float = 30.0
    max_retries: int = 3
    json_mode: bool = True
    max_tokens: int = 1500

"""Canonical domain types shared across the agent pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal
from uuid import uuid4

from orbit.core.models import BusinessProfile
from orbit.core.triggers import Trigger

TaskPriority = Literal["low", "medium", "high", "critical"]
TaskStatus = Literal["completed", "failed"]
LearningEventType = Literal["action_result", "error_occurred"]

PRIORITY_RANK: dict[str, int] = {"low": 0, "medium": 1, "high": 2, "critical": 3}


def new_id(prefix: str) -> str:
    """Return a globally unique identifier with a readable prefix."""
    return f"{prefix}_{uuid4().hex}"


def clamp_unit(value: float) -> float:
    """Clamp a score into the closed [0, 1] interval."""
    return max(0.0, min(1.0, float(value)))


@dataclass(slots=True)
class RequestContext:
    """Per-request context threaded through every pipeline stage."""

    business_id: str
    user_id: str = "system"
    session_id: str = field(default_factory=lambda: new_id("session"))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metadata: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_trigger(cls, trigger: Trigger) -> RequestContext:
        return cls(
            business_id=trigger.business_id,
            user_id=trigger.user_id or "system",
            timestamp=trigger.timestamp,
            metadata=dict(trigger.metadata),
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "business_id": self.business_id,
            "user_id": self.user_id,
            "session_id": self.session_id,
            "timestamp": self.timestamp.isoformat(),
            "metadata": dict(self.metadata),
        }


@dataclass(slots=True)
class MemoryRecord:
    """One memory entry returned by recall or long-term search."""

    id: str
    content: str
    score: float = 0.0
    metadata: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class Perception:
    """Everything the agent knows about a trigger before analysis."""

    trigger: Trigger
    context: RequestContext
    business_profile: BusinessProfile
    memories: list[MemoryRecord]
    metrics: dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class Action:
    """A planned unit of work."""

    type: str
    priority: TaskPriority = "medium"
    parameters: dict[str, Any] = field(default_factory=dict)
    title: str = ""
    id: str = field(default_factory=lambda: new_id("action"))

    @property
    def is_critical(self) -> bool:
        return self.priority == "critical"


@dataclass(slots=True)
class Opportunity:
    """Analysis finding the planner may act on."""

    type: str
    title: str
    priority: TaskPriority
    estimated_impact: float
    actions: list[Action] = field(default_factory=list)
    id: str = field(default_factory=lambda: new_id("opportunity"))


@dataclass(slots=True)
class Risk:
    """Analysis finding describing a threat to the business."""

    type: str
    severity: TaskPriority
    probability: float
    description: str
    mitigation: list[Action] = field(default_factory=list)
    id: str = field(default_factory=lambda: new_id("risk"))


@dataclass(slots=True)
class BusinessAnalysis:
    """Analysis stage output consumed by planning."""

    business_id: str
    trigger_type: str
    metrics: dict[str, Any] = field(default_factory=dict)
    opportunities: list[Opportunity] = field(default_factory=list)
    risks: list[Risk] = field(default_factory=list)
    sentiment: float = 0.0
    trends: list[str] = field(default_factory=list)
    trigger_data: dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class AnalysisRequest:
    """Input handed to the analysis engine."""

    business_id: str
    business_profile: BusinessProfile | None = None
    metrics: dict[str, Any] = field(default_factory=dict)
    context: RequestContext | None = None
    trigger: Trigger | None = None
    memories: list[MemoryRecord] = field(default_factory=list)
    timeframe: str = "1d"
    include_comparative: bool = False
    include_forecasting: bool = False


@dataclass(slots=True)
class PlanningOptions:
    """Fixed policy parameters passed to the planning engine."""

    business_id: str
    time_horizon: str = "immediate"
    max_actions: int = 5
    priority_threshold: TaskPriority = "medium"


@dataclass(slots=True)
class Plan:
    """Planning stage output."""

    actions: list[Action]
    rationale: str
    confidence: float
    timeframe: str = "immediate"

    def __post_init__(self) -> None:
        self.confidence = clamp_unit(self.confidence)


@dataclass(slots=True)
class ExecutionDecision:
    """Exhaustive, disjoint partition of a plan into approved and rejected actions."""

    approved_actions: list[Action]
    rejected_actions: list[Action]
    rationale: str
    confidence: float
    rejection_reasons: dict[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.confidence = clamp_unit(self.confidence)


@dataclass(slots=True)
class TaskResult:
    """Outcome of executing one action."""

    task_id: str
    status: TaskStatus
    action_type: str = ""
    output: Any = None
    error: str | None = None
    duration_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))
    metrics: dict[str, Any] | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == "completed"

    @classmethod
    def failed(cls, action: Action, error: BaseException | str) -> TaskResult:
        if isinstance(error, BaseException):
            message = str(error) or type(error).__name__
        else:
            message = error
        return cls(
            task_id=action.id,
            status="failed",
            action_type=action.type,
            error=message,
            duration_ms=0.0,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "task_id": self.task_id,
            "status": self.status,
            "action_type": self.action_type,
            "output": self.output,
            "error": self.error,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
            "metrics": self.metrics,
        }


@dataclass(slots=True)
class LearningEvent:
    """Learning signal handed to the learning engine."""

    type: LearningEventType
    data: dict[str, Any]
    outcome: Any
    business_id: str
    id: str = field(default_factory=lambda: new_id("learning"))
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


@dataclass(slots=True)
class Recommendation:
    """Proactive suggestion for a business."""

    type: str
    title: str
    description: str
    rationale: str
    business_id: str
    priority: TaskPriority = "medium"
    actions: list[Action] = field(default_factory=list)
    confidence: float = 0.5
    id: str = field(default_factory=lambda: new_id("recommendation"))

    def __post_init__(self) -> None:
        self.confidence = clamp_unit(self.confidence)

    def as_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "priority": self.priority,
            "title": self.title,
            "description": self.description,
            "rationale": self.rationale,
            "business_id": self.business_id,
            "confidence": self.confidence,
            "actions": [action_to_dict(action) for action in self.actions],
        }


@dataclass(slots=True)
class RecommendationCriteria:
    """Seed for the recommendation engine."""

    business_id: str
    based_on: str
    results: list[TaskResult] = field(default_factory=list)
    analysis: BusinessAnalysis | None = None
    include_types: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ExecutionOutcome:
    """Aggregate output of the execute stage."""

    actions: list[TaskResult] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)


@dataclass(slots=True)
class AgentResponse:
    """Result of one ``process()`` call."""

    success: bool
    processing_time_ms: float
    actions: list[TaskResult] = field(default_factory=list)
    insights: list[str] = field(default_factory=list)
    recommendations: list[Recommendation] = field(default_factory=list)
    error: str | None = None
    session_id: str = ""

    def as_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "success": self.success,
            "processing_time_ms": self.processing_time_ms,
            "session_id": self.session_id,
        }
        if self.success:
            payload["actions"] = [result.as_dict() for result in self.actions]
            payload["insights"] = list(self.insights)
            payload["recommendations"] = [item.as_dict() for item in self.recommendations]
        else:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class MessageResponse:
    """Result of ``handle_message``: the reply plus every executed action."""

    success: bool
    reply: Any
    actions: list[TaskResult]
    processing_time_ms: float
    error: str | None = None

    def as_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "reply": self.reply,
            "actions": [result.as_dict() for result in self.actions],
            "processing_time_ms": self.processing_time_ms,
            "error": self.error,
        }


@dataclass(slots=True)
class BusinessInsights:
    """Performance summary returned by ``generate_insights``."""

    summary: dict[str, Any]
    opportunities: list[Opportunity]
    risks: list[Risk]
    recommendations: list[Recommendation]
    trends: list[str]
    forecast: dict[str, Any]

    def as_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary,
            "opportunities": [
                {
                    "id": item.id,
                    "type": item.type,
                    "title": item.title,
                    "priority": item.priority,
                    "estimated_impact": item.estimated_impact,
                    "actions": [action_to_dict(action) for action in item.actions],
                }
                for item in self.opportunities
            ],
            "risks": [
                {
                    "id": item.id,
                    "type": item.type,
                    "severity": item.severity,
                    "probability": item.probability,
                    "description": item.description,
                    "mitigation": [action_to_dict(action) for action in item.mitigation],
                }
                for item in self.risks
            ],
            "recommendations": [item.as_dict() for item in self.recommendations],
            "trends": list(self.trends),
            "forecast": self.forecast,
        }


def action_to_dict(action: Action) -> dict[str, Any]:
    return {
        "id": action.id,
        "type": action.type,
        "priority": action.priority,
        "title": action.title,
        "parameters": dict(action.parameters),
    }


def action_from_dict(payload: dict[str, Any]) -> Action:
    priority = str(payload.get("priority", "medium"))
    if priority not in PRIORITY_RANK:
        priority = "medium"
    return Action(
        id=str(payload.get("id") or new_id("action")),
        type=str(payload["type"]),
        priority=priority,  # type: ignore[arg-type]
        title=str(payload.get("title", "")),
        parameters=dict(payload.get("parameters", {})),
    )

"""Pydantic schemas for analysis agent reports."""

from __future__ import annotations

from datetime import date
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

Urgency = Literal["low", "medium", "high"]


class Recommendation(BaseModel):
    """A single actionable suggestion emitted by an agent."""

    action: str = Field(description="Action tag, e.g. BUY, SELL, WAIT, CAUTION")
    reason: str
    urgency: Urgency = "medium"
    targets: list[str] = Field(default_factory=list)
    dates: list[date] = Field(default_factory=list)
    channel: str = Field(default="bookings", description="One of: bookings, search")


class AgentReport(BaseModel):
    """Self-contained output of one analysis agent."""

    agent: str
    success: bool
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    message: str = ""
    analysis: dict[str, Any] = Field(default_factory=dict)
    recommendations: list[Recommendation] = Field(default_factory=list)

    @model_validator(mode="after")
    def _failed_reports_carry_no_confidence(self) -> AgentReport:
        if not self.success and self.confidence != 0.0:
            raise ValueError("a failed report must carry confidence 0")
        return self

    @classmethod
    def declined(cls, agent: str, reason: str) -> AgentReport:
        """Report for an agent that could not (or would not) analyse."""
        return cls(agent=agent, success=False, confidence=0.0, message=reason)

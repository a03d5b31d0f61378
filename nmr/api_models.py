from __future__ import annotations

from pydantic import BaseModel, Field


class CycleOut(BaseModel):
    outcome: str = Field(..., description="unavailable|unchanged|applied|apply_failed|error")
    ts: str
    fetched: list[str] | None = None
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    message: str = ""


class StatusResponse(BaseModel):
    applier: str = Field(..., description="Human readable description of the configured target")
    running: bool
    interval_s: float
    applied: list[str] = Field(..., description="Addresses last applied successfully")
    last_applied_at: str | None = None
    last_cycle: CycleOut | None = None
    cycles: dict[str, int] = Field(default_factory=dict, description="Cycle count per outcome")


class EventOut(BaseModel):
    id: int
    ts: str
    level: str
    component: str | None = None
    message: str

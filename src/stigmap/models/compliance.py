"""Compliance statistics and recommendation data models."""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from .finding import ResolvedFinding


class AggregationScope(BaseModel):
    """Optional restriction of an aggregation to one family and/or file."""

    family: Optional[str] = None
    source_file: Optional[str] = None


class ComplianceStat(BaseModel):
    """Count-based compliance statistics over a set of findings."""

    family: Optional[str] = None
    source_file: Optional[str] = None
    total: int = 0
    open: int = 0
    compliant: int = 0
    not_reviewed: int = 0
    not_applicable: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    compliance_percentage: float = 0.0


class RecommendationType(str, Enum):
    LOW_COMPLIANCE = "LowCompliance"
    HIGH_SEVERITY = "HighSeverity"
    NOT_REVIEWED = "NotReviewed"


class Priority(str, Enum):
    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"


class Recommendation(BaseModel):
    type: RecommendationType
    priority: Priority
    message: str
    family: Optional[str] = None
    count: Optional[int] = None


class Analysis(BaseModel):
    """Full analysis result consumed by the report formatters."""

    timestamp: str
    file_id: Optional[int] = None
    include_not_applicable: bool = False
    overall: ComplianceStat = ComplianceStat()
    by_family: dict[str, ComplianceStat] = {}
    by_file: dict[str, ComplianceStat] = {}
    recommendations: list[Recommendation] = []
    findings: list[ResolvedFinding] = []

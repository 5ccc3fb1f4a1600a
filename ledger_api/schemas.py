from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class ActivityEntryIn(BaseModel):
    # Ledger de actividad: stream = (client, node, scope, input_type)
    client_id: str = Field(..., min_length=1)
    node_id: str = Field(..., min_length=1)
    scope_identifier: str = Field(..., min_length=1)
    input_type: str = Field(default="manual", min_length=1)
    data_values: Dict[str, Any] = Field(..., alias="dataValues")
    timestamp: Optional[datetime] = None
    date: Optional[str] = None
    time: Optional[str] = None
    source: Dict[str, Any] = Field(default_factory=dict)

    model_config = {"populate_by_name": True}

    @field_validator("data_values")
    @classmethod
    def validate_data_values(cls, v):
        if not v:
            raise ValueError("dataValues must not be empty")
        return v


class M3BreakdownItem(BaseModel):
    id: str = Field(..., min_length=1)
    label: Optional[str] = None
    value: float = 0.0


class M3Breakdown(BaseModel):
    baseline: List[M3BreakdownItem] = Field(default_factory=list)
    project: List[M3BreakdownItem] = Field(default_factory=list)
    leakage: List[M3BreakdownItem] = Field(default_factory=list)


class M3Values(BaseModel):
    BE_total: Optional[float] = None
    PE_total: Optional[float] = None
    LE_total: Optional[float] = None
    net_without_uncertainty: Optional[float] = None
    net_with_uncertainty: Optional[float] = None
    breakdown: M3Breakdown = Field(default_factory=M3Breakdown)


class NetReductionEntryIn(BaseModel):
    # Ledger de net reduction: stream = (client, project, methodology)
    client_id: str = Field(..., min_length=1)
    project_id: str = Field(..., min_length=1)
    calculation_methodology: str = Field(..., min_length=1)
    input_type: str = "manual"
    timestamp: Optional[datetime] = None
    date: Optional[str] = None
    time: Optional[str] = None
    net_reduction: Optional[float] = None
    input_value: Optional[float] = None
    emission_reduction_rate: Optional[float] = None
    m3: Optional[M3Values] = None
    source: Dict[str, Any] = Field(default_factory=dict)


class MetricAggregateOut(BaseModel):
    cumulative: float
    high: float
    low: float


class ComponentOut(BaseModel):
    component_id: str
    group: str
    label: Optional[str] = None
    raw: float
    cumulative: Optional[float] = None


class TotalsOut(BaseModel):
    incoming_total: float
    cumulative_total: float
    entry_count: int


class EntryOut(BaseModel):
    entry_id: int
    series_id: str
    ledger: str
    stream: Dict[str, str]
    timestamp: datetime
    raw_values: Dict[str, float]
    aggregates: Dict[str, MetricAggregateOut]
    last_observed: Dict[str, float]
    components: List[ComponentOut] = Field(default_factory=list)
    totals: Optional[TotalsOut] = None
    source: Dict[str, Any] = Field(default_factory=dict)
    version: int
    created_at: Optional[datetime] = None
    recomputed_at: Optional[datetime] = None


class BackfillOut(BaseModel):
    series_id: str
    origin_timestamp: Optional[datetime] = None
    successors: int
    recomputed: int
    changed: int
    duration_ms: float


class IngestResult(BaseModel):
    entry: EntryOut
    backfill: BackfillOut


class DeleteResult(BaseModel):
    deleted: int
    backfill: BackfillOut


class MetricMonthOut(BaseModel):
    total: float
    high: float
    low: float
    count: int


class MonthlySummaryOut(BaseModel):
    series_id: str
    year: int
    month: int
    period_start: datetime
    period_end: datetime
    entry_count: int
    metrics: Dict[str, MetricMonthOut] = Field(default_factory=dict)
    closing: Dict[str, MetricAggregateOut] = Field(default_factory=dict)
    last_observed: Dict[str, float] = Field(default_factory=dict)
    closing_totals: Optional[TotalsOut] = None


class BackfillRetryIn(BaseModel):
    series_id: str = Field(..., min_length=1)
    # None → reconstrucción completa del stream
    timestamp: Optional[datetime] = None


class BackfillRebuildIn(BaseModel):
    series_id: str = Field(..., min_length=1)

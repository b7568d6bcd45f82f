from pydantic import BaseModel, Field
from typing import Any, Dict, List, Optional

class SeriesLabel(BaseModel):
    """Schema for a chart legend entry."""
    label: str

class ChartData(BaseModel):
    """Schema for a single chart, first series is `time` and first data row the timeline."""
    series: List[SeriesLabel]
    data: List[List[Optional[float]]]

class ChartContextSchema(BaseModel):
    """Schema for the state a client keeps to request chart updates."""
    metric: str
    time_from: int
    time_to: int
    accuracy: int = Field(..., gt=0)
    latest_time: Optional[int] = None
    paths: List[str] = Field(default_factory=list)
    interval: List[float] = Field(default_factory=list)
    series: Dict[str, List[Optional[float]]] = Field(default_factory=dict)
    accumulators: Dict[str, Any] = Field(default_factory=dict)

class ChartResponse(BaseModel):
    """Schema for one metric's chart response."""
    metric: str
    chart: ChartData
    paths: List[str]
    context: ChartContextSchema

class ChartsResponse(BaseModel):
    """Schema for chart query response."""
    charts: List[ChartResponse]
    accuracy: int

class ChartsRequest(BaseModel):
    """Schema for a full chart query."""
    metrics: List[str]
    time_from: int
    time_to: int
    accuracy: Optional[int] = Field(None, gt=0)

class ChartsUpdateRequest(BaseModel):
    """Schema for an incremental chart query."""
    contexts: List[ChartContextSchema]
    time_to: int
    time_from: Optional[int] = None

class GraphNode(BaseModel):
    id: str
    label: str
    comboId: str
    is_bin: bool
    path: List[str]
    style: Dict[str, str]

class GraphEdge(BaseModel):
    source: str
    target: str

class Combo(BaseModel):
    id: str
    label: str
    parentId: Optional[str] = None
    path: List[str]

class DagreResponse(BaseModel):
    """Schema for the marshalled topology graph."""
    nodes: List[GraphNode]
    edges: List[GraphEdge]
    combos: List[Combo]

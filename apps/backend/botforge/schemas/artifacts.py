from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel
from typing import Any, Dict, List, Optional


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GenerateRequest(CamelModel):
    nodes: List[Dict[str, Any]] = Field(default_factory=list)


class ArtifactResponse(CamelModel):
    artifact: str
    fixes_applied: List[str] = Field(default_factory=list)
    still_broken: List[str] = Field(default_factory=list)


class GenerateResponse(ArtifactResponse):
    skipped: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class RepairRequest(CamelModel):
    artifact: str
    errors: Any = None


class RepairResponse(ArtifactResponse):
    rows_replaced: int = 0
    rows_preserved: int = 0
    mode: str = "none"


class RefineRequest(CamelModel):
    artifact: str
    bot_id: str
    token: Optional[str] = None
    max_iterations: Optional[int] = Field(None, ge=1, le=20)


class RefineResponse(ArtifactResponse):
    valid: bool
    iterations: int
    max_iterations_reached: bool = False
    stuck: bool = False
    warnings: List[str] = Field(default_factory=list)
    version_id: Optional[str] = None


class FlowPlan(CamelModel):
    name: str = Field(..., min_length=1)
    description: str = ""
    start_node: Optional[int] = None


class ComposeRequest(CamelModel):
    flows: List[FlowPlan] = Field(..., min_length=1)
    project: str = ""


class ComposeResponse(ArtifactResponse):
    skipped: List[str] = Field(default_factory=list)
    flow_errors: Dict[str, str] = Field(default_factory=dict)


class InvalidateRequest(CamelModel):
    key: Optional[str] = None


class InvalidateResponse(CamelModel):
    invalidated: List[str] = Field(default_factory=list)

"""Response shaping configuration."""

from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field

from adaptive_tutor.models.analysis import Complexity


class Encouragement(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ResponseStructure(StrEnum):
    BALANCED = "balanced"
    STRUCTURED_DETAILED = "structured_detailed"
    CONCISE_DIRECT = "concise_direct"
    STEP_BY_STEP = "step_by_step"
    SIMPLIFIED_BREAKDOWN = "simplified_breakdown"


class ResponseConfig(BaseModel):
    """How a generated answer should be shaped for this learner."""

    model_config = ConfigDict(frozen=True)

    tone: str = "warm and professional"
    complexity: Complexity = Complexity.MEDIUM
    include_examples: bool = False
    use_analogies: bool = False
    encouragement: Encouragement = Encouragement.MEDIUM
    structure: ResponseStructure = ResponseStructure.BALANCED
    follow_ups: list[str] = Field(default_factory=list)

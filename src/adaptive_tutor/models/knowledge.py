"""Concept graph records."""

from pydantic import BaseModel, ConfigDict, Field, model_validator


class KnowledgeNode(BaseModel):
    """A concept in the prerequisite graph."""

    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    subject: str
    difficulty: int = Field(default=1, ge=1)
    prerequisites: list[str] = Field(default_factory=list)
    related: list[str] = Field(default_factory=list)


class QuizItem(BaseModel):
    """A multiple-choice question attached to a concept."""

    model_config = ConfigDict(frozen=True)

    id: str
    prompt: str
    options: list[str] = Field(min_length=4, max_length=4)
    correct_index: int = Field(ge=0)
    explanation: str = ""
    concept_id: str
    difficulty: int = Field(default=1, ge=1)

    @model_validator(mode="after")
    def _check_correct_index(self) -> "QuizItem":
        if self.correct_index >= len(self.options):
            raise ValueError(f"correct_index {self.correct_index} out of range for {len(self.options)} options")
        return self

    @property
    def correct_letter(self) -> str:
        return "ABCD"[self.correct_index]

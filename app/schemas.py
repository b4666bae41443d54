import re
from typing import Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


def coerce_time_spent(value) -> int:
    """Leading-integer parse of ``value``; 0 when nothing parses, never negative."""
    if isinstance(value, bool) or value is None:
        return 0
    if isinstance(value, int):
        return max(value, 0)
    if isinstance(value, float):
        return max(int(value), 0) if value == value and abs(value) != float("inf") else 0
    match = _LEADING_INT.match(str(value))
    if not match:
        return 0
    return max(int(match.group(1)), 0)


class ActionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    @model_validator(mode="before")
    @classmethod
    def drop_nulls(cls, data):
        if isinstance(data, dict):
            return {k: v for k, v in data.items() if v is not None}
        return data


class SubmitAttemptRequest(ActionRequest):
    paper_id: str = Field(default="", alias="paperId")
    user_id: str = Field(default="", alias="userId")
    answer_text: str = Field(default="", alias="answerText")
    file_url: Optional[str] = Field(default=None, alias="fileUrl")
    file_name: Optional[str] = Field(default=None, alias="fileName")
    time_spent: int = Field(default=0, alias="timeSpent")

    @field_validator("file_url", "file_name", mode="before")
    @classmethod
    def blank_is_none(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("time_spent", mode="before")
    @classmethod
    def parse_time_spent(cls, value):
        return coerce_time_spent(value)


class DeleteAttemptRequest(ActionRequest):
    attempt_id: str = Field(default="", alias="attemptId")
    user_id: str = Field(default="", alias="userId")
    paper_id: Optional[str] = Field(default=None, alias="paperId")


class AttemptDetailsRequest(ActionRequest):
    attempt_id: str = Field(default="", alias="attemptId")
    user_id: str = Field(default="", alias="userId")


class GenerateOutlineRequest(ActionRequest):
    paper_id: str = Field(default="", alias="paperId")
    question_text: Optional[str] = Field(default=None, alias="questionText")
    user_id: Optional[str] = Field(default=None, alias="userId")


class PaperStatusesRequest(ActionRequest):
    user_id: str = Field(default="", alias="userId")


class GradingResult(BaseModel):
    score: int = Field(ge=0, le=60)
    grade: str
    feedback: str
    section_scores: Dict[str, str] = Field(alias="sectionScores")
    outline: str

    model_config = ConfigDict(populate_by_name=True)

    def as_record_fields(self) -> dict:
        return self.model_dump(by_alias=True)

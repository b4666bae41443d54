import json
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Attempt(Base):
    __tablename__ = "attempts"

    user_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    attempt_id: Mapped[str] = mapped_column(String(512), primary_key=True)
    paper_id: Mapped[str] = mapped_column(String(255), index=True)
    answer_text: Mapped[str] = mapped_column(Text, default="")
    file_url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file_name: Mapped[Optional[str]] = mapped_column(String(512), nullable=True)
    time_spent: Mapped[int] = mapped_column(Integer, default=0)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    score: Mapped[int] = mapped_column(Integer)
    grade: Mapped[str] = mapped_column(String(1))
    feedback: Mapped[str] = mapped_column(Text)
    section_scores_json: Mapped[str] = mapped_column(Text)
    outline: Mapped[str] = mapped_column(Text)

    def to_record(self) -> dict:
        return {
            "attemptId": self.attempt_id,
            "paperId": self.paper_id,
            "userId": self.user_id,
            "answerText": self.answer_text,
            "fileUrl": self.file_url,
            "fileName": self.file_name,
            "timeSpent": self.time_spent,
            "submittedAt": self.submitted_at.isoformat() if self.submitted_at else None,
            "score": self.score,
            "grade": self.grade,
            "feedback": self.feedback,
            "sectionScores": json.loads(self.section_scores_json),
            "outline": self.outline,
        }

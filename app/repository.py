import json
import logging
from contextlib import contextmanager

from sqlalchemy.exc import SQLAlchemyError

from app.database import Base, build_engine, build_session_factory
from app.errors import PersistenceFailure
from app.models import Attempt

logger = logging.getLogger(__name__)


class AttemptRepository:
    """Attempt records stored under their owner's ``user_id``.

    The repository does no authorization of its own: whoever supplies a
    ``user_id`` is trusted to own that partition.
    """

    def __init__(self, engine=None):
        self.engine = engine
        self._session_factory = build_session_factory(engine) if engine is not None else None

    @classmethod
    def from_url(cls, database_url: str | None) -> "AttemptRepository":
        if not database_url:
            return cls()
        repository = cls(build_engine(database_url))
        repository.create_schema()
        return repository

    @property
    def available(self) -> bool:
        return self._session_factory is not None

    def create_schema(self):
        Base.metadata.create_all(bind=self.engine)

    @contextmanager
    def _session(self, failure_message: str):
        if not self.available:
            raise PersistenceFailure("Database service unavailable.")
        db = self._session_factory()
        try:
            yield db
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("%s (%s)", failure_message, exc)
            raise PersistenceFailure(failure_message) from exc
        finally:
            db.close()

    def create(self, user_id: str, attempt_id: str, record: dict) -> dict:
        with self._session("Failed to save attempt data.") as db:
            attempt = db.merge(
                Attempt(
                    user_id=user_id,
                    attempt_id=attempt_id,
                    paper_id=record["paperId"],
                    answer_text=record.get("answerText") or "",
                    file_url=record.get("fileUrl"),
                    file_name=record.get("fileName"),
                    time_spent=record.get("timeSpent") or 0,
                    score=record["score"],
                    grade=record["grade"],
                    feedback=record["feedback"],
                    section_scores_json=json.dumps(record["sectionScores"]),
                    outline=record["outline"],
                )
            )
            db.commit()
            db.refresh(attempt)
            logger.info("[User: %s] Attempt %s for paper %s saved", user_id, attempt_id, attempt.paper_id)
            return attempt.to_record()

    def _find(self, db, user_id: str, attempt_id: str) -> Attempt | None:
        return db.get(Attempt, (user_id, attempt_id))

    def get(self, user_id: str, attempt_id: str) -> dict | None:
        with self._session("Failed to retrieve attempt details.") as db:
            attempt = self._find(db, user_id, attempt_id)
            if not attempt:
                logger.info("[User: %s] Attempt %s not found", user_id, attempt_id)
                return None
            return attempt.to_record()

    def delete(self, user_id: str, attempt_id: str) -> bool:
        with self._session("Failed to delete attempt.") as db:
            attempt = self._find(db, user_id, attempt_id)
            if not attempt:
                logger.info("[User: %s] Attempt %s not found for deletion", user_id, attempt_id)
                return False
            db.delete(attempt)
            db.commit()
            logger.info("[User: %s] Attempt %s deleted", user_id, attempt_id)
            return True

    def list_for_user(self, user_id: str) -> list[dict]:
        with self._session("Failed to retrieve attempts.") as db:
            rows = (
                db.query(Attempt)
                .filter(Attempt.user_id == user_id)
                .order_by(Attempt.submitted_at.desc(), Attempt.attempt_id.desc())
                .all()
            )
            return [row.to_record() for row in rows]

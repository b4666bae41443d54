import json
import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Mapping

from pydantic import ValidationError as PydanticValidationError

from app.errors import (
    DispatchError,
    GradingFailure,
    MethodNotAllowedError,
    NotFoundError,
    OutlineGenerationError,
    ServiceUnavailableError,
    ValidationError,
)
from app.papers import InvalidPaperId, parse_paper_id, sanitize_paper_id
from app.schemas import (
    ActionRequest,
    AttemptDetailsRequest,
    DeleteAttemptRequest,
    GenerateOutlineRequest,
    PaperStatusesRequest,
    SubmitAttemptRequest,
)

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS, DELETE, PUT",
}
GENERIC_SERVER_ERROR = "An internal server error occurred."


@dataclass
class DispatchResult:
    status_code: int
    body: dict | None = None
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ActionRoute:
    methods: tuple[str, ...]
    handler: str
    needs_grader: bool = False
    needs_store: bool = False


ACTIONS = {
    "submit_attempt": ActionRoute(("POST",), "_submit_attempt", needs_grader=True, needs_store=True),
    "delete_attempt": ActionRoute(("POST", "DELETE"), "_delete_attempt", needs_store=True),
    "get_attempt_details": ActionRoute(("GET",), "_get_attempt_details", needs_store=True),
    "generate_outline_only": ActionRoute(("POST",), "_generate_outline", needs_grader=True),
    "get_all_user_paper_statuses": ActionRoute(("GET",), "_get_paper_statuses", needs_store=True),
}


class AttemptIdGenerator:
    """Mints ``{userId}_{paperId}_{millis}`` ids whose time component never repeats in this process."""

    def __init__(self, clock: Callable[[], float] = time.time):
        self.clock = clock
        self._last_millis = 0
        self._lock = threading.Lock()

    def __call__(self, user_id: str, paper_id: str) -> str:
        with self._lock:
            millis = max(int(self.clock() * 1000), self._last_millis + 1)
            self._last_millis = millis
        return f"{user_id}_{sanitize_paper_id(paper_id)}_{millis}"


@dataclass
class RawRequest:
    method: str
    action: str | None
    params: dict


def normalize_request(method: str, raw_body, query: Mapping[str, str]) -> RawRequest:
    """Fold body, nested ``payload`` and query string into one parameter dict."""
    body = {}
    if raw_body:
        try:
            body = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise ValidationError("Invalid JSON body") from exc
        if not isinstance(body, dict):
            raise ValidationError("Invalid JSON body")

    payload = body.get("payload")
    if not isinstance(payload, dict):
        payload = body

    params = dict(query)
    params.update(payload)
    action = body.get("action") or query.get("action")
    return RawRequest(method=method.upper(), action=action or None, params=params)


class ActionDispatcher:
    def __init__(
        self,
        *,
        grader,
        outline_generator,
        repository,
        development: bool = False,
        id_generator: AttemptIdGenerator | None = None,
    ):
        self.grader = grader
        self.outline_generator = outline_generator
        self.repository = repository
        self.development = development
        self.new_attempt_id = id_generator or AttemptIdGenerator()

    @classmethod
    def from_container(cls, services) -> "ActionDispatcher":
        return cls(
            grader=services.grader,
            outline_generator=services.outline_generator,
            repository=services.repository,
            development=services.settings.is_development,
        )

    def dispatch(self, method: str, raw_body, query: Mapping[str, str]) -> DispatchResult:
        if method.upper() == "OPTIONS":
            return DispatchResult(status_code=204, headers=dict(CORS_HEADERS))

        try:
            request = normalize_request(method, raw_body, query)
            status_code, body = self._route(request)
            return DispatchResult(status_code=status_code, body=body, headers=dict(CORS_HEADERS))
        except MethodNotAllowedError as exc:
            return DispatchResult(
                status_code=exc.status_code,
                body=exc.to_body(),
                headers={**CORS_HEADERS, "Allow": ", ".join(exc.allowed)},
            )
        except DispatchError as exc:
            return DispatchResult(status_code=exc.status_code, body=exc.to_body(), headers=dict(CORS_HEADERS))
        except Exception as exc:  # noqa: BLE001
            logger.exception("Unhandled error while dispatching %s request", method)
            details = str(exc) if self.development else GENERIC_SERVER_ERROR
            return DispatchResult(
                status_code=500,
                body={"error": "Internal Server Error", "details": details},
                headers=dict(CORS_HEADERS),
            )

    def _route(self, request: RawRequest) -> tuple[int, dict]:
        route = ACTIONS.get(request.action) if isinstance(request.action, str) else None
        if route and route.needs_grader and not self.grader.available:
            raise ServiceUnavailableError("AI service (OpenAI) unavailable.")
        if route and route.needs_store and not self.repository.available:
            raise ServiceUnavailableError("Database service unavailable.")
        if route and route.needs_store and not str(request.params.get("userId") or "").strip():
            raise ValidationError(f"Missing userId for action: {request.action}")
        if not route:
            raise ValidationError("Unknown action or missing action parameter.")
        if request.method not in route.methods:
            raise MethodNotAllowedError(route.methods)

        logger.info("Dispatching %s %s", request.method, request.action)
        return getattr(self, route.handler)(request.params)

    @staticmethod
    def _parse(model: type[ActionRequest], params: dict):
        try:
            return model.model_validate(params)
        except PydanticValidationError as exc:
            fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in exc.errors())
            raise ValidationError("Invalid request fields.", fields) from exc

    def _submit_attempt(self, params: dict) -> tuple[int, dict]:
        req = self._parse(SubmitAttemptRequest, params)
        if not req.paper_id or not req.user_id or (not req.answer_text and not req.file_url):
            raise ValidationError("Missing required fields (paperId, userId, and answerText or fileUrl).")
        try:
            parse_paper_id(req.paper_id)
        except InvalidPaperId as exc:
            raise ValidationError("Invalid paperId.", str(exc)) from exc

        logger.info("[User: %s] Grading paper %s, time: %ss", req.user_id, req.paper_id, req.time_spent)
        try:
            grading = self.grader.grade(paper_id=req.paper_id, answer_text=req.answer_text, time_spent=req.time_spent)
        except GradingFailure as exc:
            logger.error("[User: %s] %s for paper %s: %s", req.user_id, type(exc).__name__, req.paper_id, exc)
            raise DispatchError("AI grading failed.", str(exc)) from exc

        attempt_id = self.new_attempt_id(req.user_id, req.paper_id)
        record = {
            "attemptId": attempt_id,
            "paperId": req.paper_id,
            "userId": req.user_id,
            "answerText": req.answer_text,
            "fileUrl": req.file_url,
            "fileName": req.file_name,
            "timeSpent": req.time_spent,
            **grading.as_record_fields(),
        }
        stored = self.repository.create(req.user_id, attempt_id, record)
        return 200, {"success": True, "message": "Attempt submitted and graded successfully.", **stored}

    def _delete_attempt(self, params: dict) -> tuple[int, dict]:
        req = self._parse(DeleteAttemptRequest, params)
        if not req.attempt_id or not req.user_id:
            raise ValidationError("Missing attemptId or userId for deletion.")

        if not self.repository.delete(req.user_id, req.attempt_id):
            raise NotFoundError(f"Attempt {req.attempt_id} not found.")
        return 200, {
            "success": True,
            "message": f"Attempt {req.attempt_id} deleted.",
            "deletedAttemptId": req.attempt_id,
            "relatedPaperId": req.paper_id,
        }

    def _get_attempt_details(self, params: dict) -> tuple[int, dict]:
        req = self._parse(AttemptDetailsRequest, params)
        if not req.attempt_id:
            raise ValidationError("Missing attemptId parameter.")

        record = self.repository.get(req.user_id, req.attempt_id)
        if record is None:
            raise NotFoundError(f"Attempt {req.attempt_id} not found.")
        if record.get("submittedAt"):
            submitted = datetime.fromisoformat(record["submittedAt"])
            if submitted.tzinfo is None:
                submitted = submitted.replace(tzinfo=timezone.utc)
            record["submittedAtISO"] = submitted.isoformat()
        return 200, record

    def _generate_outline(self, params: dict) -> tuple[int, dict]:
        req = self._parse(GenerateOutlineRequest, params)
        if not req.paper_id:
            raise ValidationError("Missing paperId for outline generation.")

        try:
            outline = self.outline_generator.generate(
                paper_id=req.paper_id, question_text=req.question_text, user_id=req.user_id
            )
        except OutlineGenerationError as exc:
            raise DispatchError("AI outline generation failed.", str(exc)) from exc
        return 200, {"success": True, "paperId": req.paper_id, "outline": outline}

    def _get_paper_statuses(self, params: dict) -> tuple[int, dict]:
        req = self._parse(PaperStatusesRequest, params)
        statuses = {}
        # list_for_user is newest first, so the first record per paper wins.
        for record in self.repository.list_for_user(req.user_id):
            statuses.setdefault(
                record["paperId"],
                {
                    "status": "done",
                    "linkAttemptId": record["attemptId"],
                    "score": record["score"],
                    "grade": record["grade"],
                    "submittedAt": record["submittedAt"],
                },
            )
        return 200, {"success": True, "userId": req.user_id, "statuses": statuses}

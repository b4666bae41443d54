"""Browser-side submission flow, usable from scripts and tests.

Mirrors what the exam page does: stop the timer, upload an optional file,
submit the attempt through the dispatcher, then hand back the result-view path.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional
from urllib.parse import urlencode

import httpx

logger = logging.getLogger(__name__)

Uploader = Callable[[object, str, str], Optional[tuple[str, str]]]


class SubmissionError(RuntimeError):
    def __init__(self, message: str, status_code: int | None = None, details: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.details = details


class ExamTimer:
    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self.clock = clock
        self._started_at: float | None = None
        self._accumulated = 0.0

    @property
    def running(self) -> bool:
        return self._started_at is not None

    def start(self):
        if self._started_at is None:
            self._started_at = self.clock()

    def stop(self) -> int:
        if self._started_at is not None:
            self._accumulated += self.clock() - self._started_at
            self._started_at = None
        return self.elapsed_seconds

    def reset(self):
        self._started_at = None
        self._accumulated = 0.0

    @property
    def elapsed_seconds(self) -> int:
        running = self.clock() - self._started_at if self._started_at is not None else 0.0
        return int(self._accumulated + running)


@dataclass
class SubmissionOutcome:
    attempt: dict
    result_path: str

    @property
    def attempt_id(self) -> str:
        return self.attempt["attemptId"]


class SubmissionOrchestrator:
    def __init__(self, http: httpx.Client, uploader: Uploader | None = None, endpoint: str = "/api/backend"):
        self.http = http
        self.uploader = uploader
        self.endpoint = endpoint

    @staticmethod
    def _raise_for_error(response: httpx.Response):
        if response.is_success:
            return
        try:
            data = response.json()
        except ValueError:
            data = {}
        raise SubmissionError(
            data.get("error") or f"Server returned {response.status_code}",
            status_code=response.status_code,
            details=data.get("details"),
        )

    def submit(
        self,
        *,
        paper_id: str,
        user_id: str,
        answer_text: str = "",
        file=None,
        timer: ExamTimer | None = None,
    ) -> SubmissionOutcome:
        time_spent = timer.stop() if timer else 0

        file_url = file_name = None
        if file is not None:
            if self.uploader is None:
                raise SubmissionError("No uploader configured for file submissions.")
            uploaded = self.uploader(file, user_id, paper_id)
            if not uploaded:
                raise SubmissionError("File upload failed. Submission canceled.")
            file_url, file_name = uploaded

        if not answer_text and not file_url:
            raise SubmissionError("Please type an answer or upload a file before submitting.")

        logger.info("Submitting attempt for paper %s (user=%s, time_spent=%s)", paper_id, user_id, time_spent)
        response = self.http.post(
            self.endpoint,
            json={
                "action": "submit_attempt",
                "payload": {
                    "paperId": paper_id,
                    "userId": user_id,
                    "answerText": answer_text,
                    "fileUrl": file_url,
                    "fileName": file_name,
                    "timeSpent": time_spent,
                },
            },
        )
        self._raise_for_error(response)
        attempt = response.json()
        query = urlencode({"attemptId": attempt["attemptId"], "paperId": attempt["paperId"]})
        return SubmissionOutcome(attempt=attempt, result_path=f"result.html?{query}")

    def fetch_attempt(self, attempt_id: str, user_id: str) -> dict:
        response = self.http.get(
            self.endpoint,
            params={"action": "get_attempt_details", "attemptId": attempt_id, "userId": user_id},
        )
        self._raise_for_error(response)
        return response.json()

    def delete_attempt(self, attempt_id: str, user_id: str, paper_id: str | None = None) -> dict:
        response = self.http.request(
            "DELETE",
            self.endpoint,
            json={"action": "delete_attempt", "payload": {"attemptId": attempt_id, "userId": user_id, "paperId": paper_id}},
        )
        self._raise_for_error(response)
        return response.json()

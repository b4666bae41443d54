import json
import logging
import math
import re

from openai import APIError, AuthenticationError, OpenAI

from app.config import Settings
from app.errors import (
    GradingParseError,
    GradingSchemaError,
    GradingTransportError,
    GradingUnavailableError,
    OutlineGenerationError,
)
from app.papers import SECTION_KEYS, InvalidPaperId, PaperRef, parse_paper_id, section_defaults
from app.schemas import GradingResult

logger = logging.getLogger(__name__)

VALID_GRADES = ("A", "B", "C", "D", "E", "U")
MAX_SCORE = 60
EMPTY_ANSWER_FEEDBACK = "No answer was provided for grading."
EMPTY_ANSWER_OUTLINE = "No answer submitted. A specific outline cannot be generated for this attempt."
_SECTION_SCORE = re.compile(r"^\s*(\d+)\s*/\s*20\s*$")

# Fields the model must return, with the JSON types they must have.
_REQUIRED_FIELDS = (
    ("score", "number"),
    ("grade", "string"),
    ("feedback", "string"),
    ("sectionScores", "object"),
    ("outline", "string"),
)


def build_openai_client(settings: Settings):
    if not settings.openai_api_key:
        return None
    return OpenAI(
        api_key=settings.openai_api_key,
        timeout=settings.openai_timeout_seconds,
        max_retries=settings.openai_max_retries,
    )


def _matches_json_type(value, expected: str) -> bool:
    if expected == "number":
        if not isinstance(value, (int, float)) or isinstance(value, bool):
            return False
        try:
            return math.isfinite(value)
        except OverflowError:
            return False
    if expected == "string":
        return isinstance(value, str)
    if expected == "object":
        return isinstance(value, dict)
    return False


def _first_message(completion) -> str:
    if not completion.choices:
        return ""
    return completion.choices[0].message.content or ""


class GradingService:
    def __init__(self, client=None, model: str = "gpt-3.5-turbo-0125", temperature: float = 0.3):
        self.client = client
        self.model = model
        self.temperature = temperature

    @property
    def available(self) -> bool:
        return self.client is not None

    @staticmethod
    def floor_result(paper: PaperRef | None) -> GradingResult:
        if paper is None:
            sections = {key: "0/20" for key in SECTION_KEYS}
        else:
            sections = section_defaults(paper, "0/20")
        return GradingResult(
            score=0,
            grade="U",
            feedback=EMPTY_ANSWER_FEEDBACK,
            section_scores=sections,
            outline=EMPTY_ANSWER_OUTLINE,
        )

    @staticmethod
    def _build_system_prompt(paper: PaperRef) -> str:
        if paper.is_multi_section:
            layout_rule = (
                f"This is paper {paper.paper_number}, a multi-section paper: give \"sectionA\", \"sectionB\" and "
                "\"sectionC\" each as a string like \"15/20\". Use \"N/A\" for a section the paper does not have."
            )
        else:
            layout_rule = (
                f"This is paper {paper.paper_number}, a single-essay paper: set \"sectionA\", \"sectionB\" and "
                "\"sectionC\" all to \"N/A\"."
            )
        return (
            "You are an A-Level exam marker. "
            "You will be given the paper ID, the time the student spent, and the student's answer. "
            "Return ONLY a valid JSON object with every field populated:\n"
            f"1. \"score\": an integer score out of {MAX_SCORE}.\n"
            "2. \"grade\": a single uppercase letter grade (A, B, C, D, E, or U).\n"
            "3. \"feedback\": constructive, detailed feedback referencing specific parts of the answer. "
            "Minimum 100 words.\n"
            f"4. \"sectionScores\": an object. {layout_rule}\n"
            "5. \"outline\": a model essay outline relevant to the paper and the answer, suggesting a better "
            "structure. Minimum 70 words, formatted with markdown.\n"
            "Base your grading on typical A-Level standards. Economics papers are 'econ-9708-...', "
            "Business papers are 'biz-9609-...'. Tailor feedback and outline to the subject. "
            "Be critical but fair; a very poor answer must get a low score and grade."
        )

    @staticmethod
    def _build_user_prompt(paper: PaperRef, answer_text: str, time_spent: int) -> str:
        spent = f"{time_spent} seconds" if time_spent else "Not specified"
        return f"Paper ID: {paper.paper_id}\nTime Spent: {spent}\nStudent's Answer:\n---\n{answer_text}\n---"

    def grade(self, *, paper_id: str, answer_text: str, time_spent: int = 0) -> GradingResult:
        if not answer_text or not answer_text.strip():
            logger.info("No answer text for paper %s; returning floor result", paper_id)
            try:
                return self.floor_result(parse_paper_id(paper_id))
            except InvalidPaperId:
                return self.floor_result(None)

        try:
            paper = parse_paper_id(paper_id)
        except InvalidPaperId as exc:
            raise GradingSchemaError(f"Cannot grade an unrecognized paper id: {exc}") from exc
        if not self.client:
            raise GradingUnavailableError("OpenAI client not initialized. Cannot grade.")

        logger.info("Grading via OpenAI (paper=%s, time_spent=%s, answer_length=%s)", paper_id, time_spent, len(answer_text))
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {"role": "system", "content": self._build_system_prompt(paper)},
                    {"role": "user", "content": self._build_user_prompt(paper, answer_text, time_spent)},
                ],
                response_format={"type": "json_object"},
                temperature=self.temperature,
            )
        except AuthenticationError as exc:
            logger.error("Grading transport failure for paper %s: invalid API key", paper_id)
            raise GradingTransportError("Invalid OpenAI API key") from exc
        except APIError as exc:
            logger.error("Grading transport failure for paper %s: %s", paper_id, exc)
            raise GradingTransportError(f"OpenAI request failed: {exc}") from exc

        content = _first_message(completion)
        logger.info("OpenAI grading response length=%s", len(content))
        payload = self._parse_json(content)
        return self._normalize(self._validate_payload(payload, content), paper)

    @staticmethod
    def _parse_json(content: str):
        if not content.strip():
            logger.error("Grading parse failure: empty content")
            raise GradingParseError("OpenAI returned an empty content string.")
        try:
            return json.loads(content)
        except ValueError as exc:
            # JSONDecodeError, or an integer past the interpreter's digit limit.
            logger.error("Grading parse failure (%s). Raw: %r", exc, content[:200])
            raise GradingParseError(f"AI returned an invalid JSON format. Content: {content[:200]}...") from exc

    @staticmethod
    def _validate_payload(payload, raw: str) -> dict:
        if not isinstance(payload, dict):
            logger.error("Grading schema failure: top level is %s. Raw: %r", type(payload).__name__, raw[:200])
            raise GradingSchemaError("AI returned JSON with missing/invalid fields.")

        problems = [
            f"{name} must be a {expected}"
            for name, expected in _REQUIRED_FIELDS
            if not _matches_json_type(payload.get(name), expected)
        ]
        if problems:
            logger.error("Grading schema failure (%s). Raw: %r", "; ".join(problems), raw[:200])
            raise GradingSchemaError(f"AI returned JSON with missing/invalid fields: {'; '.join(problems)}")
        return payload

    @staticmethod
    def _normalize(payload: dict, paper: PaperRef) -> GradingResult:
        grade = payload["grade"].strip().upper()
        if grade not in VALID_GRADES:
            logger.error("Grading schema failure: grade %r is not one of %s", payload["grade"], VALID_GRADES)
            raise GradingSchemaError(f"AI returned an unknown grade {payload['grade']!r}.")

        score = min(max(int(round(payload["score"])), 0), MAX_SCORE)

        returned = payload["sectionScores"]
        sections = section_defaults(paper, "N/A")
        if paper.is_multi_section:
            for key in SECTION_KEYS:
                value = returned.get(key)
                match = _SECTION_SCORE.match(value) if isinstance(value, str) else None
                if match and int(match.group(1)) <= 20:
                    sections[key] = f"{int(match.group(1))}/20"

        return GradingResult(
            score=score,
            grade=grade,
            feedback=payload["feedback"],
            section_scores=sections,
            outline=payload["outline"],
        )


class OutlineGenerator:
    def __init__(self, client=None, model: str = "gpt-3.5-turbo", temperature: float = 0.5):
        self.client = client
        self.model = model
        self.temperature = temperature

    @property
    def available(self) -> bool:
        return self.client is not None

    @staticmethod
    def _build_prompt(paper_id: str, question_text: str | None) -> str:
        focus = (
            f'The specific question or context is: "{question_text}"'
            if question_text and question_text.strip()
            else "Focus on common themes and structure for this paper type."
        )
        return (
            f"Generate a detailed essay outline for an A-Level paper with ID {paper_id}. {focus} "
            "Structure it clearly with main sections (e.g. Introduction, Section A, Section B, Conclusion), "
            "sub-points as bullet points or numbered lists, and suggestions for examples, evidence, or key "
            "concepts where applicable. Keep the tone academic and helpful for a student preparing for an exam. "
            "Return plain text formatted with markdown (# for headings, - for bullet points)."
        )

    def generate(self, *, paper_id: str, question_text: str | None = None, user_id: str | None = None) -> str:
        if not self.client:
            raise OutlineGenerationError("OpenAI client not initialized. Cannot generate outline.")

        logger.info("Generating outline via OpenAI (user=%s, paper=%s)", user_id or "Guest", paper_id)
        try:
            completion = self.client.chat.completions.create(
                model=self.model,
                messages=[
                    {
                        "role": "system",
                        "content": "You are an expert A-Level tutor specializing in essay planning and structure.",
                    },
                    {"role": "user", "content": self._build_prompt(paper_id, question_text)},
                ],
                temperature=self.temperature,
            )
        except APIError as exc:
            logger.error("Outline generation failed for paper %s: %s", paper_id, exc)
            raise OutlineGenerationError(f"OpenAI request failed: {exc}") from exc

        outline = _first_message(completion)
        if not outline.strip():
            raise OutlineGenerationError("OpenAI returned an empty outline.")
        logger.info("Outline generated for paper %s (length=%s)", paper_id, len(outline))
        return outline

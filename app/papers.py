import re
from dataclasses import dataclass

SECTION_KEYS = ("sectionA", "sectionB", "sectionC")
SINGLE_ESSAY = "single_essay"
MULTI_SECTION = "multi_section"

_LAYOUT_BY_PAPER_NUMBER = {
    1: SINGLE_ESSAY,
    2: MULTI_SECTION,
    3: SINGLE_ESSAY,
    4: MULTI_SECTION,
}
_UNSAFE_ID_CHARS = re.compile(r"[^A-Za-z0-9-]")


class InvalidPaperId(ValueError):
    pass


@dataclass(frozen=True)
class PaperRef:
    paper_id: str
    subject_prefix: str
    subject_code: str
    paper_number: int
    variant: str
    session_code: str
    year_yy: str

    @property
    def layout(self) -> str:
        return _LAYOUT_BY_PAPER_NUMBER[self.paper_number]

    @property
    def is_multi_section(self) -> bool:
        return self.layout == MULTI_SECTION

    @property
    def display_code(self) -> str:
        return f"{self.subject_code}/{self.paper_number}{self.variant}/{self.session_code.upper()}/{self.year_yy}"


def parse_paper_id(paper_id: str) -> PaperRef:
    """Split ``econ-9708-11-mj-25`` into its parts.

    The first digit of the third component is the paper number and decides the
    section layout; whatever follows it is the variant.
    """
    parts = (paper_id or "").strip().split("-")
    if len(parts) < 5 or not all(parts[:5]):
        raise InvalidPaperId(f"Paper id {paper_id!r} does not have the form subject-code-paper-session-year")

    prefix, code, number_variant, session, year = parts[:5]
    if not number_variant.isdigit():
        raise InvalidPaperId(f"Paper id {paper_id!r} has a non-numeric paper component {number_variant!r}")

    paper_number = int(number_variant[0])
    if paper_number not in _LAYOUT_BY_PAPER_NUMBER:
        raise InvalidPaperId(f"Paper id {paper_id!r} has unknown paper number {paper_number}")

    return PaperRef(
        paper_id=paper_id,
        subject_prefix=prefix.lower(),
        subject_code=code,
        paper_number=paper_number,
        variant=number_variant[1:],
        session_code=session,
        year_yy=year[-2:],
    )


def sanitize_paper_id(paper_id: str) -> str:
    return _UNSAFE_ID_CHARS.sub("", paper_id)


def section_defaults(paper: PaperRef, value: str) -> dict[str, str]:
    """Section map with ``value`` in every section the paper uses and N/A elsewhere."""
    if not paper.is_multi_section:
        return {key: "N/A" for key in SECTION_KEYS}
    return {key: value for key in SECTION_KEYS}

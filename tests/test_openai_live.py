import os

import pytest

from app.config import get_settings
from app.services import VALID_GRADES, GradingService, OutlineGenerator, build_openai_client


@pytest.mark.integration
@pytest.mark.skipif(not os.getenv("OPENAI_API_KEY"), reason="OPENAI_API_KEY not set")
def test_live_grade_and_outline():
    settings = get_settings()
    client = build_openai_client(settings)
    grader = GradingService(client, model=settings.grading_model)

    result = grader.grade(
        paper_id="econ-9708-11-mj-25",
        answer_text=(
            "A fall in the price of a substitute good shifts the demand curve for tea to the left. "
            "Price falls and quantity traded falls; the size of the change depends on supply elasticity."
        ),
        time_spent=900,
    )

    assert 0 <= result.score <= 60
    assert result.grade in VALID_GRADES
    assert result.feedback.strip()
    assert result.section_scores == {"sectionA": "N/A", "sectionB": "N/A", "sectionC": "N/A"}

    outline = OutlineGenerator(client, model=settings.outline_model).generate(paper_id="biz-9609-21-fm-25")
    assert outline.strip()

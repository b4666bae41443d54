import pytest

from app.database import build_engine
from app.dispatcher import ActionDispatcher
from app.repository import AttemptRepository
from app.services import GradingService, OutlineGenerator
from tests.fakes import FakeOpenAI, grading_json


@pytest.fixture
def fake_openai():
    return FakeOpenAI(grading_json())


@pytest.fixture
def repository():
    repo = AttemptRepository(build_engine("sqlite://"))
    repo.create_schema()
    return repo


@pytest.fixture
def dispatcher(fake_openai, repository):
    return ActionDispatcher(
        grader=GradingService(fake_openai),
        outline_generator=OutlineGenerator(FakeOpenAI("# Outline\n- Point one")),
        repository=repository,
    )

import json
from types import SimpleNamespace


class FakeCompletions:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        if not isinstance(response, str):
            return response
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=response))])


class FakeOpenAI:
    """Stands in for ``openai.OpenAI``; replies with canned message contents in order."""

    def __init__(self, *responses):
        self.completions = FakeCompletions(responses or [""])
        self.chat = SimpleNamespace(completions=self.completions)

    @property
    def calls(self):
        return self.completions.calls


def grading_json(omit=(), **overrides):
    payload = {
        "score": 42,
        "grade": "B",
        "feedback": "Clear use of supply and demand diagrams, but evaluation is thin.",
        "sectionScores": {"sectionA": "N/A", "sectionB": "N/A", "sectionC": "N/A"},
        "outline": "# Introduction\n- Define elasticity\n# Analysis\n- Diagram",
    }
    payload.update(overrides)
    return json.dumps({k: v for k, v in payload.items() if k not in omit})


def completion_without_choices():
    return SimpleNamespace(choices=[])

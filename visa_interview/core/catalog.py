import json
from importlib import resources
from pathlib import Path
from typing import Any, Dict, Iterable, List, Sequence

from visa_interview.core.exceptions import ConfigurationError
from visa_interview.core.models import ALL_ROUTES, Difficulty, QuestionRecord


class QuestionCatalog:
    """Read-only question bank, injected into the selector."""

    def __init__(self, questions: Iterable[QuestionRecord]):
        self._questions: tuple = tuple(questions)
        ids = [q.id for q in self._questions]
        if len(ids) != len(set(ids)):
            raise ConfigurationError("Question catalog contains duplicate ids")
        self._by_id: Dict[str, QuestionRecord] = {q.id: q for q in self._questions}

    def __len__(self) -> int:
        return len(self._questions)

    def __iter__(self):
        return iter(self._questions)

    def get(self, question_id: str) -> QuestionRecord | None:
        return self._by_id.get(question_id)

    def eligible(self, route: str, degree_level: str | None = None) -> List[QuestionRecord]:
        return [q for q in self._questions if q.applies_to(route, degree_level)]

    def find(
        self,
        route: str | None = None,
        degree_level: str | None = None,
        category: str | None = None,
        difficulty: Difficulty | None = None
    ) -> List[QuestionRecord]:
        result = []
        for q in self._questions:
            if route is not None and not q.applies_to(route, degree_level):
                continue
            if category is not None and q.category != category:
                continue
            if difficulty is not None and q.difficulty != difficulty:
                continue
            result.append(q)
        return result

    def categories(self) -> List[str]:
        return sorted({q.category for q in self._questions})

    @classmethod
    def from_dicts(cls, items: Sequence[Dict[str, Any]]) -> "QuestionCatalog":
        questions = []
        for item in items:
            try:
                questions.append(QuestionRecord(
                    id=str(item["id"]),
                    text=item["text"],
                    category=item["category"],
                    difficulty=Difficulty(item.get("difficulty", "medium")),
                    routes=tuple(item.get("routes") or (ALL_ROUTES,)),
                    degree_levels=tuple(item.get("degree_levels") or ()),
                    keywords=tuple(item.get("keywords") or ()),
                    cluster=item.get("cluster"),
                    requires_context=tuple(item.get("requires_context") or ()),
                ))
            except (KeyError, ValueError) as e:
                raise ConfigurationError(f"Invalid question entry {item!r}: {e}") from e
        return cls(questions)

    @classmethod
    def from_json(cls, path: str | Path) -> "QuestionCatalog":
        with open(path, encoding="utf-8") as f:
            data = json.load(f)
        return cls.from_dicts(data["questions"] if isinstance(data, dict) else data)

    @classmethod
    def default(cls) -> "QuestionCatalog":
        raw = resources.files("visa_interview").joinpath("data/question_bank.json").read_text(encoding="utf-8")
        return cls.from_dicts(json.loads(raw)["questions"])

"""Adaptive question selection.

The selector narrows the eligible, not-yet-asked part of the catalog through a
fixed sequence of filters (category maximum, difficulty bucket, topic focus,
route stage, category minimum) and picks uniformly from what survives. Each
filter only narrows when the narrowed pool is non-empty, so the only way to
run dry is the category-maximum filter; in that case constraints are relaxed
in order before exhaustion is signalled.

The base pool also drops questions whose semantic cluster was already covered
and questions gated on context the candidate has not mentioned. Follow-ups are
offered separately and take a slot only while the category minimums can still
be met.
"""
import random
from dataclasses import dataclass
from typing import Dict, List, Protocol, Sequence, Tuple, TypeVar

from visa_interview.core.answer_rules import find_follow_up
from visa_interview.core.catalog import QuestionCatalog
from visa_interview.core.exceptions import ExhaustionError
from visa_interview.core.models import (
    NO_RESPONSE,
    Difficulty,
    DifficultyPolicy,
    ExhaustionSignal,
    QuestionRecord,
    SessionContext,
)
from visa_interview.utils.logger import SessionEventLogger

T = TypeVar("T")

TOPIC_FOCUS_PROBABILITY = 0.7

# (last index of the stage, weights); None closes the table.
PROGRESSIVE_DISTRIBUTION: Tuple[Tuple[int | None, Dict[Difficulty, int]], ...] = (
    (2, {Difficulty.EASY: 60, Difficulty.MEDIUM: 30, Difficulty.HARD: 10}),
    (5, {Difficulty.EASY: 30, Difficulty.MEDIUM: 50, Difficulty.HARD: 20}),
    (None, {Difficulty.EASY: 20, Difficulty.MEDIUM: 40, Difficulty.HARD: 40}),
)


class RandomSource(Protocol):
    def random(self) -> float: ...

    def choice(self, items: Sequence[T]) -> T: ...

    def weighted_choice(self, items: Sequence[T], weights: Sequence[float]) -> T: ...


class SeededRandom:
    def __init__(self, seed: int | None = None):
        self._rng = random.Random(seed)

    def random(self) -> float:
        return self._rng.random()

    def choice(self, items: Sequence[T]) -> T:
        return self._rng.choice(items)

    def weighted_choice(self, items: Sequence[T], weights: Sequence[float]) -> T:
        return self._rng.choices(items, weights=weights, k=1)[0]


@dataclass(frozen=True)
class Relaxation:
    topic_focus: bool = True
    difficulty: bool = True
    category_max: bool = True

    def describe(self) -> str:
        dropped = [name for name, kept in (
            ("topic_focus", self.topic_focus),
            ("difficulty", self.difficulty),
            ("category_max", self.category_max),
        ) if not kept]
        return "none" if not dropped else ", ".join(dropped)


RELAXATION_ORDER: Tuple[Relaxation, ...] = (
    Relaxation(),
    Relaxation(topic_focus=False),
    Relaxation(topic_focus=False, difficulty=False),
    Relaxation(topic_focus=False, difficulty=False, category_max=False),
)


def progressive_distribution(index: int) -> Dict[Difficulty, int]:
    for last_index, weights in PROGRESSIVE_DISTRIBUTION:
        if last_index is None or index <= last_index:
            return weights
    return PROGRESSIVE_DISTRIBUTION[-1][1]


class AdaptiveQuestionSelector:
    def __init__(self, rng: RandomSource | None = None, events: SessionEventLogger | None = None):
        self.rng = rng or SeededRandom()
        self.events = events or SessionEventLogger()

    def select_next(self, context: SessionContext, catalog: QuestionCatalog) -> QuestionRecord | ExhaustionSignal:
        target = context.mode.question_count
        if context.current_index >= target:
            return ExhaustionSignal(asked=context.current_index, target=target, reason="question count reached")

        base = [q for q in catalog.eligible(context.route.name, context.degree_level) if self._available(context, q)]
        if not base:
            self.events.log("Selector", "Catalog exhausted for route", {"route": context.route.name})
            return ExhaustionSignal(asked=context.current_index, target=target, reason="catalog exhausted")

        for relaxation in RELAXATION_ORDER:
            if not relaxation.category_max and not context.allow_quota_overflow:
                break
            pool = self._build_pool(context, base, relaxation)
            if not pool:
                continue
            selected = self.rng.choice(pool)
            context.record(selected)
            self.events.log("Selector", f"Selected {selected.id}", {
                "index": context.current_index - 1,
                "category": selected.category,
                "difficulty": selected.difficulty.value,
                "pool_size": len(pool),
                "relaxed": relaxation.describe()
            })
            return selected

        self.events.log("Selector", "All categories at maximum", {"counts": dict(context.category_counts)})
        return ExhaustionSignal(asked=context.current_index, target=target, reason="category quotas exhausted")

    def select_follow_up(self, context: SessionContext, previous: QuestionRecord, answer: str) -> QuestionRecord | None:
        if not context.follow_ups or previous.follow_up or answer == NO_RESPONSE:
            return None
        remaining = context.mode.question_count - context.current_index
        if remaining - 1 < context.unmet_minimum():
            return None
        rule = find_follow_up(context.route.name, answer, context.asked_question_ids)
        if rule is None:
            return None
        question = rule.to_question(context.route.name)
        context.record(question)
        self.events.log("Selector", f"Follow-up {rule.key} after {previous.id}", {"index": context.current_index - 1})
        return question

    def select_or_raise(self, context: SessionContext, catalog: QuestionCatalog) -> QuestionRecord:
        result = self.select_next(context, catalog)
        if isinstance(result, ExhaustionSignal):
            raise ExhaustionError(result.asked, result.target)
        return result

    def _build_pool(self, context: SessionContext, base: List[QuestionRecord], relaxation: Relaxation) -> List[QuestionRecord]:
        if relaxation.category_max:
            within_max = [q for q in base if not context.at_max(q.category)]
        else:
            within_max = base
        if not within_max:
            return []

        by_difficulty = self._difficulty_pool(context, within_max) if relaxation.difficulty else within_max

        focused = False
        pool = by_difficulty
        if relaxation.topic_focus:
            pool, focused = self._topic_pool(context, by_difficulty)
        if not focused:
            pool = self._stage_pool(context, pool)

        return self._minimum_override(context, within_max, by_difficulty, pool, focused)

    def _draw_difficulty(self, context: SessionContext) -> Difficulty:
        if context.difficulty_policy == DifficultyPolicy.MODE:
            weights = context.mode.difficulty_distribution
        else:
            weights = progressive_distribution(context.current_index)
        levels = list(Difficulty)
        return self.rng.weighted_choice(levels, [weights.get(level, 0) for level in levels])

    def _difficulty_pool(self, context: SessionContext, pool: List[QuestionRecord]) -> List[QuestionRecord]:
        bucket = context.target_difficulty or self._draw_difficulty(context)
        filtered = [q for q in pool if q.difficulty == bucket]
        return filtered or pool

    def _topic_pool(self, context: SessionContext, pool: List[QuestionRecord]) -> Tuple[List[QuestionRecord], bool]:
        focus = context.topic_focus
        if not focus or context.at_max(focus):
            return pool, False
        if self.rng.random() >= TOPIC_FOCUS_PROBABILITY:
            return pool, False
        focused = [q for q in pool if q.category == focus]
        if not focused:
            return pool, False
        return focused, True

    def _stage_pool(self, context: SessionContext, pool: List[QuestionRecord]) -> List[QuestionRecord]:
        stage = context.route.stage_category(context.current_index)
        if stage is None:
            return pool
        staged = [q for q in pool if q.category == stage]
        return staged or pool

    def _minimum_override(
        self,
        context: SessionContext,
        within_max: List[QuestionRecord],
        by_difficulty: List[QuestionRecord],
        pool: List[QuestionRecord],
        focused: bool
    ) -> List[QuestionRecord]:
        if focused and context.below_min(context.topic_focus):
            return pool

        under = {q.category for q in within_max if context.below_min(q.category)}
        if not under:
            return pool

        preferred = [q for q in by_difficulty if q.category in under]
        if not preferred:
            preferred = [q for q in within_max if q.category in under]

        stage = context.route.stage_category(context.current_index)
        if stage in under:
            staged = [q for q in preferred if q.category == stage]
            if staged:
                return staged
        return preferred

    @staticmethod
    def _available(context: SessionContext, question: QuestionRecord) -> bool:
        if question.id in context.asked_question_ids:
            return False
        if question.cluster and question.cluster in context.asked_clusters:
            return False
        if question.requires_context and not context.context_flags.intersection(question.requires_context):
            return False
        return True

import pytest

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
from visa_interview.core.modes import resolve_mode, resolve_route
from visa_interview.core.selector import AdaptiveQuestionSelector, SeededRandom, progressive_distribution


class RecordingRandom(SeededRandom):
    def __init__(self, seed=None):
        super().__init__(seed)
        self.weights = []

    def weighted_choice(self, items, weights):
        self.weights.append(list(weights))
        return super().weighted_choice(items, weights)


def make_context(mode="standard", route="usa_f1", **options):
    return SessionContext(mode=resolve_mode(mode), route=resolve_route(route), **options)


def run_session(catalog, context, seed):
    selector = AdaptiveQuestionSelector(SeededRandom(seed))
    picked = []
    while True:
        result = selector.select_next(context, catalog)
        if isinstance(result, ExhaustionSignal):
            return picked, result
        picked.append(result)


def test_progressive_distribution_stages():
    assert progressive_distribution(0)[Difficulty.EASY] == 60
    assert progressive_distribution(2)[Difficulty.HARD] == 10
    assert progressive_distribution(3)[Difficulty.MEDIUM] == 50
    assert progressive_distribution(5)[Difficulty.HARD] == 20
    assert progressive_distribution(6)[Difficulty.HARD] == 40
    assert progressive_distribution(30)[Difficulty.EASY] == 20


@pytest.mark.parametrize("mode", ["practice", "standard", "comprehensive", "stress"])
def test_full_sessions_respect_quotas(catalog, mode):
    for seed in range(25):
        context = make_context(mode)
        picked, signal = run_session(catalog, context, seed)

        assert len(picked) == context.mode.question_count
        assert signal.reason == "question count reached"
        assert len({q.id for q in picked}) == len(picked)
        for req in context.mode.category_requirements:
            count = sum(1 for q in picked if q.category == req.category)
            assert req.min_questions <= count <= req.max_questions


def test_minimums_are_served_first(catalog):
    context = make_context("comprehensive")
    picked, _ = run_session(catalog, context, seed=3)
    total_minimum = sum(req.min_questions for req in context.mode.category_requirements)
    head = picked[:total_minimum]
    for req in context.mode.category_requirements:
        assert sum(1 for q in head if q.category == req.category) == req.min_questions


def test_early_hard_fraction_matches_progressive_weights(catalog):
    hard = total = 0
    for seed in range(1000):
        context = make_context("standard", "uk_student")
        selector = AdaptiveQuestionSelector(SeededRandom(seed))
        for _ in range(3):
            question = selector.select_next(context, catalog)
            total += 1
            hard += question.difficulty == Difficulty.HARD
    assert abs(hard / total - 0.10) <= 0.02


def test_topic_focus_keeps_focus_category_within_bounds(catalog):
    counts = []
    for seed in range(200):
        context = make_context("standard", topic_focus="financial")
        picked, _ = run_session(catalog, context, seed)
        counts.append(sum(1 for q in picked if q.category == "financial"))
    assert all(2 <= count <= 4 for count in counts)
    assert sum(counts) / len(counts) > 3


def test_topic_focus_front_loads_focus_category(catalog):
    focused = plain = 0
    for seed in range(200):
        for topic_focus, bucket in (("post_study", "focused"), (None, "plain")):
            context = make_context("comprehensive", "uk_student", topic_focus=topic_focus)
            selector = AdaptiveQuestionSelector(SeededRandom(seed))
            first = selector.select_next(context, catalog)
            if first.category == "post_study":
                if bucket == "focused":
                    focused += 1
                else:
                    plain += 1
    assert focused > plain * 2


def test_target_difficulty_is_preferred(catalog):
    context = make_context("standard", "uk_student", target_difficulty=Difficulty.HARD)
    selector = AdaptiveQuestionSelector(SeededRandom(11))
    first_four = [selector.select_next(context, catalog) for _ in range(4)]
    assert all(q.difficulty == Difficulty.HARD for q in first_four)


def test_mode_policy_uses_mode_distribution(catalog):
    rng = RecordingRandom(5)
    context = make_context("stress", "uk_student", difficulty_policy=DifficultyPolicy.MODE)
    AdaptiveQuestionSelector(rng).select_next(context, catalog)
    assert rng.weights[0] == [10, 40, 50]

    rng = RecordingRandom(5)
    context = make_context("stress", "uk_student")
    AdaptiveQuestionSelector(rng).select_next(context, catalog)
    assert rng.weights[0] == [60, 30, 10]


def test_usa_stage_plan_opens_with_academic(catalog):
    for seed in range(20):
        context = make_context("standard", "usa_f1")
        selector = AdaptiveQuestionSelector(SeededRandom(seed))
        assert selector.select_next(context, catalog).category == "academic"


def test_small_catalog_signals_exhaustion():
    tiny = QuestionCatalog([
        QuestionRecord("a", "Who is your sponsor?", "financial", Difficulty.EASY),
        QuestionRecord("b", "Why this university?", "academic", Difficulty.MEDIUM),
    ])
    context = make_context("practice", "uk_student")
    picked, signal = run_session(tiny, context, seed=1)
    assert len(picked) == 2
    assert signal == ExhaustionSignal(asked=2, target=8, reason="catalog exhausted")

    with pytest.raises(ExhaustionError):
        AdaptiveQuestionSelector(SeededRandom(1)).select_or_raise(context, tiny)


def test_category_max_is_hard_unless_overflow_allowed():
    single_category = QuestionCatalog([
        QuestionRecord(f"f{i}", f"Financial question {i}?", "financial", Difficulty.MEDIUM) for i in range(10)
    ])
    context = make_context("standard", "uk_student")
    picked, signal = run_session(single_category, context, seed=2)
    assert len(picked) == 4
    assert signal.reason == "category quotas exhausted"

    context = make_context("standard", "uk_student", allow_quota_overflow=True)
    picked, signal = run_session(single_category, context, seed=2)
    assert len(picked) == 10
    assert signal.reason == "catalog exhausted"


def test_route_and_degree_filters_apply(catalog):
    for seed in range(20):
        context = make_context("comprehensive", "usa_f1", degree_level="undergraduate")
        picked, _ = run_session(catalog, context, seed)
        ids = {q.id for q in picked}
        assert not ids & {"aca-009", "aca-010", "aca-011", "fin-009"}


def test_one_question_per_semantic_cluster(catalog):
    for seed in range(40):
        for route in ("usa_f1", "uk_student", "france_ema"):
            context = make_context("comprehensive", route)
            picked, signal = run_session(catalog, context, seed)
            clusters = [q.cluster for q in picked if q.cluster]
            assert len(clusters) == len(set(clusters))
            assert signal.reason == "question count reached"


def test_context_gated_questions_wait_for_flags(catalog):
    for seed in range(40):
        picked, _ = run_session(catalog, make_context("comprehensive"), seed)
        assert not {q.id for q in picked} & {"aca-007", "fin-010", "gen-007"}

    gated = QuestionCatalog([
        QuestionRecord("s1", "Who pays your scholarship shortfall?", "financial", Difficulty.EASY,
                       requires_context=("has_scholarship",)),
    ])
    context = make_context("practice", "uk_student")
    assert isinstance(AdaptiveQuestionSelector(SeededRandom(1)).select_next(context, gated), ExhaustionSignal)
    context.context_flags.add("has_scholarship")
    assert AdaptiveQuestionSelector(SeededRandom(1)).select_next(context, gated).id == "s1"


def test_follow_up_takes_a_slot_but_no_quota(catalog):
    context = make_context("practice", "usa_f1", follow_ups=True)
    selector = AdaptiveQuestionSelector(SeededRandom(4))
    first = selector.select_next(context, catalog)
    follow_up = selector.select_follow_up(context, first, "Maybe I will return, I am still thinking about it.")

    assert follow_up.follow_up
    assert follow_up.id == "followup-usa_f1-uncertain_return"
    assert context.current_index == 2
    assert sum(context.category_counts.values()) == 1
    assert selector.select_follow_up(context, follow_up, "Maybe I will return.") is None
    assert selector.select_follow_up(context, first, "Maybe I will return, probably.") is None


def test_follow_ups_are_opt_in_and_skip_empty_answers(catalog):
    selector = AdaptiveQuestionSelector(SeededRandom(4))
    context = make_context("practice", "usa_f1")
    first = selector.select_next(context, catalog)
    assert selector.select_follow_up(context, first, "Maybe I will return.") is None

    context = make_context("practice", "usa_f1", follow_ups=True)
    first = selector.select_next(context, catalog)
    assert selector.select_follow_up(context, first, NO_RESPONSE) is None
    assert selector.select_follow_up(context, first, "I will return to run my father's clinic.") is None


def test_follow_ups_never_starve_category_minimums(catalog):
    vague = "Maybe I will return. My parents will pay. I got a scholarship. I have a loan. There was a deposit."
    for seed in range(25):
        context = make_context("practice", "usa_f1", follow_ups=True)
        selector = AdaptiveQuestionSelector(SeededRandom(seed))
        picked = []
        while True:
            previous = picked[-1] if picked else None
            result = selector.select_follow_up(context, previous, vague) if previous else None
            if result is None:
                result = selector.select_next(context, catalog)
            if isinstance(result, ExhaustionSignal):
                break
            picked.append(result)

        assert len(picked) == context.mode.question_count
        assert any(q.follow_up for q in picked)
        for req in context.mode.category_requirements:
            count = sum(1 for q in picked if q.category == req.category and not q.follow_up)
            assert req.min_questions <= count <= req.max_questions

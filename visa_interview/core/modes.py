"""Interview mode and route configuration.

Both lookups are pure: unknown or missing names fall back to the documented
defaults (``standard`` mode, ``usa_f1`` route) and never raise to callers.
"""
import logging
from typing import Dict

from visa_interview.core.exceptions import ConfigurationError
from visa_interview.core.models import CategoryRequirement, Difficulty, ModeConfig, RouteConfig

logger = logging.getLogger(__name__)

DEFAULT_MODE = "standard"
DEFAULT_ROUTE = "usa_f1"


def _requirements(**bounds: tuple) -> tuple:
    return tuple(CategoryRequirement(category, low, high) for category, (low, high) in bounds.items())


MODES: Dict[str, ModeConfig] = {
    "practice": ModeConfig(
        name="practice",
        question_count=8,
        difficulty_distribution={Difficulty.EASY: 50, Difficulty.MEDIUM: 40, Difficulty.HARD: 10},
        category_requirements=_requirements(financial=(1, 3), academic=(1, 3), post_study=(1, 2), general=(1, 2)),
    ),
    "standard": ModeConfig(
        name="standard",
        question_count=12,
        difficulty_distribution={Difficulty.EASY: 30, Difficulty.MEDIUM: 50, Difficulty.HARD: 20},
        category_requirements=_requirements(financial=(2, 4), academic=(2, 3), post_study=(2, 3), general=(1, 2)),
    ),
    "comprehensive": ModeConfig(
        name="comprehensive",
        question_count=16,
        difficulty_distribution={Difficulty.EASY: 20, Difficulty.MEDIUM: 50, Difficulty.HARD: 30},
        category_requirements=_requirements(financial=(3, 5), academic=(3, 5), post_study=(2, 4), general=(2, 3)),
    ),
    "stress": ModeConfig(
        name="stress",
        question_count=10,
        difficulty_distribution={Difficulty.EASY: 10, Difficulty.MEDIUM: 40, Difficulty.HARD: 50},
        category_requirements=_requirements(financial=(2, 4), academic=(2, 3), post_study=(2, 3), general=(1, 2)),
    ),
}

# usa_f1 follows the consular flow: study plans, university choice and
# academic capability first, then finances, then post-study ties.
USA_F1_STAGE_PLAN = ("academic", "academic", "academic", "academic", "financial", "financial", "post_study")

ROUTES: Dict[str, RouteConfig] = {
    "usa_f1": RouteConfig(name="usa_f1", label="USA F1 Student Visa", two_phase=False, stage_plan=USA_F1_STAGE_PLAN),
    "uk_student": RouteConfig(name="uk_student", label="UK Student Visa", two_phase=True),
    "france_ema": RouteConfig(name="france_ema", label="France Student Visa (EMA)", two_phase=True),
    "france_icn": RouteConfig(name="france_icn", label="France Student Visa (ICN)", two_phase=True),
}

ROUTE_ALIASES = {
    "usa": "usa_f1",
    "uk": "uk_student",
    "france": "france_ema",
}


def _lookup_mode(name: str) -> ModeConfig:
    try:
        return MODES[name.strip().lower()]
    except KeyError:
        raise ConfigurationError(f"Unknown interview mode: {name!r}") from None


def _lookup_route(name: str) -> RouteConfig:
    key = name.strip().lower()
    key = ROUTE_ALIASES.get(key, key)
    try:
        return ROUTES[key]
    except KeyError:
        raise ConfigurationError(f"Unknown interview route: {name!r}") from None


def resolve_mode(name: str | None = None) -> ModeConfig:
    if not name:
        return MODES[DEFAULT_MODE]
    try:
        return _lookup_mode(name)
    except ConfigurationError as e:
        logger.warning(f"{e}; using default mode '{DEFAULT_MODE}'")
        return MODES[DEFAULT_MODE]


def resolve_route(name: str | None = None) -> RouteConfig:
    if not name:
        return ROUTES[DEFAULT_ROUTE]
    try:
        return _lookup_route(name)
    except ConfigurationError as e:
        logger.warning(f"{e}; using default route '{DEFAULT_ROUTE}'")
        return ROUTES[DEFAULT_ROUTE]

import math
from typing import Dict, List, Sequence

from visa_interview.core.models import FinalAggregate, ResponseRecord


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


class FinalAggregator:
    """Session score: unweighted mean of every scored response."""

    def aggregate(self, responses: Sequence[ResponseRecord]) -> FinalAggregate:
        scored = [r.analysis for r in responses if r.analysis is not None]
        if not scored:
            return FinalAggregate(overall=0, categories={}, answered=0)

        category_values: Dict[str, List[int]] = {}
        for analysis in scored:
            for name, value in analysis.categories.items():
                category_values.setdefault(name, []).append(value)

        return FinalAggregate(
            overall=round_half_up(sum(a.overall for a in scored) / len(scored)),
            categories={name: round_half_up(sum(values) / len(values)) for name, values in category_values.items()},
            answered=len(scored)
        )

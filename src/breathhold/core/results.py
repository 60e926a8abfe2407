from typing import List, Tuple

from breathhold.core.models import CycleResult
from breathhold.utils.logging_handler import setup_logger

logger = setup_logger(__name__)


class ResultAggregator:
    """Append-only, gapless list of per-cycle results for the running session."""

    def __init__(self):
        self._results: List[CycleResult] = []

    def __len__(self):
        return len(self._results)

    def record(self, result: CycleResult) -> bool:
        """Append ``result`` if it is the next cycle index; duplicates and gaps are refused."""
        expected = len(self._results)
        if result.cycle_index != expected:
            logger.warning(
                f"Refusing result for cycle {result.cycle_index}; expected cycle {expected}."
            )
            return False
        self._results.append(result)
        return True

    def has(self, cycle_index: int) -> bool:
        return 0 <= cycle_index < len(self._results)

    def snapshot(self) -> Tuple[CycleResult, ...]:
        return tuple(self._results)

    def clear(self) -> None:
        self._results.clear()

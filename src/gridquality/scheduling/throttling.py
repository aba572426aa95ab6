"""
Throttling configuration for validation scheduling.

Plain settings object owned by a RuleSet: debounce window, concurrency
bound, and the async/batch switches. Presets cover the usual trade-offs
between responsiveness and CPU load on large grids.
"""

import logging
from dataclasses import asdict, dataclass, fields, replace
from typing import Any, Dict, List, Mapping

from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

MAX_CONCURRENCY = 10
MAX_BATCH_SIZE = 1000


@dataclass
class ThrottlingConfig:
    """
    Validation throttling settings.

    Args:
        debounce_ms: Quiet period after the last edit of a cell before it is
            validated. 0 validates on the next timer tick.
        max_concurrent_validations: Upper bound on evaluations running at once.
        enable_async: When False, edits are validated synchronously on the
            caller's thread with no debounce and no limiter.
        enable_batch: Allow whole-grid passes to split rows into batches that
            run in parallel under the limiter.
        batch_size: Rows per batch for whole-grid passes.
    """

    debounce_ms: int = 300
    max_concurrent_validations: int = 5
    enable_async: bool = True
    enable_batch: bool = True
    batch_size: int = 50

    def __post_init__(self):
        problems = self._problems()
        if problems:
            raise ConfigurationError('; '.join(problems))

    def _problems(self) -> List[str]:
        problems = []
        if self.debounce_ms < 0:
            problems.append(f"debounce_ms must be >= 0, got {self.debounce_ms}")
        if self.max_concurrent_validations < 1:
            problems.append(
                f"max_concurrent_validations must be >= 1, got {self.max_concurrent_validations}"
            )
        if self.batch_size < 1:
            problems.append(f"batch_size must be >= 1, got {self.batch_size}")
        return problems

    @property
    def debounce_seconds(self) -> float:
        return self.debounce_ms / 1000.0

    # --- Presets --------------------------------------------------------------

    @classmethod
    def default(cls) -> 'ThrottlingConfig':
        return cls()

    @classmethod
    def high_performance(cls) -> 'ThrottlingConfig':
        """Longer debounce and fewer workers; favours throughput."""
        return cls(debounce_ms=500, max_concurrent_validations=2, batch_size=100)

    @classmethod
    def high_responsiveness(cls) -> 'ThrottlingConfig':
        return cls(debounce_ms=150, max_concurrent_validations=5, batch_size=25)

    @classmethod
    def large_dataset(cls) -> 'ThrottlingConfig':
        """For 10k+ rows, where cross-row rules dominate the cost."""
        return cls(debounce_ms=1000, max_concurrent_validations=1, batch_size=200)

    @classmethod
    def debug(cls) -> 'ThrottlingConfig':
        """Everything synchronous and immediate."""
        return cls(
            debounce_ms=0,
            max_concurrent_validations=1,
            enable_async=False,
            enable_batch=False,
            batch_size=1,
        )

    # --- Copy / serialization -------------------------------------------------

    def clone(self) -> 'ThrottlingConfig':
        return replace(self)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> 'ThrottlingConfig':
        """Build from a mapping, ignoring unknown keys.

        Raises:
            ConfigurationError: If any known value is out of range.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning("Ignoring unknown throttling settings: %s", ', '.join(unknown))
        return cls(**{k: v for k, v in data.items() if k in known})

    # --- Checks ---------------------------------------------------------------

    def validate_and_fix(self) -> 'ThrottlingConfig':
        """Clamp every setting into its supported range, in place."""
        self.debounce_ms = max(0, self.debounce_ms)
        self.max_concurrent_validations = min(MAX_CONCURRENCY, max(1, self.max_concurrent_validations))
        self.batch_size = min(MAX_BATCH_SIZE, max(1, self.batch_size))
        return self

    def configuration_warnings(self) -> List[str]:
        """Settings that are legal but likely to hurt."""
        warnings = []
        if self.enable_async and self.debounce_ms < 100:
            warnings.append("debounce_ms < 100 may cause high CPU usage while typing")
        if self.max_concurrent_validations > 5:
            warnings.append("max_concurrent_validations > 5 may overload the CPU")
        if self.batch_size > 200:
            warnings.append("batch_size > 200 delays results of whole-grid passes")
        return warnings

    def __str__(self) -> str:
        return (
            f"ThrottlingConfig: debounce={self.debounce_ms}ms, "
            f"max_concurrent={self.max_concurrent_validations}, "
            f"async={self.enable_async}, batch={self.enable_batch}x{self.batch_size}"
        )

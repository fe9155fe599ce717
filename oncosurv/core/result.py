"""
Generic result container for all oncosurv computations.

Every domain result (survival curve, Cox fit, imputation ensemble, pooled
estimate) travels inside the same envelope, so timing, warnings and method
metadata are reported uniformly.

Design decisions:
    - Generic over parameter payload P
    - info dict for flexible metadata (method, ties, iterations)
    - timing is optional (don't burden unit tests)
    - Immutable (frozen=True); display types never mutate a fit
"""

from dataclasses import dataclass, field
from typing import TypeVar, Generic, Any

P = TypeVar('P')  # Parameter payload type


@dataclass(frozen=True)
class Result(Generic[P]):
    """
    Immutable result envelope for statistical computations.

    Attributes:
        params: Domain-specific parameters (coefficients, curves, datasets)
        info: Structured metadata (method, convergence, diagnostics)
        timing: Execution timing breakdown, or None if not measured
        backend_name: Identifier of the routine that produced this result
        warnings: Non-fatal issues encountered during computation

    Examples:
        >>> Result(
        ...     params=CoxParams(...),
        ...     info={'method': 'Cox PH', 'ties': 'efron', 'n_iter': 4},
        ...     timing={'total_seconds': 0.01},
        ...     backend_name='cpu_cox'
        ... )
    """
    params: P
    info: dict[str, Any]
    timing: dict[str, float] | None
    backend_name: str
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def has_warning(self, substring: str) -> bool:
        """Check if any warning contains the given substring."""
        return any(substring in w for w in self.warnings)

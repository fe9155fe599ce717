"""
Shared compute infrastructure for oncosurv.

Domain-agnostic numeric helpers reused by the survival and imputation
subpackages.

Submodules:
    timing: Execution timing utilities
    linalg: QR decomposition and least squares
"""

from oncosurv.core.compute.timing import Timer

__all__ = [
    "Timer",
]

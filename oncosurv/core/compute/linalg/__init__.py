"""
Linear algebra kernels for oncosurv.

Submodules:
    qr: QR decomposition and least-squares solve
"""

from oncosurv.core.compute.linalg.qr import (
    QRResult,
    qr_cpu,
    qr_solve,
)

__all__ = [
    "QRResult",
    "qr_cpu",
    "qr_solve",
]

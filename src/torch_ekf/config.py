"""Module-wide floating-point precision configuration.

Provides ``set_dtype`` and ``get_dtype`` to control the float dtype used when
torch-ekf converts user inputs (lists, numpy arrays, tensors) into tensors.

The default is ``torch.float64``: numeric Jacobians rely on finite differences
with a small step (``1e-6`` by default) that ``float32`` cannot resolve. Switch
to ``torch.float32`` only for purely linear models where speed matters.
"""

from __future__ import annotations

import torch

_VALID_DTYPES = (torch.float32, torch.float64)

_dtype = torch.float64


def set_dtype(dtype: torch.dtype) -> None:
    """Set the module-wide float dtype for torch-ekf.

    Args:
        dtype (torch.dtype): Either ``torch.float32`` or ``torch.float64``.

    Raises:
        ValueError: If ``dtype`` is not a supported float type.
    """
    global _dtype  # noqa: PLW0603
    if dtype not in _VALID_DTYPES:
        raise ValueError(f"Unsupported dtype {dtype}. Must be one of: torch.float32, torch.float64")
    _dtype = dtype


def get_dtype() -> torch.dtype:
    """Return the current module-wide float dtype (default ``torch.float64``)."""
    return _dtype


def as_vector(value) -> torch.Tensor:
    """Convert ``value`` into a column vector with the configured dtype.

    1-D inputs of shape ``(dim,)`` are promoted to ``(dim, 1)``. Inputs with at least
    two dimensions are assumed to already follow the ``(..., dim, 1)`` convention.

    Args:
        value (ArrayLike): Vector(s) to convert.

    Returns:
        torch.Tensor: Column vector(s).
            Shape: ``(..., dim, 1)``
    """
    tensor = torch.as_tensor(value, dtype=_dtype)
    if tensor.ndim == 0:
        return tensor.reshape(1, 1)
    if tensor.ndim == 1:
        return tensor[:, None]
    return tensor


def as_matrix(value) -> torch.Tensor:
    """Convert ``value`` into a matrix with the configured dtype.

    Scalars are promoted to ``(1, 1)`` matrices, which is convenient for 1-D noises.

    Args:
        value (ArrayLike): Matrix to convert.

    Returns:
        torch.Tensor: Matrix (or batch of matrices).
            Shape: ``(..., rows, columns)``
    """
    tensor = torch.as_tensor(value, dtype=_dtype)
    if tensor.ndim == 0:
        return tensor.reshape(1, 1)
    return tensor

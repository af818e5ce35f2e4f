"""Numeric differentiation of vector-valued functions.

Nonlinear models only have to provide their forward function: the local linearization
required by the extended Kalman filter is obtained here with central finite differences.

For a function ``f`` evaluated at ``x`` with a step ``δ``, the i-th column of the Jacobian is:

    J[:, i] = (f(x + δ eᵢ) - f(x - δ eᵢ)) / 2δ

This costs ``2 * columns`` evaluations of ``f`` and has a truncation error in O(δ²),
proportional to the curvature (third derivative) of ``f``.
"""

from __future__ import annotations

from typing import Callable

import torch

from .errors import DimensionError, check_vector

DEFAULT_DELTA = 1e-6


def numeric_jacobian(
    function: Callable[[torch.Tensor], torch.Tensor],
    state: torch.Tensor,
    shape: tuple[int, int],
    delta=DEFAULT_DELTA,
) -> torch.Tensor:
    """Compute the Jacobian of ``function`` at ``state`` with central finite differences.

    Broadcasting:
        ``state`` may hold leading batch dimensions, as long as ``function`` supports them.
        Each evaluation perturbs the same coordinate of every state in the batch.

    Example:
    ```python
        def function(x):
            return torch.cat([x[..., :1, :], x[..., 1:2, :] ** 2, x[..., 2:, :]], dim=-2)

        numeric_jacobian(function, torch.tensor([[1.0], [2.0], [3.0]], dtype=torch.float64), (3, 3))
        # ~ diag([1.0, 4.0, 1.0])
    ```

    Args:
        function (Callable[[torch.Tensor], torch.Tensor]): Function to differentiate.
            It maps a column vector of shape ``(..., columns, 1)`` to one of shape ``(..., rows, 1)``.
        state (torch.Tensor): Point where the Jacobian is evaluated.
            Shape: ``(..., columns, 1)``
        shape (tuple[int, int]): Expected shape ``(rows, columns)`` of the Jacobian.
        delta (float): Perturbation step ``δ``.
            Default: 1e-6

    Returns:
        torch.Tensor: Jacobian matrix.
            Shape: ``(..., rows, columns)``

    Raises:
        DimensionError: If ``state`` does not have ``columns`` rows, or if ``function`` does not
            return ``rows`` rows.
    """
    rows, columns = shape
    check_vector(state, columns, "state")

    steps = delta * torch.eye(columns, dtype=state.dtype, device=state.device)

    derivatives = []
    for i in range(columns):
        step = steps[:, i : i + 1]
        derivatives.append((function(state + step) - function(state - step)) / (2 * delta))

    jacobian = torch.cat(derivatives, dim=-1)
    if jacobian.shape[-2] != rows:
        raise DimensionError("function output", "rows", rows, jacobian.shape[-2])

    return jacobian

"""Ready-made linear models for constant-derivative motions.

The state is composed, for each spatial dimension, of a value and its derivatives up to
a given order:

- constant position (order = 0),
- constant velocity (order = 1),
- constant acceleration (order = 2), etc.

Only the values are observed. The highest derivative is assumed either constant with
additive noise, or driven by a zero-mean Gaussian noise on the next derivative
(``expected_model``).

These builders return the generic models of :mod:`torch_ekf.models`, so the resulting
filter can be mixed with nonlinear or multi-model components.
"""

from __future__ import annotations

import torch

from .config import as_matrix, get_dtype
from .dimensions import Dimensions
from .kalman_filter import KalmanFilter
from .models import LinearMotionModel, LinearObservationModel, NoiseModel


def interleave(x: torch.Tensor, size: int) -> torch.Tensor:
    """Interleave a tensor along its first dimension.

    Rows ``0, 1, ..., k*size-1`` are reordered as
    ``0, size, ..., (k-1)*size, 1, 1+size, ..., size-1, ..., k*size-1``.

    Example:
        >>> interleave(torch.arange(6), 3)
        tensor([0, 3, 1, 4, 2, 5])

    Args:
        x (torch.Tensor): Tensor to interleave.
            Shape: ``(B, ...)`` with ``B = k * size``
        size (int): Block size.

    Returns:
        torch.Tensor: Interleaved tensor.
            Shape: ``(B, ...)``
    """
    shape = list(x.shape)
    return x.reshape([-1, size, *shape[1:]]).transpose(0, 1).reshape([-1, *shape[1:]])


def _taylor_coefficients(size: int, dt: float) -> torch.Tensor:
    # (1, dt, dt^2 / 2, ..., dt^k / k!)
    factorials = torch.arange(size, dtype=get_dtype())
    factorials[0] = 1
    powers = torch.tensor([dt**k for k in range(size)], dtype=get_dtype())
    return powers / factorials.cumprod(0)


def create_process_matrix(order: int, dt=1.0, approximate=False) -> torch.Tensor:
    r"""Create the state transition matrix ``A`` of a single dimension.

    Assuming the (order+1)-th derivative and above are zero, the Taylor expansion yields:

        x^{(i)}(t + dt) = \sum_{k=0}^{order - i} \frac{dt^k}{k!} x^{(i+k)}(t)

    For instance, a constant acceleration with ``dt = 0.5``::

        [[1, 0.5, 0.125],
         [0, 1.0, 0.5],
         [0, 0.0, 1.0]]

    Args:
        order (int): Highest derivative order included in the state.
        dt (float): Time step duration.
            Default: 1.0
        approximate (bool): Keep only first-order terms (``x^{(i)}(t+dt) = x^{(i)}(t) + dt x^{(i+1)}(t)``).
            Default: False

    Returns:
        torch.Tensor: State transition matrix.
            Shape: ``(order + 1, order + 1)``
    """
    coefficients = _taylor_coefficients(order + 1, dt)
    if approximate:
        coefficients[2:] = 0

    return sum(
        torch.diag(torch.full((order + 1 - k,), coefficient.item(), dtype=get_dtype()), k)
        for k, coefficient in enumerate(coefficients)
    )


def create_process_noise(
    process_std: float, order: int, dt=1.0, expected_model=False, approximate=False
) -> torch.Tensor:
    r"""Create the process noise covariance ``Q`` of a single dimension.

    - Constant order-th derivative (default):
      x^{(order)}(t_k + h) = x^{(order)}(t_k) + w_k, with w_k ~ N(0, process_std**2)
    - Zero-mean (order+1)-th derivative (``expected_model``):
      x^{(order + 1)}(t_k + h) = w_k, with w_k ~ N(0, process_std**2)

    The noise is propagated through the Taylor-expanded dynamics, leading to a rank one covariance.

    Args:
        process_std (float): Process noise standard deviation.
        order (int): Highest derivative order included in the state.
        dt (float): Time step duration.
            Default: 1.0
        expected_model (bool): Use the zero-mean (order+1)-th derivative model.
            Default: False
        approximate (bool): Only the highest derivative receives noise.
            Default: False

    Returns:
        torch.Tensor: Process noise covariance.
            Shape: ``(order + 1, order + 1)``
    """
    coefficients = _taylor_coefficients(order + 1 + expected_model, dt)
    if approximate:
        coefficients[1 + expected_model :] = 0

    # The expected model is shifted by one derivative
    coefficients = coefficients[int(expected_model) :].flip(0)
    return process_std**2 * coefficients[:, None] @ coefficients[None]


def constant_models(
    measurement_std: float | torch.Tensor,
    process_std: float | torch.Tensor,
    *,
    dim=2,
    order=1,
    dt=1.0,
    expected_model=False,
    order_by_dim=False,
    approximate=False,
) -> tuple[LinearMotionModel, LinearObservationModel, NoiseModel, Dimensions]:
    """Create the models of a constant-derivative system.

    The state dimension is ``(order + 1) * dim`` and only the ``dim`` values are observed.
    The models are uncontrolled: the control dimension is set to 1 and never used.

    Args:
        measurement_std (float | torch.Tensor): Observation noise standard deviation.
            Shape: broadcastable to ``(dim,)``
        process_std (float | torch.Tensor): Process noise standard deviation
            (see `create_process_noise`).
            Shape: broadcastable to ``(dim,)``
        dim (int): Number of independent spatial dimensions.
            Default: 2
        order (int): Highest derivative order included in the state.
            Default: 1 (constant velocity)
        dt (float): Time step duration.
            Default: 1.0
        expected_model (bool): Use the zero-mean (order+1)-th derivative model.
            Default: False
        order_by_dim (bool): State ordering. True groups by dimension (``x, x', y, y'``),
            False groups by derivative order (``x, y, x', y'``).
            Default: False
        approximate (bool): Use the first-order approximation of the model.
            Default: False

    Returns:
        tuple[LinearMotionModel, LinearObservationModel, NoiseModel, Dimensions]
    """
    measurement_std = torch.broadcast_to(torch.as_tensor(measurement_std, dtype=get_dtype()), (dim,))
    process_std = torch.broadcast_to(torch.as_tensor(process_std, dtype=get_dtype()), (dim,))

    dimensions = Dimensions(state=(order + 1) * dim, control=1, observation=dim)

    observation_matrix = torch.eye(dim, dimensions.state, dtype=get_dtype())
    observation_noise = torch.diag(measurement_std**2)

    # One block per spatial dimension
    state_transition = torch.block_diag(*(create_process_matrix(order, dt, approximate) for _ in range(dim)))
    process_noise = torch.block_diag(
        *(create_process_noise(process_std[k].item(), order, dt, expected_model, approximate) for k in range(dim))
    )

    if order_by_dim:
        observation_matrix = interleave(observation_matrix.T, dim).T
    else:
        state_transition = interleave(interleave(state_transition, order + 1).T, order + 1).T
        process_noise = interleave(interleave(process_noise, order + 1).T, order + 1).T

    return (
        LinearMotionModel(as_matrix(state_transition.contiguous())),
        LinearObservationModel(as_matrix(observation_matrix.contiguous())),
        NoiseModel(process_noise.contiguous(), observation_noise),
        dimensions,
    )


def constant_kalman_filter(
    measurement_std: float | torch.Tensor,
    process_std: float | torch.Tensor,
    *,
    dim=2,
    order=1,
    dt=1.0,
    expected_model=False,
    order_by_dim=False,
    approximate=False,
    joseph_update=False,
) -> KalmanFilter:
    """Create a constant-derivative Kalman filter.

    See `constant_models` for the arguments. The models are validated against their dimensions.

    Returns:
        KalmanFilter: Filter configured for constant position/velocity/acceleration models.
    """
    motion_model, observation_model, noise_model, dimensions = constant_models(
        measurement_std,
        process_std,
        dim=dim,
        order=order,
        dt=dt,
        expected_model=expected_model,
        order_by_dim=order_by_dim,
        approximate=approximate,
    )
    return KalmanFilter.from_models(
        motion_model, observation_model, noise_model, dimensions=dimensions, joseph_update=joseph_update
    )

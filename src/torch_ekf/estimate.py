from __future__ import annotations

import dataclasses

import torch

from .config import as_matrix, as_vector


@dataclasses.dataclass
class Estimate:
    """Gaussian belief over a hidden state.

    This dataclass stores the running estimate of a Kalman filter:

        x ~ N(state, covariance)

    Conventions:
    - State vectors are **column vectors** with shape ``(..., dim, 1)``. 1-D inputs are
      promoted to column vectors at construction.
    - Leading dimensions ``...`` are treated as **batch dimensions**.
    - Array-likes are converted to tensors with the dtype from :func:`torch_ekf.config.get_dtype`.

    The covariance is expected to be symmetric positive semi-definite. This is not enforced.

    An optional precision matrix (inverse covariance) can be stored. It is filled by
    :meth:`torch_ekf.Updater.project` so that the inverse of the innovation covariance is
    computed only once.

    Attributes:
        state: Mean of the belief (``x`` in the literature).
            Shape: ``(..., dim, 1)``
        covariance: Covariance of the belief (``P`` in the literature).
            Shape: ``(..., dim, dim)``
        precision: Optional precision matrix (inverse covariance).
            Shape: ``(..., dim, dim)``
    """

    state: torch.Tensor
    covariance: torch.Tensor
    precision: torch.Tensor | None = None

    def __post_init__(self) -> None:
        self.state = as_vector(self.state)
        self.covariance = as_matrix(self.covariance)
        if self.precision is not None:
            self.precision = as_matrix(self.precision)

    @property
    def dim(self) -> int:
        """Dimension of the estimated state."""
        return self.state.shape[-2]

    def clone(self) -> Estimate:
        """Return a deep copy of the estimate."""
        return Estimate(
            self.state.clone(), self.covariance.clone(), self.precision.clone() if self.precision is not None else None
        )

    def to(self, device: torch.device) -> Estimate:
        """Send an estimate to a specific device.

        The dtype is always the configured one (see :mod:`torch_ekf.config`).

        Args:
            device (torch.device): Device to send the estimate to.

        Returns:
            Estimate: The estimate on the right device
        """
        return Estimate(
            self.state.to(device),
            self.covariance.to(device),
            self.precision.to(device) if self.precision is not None else None,
        )

    def mahalanobis_squared(self, value: torch.Tensor) -> torch.Tensor:
        """Compute the squared Mahalanobis distance between the estimate and ``value``.

            MAHA^2 = (v - x)^T P^{-1} (v - x)

        The precision is computed (and stored) if it is missing.

        Args:
            value (torch.Tensor): Vector(s) to evaluate.
                Shape: ``(..., dim, 1)``

        Returns:
            torch.Tensor: Squared Mahalanobis distance for broadcasted values & estimates
                Shape: ``(...)``
        """
        diff = self.state - as_vector(value)
        if self.precision is None:
            self.precision = self.covariance.inverse()
        return (diff.mT @ self.precision @ diff)[..., 0, 0]

    def mahalanobis(self, value: torch.Tensor) -> torch.Tensor:
        """Compute the Mahalanobis distance between the estimate and ``value``.

        Args:
            value (torch.Tensor): Vector(s) to evaluate.
                Shape: ``(..., dim, 1)``

        Returns:
            torch.Tensor: Mahalanobis distance for broadcasted values & estimates
                Shape: ``(...)``
        """
        return self.mahalanobis_squared(value).sqrt()

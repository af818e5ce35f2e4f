from __future__ import annotations

import logging

import torch
import torch.linalg

from ._format import framed, side_by_side
from .config import as_matrix, as_vector
from .dimensions import Dimensions
from .errors import check_matrix, check_vector
from .estimate import Estimate
from .models import LinearObservationModel, ObservationModel

logger = logging.getLogger(__name__)

# Note on singular innovation covariances:
# S = H P Hᵀ + R is inverted without any regularization. With R = 0 and a rank deficient H P Hᵀ,
# the inverse is undefined and non-finite values propagate into the estimate. This is only reported
# (warning) and must be handled by the caller (e.g. with a strictly positive definite R).


def _warn_if_singular(info: torch.Tensor) -> None:
    # info is the per-batch status of inv_ex / cholesky_ex. Non-zero means failure
    if (info != 0).any():
        logger.warning("Singular innovation covariance: the updated estimate is not reliable")


class Updater:
    """Correction (update) half of the Kalman recursion.

    Given a predicted estimate x_k | ... ~ N(x'_k, P'_k) and a new observation z_k, it computes the
    posterior estimate x_k | ..., z_k ~ N(x_k, P_k) with:

        z'_k = h(x'_k),   H = dh/dx evaluated at x'_k
        S_k = H P'_k Hᵀ + R                 (innovation covariance)
        K_k = P'_k Hᵀ S_k^{-1}              (Kalman gain)
        y_k = z_k - z'_k                     (innovation)
        x_k = x'_k + K_k y_k
        P_k = (I - K_k H) P'_k   OR [JOSEPH_UPDATE] P_k = (I - K_k H) P'_k (I - K_k H)ᵀ + K_k R K_kᵀ

    The gain interpolates between trusting the prediction and trusting the observation,
    according to their respective covariances.

    Attributes:
        observation_model (ObservationModel): Observation model ``h``.
        observation_noise (torch.Tensor): Observation noise covariance ``R``.
            Shape: ``(..., dim_z, dim_z)``
        joseph_update (bool): If True, use the Joseph form covariance update for improved numerical stability.
            Default: False
    """

    def __init__(
        self,
        observation_model: ObservationModel,
        observation_noise: torch.Tensor,
        *,
        joseph_update=False,
        dimensions: Dimensions | None = None,
    ) -> None:
        self.observation_model = observation_model
        self.observation_noise = as_matrix(observation_noise)
        self.joseph_update = joseph_update
        self._identity: torch.Tensor | None = None  # Built lazily, once the state dimension is known

        if dimensions is not None:
            self.validate(dimensions)

    def _identity_matrix(self, like: torch.Tensor) -> torch.Tensor:
        size = like.shape[-1]
        if (
            self._identity is None
            or self._identity.shape[-1] != size
            or self._identity.dtype != like.dtype
            or self._identity.device != like.device
        ):
            self._identity = torch.eye(size, dtype=like.dtype, device=like.device)
        return self._identity

    def project(self, prediction: Estimate, *, precompute_precision=True) -> Estimate:
        """Project an estimate (usually the predicted one) into the observation space.

        It yields the expected observation distribution z_k | ... ~ N(z'_k, S_k).

        Args:
            prediction (Estimate): Predicted estimate, typically the result of `Predictor.predict`.
                Shape (state): ``(..., dim_x, 1)``
                Shape (covariance): ``(..., dim_x, dim_x)``
            precompute_precision (bool): If True, compute and store ``S^{-1}`` in the returned estimate's
                ``precision``. Useful to compute the gain or Mahalanobis distances without inverting again.
                Default: True

        Returns:
            Estimate: Projected estimate in the observation space.
                Shape (state): ``(..., dim_z, 1)``
                Shape (covariance): ``(..., dim_z, dim_z)``
        """
        return self._project(prediction, self.observation_model.jacobian(prediction.state), precompute_precision)

    def _project(self, prediction: Estimate, jacobian: torch.Tensor, precompute_precision: bool) -> Estimate:
        expected = self.observation_model.apply(prediction.state)
        covariance = jacobian @ prediction.covariance @ jacobian.mT + self.observation_noise

        precision = None
        if precompute_precision:
            precision, info = torch.linalg.inv_ex(covariance)
            _warn_if_singular(info)

        return Estimate(expected, covariance, precision)

    def update(
        self, prediction: Estimate, observation: torch.Tensor, *, projection: Estimate | None = None
    ) -> Estimate:
        """Correct a predicted estimate with a new observation.

        Args:
            prediction (Estimate): Predicted estimate, typically the result of `Predictor.predict`.
                Shape (state): ``(..., dim_x, 1)``
                Shape (covariance): ``(..., dim_x, dim_x)``
            observation (torch.Tensor): Observation ``z_k`` (column vector).
                Shape: ``(..., dim_z, 1)``
            projection (Estimate | None): Optional precomputed projection from `project`.
                Without precision, the gain is found with a Cholesky solve instead of an inverse.

        Returns:
            Estimate: Updated posterior estimate.
                Shape (state): ``(..., dim_x, 1)``
                Shape (covariance): ``(..., dim_x, dim_x)``
        """
        observation = as_vector(observation)
        jacobian = self.observation_model.jacobian(prediction.state)
        if projection is None:
            projection = self._project(prediction, jacobian, precompute_precision=True)

        check_vector(observation, projection.dim, "observation")
        innovation = observation - projection.state

        if projection.precision is None:
            # Find K without inverting S, by solving S Kᵀ = (P Hᵀ)ᵀ
            chol_decomposition, info = torch.linalg.cholesky_ex(projection.covariance)
            _warn_if_singular(info)
            kalman_gain = torch.cholesky_solve(jacobian @ prediction.covariance.mT, chol_decomposition).mT
        else:
            kalman_gain = prediction.covariance @ jacobian.mT @ projection.precision

        state = prediction.state + kalman_gain @ innovation

        factor = self._identity_matrix(prediction.covariance) - kalman_gain @ jacobian
        if self.joseph_update:
            covariance = (
                factor @ prediction.covariance @ factor.mT + kalman_gain @ self.observation_noise @ kalman_gain.mT
            )
        else:
            covariance = factor @ prediction.covariance

        return Estimate(state, covariance)

    def validate(self, dimensions: Dimensions) -> None:
        """Check the observation model and the observation noise against ``dimensions``.

        Raises:
            DimensionError: If a matrix does not have the expected shape.
        """
        self.observation_model.validate(dimensions)
        check_matrix(self.observation_noise, dimensions.observation, dimensions.observation, "observation_noise")

    def _repr_blocks(self) -> list[str]:
        if isinstance(self.observation_model, LinearObservationModel):
            block = side_by_side(
                "Observation", "H", self.observation_model.observation_matrix, "R", self.observation_noise, 100
            )
        else:
            block = side_by_side("Observation", "h", self.observation_model, "R", self.observation_noise, 100)
        return [block]

    def __repr__(self) -> str:
        return framed(f"Updater ({type(self.observation_model).__name__})", *self._repr_blocks())

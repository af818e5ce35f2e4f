from __future__ import annotations

import logging
from typing import Sequence, Union

import torch

from ._format import framed
from .dimensions import Dimensions
from .estimate import Estimate
from .models import MotionModel, NoiseModel, ObservationModel
from .multi_model import Contextual, MultiModelPredictor, MultiModelUpdater
from .predictor import Predictor
from .updater import Updater

logger = logging.getLogger(__name__)

AnyPredictor = Union[Predictor, MultiModelPredictor]
AnyUpdater = Union[Updater, MultiModelUpdater]


class KalmanFilter:
    """Generalized (linear or extended) Kalman filter.

    This class estimates the latent state of a dynamical system under Gaussian noise:

        x_k = f(x_{k-1}, u_k) + w_k,   w_k ~ N(0, Q)
        z_k = h(x_k)          + v_k,   v_k ~ N(0, R)

    where:
    - ``x_k`` is the hidden state (dimension ``dim_x``),
    - ``u_k`` is the known control (dimension ``dim_u``),
    - ``z_k`` is the observation (dimension ``dim_z``),
    - ``f`` is the motion model, held by the predictor with ``Q``,
    - ``h`` is the observation model, held by the updater with ``R``.

    Linear models reduce to the classic Kalman filter. Nonlinear models are linearized around
    the current estimate (Extended Kalman filter). Either side may be a multi-model component
    (see :mod:`torch_ekf.multi_model`), in which case controls or observations are `Contextual`.

    The filter itself is stateless: each call takes an estimate and returns a new one.
    See `StatefulKalmanFilter` to keep the running estimate inside the filter.

    Shape conventions:
    - Vectors are **column vectors** with shape ``(..., dim, 1)``.
    - Leading ``...`` batch dimensions broadcast through linear models.

    Attributes:
        predictor (Predictor | MultiModelPredictor): Prediction step.
        updater (Updater | MultiModelUpdater): Correction step.
    """

    def __init__(self, predictor: AnyPredictor, updater: AnyUpdater) -> None:
        self.predictor = predictor
        self.updater = updater

    @classmethod
    def from_models(
        cls,
        motion_model: MotionModel,
        observation_model: ObservationModel,
        noise_model: NoiseModel,
        *,
        dimensions: Dimensions | None = None,
        joseph_update=False,
    ) -> KalmanFilter:
        """Build a filter from a motion model, an observation model and their noises.

        Args:
            motion_model (MotionModel): Motion model ``f``.
            observation_model (ObservationModel): Observation model ``h``.
            noise_model (NoiseModel): Process and observation noise covariances.
            dimensions (Dimensions | None): If given, every model and noise is validated against it.
            joseph_update (bool): Use the Joseph form covariance update.
                Default: False

        Returns:
            KalmanFilter
        """
        return cls(
            Predictor(motion_model, noise_model.process, dimensions=dimensions),
            Updater(observation_model, noise_model.observation, joseph_update=joseph_update, dimensions=dimensions),
        )

    def predict(self, estimate: Estimate, control: torch.Tensor | Contextual | None = None) -> Estimate:
        """Compute the predicted (prior) estimate. See `Predictor.predict`."""
        return self.predictor.predict(estimate, control)

    def update(self, prediction: Estimate, observation: torch.Tensor | Contextual) -> Estimate:
        """Correct a predicted estimate with an observation. See `Updater.update`."""
        return self.updater.update(prediction, observation)

    def filter(
        self,
        estimate: Estimate,
        observation: torch.Tensor | Contextual,
        control: torch.Tensor | Contextual | None = None,
    ) -> Estimate:
        """Run a full step of the recursion: predict with ``control`` then update with ``observation``.

        Args:
            estimate (Estimate): Posterior estimate at time k-1.
                Shape (state): ``(..., dim_x, 1)``
                Shape (covariance): ``(..., dim_x, dim_x)``
            observation (torch.Tensor | Contextual): Observation at time k.
                Shape: ``(..., dim_z, 1)``
            control (torch.Tensor | Contextual | None): Control applied between k-1 and k.
                Shape: ``(..., dim_u, 1)``

        Returns:
            Estimate: Posterior estimate at time k.
                Shape (state): ``(..., dim_x, 1)``
                Shape (covariance): ``(..., dim_x, dim_x)``
        """
        return self.update(self.predict(estimate, control), observation)

    def run(
        self,
        estimate: Estimate,
        observations: Sequence,
        controls: Sequence | None = None,
        *,
        update_first=False,
        return_all=False,
    ) -> Estimate:
        """Run the predict/update loop over a sequence of observations.

        Observations may contain NaNs: if any component of an observation vector is NaN,
        the corresponding estimate is **not** updated at that timestep (prediction only).

        Args:
            estimate (Estimate): Initial estimate, before seeing any of the observations.
                Shape (state): ``(..., dim_x, 1)``
                Shape (covariance): ``(..., dim_x, dim_x)``
            observations (Sequence): Observations over time (tensors or `Contextual`).
                Shape: ``(T, ..., dim_z, 1)``
            controls (Sequence | None): Controls over time, aligned with ``observations``.
                Shape: ``(T, ..., dim_u, 1)``
            update_first (bool): If True, skip the prediction step on the first timestep, such that
                the initial estimate is the prior at t=0.
                Default: False
            return_all (bool): If True, return the posterior estimate at every timestep as a single
                `Estimate` with a leading time dimension. Otherwise only the last one is returned.
                Default: False

        Returns:
            Estimate: Either the last posterior estimate, or all the posterior estimates.
                Shape (state): ``([T, ]..., dim_x, 1)``
                Shape (covariance): ``([T, ]..., dim_x, dim_x)``

        Raises:
            ValueError: If ``controls`` and ``observations`` do not have the same length.
        """
        if controls is not None and len(controls) != len(observations):
            raise ValueError(
                f"Got {len(observations)} observations but {len(controls)} controls. They should be aligned in time."
            )

        states = []
        covariances = []

        for t, observation in enumerate(observations):
            if t or not update_first:
                estimate = self.predict(estimate, controls[t] if controls is not None else None)

            estimate = self._update_valid(estimate, observation, t)

            if return_all:
                states.append(estimate.state)
                covariances.append(estimate.covariance)

        if return_all:
            return Estimate(torch.stack(states), torch.stack(covariances))

        return estimate

    def _update_valid(self, prediction: Estimate, observation: torch.Tensor | Contextual, t: int) -> Estimate:
        value = observation.value if isinstance(observation, Contextual) else observation
        if not isinstance(value, torch.Tensor):
            return self.update(prediction, observation)

        if value.ndim < 2:
            missing = torch.isnan(value).any()
        else:
            missing = torch.isnan(value[..., 0]).any(dim=-1)

        if not missing.any():
            return self.update(prediction, observation)

        if missing.all():
            logger.debug("Skipping the update at t=%d: NaN observation", t)
            return prediction

        # Only update the estimates associated with a valid observation
        logger.debug("Skipping %d update(s) at t=%d: NaN observation", int(missing.sum()), t)
        valid = Estimate(prediction.state[~missing], prediction.covariance[~missing])
        if isinstance(observation, Contextual):
            valid = self.update(valid, Contextual(observation.context, value[~missing]))
        else:
            valid = self.update(valid, value[~missing])

        estimate = prediction.clone()
        estimate.state[~missing] = valid.state
        estimate.covariance[~missing] = valid.covariance
        return estimate

    def validate(self, dimensions: Dimensions) -> None:
        """Check the predictor and the updater against ``dimensions``.

        Raises:
            DimensionError: If a model or a noise does not have the expected shape.
        """
        self.predictor.validate(dimensions)
        self.updater.validate(dimensions)

    def __repr__(self) -> str:
        """Convert the Kalman filter model into a readable string."""
        return framed("Kalman Filter", *self.predictor._repr_blocks(), *self.updater._repr_blocks())  # noqa: SLF001


class StatefulKalmanFilter:
    """Kalman filter holding its own running estimate.

    Each call mutates (replaces) ``estimate`` and returns it.

    Attributes:
        estimate (Estimate): Current estimate.
        kalman_filter (KalmanFilter): Underlying stateless filter.
    """

    def __init__(self, estimate: Estimate, predictor: AnyPredictor, updater: AnyUpdater) -> None:
        self.estimate = estimate
        self.kalman_filter = KalmanFilter(predictor, updater)

    @property
    def predictor(self) -> AnyPredictor:
        return self.kalman_filter.predictor

    @property
    def updater(self) -> AnyUpdater:
        return self.kalman_filter.updater

    def predict(self, control: torch.Tensor | Contextual | None = None) -> Estimate:
        self.estimate = self.kalman_filter.predict(self.estimate, control)
        return self.estimate

    def update(self, observation: torch.Tensor | Contextual) -> Estimate:
        self.estimate = self.kalman_filter.update(self.estimate, observation)
        return self.estimate

    def filter(
        self, observation: torch.Tensor | Contextual, control: torch.Tensor | Contextual | None = None
    ) -> Estimate:
        self.estimate = self.kalman_filter.filter(self.estimate, observation, control)
        return self.estimate

    def __repr__(self) -> str:
        return repr(self.kalman_filter).replace("Kalman Filter", "Stateful Kalman Filter", 1)

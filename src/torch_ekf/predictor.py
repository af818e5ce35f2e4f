from __future__ import annotations

import torch

from ._format import framed, labeled, side_by_side
from .config import as_matrix, as_vector
from .dimensions import Dimensions
from .errors import check_matrix
from .estimate import Estimate
from .models import LinearMotionModel, MotionModel


class Predictor:
    """Prediction (propagation) half of the Kalman recursion.

    From an estimate x_{k-1} | ... ~ N(x_{k-1}, P_{k-1}), it applies the motion model:

        x_k = f(x_{k-1}, u_k) + w_k,   w_k ~ N(0, Q)

    leading to a prior estimate on the next timestep x_k | ... ~ N(x'_k, P'_k) with:

        x'_k = f(x_{k-1}, u_k)
        P'_k = A P_{k-1} Aᵀ + Q,   with A = df/dx evaluated at (x_{k-1}, u_k)

    For a linear model, ``A`` is the state transition matrix. Otherwise it is the local
    linearization of the model (Extended Kalman filter).

    A prediction never reduces uncertainty beyond what ``A`` contracts: ``Q`` must account for
    unmodeled dynamics (e.g. unknown accelerations) or the filter becomes overconfident.

    Attributes:
        motion_model (MotionModel): Motion model ``f``.
        process_noise (torch.Tensor): Process noise covariance ``Q``.
            Shape: ``(..., dim_x, dim_x)``
    """

    def __init__(
        self, motion_model: MotionModel, process_noise: torch.Tensor, *, dimensions: Dimensions | None = None
    ) -> None:
        self.motion_model = motion_model
        self.process_noise = as_matrix(process_noise)

        if dimensions is not None:
            self.validate(dimensions)

    def predict(self, estimate: Estimate, control: torch.Tensor | None = None) -> Estimate:
        """Compute the predicted (prior) estimate.

        Args:
            estimate (Estimate): Current posterior estimate at time k-1.
                Shape (state): ``(..., dim_x, 1)``
                Shape (covariance): ``(..., dim_x, dim_x)``
            control (torch.Tensor | None): Control applied between k-1 and k. None for an
                uncontrolled prediction.
                Shape: ``(..., dim_u, 1)``

        Returns:
            Estimate: Predicted prior estimate on the next timestep.
                Shape (state): ``(..., dim_x, 1)``
                Shape (covariance): ``(..., dim_x, dim_x)``
        """
        if control is not None:
            control = as_vector(control)

        state = self.motion_model.apply(estimate.state, control)
        jacobian = self.motion_model.jacobian(estimate.state, control)
        covariance = jacobian @ estimate.covariance @ jacobian.mT + self.process_noise

        return Estimate(state, covariance)

    def validate(self, dimensions: Dimensions) -> None:
        """Check the motion model and the process noise against ``dimensions``.

        Raises:
            DimensionError: If a matrix does not have the expected shape.
        """
        self.motion_model.validate(dimensions)
        check_matrix(self.process_noise, dimensions.state, dimensions.state, "process_noise")

    def _repr_blocks(self) -> list[str]:
        if isinstance(self.motion_model, LinearMotionModel):
            blocks = [side_by_side("Motion", "A", self.motion_model.state_transition, "Q", self.process_noise)]
            if self.motion_model.control_matrix is not None:
                blocks.append(labeled("Control", "B", self.motion_model.control_matrix))
        else:
            blocks = [side_by_side("Motion", "f", self.motion_model, "Q", self.process_noise)]
        return blocks

    def __repr__(self) -> str:
        return framed(f"Predictor ({type(self.motion_model).__name__})", *self._repr_blocks())

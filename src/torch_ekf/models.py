"""Motion, observation and noise models.

The Kalman recursion only needs two things from a model: its forward mapping (``apply``)
and its local derivative with respect to the state (``jacobian``). Linear models return their
matrices as Jacobians, nonlinear ones either use an analytic Jacobian or fall back on
:func:`torch_ekf.jacobian.numeric_jacobian`.

Conventions:
- Vectors are **column vectors** with shape ``(..., dim, 1)``. 1-D inputs are promoted.
- A vector whose size does not match the model raises :class:`torch_ekf.errors.DimensionError`
  immediately. It is never truncated nor padded.
"""

from __future__ import annotations

import abc
import dataclasses
from typing import Callable, Optional

import torch

from .config import as_matrix, as_vector, get_dtype
from .dimensions import Dimensions
from .errors import DimensionError, check_matrix, check_vector
from .jacobian import DEFAULT_DELTA, numeric_jacobian

MotionFunction = Callable[[torch.Tensor, Optional[torch.Tensor]], torch.Tensor]
ObservationFunction = Callable[[torch.Tensor], torch.Tensor]


def _check_dimensions(found: Dimensions, expected: Dimensions, *names: str) -> None:
    for name in names:
        if getattr(found, name) != getattr(expected, name):
            raise DimensionError(name, "rows", getattr(expected, name), getattr(found, name))


class MotionModel(abc.ABC):
    """Maps a state (and an optional control) to the next state.

        x_k = f(x_{k-1}, u_k)
    """

    @abc.abstractmethod
    def apply(self, state: torch.Tensor, control: torch.Tensor | None = None) -> torch.Tensor:
        """Compute the next state ``f(x, u)``.

        Args:
            state (torch.Tensor): Current state.
                Shape: ``(..., dim_x, 1)``
            control (torch.Tensor | None): Optional control.
                Shape: ``(..., dim_u, 1)``

        Returns:
            torch.Tensor: Next state.
                Shape: ``(..., dim_x, 1)``
        """

    @abc.abstractmethod
    def jacobian(self, state: torch.Tensor, control: torch.Tensor | None = None) -> torch.Tensor:
        """Compute ``df/dx`` evaluated at ``(x, u)``.

        Returns:
            torch.Tensor: Jacobian with respect to the state.
                Shape: ``(..., dim_x, dim_x)``
        """

    @abc.abstractmethod
    def validate(self, dimensions: Dimensions) -> None:
        """Check the model against ``dimensions``.

        Raises:
            DimensionError: If the model is not consistent with ``dimensions``.
        """


class ObservationModel(abc.ABC):
    """Maps a state to the observation expected for it.

        z_k = h(x_k)
    """

    @abc.abstractmethod
    def apply(self, state: torch.Tensor) -> torch.Tensor:
        """Compute the expected observation ``h(x)``.

        Args:
            state (torch.Tensor): State to observe.
                Shape: ``(..., dim_x, 1)``

        Returns:
            torch.Tensor: Expected observation.
                Shape: ``(..., dim_z, 1)``
        """

    @abc.abstractmethod
    def jacobian(self, state: torch.Tensor) -> torch.Tensor:
        """Compute ``dh/dx`` evaluated at ``x``.

        Returns:
            torch.Tensor: Jacobian with respect to the state.
                Shape: ``(..., dim_z, dim_x)``
        """

    @abc.abstractmethod
    def validate(self, dimensions: Dimensions) -> None:
        """Check the model against ``dimensions``.

        Raises:
            DimensionError: If the model is not consistent with ``dimensions``.
        """


class LinearMotionModel(MotionModel):
    """Linear motion model.

        x_k = A x_{k-1} + B u_k

    Attributes:
        state_transition (torch.Tensor): State transition matrix ``A``.
            Shape: ``(..., dim_x, dim_x)``
        control_matrix (torch.Tensor | None): Control matrix ``B``. None for an uncontrolled model.
            Shape: ``(..., dim_x, dim_u)``
    """

    def __init__(self, state_transition, control_matrix=None) -> None:
        self.state_transition = as_matrix(state_transition)
        self.control_matrix = as_matrix(control_matrix) if control_matrix is not None else None

    @property
    def state_dim(self) -> int:
        """Dimension of the state variable."""
        return self.state_transition.shape[-1]

    def apply(self, state: torch.Tensor, control: torch.Tensor | None = None) -> torch.Tensor:
        state = as_vector(state)
        check_vector(state, self.state_dim, "state")

        next_state = self.state_transition @ state
        if control is None:  # Uncontrolled prediction
            return next_state

        if self.control_matrix is None:
            raise TypeError("This motion model has no control matrix and cannot be controlled")

        control = as_vector(control)
        check_vector(control, self.control_matrix.shape[-1], "control")
        return next_state + self.control_matrix @ control

    def jacobian(self, state: torch.Tensor, control: torch.Tensor | None = None) -> torch.Tensor:
        return self.state_transition

    def validate(self, dimensions: Dimensions) -> None:
        check_matrix(self.state_transition, dimensions.state, dimensions.state, "state_transition")
        if self.control_matrix is not None:
            check_matrix(self.control_matrix, dimensions.state, dimensions.control, "control_matrix")

    def __repr__(self) -> str:
        return f"LinearMotionModel(state_dim={self.state_dim}, controlled={self.control_matrix is not None})"


class NonlinearMotionModel(MotionModel):
    """Nonlinear (differentiable) motion model.

        x_k = f(x_{k-1}, u_k)

    ``f`` is called as ``function(state, control)`` where ``control`` is None for
    uncontrolled predictions. Unless an analytic ``jacobian`` is provided, the Jacobian
    is computed numerically at each evaluation point (``2 * dim_x`` calls of ``f``).

    Attributes:
        function (Callable): Motion function ``f(x, u) -> x'``.
        dimensions (Dimensions): Dimensions of the problem. Required to shape the numeric Jacobian.
        jacobian_function (Callable | None): Optional analytic Jacobian ``(x, u) -> df/dx``.
        delta (float): Finite difference step of the numeric Jacobian.
    """

    def __init__(
        self,
        function: MotionFunction,
        dimensions: Dimensions,
        jacobian: Callable[[torch.Tensor, torch.Tensor | None], torch.Tensor] | None = None,
        *,
        delta=DEFAULT_DELTA,
    ) -> None:
        self.function = function
        self.dimensions = dimensions
        self.jacobian_function = jacobian
        self.delta = delta

    def _check_inputs(self, state, control) -> tuple[torch.Tensor, torch.Tensor | None]:
        state = as_vector(state)
        check_vector(state, self.dimensions.state, "state")
        if control is not None:
            control = as_vector(control)
            check_vector(control, self.dimensions.control, "control")
        return state, control

    def apply(self, state: torch.Tensor, control: torch.Tensor | None = None) -> torch.Tensor:
        state, control = self._check_inputs(state, control)

        next_state = self.function(state, control)
        check_vector(next_state, self.dimensions.state, "function output")
        return next_state

    def jacobian(self, state: torch.Tensor, control: torch.Tensor | None = None) -> torch.Tensor:
        state, control = self._check_inputs(state, control)

        if self.jacobian_function is not None:
            jacobian = as_matrix(self.jacobian_function(state, control))
            check_matrix(jacobian, self.dimensions.state, self.dimensions.state, "jacobian")
            return jacobian

        return numeric_jacobian(
            lambda x: self.function(x, control), state, (self.dimensions.state, self.dimensions.state), self.delta
        )

    def validate(self, dimensions: Dimensions) -> None:
        _check_dimensions(self.dimensions, dimensions, "state", "control")

        # Evaluated at zero, as only the output shape matters
        state = torch.zeros(dimensions.state, 1, dtype=get_dtype())
        control = torch.zeros(dimensions.control, 1, dtype=state.dtype)
        check_vector(self.function(state, control), dimensions.state, "function output")

    def __repr__(self) -> str:
        return f"NonlinearMotionModel(dimensions={self.dimensions}, analytic={self.jacobian_function is not None})"


class LinearObservationModel(ObservationModel):
    """Linear observation model.

        z_k = H x_k

    Attributes:
        observation_matrix (torch.Tensor): Observation/Projection matrix ``H``.
            Shape: ``(..., dim_z, dim_x)``
    """

    def __init__(self, observation_matrix) -> None:
        self.observation_matrix = as_matrix(observation_matrix)

    @property
    def state_dim(self) -> int:
        """Dimension of the state variable."""
        return self.observation_matrix.shape[-1]

    @property
    def observation_dim(self) -> int:
        """Dimension of the observed variable."""
        return self.observation_matrix.shape[-2]

    def apply(self, state: torch.Tensor) -> torch.Tensor:
        state = as_vector(state)
        check_vector(state, self.state_dim, "state")
        return self.observation_matrix @ state

    def jacobian(self, state: torch.Tensor) -> torch.Tensor:
        return self.observation_matrix

    def validate(self, dimensions: Dimensions) -> None:
        check_matrix(self.observation_matrix, dimensions.observation, dimensions.state, "observation_matrix")

    def __repr__(self) -> str:
        return f"LinearObservationModel(state_dim={self.state_dim}, observation_dim={self.observation_dim})"


class NonlinearObservationModel(ObservationModel):
    """Nonlinear (differentiable) observation model.

        z_k = h(x_k)

    Attributes:
        function (Callable): Observation function ``h(x) -> z``.
        dimensions (Dimensions): Dimensions of the problem. Required to shape the numeric Jacobian.
        jacobian_function (Callable | None): Optional analytic Jacobian ``x -> dh/dx``.
        delta (float): Finite difference step of the numeric Jacobian.
    """

    def __init__(
        self,
        function: ObservationFunction,
        dimensions: Dimensions,
        jacobian: Callable[[torch.Tensor], torch.Tensor] | None = None,
        *,
        delta=DEFAULT_DELTA,
    ) -> None:
        self.function = function
        self.dimensions = dimensions
        self.jacobian_function = jacobian
        self.delta = delta

    def apply(self, state: torch.Tensor) -> torch.Tensor:
        state = as_vector(state)
        check_vector(state, self.dimensions.state, "state")

        observation = self.function(state)
        check_vector(observation, self.dimensions.observation, "function output")
        return observation

    def jacobian(self, state: torch.Tensor) -> torch.Tensor:
        state = as_vector(state)
        check_vector(state, self.dimensions.state, "state")

        if self.jacobian_function is not None:
            jacobian = as_matrix(self.jacobian_function(state))
            check_matrix(jacobian, self.dimensions.observation, self.dimensions.state, "jacobian")
            return jacobian

        return numeric_jacobian(
            self.function, state, (self.dimensions.observation, self.dimensions.state), self.delta
        )

    def validate(self, dimensions: Dimensions) -> None:
        _check_dimensions(self.dimensions, dimensions, "state", "observation")

        state = torch.zeros(dimensions.state, 1, dtype=get_dtype())
        check_vector(self.function(state), dimensions.observation, "function output")

    def __repr__(self) -> str:
        return (
            f"NonlinearObservationModel(dimensions={self.dimensions}, analytic={self.jacobian_function is not None})"
        )


@dataclasses.dataclass
class NoiseModel:
    """Process and observation noise covariances.

    Both are covariance matrices (symmetric positive semi-definite, usually diagonal).

    Attributes:
        process: Process noise covariance ``Q``. Unmodeled disturbance of the state per prediction.
            Shape: ``(..., dim_x, dim_x)``
        observation: Observation noise covariance ``R``. Sensor error.
            Shape: ``(..., dim_z, dim_z)``
    """

    process: torch.Tensor
    observation: torch.Tensor

    def __post_init__(self) -> None:
        self.process = as_matrix(self.process)
        self.observation = as_matrix(self.observation)

    def validate(self, dimensions: Dimensions) -> None:
        """Check both covariances against ``dimensions``.

        Raises:
            DimensionError: If a covariance does not have the right shape.
        """
        check_matrix(self.process, dimensions.state, dimensions.state, "process_noise")
        check_matrix(self.observation, dimensions.observation, dimensions.observation, "observation_noise")

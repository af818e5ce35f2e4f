from __future__ import annotations

import math

import pytest
import torch

from torch_ekf import (
    DimensionError,
    Dimensions,
    LinearMotionModel,
    LinearObservationModel,
    NoiseModel,
    NonlinearMotionModel,
    NonlinearObservationModel,
)


def unicycle(state: torch.Tensor, control: torch.Tensor | None) -> torch.Tensor:
    # x, y, heading driven by (speed, turn rate) over dt = 1
    if control is None:
        return state
    x, y, heading = state[..., 0:1, :], state[..., 1:2, :], state[..., 2:3, :]
    speed, turn = control[..., 0:1, :], control[..., 1:2, :]
    return torch.cat([x + speed * torch.cos(heading), y + speed * torch.sin(heading), heading + turn], dim=-2)


def unicycle_jacobian(state: torch.Tensor, control: torch.Tensor | None) -> torch.Tensor:
    heading = float(state[2, 0])
    speed = float(control[0, 0]) if control is not None else 0.0
    return torch.tensor(
        [
            [1.0, 0.0, -speed * math.sin(heading)],
            [0.0, 1.0, speed * math.cos(heading)],
            [0.0, 0.0, 1.0],
        ]
    )


def test_linear_motion_apply():
    model = LinearMotionModel([[1.0, 1.0], [0.0, 1.0]], [[0.0], [1.0]])

    assert torch.equal(model.apply([1.0, 2.0]), torch.tensor([[3.0], [2.0]], dtype=torch.float64))
    assert torch.equal(model.apply([1.0, 2.0], [0.5]), torch.tensor([[3.0], [2.5]], dtype=torch.float64))
    assert model.jacobian([1.0, 2.0]) is model.state_transition


def test_linear_motion_without_control_matrix_rejects_controls():
    model = LinearMotionModel(torch.eye(2))

    with pytest.raises(TypeError):
        model.apply([1.0, 2.0], [1.0])


def test_linear_motion_wrong_sizes_raise():
    model = LinearMotionModel(torch.eye(2), torch.ones(2, 1))

    with pytest.raises(DimensionError) as error:
        model.apply([1.0, 2.0, 3.0])
    assert (error.value.name, error.value.expected, error.value.found) == ("state", 2, 3)

    with pytest.raises(DimensionError, match="control"):
        model.apply([1.0, 2.0], [1.0, 1.0])


def test_linear_motion_validate():
    model = LinearMotionModel(torch.eye(4), torch.ones(4, 2))
    model.validate(Dimensions(4, 2, 2))

    with pytest.raises(DimensionError) as error:
        model.validate(Dimensions(4, 3, 2))
    assert error.value.name == "control_matrix"
    assert error.value.axis == "columns"

    with pytest.raises(DimensionError, match="state_transition"):
        model.validate(Dimensions(3, 2, 2))


def test_linear_observation():
    model = LinearObservationModel([[1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])

    assert model.state_dim == 3
    assert model.observation_dim == 2
    assert torch.equal(model.apply([1.0, 2.0, 3.0]), torch.tensor([[1.0], [3.0]], dtype=torch.float64))

    model.validate(Dimensions(3, 1, 2))
    with pytest.raises(DimensionError, match="observation_matrix"):
        model.validate(Dimensions(3, 1, 3))


def test_nonlinear_motion_numeric_matches_analytic():
    dimensions = Dimensions(3, 2, 2)
    numeric = NonlinearMotionModel(unicycle, dimensions)
    analytic = NonlinearMotionModel(unicycle, dimensions, unicycle_jacobian)

    state = torch.tensor([[1.0], [-2.0], [0.7]], dtype=torch.float64)
    control = torch.tensor([[2.0], [0.1]], dtype=torch.float64)

    assert torch.allclose(numeric.apply(state, control), analytic.apply(state, control))
    assert torch.allclose(numeric.jacobian(state, control), analytic.jacobian(state, control), atol=1e-6)
    assert torch.allclose(numeric.jacobian(state), torch.eye(3, dtype=torch.float64), atol=1e-6)


def test_nonlinear_motion_checks_sizes():
    model = NonlinearMotionModel(unicycle, Dimensions(3, 2, 2))

    with pytest.raises(DimensionError, match="state"):
        model.apply(torch.zeros(2, 1))

    with pytest.raises(DimensionError, match="control"):
        model.jacobian(torch.zeros(3, 1), torch.zeros(3, 1))

    broken = NonlinearMotionModel(lambda x, u: x[:2], Dimensions(3, 2, 2))
    with pytest.raises(DimensionError, match="function output"):
        broken.apply(torch.zeros(3, 1))
    with pytest.raises(DimensionError, match="function output"):
        broken.validate(Dimensions(3, 2, 2))


def test_nonlinear_observation_range():
    landmark = torch.tensor([[3.0], [4.0]], dtype=torch.float64)

    def distance(state):
        return (state - landmark).norm(dim=-2, keepdim=True)

    model = NonlinearObservationModel(distance, Dimensions(2, 1, 1))
    state = torch.zeros(2, 1)

    assert torch.allclose(model.apply(state), torch.tensor([[5.0]], dtype=torch.float64))
    assert torch.allclose(model.jacobian(state), torch.tensor([[-0.6, -0.8]], dtype=torch.float64), atol=1e-6)

    model.validate(Dimensions(2, 1, 1))
    with pytest.raises(DimensionError, match="observation"):
        model.validate(Dimensions(2, 1, 2))


def test_nonlinear_validate_compares_dimensions():
    # The functions would fail on a state of the wrong size
    motion = NonlinearMotionModel(unicycle, Dimensions(3, 2, 2))
    observation = NonlinearObservationModel(lambda x: x[:2] * x[2:], Dimensions(3, 1, 2))

    with pytest.raises(DimensionError) as error:
        motion.validate(Dimensions(4, 2, 2))
    assert (error.value.name, error.value.axis, error.value.expected, error.value.found) == ("state", "rows", 4, 3)

    with pytest.raises(DimensionError) as error:
        motion.validate(Dimensions(3, 1, 2))
    assert (error.value.name, error.value.expected, error.value.found) == ("control", 1, 2)

    with pytest.raises(DimensionError) as error:
        observation.validate(Dimensions(2, 1, 2))
    assert (error.value.name, error.value.expected, error.value.found) == ("state", 2, 3)

    motion.validate(Dimensions(3, 2, 2))
    observation.validate(Dimensions(3, 1, 2))


def test_nonlinear_observation_analytic_jacobian_is_checked():
    model = NonlinearObservationModel(lambda x: x[:1], Dimensions(2, 1, 1), lambda x: torch.eye(2))

    with pytest.raises(DimensionError, match="jacobian"):
        model.jacobian(torch.zeros(2, 1))


def test_noise_model():
    noise = NoiseModel(torch.eye(4) * 0.1, 2.0)

    assert noise.observation.shape == (1, 1)
    assert noise.process.dtype == torch.float64

    noise.validate(Dimensions(4, 1, 1))
    with pytest.raises(DimensionError, match="process_noise"):
        noise.validate(Dimensions(3, 1, 1))
    with pytest.raises(DimensionError, match="observation_noise"):
        noise.validate(Dimensions(4, 1, 2))

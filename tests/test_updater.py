import logging

import pytest
import torch

from torch_ekf import (
    DimensionError,
    Dimensions,
    Estimate,
    LinearObservationModel,
    NonlinearObservationModel,
    Updater,
)


def _spd_matrix(dim: int, batch: tuple[int, ...] = ()) -> torch.Tensor:
    # Construct a symmetric positive definite covariance.
    cov = torch.randn(*batch, dim, dim, dtype=torch.float64)
    return cov @ cov.mT + 1e-2 * torch.eye(dim, dtype=torch.float64)


def random_updater(dim_x: int, dim_z: int, **kwargs) -> Updater:
    return Updater(LinearObservationModel(torch.randn(dim_z, dim_x)), _spd_matrix(dim_z), **kwargs)


def test_update_reduce_uncertainty():
    dim_x, dim_z = 2, 1
    updater = random_updater(dim_x, dim_z)
    estimate = Estimate(torch.randn(dim_x, 1), _spd_matrix(dim_x))
    observation = torch.randn(dim_z, 1)

    updated = updater.update(estimate, observation)

    assert torch.linalg.det(updated.covariance) < torch.linalg.det(estimate.covariance)

    updated_2 = updater.update(updated, observation)

    assert torch.linalg.det(updated_2.covariance) < torch.linalg.det(updated.covariance)
    assert updater.project(updated_2).covariance.item() < updater.project(updated).covariance.item()


def test_update_is_order_independent():
    dim_x, dim_z = 4, 2
    updater = random_updater(dim_x, dim_z)
    estimate = Estimate(torch.randn(dim_x, 1), _spd_matrix(dim_x))
    observation = torch.randn(dim_z, 1)
    observation_2 = torch.randn(dim_z, 1)

    updated = updater.update(updater.update(estimate, observation), observation_2)
    updated_2 = updater.update(updater.update(estimate, observation_2), observation)

    assert torch.allclose(updated.state, updated_2.state)
    assert torch.allclose(updated.covariance, updated_2.covariance)


def test_project_precision():
    updater = random_updater(3, 2)
    estimate = Estimate(torch.randn(3, 1), _spd_matrix(3))

    projection = updater.project(estimate)

    assert projection.state.shape == (2, 1)
    assert torch.allclose(projection.precision @ projection.covariance, torch.eye(2, dtype=torch.float64))
    assert updater.project(estimate, precompute_precision=False).precision is None


def test_joseph_is_equivalent():
    dim_x, dim_z = 3, 3
    updater = random_updater(dim_x, dim_z)
    estimate = Estimate(torch.randn(dim_x, 1), _spd_matrix(dim_x))
    observation = torch.randn(dim_z, 1)

    updated = updater.update(estimate, observation)
    updater.joseph_update = True
    updated_joseph = updater.update(estimate, observation)

    assert torch.allclose(updated.state, updated_joseph.state)
    assert torch.allclose(updated.covariance, updated_joseph.covariance)


def test_cholesky_is_equivalent():
    dim_x, dim_z = 4, 3
    updater = random_updater(dim_x, dim_z)
    estimate = Estimate(torch.randn(dim_x, 1), _spd_matrix(dim_x))
    observation = torch.randn(dim_z, 1)

    updated = updater.update(estimate, observation)
    # Without precision in the projection, the gain is computed with a cholesky solve
    updated_cholesky = updater.update(
        estimate, observation, projection=updater.project(estimate, precompute_precision=False)
    )

    assert torch.allclose(updated.state, updated_cholesky.state)
    assert torch.allclose(updated.covariance, updated_cholesky.covariance)


def test_identity_is_cached():
    updater = random_updater(3, 1)
    estimate = Estimate(torch.randn(3, 1), _spd_matrix(3))

    updater.update(estimate, torch.randn(1, 1))
    identity = updater._identity  # noqa: SLF001
    updater.update(estimate, torch.randn(1, 1))

    assert identity is not None
    assert updater._identity is identity  # noqa: SLF001
    assert torch.equal(identity, torch.eye(3, dtype=torch.float64))


def test_nonlinear_wrapper_matches_linear():
    matrix = torch.randn(2, 3, dtype=torch.float64)
    noise = _spd_matrix(2)
    linear = Updater(LinearObservationModel(matrix), noise)
    nonlinear = Updater(NonlinearObservationModel(lambda x: matrix @ x, Dimensions(3, 1, 2)), noise)
    estimate = Estimate(torch.randn(3, 1), _spd_matrix(3))
    observation = torch.randn(2, 1)

    expected = linear.update(estimate, observation)
    updated = nonlinear.update(estimate, observation)

    assert torch.allclose(updated.state, expected.state, atol=1e-6)
    assert torch.allclose(updated.covariance, expected.covariance, atol=1e-6)


def test_wrong_observation_size_raises():
    updater = random_updater(3, 2)
    estimate = Estimate(torch.randn(3, 1), _spd_matrix(3))

    with pytest.raises(DimensionError) as error:
        updater.update(estimate, torch.randn(3, 1))

    assert error.value.name == "observation"
    assert error.value.expected == 2
    assert error.value.found == 3


def test_singular_innovation_is_logged(caplog):
    # Unobserved direction and no observation noise: S is singular
    updater = Updater(LinearObservationModel([[1.0, 0.0], [1.0, 0.0]]), torch.zeros(2, 2))
    estimate = Estimate(torch.zeros(2, 1), torch.eye(2))

    with caplog.at_level(logging.WARNING, logger="torch_ekf.updater"):
        updater.project(estimate)

    assert "Singular innovation covariance" in caplog.text


def test_singular_innovation_is_logged_without_precision(caplog):
    updater = Updater(LinearObservationModel([[1.0, 0.0], [1.0, 0.0]]), torch.zeros(2, 2))
    estimate = Estimate(torch.zeros(2, 1), torch.eye(2))

    projection = updater.project(estimate, precompute_precision=False)
    assert projection.precision is None

    with caplog.at_level(logging.WARNING, logger="torch_ekf.updater"):
        updater.update(estimate, torch.ones(2, 1), projection=projection)

    assert "Singular innovation covariance" in caplog.text


def test_validate():
    dimensions = Dimensions(3, 1, 2)
    updater = random_updater(3, 2, dimensions=dimensions)
    updater.observation_noise = torch.eye(3)

    with pytest.raises(DimensionError, match="observation_noise"):
        updater.validate(dimensions)


def test_repr():
    updater = Updater(LinearObservationModel([[1.0, 0.0]]), 0.1)

    updater_repr = repr(updater)

    assert updater_repr.split("\n")[0] == "Updater (LinearObservationModel)"
    assert (
        "Observation: H = tensor([[1., 0.]], dtype=torch.float64)  &  R = tensor([[0.10]], dtype=torch.float64)"
        in updater_repr
    )


def test_repr_restores_print_options():
    options = torch._tensor_str.PRINT_OPTS  # noqa: SLF001
    saved = (options.precision, options.threshold, options.linewidth, options.sci_mode)

    repr(random_updater(3, 2))

    options = torch._tensor_str.PRINT_OPTS  # noqa: SLF001
    assert (options.precision, options.threshold, options.linewidth, options.sci_mode) == saved

"""Errors raised by torch-ekf."""

from __future__ import annotations


class DimensionError(ValueError):
    """A vector or matrix does not have the size required by a model.

    Attributes:
        name (str): Name of the faulty vector/matrix, e.g. ``"state_transition"``, ``"control"``,
            ``"observation_noise"`` or ``"state"``.
        axis (str): Either ``"rows"`` or ``"columns"``.
        expected (int): Expected size along ``axis``.
        found (int): Actual size along ``axis``.
    """

    def __init__(self, name: str, axis: str, expected: int, found: int) -> None:
        super().__init__(f"Expected {expected} {axis} in `{name}`, found {found}")
        self.name = name
        self.axis = axis
        self.expected = expected
        self.found = found


def check_vector(vector, rows: int, name: str) -> None:
    """Check that ``vector`` is a column vector with ``rows`` rows.

    Raises:
        DimensionError: If the last two dimensions are not ``(rows, 1)``.
    """
    if vector.ndim < 2:
        raise DimensionError(name, "columns", 1, 0)
    if vector.shape[-1] != 1:
        raise DimensionError(name, "columns", 1, vector.shape[-1])
    if vector.shape[-2] != rows:
        raise DimensionError(name, "rows", rows, vector.shape[-2])


def check_matrix(matrix, rows: int, columns: int, name: str) -> None:
    """Check that ``matrix`` has shape ``(..., rows, columns)``.

    Columns are checked first, so that a transposed matrix reports its columns.

    Raises:
        DimensionError: If the shape does not match.
    """
    if matrix.ndim < 2:
        raise DimensionError(name, "columns", columns, 0)
    if matrix.shape[-1] != columns:
        raise DimensionError(name, "columns", columns, matrix.shape[-1])
    if matrix.shape[-2] != rows:
        raise DimensionError(name, "rows", rows, matrix.shape[-2])

from __future__ import annotations

import dataclasses


@dataclasses.dataclass(frozen=True)
class Dimensions:
    """Sizes of the vectors involved in an estimation problem.

    Attributes:
        state (int): Dimension ``N`` of the state vector ``x``.
        control (int): Dimension ``P`` of the control vector ``u``.
        observation (int): Dimension ``M`` of the observation vector ``z``.
    """

    state: int
    control: int
    observation: int

    def __post_init__(self) -> None:
        for field in dataclasses.fields(self):
            value = getattr(self, field.name)
            if value < 1:
                raise ValueError(f"Dimension `{field.name}` must be positive, found {value}")

    @classmethod
    def uniform(cls, size: int) -> Dimensions:
        """Dimensions with the same size for state, control and observation."""
        return cls(size, size, size)

    def __str__(self) -> str:
        return f"{{ state: {self.state}, control: {self.control}, observation: {self.observation} }}"

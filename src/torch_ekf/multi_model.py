"""Per-context predictors and updaters sharing a single estimate.

Some systems observe (or are driven by) several sources, each one needing its own model.
A typical example is a robot localizing itself with range observations of known landmarks:
the observation function depends on the landmark position.

A multi-model component wraps a ``factory(context)`` and builds the sub-component of a
context the first time it is needed. It is then reused on every call for that context.
Contexts are dict keys: equality and hashing define which calls share a sub-component.
Use ``@dataclasses.dataclass(eq=False)`` for identity semantics.

The built sub-components are stored in a plain dict, mutated on each call. A multi-model
component must not be shared between threads without external synchronization.
"""

from __future__ import annotations

import dataclasses
import logging
from typing import Any, Callable, Dict, Generic, Hashable, TypeVar

from .dimensions import Dimensions
from .estimate import Estimate
from .predictor import Predictor
from .updater import Updater

logger = logging.getLogger(__name__)

ComponentT = TypeVar("ComponentT", Predictor, Updater)


@dataclasses.dataclass(frozen=True)
class Contextual:
    """A control or an observation tagged with the context it belongs to.

    Attributes:
        context: Hashable key selecting the sub-component (e.g. a landmark).
        value: The actual control or observation given to the sub-component.
    """

    context: Hashable
    value: Any


class _MultiModel(Generic[ComponentT]):
    _title = ""

    def __init__(self, factory: Callable[[Hashable], ComponentT]) -> None:
        self.factory = factory
        self._components: Dict[Hashable, ComponentT] = {}

    def __len__(self) -> int:
        return len(self._components)

    def _check_contextual(self, value, name: str) -> None:
        if not isinstance(value, Contextual):
            raise TypeError(
                f"{type(self).__name__} requires a `Contextual` {name}, got {type(value).__name__}."
                " Tag it with its context: Contextual(context, value)"
            )

    def _component_for(self, context: Hashable) -> ComponentT:
        component = self._components.get(context)
        if component is None:
            logger.debug("Building %s for context %r", self._title.lower(), context)
            component = self.factory(context)
        return component

    def validate(self, dimensions: Dimensions) -> None:
        """Validate every sub-component built so far.

        Raises:
            DimensionError: If a sub-component is not consistent with ``dimensions``.
        """
        for component in self._components.values():
            component.validate(dimensions)

    def _repr_blocks(self) -> list[str]:
        return [f"{self._title}: {len(self)} context(s)"]

    def __repr__(self) -> str:
        return f"{type(self).__name__}(contexts={len(self)})"


class MultiModelPredictor(_MultiModel[Predictor]):
    """Predictor dispatching each control to the predictor of its context.

    Attributes:
        factory (Callable[[Hashable], Predictor]): Builds the predictor of a new context.
    """

    _title = "Predictor"

    @property
    def predictors(self) -> Dict[Hashable, Predictor]:
        """Predictors built so far, by context."""
        return self._components

    def predict(self, estimate: Estimate, control: Contextual) -> Estimate:
        """Predict with the predictor associated to ``control.context``.

        Args:
            estimate (Estimate): Current posterior estimate.
            control (Contextual): Control tagged with its context. The value may be None
                for an uncontrolled prediction.

        Returns:
            Estimate: Predicted prior estimate.

        Raises:
            TypeError: If ``control`` is not `Contextual` (e.g. None).
        """
        self._check_contextual(control, "control")
        predictor = self._component_for(control.context)
        prediction = predictor.predict(estimate, control.value)
        self._components[control.context] = predictor
        return prediction


class MultiModelUpdater(_MultiModel[Updater]):
    """Updater dispatching each observation to the updater of its context.

    Attributes:
        factory (Callable[[Hashable], Updater]): Builds the updater of a new context.
    """

    _title = "Updater"

    @property
    def updaters(self) -> Dict[Hashable, Updater]:
        """Updaters built so far, by context."""
        return self._components

    def update(self, prediction: Estimate, observation: Contextual) -> Estimate:
        """Update with the updater associated to ``observation.context``.

        Args:
            prediction (Estimate): Predicted estimate.
            observation (Contextual): Observation tagged with its context.

        Returns:
            Estimate: Updated posterior estimate.

        Raises:
            TypeError: If ``observation`` is not `Contextual`.
        """
        self._check_contextual(observation, "observation")
        updater = self._component_for(observation.context)
        estimate = updater.update(prediction, observation.value)
        self._components[observation.context] = updater
        return estimate

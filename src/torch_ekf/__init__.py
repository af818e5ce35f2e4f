"""Torch-EKF: Linear and extended Kalman filtering in PyTorch.

torch-ekf provides a generalized Kalman filter core: the same predict/update
recursion runs linear models (classic Kalman filter) and nonlinear ones
(extended Kalman filter), linearized around the current estimate either with an
analytic Jacobian or with central finite differences.

Key features
------------
- **Composable steps**: a :class:`~torch_ekf.Predictor` (motion model + process
  noise) and an :class:`~torch_ekf.Updater` (observation model + observation
  noise) combined into a :class:`~torch_ekf.KalmanFilter`.
- **Nonlinear models without derivatives**: numeric Jacobians through
  :func:`~torch_ekf.jacobian.numeric_jacobian`.
- **Multi-model dispatch**: per-context predictors/updaters (e.g. one per
  landmark) built on demand and reused, sharing a single estimate.
- **Checked dimensions**: mismatched vectors raise
  :class:`~torch_ekf.DimensionError` instead of broadcasting silently.

Numerical notes
---------------
torch-ekf runs in ``float64`` by default, as finite differences need the
precision. See :mod:`torch_ekf.config` to switch to ``float32``.

Getting started
---------------
The core API consists of:
- :class:`~torch_ekf.Estimate` to represent the Gaussian belief over the state.
- The models of :mod:`torch_ekf.models`, linear or nonlinear.
- :class:`~torch_ekf.KalmanFilter` with :meth:`~torch_ekf.KalmanFilter.predict`,
  :meth:`~torch_ekf.KalmanFilter.update`, :meth:`~torch_ekf.KalmanFilter.filter`
  and :meth:`~torch_ekf.KalmanFilter.run`, or its stateful counterpart
  :class:`~torch_ekf.StatefulKalmanFilter`.

:mod:`torch_ekf.ckf` builds ready-to-use constant velocity / acceleration models.

Notes on shapes
---------------
torch-ekf uses column vectors. State, control and observation vectors have
shape ``(..., dim, 1)`` (1-D inputs are promoted). Leading dimensions ``...``
are treated as batch dimensions.
"""

from .config import get_dtype, set_dtype
from .dimensions import Dimensions
from .errors import DimensionError
from .estimate import Estimate
from .jacobian import numeric_jacobian
from .kalman_filter import KalmanFilter, StatefulKalmanFilter
from .models import (
    LinearMotionModel,
    LinearObservationModel,
    MotionModel,
    NoiseModel,
    NonlinearMotionModel,
    NonlinearObservationModel,
    ObservationModel,
)
from .multi_model import Contextual, MultiModelPredictor, MultiModelUpdater
from .predictor import Predictor
from .updater import Updater

__all__ = [
    "Contextual",
    "DimensionError",
    "Dimensions",
    "Estimate",
    "KalmanFilter",
    "LinearMotionModel",
    "LinearObservationModel",
    "MotionModel",
    "MultiModelPredictor",
    "MultiModelUpdater",
    "NoiseModel",
    "NonlinearMotionModel",
    "NonlinearObservationModel",
    "ObservationModel",
    "Predictor",
    "StatefulKalmanFilter",
    "Updater",
    "get_dtype",
    "numeric_jacobian",
    "set_dtype",
]
__version__ = "0.1.0"

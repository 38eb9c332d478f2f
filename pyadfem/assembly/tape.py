"""pyadfem.assembly.tape
Reverse-mode differentiation tape backed by ``jax.vjp``.

One recording covers one element: register the independent unknowns, record
the residual computation, declare which outputs are dependents and pull the
Jacobian back with one cotangent per dependent.
"""
from contextlib import contextmanager
import logging

import jax
import jax.numpy as jnp
import numpy as np

from pyadfem.core.errors import TapeDisciplineError

jax.config.update("jax_enable_x64", True)

logger = logging.getLogger(__name__)


class DifferentiationTape:
    """Explicit tape object; never shared between concurrent recordings."""

    def __init__(self):
        self._active = False
        self._x = None
        self._y = None
        self._pullback = None
        self._dependents = []

    # ---------- state ----------
    @property
    def is_recording(self) -> bool:
        return self._active

    @property
    def n_independent(self) -> int:
        return 0 if self._x is None else int(self._x.size)

    @property
    def n_dependent(self) -> int:
        return len(self._dependents)

    def _require(self, cond, message):
        if not cond:
            raise TapeDisciplineError(message)

    # ---------- protocol ----------
    def new_recording(self):
        """Start a fresh recording, discarding whatever the tape held."""
        self._active = True
        self._x = None
        self._y = None
        self._pullback = None
        self._dependents = []

    def independent(self, values):
        self._require(self._active, "independent() called before new_recording()")
        self._require(self._pullback is None,
                      "independent() called after the computation was recorded")
        self._x = jnp.asarray(np.asarray(values, dtype=float).ravel())
        return self._x

    def record(self, fn):
        """Evaluate ``fn(independents)`` on the tape and return its value."""
        self._require(self._x is not None, "record() called before independent()")
        self._require(self._pullback is None, "a computation is already recorded")
        self._y, self._pullback = jax.vjp(fn, self._x)
        return np.asarray(self._y)

    def dependent(self, index=None):
        """Declare recorded outputs as dependents (all of them by default)."""
        self._require(self._pullback is not None, "dependent() called before record()")
        size = int(self._y.size)
        idx = np.arange(size) if index is None else np.arange(size)[index]
        self._dependents.extend(int(i) for i in np.atleast_1d(idx))

    def jacobian(self) -> np.ndarray:
        """``d(dependents)/d(independents)``: rows follow the dependents, columns the independents."""
        self._require(self._pullback is not None, "jacobian() called before record()")
        self._require(self._x is not None, "jacobian() called without independents")
        self._require(len(self._dependents) > 0, "jacobian() called without dependents")
        y_shape = self._y.shape
        eye = jnp.eye(int(self._y.size), dtype=self._y.dtype)
        cotangents = eye[np.asarray(self._dependents)].reshape((-1,) + y_shape)
        (rows,) = jax.vmap(self._pullback)(cotangents)
        return np.asarray(rows).reshape(len(self._dependents), self.n_independent)

    def clear_dependents(self):
        self._dependents = []

    def clear_independents(self):
        self._x = None
        self._y = None
        self._pullback = None

    def clear(self):
        self.clear_dependents()
        self.clear_independents()
        self._active = False

    @contextmanager
    def recording(self):
        self.new_recording()
        try:
            yield self
        finally:
            self.clear()

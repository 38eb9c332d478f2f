"""pyadfem.forms.kernels
Weak-form kernels evaluated inside a tape recording.

A kernel is called once per quadrature point as
``kernel(x, phi, grad_phi, u, grad_u)`` and returns the per-node residual
contribution (before multiplication by the quadrature weight).  ``x``,
``phi`` (n,) and ``grad_phi`` (n, S) are plain arrays, while ``u`` and
``grad_u`` are traced, so all arithmetic on them goes through ``jax.numpy``.
The residual convention is ``r_i = f phi_i - grad(phi_i) . grad(u) - ...``;
the assembler negates it when scattering the Newton right-hand side.
"""
from typing import Callable, Optional

import jax.numpy as jnp
import numpy as np


def _constant(value):
    return lambda X: value


class PoissonKernel:
    """``-k lap(u) = f``."""

    def __init__(self, source: Optional[Callable] = None, diffusivity: float = 1.0):
        self.source = source if source is not None else _constant(0.0)
        self.diffusivity = diffusivity

    def __call__(self, x, phi, grad_phi, u, grad_u):
        f = float(np.asarray(self.source(x)))
        return f * phi - self.diffusivity * jnp.dot(grad_phi, grad_u)


class ReactionDiffusionKernel(PoissonKernel):
    """``-k lap(u) + g(u) = f`` with a pointwise reaction ``g``; default ``g(u) = u**3``."""

    def __init__(self, reaction: Optional[Callable] = None,
                 source: Optional[Callable] = None, diffusivity: float = 1.0):
        super().__init__(source, diffusivity)
        self.reaction = reaction if reaction is not None else (lambda u: u ** 3)

    def __call__(self, x, phi, grad_phi, u, grad_u):
        f = float(np.asarray(self.source(x)))
        return (f - self.reaction(u)) * phi - self.diffusivity * jnp.dot(grad_phi, grad_u)


class ConvectionDiffusionKernel(PoissonKernel):
    """``-lap(u) + u (1, 1, 1) . grad(u) = f`` (Burgers-like transport)."""

    def __call__(self, x, phi, grad_phi, u, grad_u):
        f = float(np.asarray(self.source(x)))
        convection = u * jnp.sum(grad_u)
        return (f - convection) * phi - self.diffusivity * jnp.dot(grad_phi, grad_u)

# analytic.py
import numpy as np
import sympy as sp


class Analytic:
    """
    Wraps a SymPy expression f(x, y, z) and provides its value, gradient and
    Laplacian as NumPy callables on points of shape (..., 3).
    """
    _x, _y, _z = sp.symbols("x y z")
    _coords = (_x, _y, _z)

    def __init__(self, sympy_expr):
        self.sympy_expr = sp.sympify(sympy_expr)
        grad = [sp.diff(self.sympy_expr, c) for c in self._coords]
        lap = sum(sp.diff(g, c) for g, c in zip(grad, self._coords))
        self.grad_expr = grad
        self.laplacian_expr = lap
        self._f = sp.lambdify(self._coords, self.sympy_expr, "numpy")
        self._g = [sp.lambdify(self._coords, g, "numpy") for g in grad]
        self._lap = sp.lambdify(self._coords, lap, "numpy")

    @staticmethod
    def _split(X):
        X = np.asarray(X, dtype=float)
        if X.shape[-1] < 3:
            # planar points: missing coordinates are zero
            pad = [(0, 0)] * (X.ndim - 1) + [(0, 3 - X.shape[-1])]
            X = np.pad(X, pad)
        return X[..., 0], X[..., 1], X[..., 2]

    def _eval(self, fn, X):
        x, y, z = self._split(X)
        return np.broadcast_to(np.asarray(fn(x, y, z), dtype=float), x.shape).copy()

    def __call__(self, X):
        return self._eval(self._f, X)

    def gradient(self, X):
        """(..., 3) gradient."""
        return np.stack([self._eval(g, X) for g in self._g], axis=-1)

    def laplacian(self, X):
        return self._eval(self._lap, X)

    def nodal(self, x, y, z):
        """Adapter for :meth:`pyadfem.core.dofhandler.Solution.interpolate`."""
        return self(np.stack(np.broadcast_arrays(x, y, z), axis=-1))

    def poisson_source(self):
        """Right-hand side ``f = -lap(u)``."""
        return lambda X: -self.laplacian(X)

    def convection_source(self):
        """Right-hand side of ``-lap(u) + u * (1, 1, 1) . grad(u) = f``."""
        return lambda X: -self.laplacian(X) + self(X) * self.gradient(X).sum(axis=-1)


x, y, z = Analytic._coords


def cosine_product() -> Analytic:
    """``u = cos(pi x) cos(pi y)``, zero on the boundary of [-1/2, 1/2]^2."""
    return Analytic(sp.cos(sp.pi * x) * sp.cos(sp.pi * y))

# pyadfem.core.errors
"""
Exception hierarchy shared by the mapping engine, the evaluators and the
assemblers.

Geometry and tape faults are raised where they are detected and propagate
through the element loop, which stamps the offending element id on them
before re-raising.  Configuration faults are raised at setup time.
"""
from typing import Optional


class FemError(Exception):
    """Root of every error raised by pyadfem."""

    def __init__(self, message: str = "", *, element_id: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.element_id = element_id

    def __str__(self):
        if self.element_id is None:
            return self.message
        return f"{self.message} (element {self.element_id})"


class GeometryFault(FemError):
    """The element geometry cannot be mapped."""


class DegenerateGeometryError(GeometryFault):
    """Non-positive (or numerically vanishing) Jacobian determinant."""

    def __init__(self, det_jac: float, ig: Optional[int] = None, *,
                 element_id: Optional[int] = None):
        where = "" if ig is None else f" at quadrature point {ig}"
        super().__init__(f"degenerate element mapping: detJac={det_jac:.3e}{where}",
                         element_id=element_id)
        self.det_jac = det_jac
        self.ig = ig


class UnsupportedOperationError(FemError, NotImplementedError):
    """Operation not defined for this mapping variant."""


class NonPlanarCurveError(UnsupportedOperationError):
    """A 1-D normal was requested for a curve that leaves the z = 0 plane."""


class ConfigurationError(FemError, ValueError):
    """Inconsistent setup: unknown geometry, family, field or sizes."""


class UnknownFieldError(ConfigurationError):
    def __init__(self, name: str, known=()):
        super().__init__(f"unknown field {name!r}; registered: {sorted(known)}")
        self.name = name


class QuadratureMismatchError(ConfigurationError):
    """Geometry and field tables were tabulated on different rules."""


class TapeDisciplineError(FemError, RuntimeError):
    """Tape calls issued out of the new-recording/independent/dependent order."""


class ContainerStateError(FemError, RuntimeError):
    """A global container was read while writes were still pending."""

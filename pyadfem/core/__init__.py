from .errors import (FemError, GeometryFault, DegenerateGeometryError,
                     UnsupportedOperationError, NonPlanarCurveError,
                     ConfigurationError, UnknownFieldError,
                     QuadratureMismatchError, TapeDisciplineError,
                     ContainerStateError)
__all__ = ['FemError', 'GeometryFault', 'DegenerateGeometryError',
           'UnsupportedOperationError', 'NonPlanarCurveError',
           'ConfigurationError', 'UnknownFieldError',
           'QuadratureMismatchError', 'TapeDisciplineError',
           'ContainerStateError']

"""pyadfem: isoparametric mappings and tape-based residual/Jacobian assembly."""
import logging

logging.getLogger(__name__).addHandler(logging.NullHandler())

__version__ = "0.1.0"

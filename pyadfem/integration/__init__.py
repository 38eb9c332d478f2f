from .quadrature import QuadratureRule, volume, gauss_legendre, resolve_degree
__all__ = ['QuadratureRule', 'volume', 'gauss_legendre', 'resolve_degree']

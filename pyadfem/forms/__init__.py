from .analytic import Analytic, cosine_product
from .kernels import PoissonKernel, ReactionDiffusionKernel, ConvectionDiffusionKernel
__all__ = ['Analytic', 'cosine_product', 'PoissonKernel', 'ReactionDiffusionKernel',
           'ConvectionDiffusionKernel']

"""Example: h-convergence of the Poisson problem for the three FE families"""
import logging
import sys

import matplotlib.pyplot as plt

from pyadfem.io.visualization import plot_convergence
from pyadfem.utils.convergence import run_convergence_study

logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

geometry = sys.argv[1] if len(sys.argv) > 1 else "quad"
table = run_convergence_study(geometry, levels=(1, 2, 3, 4))
print(table.format())

fig, (ax_l2, ax_semi) = plt.subplots(1, 2, figsize=(11, 5))
plot_convergence(table, norm="l2", ax=ax_l2)
plot_convergence(table, norm="semi", ax=ax_semi)
ax_l2.set_title(f"{geometry}: L2")
ax_semi.set_title(f"{geometry}: H1 seminorm")
plt.show()

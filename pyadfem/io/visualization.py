"""pyadfem.io.visualization"""
import matplotlib.pyplot as plt
import numpy as np
from matplotlib.collections import PolyCollection

_MARKERS = {"linear": "o", "quadratic": "s", "biquadratic": "^"}


def plot_convergence(table, *, norm: str = "l2", ax=None, show: bool = False):
    """
    Log-log error versus mesh size for every FE family of a convergence table.

    Args:
        table (ConvergenceTable): Result of ``run_convergence_study``.
        norm (str): ``"l2"`` or ``"semi"``.
        ax (matplotlib.axes.Axes, optional): Existing axes to draw on.
        show (bool): Call ``plt.show()`` at the end.
    Returns:
        matplotlib.axes.Axes
    """
    if ax is None:
        fig, ax = plt.subplots(figsize=(6, 5))
    h = 2.0 ** -np.asarray(table.levels, dtype=float)
    err = table.l2 if norm == "l2" else table.semi
    for j, family in enumerate(table.families):
        ax.loglog(h, err[:, j], marker=_MARKERS.get(family, "x"), label=family)
    ax.set_xlabel("h")
    ax.set_ylabel("L2 error" if norm == "l2" else "H1 seminorm error")
    ax.grid(True, which="both", alpha=0.3)
    ax.legend()
    if show:
        plt.show()
    return ax


def plot_mesh(mesh, *, solution_on_nodes=None, ax=None, show: bool = False):
    """Outline the corner polygons of a 2-D mesh, optionally colouring nodal values."""
    if ax is None:
        fig, ax = plt.subplots(figsize=(7, 6))
    polys = [mesh.nodes_xyz[mesh.element_nodes(eid, "linear"), :2]
             for eid in range(mesh.n_elements)]
    ax.add_collection(PolyCollection(polys, facecolors="none",
                                     edgecolors=(0.1, 0.1, 0.1, 0.6), linewidths=0.6))
    if solution_on_nodes is not None:
        sc = ax.scatter(mesh.nodes_xyz[:, 0], mesh.nodes_xyz[:, 1],
                        c=np.asarray(solution_on_nodes), s=12, cmap="viridis", zorder=3)
        plt.colorbar(sc, ax=ax)
    ax.autoscale_view()
    ax.set_aspect("equal")
    if show:
        plt.show()
    return ax

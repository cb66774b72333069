"""Scalar two-sphere lubrication functions.

Near contact (r <= 2.1, r the center distance in units of the mean radius) the functions
are given by their logarithmic asymptotic forms in the gap xi = r - 2. Beyond that point,
up to the lubrication cutoff r = 4, they are linearly interpolated from tables. Table
values can be loaded from file; when no file is given the tables are generated here.
"""

from pathlib import Path
from typing import NamedTuple, Union

import jax.numpy as jnp
import numpy as np
from jax import Array
from jax.typing import ArrayLike
from loguru import logger

NEAR_CONTACT = 2.1
LUBRICATION_CUTOFF = 4.0

ABC_FUNCTIONS = ("x11a", "x12a", "y11a", "y12a", "y11b", "y12b", "x11c", "x12c", "y11c", "y12c")
GH_FUNCTIONS = ("x11g", "x12g", "y11g", "y12g", "y11h", "y12h")
M_FUNCTIONS = ("xm", "ym", "zm")

# A, B and C functions: 2.10 ... 4.00 in steps of 0.05
ABC_NODES = NEAR_CONTACT + 0.05 * np.arange(39)
# G, H and M functions: 2.10 ... 2.19 in steps of 0.01, then 2.20 ... 4.00 in steps of 0.05
GHM_NODES = np.concatenate([NEAR_CONTACT + 0.01 * np.arange(10), 2.2 + 0.05 * np.arange(37)])


class LubricationTable(NamedTuple):
    """Tabulated lubrication functions.

    abc_nodes: (float) Array (n_abc,) of dimensionless distances
    abc_values: (float) Array (10, n_abc), rows ordered as ABC_FUNCTIONS
    gh_nodes: (float) Array (n_ghm,)
    gh_values: (float) Array (6, n_ghm), rows ordered as GH_FUNCTIONS
    m_nodes: (float) Array (n_ghm,)
    m_values: (float) Array (3, n_ghm), rows ordered as M_FUNCTIONS
    """

    abc_nodes: ArrayLike
    abc_values: ArrayLike
    gh_nodes: ArrayLike
    gh_values: ArrayLike
    m_nodes: ArrayLike
    m_values: ArrayLike


def near_contact_functions(r: ArrayLike) -> dict:
    """Asymptotic lubrication functions for nearly touching spheres.

    Parameters
    ----------
    r: (float)
        Center-to-center distance in units of the mean radius (r > 2)

    Returns
    -------
    dict with the 19 scalar functions, keyed as ABC_FUNCTIONS + GH_FUNCTIONS + M_FUNCTIONS

    """
    xi = r - 2.0
    xi1 = 1.0 / xi
    dlx = jnp.log(xi1)
    xdlx = xi * dlx
    dlx1 = dlx + xdlx

    csa1 = dlx / 6.0
    csa2 = xdlx / 6.0
    csa3 = dlx1 / 6.0
    csa4 = 0.25 * xi1 + 0.225 * dlx
    csa5 = dlx / 15.0

    # a, b tilde and c terms of the force-velocity block
    x11a = csa4 - 1.23041 + 3.0 / 112.0 * xdlx + 1.8918 * xi
    y11a = csa1 - 0.39394 + 0.95665 * xi
    y11b = -csa1 + 0.408286 - xdlx / 12.0 - 0.84055 * xi

    # g and h terms of the force-strain block
    csg1 = csa4 + 39.0 / 280.0 * xdlx
    csg2 = dlx / 12.0 + xdlx / 24.0

    return {
        "x11a": x11a,
        "x12a": -x11a + 0.00312 - 0.0011 * xi,
        "y11a": y11a,
        "y12a": -y11a + 0.00463606 - 0.007049 * xi,
        "y11b": y11b,
        "y12b": -y11b + 0.00230818 - 0.007508 * xi,
        "x11c": 0.0479 - csa2 + 0.12494 * xi,
        "x12c": -0.031031 + csa2 - 0.174476 * xi,
        "y11c": 4.0 * csa5 - 0.605434 + 94.0 / 375.0 * xdlx + 0.939139 * xi,
        "y12c": csa5 - 0.212032 + 31.0 / 375.0 * xdlx + 0.452843 * xi,
        "x11g": csg1 - 1.16897 + 1.47882 * xi,
        "x12g": -csg1 + 1.178967 - 1.480493 * xi,
        "y11g": csg2 - 0.2041 + 0.442226 * xi,
        "y12g": -csg2 + 0.216365 - 0.469830 * xi,
        "y11h": 0.5 * csa5 - 0.143777 + 137.0 / 1500.0 * xdlx + 0.264207 * xi,
        "y12h": 2.0 * csa5 - 0.298166 + 113.0 / 1500.0 * xdlx + 0.534123 * xi,
        # m term of the strain-strain block
        "xm": 1.0 / 3.0 * xi1 + 0.3 * dlx - 1.48163 + 0.335714 * xdlx + 1.413604 * xi,
        "ym": csa3 - 0.423489 + 0.827286 * xi,
        "zm": 0.0129151 - 0.042284 * xi,
    }


def compute_lubrication_table() -> LubricationTable:
    """Generate the default lubrication tables.

    Every function starts at its near-contact value at r = 2.1, so that the asymptotic and
    tabulated branches join continuously, and decays quadratically to zero at the cutoff
    r = 4. Measured two-sphere data should be supplied with load_lubrication_table when
    quantitative near-field accuracy at intermediate gaps matters.

    Returns
    -------
    LubricationTable

    """
    boundary = {name: float(value) for name, value in near_contact_functions(NEAR_CONTACT).items()}

    def _decay(nodes):
        return ((LUBRICATION_CUTOFF - nodes) / (LUBRICATION_CUTOFF - NEAR_CONTACT)) ** 2

    def _tabulate(names, nodes):
        values = np.zeros((len(names), len(nodes)))
        for row, name in enumerate(names):
            values[row] = boundary[name] * _decay(nodes)
        return values

    return LubricationTable(
        ABC_NODES,
        _tabulate(ABC_FUNCTIONS, ABC_NODES),
        GHM_NODES,
        _tabulate(GH_FUNCTIONS, GHM_NODES),
        GHM_NODES,
        _tabulate(M_FUNCTIONS, GHM_NODES),
    )


def load_lubrication_table(path: Union[str, Path]) -> LubricationTable:
    """Load lubrication tables from a .npz file.

    The file must contain the arrays abc_nodes, abc_values, gh_nodes, gh_values, m_nodes and
    m_values with the layout of LubricationTable, on the node grids of ABC_NODES and GHM_NODES.
    """
    path = Path(path)
    with np.load(path) as data:
        missing = [field for field in LubricationTable._fields if field not in data]
        if missing:
            raise ValueError(f"Lubrication table {path} is missing array(s): {missing}")
        table = LubricationTable(*(np.asarray(data[field], dtype=float) for field in LubricationTable._fields))

    expected = {
        "abc_nodes": ABC_NODES.shape,
        "abc_values": (len(ABC_FUNCTIONS), len(ABC_NODES)),
        "gh_nodes": GHM_NODES.shape,
        "gh_values": (len(GH_FUNCTIONS), len(GHM_NODES)),
        "m_nodes": GHM_NODES.shape,
        "m_values": (len(M_FUNCTIONS), len(GHM_NODES)),
    }
    for field, shape in expected.items():
        if getattr(table, field).shape != shape:
            raise ValueError(
                f"Lubrication table {path}: {field} has shape {getattr(table, field).shape}, expected {shape}"
            )
    for field in ("abc_nodes", "gh_nodes", "m_nodes"):
        if not np.allclose(getattr(table, field), ABC_NODES if field == "abc_nodes" else GHM_NODES):
            raise ValueError(f"Lubrication table {path}: {field} does not match the interpolation grid")
    logger.info(f"Loaded lubrication table from {path}")
    return table


def tabulated_functions(r: ArrayLike, table: LubricationTable) -> dict:
    """Linearly interpolate the lubrication functions at a dimensionless distance 2.1 < r < 4."""
    table = LubricationTable(*(jnp.asarray(field) for field in table))
    ida = jnp.floor(20.0 * (r - 2.0)).astype(int)
    ib = jnp.clip(ida - 2, 0, len(ABC_NODES) - 2)
    values = _interpolate(r, ib, table.abc_nodes, table.abc_values)

    ib = jnp.where(r < 2.2, jnp.floor(100.0 * (r - 2.0)).astype(int) - 10, ida + 6)
    ib = jnp.clip(ib, 0, len(GHM_NODES) - 2)
    values = jnp.concatenate(
        [
            values,
            _interpolate(r, ib, table.gh_nodes, table.gh_values),
            _interpolate(r, ib, table.m_nodes, table.m_values),
        ]
    )
    return dict(zip(ABC_FUNCTIONS + GH_FUNCTIONS + M_FUNCTIONS, values))


def _interpolate(r: ArrayLike, ib: Array, nodes: ArrayLike, values: ArrayLike) -> Array:
    ia = ib + 1
    fac = (r - nodes[ib]) / (nodes[ia] - nodes[ib])
    return (values[:, ia] - values[:, ib]) * fac + values[:, ib]


DEFAULT_TABLE = compute_lubrication_table()

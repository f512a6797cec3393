"""
Shared fixtures: square polygon grids and their lattice neighbor graphs.

Unit k sits at row k // ncols, column k % ncols, with row 0 on top.
"""
import matplotlib

matplotlib.use("Agg")

import geopandas as gpd
import pandas as pd
import pytest
from shapely.geometry import box

from censusspatial.weights import NeighborGraph


def make_ids(n):
    return [f"24510{k:06d}" for k in range(n)]


def lattice_graph(nrows, ncols, rule="rook"):
    """Neighbor graph of a regular grid without touching geometry."""
    mapping = {}
    for r in range(nrows):
        for c in range(ncols):
            nbrs = []
            for dr in (-1, 0, 1):
                for dc in (-1, 0, 1):
                    if (dr, dc) == (0, 0):
                        continue
                    if rule == "rook" and dr and dc:
                        continue
                    rr, cc = r + dr, c + dc
                    if 0 <= rr < nrows and 0 <= cc < ncols:
                        nbrs.append(rr * ncols + cc)
            mapping[r * ncols + c] = nbrs
    return NeighborGraph.from_mapping(range(nrows * ncols), mapping)


def grid_gdf(nrows, ncols, values=None, value_field="VALUE"):
    geoms = [
        box(c, nrows - 1 - r, c + 1, nrows - r)
        for r in range(nrows)
        for c in range(ncols)
    ]
    data = {"GEOID": make_ids(nrows * ncols)}
    if values is not None:
        data[value_field] = list(values)
    return gpd.GeoDataFrame(data, geometry=geoms)


def checkerboard(nrows, ncols, high=10.0, low=1.0):
    return [high if (r + c) % 2 == 0 else low for r in range(nrows) for c in range(ncols)]


def block(nrows, ncols, rows, cols, high=10.0, low=1.0):
    """High values inside rows x cols (ranges), low elsewhere."""
    return [high if (r in rows and c in cols) else low for r in range(nrows) for c in range(ncols)]


@pytest.fixture
def lattice():
    return lattice_graph


@pytest.fixture
def grid():
    return grid_gdf


@pytest.fixture
def unemployment_inputs():
    """6x6 tract grid with an unemployment hot block in the top-left corner."""
    nrows = ncols = 6
    geometry = grid_gdf(nrows, ncols)
    rates = block(nrows, ncols, range(0, 3), range(0, 3), high=0.15, low=0.03)
    labor_force = [1000 + 10 * k for k in range(nrows * ncols)]
    table = pd.DataFrame({
        "GEOID": make_ids(nrows * ncols),
        "LABOR_FORCE": labor_force,
        "UNEMPLOYED": [round(rate * lf) for rate, lf in zip(rates, labor_force)],
    })
    # attribute table rows arrive in a different order from the geometries
    return geometry, table.sample(frac=1.0, random_state=7).reset_index(drop=True)

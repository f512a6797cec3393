# censusspatial/weights.py
"""
Neighbor graphs and spatial weights matrices.

Contiguity detection is delegated to libpysal through the `NeighborFinder`
interface; everything downstream (weights styles, zero policy, the moments the
statistics need) works on the plain `NeighborGraph` so it can be built and
tested without geometry.
"""
from dataclasses import dataclass
from typing import Hashable, Iterable, Mapping, Protocol

import numpy as np
import geopandas as gpd
from scipy import sparse
from libpysal.graph import Graph

from censusspatial.config import ID_FIELD
from censusspatial.utils import info, warn

class ConfigurationError(ValueError):
    """Raised when a weights configuration cannot be honoured."""

##################### SECTION 1 #####################
# Neighbor graph
#####################################################
@dataclass(frozen=True)
class NeighborGraph:
    """
    Adjacency among units, stored as neighbor positions per unit.

    `ids[i]` is the identifier of unit i; `neighbors[i]` holds the positions of
    its neighbors. Symmetric, without self-loops.
    """
    ids: tuple
    neighbors: tuple

    def __post_init__(self):
        n = len(self.ids)
        if len(self.neighbors) != n:
            raise ValueError(f"{len(self.neighbors)} neighbor lists for {n} units")
        if len(set(self.ids)) != n:
            raise ValueError("Unit identifiers must be unique")

        edges = set()
        for i, nbrs in enumerate(self.neighbors):
            for j in nbrs:
                if not 0 <= j < n:
                    raise ValueError(f"Neighbor position {j} of unit {self.ids[i]!r} out of range")
                if j == i:
                    raise ValueError(f"Unit {self.ids[i]!r} lists itself as a neighbor")
                edges.add((i, j))

        asymmetric = [(self.ids[i], self.ids[j]) for i, j in edges if (j, i) not in edges]
        if asymmetric:
            raise ValueError(f"Neighbor relation is not symmetric: {asymmetric[:5]}")

    @classmethod
    def from_mapping(cls, ids: Iterable[Hashable], mapping: Mapping[Hashable, Iterable[Hashable]]) -> "NeighborGraph":
        """Build from {id: [neighbor ids]}; ids missing from `mapping` have no neighbors."""
        ids = tuple(ids)
        position = {key: i for i, key in enumerate(ids)}
        unknown = [key for key in mapping if key not in position]
        if unknown:
            raise ValueError(f"Unknown unit ids in neighbor mapping: {unknown[:5]}")

        neighbors = []
        for key in ids:
            nbrs = mapping.get(key, ())
            try:
                neighbors.append(tuple(sorted({position[j] for j in nbrs})))
            except KeyError as e:
                raise ValueError(f"Unit {key!r} has unknown neighbor {e.args[0]!r}") from None
        return cls(ids=ids, neighbors=tuple(neighbors))

    @property
    def n(self) -> int:
        return len(self.ids)

    @property
    def cardinalities(self) -> np.ndarray:
        return np.array([len(nbrs) for nbrs in self.neighbors], dtype=int)

    @property
    def islands(self) -> list:
        """Identifiers of units with no neighbors."""
        return [key for key, nbrs in zip(self.ids, self.neighbors) if not nbrs]

    @property
    def n_edges(self) -> int:
        """Number of directed neighbor pairs (twice the undirected count)."""
        return int(self.cardinalities.sum())

    def to_mapping(self) -> dict:
        return {key: [self.ids[j] for j in nbrs] for key, nbrs in zip(self.ids, self.neighbors)}

##################### SECTION 2 #####################
# Neighbor finders
#####################################################
class NeighborFinder(Protocol):
    """Anything that turns a polygon layer into a NeighborGraph."""

    def find(self, gdf: gpd.GeoDataFrame, id_field: str = ID_FIELD) -> NeighborGraph:
        ...

class ContiguityFinder:
    """
    Polygon contiguity via libpysal.

    rule="queen": boundaries touch (a shared edge or a single point).
    rule="rook":  boundaries share a segment of positive length.

    Adjacency is tested with geometric predicates, so polygons that touch
    without a common vertex are still neighbors.
    """
    RULES = ("queen", "rook")

    def __init__(self, rule: str = "queen"):
        rule = rule.lower()
        if rule not in self.RULES:
            raise ConfigurationError(f"Unknown contiguity rule '{rule}'; expected one of {sorted(self.RULES)}")
        self.rule = rule

    def find(self, gdf: gpd.GeoDataFrame, id_field: str = ID_FIELD) -> NeighborGraph:
        if id_field not in gdf.columns:
            raise ValueError(f"Identifier column '{id_field}' not in dataframe")
        if gdf.empty:
            raise ValueError("Cannot build a neighbor graph from an empty layer")

        frame = gdf.reset_index(drop=True)
        info(f"Finding {self.rule} contiguity among {len(frame)} units...")
        g = Graph.build_contiguity(frame, rook=(self.rule == "rook"), strict=True)

        # the RangeIndex keys the graph by row position; isolates carry no neighbors
        neighbors = tuple(
            tuple(sorted(int(j) for j in g.neighbors.get(pos, ()) if int(j) != pos))
            for pos in range(len(frame))
        )
        graph = NeighborGraph(ids=tuple(frame[id_field]), neighbors=neighbors)
        info(f"{self.rule} graph: mean {graph.cardinalities.mean():.2f} neighbors, {len(graph.islands)} islands")
        return graph

##################### SECTION 3 #####################
# Weights matrix
#####################################################
WEIGHT_STYLES = {
    "B": "binary",
    "R": "row-standardized",
    "C": "globally standardized",
}

@dataclass(frozen=True, eq=False)
class SpatialWeights:
    """Sparse spatial weights aligned to `ids`. Treat `matrix` as read-only."""
    ids: tuple
    matrix: sparse.csr_matrix
    style: str
    zero_policy: bool

    @property
    def n(self) -> int:
        return self.matrix.shape[0]

    @property
    def row_sums(self) -> np.ndarray:
        return np.asarray(self.matrix.sum(axis=1)).ravel()

    @property
    def col_sums(self) -> np.ndarray:
        return np.asarray(self.matrix.sum(axis=0)).ravel()

    @property
    def cardinalities(self) -> np.ndarray:
        return np.diff(self.matrix.indptr)

    @property
    def s0(self) -> float:
        return float(self.matrix.sum())

    @property
    def s1(self) -> float:
        sym = self.matrix + self.matrix.T
        return float(sym.multiply(sym).sum() / 2.0)

    @property
    def s2(self) -> float:
        return float(((self.row_sums + self.col_sums) ** 2).sum())

    @property
    def islands(self) -> list:
        return [key for key, card in zip(self.ids, self.cardinalities) if card == 0]

    def lag(self, values) -> np.ndarray:
        """Spatial lag: weighted sum of each unit's neighbors' values."""
        values = np.asarray(values, dtype=float)
        if values.shape != (self.n,):
            raise ValueError(f"Expected {self.n} values, got shape {values.shape}")
        return self.matrix @ values

    def to_dense(self) -> np.ndarray:
        return self.matrix.toarray()

def build_weights(graph: NeighborGraph, style: str = "R", zero_policy: bool = False) -> SpatialWeights:
    """
    Turn a NeighborGraph into a sparse weights matrix.

    Parameters:
        style       : 'R' row-standardized (rows sum to 1), 'B' binary,
                      'C' globally standardized (all weights sum to n)
        zero_policy : False -> units without neighbors raise ConfigurationError;
                      True  -> their rows stay all-zero

    Returns:
        SpatialWeights
    """
    style = style.upper()
    if style not in WEIGHT_STYLES:
        raise ConfigurationError(f"Unknown weights style '{style}'; expected one of {sorted(WEIGHT_STYLES)}")

    islands = graph.islands
    if islands:
        if not zero_policy:
            raise ConfigurationError(
                f"{len(islands)} units have no neighbors {islands[:5]}; "
                "set zero_policy=True to give them zero weight"
            )
        warn(f"zero_policy: {len(islands)} isolated units get zero weight {islands[:5]}")

    cards = graph.cardinalities
    rows = np.repeat(np.arange(graph.n), cards)
    cols = np.array([j for nbrs in graph.neighbors for j in nbrs], dtype=int)

    if style == "B":
        data = np.ones(len(cols))
    elif style == "R":
        data = 1.0 / cards[rows]
    else:
        data = np.full(len(cols), graph.n / len(cols)) if len(cols) else np.ones(0)

    matrix = sparse.csr_matrix((data, (rows, cols)), shape=(graph.n, graph.n))
    return SpatialWeights(ids=graph.ids, matrix=matrix, style=style, zero_policy=zero_policy)

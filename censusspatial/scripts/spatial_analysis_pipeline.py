# censusspatial/scripts/spatial_analysis_pipeline.py
"""
Unified pipeline for spatial autocorrelation analysis of tract-level unemployment.

load -> join & derive -> contiguity weights -> Moran's I / General G / Local Moran's I
-> classification -> tables and maps
"""
import pandas as pd
import matplotlib.pyplot as plt
import geopandas as gpd
from enum import Enum
from pathlib import Path
from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

from censusspatial.utils import Logger, info, warn, error, success, process_step, timestamped_name
from censusspatial.directories import LOGS_DIR, RAW_DIR, FIGS_DIR, MAPS_DIR, get_run_output_dir
from censusspatial.config import (
    ACS_VARIABLES, ID_FIELD, NUMERATOR_FIELD, DENOMINATOR_FIELD, VALUE_FIELD, ANALYSIS_EPSG,
    LOCAL_I_FIELD, LOCAL_Z_FIELD, LOCAL_P_FIELD, SPATIAL_LAG_FIELD, LABEL_FIELD, QUADRANT_FIELD,
    N_NEIGHBORS_FIELD, LABEL_COLORS, QUADRANT_COLORS, LABELS,
)
from censusspatial.gis_utils import read_polygon_layer, read_attribute_table, ensure_crs, select_columns, write_gpkg_layer
from censusspatial.engineer_tracts import join_attributes, percent_field, drop_missing, summarize_field
from censusspatial.weights import (
    ConfigurationError, ContiguityFinder, NeighborFinder, NeighborGraph, SpatialWeights, WEIGHT_STYLES, build_weights,
)
from censusspatial.autocorrelation import (
    Alternative, Assumption, GlobalStatistic, LocalStatistic, moran_global, local_moran, lisa_quadrant,
)
from censusspatial.getis_ord import general_g
from censusspatial.classify import classify_local
from censusspatial.mapping import Renderer
from censusspatial.scripts.eda.plots import plot_histogram, plot_moran_scatter

GLOBAL_ASSUMPTIONS = (Assumption.NORMALITY, Assumption.RANDOMIZATION)
LOCAL_ASSUMPTIONS = (Assumption.CONDITIONAL, Assumption.RANDOMIZATION)

class AnalysisType(Enum):
    MORANS_I = "morans_i"
    GENERAL_G = "general_g"
    LOCAL_MORAN = "local_moran"

@dataclass(frozen=True)
class NeighborhoodSetting:
    """Contiguity rule used to define neighbors."""
    type: str = "QUEEN"

    def get_suffix(self) -> str:
        """Generate suffix for output naming."""
        return self.type.lower()

    def finder(self) -> NeighborFinder:
        return ContiguityFinder(self.type.lower())

@dataclass(frozen=True)
class AnalysisConfig:
    """Configuration for one analysis run."""
    geometry_path: Optional[Path] = None
    table_path: Optional[Path] = None
    geometry_layer: Optional[str] = None
    id_field: str = ID_FIELD
    numerator_field: str = NUMERATOR_FIELD
    denominator_field: str = DENOMINATOR_FIELD
    value_field: str = VALUE_FIELD
    column_renames: Dict[str, str] = field(default_factory=lambda: dict(ACS_VARIABLES))
    neighborhood_setting: NeighborhoodSetting = field(default_factory=NeighborhoodSetting)
    weights_style: str = "R"
    g_weights_style: str = "B"
    zero_policy: bool = False
    alternative: str = "greater"
    assumption: str = "randomization"
    local_assumption: str = "conditional"
    strict_join: bool = True
    epsg: int = ANALYSIS_EPSG
    analyses: Tuple[AnalysisType, ...] = (AnalysisType.MORANS_I, AnalysisType.GENERAL_G, AnalysisType.LOCAL_MORAN)
    output_tag: Optional[str] = None
    save_outputs: bool = True

    def __post_init__(self):
        for style in (self.weights_style, self.g_weights_style):
            if style.upper() not in WEIGHT_STYLES:
                raise ConfigurationError(f"Unknown weights style '{style}'")
        # raise early on typos rather than after the weights are built
        Alternative(self.alternative)
        if Assumption(self.assumption) not in GLOBAL_ASSUMPTIONS:
            raise ConfigurationError(
                f"Global assumption must be one of {[a.value for a in GLOBAL_ASSUMPTIONS]}, got '{self.assumption}'"
            )
        if Assumption(self.local_assumption) not in LOCAL_ASSUMPTIONS:
            raise ConfigurationError(
                f"Local assumption must be one of {[a.value for a in LOCAL_ASSUMPTIONS]}, got '{self.local_assumption}'"
            )
        ContiguityFinder(self.neighborhood_setting.type)
        if self.output_tag is None:
            tag = f"{self.value_field}_{self.neighborhood_setting.get_suffix()}_{self.weights_style.lower()}"
            object.__setattr__(self, "output_tag", tag)

@dataclass(frozen=True, eq=False)
class AnalysisContext:
    """State handed from stage to stage; each stage returns a new context."""
    config: AnalysisConfig
    units: gpd.GeoDataFrame
    graph: Optional[NeighborGraph] = None
    weights: Optional[SpatialWeights] = None
    g_weights: Optional[SpatialWeights] = None
    global_stats: Tuple[GlobalStatistic, ...] = ()
    local_stats: Tuple[LocalStatistic, ...] = ()
    results: Optional[gpd.GeoDataFrame] = None
    outputs: Dict[str, Path] = field(default_factory=dict)

    @property
    def values(self):
        return self.units[self.config.value_field].to_numpy(dtype=float)

    def global_stat(self, name: str) -> Optional[GlobalStatistic]:
        return next((s for s in self.global_stats if s.name == name), None)

##################### STAGE 1 #####################
# Load
####################################################
def load_inputs(config: AnalysisConfig) -> Tuple[gpd.GeoDataFrame, pd.DataFrame]:
    """Read the polygon layer and the attribute table named in the config."""
    if config.geometry_path is None or config.table_path is None:
        raise ValueError("AnalysisConfig needs geometry_path and table_path to load inputs")
    process_step("Loading inputs")
    geometry_gdf = read_polygon_layer(config.geometry_path, layer=config.geometry_layer, id_field=config.id_field)
    attribute_df = read_attribute_table(config.table_path, id_field=config.id_field, rename=config.column_renames)
    return geometry_gdf, attribute_df

##################### STAGE 2 #####################
# Join & derive
####################################################
def join_and_derive(
    config: AnalysisConfig,
    geometry_gdf: gpd.GeoDataFrame,
    attribute_df: pd.DataFrame,
) -> AnalysisContext:
    process_step("Joining attributes and deriving metric")
    units = join_attributes(
        geometry_gdf,
        attribute_df,
        id_field=config.id_field,
        fields=[config.numerator_field, config.denominator_field],
        strict=config.strict_join,
    )
    units = ensure_crs(units, epsg=config.epsg)
    units = percent_field(units, config.numerator_field, config.denominator_field, config.value_field)
    units = drop_missing(units, config.value_field, config.id_field)

    summary = summarize_field(units, config.value_field)
    info(f"{config.value_field}: n={summary['n']:.0f} mean={summary['mean']:.2f} "
         f"median={summary['median']:.2f} min={summary['min']:.2f} max={summary['max']:.2f}")
    return AnalysisContext(config=config, units=units)

##################### STAGE 3 #####################
# Spatial weights
####################################################
def build_spatial_weights(ctx: AnalysisContext, finder: Optional[NeighborFinder] = None) -> AnalysisContext:
    config = ctx.config
    finder = finder or config.neighborhood_setting.finder()
    process_step(f"Building {config.neighborhood_setting.get_suffix()} weights ({config.weights_style})")

    graph = finder.find(ctx.units, id_field=config.id_field)
    weights = build_weights(graph, style=config.weights_style, zero_policy=config.zero_policy)
    if config.g_weights_style.upper() == weights.style:
        g_weights = weights
    else:
        g_weights = build_weights(graph, style=config.g_weights_style, zero_policy=config.zero_policy)
    return replace(ctx, graph=graph, weights=weights, g_weights=g_weights)

##################### STAGE 4 #####################
# Statistics
####################################################
def compute_statistics(ctx: AnalysisContext) -> AnalysisContext:
    if ctx.weights is None:
        raise ValueError("compute_statistics needs a context with weights; run build_spatial_weights first")
    config = ctx.config
    values = ctx.values
    global_stats = []
    local_stats: Tuple[LocalStatistic, ...] = ()

    if AnalysisType.MORANS_I in config.analyses:
        info(f"Running Global Moran's I for {config.value_field}...")
        moran = moran_global(values, ctx.weights, alternative=config.alternative, assumption=config.assumption)
        success(f"Moran's I = {moran.index:.4f} (E = {moran.expected:.4f}, z = {moran.z_score:.3f}, p = {moran.p_value:.4g})")
        global_stats.append(moran)

    if AnalysisType.GENERAL_G in config.analyses:
        info(f"Running Getis-Ord General G for {config.value_field}...")
        g = general_g(values, ctx.g_weights, alternative=config.alternative)
        success(f"General G = {g.index:.6f} (E = {g.expected:.6f}, z = {g.z_score:.3f}, p = {g.p_value:.4g})")
        global_stats.append(g)

    if AnalysisType.LOCAL_MORAN in config.analyses:
        info(f"Running Local Moran's I ({config.local_assumption}) for {len(values)} units...")
        local_stats = tuple(local_moran(values, ctx.weights, alternative=config.alternative,
                                        assumption=config.local_assumption))

    return replace(ctx, global_stats=tuple(global_stats), local_stats=local_stats)

##################### STAGE 5 #####################
# Classification, tables, maps
####################################################
def classify_units(ctx: AnalysisContext) -> AnalysisContext:
    """Attach local statistics, labels and quadrants to the units as the results table."""
    config = ctx.config
    results = select_columns(ctx.units, [config.id_field, config.value_field, ctx.units.geometry.name]).copy()
    results[N_NEIGHBORS_FIELD] = ctx.weights.cardinalities

    if ctx.local_stats:
        results[LOCAL_I_FIELD] = [s.index for s in ctx.local_stats]
        results[LOCAL_Z_FIELD] = [s.z_score for s in ctx.local_stats]
        results[LOCAL_P_FIELD] = [s.p_value for s in ctx.local_stats]
        results[SPATIAL_LAG_FIELD] = ctx.weights.lag(ctx.values)
        results[LABEL_FIELD] = classify_local(ctx.local_stats)
        results[QUADRANT_FIELD] = lisa_quadrant(ctx.values, ctx.weights)

        counts = results[LABEL_FIELD].value_counts()
        for label in LABELS:
            info(f"  {label}: {counts.get(label, 0)}")

    return replace(ctx, results=results)

def global_stats_frame(ctx: AnalysisContext) -> pd.DataFrame:
    rows = [
        {
            "value_field": ctx.config.value_field,
            "neighborhood_setting": ctx.config.neighborhood_setting.get_suffix(),
            "weights_style": ctx.config.g_weights_style if s.name == AnalysisType.GENERAL_G.value else ctx.config.weights_style,
            **s.to_dict(),
        }
        for s in ctx.global_stats
    ]
    return pd.DataFrame(rows)

def render_results(ctx: AnalysisContext, renderer: Renderer, maps_dir: Path = MAPS_DIR,
                   figs_dir: Path = FIGS_DIR, suffix: str = ".html") -> AnalysisContext:
    """Hand the results table to `renderer` and draw the Moran scatterplot."""
    if ctx.results is None:
        raise ValueError("render_results needs classified results; run classify_units first")
    config = ctx.config
    tag = config.output_tag
    outputs = dict(ctx.outputs)
    process_step(f"Rendering maps for {tag}")

    outputs["value_map"] = renderer.render_values(
        ctx.results, config.value_field, f"{config.value_field} by tract", maps_dir / f"{tag}_values{suffix}"
    )
    if LABEL_FIELD in ctx.results.columns:
        outputs["lisa_map"] = renderer.render_categories(
            ctx.results, LABEL_FIELD, LABEL_COLORS, f"Local Moran's I clusters and outliers ({tag})",
            maps_dir / f"{tag}_lisa{suffix}"
        )
        outputs["quadrant_map"] = renderer.render_categories(
            ctx.results, QUADRANT_FIELD, QUADRANT_COLORS, f"Moran scatterplot quadrants ({tag})",
            maps_dir / f"{tag}_quadrants{suffix}"
        )

    hist_path = figs_dir / f"{tag}_histogram.png"
    fig = plot_histogram(ctx.results, config.value_field, save_path=hist_path)
    plt.close(fig)
    outputs["value_histogram"] = hist_path

    moran = ctx.global_stat(AnalysisType.MORANS_I.value)
    if moran is not None:
        scatter_path = figs_dir / f"{tag}_moran_scatter.png"
        labels = ctx.results[LABEL_FIELD].tolist() if LABEL_FIELD in ctx.results.columns else None
        fig = plot_moran_scatter(ctx.values, ctx.weights, morans_i=moran.index, labels=labels,
                                 colors=LABEL_COLORS, save_path=scatter_path)
        plt.close(fig)
        outputs["moran_scatter"] = scatter_path

    return replace(ctx, outputs=outputs)

def save_results(ctx: AnalysisContext, output_dir: Optional[Path] = None) -> AnalysisContext:
    """Write the global statistics (CSV), results table (CSV) and results layer (GeoPackage)."""
    output_dir = output_dir or get_run_output_dir(ctx.config.output_tag, create=True)
    outputs = dict(ctx.outputs)

    stats_df = global_stats_frame(ctx)
    if not stats_df.empty:
        stats_path = output_dir / timestamped_name(f"global_stats_{ctx.config.value_field}", ".csv")
        stats_df.to_csv(stats_path, index=False)
        success(f"Saved global statistics to {stats_path}")
        outputs["global_stats"] = stats_path

    if ctx.results is not None:
        table_path = output_dir / timestamped_name(f"local_results_{ctx.config.value_field}", ".csv")
        ctx.results.drop(columns=ctx.results.geometry.name).to_csv(table_path, index=False)
        success(f"Saved results table to {table_path}")
        outputs["results_table"] = table_path

        gpkg_path = write_gpkg_layer(ctx.results, f"{ctx.config.output_tag}.gpkg", output_dir, layer="results")
        if gpkg_path is not None:
            outputs["results_layer"] = gpkg_path

    return replace(ctx, outputs=outputs)

def run_pipeline(
    config: AnalysisConfig,
    renderer: Optional[Renderer] = None,
    finder: Optional[NeighborFinder] = None,
    geometry_gdf: Optional[gpd.GeoDataFrame] = None,
    attribute_df: Optional[pd.DataFrame] = None,
) -> AnalysisContext:
    """
    Run every stage for one configuration and return the final context.

    In-memory `geometry_gdf` / `attribute_df` skip the loading stage.
    Maps are drawn only when a renderer is given.
    """
    if geometry_gdf is None or attribute_df is None:
        geometry_gdf, attribute_df = load_inputs(config)

    ctx = join_and_derive(config, geometry_gdf, attribute_df)
    ctx = build_spatial_weights(ctx, finder=finder)
    ctx = compute_statistics(ctx)
    ctx = classify_units(ctx)
    if renderer is not None:
        ctx = render_results(ctx, renderer)
    if config.save_outputs:
        ctx = save_results(ctx)

    success(f"Analysis {config.output_tag} completed for {len(ctx.units)} units")
    return ctx


if __name__ == "__main__":
    from censusspatial.mapping import FoliumRenderer

    # Initialize logger
    logger = Logger(LOGS_DIR / timestamped_name("spatial_analysis", ".log"))

    # TIGER/Line tracts and ACS 5-year B23025 for the same state, downloaded beforehand
    config = AnalysisConfig(
        geometry_path=RAW_DIR / "tl_2022_24_tract.shp",
        table_path=RAW_DIR / "acs5_2022_b23025_24_tract.csv",
        neighborhood_setting=NeighborhoodSetting("QUEEN"),
        weights_style="R",
        zero_policy=True,  # islands (e.g. offshore tracts) are expected in state-wide layers
    )
    renderer = FoliumRenderer(tooltip_fields=[ID_FIELD, VALUE_FIELD, LOCAL_I_FIELD, LOCAL_P_FIELD])

    try:
        ctx = run_pipeline(config, renderer=renderer)
    except (ValueError, FileNotFoundError) as e:
        error(f"Analysis failed: {e}")
        logger.close()
        raise

    print("\n", '-' * 80)
    stats_df = global_stats_frame(ctx)
    if stats_df.empty:
        warn("No global statistics computed.")
    else:
        info(f"Global statistics:\n{stats_df[['name', 'index', 'expected', 'z_score', 'p_value']].to_string(index=False)}")
    for name, path in ctx.outputs.items():
        info(f"  {name}: {path}")
    logger.close()

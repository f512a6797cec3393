"""
censusspatial/engineer_tracts.py
"""
import numpy as np
import geopandas as gpd
import pandas as pd

from censusspatial.config import ID_FIELD, NUMERATOR_FIELD, DENOMINATOR_FIELD, VALUE_FIELD
from censusspatial.utils import info, warn

def join_attributes(
    geometry_gdf: gpd.GeoDataFrame,
    attribute_df: pd.DataFrame,
    id_field: str = ID_FIELD,
    fields: list[str] | None = None,
    strict: bool = True,
) -> gpd.GeoDataFrame:
    """
    One-to-one join of an attribute table onto polygon geometries.

    Parameters:
        geometry_gdf : polygons keyed by `id_field`
        attribute_df : table keyed by `id_field`
        fields       : attribute columns to carry over (default: all)
        strict       : raise on any identifier present on only one side;
                       otherwise drop unmatched rows with a warning

    Returns:
        GeoDataFrame in the geometry layer's row order, index reset.
    """
    for label, frame in (("geometry", geometry_gdf), ("attribute", attribute_df)):
        if id_field not in frame.columns:
            raise ValueError(f"{label} data has no identifier column '{id_field}'")
        dupes = frame[id_field][frame[id_field].duplicated()].unique()
        if len(dupes):
            raise ValueError(f"Duplicate identifiers in {label} data: {list(dupes[:10])}")

    if fields is not None:
        missing = [f for f in fields if f not in attribute_df.columns]
        if missing:
            raise ValueError(f"Attribute table is missing fields: {missing}")
        attribute_df = attribute_df[[id_field] + fields]

    overlap = [c for c in attribute_df.columns if c in geometry_gdf.columns and c != id_field]
    if overlap:
        warn(f"Attribute columns shadow geometry columns and will replace them: {overlap}")
        geometry_gdf = geometry_gdf.drop(columns=overlap)

    merged = geometry_gdf.merge(
        attribute_df,
        on=id_field,
        how="left",
        validate="one_to_one",
        indicator=True,
    )
    unknown = attribute_df.loc[~attribute_df[id_field].isin(geometry_gdf[id_field]), id_field].tolist()
    unmatched = merged.loc[merged["_merge"] == "left_only", id_field].tolist()

    if unknown or unmatched:
        msg = (
            f"Join on '{id_field}': {len(unknown)} attribute ids without geometry "
            f"{unknown[:5]}, {len(unmatched)} geometries without attributes {unmatched[:5]}"
        )
        if strict:
            raise ValueError(msg)
        warn(msg + " - dropping unmatched rows")

    joined = merged[merged["_merge"] == "both"].drop(columns="_merge").reset_index(drop=True)
    info(f"Joined {len(joined)} units on '{id_field}'")
    return gpd.GeoDataFrame(joined, geometry=geometry_gdf.geometry.name, crs=geometry_gdf.crs)

def percent_field(
    gdf: gpd.GeoDataFrame,
    numerator: str = NUMERATOR_FIELD,
    denominator: str = DENOMINATOR_FIELD,
    out_field: str = VALUE_FIELD,
) -> gpd.GeoDataFrame:
    """Derive `out_field` = 100 * numerator / denominator. Zero denominators give NaN."""
    for col in (numerator, denominator):
        if col not in gdf.columns:
            raise ValueError(f"Field '{col}' not in dataframe")

    gdf = gdf.copy()
    num = pd.to_numeric(gdf[numerator], errors="coerce")
    den = pd.to_numeric(gdf[denominator], errors="coerce").replace(0, np.nan)

    if (num < 0).any() or (den < 0).any():
        raise ValueError(f"Negative counts in '{numerator}' or '{denominator}'")

    gdf[out_field] = 100.0 * num / den
    return gdf

def drop_missing(gdf: gpd.GeoDataFrame, value_field: str = VALUE_FIELD, id_field: str = ID_FIELD) -> gpd.GeoDataFrame:
    """Drop units whose `value_field` is NaN or infinite, warning with their ids."""
    values = pd.to_numeric(gdf[value_field], errors="coerce")
    bad = ~np.isfinite(values.to_numpy(dtype=float))
    if bad.any():
        warn(f"Dropping {bad.sum()} units with missing '{value_field}': {gdf.loc[bad, id_field].tolist()[:10]}")
        gdf = gdf[~bad].reset_index(drop=True)
    return gdf

def summarize_field(gdf: gpd.GeoDataFrame, value_field: str = VALUE_FIELD) -> pd.Series:
    values = gdf[value_field].dropna()
    return pd.Series({
        "n": len(values),
        "mean": values.mean(),
        "median": values.median(),
        "std": values.std(),
        "min": values.min(),
        "max": values.max(),
        "zero": int((values == 0).sum()),
    }, name=value_field)

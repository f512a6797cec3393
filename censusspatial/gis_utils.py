# censusspatial/gis_utils.py
# Utility functions for GIS data handling

import pandas as pd
import geopandas as gpd
from pathlib import Path
from shapely.ops import transform

from .config import ID_FIELD, ID_WIDTH
from .utils import info, success, warn


##################### SECTION 1 #####################
# Validation + Path Logic
#####################################################
GIS_SUFFIXES = (".shp", ".gpkg", ".geojson", ".json", ".zip")

def is_valid_gis_file(name: str) -> bool:
    """Check if a filename is a valid gis-file name."""
    return name.lower().endswith(GIS_SUFFIXES)

def parse_gpkg_name(name: str) -> tuple[str, str | None]:
    """Split GPKG filename and layer name if in 'file.gpkg|layer' format."""
    if ".gpkg|" in name:
        path, layer = name.split("|", maxsplit=1)
        return path, layer or None
    return name, None

def drop_null_geometries(gdf: gpd.GeoDataFrame, label: str | None = None) -> gpd.GeoDataFrame:
    nulls = gdf.geometry.isnull().sum()
    if nulls > 0:
        warn(f"[{label or 'layer'}] Dropping {nulls} rows with null geometry")
        gdf = gdf[gdf.geometry.notnull()].copy()
    return gdf

def sanitize_geometry(gdf: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Force every geometry to 2D."""
    gdf = gdf.copy()
    gdf["geometry"] = gdf["geometry"].apply(strip_z)
    return gdf

def strip_z(geom):
    """Force geometry to 2D (drop Z coordinate)."""
    if geom is None:
        return None
    return transform(lambda x, y, *_: (x, y), geom)

def normalize_ids(ids: pd.Series, width: int = ID_WIDTH) -> pd.Series:
    """
    Return identifiers as fixed-width strings.
    Numeric codes read without dtype hints lose their leading zeros (06037... -> 6037...).
    """
    return ids.astype(str).str.strip().str.zfill(width)

##################### SECTION 2 #####################
# IO Functions
#####################################################
def read_gis_file(path: Path, layer: str | None = None) -> gpd.GeoDataFrame:
    if layer:
        return gpd.read_file(path, layer=layer)
    return gpd.read_file(path)

def read_polygon_layer(
    path: Path | str,
    layer: str | None = None,
    id_field: str = ID_FIELD,
    id_width: int = ID_WIDTH,
) -> gpd.GeoDataFrame:
    """
    Read a polygon layer (tract shapefile, GeoPackage layer, GeoJSON) keyed by `id_field`.

    Raises FileNotFoundError when the file is missing, ValueError on an unsupported
    file type or a missing identifier column.
    """
    path_str, embedded_layer = parse_gpkg_name(str(path))
    path = Path(path_str)
    layer = layer or embedded_layer
    if not is_valid_gis_file(path.name):
        raise ValueError(f"Unsupported GIS file type: {path.name}")
    if not path.exists():
        raise FileNotFoundError(f"Polygon layer not found: {path}")

    info(f"Reading {path} layer '{layer}'")
    gdf = read_gis_file(path, layer=layer)
    if id_field not in gdf.columns:
        raise ValueError(f"Identifier column '{id_field}' not in {path.name}; found {gdf.columns.tolist()}")

    gdf[id_field] = normalize_ids(gdf[id_field], id_width)
    gdf = drop_null_geometries(gdf, label=path.stem)
    info(f"Read {len(gdf)} polygons from {path.name}")
    return gdf

def read_attribute_table(
    path: Path | str,
    id_field: str = ID_FIELD,
    id_width: int = ID_WIDTH,
    rename: dict[str, str] | None = None,
) -> pd.DataFrame:
    """
    Read a CSV attribute table keyed by `id_field`.

    `rename` maps raw column names (e.g. ACS variable codes) to friendly names.
    Every renamed column is coerced to numeric.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Attribute table not found: {path}")

    info(f"Reading attribute table {path}")
    df = pd.read_csv(path, dtype={id_field: str})
    if rename:
        df = df.rename(columns=rename)
        for col in rename.values():
            if col in df.columns:
                df[col] = pd.to_numeric(df[col], errors="coerce")
    if id_field not in df.columns:
        raise ValueError(f"Identifier column '{id_field}' not in {path.name}; found {df.columns.tolist()}")

    df[id_field] = normalize_ids(df[id_field], id_width)
    info(f"Read {len(df)} attribute rows from {path.name}")
    return df

def write_gpkg_layer(
    gdf: gpd.GeoDataFrame,
    name: str,
    directory: Path,
    drop_nulls: bool = True,
    layer: str = "layer",
) -> Path | None:
    """
    Write GeoDataFrame to GeoPackage.
    Each layer (e.g. 'tracts', 'lisa') is written into the same .gpkg file per run.
    """
    output_path = directory / name
    ext = output_path.suffix.lower()

    if ext != ".gpkg":
        warn(f"[{name}] Only .gpkg is supported")
        return None

    if gdf is None or gdf.empty:
        warn(f"[{name}] Skipped - GeoDataFrame is None or empty")
        return None

    gdf = sanitize_geometry(gdf)

    if drop_nulls:
        gdf = drop_null_geometries(gdf, label=layer)

    gdf.to_file(output_path, layer=layer, driver="GPKG")
    success(f"Wrote {len(gdf)} rows to layer '{layer}' in {output_path.name}")
    return output_path

##################### SECTION 3 #####################
# Data Cleaning + Processing Functions
#####################################################
def ensure_crs(gdf: gpd.GeoDataFrame, epsg: int = 5070) -> gpd.GeoDataFrame:
    """
    Ensure GeoDataFrame has a CRS. Set or reproject to specified EPSG if needed.
    EPSG 5070 = NAD83 / Conus Albers, an equal-area projection for US tracts.
    """
    if gdf.crs is None:
        warn(f"CRS undefined - assigning EPSG:{epsg}")
        gdf = gdf.set_crs(epsg=epsg)
    elif gdf.crs.to_epsg() != epsg:
        info(f"Reprojecting from {gdf.crs} to EPSG:{epsg}")
        gdf = gdf.to_crs(epsg=epsg)
    return gdf

def select_columns(gdf: gpd.GeoDataFrame, columns: list[str]) -> gpd.GeoDataFrame:
    """Keep only specified columns, warn if any are missing."""
    missing = [col for col in columns if col not in gdf.columns]
    keep = [col for col in columns if col in gdf.columns]
    if missing:
        warn(f"Missing columns: {missing}")
    return gdf[keep]

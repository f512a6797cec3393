# censusspatial/mapping.py
# Choropleth renderers for analysis results

from pathlib import Path
from typing import Protocol

import folium
import matplotlib
import geopandas as gpd
import matplotlib.pyplot as plt
from matplotlib import colors as mcolors
from matplotlib.patches import Patch

from censusspatial.config import VALUE_CMAP, WEB_EPSG
from censusspatial.utils import success

class Renderer(Protocol):
    """Draws a results layer. Implementations return the written file path."""

    def render_values(self, gdf: gpd.GeoDataFrame, column: str, title: str, out_path: Path) -> Path:
        ...

    def render_categories(
        self, gdf: gpd.GeoDataFrame, column: str, colors: dict[str, str], title: str, out_path: Path
    ) -> Path:
        ...

def value_colors(values, cmap: str = VALUE_CMAP) -> list[str]:
    """Hex color per value on a linear scale between the min and max. NaN -> light grey."""
    colormap = matplotlib.colormaps[cmap]
    finite = [v for v in values if v == v]
    vmin, vmax = (min(finite), max(finite)) if finite else (0.0, 1.0)
    norm = mcolors.Normalize(vmin=vmin, vmax=vmax if vmax > vmin else vmin + 1.0)
    return [mcolors.to_hex(colormap(norm(v))) if v == v else "#d9d9d9" for v in values]

def _prepare_path(out_path: Path | str) -> Path:
    out_path = Path(out_path)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    return out_path

##################### SECTION 1 #####################
# Interactive (folium)
#####################################################
class FoliumRenderer:
    """
    Interactive HTML choropleths.

    tooltip_fields: columns shown on hover in addition to the mapped column.
    """
    FILL_FIELD = "_fill"

    def __init__(self, tooltip_fields: list[str] | None = None, tiles: str = "cartodbpositron", fill_opacity: float = 0.7):
        self.tooltip_fields = tooltip_fields or []
        self.tiles = tiles
        self.fill_opacity = fill_opacity

    def _layer(self, gdf: gpd.GeoDataFrame, column: str, fills: list[str]) -> gpd.GeoDataFrame:
        keep = [c for c in dict.fromkeys(self.tooltip_fields + [column]) if c in gdf.columns]
        layer = gdf[keep + [gdf.geometry.name]].copy()
        layer[self.FILL_FIELD] = fills
        if layer.crs is not None and layer.crs.to_epsg() != WEB_EPSG:
            layer = layer.to_crs(epsg=WEB_EPSG)
        return layer

    def _map(self, layer: gpd.GeoDataFrame, title: str) -> folium.Map:
        minx, miny, maxx, maxy = layer.total_bounds
        m = folium.Map(location=[(miny + maxy) / 2, (minx + maxx) / 2], tiles=self.tiles, control_scale=True)
        m.fit_bounds([[miny, minx], [maxy, maxx]])

        title_html = f'<h3 align="center" style="font-size:16px"><b>{title}</b></h3>'
        m.get_root().html.add_child(folium.Element(title_html))

        fill_field, opacity = self.FILL_FIELD, self.fill_opacity
        tooltip_fields = [c for c in layer.columns if c not in (fill_field, layer.geometry.name)]
        folium.GeoJson(
            layer,
            name=title,
            style_function=lambda feature: {
                "fillColor": feature["properties"][fill_field],
                "color": "black",
                "weight": 0.3,
                "fillOpacity": opacity,
            },
            tooltip=folium.GeoJsonTooltip(fields=tooltip_fields, localize=True, sticky=False),
        ).add_to(m)
        folium.LayerControl(collapsed=True).add_to(m)
        return m

    def render_values(self, gdf: gpd.GeoDataFrame, column: str, title: str, out_path: Path) -> Path:
        layer = self._layer(gdf, column, value_colors(gdf[column].tolist()))
        m = self._map(layer, title)
        out_path = _prepare_path(out_path)
        m.save(str(out_path))
        success(f"Saved interactive map to {out_path}")
        return out_path

    def render_categories(
        self, gdf: gpd.GeoDataFrame, column: str, colors: dict[str, str], title: str, out_path: Path
    ) -> Path:
        fills = [colors.get(label, "#d9d9d9") for label in gdf[column]]
        layer = self._layer(gdf, column, fills)
        m = self._map(layer, title)

        items = "".join(
            f'<div><span style="background:{color};width:12px;height:12px;display:inline-block;'
            f'margin-right:6px;border:1px solid #555"></span>{label}</div>'
            for label, color in colors.items()
        )
        legend_html = (
            '<div style="position:fixed;bottom:30px;left:30px;z-index:9999;background:white;'
            f'padding:8px;border:1px solid #999;font-size:12px"><b>{column}</b>{items}</div>'
        )
        m.get_root().html.add_child(folium.Element(legend_html))

        out_path = _prepare_path(out_path)
        m.save(str(out_path))
        success(f"Saved interactive map to {out_path}")
        return out_path

##################### SECTION 2 #####################
# Static (matplotlib)
#####################################################
class MatplotlibRenderer:
    def __init__(self, figsize: tuple[int, int] = (10, 10), dpi: int = 200):
        self.figsize = figsize
        self.dpi = dpi

    def _save(self, fig, ax, title: str, out_path: Path) -> Path:
        ax.set_title(title, fontsize=14)
        ax.axis("off")
        out_path = _prepare_path(out_path)
        fig.savefig(out_path, dpi=self.dpi, bbox_inches="tight")
        plt.close(fig)
        success(f"Saved map to {out_path}")
        return out_path

    def render_values(self, gdf: gpd.GeoDataFrame, column: str, title: str, out_path: Path) -> Path:
        fig, ax = plt.subplots(figsize=self.figsize)
        gdf.plot(
            column=column,
            ax=ax,
            cmap=VALUE_CMAP,
            legend=True,
            edgecolor="black",
            linewidth=0.2,
            missing_kwds={"color": "lightgrey", "label": "Missing"},
        )
        return self._save(fig, ax, title, out_path)

    def render_categories(
        self, gdf: gpd.GeoDataFrame, column: str, colors: dict[str, str], title: str, out_path: Path
    ) -> Path:
        fig, ax = plt.subplots(figsize=self.figsize)
        gdf.plot(color=[colors.get(label, "#d9d9d9") for label in gdf[column]], ax=ax, edgecolor="black", linewidth=0.2)
        present = set(gdf[column])
        handles = [Patch(facecolor=color, edgecolor="black", label=label) for label, color in colors.items() if label in present]
        ax.legend(handles=handles, title=column, loc="lower left")
        return self._save(fig, ax, title, out_path)

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from pathlib import Path
from typing import Optional, Tuple, Union

from censusspatial.weights import SpatialWeights

def plot_histogram(
    df: pd.DataFrame,
    value_field: str,
    bins: int = 30,
    title: Optional[str] = None,
    figsize: Tuple[int, int] = (8, 5),
    save_path: Optional[Union[str, Path]] = None,
    ax: Optional[plt.Axes] = None,
):
    """Histogram of a field with its median marked."""
    data = df[value_field].dropna()
    if data.empty:
        raise ValueError(f"plot_histogram received no values for {value_field}")

    created_fig = False
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
        created_fig = True
    else:
        fig = ax.figure

    ax.hist(data, bins=bins, color='steelblue', edgecolor='black')
    median = np.median(data)
    ax.axvline(median, color='darkred', linestyle='--', linewidth=1)
    ax.text(median, ax.get_ylim()[1] * 0.9, f"{median:.2f}",
            rotation=90, va='top', ha='right', fontsize=8, color='darkred')
    ax.set_xlabel(value_field)
    ax.set_ylabel("Units")
    ax.set_title(title or f"{value_field} distribution")
    ax.grid(True, linestyle='--', alpha=0.5)

    if save_path:
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=150, bbox_inches="tight")
        print(f"[Saved] Histogram to: {save_path}")

    return fig if created_fig else None

def plot_moran_scatter(
    values,
    weights: SpatialWeights,
    morans_i: Optional[float] = None,
    labels: Optional[list[str]] = None,
    colors: Optional[dict[str, str]] = None,
    title: Optional[str] = None,
    xlabel: str = "Standardized value",
    figsize: Tuple[int, int] = (7, 7),
    save_path: Optional[Union[str, Path]] = None,
    ax: Optional[plt.Axes] = None,
):
    """
    Moran scatterplot: standardized value vs its spatial lag.

    With row-standardized weights the slope of the fitted line equals Moran's I.
    `labels` (one per unit) with `colors` color the points by classification.
    """
    x = np.asarray(values, dtype=float)
    std = x.std()
    if std == 0:
        raise ValueError("plot_moran_scatter received a constant vector")
    z = (x - x.mean()) / std
    lag = weights.lag(z)

    created_fig = False
    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
        created_fig = True
    else:
        fig = ax.figure

    if labels is not None and colors:
        point_colors = [colors.get(label, "grey") for label in labels]
    else:
        point_colors = "steelblue"
    ax.scatter(z, lag, c=point_colors, s=14, alpha=0.8, edgecolor="black", linewidth=0.2)

    slope, intercept = np.polyfit(z, lag, 1)
    grid = np.linspace(z.min(), z.max(), 50)
    ax.plot(grid, intercept + slope * grid, color="darkred", linewidth=1)
    ax.axhline(0, linewidth=1, linestyle="--", color="grey")
    ax.axvline(0, linewidth=1, linestyle="--", color="grey")

    ax.set_xlabel(xlabel)
    ax.set_ylabel("Spatial lag")
    if title is None and morans_i is not None:
        title = f"Moran scatterplot (Moran's I = {morans_i:.3f})"
    if title:
        ax.set_title(title)

    fig.tight_layout()

    if save_path:
        save_path = Path(save_path)
        save_path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(save_path, dpi=200, bbox_inches="tight")

    # return fig only if we created it
    return fig if created_fig else None

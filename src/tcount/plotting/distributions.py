"""
Class and Speed Distribution Plots (Functional Core)

Pure functions – no SQL, no file I/O, no side effects.
Input: ``tc_clacount`` / ``tc_specount`` rows for one count + header dict.
Output: plotly.graph_objects.Figure.

Package Location: src/tcount/plotting/distributions.py

Unclassified Bar:
    ``c15`` vehicles are also included in ``c2``.  The class plot shows
    ``c15`` as its own bar but labels it as included in Passenger Cars, so
    the bars are not read as adding up to the total.
"""

from __future__ import annotations

from typing import Any, Dict, List

import pandas as pd
import plotly.graph_objects as go

from ..analysis.counts import SpeedRange, VehicleClass

# One colour per direction, in the order directions first appear.
_DIRECTION_COLORS = ["#1f77b4", "#ff7f0e"]


def plot_class_distribution(df_class: pd.DataFrame, header: Dict[str, Any]) -> go.Figure:
    """
    Grouped bar chart of vehicles per FHWA class, one bar group per direction.

    Args:
        df_class: Rows with ``ctdir``, ``c1`` .. ``c13``, ``c15``, ``total``.
        header: ``tc_header`` row as a dict (``recordnum`` used in the title).

    Returns:
        Plotly figure.

    Raises:
        ValueError: If required columns are missing.
    """
    fields = [vc.field for vc in VehicleClass]
    _validate_columns(df_class, ["ctdir", "total"] + fields)

    labels = [
        f"{vc.value}: {vc.label}" if vc is not VehicleClass.UNCLASSIFIED
        else "15: Unclassified (also in class 2)"
        for vc in VehicleClass
    ]
    fig = _grouped_bars(df_class, fields, labels)
    fig.update_layout(
        title=_build_title(header, "Vehicles by Class"),
        xaxis=dict(title="FHWA vehicle class", tickangle=-35),
        yaxis=dict(title="Vehicles"),
    )
    return fig


def plot_speed_distribution(df_speed: pd.DataFrame, header: Dict[str, Any]) -> go.Figure:
    """
    Grouped bar chart of vehicles per speed range, one bar group per direction.

    A dashed line marks the posted speed limit when the header has one.

    Args:
        df_speed: Rows with ``ctdir``, ``s1`` .. ``s14``, ``total``.
        header: ``tc_header`` row as a dict.

    Returns:
        Plotly figure.

    Raises:
        ValueError: If required columns are missing.
    """
    fields = [sr.field for sr in SpeedRange]
    _validate_columns(df_speed, ["ctdir", "total"] + fields)

    labels = [sr.label for sr in SpeedRange]
    fig = _grouped_bars(df_speed, fields, labels)
    fig.update_layout(
        title=_build_title(header, "Vehicles by Speed (mph)"),
        xaxis=dict(title="Speed range (mph)"),
        yaxis=dict(title="Vehicles"),
    )

    limit = header.get("speed_limit")
    if limit is not None and not pd.isna(limit):
        # Limits fall on range boundaries; the line sits between the two bars.
        position = SpeedRange.from_speed(float(limit)).value - 0.5
        fig.add_vline(
            x=position,
            line_dash="dash",
            line_color="#d62728",
            annotation_text=f"Limit {int(limit)} mph",
        )
    return fig


# ---------------------------------------------------------------------------
# Private helpers
# ---------------------------------------------------------------------------

def _grouped_bars(df: pd.DataFrame, fields: List[str], labels: List[str]) -> go.Figure:
    """Sum *fields* per direction and draw one bar trace per direction."""
    fig = go.Figure()
    if df.empty:
        totals = pd.DataFrame(columns=fields)
    else:
        totals = df.groupby("ctdir", sort=False)[fields + ["total"]].sum()

    for i, (direction, row) in enumerate(totals.iterrows()):
        fig.add_trace(go.Bar(
            x=labels,
            y=[int(row[f]) for f in fields],
            name=f"{str(direction).capitalize()} ({int(row['total'])} total)",
            marker_color=_DIRECTION_COLORS[i % len(_DIRECTION_COLORS)],
        ))

    fig.update_layout(
        barmode="group",
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
        hovermode="x unified",
        template="plotly_white",
    )
    return fig


def _validate_columns(df: pd.DataFrame, required: list[str]) -> None:
    """
    Raise ValueError if any required columns are absent.

    Args:
        df: DataFrame to check.
        required: List of column names that must be present.

    Raises:
        ValueError: Listing the missing columns.
    """
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"count rows are missing required columns: {missing}")


def _build_title(header: Dict[str, Any], suffix: str) -> str:
    """Title from recordnum and counter, e.g. ``'Count 166905 (counter 40972) – ...'``."""
    recordnum = header.get("recordnum", "?")
    counter = header.get("counter_id")
    location = f"Count {recordnum}"
    if counter is not None and not pd.isna(counter):
        location += f" (counter {int(counter)})"
    return f"{location} – {suffix}"

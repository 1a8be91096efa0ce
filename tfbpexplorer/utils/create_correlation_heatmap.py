"""Heatmap figure for a correlation matrix payload."""

from __future__ import annotations

import plotly.graph_objects as go

from ..correlation.matrix import CorrelationMatrixPayload


def create_correlation_heatmap(
    payload: CorrelationMatrixPayload, title: str | None = None
) -> go.Figure:
    """
    Plot a correlation matrix with a fixed 0 to 1 color range.

    The color range does not follow ``payload["min"]``/``payload["max"]`` so that
    heatmaps of different sources are visually comparable. Cells below zero render
    at the low end of the scale.

    :param payload: Labels, matrix and extrema as returned by the correlation query.
    :param title: Optional figure title.
    :return: A Plotly heatmap; an empty figure with an annotation when there are no
        labels.

    """
    fig = go.Figure()
    if not payload["labels"]:
        fig.add_annotation(
            text="No correlation data available",
            showarrow=False,
            x=0.5,
            y=0.5,
            xref="paper",
            yref="paper",
        )
        fig.update_xaxes(visible=False)
        fig.update_yaxes(visible=False)
        return fig

    fig.add_trace(
        go.Heatmap(
            z=payload["matrix"],
            x=payload["labels"],
            y=payload["labels"],
            colorscale="Blues",
            zmin=0,
            zmax=1,
            colorbar=dict(title="Pearson r"),
            hovertemplate="%{y} vs %{x}<br>r = %{z:.3f}<extra></extra>",
        )
    )

    size = max(400, min(900, 40 * len(payload["labels"]) + 200))
    fig.update_layout(
        title={"text": title, "x": 0.5} if title else None,
        height=size,
        margin=dict(t=60 if title else 20, b=120, l=160, r=30),
        xaxis=dict(tickangle=-45),
        yaxis=dict(autorange="reversed"),
        plot_bgcolor="white",
    )
    return fig

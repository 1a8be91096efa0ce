import logging
from collections.abc import Collection, Mapping

import plotly.graph_objects as go

from ..rank_response.orchestrator import (
    RankResponseExpressionGroup,
    RankResponseReplicateTrace,
)
from .source_name_lookup import get_perturbation_source_label

logger = logging.getLogger("shiny")

# Global dictionary for responsiveness definitions by expression source
RESPONSIVENESS_DEFINITIONS = {
    "kemmeren_tfko": "p-value < 0.05",
    "mcisaac_oe": "|log2fc| > 0",
}


def _legend_rank(promotersetsig: str) -> int:
    # numeric promotersetsigs sort newest first, anything else after them
    try:
        return -int(promotersetsig)
    except ValueError:
        return 0


def add_traces_to_plot(
    fig: go.Figure, trace: RankResponseReplicateTrace, add_random: bool
) -> None:
    """
    Add one replicate curve to *fig*, plus the random line and its confidence band
    when *add_random* is set.

    Every replicate trace carries ``meta={"id": ..., "promotersetsig": ...}`` so that
    its visibility can later be toggled by :func:`apply_trace_selection`.

    """
    data = trace["data"]
    fig.add_trace(
        go.Scatter(
            x=data["x"],
            y=data["y"],
            mode="lines",
            name=f"{trace['binding_source_label']}; {trace['promotersetsig']}",
            legendrank=_legend_rank(trace["promotersetsig"]),
            customdata=data["pvalue"],
            hovertemplate=(
                "%{x} genes: %{y:.3f} responsive<br>p-value %{customdata:.2e}"
                "<extra></extra>"
            ),
            meta={"id": trace["id"], "promotersetsig": trace["promotersetsig"]},
        )
    )

    if not add_random:
        return

    fig.add_trace(
        go.Scatter(
            x=data["x"],
            y=data["random"],
            mode="lines",
            name="Random",
            line=dict(dash="dash", color="black"),
            legendrank=-(2**63),
        )
    )
    fig.add_trace(
        go.Scatter(
            x=data["x"],
            y=data["ci_lower"],
            mode="lines",
            line=dict(width=0),
            showlegend=False,
            hoverinfo="skip",
        )
    )
    # fill between the lower and upper bound
    fig.add_trace(
        go.Scatter(
            x=data["x"],
            y=data["ci_upper"],
            mode="lines",
            fill="tonexty",
            fillcolor="rgba(128, 128, 128, 0.3)",
            line=dict(width=0),
            showlegend=False,
            hoverinfo="skip",
        )
    )


def create_rank_response_replicate_plot(
    group: RankResponseExpressionGroup, max_rank: int = 150
) -> go.Figure:
    """
    Build the rank response figure for one expression experiment.

    :param group: One expression group from a regulator payload.
    :param max_rank: Upper bound of the x-axis.
    :return: A figure with one line per replicate, the random expectation and its
        95% confidence band.

    """
    fig = go.Figure()
    add_random = True
    for trace in group["traces"]:
        add_traces_to_plot(fig, trace, add_random)
        add_random = False

    expression_source = group["expression_source"]
    responsiveness_def = RESPONSIVENESS_DEFINITIONS.get(expression_source, "")
    time_suffix = (
        f", {group['expression_time']:g} min"
        if group["expression_time"] is not None
        else ""
    )
    title_text = f"Rank Response for Expression ID {group['expression_id']}{time_suffix}"
    if responsiveness_def:
        title_text += (
            "<br><span style='font-size:14px; color:gray;'>Responsiveness: "
            f"{responsiveness_def}</span>"
        )

    fig.update_layout(
        title={"text": title_text, "x": 0.5},
        yaxis_title="# Responsive / # Genes",
        xaxis_title="Number of Genes, Ranked by Binding Score",
        xaxis=dict(tick0=0, dtick=5, range=[0, max_rank]),
        yaxis=dict(tick0=0, dtick=0.1, range=[0, 1.0]),
        margin=dict(t=80, b=50, l=60, r=30),
    )
    return fig


def create_rank_response_figures(
    expression_groups: Mapping[str, list[RankResponseExpressionGroup]],
    max_rank: int = 150,
) -> dict[str, dict[str, go.Figure]]:
    """
    Build every figure for a regulator payload.

    :return: ``{expression_source: {expression_id: figure}}``, preserving the group
        order of *expression_groups*.

    """
    figures: dict[str, dict[str, go.Figure]] = {}
    for source, groups in expression_groups.items():
        figures[source] = {
            group["expression_id"]: create_rank_response_replicate_plot(group, max_rank)
            for group in groups
        }
        logger.debug(
            "Built %d rank response figures for %s",
            len(figures[source]),
            get_perturbation_source_label(source),
        )
    return figures


def apply_trace_selection(fig: go.Figure, selected_ids: Collection[str]) -> go.Figure:
    """
    Return a copy of *fig* showing only the replicate traces in *selected_ids*.

    Unselected replicates are set to ``"legendonly"`` so they can still be toggled
    from the legend. With no selection every replicate is visible. The random line
    and confidence band are never hidden.

    """
    highlighted = go.Figure(fig)
    for trace in highlighted.data:
        meta = trace.meta
        if not meta:
            continue
        if not selected_ids or str(meta["id"]) in selected_ids:
            trace.visible = True
        else:
            trace.visible = "legendonly"
    return highlighted

import plotly.graph_objects as go

from grid_builder import GridShape


def create_tide_plot(summary, tz=None):
    """Create a Plotly figure of the day's high and low tides"""
    fig = go.Figure()

    for label, events, color, symbol in (
        ("High tide", summary.high, "blue", "triangle-up"),
        ("Low tide", summary.low, "orange", "triangle-down"),
    ):
        if not events:
            continue
        fig.add_trace(go.Scatter(
            x=[e.time.astimezone(tz) for e in events],
            y=[e.height for e in events],
            mode='markers+text',
            name=label,
            text=[f"{e.height:.2f} m" for e in events],
            textposition="top center",
            marker=dict(size=12, color=color, symbol=symbol)
        ))

    # Join all extremes in time order to sketch the tide curve
    events = sorted(summary.high + summary.low, key=lambda e: e.time)
    if events:
        fig.add_trace(go.Scatter(
            x=[e.time.astimezone(tz) for e in events],
            y=[e.height for e in events],
            mode='lines',
            name='Tide',
            line=dict(color='lightblue', width=2, shape='spline'),
            hoverinfo='skip'
        ))

    fig.update_layout(
        title="Tide Extremes (next 24 h)",
        xaxis_title="Local time",
        yaxis_title="Height above MSL (m)",
        showlegend=True,
    )

    return fig


def create_grid_plot(grid):
    """Create a Plotly figure showing the boundary and generated grid"""
    fig = go.Figure()

    if grid.polygon:
        lats, lons = zip(*grid.polygon)
        fig.add_trace(go.Scatter(
            x=lons,
            y=lats,
            mode='lines',
            name='Boundary',
            line=dict(color='green', width=2),
            fill='toself',
            fillcolor='rgba(0, 200, 0, 0.2)'
        ))

    if grid.shape == GridShape.SQUARE:
        for i, cell in enumerate(grid.cells):
            lats, lons = zip(*cell.ring)
            fig.add_trace(go.Scatter(
                x=lons,
                y=lats,
                mode='lines',
                name='Cells',
                legendgroup='cells',
                showlegend=(i == 0),
                line=dict(color='red', width=1)
            ))
    elif grid.points:
        fig.add_trace(go.Scatter(
            x=[p.longitude for p in grid.points],
            y=[p.latitude for p in grid.points],
            mode='markers',
            name='Samples',
            marker=dict(size=6, color='darkgreen')
        ))

    fig.update_layout(
        title="Survey Grid",
        xaxis_title="Longitude",
        yaxis_title="Latitude",
        showlegend=True,
        yaxis_scaleanchor="x",
        yaxis_scaleratio=1,
    )

    return fig

"""Visualization of analysis sessions."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ._core import Gait, Lead, list_gaits

if TYPE_CHECKING:
    from ._core import SessionResult
    from .diagnostics import DiagnosticRecorder


def _import_mpl():
    try:
        import matplotlib
        matplotlib.use("Agg")
        import matplotlib.pyplot as plt
        return plt
    except ImportError:
        raise ImportError(
            "matplotlib is required for plotting. "
            "Install with: pip install equigait[viz]"
        )


# ── Colours ──────────────────────────────────────────────────────────
GAIT_COLORS = {
    Gait.STATIONARY: "#9e9e9e",
    Gait.WALK: "#4daf4a",
    Gait.TROT: "#377eb8",
    Gait.CANTER: "#ff7f00",
    Gait.GALLOP: "#e41a1c",
}
_LEFT_COLOR = "#2166ac"
_RIGHT_COLOR = "#b2182b"
_RHYTHM_COLOR = "#333333"
_SYMMETRY_COLOR = "#984ea3"
_CONFIDENCE_COLOR = "#a65628"


def plot_session(
    result: "SessionResult",
    ax=None,
    figsize=(14, 4),
    title: Optional[str] = None,
    show_scores: bool = True,
    diagnostics: Optional["DiagnosticRecorder"] = None,
):
    """Plot the gait timeline of a finished session.

    Each segment is drawn as a bar on its gait's row; reliable leads are
    marked with L/R above canter and gallop bars.  With *show_scores*,
    rhythm and symmetry scores (0-100) are drawn on a twin axis.

    Parameters
    ----------
    result : SessionResult
        Output of :meth:`GaitAnalyzer.stop_analyzing`.
    ax : matplotlib Axes, optional
        If provided, draw on this axes.
    figsize : tuple
        Figure size when creating a new figure.
    title : str, optional
        Plot title.  Defaults to "Gait timeline".
    show_scores : bool
        Overlay per-segment rhythm and symmetry scores.
    diagnostics : DiagnosticRecorder, optional
        When given, its classifier confidence trace is drawn (scaled to
        0-100) on the score axis.

    Returns
    -------
    matplotlib.figure.Figure
    """
    if result is None:
        raise ValueError("result is required")
    segments = getattr(result, "segments", None)
    if not segments:
        raise ValueError("result has no segments to plot")
    if any(s.end_time is None for s in segments):
        raise ValueError("all segments must be finalized before plotting")
    if diagnostics is not None and not hasattr(diagnostics, "entries"):
        raise ValueError("diagnostics must be a DiagnosticRecorder")

    plt = _import_mpl()

    if ax is None:
        fig, ax = plt.subplots(figsize=figsize)
    else:
        fig = ax.get_figure()

    rows = {name: i for i, name in enumerate(list_gaits())}
    for seg in segments:
        y = rows[seg.gait.value]
        ax.broken_barh(
            [(seg.start_time, max(seg.duration, 1e-3))], (y - 0.4, 0.8),
            facecolors=GAIT_COLORS[seg.gait], alpha=0.85,
        )
        if seg.gait.has_lead and seg.lead is not Lead.UNKNOWN:
            color = _LEFT_COLOR if seg.lead is Lead.LEFT else _RIGHT_COLOR
            ax.text(
                seg.start_time + seg.duration / 2.0, y + 0.45,
                "L" if seg.lead is Lead.LEFT else "R",
                ha="center", va="bottom", color=color, fontsize=9,
            )

    ax.set_yticks(list(rows.values()))
    ax.set_yticklabels([name.title() for name in rows])
    ax.set_ylim(-0.6, len(rows) - 0.4)
    ax.set_xlabel("Time (s)")
    ax.grid(axis="x", alpha=0.3)

    entries = diagnostics.entries if diagnostics is not None else []
    if show_scores or entries:
        ax2 = ax.twinx()
        mids = [s.start_time + s.duration / 2.0 for s in segments]
        if show_scores:
            ax2.plot(mids, [s.rhythm_score for s in segments], "o-", color=_RHYTHM_COLOR,
                     markersize=4, linewidth=1, label="Rhythm")
            ax2.plot(mids, [s.symmetry_score for s in segments], "s--", color=_SYMMETRY_COLOR,
                     markersize=4, linewidth=1, label="Symmetry")
        if entries:
            ax2.plot([e["timestamp"] for e in entries], [100.0 * e["confidence"] for e in entries],
                     ":", color=_CONFIDENCE_COLOR, linewidth=1, label="Confidence")
        ax2.set_ylim(0, 100)
        ax2.set_ylabel("Score")
        ax2.legend(loc="upper right", fontsize=8)

    ax.set_title(title or "Gait timeline")
    fig.tight_layout()
    return fig

"""
Live Pack Viewer
================

matplotlib window that animates the balancing simulation: three
cell outlines with an SOC fill, per-cell SOC and voltage labels,
the current phase, and a "Simulation Done" banner at the end.

Each animation frame ticks the simulator once and redraws from
the returned snapshot. A radio selector picks the case and the
reset button restarts it.

Run:
  python -m balancing_twin.main --mode viewer --case 2
"""

import os
import sys
from typing import Dict, List

# Ensure matplotlib/font caches are writable in restricted environments.
os.environ.setdefault("MPLCONFIGDIR", "/tmp/mplconfig")
os.environ.setdefault("XDG_CACHE_HOME", "/tmp")

import matplotlib
if sys.platform == "darwin":
    # Prefer native macOS backend, but allow fallback when unavailable.
    try:
        matplotlib.use("macosx")
    except Exception:
        pass
elif not os.environ.get("DISPLAY"):
    # Allow non-interactive environments (CI/headless) to import this module.
    matplotlib.use("Agg")
import matplotlib.pyplot as plt
import matplotlib.patches as mpatches
from matplotlib.animation import FuncAnimation
from matplotlib.widgets import Button, RadioButtons

from balancing_twin.config import (
    CANVAS_WIDTH, CANVAS_HEIGHT, CELL_MARGIN, CELL_WIDTH, CELL_HEIGHT,
    FRAME_INTERVAL_MS, PHASE_COLORS, FILL_COLOR, DONE_COLOR,
    SimulationCase,
)


# ---------------------------------------------------------------------------
# Render helpers
# ---------------------------------------------------------------------------

def cell_fill_fraction(soc: float) -> float:
    """Fraction of the outline to fill (capped at 100%)."""
    return min(soc, 1.0)


def format_soc(soc: float) -> str:
    return f"SOC: {soc * 100:.1f}%"


def format_voltage(voltage: float) -> str:
    return f"V: {voltage:.2f}V"


def cell_positions(n_cells: int) -> List[float]:
    """Left x of each cell outline, evenly spread between the margins."""
    if n_cells == 1:
        return [(CANVAS_WIDTH - CELL_WIDTH) / 2]
    gap = (CANVAS_WIDTH - 2 * CELL_MARGIN - n_cells * CELL_WIDTH) / (n_cells - 1)
    return [CELL_MARGIN + i * (CELL_WIDTH + gap) for i in range(n_cells)]


# ---------------------------------------------------------------------------
# Viewer class
# ---------------------------------------------------------------------------

class PackViewer:
    """Animated cell view driven by a BalancingSimulator."""

    def __init__(self, simulator, interval_ms: int = FRAME_INTERVAL_MS):
        self.simulator = simulator
        self.interval_ms = interval_ms
        self.selected_case = simulator.pack.case_id
        self.anim = None

        self._setup_figure(len(simulator.pack.cells))

    def _setup_figure(self, n_cells: int):
        """Canvas-like axes in pixel units, origin bottom-left."""
        self.fig = plt.figure(figsize=(8, 7))
        self.fig.canvas.manager.set_window_title("Cell Balancing Simulation")

        self.ax = self.fig.add_axes([0.22, 0.12, 0.76, 0.84])
        self.ax.set_xlim(0, CANVAS_WIDTH)
        self.ax.set_ylim(0, CANVAS_HEIGHT)
        self.ax.set_xticks([])
        self.ax.set_yticks([])

        self.title_text = self.ax.text(20, CANVAS_HEIGHT - 30, "", fontsize=12)
        self.phase_text = self.ax.text(20, CANVAS_HEIGHT - 50, "", fontsize=11)
        self.done_text = self.ax.text(
            CANVAS_WIDTH / 2, CANVAS_HEIGHT - 80, "Simulation Done",
            ha="center", fontsize=18, color=DONE_COLOR, visible=False,
        )

        y = CELL_MARGIN
        self.fills = []
        self.soc_labels = []
        self.voltage_labels = []
        for i, x in enumerate(cell_positions(n_cells)):
            outline = mpatches.Rectangle((x, y), CELL_WIDTH, CELL_HEIGHT,
                                         fill=False, edgecolor="black")
            self.ax.add_patch(outline)
            fill = mpatches.Rectangle((x, y), CELL_WIDTH, 0, color=FILL_COLOR)
            self.ax.add_patch(fill)
            self.fills.append(fill)

            self.ax.text(x + 5, y + CELL_HEIGHT + 30, f"Cell {i + 1}", fontsize=10)
            self.soc_labels.append(self.ax.text(x + 5, y + CELL_HEIGHT + 10, "", fontsize=10))
            self.voltage_labels.append(self.ax.text(x + 5, y - 20, "", fontsize=10))

        # Controls
        ax_cases = self.fig.add_axes([0.01, 0.45, 0.2, 0.3])
        ax_cases.set_title("Case", fontsize=9)
        self.case_selector = RadioButtons(ax_cases, [str(c.value) for c in SimulationCase],
                                          active=self.selected_case - 1)
        self.case_selector.on_clicked(self._on_case_selected)

        ax_reset = self.fig.add_axes([0.4, 0.02, 0.3, 0.06])
        self.reset_button = Button(ax_reset, "Reset Simulation")
        self.reset_button.on_clicked(self._on_reset)

    # ── Drawing ─────────────────────────────────────────────

    def render(self, snapshot: Dict):
        """Redraw every artist from one snapshot."""
        phase = snapshot['phase']
        self.title_text.set_text(snapshot['case_name'])
        self.phase_text.set_text(f"Phase: {phase}")
        self.phase_text.set_color(PHASE_COLORS.get(phase, "black"))

        for fill, soc_label, v_label, cell in zip(
                self.fills, self.soc_labels, self.voltage_labels, snapshot['cells']):
            fill.set_height(CELL_HEIGHT * cell_fill_fraction(cell['soc']))
            soc_label.set_text(format_soc(cell['soc']))
            v_label.set_text(format_voltage(cell['voltage']))

        self.done_text.set_visible(phase == 'done')

    def _update(self, frame):
        """Called every frame: tick once, then draw."""
        if self.simulator.running:
            snapshot = self.simulator.tick()
        else:
            snapshot = self.simulator.snapshot()
        self.render(snapshot)
        return []  # blit=False

    # ── Controls ────────────────────────────────────────────

    def _on_case_selected(self, label):
        self.selected_case = int(label)

    def _on_reset(self, event):
        self.simulator.reset(self.selected_case)

    def run(self):
        """Start the animation loop and block until the window closes."""
        self.render(self.simulator.snapshot())
        self.anim = FuncAnimation(
            self.fig,
            self._update,
            interval=self.interval_ms,
            blit=False,
            cache_frame_data=False,
        )
        plt.show()

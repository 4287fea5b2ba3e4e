import os
import sys
import unittest
from pathlib import Path

os.environ.setdefault("MPLCONFIGDIR", "/tmp/mplconfig")

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402


ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from balancing_twin.config import CELL_HEIGHT  # noqa: E402
from balancing_twin.main import BalancingSimulator  # noqa: E402
from balancing_twin.viewer import (  # noqa: E402
    PackViewer, cell_fill_fraction, format_soc, format_voltage, cell_positions,
)


class RenderHelperTests(unittest.TestCase):
    def test_fill_fraction_is_capped(self) -> None:
        self.assertEqual(cell_fill_fraction(0.5), 0.5)
        self.assertEqual(cell_fill_fraction(1.0), 1.0)
        self.assertEqual(cell_fill_fraction(1.3), 1.0)

    def test_labels(self) -> None:
        self.assertEqual(format_soc(0.7), "SOC: 70.0%")
        self.assertEqual(format_soc(0.50123), "SOC: 50.1%")
        self.assertEqual(format_voltage(4.04425), "V: 4.04V")
        self.assertEqual(format_voltage(3.6), "V: 3.60V")

    def test_cell_positions_match_canvas_layout(self) -> None:
        self.assertEqual(cell_positions(3), [100.0, 260.0, 420.0])


class PackViewerTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sim = BalancingSimulator(case_id=1)
        self.viewer = PackViewer(self.sim)

    def tearDown(self) -> None:
        plt.close(self.viewer.fig)

    def test_frame_ticks_and_draws(self) -> None:
        self.viewer._update(0)
        snapshot = self.sim.snapshot()
        self.assertEqual(snapshot['step_count'], 1)

        for fill, cell in zip(self.viewer.fills, snapshot['cells']):
            self.assertAlmostEqual(fill.get_height(), CELL_HEIGHT * cell['soc'])
        self.assertEqual(self.viewer.soc_labels[1].get_text(), format_soc(snapshot['cells'][1]['soc']))
        self.assertEqual(self.viewer.phase_text.get_text(), "Phase: charging")
        self.assertEqual(self.viewer.title_text.get_text(), "Passive Balancing after Charge")
        self.assertFalse(self.viewer.done_text.get_visible())

    def test_done_banner_and_frozen_frames(self) -> None:
        self.sim.run_to_completion()
        self.viewer._update(0)
        self.assertTrue(self.viewer.done_text.get_visible())
        self.assertEqual(self.viewer.phase_text.get_text(), "Phase: done")

        steps = self.sim.snapshot()['step_count']
        self.viewer._update(1)
        self.assertEqual(self.sim.snapshot()['step_count'], steps)

    def test_reset_uses_selected_case(self) -> None:
        self.sim.run_to_completion()
        self.viewer._on_case_selected("3")
        self.viewer._on_reset(None)

        snapshot = self.sim.snapshot()
        self.assertEqual(snapshot['case_id'], 3)
        self.assertEqual(snapshot['phase'], 'charging')
        self.assertTrue(self.sim.running)

        self.viewer._update(0)
        self.assertFalse(self.viewer.done_text.get_visible())


if __name__ == "__main__":
    unittest.main()

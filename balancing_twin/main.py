"""
Cell Balancing Twin, Main Entry Point
=====================================
Drives one BatteryPack from an explicit tick loop and hands
snapshots to a renderer (matplotlib viewer or web dashboard).

Uses a threading lock so the tick loop and dashboard resets
never touch the pack at the same time.
"""

import argparse
import threading
import time
import signal
import sys
import os
from typing import Dict, Optional

from balancing_twin.config import (
    DEFAULT_CASE_ID, TICK_INTERVAL, SIM_SPEED_OPTIONS,
    MAX_HEADLESS_STEPS, DASHBOARD_HOST, DASHBOARD_PORT,
    SimulationCase, CASE_CATALOG,
)
from balancing_twin.physics_engine import BatteryPack


class BalancingSimulator:
    """Owns one pack and steps it once per tick until it is done."""

    def __init__(self, case_id=DEFAULT_CASE_ID, tick_interval: float = TICK_INTERVAL):
        self.pack = BatteryPack(case_id)
        self.lock = threading.Lock()   # Protects pack state
        self.tick_interval = tick_interval
        self.sim_speed = 1
        self.running = True

        self._last_phase = self.pack.phase.value
        self._loop_active = False
        self._sim_thread = None

    # ── Control ─────────────────────────────────────────────

    def reset(self, case_id) -> Dict:
        """Restart with a new case. InvalidCaseError propagates to the caller."""
        with self.lock:
            self.pack.reset(case_id)
            self._last_phase = self.pack.phase.value
            self.running = True
            snapshot = self.pack.get_snapshot()
        print(f"[Sim] Reset → case {snapshot['case_id']} ({snapshot['case_name']})")
        return snapshot

    def set_sim_speed(self, speed: int):
        if speed not in SIM_SPEED_OPTIONS:
            raise ValueError(f"Unsupported speed {speed!r}, choose from {SIM_SPEED_OPTIONS}")
        with self.lock:
            self.sim_speed = speed

    def snapshot(self) -> Dict:
        with self.lock:
            return self.pack.get_snapshot()

    def recent_log(self, n: int = 20):
        with self.lock:
            return self.pack.get_recent_log(n)

    # ── Stepping ────────────────────────────────────────────

    def tick(self) -> Dict:
        """Run sim_speed engine steps and return the resulting snapshot."""
        with self.lock:
            if self.running:
                for _ in range(max(1, self.sim_speed)):
                    self.pack.step()
                    self._report_phase()
                    if self.pack.is_done():
                        break
                if self.pack.is_done():
                    self.running = False
                    print(f"[Sim] Case {self.pack.case_id} done after {self.pack.step_count} steps")
            return self.pack.get_snapshot()

    def run_to_completion(self, max_steps: int = MAX_HEADLESS_STEPS) -> Dict:
        """Step without any timing until done or max_steps, whichever comes first."""
        with self.lock:
            for _ in range(max_steps):
                if self.pack.is_done():
                    break
                self.pack.step()
                self._report_phase()
            if self.pack.is_done():
                self.running = False
            else:
                print(f"[Sim] Gave up after {max_steps} steps in phase '{self.pack.phase.value}'")
            return self.pack.get_snapshot()

    def _report_phase(self):
        phase = self.pack.phase.value
        if phase != self._last_phase:
            print(f"[Sim] Step {self.pack.step_count}: {self._last_phase} → {phase}")
            self._last_phase = phase

    # ── Background loop (web mode) ──────────────────────────

    def start(self):
        """Start the tick loop in a daemon thread."""
        self._loop_active = True
        self._sim_thread = threading.Thread(target=self._simulation_loop, daemon=True)
        self._sim_thread.start()

    def _simulation_loop(self):
        """Tick loop with wall-clock pacing."""
        print("[Sim] Simulation loop started")
        while self._loop_active:
            loop_start = time.time()

            # tick() checks the running flag under the lock
            self.tick()

            elapsed = time.time() - loop_start
            sleep_time = self.tick_interval - elapsed
            if sleep_time > 0:
                time.sleep(sleep_time)

    def stop(self):
        self._loop_active = False
        self.running = False
        if self._sim_thread:
            self._sim_thread.join(timeout=2.0)
        print("[Sim] Stopped.")


def format_summary(snapshot: Dict) -> str:
    """Plain-text table of a snapshot for headless runs."""
    lines = [
        f"Case {snapshot['case_id']}: {snapshot['case_name']}",
        f"Phase: {snapshot['phase']} | steps: {snapshot['step_count']} | "
        f"spread: {snapshot['v_spread_mv']:.2f} mV",
    ]
    for c in snapshot['cells']:
        lines.append(
            f"  Cell {c['cell']}: SOC {c['soc'] * 100:5.1f}%  V {c['voltage']:.3f}  "
            f"({c['capacity']} Ah, {c['internal_resistance'] * 1000:.0f} mΩ)"
        )
    return "\n".join(lines)


def main(argv: Optional[list] = None):
    parser = argparse.ArgumentParser(description='Cell Balancing Twin Simulator')
    parser.add_argument('--case', type=int, default=DEFAULT_CASE_ID,
                        choices=[c.value for c in SimulationCase],
                        help='1 passive, 2 active, 3 equalize while charging, 4 CCCV')
    parser.add_argument('--mode', choices=['viewer', 'web', 'headless'], default='viewer',
                        help='Renderer to drive (default: viewer)')
    parser.add_argument('--speed', type=int, default=1, choices=SIM_SPEED_OPTIONS,
                        help='Engine steps per tick')
    parser.add_argument('--max-steps', type=int, default=MAX_HEADLESS_STEPS,
                        help='Step limit for headless mode')
    parser.add_argument('--port', type=int, default=DASHBOARD_PORT,
                        help='Dashboard port (web mode)')
    args = parser.parse_args(argv)

    sim = BalancingSimulator(case_id=args.case)
    sim.set_sim_speed(args.speed)

    print()
    print("=" * 60)
    print("  Cell Balancing Twin")
    print(f"  Case {args.case}: {CASE_CATALOG[SimulationCase(args.case)]['name']}")
    print(f"  Mode: {args.mode} | Speed: {args.speed} step(s)/tick")
    print("=" * 60)
    print()

    if args.mode == 'headless':
        snapshot = sim.run_to_completion(args.max_steps)
        print(format_summary(snapshot))
        return 0 if snapshot['phase'] == 'done' else 1

    if args.mode == 'viewer':
        from balancing_twin.viewer import PackViewer
        PackViewer(sim).run()
        return 0

    from balancing_twin.dashboard.app import init_dashboard, run_dashboard
    init_dashboard(sim)

    def signal_handler(sig, frame):
        print("\n[Sim] Shutting down (CTRL+C)...")
        sim.stop()
        os._exit(0)

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    sim.start()
    print(f"  Dashboard: http://localhost:{args.port}")
    try:
        run_dashboard(host=DASHBOARD_HOST, port=args.port)
    except KeyboardInterrupt:
        print("\n[Sim] Shutting down...")
        sim.stop()
    return 0


if __name__ == '__main__':
    sys.exit(main())

"""
Cell Balancing Twin, Physics Engine
===================================
Three cells in series with a linear OCV model, overvoltage
protection and four charge/balance strategies.

One call to step() advances one discrete tick. The engine never
schedules itself and knows nothing about drawing; the driver owns
the loop and reads get_snapshot() after each step.

Phase machine (pack-wide):
    charging → balancing → done    (cases 1, 2)
    charging → done                (cases 3, 4)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Tuple

import numpy as np

from balancing_twin.config import (
    V_MIN, V_MAX, OVP, I_BASE, CV_TAPER_FACTOR,
    D_PASSIVE, D_ACTIVE, TOL_VOLTAGE, FULL_SOC_THRESHOLD,
    DEFAULT_CELLS, DEFAULT_CASE_ID,
    SimulationCase, CASE_CATALOG,
)


class InvalidCaseError(ValueError):
    """Simulation case identifier outside 1–4."""


class Phase(str, Enum):
    CHARGING = "charging"
    BALANCING = "balancing"
    DONE = "done"


@dataclass
class Cell:
    """One cell of the series string."""
    capacity: float               # Ah
    soc: float                    # 0.0 – 1.0
    internal_resistance: float    # Ω


def default_cells() -> List[Cell]:
    """Fresh copy of the fixed 3-cell example pack."""
    return [Cell(**spec) for spec in DEFAULT_CELLS]


def ocv_from_soc(soc: float) -> float:
    """Linear Open Circuit Voltage from State of Charge."""
    return V_MIN + (V_MAX - V_MIN) * soc


def ocv(cell: Cell) -> float:
    return ocv_from_soc(cell.soc)


def resolve_case(case_id) -> SimulationCase:
    """Map 1–4 (or a SimulationCase) to the enum, else InvalidCaseError."""
    if isinstance(case_id, SimulationCase):
        return case_id
    # bool is an int subclass and 2.0 == 2, neither names a case
    if isinstance(case_id, bool) or not isinstance(case_id, int):
        raise InvalidCaseError(
            f"Unknown simulation case: {case_id!r} (expected 1, 2, 3 or 4)"
        )
    try:
        return SimulationCase(case_id)
    except (ValueError, TypeError):
        raise InvalidCaseError(
            f"Unknown simulation case: {case_id!r} (expected 1, 2, 3 or 4)"
        ) from None


def find_extremes(voltages) -> Tuple[int, int]:
    """
    Index of the highest and lowest voltage.
    Ties go to the earliest cell (argmax/argmin return the first hit).
    """
    v = np.asarray(voltages, dtype=float)
    return int(np.argmax(v)), int(np.argmin(v))


class BatteryPack:
    """
    Pack simulation engine: owns the cells and the phase machine.
    Each instance is an independent simulation.
    """

    def __init__(self, case_id=DEFAULT_CASE_ID):
        self.cells: List[Cell] = []
        self.case = SimulationCase.PASSIVE
        self.phase = Phase.CHARGING
        self.charging_active = True
        self.step_count = 0
        self.phase_log: List[Dict] = []
        self.reset(case_id)

    @property
    def case_id(self) -> int:
        return self.case.value

    @property
    def case_name(self) -> str:
        return CASE_CATALOG[self.case]['name']

    def reset(self, case_id):
        """Rebuild the default pack and restart charging under the given case."""
        # Validate first so a bad id leaves the current run untouched
        case = resolve_case(case_id)

        self.case = case
        self.cells = default_cells()
        self.phase = Phase.CHARGING
        self.charging_active = True
        self.step_count = 0
        self.phase_log = []
        self._log('RESET', None, Phase.CHARGING)

    # ── Derived values ──────────────────────────────────────

    def measured_voltage(self, cell: Cell, current: float) -> float:
        """
        OCV plus IR drop. With charging disabled the IR term is dropped
        regardless of the current passed in.
        """
        return ocv(cell) + (current * cell.internal_resistance if self.charging_active else 0)

    def measured_voltages(self, current: float) -> np.ndarray:
        return np.array([self.measured_voltage(c, current) for c in self.cells])

    def effective_current_case4(self) -> float:
        """CV taper: 10% of I_BASE once any cell reaches OVP under I_BASE."""
        peak = max(self.measured_voltage(c, I_BASE) for c in self.cells)
        if peak >= OVP:
            return I_BASE * CV_TAPER_FACTOR
        return I_BASE

    def display_current(self) -> float:
        return I_BASE if self.charging_active else 0.0

    def display_voltage(self, cell: Cell) -> float:
        """Voltage shown next to a cell by the renderers."""
        return self.measured_voltage(cell, self.display_current())

    # ── Step ────────────────────────────────────────────────

    def is_done(self) -> bool:
        return self.phase is Phase.DONE

    def step(self):
        """Advance one tick. No-op once the pack is done."""
        if self.phase is Phase.DONE:
            return

        self.step_count += 1

        if self.phase is Phase.CHARGING:
            self._step_charging()
        elif self.phase is Phase.BALANCING:
            self._step_balancing()

    def _step_charging(self):
        case = self.case
        if case is SimulationCase.VOLTAGE_REGULATED:
            current = self.effective_current_case4()
        else:
            current = I_BASE

        # Coulomb counting: smaller cells gain more SOC per step
        if self.charging_active:
            for cell in self.cells:
                cell.soc = min(cell.soc + current / cell.capacity, 1.0)

        if case in (SimulationCase.PASSIVE, SimulationCase.ACTIVE):
            if any(self.measured_voltage(c, current) >= OVP for c in self.cells):
                self.charging_active = False
                self._set_phase(Phase.BALANCING)
            return

        if case is SimulationCase.ACTIVE_EQUALIZATION:
            self._transfer_if_unbalanced(self.measured_voltages(current))

        # Cases 3 and 4 finish straight from charging
        if case is SimulationCase.VOLTAGE_REGULATED and self.charging_active:
            end_current = self.effective_current_case4()
        else:
            end_current = I_BASE
        voltages = self.measured_voltages(end_current)
        all_full = all(c.soc >= FULL_SOC_THRESHOLD for c in self.cells)
        if all_full and voltages.max() - voltages.min() < TOL_VOLTAGE:
            self._set_phase(Phase.DONE)

    def _step_balancing(self):
        # Charging is off here, so every reading is pure OCV
        voltages = self.measured_voltages(0.0)

        if self.case is SimulationCase.PASSIVE:
            threshold = voltages.min() + TOL_VOLTAGE
            for cell, v in zip(self.cells, voltages):
                if v > threshold:
                    cell.soc = max(cell.soc - D_PASSIVE, 0.0)
        elif self.case is SimulationCase.ACTIVE:
            self._transfer_if_unbalanced(voltages)

        voltages = self.measured_voltages(0.0)
        if voltages.max() - voltages.min() < TOL_VOLTAGE:
            self._set_phase(Phase.DONE)

    def _transfer_if_unbalanced(self, voltages: np.ndarray):
        """Move D_ACTIVE of SOC from the highest cell to the lowest."""
        max_idx, min_idx = find_extremes(voltages)
        if voltages[max_idx] - voltages[min_idx] <= TOL_VOLTAGE:
            return

        donor = self.cells[max_idx]
        receiver = self.cells[min_idx]
        donor.soc -= D_ACTIVE
        receiver.soc += D_ACTIVE
        # Only the bound each side moves toward is clamped
        donor.soc = max(donor.soc, 0.0)
        receiver.soc = min(receiver.soc, 1.0)

    # ── Phase log ───────────────────────────────────────────

    def _set_phase(self, new_phase: Phase):
        old = self.phase
        self.phase = new_phase
        self._log('PHASE_CHANGE', old, new_phase)

    def _log(self, action: str, old, new: Phase):
        self.phase_log.append({
            'id': len(self.phase_log) + 1,
            'step': self.step_count,
            'action': action,
            'from': old.value if old is not None else None,
            'to': new.value,
        })

    def get_recent_log(self, n: int = 20) -> List[Dict]:
        """Return recent phase log entries."""
        return [dict(entry) for entry in self.phase_log[-n:]]

    # ── Snapshot ────────────────────────────────────────────

    def get_snapshot(self) -> Dict:
        """Read-only copy of the pack state for renderers."""
        cell_data = []
        for i, c in enumerate(self.cells):
            cell_data.append({
                'cell': i + 1,
                'capacity': c.capacity,
                'soc': c.soc,
                'internal_resistance': c.internal_resistance,
                'voltage': self.display_voltage(c),
            })

        voltages = [c['voltage'] for c in cell_data]
        v_spread_mv = (max(voltages) - min(voltages)) * 1000 if voltages else 0.0

        return {
            'case_id': self.case_id,
            'case_name': self.case_name,
            'phase': self.phase.value,
            'charging_active': self.charging_active,
            'step_count': self.step_count,

            'cells': cell_data,

            'pack_voltage': sum(voltages),
            'v_spread_mv': v_spread_mv,
        }

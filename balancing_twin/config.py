"""
Cell Balancing Twin, Configuration
==================================
All constants, thresholds, and pack parameters for the
three-cell series string used by the charge/balance simulation.

The OCV model is linear on purpose: the interesting behaviour is
the balancing state machine, not the electrochemistry.
"""

from enum import Enum

# ═══════════════════════════════════════════════════════════════
# CELL ELECTRICAL MODEL
# ═══════════════════════════════════════════════════════════════

V_MIN = 3.0                       # V: OCV at SOC = 0
V_MAX = 4.2                       # V: OCV at SOC = 1
OVP = 4.2                         # V: overvoltage protection threshold

I_BASE = 0.005                    # Nominal charge current (arbitrary units)
CV_TAPER_FACTOR = 0.1             # Case 4: current multiplier once any cell hits OVP

# ═══════════════════════════════════════════════════════════════
# BALANCING PARAMETERS
# ═══════════════════════════════════════════════════════════════

D_PASSIVE = 0.001                 # SOC bled per step (passive)
D_ACTIVE = 0.001                  # SOC moved donor → receiver per step (active)
TOL_VOLTAGE = 0.005               # V: equalization tolerance
FULL_SOC_THRESHOLD = 0.99         # Cases 3/4: every cell must reach this to finish

# ═══════════════════════════════════════════════════════════════
# DEFAULT PACK: 3S, deliberately mismatched
# ═══════════════════════════════════════════════════════════════
# Smaller cells gain more SOC per step, which is what drives
# the imbalance the strategies have to deal with.

DEFAULT_CELLS = [
    {'capacity': 3.0, 'soc': 0.70, 'internal_resistance': 0.05},
    {'capacity': 2.5, 'soc': 0.50, 'internal_resistance': 0.08},
    {'capacity': 3.5, 'soc': 0.90, 'internal_resistance': 0.03},
]
NUM_CELLS = len(DEFAULT_CELLS)

# ═══════════════════════════════════════════════════════════════
# SIMULATION CASES: 4 charge/balance strategies
# ═══════════════════════════════════════════════════════════════

class SimulationCase(Enum):
    """Charge/balance strategy selected at reset."""
    PASSIVE = 1                   # Charge to OVP, then bleed high cells
    ACTIVE = 2                    # Charge to OVP, then shuttle max → min
    ACTIVE_EQUALIZATION = 3       # Shuttle max → min while charging
    VOLTAGE_REGULATED = 4         # CCCV-style taper near OVP, no balancing


CASE_CATALOG = {
    SimulationCase.PASSIVE: {
        'name': 'Passive Balancing after Charge',
        'desc': 'Constant current until any cell trips OVP. Charging stops and '
                'cells above the weakest one bleed charge through a resistor.',
        'phases': ['charging', 'balancing', 'done'],
    },
    SimulationCase.ACTIVE: {
        'name': 'Active Balancing after Charge',
        'desc': 'Constant current until any cell trips OVP. Charging stops and '
                'charge is shuttled from the highest cell to the lowest.',
        'phases': ['charging', 'balancing', 'done'],
    },
    SimulationCase.ACTIVE_EQUALIZATION: {
        'name': 'Active Equalization during Charge',
        'desc': 'Highest cell donates to lowest cell on every charging step. '
                'Finishes when all cells are full and within tolerance.',
        'phases': ['charging', 'done'],
    },
    SimulationCase.VOLTAGE_REGULATED: {
        'name': 'Voltage-Regulated (CCCV) Charging',
        'desc': 'Current drops to 10% once any cell reaches OVP under load. '
                'No balancing circuit; the lagging cells top up slowly.',
        'phases': ['charging', 'done'],
    },
}

DEFAULT_CASE_ID = SimulationCase.PASSIVE.value

# ═══════════════════════════════════════════════════════════════
# DRIVER PARAMETERS
# ═══════════════════════════════════════════════════════════════

TICK_INTERVAL = 1.0 / 60.0        # seconds: one engine tick per display frame

# Speed control: how many engine steps per driver tick
SIM_SPEED_OPTIONS = [1, 5, 10, 50]

# Headless runs give up after this many steps
MAX_HEADLESS_STEPS = 20000

# Dashboard (Flask-SocketIO)
DASHBOARD_HOST = '0.0.0.0'
DASHBOARD_PORT = 5001
DASHBOARD_UPDATE_INTERVAL = 0.1   # 100ms: websocket push rate

# ═══════════════════════════════════════════════════════════════
# VIEWER LAYOUT (matplotlib)
# ═══════════════════════════════════════════════════════════════

CANVAS_WIDTH = 600
CANVAS_HEIGHT = 500
CELL_MARGIN = 100
CELL_WIDTH = 80
CELL_HEIGHT = 300
FRAME_INTERVAL_MS = 16            # ~60 fps

PHASE_COLORS = {
    'charging':  '#38bdf8',  # sky blue
    'balancing': '#fbbf24',  # amber
    'done':      '#22c55e',  # green
}
FILL_COLOR = 'green'
DONE_COLOR = 'blue'

"""
Cell Balancing Twin, Dashboard Backend
======================================
Flask-SocketIO server that pushes pack snapshots to a browser
and accepts case resets and speed changes.
The simulator's own lock guards every pack access.
"""

from flask import Flask, jsonify
from flask_socketio import SocketIO, emit

from balancing_twin.config import (
    CASE_CATALOG, DASHBOARD_UPDATE_INTERVAL, DASHBOARD_HOST, DASHBOARD_PORT,
    SIM_SPEED_OPTIONS, TICK_INTERVAL, DEFAULT_CASE_ID,
)

app = Flask(__name__)
app.config['SECRET_KEY'] = 'cell-balancing-twin'
socketio = SocketIO(app, cors_allowed_origins="*", async_mode='threading')

# Global reference (set by main.py)
simulator = None


def init_dashboard(balancing_simulator):
    global simulator
    simulator = balancing_simulator


def catalog_payload():
    """CASE_CATALOG keyed by case id, JSON-friendly."""
    return {str(case.value): info for case, info in CASE_CATALOG.items()}


# ── Routes ──────────────────────────────────────────────────

@app.route('/api/status')
def api_status():
    if simulator:
        return jsonify(simulator.snapshot())
    return jsonify({'error': 'Simulator not initialized'}), 503


@app.route('/api/cases')
def api_cases():
    return jsonify(catalog_payload())


@app.route('/api/log')
def api_log():
    if simulator:
        return jsonify(simulator.recent_log())
    return jsonify([])


def payload_error(data):
    """Error text for a socket payload that is not a JSON object, else None."""
    if isinstance(data, dict):
        return None
    return f"Expected an object payload, got {type(data).__name__}"


# ── WebSocket Events ─────────────────────────────────────────

@socketio.on('connect')
def on_connect():
    if simulator:
        emit('pack_data', simulator.snapshot())
    emit('case_catalog', catalog_payload())
    emit('sim_config', {
        'speed_options': SIM_SPEED_OPTIONS,
        'tick_interval': TICK_INTERVAL,
    })


@socketio.on('reset_simulation')
def on_reset_simulation(data=None):
    if not simulator:
        return
    if data is None:
        data = {}
    error = payload_error(data)
    if error:
        emit('simulation_reset', {'success': False, 'error': error})
        return
    try:
        case_id = int(data.get('case_id', DEFAULT_CASE_ID))
        snapshot = simulator.reset(case_id)
    except (TypeError, ValueError) as e:
        # InvalidCaseError is a ValueError
        emit('simulation_reset', {'success': False, 'error': str(e)})
        return
    emit('simulation_reset', {'success': True, 'case_id': snapshot['case_id']})
    socketio.emit('pack_data', snapshot)


@socketio.on('set_sim_speed')
def on_set_sim_speed(data=None):
    """Set engine steps per tick."""
    if not simulator:
        return
    error = payload_error(data)
    if error:
        emit('sim_speed_set', {'success': False, 'error': error})
        return
    try:
        speed = int(data.get('speed', 1))
        simulator.set_sim_speed(speed)
    except (TypeError, ValueError) as e:
        emit('sim_speed_set', {'success': False, 'error': str(e)})
        return
    emit('sim_speed_set', {'success': True, 'speed': speed})


# ── Background Data Broadcast ────────────────────────────────

def start_broadcast_thread():
    def broadcast_loop():
        while True:
            if simulator:
                socketio.emit('pack_data', simulator.snapshot())
            socketio.sleep(DASHBOARD_UPDATE_INTERVAL)

    socketio.start_background_task(broadcast_loop)


def run_dashboard(host=DASHBOARD_HOST, port=DASHBOARD_PORT):
    print(f"[Dashboard] Serving on {host}:{port}")
    start_broadcast_thread()
    socketio.run(app, host=host, port=port, debug=False, allow_unsafe_werkzeug=True)

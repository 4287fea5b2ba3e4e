import sys
import unittest
from pathlib import Path


ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from balancing_twin.dashboard import app as dashboard  # noqa: E402
from balancing_twin.main import BalancingSimulator  # noqa: E402


def events_named(received, name):
    return [msg['args'][0] for msg in received if msg['name'] == name]


class DashboardRouteTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sim = BalancingSimulator(case_id=1)
        dashboard.init_dashboard(self.sim)
        self.client = dashboard.app.test_client()

    def test_status_returns_snapshot(self) -> None:
        resp = self.client.get('/api/status')
        self.assertEqual(resp.status_code, 200)
        data = resp.get_json()
        self.assertEqual(data['case_id'], 1)
        self.assertEqual(data['phase'], 'charging')
        self.assertEqual(len(data['cells']), 3)

    def test_cases_lists_all_four(self) -> None:
        data = self.client.get('/api/cases').get_json()
        self.assertEqual(sorted(data.keys()), ['1', '2', '3', '4'])
        self.assertEqual(data['3']['phases'], ['charging', 'done'])

    def test_log_after_run(self) -> None:
        self.sim.run_to_completion()
        log = self.client.get('/api/log').get_json()
        self.assertEqual(log[-1]['to'], 'done')

    def test_status_without_simulator(self) -> None:
        dashboard.init_dashboard(None)
        resp = self.client.get('/api/status')
        self.assertEqual(resp.status_code, 503)


class DashboardSocketTests(unittest.TestCase):
    def setUp(self) -> None:
        self.sim = BalancingSimulator(case_id=1)
        dashboard.init_dashboard(self.sim)
        self.sio = dashboard.socketio.test_client(dashboard.app)

    def tearDown(self) -> None:
        if self.sio.is_connected():
            self.sio.disconnect()

    def test_connect_pushes_state(self) -> None:
        received = self.sio.get_received()
        self.assertEqual(events_named(received, 'pack_data')[0]['case_id'], 1)
        self.assertIn('4', events_named(received, 'case_catalog')[0])
        self.assertIn('speed_options', events_named(received, 'sim_config')[0])

    def test_reset_switches_case(self) -> None:
        self.sio.get_received()
        self.sio.emit('reset_simulation', {'case_id': 4})
        received = self.sio.get_received()

        reply = events_named(received, 'simulation_reset')[0]
        self.assertTrue(reply['success'])
        self.assertEqual(reply['case_id'], 4)
        self.assertEqual(self.sim.snapshot()['case_id'], 4)

    def test_reset_rejects_unknown_case(self) -> None:
        self.sim.tick()
        self.sio.get_received()
        self.sio.emit('reset_simulation', {'case_id': 9})
        reply = events_named(self.sio.get_received(), 'simulation_reset')[0]

        self.assertFalse(reply['success'])
        self.assertIn('9', reply['error'])
        self.assertEqual(self.sim.snapshot()['case_id'], 1)
        self.assertEqual(self.sim.snapshot()['step_count'], 1)

    def test_reset_rejects_garbage(self) -> None:
        self.sio.get_received()
        self.sio.emit('reset_simulation', {'case_id': 'abc'})
        reply = events_named(self.sio.get_received(), 'simulation_reset')[0]
        self.assertFalse(reply['success'])

    def test_non_object_payloads_get_error_reply(self) -> None:
        self.sim.tick()
        self.sio.get_received()
        for payload in (3, "x", [1]):
            self.sio.emit('reset_simulation', payload)
            reply = events_named(self.sio.get_received(), 'simulation_reset')[0]
            self.assertFalse(reply['success'])
            self.assertIn('object', reply['error'])

        for payload in (None, 10, "fast"):
            self.sio.emit('set_sim_speed', payload)
            reply = events_named(self.sio.get_received(), 'sim_speed_set')[0]
            self.assertFalse(reply['success'])

        self.assertEqual(self.sim.snapshot()['step_count'], 1)
        self.assertEqual(self.sim.sim_speed, 1)

    def test_reset_without_payload_uses_default_case(self) -> None:
        self.sim.reset(3)
        self.sio.get_received()
        self.sio.emit('reset_simulation')
        reply = events_named(self.sio.get_received(), 'simulation_reset')[0]
        self.assertTrue(reply['success'])
        self.assertEqual(reply['case_id'], 1)

    def test_set_sim_speed(self) -> None:
        self.sio.get_received()
        self.sio.emit('set_sim_speed', {'speed': 10})
        reply = events_named(self.sio.get_received(), 'sim_speed_set')[0]
        self.assertTrue(reply['success'])
        self.assertEqual(self.sim.sim_speed, 10)

        self.sio.emit('set_sim_speed', {'speed': 7})
        reply = events_named(self.sio.get_received(), 'sim_speed_set')[0]
        self.assertFalse(reply['success'])
        self.assertEqual(self.sim.sim_speed, 10)


if __name__ == "__main__":
    unittest.main()

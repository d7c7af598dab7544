import unittest
import os
import sys
from unittest import mock

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

from voxride.executor import KeyboardExecutor, PERMISSION_ERROR, available_keys


class TestKeyboardExecutor(unittest.TestCase):
    def setUp(self):
        self.backend = mock.Mock()
        self.ex = KeyboardExecutor(key_press_delay_ms=10, backend=self.backend)

    def test_press_maps_key(self):
        r = self.ex("escape")
        self.assertTrue(r.success)
        self.backend.keyDown.assert_called_once_with("esc")
        self.backend.keyUp.assert_called_once_with("esc")

    def test_unknown_key(self):
        r = self.ex("hyperdrive")
        self.assertFalse(r.success)
        self.assertIn("Unknown key", r.error)
        self.backend.keyDown.assert_not_called()

    def test_permission_error(self):
        self.backend.keyDown.side_effect = PermissionError("denied")
        r = self.ex("left")
        self.assertFalse(r.success)
        self.assertEqual(r.error, PERMISSION_ERROR)

    def test_backend_error(self):
        self.backend.keyUp.side_effect = OSError("display lost")
        r = self.ex("space")
        self.assertFalse(r.success)
        self.assertEqual(r.error, "display lost")

    def test_delay_clamped(self):
        self.assertEqual(self.ex.set_key_press_delay(500), 200)
        self.assertEqual(self.ex.set_key_press_delay(1), 10)

    def test_available_keys(self):
        keys = available_keys()
        for k in ("left", "space", "escape", "f10", "pageup", "0", "g"):
            self.assertIn(k, keys)


if __name__ == "__main__":
    unittest.main()

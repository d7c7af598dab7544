import socket

import requests

from .config import CONTROL_API_HOST, CONTROL_API_PORT, CONTROL_API_URL
from .logui import debug, error


def is_port_open(host: str = CONTROL_API_HOST, port: int = CONTROL_API_PORT, timeout=0.25) -> bool:
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False


class ControlClient:
    """Talks to a running instance through its control API. Failures are logged and return None."""

    def __init__(self, base_url: str = CONTROL_API_URL, timeout: float = 5.0):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs):
        url = f"{self.base_url}{path}"
        try:
            r = requests.request(method, url, timeout=self.timeout, **kwargs)
        except requests.exceptions.RequestException as e:
            error(f"Control API connection error: {e}")
            return None
        if r.status_code != 200:
            error(f"Control API error: HTTP {r.status_code} ({method} {path})")
            return None
        debug(f"Control API {method} {path} -> 200")
        return r.json()

    def health(self):
        return self._request("GET", "/health")

    def status(self):
        return self._request("GET", "/status")

    def simulate(self, text: str, confidence: float = 0.95):
        return self._request("POST", "/simulate", json={"text": text, "confidence": confidence})

    def execute(self, action: str):
        return self._request("POST", "/execute", json={"action": action})

    def history(self):
        return self._request("GET", "/history")

    def update_settings(self, **values):
        return self._request("POST", "/settings", json=values)

    def start_listening(self):
        return self._request("POST", "/listening/start")

    def stop_listening(self):
        return self._request("POST", "/listening/stop")

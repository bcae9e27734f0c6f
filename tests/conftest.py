"""
Pytest configuration and shared fixtures.
"""

import threading

import pytest


class FakeRunner:
    """
    Stand-in for a PowerShellRunner that never starts PowerShell.

    Responses are produced by handler(script, name) when given, otherwise
    popped from responses in order. An Exception instance is raised instead
    of returned.
    """

    name = "fake"

    def __init__(self, responses=None, handler=None):
        self.responses = list(responses or [])
        self.handler = handler
        self.calls = []
        self._lock = threading.Lock()

    def run_json(self, script, credential=None, name="PowerShell"):
        with self._lock:
            self.calls.append({"script": script, "credential": credential, "name": name})
            if self.handler is not None:
                result = self.handler(script, name)
            else:
                result = self.responses.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    @property
    def scripts(self):
        return [call["script"] for call in self.calls]


@pytest.fixture
def make_runner():
    """Return the FakeRunner class for building runners with canned output."""
    return FakeRunner


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from a real winops.yaml and real passwords."""
    for name in ("WINOPS_CONFIG", "WINOPS_PASSWORD", "WINOPS_WINRM_PASSWORD"):
        monkeypatch.delenv(name, raising=False)
    work_dir = tmp_path / "cwd"
    work_dir.mkdir()
    monkeypatch.chdir(work_dir)
    return work_dir


@pytest.fixture
def config_file(tmp_path):
    """Write a small winops.yaml and return its path."""
    path = tmp_path / "winops.yaml"
    path.write_text(
        "credentials:\n"
        "  username: CORP\\admin\n"
        "disk:\n"
        "  warning_percent: 25\n"
        "  critical_percent: 5\n"
    )
    return path

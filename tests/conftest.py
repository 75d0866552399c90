"""Shared test fixtures and factories."""

import asyncio
import json
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import pytest

from questlink.config.paths import ENV_VAR, get_questlink_home
from questlink.rpc.errors import SpawnError, WriteError
from questlink.rpc.protocol import ErrorCode, RPCResponse, decode_line

FAKE_SIDECAR = Path(__file__).parent / "fake_sidecar.py"

SAMPLE_REPORT = """⚔️ **BATTLEFIELD**: 20×20 squares

🏗️ **TERRAIN**:
• Wall at (5,3) - 5×5×25ft [blocks movement]
• Pillar at (8,8) - 5×5×10ft [blocks movement] [full cover]
• Difficult terrain at (12,12) - 10×10×5ft

👥 **COMBATANTS**:
• Valeros at (10,10,0) - medium creature HP: 18/24 AC 17
• Goblin Archer at (14,6,0) - small creature HP: 7/7 AC 13
• Ogre Brute at (3,15,0) - large creature [conditions: prone, frightened]
• Merisiel at (11,10,0) - medium creature
"""


# =============================================================================
# Environment Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def questlink_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    """Point QUESTLINK_HOME at a temp dir so tests never touch ~/.questlink."""
    home = tmp_path / "questlink-home"
    monkeypatch.setenv(ENV_VAR, str(home))
    monkeypatch.delenv("QUESTLINK_BINARIES_DIR", raising=False)
    monkeypatch.delenv("QUESTLINK_LOG_LEVEL", raising=False)
    get_questlink_home.cache_clear()
    yield home
    get_questlink_home.cache_clear()


@pytest.fixture
def cli_runner():
    """Typer CLI test runner."""
    from typer.testing import CliRunner

    return CliRunner(env={"NO_COLOR": "1"})


# =============================================================================
# Report Fixtures
# =============================================================================


@pytest.fixture
def sample_report() -> str:
    return SAMPLE_REPORT


@pytest.fixture
def report_file(tmp_path: Path, sample_report: str) -> Path:
    path = tmp_path / "report.txt"
    path.write_text(sample_report, encoding="utf-8")
    return path


# =============================================================================
# Sidecar Fixtures
# =============================================================================


@pytest.fixture
def sidecar_command() -> list[str]:
    """Command that launches the scripted JSON-RPC sidecar."""
    return [sys.executable, str(FAKE_SIDECAR)]


@pytest.fixture
def binaries_dir(tmp_path: Path) -> Path:
    """A binaries directory holding executable wrappers around the fake sidecar."""
    directory = tmp_path / "binaries"
    directory.mkdir()
    for name in ("rpg-game-state-server", "rpg-combat-engine-server"):
        script = directory / name
        script.write_text(f'#!/bin/sh\nexec "{sys.executable}" "{FAKE_SIDECAR}" "$@"\n')
        script.chmod(0o755)
    return directory


class FakeTransport:
    """In-memory stand-in for StdioTransport.

    Answers ``initialize`` and ``tools/*`` requests on the next loop turn
    unless ``auto_reply`` is disabled. Every instance is recorded in
    ``FakeTransport.instances`` so tests can count spawns.
    """

    instances: list["FakeTransport"] = []
    spawn_delay = 0.01
    fail_spawn: set[str] = set()

    def __init__(
        self,
        command: Sequence[str],
        *,
        name: str | None = None,
        shutdown_timeout: float = 2.0,
        **_: Any,
    ) -> None:
        self.command = list(command)
        self.name = name or self.command[0]
        self.sent: list[dict[str, Any]] = []
        self.auto_reply = True
        self.spawned = False
        self._line_callbacks: list = []
        self._exit_callbacks: list = []
        self._exit_code: int | None = None
        self._exited = False
        FakeTransport.instances.append(self)

    @property
    def is_running(self) -> bool:
        return self.spawned and not self._exited

    @property
    def exit_code(self) -> int | None:
        return self._exit_code

    def on_line(self, callback) -> None:
        self._line_callbacks.append(callback)

    def on_exit(self, callback) -> None:
        self._exit_callbacks.append(callback)

    async def spawn(self) -> None:
        await asyncio.sleep(self.spawn_delay)
        if self.name in self.fail_spawn:
            raise SpawnError("sidecar executable not found", server=self.name)
        self.spawned = True

    async def write(self, line: str) -> None:
        if not self.is_running:
            raise WriteError("transport closed", server=self.name)
        message = decode_line(line)
        self.sent.append(message)
        if self.auto_reply and "id" in message:
            asyncio.get_running_loop().call_soon(self._auto_respond, message)

    def _auto_respond(self, message: dict[str, Any]) -> None:
        method = message["method"]
        if method == "initialize":
            response = RPCResponse.success(
                message["id"], {"serverInfo": {"name": self.name, "version": "1.0"}}
            )
        elif method == "tools/list":
            response = RPCResponse.success(message["id"], {"tools": [{"name": "echo"}]})
        elif method == "tools/call":
            response = RPCResponse.success(
                message["id"],
                {"content": [{"type": "text", "text": json.dumps(message.get("params"))}]},
            )
        else:
            response = RPCResponse.error_response(
                message["id"], ErrorCode.METHOD_NOT_FOUND, f"Method not found: {method}"
            )
        self.receive(response.to_line())

    def receive(self, line: str) -> None:
        """Feed one framed line as if the sidecar had written it."""
        self.deliver(decode_line(line))

    def deliver(self, message: dict[str, Any]) -> None:
        for callback in self._line_callbacks:
            callback(message)

    def exit(self, code: int | None = 1) -> None:
        if self._exited:
            return
        self._exited = True
        self._exit_code = code
        for callback in self._exit_callbacks:
            callback(code)

    async def close(self) -> None:
        # like StdioTransport, closing before the process exists is a no-op
        if not self.spawned:
            return
        self.exit(0)


@pytest.fixture
def fake_transport():
    """Reset FakeTransport bookkeeping and return the class as a factory."""
    FakeTransport.instances = []
    FakeTransport.fail_spawn = set()
    yield FakeTransport
    FakeTransport.instances = []
    FakeTransport.fail_spawn = set()

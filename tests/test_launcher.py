from __future__ import annotations

import os
import signal
import subprocess
import threading
import time
from pathlib import Path

import pytest

from cfvault_cli.cli_shared import SubprocessFailure, SubprocessLaunchError
from cfvault_cli.launcher import launch_vault, run_process, vault_env
from cfvault_cli.service_keys import CredentialRecord

CREDS = CredentialRecord(
    name="my-key",
    address="https://vault.example.com:8200",
    token="vault-token",
    generic_backend_path="instances/inst-1",
    shared_org_path="orgs/acme",
    shared_space_path="spaces/dev",
)


class RecordingRunner:
    def __init__(self, code: int = 0) -> None:
        self.code = code
        self.calls: list[tuple[str, list[str], dict[str, str]]] = []

    def __call__(self, command, args, env_overlay) -> int:
        self.calls.append((command, list(args), dict(env_overlay)))
        return self.code


def test_vault_env_has_exactly_token_and_address():
    assert vault_env(CREDS) == {
        "VAULT_TOKEN": "vault-token",
        "VAULT_ADDR": "https://vault.example.com:8200",
    }


def test_launch_passes_args_verbatim():
    runner = RecordingRunner()

    assert launch_vault(["read", "-field=x", "a b"], CREDS, runner=runner) == 0
    assert runner.calls == [
        (
            "vault",
            ["read", "-field=x", "a b"],
            {"VAULT_TOKEN": "vault-token", "VAULT_ADDR": "https://vault.example.com:8200"},
        )
    ]


def test_launch_uses_configured_binary():
    runner = RecordingRunner()

    launch_vault(["status"], CREDS, runner=runner, binary="/opt/vault/bin/vault")

    assert runner.calls[0][0] == "/opt/vault/bin/vault"


def test_non_zero_exit_is_subprocess_failure():
    with pytest.raises(SubprocessFailure) as exc_info:
        launch_vault(["read", "missing"], CREDS, runner=RecordingRunner(code=2))

    assert exc_info.value.exit_code == 2


class _FakePopen:
    def __init__(self, argv, *, env, returncode: int = 3) -> None:
        self.argv = argv
        self.env = env
        self.returncode = returncode
        self.sigint_during_wait = None
        self.exited = False

    def __enter__(self):
        return self

    def __exit__(self, *exc) -> None:
        self.exited = True

    def wait(self) -> int:
        self.sigint_during_wait = signal.getsignal(signal.SIGINT)
        return self.returncode


def test_run_process_overlays_environment(monkeypatch):
    spawned: list[_FakePopen] = []

    def _fake_popen(argv, *, env):
        proc = _FakePopen(argv, env=env)
        spawned.append(proc)
        return proc

    monkeypatch.setenv("PARENT_ONLY", "kept")
    monkeypatch.setenv("VAULT_TOKEN", "stale")
    monkeypatch.setattr(subprocess, "Popen", _fake_popen)

    code = run_process("vault", ["kv", "get"], {"VAULT_TOKEN": "fresh", "VAULT_ADDR": "https://v"})

    assert code == 3
    [proc] = spawned
    assert proc.argv == ["vault", "kv", "get"]
    assert proc.env["PARENT_ONLY"] == "kept"
    assert proc.env["VAULT_TOKEN"] == "fresh"
    assert proc.env["VAULT_ADDR"] == "https://v"
    assert proc.exited


def test_run_process_ignores_sigint_only_while_waiting(monkeypatch):
    spawned: list[_FakePopen] = []

    def _fake_popen(argv, *, env):
        proc = _FakePopen(argv, env=env, returncode=0)
        spawned.append(proc)
        return proc

    before = signal.getsignal(signal.SIGINT)
    monkeypatch.setattr(subprocess, "Popen", _fake_popen)

    assert run_process("vault", [], {}) == 0
    assert spawned[0].sigint_during_wait is signal.SIG_IGN
    assert signal.getsignal(signal.SIGINT) is before


def test_run_process_missing_executable_is_launch_error(monkeypatch):
    def _fake_popen(argv, *, env):
        raise FileNotFoundError(2, "No such file or directory", argv[0])

    monkeypatch.setattr(subprocess, "Popen", _fake_popen)

    with pytest.raises(SubprocessLaunchError, match="No such file or directory"):
        run_process("vault", [], {})


_TRAPPING_VAULT = """#!/bin/sh
trap 'sleep 1; echo handled > "{marker}"; exit 7' INT
echo $$ > "{pidfile}"
i=0
while [ $i -lt 100 ]; do
    sleep 0.1
    i=$((i + 1))
done
exit 3
"""


@pytest.mark.skipif(not hasattr(signal, "SIGINT") or os.name != "posix", reason="POSIX signals only")
def test_interrupt_lets_vault_finish_its_own_handler(tmp_path: Path):
    if signal.getsignal(signal.SIGINT) is signal.SIG_IGN:
        pytest.skip("SIGINT is ignored by the test process; the child could not trap it")
    marker = tmp_path / "marker"
    pidfile = tmp_path / "vault.pid"
    script = tmp_path / "vault"
    script.write_text(_TRAPPING_VAULT.format(marker=marker, pidfile=pidfile), encoding="utf-8")
    script.chmod(0o755)

    def _interrupt() -> None:
        deadline = time.monotonic() + 10
        while time.monotonic() < deadline:
            pid_text = pidfile.read_text(encoding="utf-8").strip() if pidfile.exists() else ""
            if pid_text and signal.getsignal(signal.SIGINT) is signal.SIG_IGN:
                # What a terminal Ctrl-C does: the whole foreground group gets SIGINT.
                os.kill(os.getpid(), signal.SIGINT)
                os.kill(int(pid_text), signal.SIGINT)
                return
            time.sleep(0.02)

    sender = threading.Thread(target=_interrupt)
    sender.start()
    try:
        code = run_process(str(script), [], {})
    finally:
        sender.join()

    assert code == 7
    assert marker.read_text(encoding="utf-8").strip() == "handled"

from __future__ import annotations

import contextlib
import os
import signal
import subprocess
import threading
from typing import Iterator, Mapping, Protocol, Sequence

from .cli_shared import (
    DEFAULT_VAULT_BINARY,
    VAULT_ADDR,
    VAULT_TOKEN,
    SubprocessFailure,
    SubprocessLaunchError,
)
from .service_keys import CredentialRecord


class ProcessRunner(Protocol):
    def __call__(self, command: str, args: Sequence[str], env_overlay: Mapping[str, str]) -> int: ...


def run_process(command: str, args: Sequence[str], env_overlay: Mapping[str, str]) -> int:
    """Run ``command`` with inherited stdio and the parent environment plus ``env_overlay``.

    SIGINT is ignored here while the child runs; the terminal delivers it to
    the child, which handles it and exits on its own terms.
    """
    env = dict(os.environ)
    env.update(env_overlay)
    try:
        proc = subprocess.Popen([command, *args], env=env)
    except OSError as e:
        raise SubprocessLaunchError(f"error running Vault command: {e}") from e
    with proc, _sigint_ignored():
        return int(proc.wait())


@contextlib.contextmanager
def _sigint_ignored() -> Iterator[None]:
    # signal.signal is only allowed from the main thread.
    if threading.current_thread() is not threading.main_thread():
        yield
        return
    previous = signal.signal(signal.SIGINT, signal.SIG_IGN)
    if previous is None:
        previous = signal.SIG_DFL
    try:
        yield
    finally:
        signal.signal(signal.SIGINT, previous)


def vault_env(creds: CredentialRecord) -> dict[str, str]:
    return {
        VAULT_TOKEN: creds.token,
        VAULT_ADDR: creds.address,
    }


def launch_vault(
    args: Sequence[str],
    creds: CredentialRecord,
    *,
    runner: ProcessRunner = run_process,
    binary: str = DEFAULT_VAULT_BINARY,
) -> int:
    code = runner(binary, list(args), vault_env(creds))
    if code != 0:
        raise SubprocessFailure(
            f"error running Vault command: {binary} exited with status {code}",
            exit_code=code,
        )
    return 0

"""
Launching the agent CLI against the proxy.

The CLI inherits the terminal and the current environment, extended with
the variables that point it at the proxy.
"""

import logging
import os
import signal
import subprocess
from collections.abc import Mapping, Sequence

from .config import Config

logger = logging.getLogger(__name__)

TARGET_CLAUDE = "claude"
TARGET_GEMINI = "gemini"
TARGETS = (TARGET_CLAUDE, TARGET_GEMINI)


class CLILauncher:
    """Spawn ``claude`` or ``gemini`` wired to the proxy."""

    def __init__(self, config: Config, args: Sequence[str] = (), target: str = TARGET_CLAUDE):
        if target not in TARGETS:
            raise ValueError(f"Unknown CLI target: {target}")
        self.config = config
        self.args = list(args)
        self.target = target
        self.process: subprocess.Popen | None = None

    def env_vars(self) -> dict[str, str]:
        if self.target == TARGET_GEMINI:
            return self.config.gemini_env_vars()
        return self.config.anthropic_env_vars()

    def build_env(self, base: Mapping[str, str] | None = None) -> dict[str, str]:
        env = dict(os.environ if base is None else base)
        env.update(self.env_vars())
        return env

    def launch(self) -> subprocess.Popen:
        """Start the CLI; raises OSError when the executable cannot be run."""
        command = [self.target, *self.args]
        logger.info(f"Launching {self.target}...")
        logger.info(f"Args: {' '.join(self.args)}")
        self.process = subprocess.Popen(command, env=self.build_env())
        return self.process

    def wait(self) -> int:
        """Wait for the CLI and return an exit code suitable for ``sys.exit``."""
        if self.process is None:
            raise RuntimeError("CLI has not been launched")

        code = self.process.wait()
        if code < 0:
            # killed by a signal; mirror the shell convention
            logger.info(f"{self.target} killed by signal {-code}")
            return 128 - code
        if code > 128:
            logger.info(f"{self.target} killed by signal {code - 128} (exit code {code})")
        else:
            logger.info(f"{self.target} exited with code {code}")
        return code

    def kill(self) -> None:
        if self.process is not None and self.process.poll() is None:
            logger.info(f"Sending SIGTERM to {self.target} (pid {self.process.pid})")
            self.process.send_signal(signal.SIGTERM)

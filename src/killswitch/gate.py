"""Readiness gate: wait until the network is secured, then start a program.

The "secured network" is detected by the firewall's default policies, which
must block all inbound and outbound traffic. The gate never gives up: an
application must never start against an unsecured network, so it waits
forever rather than failing open. If the network becomes unsecured later,
the started program is not stopped.

Intended as the entrypoint of the containers running next to the VPN and
firewall containers: they all start at the same time.
"""

from __future__ import annotations

import logging
import os
import time
from collections.abc import Callable, Sequence

from killswitch.errors import KillSwitchError
from killswitch.firewall.controller import PacketFilterController
from killswitch.firewall.models import Chain, Family

logger = logging.getLogger(__name__)

_LOCKED = "DROP"


def is_locked_down(controller: PacketFilterController) -> bool:
    """True when both INPUT and OUTPUT default to DROP. Errors mean not yet."""
    try:
        for chain in (Chain.INPUT, Chain.OUTPUT):
            if controller.get_policy(Family.IPV4, chain) != _LOCKED:
                return False
    except (KillSwitchError, OSError) as e:
        logger.debug("Cannot query the firewall: %s", e)
        return False
    return True


class ReadinessGate:
    """Blocks until ``is_ready()`` holds, polling at a fixed interval."""

    def __init__(
        self,
        is_ready: Callable[[], bool],
        interval: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._is_ready = is_ready
        self._interval = interval
        self._sleep = sleep

    def wait(self) -> int:
        """Block until ready. Returns the number of polls it took."""
        polls = 0
        while True:
            polls += 1
            try:
                ready = self._is_ready()
            except (KillSwitchError, OSError) as e:
                logger.debug("Readiness check failed: %s", e)
                ready = False
            if ready:
                logger.info("The firewall's block-rule is found, the firewall is ready.")
                return polls
            logger.info("Waiting for the firewall...")
            self._sleep(self._interval)

    def handoff(
        self,
        argv: Sequence[str],
        execvp: Callable[[str, list[str]], None] | None = None,
    ) -> None:
        """Replace this process with the guarded program. Raises OSError on failure."""
        args = list(argv)
        logger.info("Starting: %s", " ".join(args))
        (execvp or os.execvp)(args[0], args)

# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""
Generic reconciliation controller lifecycle.

A controller moves through CREATED -> INITIALIZED -> STARTED, never
backwards. Controllers without a cold-start step go CREATED -> STARTED
directly. The state lives behind one lock; every transition is checked, so
a controller can never be started without having been initialized.
"""

import logging
import sys
import threading
from enum import Enum
from typing import Callable, Optional

import constants
from errors import ConfigurationError, ControllerStateError, is_kind_undefined
from watch_manager import WatchManager


class ControllerState(Enum):
    CREATED = "created"
    INITIALIZED = "initialized"
    STARTED = "started"


class Lifecycle:
    """Lock-guarded controller state with checked transitions"""

    def __init__(self, requires_init: bool = True):
        self.requires_init = requires_init
        self._state = ControllerState.CREATED
        self._lock = threading.Lock()

    @property
    def state(self) -> ControllerState:
        with self._lock:
            return self._state

    def _allowed_sources(self, target: ControllerState):
        if target == ControllerState.INITIALIZED:
            return {ControllerState.CREATED} if self.requires_init else set()
        if target == ControllerState.STARTED:
            if self.requires_init:
                return {ControllerState.INITIALIZED}
            return {ControllerState.CREATED}
        return set()

    def advance(self,
                target: ControllerState,
                action: Optional[Callable[[], None]] = None) -> None:
        """
        Move to target, running action first while holding the lock.

        The state only changes if action returns normally. Raises
        ControllerStateError when target is not reachable from the current
        state.
        """
        with self._lock:
            if self._state not in self._allowed_sources(target):
                raise ControllerStateError(
                    f"cannot move controller from {self._state.value} "
                    f"to {target.value}")
            if action is not None:
                action()
            self._state = target


class ReconcileController:
    """
    Construct -> init -> start -> query lifecycle shared by the controllers.

    Subclasses that need a cold start override _cold_start and pass
    requires_init=True. start() blocks in the WatchManager until the stop
    event is set. A custom resource kind that the cluster does not serve
    ends the process.
    """

    def __init__(self,
                 name: str,
                 manager: WatchManager,
                 log: logging.Logger,
                 requires_init: bool = True):
        if log is None:
            raise ConfigurationError(
                f"{name}: a logger is required to construct the controller")
        if manager is None:
            raise ConfigurationError(f"{name}: a watch manager is required")

        self.name = name
        self.manager = manager
        self.log = log
        self._lifecycle = Lifecycle(requires_init=requires_init)

    @property
    def state(self) -> ControllerState:
        return self._lifecycle.state

    def init(self) -> None:
        """Run the cold start once; the controller may be started afterwards."""
        self.log.info(f"[INIT] Initializing {self.name}")
        try:
            self._lifecycle.advance(ControllerState.INITIALIZED,
                                    self._cold_start)
        except Exception as e:
            self.log.error(f"[INIT] Error initializing {self.name}: {e}")
            raise
        self.log.info(f"[INIT] {self.name} initialized")

    def start(self, stop_event: threading.Event) -> None:
        """
        Run the reconcile loop until stop_event is set.

        Raises ControllerStateError if the controller is not ready to start;
        other manager failures are raised to the caller. The lifecycle never
        moves backwards, so after such a failure the controller stays
        STARTED and cannot be started again; the caller restarts the
        process (cold start included).
        """
        self.log.info(f"[START] Starting {self.name}")
        try:
            self._lifecycle.advance(ControllerState.STARTED)
        except ControllerStateError as e:
            self.log.error(f"[START] Failed to start {self.name}: {e}")
            raise

        self.log.info("[START] Starting reconcile loop")
        try:
            self.manager.start(stop_event)
        except Exception as e:
            if is_kind_undefined(e):
                self.fatal(
                    f"{self.manager.kind.kind} CRD is not defined on "
                    "cluster, starting reconcile loop failed", e)
            raise

    def is_started(self) -> bool:
        """True once start() was entered, even if the loop has since ended."""
        return self._lifecycle.state == ControllerState.STARTED

    def fatal(self, message: str, err: BaseException) -> None:
        """Log and end the process; used when the CRD kind is not served."""
        self.log.critical(f"[FATAL] {message}: {err}")
        sys.exit(constants.EXIT_FATAL)

    def _cold_start(self) -> None:
        raise NotImplementedError(
            f"{self.name} does not define a cold start")

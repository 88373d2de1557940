"""
HotSwitchController / HotSwitchSession - scoped ownership of the server's
statement-logging setting.

Lifecycle:
1. SNAPSHOT - read the active setting (read-only)
2. APPLY - set the capture threshold
3. HOLD - wait out the window while the workload runs
4. RESTORE - put the snapshot back, exactly once, on every exit path

At most one session is open per controller; a second open() while one is
active is refused.
"""

import logging
import threading
import time
from typing import Callable, Dict, Optional

from ..protocol.errors import HotSwitchApplyError, HotSwitchRestoreError
from .strategy import DesiredSetting, HotSwitchStrategy, SettingSnapshot, STRATEGIES

logger = logging.getLogger(__name__)


class HotSwitchSession:
    """
    An applied hot-switch with guaranteed single restore.

    Usage:
        with controller.open("mysql", 30, DesiredSetting(0.2)) as session:
            offset = file_size(slow_log_path)
            session.hold(cancel)
            ... read the captured segment ...
        if session.restore_error:
            warnings.append(str(session.restore_error))
    """

    def __init__(
        self,
        controller: "HotSwitchController",
        strategy: HotSwitchStrategy,
        conn,
        snapshot: SettingSnapshot,
        window_secs: float,
        restore_on_exit: bool = True,
    ):
        self._controller = controller
        self.strategy = strategy
        self.conn = conn
        self.snapshot = snapshot
        self.window_secs = window_secs
        self.restore_on_exit = restore_on_exit
        self.opened_at = time.monotonic()

        self.closed = False
        self._close_lock = threading.Lock()
        self.restore_attempted = False
        self.restore_succeeded = False
        self.restore_error: Optional[HotSwitchRestoreError] = None

    @property
    def engine(self) -> str:
        return self.strategy.engine

    def hold(self, cancel: Optional[threading.Event] = None) -> bool:
        """
        Block until the window has elapsed.

        Returns:
            False when `cancel` was set before the window ended
        """
        remaining = self.window_secs - (time.monotonic() - self.opened_at)
        if remaining <= 0:
            return True
        if cancel is None:
            time.sleep(remaining)
            return True
        interrupted = cancel.wait(remaining)
        if interrupted:
            logger.info("hot-switch window interrupted after %.1fs", time.monotonic() - self.opened_at)
        return not interrupted

    def close(self, restore: bool = True) -> Optional[HotSwitchRestoreError]:
        """
        Restore the snapshot (unless `restore` is False) and release the
        connection. Idempotent: only the first call does anything; a
        concurrent caller waits for it to finish.

        Returns:
            The restore failure, if any. Never raises it.
        """
        with self._close_lock:
            if self.closed:
                return self.restore_error
            self.closed = True

            try:
                if restore:
                    self.restore_attempted = True
                    try:
                        self.strategy.restore(self.conn, self.snapshot)
                        self.restore_succeeded = True
                        logger.info("hot-switch restored %s settings: %s", self.engine, self.snapshot.values)
                    except HotSwitchRestoreError as e:
                        e.failed = dict(self.snapshot.values)
                        self.restore_error = e
                        logger.warning("hot-switch restore failed: %s", e)
                else:
                    logger.warning("hot-switch restore disabled; %s settings left applied", self.engine)
            finally:
                _close_quietly(self.conn)
                self._controller._release(self)
            return self.restore_error

    def __enter__(self) -> "HotSwitchSession":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close(restore=self.restore_on_exit)
        return False


class HotSwitchController:
    """
    Opens hot-switch sessions on fresh connections.

    Args:
        connect: zero-argument callable returning a DB-API connection
        strategies: engine -> HotSwitchStrategy (defaults to STRATEGIES)
        restore_on_exit: whether sessions restore when used as context managers
    """

    def __init__(
        self,
        connect: Callable[[], object],
        strategies: Optional[Dict[str, HotSwitchStrategy]] = None,
        restore_on_exit: bool = True,
    ):
        self.connect = connect
        self.strategies = strategies if strategies is not None else STRATEGIES
        self.restore_on_exit = restore_on_exit
        self._active: Optional[HotSwitchSession] = None

    @property
    def active(self) -> Optional[HotSwitchSession]:
        return self._active

    def open(self, engine: str, window_secs: float, desired_setting: DesiredSetting) -> HotSwitchSession:
        """
        Snapshot, then apply `desired_setting`.

        Raises:
            HotSwitchApplyError: when a session is already open, the engine
                has no strategy, or snapshot/apply fails (partial changes
                are rolled back before raising)
        """
        if self._active is not None:
            raise HotSwitchApplyError("a hot-switch session is already active")

        strategy = self.strategies.get(engine)
        if strategy is None:
            raise HotSwitchApplyError(f"no hot-switch strategy for engine '{engine}'")

        try:
            conn = self.connect()
        except Exception as e:
            raise HotSwitchApplyError(f"failed to connect for hot-switch: {e}") from e

        try:
            snapshot = strategy.snapshot(conn)
        except HotSwitchApplyError:
            _close_quietly(conn)
            raise

        try:
            strategy.apply(conn, desired_setting)
        except HotSwitchApplyError:
            try:
                strategy.restore(conn, snapshot)
            except HotSwitchRestoreError as restore_error:
                logger.error("rollback after failed hot-switch apply also failed: %s", restore_error)
            _close_quietly(conn)
            raise

        logger.info(
            "hot-switch applied on %s (threshold %.3fs, window %ss), previous: %s",
            engine, desired_setting.threshold_secs, window_secs, snapshot.values,
        )
        session = HotSwitchSession(
            self, strategy, conn, snapshot, window_secs,
            restore_on_exit=self.restore_on_exit,
        )
        self._active = session
        return session

    def _release(self, session: HotSwitchSession) -> None:
        if self._active is session:
            self._active = None


def _close_quietly(conn) -> None:
    try:
        conn.close()
    except Exception as e:
        logger.debug("ignoring error closing hot-switch connection: %s", e)

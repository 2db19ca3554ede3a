"""Leader election for exposed namespaces.

Every namespace a server exposes gets its own election on the
namespace's ``_leader/mutex`` node. The coordination store guarantees at
most one holder per mutex across the cluster and hands leadership to a
waiting candidate when the holder's session goes away.

Each election runs on a dedicated thread which:
1. Campaigns on the mutex (blocks until elected or cancelled)
2. Runs the leader callback once elected
3. Waits on the handle's release event, holding leadership
4. Releases leadership and exits once the event is set

Example:
    manager = LeaderElectionManager()
    handle = manager.start(
        connection,
        "/slacker/cluster/example/namespaces/api/_leader/mutex",
        on_become_leader,
        identifier="10.0.0.5:11000",
    )

    if handle.wait_for_leadership(timeout=5):
        ...

    manager.stop(handle)
"""

from __future__ import annotations

import contextvars
import logging
import threading
import time
from collections.abc import Callable

from slacker.cluster.coordination import CoordinationConnection, Election
from slacker.cluster.errors import ElectionError

logger = logging.getLogger(__name__)

# Called on the election thread while leadership is held
LeaderCallback = Callable[[CoordinationConnection], None]

DEFAULT_STOP_TIMEOUT = 10.0  # Seconds to wait for the election thread
CANCEL_POLL_INTERVAL = 0.1


class LeaderElectionHandle:
    """One running election and the thread campaigning for it."""

    def __init__(self, mutex_path: str, election: Election, identifier: str | None = None):
        self.mutex_path = mutex_path
        self.identifier = identifier
        self.error: BaseException | None = None

        self._election = election
        self._release = threading.Event()
        self._leading = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def is_leader(self) -> bool:
        """Check if this instance holds leadership and its callback has run."""
        return self._leading.is_set()

    @property
    def active(self) -> bool:
        """Check if the election thread is still running."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def released(self) -> bool:
        """Check if the election was stopped."""
        return self._release.is_set()

    def wait_for_leadership(self, timeout: float | None = None) -> bool:
        """Wait until this instance becomes the leader.

        Args:
            timeout: Maximum time to wait in seconds (None = wait forever)

        Returns:
            True if leadership was acquired, False if timeout
        """
        return self._leading.wait(timeout)


class LeaderElectionManager:
    """Starts and stops elections on a shared coordination connection."""

    def __init__(self, stop_timeout: float = DEFAULT_STOP_TIMEOUT) -> None:
        self.stop_timeout = stop_timeout

    def start(
        self,
        connection: CoordinationConnection,
        mutex_path: str,
        on_become_leader: LeaderCallback,
        identifier: str | None = None,
    ) -> LeaderElectionHandle:
        """Start campaigning for leadership on ``mutex_path``.

        Args:
            connection: Session the election runs on
            mutex_path: Persistent mutex node of the election
            on_become_leader: Runs on the election thread once elected
            identifier: Candidate id recorded with the bid

        Returns:
            Handle to pass to ``stop``
        """
        election = connection.election(mutex_path, identifier)
        handle = LeaderElectionHandle(mutex_path, election, identifier)
        # Election threads log with the caller's cluster context
        context = contextvars.copy_context()
        handle._thread = threading.Thread(
            target=context.run,
            args=(self._campaign, handle, connection, on_become_leader),
            name=f"leader-election:{mutex_path}",
            daemon=True,
        )
        handle._thread.start()
        logger.info(f"Started leader election on {mutex_path} as {identifier}")
        return handle

    def stop(self, handle: LeaderElectionHandle) -> None:
        """Withdraw from the election and release leadership if held.

        Safe to call more than once. Returns after the election thread
        has exited or ``stop_timeout`` has passed.
        """
        if handle.released:
            return

        handle._release.set()

        # A bid can be placed after the first cancel; keep cancelling until the thread exits
        deadline = time.monotonic() + self.stop_timeout
        while handle.active and time.monotonic() < deadline:
            handle._election.cancel()
            if handle._thread is not None:
                handle._thread.join(CANCEL_POLL_INTERVAL)

        if handle.active:
            logger.warning(
                f"Election thread for {handle.mutex_path} still running after {self.stop_timeout}s"
            )
        else:
            logger.info(f"Stopped leader election on {handle.mutex_path}")

    def _campaign(
        self,
        handle: LeaderElectionHandle,
        connection: CoordinationConnection,
        on_become_leader: LeaderCallback,
    ) -> None:
        """Election thread body."""
        try:
            handle._election.run(self._lead, handle, connection, on_become_leader)
        except ElectionError as e:
            handle.error = e
            logger.error(str(e))
        except Exception as e:
            handle.error = e
            logger.exception(f"Leader callback for {handle.mutex_path} failed")

    def _lead(
        self,
        handle: LeaderElectionHandle,
        connection: CoordinationConnection,
        on_become_leader: LeaderCallback,
    ) -> None:
        """Hold leadership until the handle is released."""
        if handle.released:
            return

        logger.info(f"{handle.identifier} is becoming the leader of {handle.mutex_path}")
        try:
            on_become_leader(connection)
            handle._leading.set()
            handle._release.wait()
        finally:
            handle._leading.clear()
            logger.info(f"{handle.identifier} released leadership of {handle.mutex_path}")

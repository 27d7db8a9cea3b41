"""Provisioning state polling and create reconciliation.

Volumes and snapshots move through transient states (Accepted, Creating,
Deleting, ...) before they are usable or gone. ``StateWaiter`` polls
them with a bounded exponential backoff and ``wait_for_volume_create``
decides what a failed wait means for a create request.
"""

import enum
import time
from typing import Callable, Iterable, Optional

from oslo_log import log as logging
from oslo_utils import excutils

from anf_storage import exceptions
from anf_storage.drivers.azure import api

LOG = logging.getLogger(__name__)

INITIAL_INTERVAL = 1.0
MULTIPLIER = 1.414
MAX_INTERVAL = 5.0

State = api.ProvisioningState


class Phase(enum.Enum):
    VALIDATING = "validating"
    PLACING = "placing"
    SUBMITTED = "submitted"
    POLLING = "polling"
    CLEANING = "cleaning"
    DONE = "done"
    FAILED = "failed"


class Workflow:
    """Tracks the phase of one lifecycle operation.

    Used as a context manager; leaving the block with an exception moves
    the workflow to FAILED, otherwise to DONE.
    """

    def __init__(self, operation: str, name: str):
        self.operation = operation
        self.name = name
        self.phase = Phase.VALIDATING
        self.history = [Phase.VALIDATING]

    def advance(self, phase: Phase) -> None:
        if phase == self.phase:
            return
        LOG.debug(
            "%s %s: %s -> %s", self.operation, self.name, self.phase.value, phase.value
        )
        self.phase = phase
        self.history.append(phase)

    def __enter__(self):
        LOG.debug("%s %s: %s", self.operation, self.name, self.phase.value)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.advance(Phase.FAILED if exc_type else Phase.DONE)
        return False


class StateWaiter:
    """Polls backend objects until they reach a desired provisioning state."""

    def __init__(
        self,
        client: api.AzureClient,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        initial_interval: float = INITIAL_INTERVAL,
        multiplier: float = MULTIPLIER,
        max_interval: float = MAX_INTERVAL,
    ):
        self.client = client
        self._sleep = sleep
        self._clock = clock
        self.initial_interval = initial_interval
        self.multiplier = multiplier
        self.max_interval = max_interval

    def _poll(self, fetch_state, kind, name, desired, abort_states, timeout):
        # Enum members hash by name, so compare plain state strings
        desired = str(desired)
        abort_states = {str(s) for s in abort_states or ()}
        deadline = self._clock() + timeout
        interval = self.initial_interval
        state = ""

        while True:
            try:
                state = str(fetch_state() or "")
            except exceptions.NotFoundError as e:
                # Azure has no Deleted state; deleted objects just vanish
                if desired == State.DELETED.value:
                    return State.DELETED.value
                state = ""
                details = "could not get %s status; %s" % (kind, e)
            except exceptions.AnfStorageException as e:
                state = ""
                details = "could not get %s status; %s" % (kind, e)
            else:
                if state == desired:
                    return state
                details = "%s %s state is %s, not %s" % (kind, name, state, desired)
                if state in abort_states:
                    LOG.error("%s %s reached terminal state %s", kind, name, state)
                    raise exceptions.TerminalStateError(state=state, details=details)

            now = self._clock()
            if now >= deadline:
                LOG.warning(
                    "%s %s did not reach state %s within %s seconds; last state %s",
                    kind, name, desired, timeout, state or "unknown",
                )
                raise exceptions.StateWaitTimeout(state=state, timeout=timeout, details=details)

            LOG.debug("%s %s: %s; waiting %.1f seconds", kind, name, details, interval)
            self._sleep(min(interval, deadline - now))
            interval = min(interval * self.multiplier, self.max_interval)

    def wait_for_volume_state(
        self,
        volume: api.FileSystem,
        desired: State,
        abort_states: Iterable[State] = (State.ERROR,),
        timeout: float = api.DEFAULT_TIMEOUT,
    ) -> str:
        """Wait for a volume to reach ``desired``.

        Returns:
            The final state

        Raises:
            TerminalStateError: If an abort state was reached
            StateWaitTimeout: If the deadline passed first
        """

        def _fetch():
            if volume.id:
                return self.client.volume_by_id(volume.id).provisioning_state
            return self.client.volume_by_creation_token(volume.creation_token).provisioning_state

        return self._poll(_fetch, "volume", volume.creation_token, desired, abort_states, timeout)

    def wait_for_snapshot_state(
        self,
        snapshot: api.Snapshot,
        volume: api.FileSystem,
        desired: State,
        abort_states: Iterable[State] = (State.ERROR,),
        timeout: float = api.SNAPSHOT_TIMEOUT,
    ) -> str:
        def _fetch():
            return self.client.snapshot_for_volume(volume, snapshot.name).provisioning_state

        return self._poll(_fetch, "snapshot", snapshot.name, desired, abort_states, timeout)

    def wait_for_volume_create(
        self,
        volume: api.FileSystem,
        create_timeout: float,
        cleanup_timeout: float = api.DEFAULT_TIMEOUT,
        workflow: Optional[Workflow] = None,
    ) -> None:
        """Wait for a new volume to become Available.

        * Still Accepted/Creating at the deadline: ``VolumeCreatingError``,
          so the caller retries the whole operation later.
        * Error: the volume is deleted (best effort) and the wait error is
          re-raised.
        * Deleting: the deletion is awaited and the wait error re-raised.
        * Anything else is logged and not treated as a failure.
        """
        if workflow:
            workflow.advance(Phase.POLLING)

        try:
            self.wait_for_volume_state(volume, State.AVAILABLE, (State.ERROR,), create_timeout)
        except exceptions.StateWaitError as e:
            state = e.state

            if state in (State.ACCEPTED, State.CREATING):
                LOG.debug("Volume %s is in %s state.", volume.creation_token, state)
                raise exceptions.VolumeCreatingError(
                    name=volume.creation_token, details=str(e)
                ) from e

            if state == State.ERROR:
                if workflow:
                    workflow.advance(Phase.CLEANING)
                with excutils.save_and_reraise_exception():
                    self._delete_failed_volume(volume)

            if state == State.DELETING:
                if workflow:
                    workflow.advance(Phase.CLEANING)
                with excutils.save_and_reraise_exception():
                    self._wait_for_failed_volume_deletion(volume, cleanup_timeout)

            LOG.error(
                "Unexpected volume state %s found for volume %s",
                state or "unknown", volume.creation_token,
            )

    def _delete_failed_volume(self, volume):
        try:
            self.client.delete_volume(volume)
        except exceptions.AnfStorageException as e:
            LOG.error(
                "Volume %s could not be cleaned up and must be manually deleted: %s",
                volume.creation_token, e,
            )
        else:
            LOG.info("Volume %s deleted.", volume.name)

    def _wait_for_failed_volume_deletion(self, volume, timeout):
        try:
            self.wait_for_volume_state(volume, State.DELETED, (State.ERROR,), timeout)
        except exceptions.StateWaitError as e:
            LOG.error(
                "Volume %s could not be cleaned up and must be manually deleted: %s",
                volume.creation_token, e,
            )

"""Keep one calendar event in step with an issue's scheduling fields.

The controller is driven by field-change notifications. Each notification
carries the issue before and after the change; the stored event reference
comes from the issue event store. From those the controller picks exactly
one transition, in this order:

    removed           issue deleted, drop its event
    no_assignee       nobody to sync for, do nothing
    assignee_changed  delete from the old calendar, create on the new one
    unscheduled       start time removed, delete the event
    scheduled         start time set and no event yet, create one
    kind_changed      all-day <-> timed, delete and recreate
    patched           other synced fields changed, patch in place
    unchanged         nothing to do

Failures never propagate to the caller. They are logged once, with the
issue, user and operation, and returned in the outcome.
"""
import logging
from dataclasses import dataclass, field, replace
from enum import Enum

from issue_calendar.calendar.client import CalendarConnection, CalendarGateway
from issue_calendar.calendar.payload import (
    COLOR,
    DESCRIPTION,
    REMINDER,
    SUMMARY,
    TIMING,
    build_event_patch,
    build_event_payload,
)
from issue_calendar.core.config import settings
from issue_calendar.core.errors import AuthError, ConfigurationError, SyncError
from issue_calendar.models.issue import EventReference, IssueSnapshot
from issue_calendar.stores import IssueEventStore

logger = logging.getLogger(__name__)


class Transition(str, Enum):
    REMOVED = "removed"
    NO_ASSIGNEE = "no_assignee"
    ASSIGNEE_CHANGED = "assignee_changed"
    UNSCHEDULED = "unscheduled"
    SCHEDULED = "scheduled"
    KIND_CHANGED = "kind_changed"
    PATCHED = "patched"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class IssueChange:
    """A field-change notification for one issue.

    ``before`` is None for a newly reported issue, which is scheduled on its
    assignee's calendar rather than treated as a reassignment. ``removed`` marks the
    notification sent when the issue is deleted; ``after`` then holds the
    issue's last state.
    """
    after: IssueSnapshot
    before: IssueSnapshot | None = None
    removed: bool = False

    @property
    def previous(self) -> IssueSnapshot:
        return self.before or IssueSnapshot(id=self.after.id)

    def changed(self, name: str) -> bool:
        return getattr(self.previous, name) != getattr(self.after, name)


@dataclass
class TransitionOutcome:
    """What a notification did to the issue's synced event."""
    issue_id: str
    transition: Transition
    event_id: str | None = None
    operations: list[str] = field(default_factory=list)
    error: SyncError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class EventLifecycleController:
    """Decides and performs the calendar calls for issue field changes."""

    def __init__(
        self,
        gateway: CalendarGateway,
        issues: IssueEventStore,
        time_zone: str | None = None,
        resolved_color_id: str | None = None,
    ):
        self.gateway = gateway
        self.issues = issues
        self.time_zone = time_zone or settings.event_time_zone
        self.resolved_color_id = resolved_color_id or settings.resolved_color_id

    def handle(self, change: IssueChange) -> TransitionOutcome:
        """
        Apply one field-change notification.

        Never raises SyncError: the issue's own update must go through even
        when the calendar cannot be updated.
        """
        issue = change.after
        ref = self.issues.get(issue.id)
        outcome = TransitionOutcome(
            issue_id=issue.id,
            transition=self.classify(change, ref),
            event_id=ref.event_id if ref else None,
        )

        try:
            self._apply(change, ref, outcome)
        except SyncError as e:
            outcome.error = e
            outcome.event_id = self._current_event_id(issue.id)
            logger.error(
                f"Calendar sync failed for issue {issue.id} "
                f"(transition {outcome.transition.value}, user {e.user_id or issue.assignee}, "
                f"operation {e.operation or 'prepare'}): {e}"
            )
            return outcome

        if outcome.operations:
            logger.info(
                f"Calendar sync for issue {issue.id}: {outcome.transition.value} "
                f"{outcome.operations} -> event {outcome.event_id or 'none'}"
            )
        else:
            logger.debug(f"Calendar sync for issue {issue.id}: {outcome.transition.value}")
        return outcome

    def classify(self, change: IssueChange, ref: EventReference | None) -> Transition:
        """Pick the transition for a notification given the stored reference."""
        issue = change.after

        if change.removed:
            return Transition.REMOVED

        if not issue.assignee and not change.previous.assignee:
            return Transition.NO_ASSIGNEE

        # A reference already owned by the new assignee means the move was applied
        moved = ref is not None and ref.owner is not None and ref.owner == issue.assignee
        if change.before is not None and change.changed("assignee") and not moved:
            return Transition.ASSIGNEE_CHANGED

        start_changed = change.changed("start")
        if start_changed and issue.start is None and ref:
            return Transition.UNSCHEDULED
        if start_changed and issue.start is not None and not ref:
            return Transition.SCHEDULED

        if ref and self._kind_changed(change, ref):
            return Transition.KIND_CHANGED

        if ref and self._patch_fields(change, ref):
            return Transition.PATCHED

        return Transition.UNCHANGED

    def _apply(self, change: IssueChange, ref: EventReference | None, outcome: TransitionOutcome):
        issue = change.after
        transition = outcome.transition

        if transition == Transition.REMOVED:
            owner = (ref.owner if ref else None) or issue.assignee
            if owner and ref:
                connection = self._connect(owner, "delete")
                self._delete(connection, ref.event_id, outcome)
                self._store(issue.id, None, outcome)

        elif transition == Transition.ASSIGNEE_CHANGED:
            self._reassign(change, ref, outcome)

        elif transition == Transition.UNSCHEDULED:
            connection = self._connect(issue.assignee, "delete")
            self._delete(connection, ref.event_id, outcome)
            self._store(issue.id, None, outcome)

        elif transition == Transition.SCHEDULED:
            connection = self._connect(issue.assignee, "create")
            self._create(connection, issue, outcome)

        elif transition == Transition.KIND_CHANGED:
            connection = self._connect(issue.assignee, "delete")
            self._delete(connection, ref.event_id, outcome)
            # Cleared before recreating: a failed create must not leave the old id behind
            self._store(issue.id, None, outcome)
            logger.info(
                f"Event kind of issue {issue.id} changed to {issue.event_kind}, recreating"
            )
            self._create(connection, issue, outcome)

        elif transition == Transition.PATCHED:
            fields = self._patch_fields(change, ref)
            changes = build_event_patch(issue, fields, self.time_zone, self.resolved_color_id)
            connection = self._connect(issue.assignee, "patch")
            self._call(connection, "patch", connection.patch_event, ref.event_id, changes)
            outcome.operations.append("patch")
            if TIMING in fields:
                self._store(
                    issue.id, replace(ref, start=issue.start, duration=issue.duration), outcome
                )

    def _reassign(self, change: IssueChange, ref: EventReference | None, outcome: TransitionOutcome):
        issue = change.after
        old_owner = (ref.owner if ref and ref.owner else None) or change.previous.assignee

        if old_owner and ref:
            try:
                connection = self._connect(old_owner, "delete")
                self._delete(connection, ref.event_id, outcome)
            except SyncError as e:
                logger.warning(
                    f"Failed to delete event {ref.event_id} of issue {issue.id} "
                    f"from previous assignee {old_owner}: {e}"
                )
            self._store(issue.id, None, outcome)

        if not issue.assignee:
            logger.info(f"Issue {issue.id} unassigned, calendar event removed")
            return
        if issue.start is None:
            logger.info(f"Issue {issue.id} has no start time, skipping event creation")
            return

        try:
            connection = self._connect(issue.assignee, "create")
        except (AuthError, ConfigurationError) as e:
            logger.warning(
                f"Not creating an event for issue {issue.id} on the calendar of "
                f"{issue.assignee}: {e}"
            )
            return
        self._create(connection, issue, outcome)

    def _kind_changed(self, change: IssueChange, ref: EventReference) -> bool:
        if change.after.start is None:
            return False
        if ref.kind:
            return ref.kind != change.after.event_kind
        return bool(change.previous.duration) != bool(change.after.duration)

    def _patch_fields(self, change: IssueChange, ref: EventReference) -> set[str]:
        fields: set[str] = set()
        if change.changed("summary"):
            fields.add(SUMMARY)
        if change.changed("description"):
            fields.add(DESCRIPTION)
        if change.after.start is not None and self._timing_changed(change, ref):
            fields.add(TIMING)
        if change.changed("remind_before"):
            fields.add(REMINDER)
        if change.changed("resolved"):
            fields.update({DESCRIPTION, COLOR})
        return fields

    def _timing_changed(self, change: IssueChange, ref: EventReference) -> bool:
        if ref.start is not None:
            # Compare with what the event was last written from
            return (ref.start, ref.duration) != (change.after.start, change.after.duration)
        return change.changed("start") or change.changed("duration")

    def _connect(self, user_id: str, operation: str) -> CalendarConnection:
        try:
            return self.gateway.connect(user_id)
        except SyncError as e:
            raise e.with_context(operation, user_id)

    def _call(self, connection: CalendarConnection, operation: str, method, *args):
        try:
            return method(*args)
        except SyncError as e:
            raise e.with_context(f"{connection.transport} {operation}", connection.user_id)

    def _create(self, connection: CalendarConnection, issue: IssueSnapshot, outcome: TransitionOutcome):
        try:
            event = build_event_payload(issue, self.time_zone, self.resolved_color_id)
        except SyncError as e:
            raise e.with_context("build payload", connection.user_id)

        event_id = self._call(connection, "create", connection.create_event, event)
        outcome.operations.append("create")
        self._store(
            issue.id,
            EventReference(
                event_id=event_id,
                kind=event.kind,
                owner=connection.user_id,
                start=issue.start,
                duration=issue.duration,
            ),
            outcome,
        )

    def _delete(self, connection: CalendarConnection, event_id: str, outcome: TransitionOutcome):
        self._call(connection, "delete", connection.delete_event, event_id)
        outcome.operations.append("delete")

    def _store(self, issue_id: str, ref: EventReference | None, outcome: TransitionOutcome):
        self.issues.put(issue_id, ref)
        outcome.event_id = ref.event_id if ref else None

    def _current_event_id(self, issue_id: str) -> str | None:
        ref = self.issues.get(issue_id)
        return ref.event_id if ref else None

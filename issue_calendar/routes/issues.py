"""Issue field-change notifications from the tracker."""
from datetime import datetime

from fastapi import APIRouter, Depends
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from issue_calendar.calendar.sync import EventLifecycleController, IssueChange
from issue_calendar.core.dependencies import get_controller, get_issue_store
from issue_calendar.models import IssueSnapshot
from issue_calendar.stores import SqlIssueEventStore

router = APIRouter(prefix="/issues", tags=["issues"])


class IssueFields(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    summary: str = ""
    description: str | None = None
    assignee: str | None = None
    start: datetime | None = None
    duration: str | None = None
    remind_before: str | None = None
    resolved: bool = False

    def to_snapshot(self) -> IssueSnapshot:
        return IssueSnapshot(**self.model_dump())


class IssueChangeNotification(BaseModel):
    before: IssueFields | None = None
    after: IssueFields
    removed: bool = False


@router.post("/changes")
def issue_changed(
    notification: IssueChangeNotification,
    controller: EventLifecycleController = Depends(get_controller),
):
    """
    Apply a field change to the issue's calendar event.

    Always answers 200: a calendar failure is reported in the body and must
    not fail the tracker's own update.
    """
    change = IssueChange(
        after=notification.after.to_snapshot(),
        before=notification.before.to_snapshot() if notification.before else None,
        removed=notification.removed,
    )
    outcome = controller.handle(change)
    return {
        "issueId": outcome.issue_id,
        "transition": outcome.transition.value,
        "eventId": outcome.event_id,
        "operations": outcome.operations,
        "ok": outcome.ok,
        "error": str(outcome.error) if outcome.error else None,
    }


@router.get("/{issue_id}/event")
def issue_event(issue_id: str, issues: SqlIssueEventStore = Depends(get_issue_store)):
    """The calendar event currently synced for an issue, if any."""
    ref = issues.get(issue_id)
    if ref is None:
        return {"eventId": None}
    return {"eventId": ref.event_id, "kind": ref.kind, "owner": ref.owner}

from issue_calendar.models.issue import EventReference, IssueEventLink, IssueSnapshot
from issue_calendar.models.user import UserCalendarSettings

__all__ = ["EventReference", "IssueEventLink", "IssueSnapshot", "UserCalendarSettings"]

"""Calendar publishing of study schedules."""

from learnpath.engines.calendar.calendar_publisher import CalendarPublisher, PublishResult

__all__ = ["CalendarPublisher", "PublishResult"]

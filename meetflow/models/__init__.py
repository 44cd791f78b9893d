from meetflow.models.meeting import STATUS_ORDER, Meeting, MeetingParticipant, MeetingStatus

__all__ = [
    "Meeting",
    "MeetingParticipant",
    "MeetingStatus",
    "STATUS_ORDER",
]

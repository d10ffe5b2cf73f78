"""
Session Analytics
Read-only attendance statistics computed from a loaded session document
"""

from typing import Any, Dict

from ..models.video_session import ParticipantStatus

ATTENDED_STATUSES = (ParticipantStatus.JOINED.value, ParticipantStatus.LEFT.value)


def compute_session_analytics(session: Dict[str, Any]) -> Dict[str, Any]:
    """
    Attendance statistics for one session

    A participant counts as attended once they reached joined, whether or
    not they have left since. Averages only consider participants with a
    recorded attendance duration.
    """
    participants = session.get("participants", [])

    total_registered = len(participants)
    total_attended = len([p for p in participants if p.get("status") in ATTENDED_STATUSES])

    attendance_rate = 0
    if total_registered > 0:
        attendance_rate = round(total_attended / total_registered * 100, 2)

    durations = [p.get("attendance_duration", 0) for p in participants if p.get("attendance_duration", 0) > 0]
    average_attendance_duration = sum(durations) / max(len(durations), 1)

    return {
        "total_registered": total_registered,
        "total_attended": total_attended,
        "attendance_rate": attendance_rate,
        "average_attendance_duration": average_attendance_duration,
        "session_duration": session.get("actual_duration") or 0,
        "participant_details": [
            {
                "user_id": p["user_id"],
                "status": p.get("status"),
                "joined_at": p.get("joined_at"),
                "left_at": p.get("left_at"),
                "attendance_duration": p.get("attendance_duration", 0)
            }
            for p in participants
        ]
    }

"""
Invitation campaign statistics.
"""

from __future__ import annotations

import pandas as pd

from services.models import Invitation, InvitationStats, InvitationStatus

_RESPONDED = (InvitationStatus.ACCEPTED.value, InvitationStatus.DECLINED.value)


def invitations_frame(invitations: list[Invitation]) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "status": i.status.value,
                "created_at": i.created_at,
                "responded_at": i.responded_at,
            }
            for i in invitations
        ],
        columns=["status", "created_at", "responded_at"],
    )


def aggregate_invitation_stats(invitations: list[Invitation]) -> InvitationStats:
    """Counts per status, response rate and mean response time for one manuscript."""
    if not invitations:
        return InvitationStats()

    df = invitations_frame(invitations)
    counts = df["status"].value_counts()
    count = {s.value: int(counts.get(s.value, 0)) for s in InvitationStatus}
    total = len(df)

    responded = df[df["status"].isin(_RESPONDED) & df["responded_at"].notna()]
    if responded.empty:
        avg_hours = 0.0
    else:
        deltas = pd.to_datetime(responded["responded_at"], utc=True) - pd.to_datetime(responded["created_at"], utc=True)
        avg_hours = float(deltas.dt.total_seconds().mean() / 3600)

    return InvitationStats(
        total=total,
        pending=count[InvitationStatus.PENDING.value],
        accepted=count[InvitationStatus.ACCEPTED.value],
        declined=count[InvitationStatus.DECLINED.value],
        expired=count[InvitationStatus.EXPIRED.value],
        cancelled=count[InvitationStatus.CANCELLED.value],
        response_rate=(count["accepted"] + count["declined"]) / total,
        avg_response_time_hours=avg_hours,
    )

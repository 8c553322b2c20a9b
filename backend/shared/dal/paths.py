"""Logical document keys shared by every client and the server.

Sessions and player stats are addressed by slash-separated paths scoped to
an application id, so several deployments can share one store.
"""


def session_path(app_id: str, pin: str) -> str:
    return f"artifacts/{app_id}/sessions/{pin}"


def stats_path(app_id: str, uid: str) -> str:
    return f"artifacts/{app_id}/users/{uid}/playerStats/summary"

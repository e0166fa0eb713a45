"""Deterministic names for backup targets and jobs.

Names are ``<kind>:<service_id>:<plan_id>:<instance_id>``. Each segment is
percent-encoded (``urllib.parse.quote`` with no safe characters) before
joining, so a ``:`` inside an ID becomes ``%3A`` and can never be confused
with a separator. Percent-encoding is injective, which makes the mapping
from keys to names collision-free. Plain GUIDs are left unchanged.
"""

from __future__ import annotations

from typing import NamedTuple
from urllib.parse import quote

SEPARATOR = ':'


class ScheduleKey(NamedTuple):
    service_id: str
    plan_id: str
    instance_id: str


class ScheduleNames(NamedTuple):
    target: str
    job: str


def _join(kind: str, key: ScheduleKey) -> str:
    return SEPARATOR.join(
        [kind, *(quote(segment, safe='') for segment in key)]
    )


def schedule_names(key: ScheduleKey) -> ScheduleNames:
    """Target and job names for an instance's backup schedule."""
    return ScheduleNames(target=_join('targets', key), job=_join('jobs', key))

"""Store key schema for pushtask.

Key format: {namespace}/{...}/{identifier}

- unique_job/<unique_id>          owner job id of a unique job lock
- batch_job/job/<job_id>          serialized job owning a batch node
- batch_job/state/<job_id>        child job id -> status map
- cron_job/<job_id>               cron instance processing flag
- cron_schedule/<schedule_id>     cron schedule config
- cron_schedules                  set index of cron schedule ids
- lock/<key>                      short-lived mutex guarding <key>
- payload/<job_id>                job arguments offloaded from a large payload
"""

from __future__ import annotations

SEPARATOR = "/"


def join(*parts: object) -> str:
    """Join key parts with the namespace separator."""
    return SEPARATOR.join(str(part) for part in parts)


class StoreKeys:
    """Store key generator following the namespace layout."""

    UNIQUE_JOB = "unique_job"
    BATCH_JOB = "batch_job"
    CRON_JOB = "cron_job"
    CRON_SCHEDULE = "cron_schedule"
    CRON_SCHEDULE_INDEX = "cron_schedules"
    LOCK = "lock"
    PAYLOAD = "payload"

    @classmethod
    def unique_job(cls, unique_id: str) -> str:
        """Key for a unique job lock."""
        return join(cls.UNIQUE_JOB, unique_id)

    @classmethod
    def batch_job(cls, job_id: str) -> str:
        """Key for the serialized job owning a batch node."""
        return join(cls.BATCH_JOB, "job", job_id)

    @classmethod
    def batch_state(cls, job_id: str) -> str:
        """Key for the child state map of a batch node."""
        return join(cls.BATCH_JOB, "state", job_id)

    @classmethod
    def batch_meta(cls, name: str) -> str:
        """Job meta key owned by the batch subsystem."""
        return join(cls.BATCH_JOB, name)

    @classmethod
    def payload(cls, job_id: str) -> str:
        """Key for job arguments stored outside the task payload."""
        return join(cls.PAYLOAD, job_id)

    @classmethod
    def cron_job(cls, job_id: str) -> str:
        """Key for a cron instance processing flag."""
        return join(cls.CRON_JOB, job_id)

    @classmethod
    def cron_meta(cls, name: str) -> str:
        """Job meta key owned by the cron subsystem."""
        return join(cls.CRON_JOB, name)

    @classmethod
    def cron_schedule(cls, schedule_id: str) -> str:
        """Key for a cron schedule config."""
        return join(cls.CRON_SCHEDULE, schedule_id)

    @classmethod
    def lock(cls, key: str) -> str:
        """Key for the mutex guarding another key."""
        return join(cls.LOCK, key)

    @classmethod
    def parse_key(cls, key: str) -> dict[str, str] | None:
        """Parse a store key into its namespace and identifier.

        Returns:
            Dict with namespace, kind (batch keys only) and identifier,
            or None if the key is not part of the layout.
        """
        parts = key.split(SEPARATOR)
        if len(parts) < 2:
            return None

        namespace = parts[0]
        if namespace == cls.BATCH_JOB and len(parts) >= 3 and parts[1] in ("job", "state"):
            identifier = SEPARATOR.join(parts[2:])
            return {"namespace": namespace, "kind": parts[1], "identifier": identifier}
        if namespace in (cls.UNIQUE_JOB, cls.CRON_JOB, cls.CRON_SCHEDULE, cls.LOCK, cls.PAYLOAD):
            return {"namespace": namespace, "identifier": SEPARATOR.join(parts[1:])}
        return None

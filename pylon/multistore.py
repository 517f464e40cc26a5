"""Routing of job operations across per-pylon stores."""

from __future__ import annotations

import threading
from typing import Any

from pylon.store import Job, Store


class MultiStore:
    """Routes job operations to per-pylon stores.

    Writes go to the store of the job's pylon; reads consult an index of
    job ID to pylon name and fall back to searching every store.
    """

    def __init__(self, stores: dict[str, Store]) -> None:
        self._lock = threading.RLock()
        self._stores = stores
        self._index: dict[str, str] = {}

    def _store_for(self, pylon_name: str) -> Store | None:
        with self._lock:
            return self._stores.get(pylon_name)

    def _store_for_job(self, job_id: str) -> Store | None:
        with self._lock:
            pylon_name = self._index.get(job_id)
        if pylon_name is None:
            return None
        return self._store_for(pylon_name)

    def put(self, job: Job) -> None:
        with self._lock:
            self._index[job.id] = job.pylon_name
        store = self._store_for(job.pylon_name)
        if store is not None:
            store.put(job)

    def get(self, job_id: str) -> Job | None:
        store = self._store_for_job(job_id)
        if store is not None:
            return store.get(job_id)
        with self._lock:
            stores = list(self._stores.values())
        for candidate in stores:
            job = candidate.get(job_id)
            if job is not None:
                return job
        return None

    def get_by_topic(self, topic_id: str) -> Job | None:
        with self._lock:
            stores = list(self._stores.values())
        for store in stores:
            job = store.get_by_topic(topic_id)
            if job is not None:
                return job
        return None

    def list(self) -> list[Job]:
        with self._lock:
            stores = list(self._stores.values())
        return [job for store in stores for job in store.list()]

    def update_status(self, job_id: str, status: str) -> None:
        store = self._store_for_job(job_id)
        if store is not None:
            store.update_status(job_id, status)

    def update_session_id(self, job_id: str, session_id: str) -> None:
        store = self._store_for_job(job_id)
        if store is not None:
            store.update_session_id(job_id, session_id)

    def set_completed(self, job_id: str, output: Any) -> None:
        store = self._store_for_job(job_id)
        if store is not None:
            store.set_completed(job_id, output)

    def set_failed(self, job_id: str, error: str) -> None:
        store = self._store_for_job(job_id)
        if store is not None:
            store.set_failed(job_id, error)

    def delete(self, job_id: str) -> None:
        store = self._store_for_job(job_id)
        if store is not None:
            store.delete(job_id)
        with self._lock:
            self._index.pop(job_id, None)

    def save_payload_sample(self, pylon_name: str, body: dict[str, Any]) -> None:
        store = self._store_for(pylon_name)
        if store is not None:
            store.save_payload_sample(pylon_name, body)

    def recover_from_db(self) -> int:
        """Recover non-terminal jobs in every store and index them; return the total."""
        with self._lock:
            stores = list(self._stores.values())
        total = 0
        for store in stores:
            total += store.recover_from_db()
            for job in store.list():
                with self._lock:
                    self._index[job.id] = job.pylon_name
        return total
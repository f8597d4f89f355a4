from uuid import uuid4
from pathlib import Path
from typing import Dict, Optional, Any, List
import asyncio
import json
import logging
import os

from fastapi import Request
from pydantic import ValidationError

from ..models.incidents import Incident, utc_timestamp

logger = logging.getLogger(__name__)


class IncidentStore:
    """
    File-backed, latest-first collection of incident records.

    The whole collection is rewritten to ``data_file`` after every mutation.
    Mutations are serialized through a single lock so concurrent requests
    cannot interleave between changing the collection and writing it out.
    """

    def __init__(self, data_file: Path):
        self.data_file = Path(data_file)
        self._incidents: List[Incident] = []
        self._lock = asyncio.Lock()
        self._load_from_file()

    def _load_from_file(self):
        """
        Populate the collection from disk.

        A missing or unreadable file yields an empty collection; individual
        malformed entries are skipped.
        """
        if not self.data_file.is_file():
            logger.info(f"No incident data file at {self.data_file}, starting empty")
            return

        try:
            with open(self.data_file, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not load incidents from {self.data_file}: {e}")
            self._incidents = []
            return

        if not isinstance(data, list):
            logger.warning(
                f"Ignoring incident data file {self.data_file}: expected a list, got {type(data).__name__}"
            )
            return

        incidents = []
        for entry in data:
            try:
                incidents.append(Incident.model_validate(entry))
            except ValidationError as e:
                logger.warning(f"Skipping malformed incident record: {e}")

        self._incidents = incidents
        logger.info(f"Incidents loaded from file, count={len(self._incidents)}")

    def _write_file(self, snapshot: List[Dict[str, Any]]):
        self.data_file.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.data_file.with_name(self.data_file.name + ".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(snapshot, f, indent=2)
        os.replace(tmp_path, self.data_file)

    async def _persist(self):
        """
        Rewrite the data file from the in-memory collection.

        Write failures are logged and not retried; the in-memory change stands.
        """
        snapshot = [incident.to_json() for incident in self._incidents]
        try:
            await asyncio.to_thread(self._write_file, snapshot)
            logger.debug(f"Incidents saved to file, count={len(snapshot)}")
        except Exception as e:
            logger.error(f"Could not save incidents to {self.data_file}: {e}")

    async def create(self, fields: Dict[str, Any]) -> Incident:
        """
        Create a new incident at the front of the collection.

        Args:
            fields: Already-validated incident fields (title, incident_type, ...)

        Returns:
            The stored incident with its generated id and created_at
        """
        data = {k: v for k, v in fields.items() if k not in ("id", "created_at")}
        incident = Incident(id=str(uuid4()), created_at=utc_timestamp(), **data)

        async with self._lock:
            self._incidents.insert(0, incident)
            await self._persist()

        logger.info(
            f"Incident created id={incident.id} title={incident.title!r} type={incident.incident_type}"
        )
        return incident.model_copy(deep=True)

    def get_all(self) -> List[Incident]:
        """Return a copy of all incidents, newest first."""
        return [incident.model_copy(deep=True) for incident in self._incidents]

    def find_by_id(self, incident_id: str) -> Optional[Incident]:
        """
        Retrieve an incident by its ID.

        Returns:
            A copy of the incident if found, None otherwise
        """
        index = self._index_of(incident_id)
        if index is None:
            return None
        return self._incidents[index].model_copy(deep=True)

    def count(self) -> int:
        return len(self._incidents)

    def _index_of(self, incident_id: str) -> Optional[int]:
        for index, incident in enumerate(self._incidents):
            if incident.id == incident_id:
                return index
        return None

    async def update(self, incident_id: str, fields: Dict[str, Any]) -> Optional[Incident]:
        """
        Merge new field values onto an existing incident.

        ``id`` and ``created_at`` are never changed. ``image`` keeps its stored
        value unless ``fields`` carries a new one.

        Returns:
            The updated incident, or None when no incident has this ID
        """
        async with self._lock:
            index = self._index_of(incident_id)
            if index is None:
                logger.warning(f"Attempted to update non-existent incident {incident_id}")
                return None

            existing = self._incidents[index]
            merged = existing.model_dump()
            merged.update(fields)
            merged["id"] = existing.id
            merged["created_at"] = existing.created_at
            if fields.get("image") is None:
                merged["image"] = existing.image

            updated = Incident.model_validate(merged)
            self._incidents[index] = updated
            await self._persist()

        logger.info(f"Incident updated id={updated.id} title={updated.title!r}")
        return updated.model_copy(deep=True)

    async def delete(self, incident_id: str) -> bool:
        """
        Remove an incident.

        Returns:
            True if an incident was removed, False if none matched
        """
        async with self._lock:
            index = self._index_of(incident_id)
            if index is None:
                logger.warning(f"Attempted to delete non-existent incident {incident_id}")
                return False

            del self._incidents[index]
            await self._persist()

        logger.info(f"Incident deleted id={incident_id}")
        return True


def get_incident_store(request: Request) -> IncidentStore:
    return request.app.state.incident_store

"""Patient resolution from encounter identifiers."""
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable, Mapping, Optional
from urllib.parse import quote

import httpx
from fastapi.concurrency import run_in_threadpool
from sqlalchemy import column, select, table
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from clinical_images.identifiers import normalize_identifier
from config import Settings

logger = logging.getLogger(__name__)


class PatientResolver(ABC):
    """Abstract base class for encounter to patient lookups.

    Implementations fail soft: a miss or any lookup failure yields None
    and is never raised to the caller.
    """

    @abstractmethod
    async def resolve(self, encounter_id: str) -> Optional[str]:
        """Return the patient owning ``encounter_id``, or None if unknown."""
        pass


class StaticPatientResolver(PatientResolver):
    """Resolver backed by a fixed encounter to patient mapping."""

    def __init__(self, mapping: Optional[Mapping[str, str]] = None):
        self.mapping = {
            normalize_identifier(k): normalize_identifier(v)
            for k, v in (mapping or {}).items()
        }

    async def resolve(self, encounter_id: str) -> Optional[str]:
        patient_id = self.mapping.get(normalize_identifier(encounter_id))
        if patient_id is None:
            logger.debug(f"No static patient mapping for encounter {encounter_id}")
        return patient_id


class HttpPatientResolver(PatientResolver):
    """Resolver that queries the encounter directory service over HTTP."""

    def __init__(self, settings: Settings):
        """Initialize the HTTP resolver.

        Args:
            settings: Application settings containing the encounter directory configuration
        """
        if not settings.encounter_directory_url:
            raise ValueError("ENCOUNTER_DIRECTORY_URL must be set for the http patient resolver")

        self.base_url = settings.encounter_directory_url.rstrip("/")
        self.timeout = settings.encounter_directory_timeout

    async def resolve(self, encounter_id: str) -> Optional[str]:
        """Look up ``GET {base_url}/encounters/{encounter_id}``.

        The patient is read from ``patientId`` or ``patient_id`` in the JSON
        body. The encounter ID is escaped as a single path segment. A 404, a
        request that cannot be sent, or a malformed body counts as a miss.
        """
        url = f"{self.base_url}/encounters/{quote(str(encounter_id), safe='')}"
        logger.debug(f"Resolving patient for encounter {encounter_id} via {url}")
        start_time = time.time()

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.get(url)

                if response.status_code == 404:
                    logger.warning(f"Encounter {encounter_id} not found in directory")
                    return None
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            logger.warning(f"Encounter directory lookup failed for {encounter_id}: {e}")
            return None
        except ValueError as e:
            logger.warning(f"Encounter directory returned invalid JSON for {encounter_id}: {e}")
            return None

        if not isinstance(data, dict):
            logger.warning(f"Unexpected encounter payload for {encounter_id}")
            return None

        patient_id = normalize_identifier(data.get("patientId", data.get("patient_id")))
        elapsed_time = time.time() - start_time
        logger.info(
            f"Encounter lookup completed in {elapsed_time:.2f}s, "
            f"encounter {encounter_id} -> patient {patient_id}"
        )
        return patient_id


class DatabasePatientResolver(PatientResolver):
    """Resolver that reads an encounter table owned by another system."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        table_name: str = "encounters",
        id_column: str = "id",
        patient_column: str = "patient_id",
    ):
        self.session_factory = session_factory
        self._table = table(table_name, column(id_column), column(patient_column))
        self._id_column = self._table.c[id_column]
        self._patient_column = self._table.c[patient_column]

    async def resolve(self, encounter_id: str) -> Optional[str]:
        # Session calls block, so they run off the event loop
        return await run_in_threadpool(self._lookup, encounter_id)

    def _lookup(self, encounter_id: str) -> Optional[str]:
        query = select(self._patient_column).where(self._id_column == encounter_id).limit(1)
        session = self.session_factory()
        try:
            patient_id = session.execute(query).scalar()
        except SQLAlchemyError as e:
            logger.warning(f"Encounter table lookup failed for {encounter_id}: {e}")
            return None
        finally:
            session.close()

        if patient_id is None:
            logger.debug(f"Encounter {encounter_id} not found in encounter table")
        return normalize_identifier(patient_id)


def create_patient_resolver(
    settings: Settings,
    session_factory: Optional[Callable[[], Session]] = None,
) -> PatientResolver:
    """Factory function to create the patient resolver selected in settings.

    Args:
        settings: Application settings
        session_factory: Session factory for the database resolver

    Returns:
        PatientResolver instance
    """
    if settings.patient_resolver == "http":
        logger.info("Creating HttpPatientResolver")
        return HttpPatientResolver(settings)
    if settings.patient_resolver == "database":
        if session_factory is None:
            raise ValueError("A session factory is required for the database patient resolver")
        logger.info(f"Creating DatabasePatientResolver on table {settings.encounter_table}")
        return DatabasePatientResolver(
            session_factory,
            table_name=settings.encounter_table,
            id_column=settings.encounter_id_column,
            patient_column=settings.encounter_patient_column,
        )
    logger.info(f"Creating StaticPatientResolver with {len(settings.encounter_patient_map)} entries")
    return StaticPatientResolver(settings.encounter_patient_map)

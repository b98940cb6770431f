"""
Affinity v2 registry client.

Responsibilities:
- Discover the status field and its dropdown options on one list
- Page through list entries and turn them into Entity records
- Write a single dropdown value for one list entry

Non-Responsibilities:
- Deciding what to write (see gate.py)
- Retrying failed calls

Every call carries the configured timeout. HTTP, timeout and connection
failures surface as RegistryError.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Iterator, List, Optional

import requests

from .config import RegistrySettings
from .errors import ConfigError, RegistryError
from .logger import get_logger
from .models import Entity

logger = get_logger()

PERSON_VALUE_TYPES = {"person", "person-multi"}
COMPANY_VALUE_TYPES = {"company", "company-multi"}


@dataclass(frozen=True)
class StatusField:
    id: Any
    name: str
    options: Dict[str, Any] = field(default_factory=dict)


def _payload(response: Optional[requests.Response]) -> Any:
    if response is None:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text[:500] if response.text else None


def _as_list(data: Any) -> List[Any]:
    if data is None:
        return []
    return data if isinstance(data, list) else [data]


def _person_name(data: Dict[str, Any]) -> str:
    first = data.get("firstName") or data.get("first_name") or ""
    last = data.get("lastName") or data.get("last_name") or ""
    full = " ".join(p.strip() for p in (first, last) if p and p.strip())
    return full or str(data.get("name") or "").strip()


def parse_options(field_data: Dict[str, Any]) -> Dict[str, Any]:
    """Option label -> option id from a field definition."""
    raw = (
        field_data.get("dropdown_options")
        or field_data.get("dropdownOptions")
        or field_data.get("options")
        or []
    )
    options: Dict[str, Any] = {}
    for option in raw:
        if not isinstance(option, dict):
            continue
        label = str(option.get("name") or option.get("label") or option.get("text") or "").strip()
        if label and option.get("id") is not None and label not in options:
            options[label] = option["id"]
    return options


def entity_from_entry(entry: Dict[str, Any], status_field_id: Any = None) -> Optional[Entity]:
    """
    Build an Entity from one list entry.

    Names linked through person/company field values become associations.
    The status field's dropdown text is the entity's current label.

    Returns:
        Entity, or None when the entry carries no usable name
    """
    ent = entry.get("entity") or {}
    first = ent.get("firstName") or ent.get("first_name")
    last = ent.get("lastName") or ent.get("last_name")
    name = str(ent.get("name") or "").strip()

    associations: List[str] = []
    current_label = ""
    current_option_id = None
    for f in entry.get("fields") or ent.get("fields") or []:
        if not isinstance(f, dict):
            continue
        value = f.get("value") or {}
        if not isinstance(value, dict):
            continue
        data = value.get("data")
        value_type = value.get("type")

        if status_field_id is not None and f.get("id") == status_field_id:
            if isinstance(data, dict):
                current_label = str(data.get("text") or "").strip()
                current_option_id = data.get("dropdownOptionId", data.get("id"))
            continue

        if value_type in PERSON_VALUE_TYPES:
            names = [_person_name(d) for d in _as_list(data) if isinstance(d, dict)]
        elif value_type in COMPANY_VALUE_TYPES:
            names = [str(d.get("name") or "").strip() for d in _as_list(data) if isinstance(d, dict)]
        else:
            continue
        associations.extend(n for n in names if n)

    entity = Entity(
        id=entry.get("id"),
        name=name,
        entity_id=ent.get("id"),
        type_tag=entry.get("type"),
        first_name=first,
        last_name=last,
        associations=tuple(associations),
        current_label=current_label,
        current_option_id=current_option_id,
    )
    if not entity.display_name:
        return None
    return entity


class AffinityClient:
    """Thin requests.Session wrapper around the Affinity v2 list endpoints."""

    def __init__(self, settings: RegistrySettings, session: Optional[requests.Session] = None):
        settings.require()
        self.settings = settings
        self.session = session or requests.Session()
        self.session.headers.update({
            "Authorization": f"Bearer {settings.token}",
            "Content-Type": "application/json",
        })

    @property
    def list_path(self) -> str:
        return f"/lists/{self.settings.list_id}"

    def _url(self, path: str) -> str:
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.settings.base_url}{path}"

    def _request(self, method: str, path: str, **kwargs) -> Any:
        url = self._url(path)
        logger.record_api_call()
        try:
            resp = self.session.request(method, url, timeout=self.settings.timeout, **kwargs)
            resp.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code if e.response is not None else None
            logger.error("Affinity request failed", method=method, url=url, status=status)
            raise RegistryError(
                f"Affinity request failed ({status}): {method} {path}",
                status=status,
                payload=_payload(e.response),
            ) from e
        except requests.exceptions.Timeout as e:
            logger.warning("Affinity request timed out", method=method, url=url)
            raise RegistryError(
                f"Affinity request timed out after {self.settings.timeout:.0f}s: {method} {path}"
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error("Affinity request error", method=method, url=url, error=str(e))
            raise RegistryError(f"Affinity request error: {e}") from e

        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError as e:
            raise RegistryError(
                f"Affinity returned invalid JSON: {method} {path}",
                status=resp.status_code,
            ) from e

    def list_fields(self) -> List[Dict[str, Any]]:
        page = self._request("GET", f"{self.list_path}/fields")
        data = page.get("data") if isinstance(page, dict) else None
        return [f for f in data if isinstance(f, dict)] if isinstance(data, list) else []

    def discover_status_field(self, name: Optional[str] = None) -> StatusField:
        """
        Find the list's status field.

        An exact (case-insensitive) name match wins; otherwise the first field
        whose name contains "status".

        Raises:
            ConfigError: If the list has no such field
        """
        wanted = (name or self.settings.status_field_name).strip().lower()
        fields = self.list_fields()
        found = next((f for f in fields if str(f.get("name") or "").strip().lower() == wanted), None)
        if found is None:
            found = next((f for f in fields if "status" in str(f.get("name") or "").lower()), None)
        if found is None:
            raise ConfigError(f"Could not find Status field on list {self.settings.list_id}")

        status_field = StatusField(id=found.get("id"), name=str(found.get("name") or ""), options=parse_options(found))
        logger.info(
            "Discovered status field",
            field_id=status_field.id, name=status_field.name, options=len(status_field.options),
        )
        return status_field

    def iter_entries(self, field_ids: Optional[Iterable[Any]] = None) -> Iterator[Dict[str, Any]]:
        """Yield list entries across all pages, following pagination.nextUrl."""
        url: Optional[str] = f"{self.list_path}/list-entries"
        ids = [i for i in (field_ids or []) if i is not None]
        params: Optional[Dict[str, Any]] = {"fieldIds": ids} if ids else None
        seen = set()
        while url:
            if url in seen:
                logger.warning("Pagination loop detected; stopping", url=url)
                break
            seen.add(url)

            page = self._request("GET", url, params=params)
            params = None  # nextUrl already carries the query
            data = page.get("data") if isinstance(page, dict) else None
            if isinstance(data, list):
                for entry in data:
                    if isinstance(entry, dict):
                        yield entry
            else:
                logger.warning("Skipping list-entries page without a data array", url=url)

            pagination = page.get("pagination") if isinstance(page, dict) else None
            url = (pagination or {}).get("nextUrl") or None

    def fetch_entities(self, status_field_id: Any = None) -> List[Entity]:
        entities = []
        skipped = 0
        field_ids = [status_field_id] if status_field_id is not None else None
        for entry in self.iter_entries(field_ids):
            entity = entity_from_entry(entry, status_field_id)
            if entity is None:
                skipped += 1
                continue
            entities.append(entity)
        logger.info("Fetched list entries", entities=len(entities), skipped=skipped)
        return entities

    def update_status(self, entry_id: Any, field_id: Any, option_id: Any) -> Any:
        """Set the dropdown value of one field on one list entry."""
        return self._request(
            "POST",
            f"{self.list_path}/list-entries/{entry_id}/fields/{field_id}",
            json={"value": {"type": "dropdown", "data": option_id}},
        )

"""
On-device persisted stores.

Small key/value state (equipment counts, QuickBooks credentials, the selected
project) that must survive a process restart. State is written as JSON text
and read back symmetrically; an absent or corrupt value falls back to the
store defaults instead of failing initialization.
"""

import json
import logging
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class StateStorage:
    """Text storage keyed by store name."""

    def read(self, name: str) -> Optional[str]:
        raise NotImplementedError

    def write(self, name: str, text: str) -> None:
        raise NotImplementedError

    def remove(self, name: str) -> None:
        raise NotImplementedError


class FileStateStorage(StateStorage):
    """One ``<name>.json`` file per store under ``directory``."""

    def __init__(self, directory: str):
        self.directory = Path(directory)

    def _path(self, name: str) -> Path:
        return self.directory / f"{name}.json"

    def read(self, name: str) -> Optional[str]:
        try:
            data = self._path(name).read_bytes()
        except FileNotFoundError:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            logger.warning(f"Persisted state file {self._path(name)} is not UTF-8 text; ignoring it")
            return None

    def write(self, name: str, text: str) -> None:
        self.directory.mkdir(parents=True, exist_ok=True)
        temp = self._path(name).with_suffix(".tmp")
        temp.write_text(text, encoding="utf-8")
        temp.replace(self._path(name))

    def remove(self, name: str) -> None:
        self._path(name).unlink(missing_ok=True)


class MemoryStateStorage(StateStorage):
    def __init__(self, values: Optional[Dict[str, str]] = None):
        self.values: Dict[str, str] = dict(values or {})

    def read(self, name: str) -> Optional[str]:
        return self.values.get(name)

    def write(self, name: str, text: str) -> None:
        self.values[name] = text

    def remove(self, name: str) -> None:
        self.values.pop(name, None)


class StoredState(BaseModel):
    """Shape of one store's persisted value; unknown keys are dropped."""

    model_config = ConfigDict(extra="ignore")


class EquipmentCounts(StoredState):
    airMover: int = Field(0, ge=0)
    dehumidifier: int = Field(0, ge=0)
    airScrubber: int = Field(0, ge=0)
    containmentPoles: int = Field(0, ge=0)
    ozone: int = Field(0, ge=0)


class EquipmentState(StoredState):
    equipment: EquipmentCounts = Field(default_factory=EquipmentCounts)
    equipmentOnSite: bool = False


class AuthState(StoredState):
    quickBooksCompanyId: Optional[str] = None
    clientId: Optional[str] = None
    clientSecret: Optional[str] = None
    accessToken: Optional[str] = None
    refreshToken: Optional[str] = None
    tokenExpiresAt: Optional[Union[int, float, str]] = None
    updatedAt: Optional[str] = None


class ProjectIdState(StoredState):
    projectId: Optional[str] = None


class PersistedStore:
    """Dict state persisted through a ``StateStorage`` on every change."""

    name = "store"
    state_model: Optional[Type[StoredState]] = None

    def __init__(self, storage: StateStorage, defaults: Optional[Dict[str, Any]] = None):
        self.storage = storage
        self.defaults = dict(defaults if defaults is not None else self.default_state())
        self._state = self._load()

    def default_state(self) -> Dict[str, Any]:
        return {}

    @property
    def state(self) -> Dict[str, Any]:
        return dict(self._state)

    def get(self, field: str, default: Any = None) -> Any:
        return self._state.get(field, default)

    def update(self, **fields) -> Dict[str, Any]:
        self._state = {**self._state, **fields}
        self._persist()
        return self.state

    def reset(self) -> None:
        """Restore defaults and drop the persisted value."""
        self._state = dict(self.defaults)
        self.storage.remove(self.name)

    def _load(self) -> Dict[str, Any]:
        text = self.storage.read(self.name)
        if text is None:
            return dict(self.defaults)
        try:
            loaded = json.loads(text)
        except ValueError:
            logger.warning(f"Persisted state for {self.name} is corrupt; using defaults")
            return dict(self.defaults)
        if not isinstance(loaded, dict):
            logger.warning(f"Persisted state for {self.name} is not an object; using defaults")
            return dict(self.defaults)
        merged = {**self.defaults, **{k: v for k, v in loaded.items() if k in self.defaults}}
        if self.state_model is None:
            return merged
        try:
            return self.state_model.model_validate(merged).model_dump()
        except ValidationError as e:
            logger.warning(
                f"Persisted state for {self.name} has {e.error_count()} invalid value(s); using defaults"
            )
            return dict(self.defaults)

    def _persist(self) -> None:
        self.storage.write(self.name, json.dumps(self._state, default=str))


class EquipmentStore(PersistedStore):
    """Equipment counts on site."""

    name = "equipment"
    state_model = EquipmentState
    EQUIPMENT_TYPES = ("airMover", "dehumidifier", "airScrubber", "containmentPoles", "ozone")

    def default_state(self) -> Dict[str, Any]:
        return {
            "equipment": {kind: 0 for kind in self.EQUIPMENT_TYPES},
            "equipmentOnSite": False,
        }

    @property
    def equipment(self) -> Dict[str, int]:
        return dict(self._state["equipment"])

    def update_equipment(self, **counts: int) -> Dict[str, int]:
        unknown = set(counts) - set(self.EQUIPMENT_TYPES)
        if unknown:
            raise ValueError(f"Unknown equipment types: {sorted(unknown)}")
        self.update(equipment={**self._state["equipment"], **counts})
        return self.equipment

    def set_equipment_on_site(self, value: bool) -> None:
        self.update(equipmentOnSite=bool(value))


class AuthStore(PersistedStore):
    """QuickBooks credentials."""

    name = "auth-store"
    state_model = AuthState

    def __init__(self, storage: StateStorage, company_id: Optional[str] = None):
        self._company_id = company_id
        super().__init__(storage)

    def default_state(self) -> Dict[str, Any]:
        return {
            "quickBooksCompanyId": self._company_id,
            "clientId": None,
            "clientSecret": None,
            "accessToken": None,
            "refreshToken": None,
            "tokenExpiresAt": None,
            "updatedAt": None,
        }

    def set_credentials(self, **credentials) -> Dict[str, Any]:
        """Update credentials; omitted or None fields keep their current value."""
        merged = {
            field: credentials.get(field) if credentials.get(field) is not None else current
            for field, current in self._state.items()
        }
        merged["updatedAt"] = datetime.now(timezone.utc).isoformat()
        self._state = merged
        self._persist()
        return self.state

    def clear_credentials(self) -> Dict[str, Any]:
        """Drop tokens; company and client identity are preserved."""
        return self.update(
            accessToken=None,
            refreshToken=None,
            tokenExpiresAt=None,
            updatedAt=datetime.now(timezone.utc).isoformat(),
        )

    @property
    def company_id(self) -> Optional[str]:
        return self._state.get("quickBooksCompanyId")

    @property
    def access_token(self) -> Optional[str]:
        return self._state.get("accessToken")


class ProjectIdStore(PersistedStore):
    """Currently selected project/ticket id."""

    name = "project-storage"
    state_model = ProjectIdState

    def default_state(self) -> Dict[str, Any]:
        return {"projectId": None}

    @property
    def project_id(self) -> Optional[str]:
        return self._state.get("projectId")

    def set_project_id(self, project_id: Optional[str]) -> None:
        self.update(projectId=project_id)

    def clear_project_id(self) -> None:
        self.update(projectId=None)


class SelectedDateStore:
    """Calendar date selected in the schedule view (not persisted)."""

    def __init__(self, initial: Optional[date] = None):
        self._initial = initial
        self.selected_date = initial or date.today()

    def set_selected_date(self, value: date) -> None:
        self.selected_date = value

    def reset(self) -> None:
        self.selected_date = self._initial or date.today()


class UserStore:
    """Signed-in user profile (not persisted)."""

    def __init__(self):
        self.user: Optional[Dict[str, Any]] = None

    def set_user(self, user: Dict[str, Any]) -> None:
        self.user = dict(user)

    def clear_user(self) -> None:
        self.user = None

    def reset(self) -> None:
        self.clear_user()

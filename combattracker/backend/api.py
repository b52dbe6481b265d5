"""FastAPI endpoints for combat sessions, monsters and damage logs."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from .config import CombatSettings, load_settings
from .errors import TransientStoreError
from .models import ACRange, DamageInput, DamageUpdate, OperationResult
from .roster import UNSET
from .service import CombatService
from .store import CombatStore, create_store


_STATUS_BY_ERROR_CODE = {"validation": 422, "not_found": 404, "conflict": 409}


class CreateSessionRequest(BaseModel):
    user_id: str | None = Field(default=None, min_length=1, max_length=200)
    anonymous_id: str | None = Field(default=None, min_length=1, max_length=200)


class SessionResponse(BaseModel):
    session: dict[str, Any]


class CombatDataResponse(BaseModel):
    session: dict[str, Any]
    monsters: list[dict[str, Any]]


class VersionResponse(BaseModel):
    has_conflict: bool
    is_active: bool | None
    latest_timestamp: str | None


class AddMonstersRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    count: int = Field(default=1, ge=1, le=99)
    known_ac: int | None = Field(default=None, ge=1, le=99)
    known_max_hp: int | None = Field(default=None, ge=1)
    resistances: dict[str, str] = Field(default_factory=dict)


class MonstersResponse(BaseModel):
    monsters: list[dict[str, Any]]


class MonsterResponse(BaseModel):
    monster: dict[str, Any]


class AttackRequest(BaseModel):
    roll: int = Field(ge=0, le=99)
    is_hit: bool


class ACRangeRequest(BaseModel):
    ac_min: int = Field(ge=0, le=99)
    ac_max: int = Field(ge=0, le=99)


class ACRangeResponse(BaseModel):
    ac_min: int
    ac_max: int | None
    ac_display: str


class GroupAttributeRequest(BaseModel):
    ac_range: ACRangeRequest | None = None
    max_hp: int | None = None
    resistances: dict[str, str] | None = None


class RenameRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)


class NotesRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=2000)


class DamageEntryModel(BaseModel):
    damage_type: str = Field(min_length=1)
    resistance_tier: str = "normal"
    original_value: int = Field(ge=0)

    def to_input(self) -> DamageInput:
        return DamageInput(
            damage_type=self.damage_type,
            resistance_tier=self.resistance_tier,
            original_value=self.original_value,
        )


class AddDamageRequest(BaseModel):
    entries: list[DamageEntryModel] = Field(min_length=1)
    shared_timestamp: datetime | None = None


class DamageUpdateModel(DamageEntryModel):
    log_id: str = Field(min_length=1)


class UpdateDamageRequest(BaseModel):
    updates: list[DamageUpdateModel]


class DeleteDamageRequest(BaseModel):
    log_ids: list[str]


class EditDamageGroupRequest(BaseModel):
    created_at: datetime
    entries: list[DamageEntryModel]


def _unwrap(result: OperationResult) -> Any:
    if not result.success:
        status_code = _STATUS_BY_ERROR_CODE.get(result.error_code or "", 400)
        raise HTTPException(status_code=status_code, detail={"code": result.error_code, "message": result.error})
    return result.value


def _ac_response(result: OperationResult) -> ACRangeResponse:
    value = _unwrap(result)
    return ACRangeResponse(ac_min=value["acMin"], ac_max=value["acMax"], ac_display=value["acDisplay"])


def create_app(store: CombatStore | None = None, settings: CombatSettings | None = None) -> FastAPI:
    app = FastAPI(title="Combat Tracker API", version="0.3.0")
    local_settings = settings if settings is not None else load_settings()
    combat_store = store if store is not None else create_store(local_settings.database_url)
    combat_service = CombatService(
        combat_store,
        code_attempts=local_settings.session_code_attempts,
        ended_retention=local_settings.ended_session_retention,
    )
    app.state.combat_service = combat_service

    def get_service() -> CombatService:
        return combat_service

    @app.exception_handler(TransientStoreError)
    async def transient_store_error(request: Request, exc: TransientStoreError) -> JSONResponse:
        return JSONResponse(
            status_code=503,
            content={"detail": {"code": "store_unavailable", "message": str(exc)}},
        )

    @app.post("/api/sessions", response_model=SessionResponse)
    def create_session(
        payload: CreateSessionRequest,
        service: CombatService = Depends(get_service),
    ) -> SessionResponse:
        result = service.create_session(user_id=payload.user_id, anonymous_id=payload.anonymous_id)
        return SessionResponse(session=_unwrap(result))

    @app.post("/api/sessions/{code}/join", response_model=SessionResponse)
    def join_session(code: str, service: CombatService = Depends(get_service)) -> SessionResponse:
        return SessionResponse(session=_unwrap(service.join_session(code)))

    @app.get("/api/sessions/{code}", response_model=CombatDataResponse)
    def get_combat_data(code: str, service: CombatService = Depends(get_service)) -> CombatDataResponse:
        data = _unwrap(service.get_combat_data(code))
        return CombatDataResponse(session=data["session"], monsters=data["monsters"])

    @app.get("/api/sessions/{code}/version", response_model=VersionResponse)
    def check_version(
        code: str,
        since: datetime = Query(),
        service: CombatService = Depends(get_service),
    ) -> VersionResponse:
        value = _unwrap(service.check_version_conflict(code, since))
        return VersionResponse(
            has_conflict=value["hasConflict"],
            is_active=value["isActive"],
            latest_timestamp=value["latestTimestamp"],
        )

    @app.delete("/api/sessions/{code}", status_code=204)
    def end_session(code: str, service: CombatService = Depends(get_service)) -> None:
        _unwrap(service.end_session(code))

    @app.post("/api/sessions/{code}/monsters", response_model=MonstersResponse)
    def add_monsters(
        code: str,
        payload: AddMonstersRequest,
        service: CombatService = Depends(get_service),
    ) -> MonstersResponse:
        result = service.add_monsters(
            code,
            name=payload.name,
            count=payload.count,
            known_ac=payload.known_ac,
            known_max_hp=payload.known_max_hp,
            resistances=payload.resistances,
        )
        return MonstersResponse(monsters=_unwrap(result))

    @app.post("/api/monsters/{monster_id}/death", response_model=MonsterResponse)
    def mark_dead(monster_id: str, service: CombatService = Depends(get_service)) -> MonsterResponse:
        return MonsterResponse(monster=_unwrap(service.mark_dead(monster_id)))

    @app.post("/api/monsters/{monster_id}/attacks", response_model=ACRangeResponse)
    def report_attack(
        monster_id: str,
        payload: AttackRequest,
        service: CombatService = Depends(get_service),
    ) -> ACRangeResponse:
        return _ac_response(service.report_attack(monster_id, payload.roll, payload.is_hit))

    @app.put("/api/monsters/{monster_id}/ac", response_model=ACRangeResponse)
    def set_ac_range(
        monster_id: str,
        payload: ACRangeRequest,
        service: CombatService = Depends(get_service),
    ) -> ACRangeResponse:
        return _ac_response(service.set_ac_range(monster_id, payload.ac_min, payload.ac_max))

    @app.patch("/api/monsters/{monster_id}/group", response_model=MonsterResponse)
    def update_group_attribute(
        monster_id: str,
        payload: GroupAttributeRequest,
        service: CombatService = Depends(get_service),
    ) -> MonsterResponse:
        ac_range = None
        if payload.ac_range is not None:
            ac_range = ACRange(ac_min=payload.ac_range.ac_min, ac_max=payload.ac_range.ac_max)
        max_hp = payload.max_hp if "max_hp" in payload.model_fields_set else UNSET
        result = service.update_group_attribute(
            monster_id,
            ac_range=ac_range,
            max_hp=max_hp,
            resistances=payload.resistances,
        )
        return MonsterResponse(monster=_unwrap(result))

    @app.put("/api/monsters/{monster_id}/name", response_model=MonsterResponse)
    def rename_group(
        monster_id: str,
        payload: RenameRequest,
        service: CombatService = Depends(get_service),
    ) -> MonsterResponse:
        return MonsterResponse(monster=_unwrap(service.rename_group(monster_id, payload.name)))

    @app.put("/api/monsters/{monster_id}/notes", response_model=MonsterResponse)
    def update_notes(
        monster_id: str,
        payload: NotesRequest,
        service: CombatService = Depends(get_service),
    ) -> MonsterResponse:
        return MonsterResponse(monster=_unwrap(service.update_instance_notes(monster_id, payload.notes)))

    @app.post("/api/monsters/{monster_id}/damage", response_model=MonsterResponse)
    def add_damage(
        monster_id: str,
        payload: AddDamageRequest,
        service: CombatService = Depends(get_service),
    ) -> MonsterResponse:
        entries = [entry.to_input() for entry in payload.entries]
        return MonsterResponse(monster=_unwrap(service.add_damage(monster_id, entries, payload.shared_timestamp)))

    @app.patch("/api/monsters/{monster_id}/damage", response_model=MonsterResponse)
    def update_damage_logs(
        monster_id: str,
        payload: UpdateDamageRequest,
        service: CombatService = Depends(get_service),
    ) -> MonsterResponse:
        updates = [
            DamageUpdate(
                log_id=update.log_id,
                damage_type=update.damage_type,
                resistance_tier=update.resistance_tier,
                original_value=update.original_value,
            )
            for update in payload.updates
        ]
        return MonsterResponse(monster=_unwrap(service.update_damage_log_batch(monster_id, updates)))

    @app.post("/api/monsters/{monster_id}/damage/delete", response_model=MonsterResponse)
    def delete_damage_logs(
        monster_id: str,
        payload: DeleteDamageRequest,
        service: CombatService = Depends(get_service),
    ) -> MonsterResponse:
        return MonsterResponse(monster=_unwrap(service.delete_damage_log_batch(payload.log_ids, monster_id)))

    @app.put("/api/monsters/{monster_id}/damage/groups", response_model=MonsterResponse)
    def edit_damage_group(
        monster_id: str,
        payload: EditDamageGroupRequest,
        service: CombatService = Depends(get_service),
    ) -> MonsterResponse:
        entries = [entry.to_input() for entry in payload.entries]
        return MonsterResponse(monster=_unwrap(service.edit_damage_group(monster_id, payload.created_at, entries)))

    return app


app = create_app()

"""HTTP client for the combat tracker API."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

import httpx

from combattracker.backend.errors import SessionEndedError

from .session_cache import SessionCache


logger = logging.getLogger(__name__)


class CombatApiError(Exception):
    def __init__(self, status_code: int, code: str | None, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code

    @classmethod
    def from_response(cls, response: httpx.Response) -> CombatApiError:
        try:
            detail = response.json().get("detail")
        except ValueError:
            detail = None
        if isinstance(detail, dict):
            return cls(response.status_code, detail.get("code"), str(detail.get("message")))
        if isinstance(detail, list):
            messages = [str(item.get("msg", item)) for item in detail if isinstance(item, dict)]
            return cls(response.status_code, "validation", "; ".join(messages) or response.text)
        return cls(response.status_code, None, response.text or response.reason_phrase)


def _parse_timestamp(raw: str | None) -> datetime | None:
    return datetime.fromisoformat(raw) if raw else None


class CombatApiClient:
    """Talks to one server and keeps the followed session in ``cache``.

    ``sync`` is the polling loop body: ask whether anything changed since the
    cached timestamp and refetch the full snapshot only when it did.
    """

    def __init__(self, base_url: str, cache: SessionCache, http: httpx.Client | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.cache = cache
        self._http = http if http is not None else httpx.Client(base_url=self.base_url, timeout=10.0)
        self._snapshot: dict[str, Any] | None = None

    def close(self) -> None:
        self._http.close()

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        response = self._http.request(method, path, **kwargs)
        if response.status_code >= 400:
            raise CombatApiError.from_response(response)
        if response.status_code == 204:
            return None
        return response.json()

    def _require_code(self, code: str | None) -> str:
        if code:
            return code
        cached = self.cache.load()
        if cached is None:
            raise CombatApiError(0, "not_found", "No session selected; start or join one first")
        return cached.code

    def create_session(self, user_id: str | None = None, anonymous_id: str | None = None) -> dict[str, Any]:
        body = self._request("POST", "/api/sessions", json={"user_id": user_id, "anonymous_id": anonymous_id})
        session = body["session"]
        self.cache.save(session["code"], None)
        self._snapshot = None
        return session

    def join_session(self, code: str) -> dict[str, Any]:
        session = self._request("POST", f"/api/sessions/{code}/join")["session"]
        self.cache.save(session["code"], None)
        self._snapshot = None
        return session

    def get_combat_data(self, code: str | None = None) -> dict[str, Any]:
        return self._request("GET", f"/api/sessions/{self._require_code(code)}")

    def check_version(self, code: str, since: datetime) -> dict[str, Any]:
        return self._request("GET", f"/api/sessions/{code}/version", params={"since": since.isoformat()})

    def end_session(self, code: str | None = None) -> None:
        target = self._require_code(code)
        self._request("DELETE", f"/api/sessions/{target}")
        cached = self.cache.load()
        if cached is not None and cached.code == target:
            self.cache.clear()
            self._snapshot = None

    def sync(self) -> dict[str, Any] | None:
        cached = self.cache.load()
        if cached is None:
            return None

        if cached.last_updated is not None and self._snapshot is not None:
            version = self.check_version(cached.code, cached.last_updated)
            if version["is_active"] is False:
                self._forget(cached.code)
            if not version["has_conflict"]:
                return self._snapshot
            logger.info("Session %s changed since %s, refetching", cached.code, cached.last_updated.isoformat())

        try:
            snapshot = self.get_combat_data(cached.code)
        except CombatApiError as exc:
            if exc.status_code == 404:
                self._forget(cached.code)
            raise
        if not snapshot["session"]["isActive"]:
            self._forget(cached.code)
        self.cache.save(cached.code, _parse_timestamp(snapshot["session"]["lastUpdated"]))
        self._snapshot = snapshot
        return snapshot

    def _forget(self, code: str) -> None:
        self.cache.clear()
        self._snapshot = None
        raise SessionEndedError(f"Session {code} has ended")

    def add_monsters(
        self,
        name: str,
        count: int = 1,
        known_ac: int | None = None,
        known_max_hp: int | None = None,
        resistances: Mapping[str, str] | None = None,
        code: str | None = None,
    ) -> list[dict[str, Any]]:
        payload = {
            "name": name,
            "count": count,
            "known_ac": known_ac,
            "known_max_hp": known_max_hp,
            "resistances": dict(resistances or {}),
        }
        return self._request("POST", f"/api/sessions/{self._require_code(code)}/monsters", json=payload)["monsters"]

    def mark_dead(self, monster_id: str) -> dict[str, Any]:
        return self._request("POST", f"/api/monsters/{monster_id}/death")["monster"]

    def report_attack(self, monster_id: str, roll: int, is_hit: bool) -> dict[str, Any]:
        return self._request("POST", f"/api/monsters/{monster_id}/attacks", json={"roll": roll, "is_hit": is_hit})

    def set_ac_range(self, monster_id: str, ac_min: int, ac_max: int) -> dict[str, Any]:
        return self._request("PUT", f"/api/monsters/{monster_id}/ac", json={"ac_min": ac_min, "ac_max": ac_max})

    def update_group_attribute(self, monster_id: str, **changes: Any) -> dict[str, Any]:
        return self._request("PATCH", f"/api/monsters/{monster_id}/group", json=changes)["monster"]

    def rename_group(self, monster_id: str, name: str) -> dict[str, Any]:
        return self._request("PUT", f"/api/monsters/{monster_id}/name", json={"name": name})["monster"]

    def update_notes(self, monster_id: str, notes: str | None) -> dict[str, Any]:
        return self._request("PUT", f"/api/monsters/{monster_id}/notes", json={"notes": notes})["monster"]

    def add_damage(
        self,
        monster_id: str,
        entries: Sequence[Mapping[str, Any]],
        shared_timestamp: datetime | None = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"entries": [dict(entry) for entry in entries]}
        if shared_timestamp is not None:
            payload["shared_timestamp"] = shared_timestamp.isoformat()
        return self._request("POST", f"/api/monsters/{monster_id}/damage", json=payload)["monster"]

    def update_damage_logs(self, monster_id: str, updates: Sequence[Mapping[str, Any]]) -> dict[str, Any]:
        payload = {"updates": [dict(update) for update in updates]}
        return self._request("PATCH", f"/api/monsters/{monster_id}/damage", json=payload)["monster"]

    def delete_damage_logs(self, monster_id: str, log_ids: Sequence[str]) -> dict[str, Any]:
        payload = {"log_ids": list(log_ids)}
        return self._request("POST", f"/api/monsters/{monster_id}/damage/delete", json=payload)["monster"]

    def edit_damage_group(
        self,
        monster_id: str,
        created_at: datetime,
        entries: Sequence[Mapping[str, Any]],
    ) -> dict[str, Any]:
        payload = {"created_at": created_at.isoformat(), "entries": [dict(entry) for entry in entries]}
        return self._request("PUT", f"/api/monsters/{monster_id}/damage/groups", json=payload)["monster"]

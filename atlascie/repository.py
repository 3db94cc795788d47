"""
Typed access to the portal's documents.

``PortalRepository`` is the data-access boundary: raw store documents are
validated into models on the way out and models are dumped to plain
documents on the way in.  Field-level defensive reads do not happen
anywhere else in the library.

* ``get_*`` returns None for a missing document (the "not found" state).
* ``list_*`` and ``watch_*`` skip malformed documents with a warning so a
  single bad record cannot break a dashboard.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Iterable, Optional, TypeVar

from pydantic import BaseModel, ValidationError

from atlascie.models import (
    CarePlanEntry,
    Enrollee,
    Profile,
    Referral,
    ReferralMessage,
    Resource,
)
from atlascie.store import (
    SERVER_TIMESTAMP,
    InMemoryDocumentStore,
    Subscription,
    TenantPaths,
)

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def _dump_value(value: Any) -> Any:
    if isinstance(value, BaseModel):
        return value.model_dump()
    if isinstance(value, list):
        return [_dump_value(v) for v in value]
    return value


class PortalRepository:
    """Validated reads and writes for one tenant."""

    def __init__(self, store: InMemoryDocumentStore, paths: TenantPaths) -> None:
        self.store = store
        self.paths = paths

    # -- generic helpers --

    @staticmethod
    def _to_document(
        model: BaseModel, id_field: str, timestamp_fields: Iterable[str] = ()
    ) -> dict[str, Any]:
        data = model.model_dump(exclude={id_field})
        for field in timestamp_fields:
            if data.get(field) is None:
                data[field] = SERVER_TIMESTAMP
        return data

    @staticmethod
    def _parse(model_cls: type[M], id_field: str, doc: dict[str, Any]) -> M:
        data = dict(doc)
        data[id_field] = data.pop("id")
        return model_cls.model_validate(data)

    def _parse_many(
        self, model_cls: type[M], id_field: str, docs: list[dict[str, Any]]
    ) -> list[M]:
        parsed: list[M] = []
        for doc in docs:
            try:
                parsed.append(self._parse(model_cls, id_field, doc))
            except ValidationError as exc:
                logger.warning(
                    "Skipping malformed %s record %s: %s",
                    model_cls.__name__, doc.get("id"), exc.errors()[:1],
                )
        return parsed

    def _get(self, model_cls: type[M], id_field: str, path: str) -> Optional[M]:
        doc = self.store.get(path)
        if doc is None:
            return None
        return self._parse(model_cls, id_field, doc)

    def _watch(
        self,
        model_cls: type[M],
        id_field: str,
        collection_path: str,
        callback: Callable[[list[M]], None],
        where: Optional[dict[str, Any]] = None,
    ) -> Subscription:
        def listener(docs: list[dict[str, Any]]) -> None:
            callback(self._parse_many(model_cls, id_field, docs))

        return self.store.subscribe(collection_path, listener, where=where)

    def _update(self, path: str, fields: dict[str, Any]) -> None:
        self.store.update(path, {k: _dump_value(v) for k, v in fields.items()})

    # -- profiles --

    # Profiles live at a fixed document id ("main"), so the uid is stored
    # as a regular field rather than derived from the document id.

    def get_profile(self, uid: str) -> Optional[Profile]:
        doc = self.store.get(self.paths.profile(uid))
        if doc is None:
            return None
        doc.pop("id")
        doc.setdefault("uid", uid)
        return Profile.model_validate(doc)

    def save_profile(self, profile: Profile, merge: bool = False) -> Profile:
        self.store.set(
            self.paths.profile(profile.uid), profile.model_dump(), merge=merge
        )
        return profile

    def update_profile(self, uid: str, fields: dict[str, Any]) -> None:
        self._update(self.paths.profile(uid), fields)

    # -- enrollees --

    def add_enrollee(self, enrollee: Enrollee) -> Enrollee:
        self.store.create(
            self.paths.enrollees(),
            self._to_document(enrollee, "enrollee_id"),
            doc_id=enrollee.enrollee_id,
        )
        return enrollee

    def get_enrollee(self, enrollee_id: str) -> Optional[Enrollee]:
        return self._get(Enrollee, "enrollee_id", self.paths.enrollee(enrollee_id))

    def list_enrollees(self, enrollee_ids: Optional[Iterable[str]] = None) -> list[Enrollee]:
        enrollees = self._parse_many(
            Enrollee, "enrollee_id", self.store.list(self.paths.enrollees())
        )
        if enrollee_ids is None:
            return enrollees
        wanted = set(enrollee_ids)
        return [e for e in enrollees if e.enrollee_id in wanted]

    def update_enrollee(self, enrollee_id: str, fields: dict[str, Any]) -> None:
        self._update(self.paths.enrollee(enrollee_id), fields)

    def delete_enrollee(self, enrollee_id: str) -> None:
        self.store.delete(self.paths.enrollee(enrollee_id))

    def watch_enrollees(self, callback: Callable[[list[Enrollee]], None]) -> Subscription:
        return self._watch(Enrollee, "enrollee_id", self.paths.enrollees(), callback)

    # -- care plan --

    def add_care_plan_entry(self, enrollee_id: str, entry: CarePlanEntry) -> CarePlanEntry:
        collection = self.paths.care_plan(enrollee_id)
        self.store.create(
            collection,
            self._to_document(entry, "entry_id", timestamp_fields=("timestamp",)),
            doc_id=entry.entry_id,
        )
        return self._get(
            CarePlanEntry, "entry_id", self.paths.care_plan_entry(enrollee_id, entry.entry_id)
        )

    def get_care_plan_entry(self, enrollee_id: str, entry_id: str) -> Optional[CarePlanEntry]:
        return self._get(
            CarePlanEntry, "entry_id", self.paths.care_plan_entry(enrollee_id, entry_id)
        )

    def list_care_plan(self, enrollee_id: str) -> list[CarePlanEntry]:
        return self._parse_many(
            CarePlanEntry, "entry_id", self.store.list(self.paths.care_plan(enrollee_id))
        )

    def update_care_plan_entry(
        self, enrollee_id: str, entry_id: str, fields: dict[str, Any]
    ) -> None:
        self._update(self.paths.care_plan_entry(enrollee_id, entry_id), fields)

    def delete_care_plan_entry(self, enrollee_id: str, entry_id: str) -> None:
        self.store.delete(self.paths.care_plan_entry(enrollee_id, entry_id))

    # -- resources --

    def add_resource(self, resource: Resource) -> Resource:
        self.store.create(
            self.paths.resources(),
            self._to_document(resource, "resource_id"),
            doc_id=resource.resource_id,
        )
        return resource

    def get_resource(self, resource_id: str) -> Optional[Resource]:
        return self._get(Resource, "resource_id", self.paths.resource(resource_id))

    def list_resources(self) -> list[Resource]:
        return self._parse_many(
            Resource, "resource_id", self.store.list(self.paths.resources())
        )

    def update_resource(self, resource_id: str, fields: dict[str, Any]) -> None:
        self._update(self.paths.resource(resource_id), fields)

    def delete_resource(self, resource_id: str) -> None:
        self.store.delete(self.paths.resource(resource_id))

    def watch_resources(self, callback: Callable[[list[Resource]], None]) -> Subscription:
        return self._watch(Resource, "resource_id", self.paths.resources(), callback)

    # -- referrals --

    def add_referral(self, referral: Referral) -> Referral:
        self.store.create(
            self.paths.referrals(),
            self._to_document(referral, "referral_id", timestamp_fields=("created_at",)),
            doc_id=referral.referral_id,
        )
        return self.get_referral(referral.referral_id)

    def get_referral(self, referral_id: str) -> Optional[Referral]:
        return self._get(Referral, "referral_id", self.paths.referral(referral_id))

    def list_referrals(self, where: Optional[dict[str, Any]] = None) -> list[Referral]:
        return self._parse_many(
            Referral, "referral_id", self.store.list(self.paths.referrals(), where=where)
        )

    def update_referral(self, referral_id: str, fields: dict[str, Any]) -> None:
        self._update(self.paths.referral(referral_id), fields)

    def delete_referral(self, referral_id: str) -> None:
        self.store.delete(self.paths.referral(referral_id))

    def watch_referrals(
        self,
        callback: Callable[[list[Referral]], None],
        where: Optional[dict[str, Any]] = None,
    ) -> Subscription:
        return self._watch(
            Referral, "referral_id", self.paths.referrals(), callback, where=where
        )

    # -- referral messages --

    def add_message(self, referral_id: str, message: ReferralMessage) -> ReferralMessage:
        self.store.create(
            self.paths.messages(referral_id),
            self._to_document(message, "message_id", timestamp_fields=("timestamp",)),
            doc_id=message.message_id,
        )
        return self._get(
            ReferralMessage, "message_id", self.paths.message(referral_id, message.message_id)
        )

    def list_messages(self, referral_id: str) -> list[ReferralMessage]:
        return self._parse_many(
            ReferralMessage, "message_id", self.store.list(self.paths.messages(referral_id))
        )

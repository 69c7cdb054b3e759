from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, List, Optional

from firebase_admin import firestore
from google.api_core import exceptions as gexc

from projecthub.config import settings
from projecthub.core.firebase import get_db
from projecthub.core.policy import Operation
from projecthub.errors import (
    CollaborationError, DuplicateMember, NotAuthorized, NotFound, OwnerProtected, StoreUnavailable,
)
from projecthub.models.role import Role
from projecthub.repositories.base import PROJECT_CONTENT_FIELDS, Row, enforce_row_policy, membership_key

logger = logging.getLogger(__name__)


class FirestoreRepository:
    """
    ``CollaborationRepository`` backed by Cloud Firestore.

    Membership documents use ``<project_id>__<user_id>`` as document id, so the
    (project, user) uniqueness constraint is the document key itself. Multi-row
    writes (create with owner, cascade delete) run in a single transaction.
    The Firestore SDK is blocking; every call runs in the default executor.
    """

    def __init__(self, db=None):
        self._db = db

    @property
    def db(self):
        if self._db is None:
            self._db = get_db()
        return self._db

    def _projects(self):
        return self.db.collection(settings.PROJECTS_COLLECTION)

    def _members(self):
        return self.db.collection(settings.MEMBERS_COLLECTION)

    async def _run(self, operation: str, fn: Callable[..., Any], *args) -> Any:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, partial(fn, *args))
        except CollaborationError:
            raise
        except gexc.AlreadyExists as e:
            # only membership inserts use create(); anything else is a store fault
            if operation == "insert_membership":
                raise DuplicateMember(email=args[0].get("email", args[0]["user_id"]),
                                      project_id=args[0]["project_id"]) from e
            logger.exception("firestore %s failed", operation)
            raise StoreUnavailable(operation=operation) from e
        except (gexc.GoogleAPIError, TimeoutError) as e:
            logger.exception("firestore %s failed", operation)
            raise StoreUnavailable(operation=operation) from e

    def _actor_membership(self, project_id: str, actor_id: str, transaction=None) -> Optional[Row]:
        snap = self._members().document(membership_key(project_id, actor_id)).get(transaction=transaction)
        return snap.to_dict() if snap.exists else None

    # ---------- projects ----------
    async def create_project_with_owner(self, project: Row, owner: Row, *, actor_id: str) -> Row:
        if project["user_id"] != actor_id or owner["user_id"] != actor_id or owner["role"] != Role.OWNER.value:
            raise NotAuthorized(action="create", project_id=project["id"])

        def _create():
            ts = datetime.now(timezone.utc)
            row = {**project, "created_at": ts, "updated_at": ts, "version": 1}
            member_id = membership_key(owner["project_id"], owner["user_id"])
            transaction = self.db.transaction()

            @firestore.transactional
            def _txn(transaction):
                transaction.create(self._projects().document(project["id"]), row)
                transaction.create(
                    self._members().document(member_id),
                    {**owner, "id": member_id, "joined_at": ts},
                )

            _txn(transaction)
            return row

        return await self._run("create_project_with_owner", _create)

    async def fetch_project(self, project_id: str, *, actor_id: str) -> Optional[Row]:
        def _fetch():
            enforce_row_policy(self._actor_membership(project_id, actor_id), Operation.VIEW_PROJECT, project_id)
            snap = self._projects().document(project_id).get()
            return snap.to_dict() if snap.exists else None

        return await self._run("fetch_project", _fetch)

    async def update_project(self, project_id: str, fields: Row, *, actor_id: str) -> Row:
        def _update():
            ref = self._projects().document(project_id)
            transaction = self.db.transaction()

            @firestore.transactional
            def _txn(transaction):
                actor = self._actor_membership(project_id, actor_id, transaction)
                enforce_row_policy(actor, Operation.UPDATE_PROJECT, project_id)
                snap = ref.get(transaction=transaction)
                if not snap.exists:
                    raise NotFound(resource="project", id=project_id)
                current = snap.to_dict() or {}
                payload = {k: fields[k] for k in PROJECT_CONTENT_FIELDS if k in fields}
                payload["last_modified_by"] = actor_id
                payload["updated_at"] = datetime.now(timezone.utc)
                payload["version"] = current.get("version", 1) + 1
                transaction.update(ref, payload)
                return {**current, **payload}

            return _txn(transaction)

        return await self._run("update_project", _update)

    async def delete_project(self, project_id: str, *, actor_id: str) -> None:
        def _delete():
            ref = self._projects().document(project_id)
            transaction = self.db.transaction()

            @firestore.transactional
            def _txn(transaction):
                actor = self._actor_membership(project_id, actor_id, transaction)
                enforce_row_policy(actor, Operation.DELETE_PROJECT, project_id)
                if not ref.get(transaction=transaction).exists:
                    raise NotFound(resource="project", id=project_id)
                members = self._members().where("project_id", "==", project_id)
                # all reads must happen before the first write
                for snap in list(members.stream(transaction=transaction)):
                    transaction.delete(snap.reference)
                transaction.delete(ref)

            _txn(transaction)

        await self._run("delete_project", _delete)

    async def list_projects_for_user(self, user_id: str) -> List[Row]:
        def _list():
            ids = {d.id for d in self._projects().where("user_id", "==", user_id).stream()}
            ids |= {
                (d.to_dict() or {}).get("project_id")
                for d in self._members().where("user_id", "==", user_id).stream()
            }
            refs = [self._projects().document(pid) for pid in ids if pid]
            rows = [s.to_dict() for s in self.db.get_all(refs) if s.exists] if refs else []
            return sorted(rows, key=lambda r: r["updated_at"], reverse=True)

        return await self._run("list_projects_for_user", _list)

    # ---------- memberships ----------
    async def fetch_membership(self, project_id: str, user_id: str) -> Optional[Row]:
        return await self._run("fetch_membership", self._actor_membership, project_id, user_id)

    async def list_memberships(self, project_id: str, *, actor_id: str) -> List[Row]:
        def _list():
            enforce_row_policy(self._actor_membership(project_id, actor_id), Operation.VIEW_MEMBERS, project_id)
            rows = [d.to_dict() for d in self._members().where("project_id", "==", project_id).stream()]
            return sorted(rows, key=lambda r: r["joined_at"])

        return await self._run("list_memberships", _list)

    async def insert_membership(self, membership: Row, *, actor_id: str) -> Row:
        def _insert(membership: Row):
            project_id = membership["project_id"]
            enforce_row_policy(self._actor_membership(project_id, actor_id), Operation.ADD_MEMBER, project_id)
            if membership["role"] == Role.OWNER.value:
                raise OwnerProtected(project_id=project_id)
            member_id = membership_key(project_id, membership["user_id"])
            row = {k: v for k, v in membership.items() if k != "email"}
            row.update({"id": member_id, "joined_at": datetime.now(timezone.utc)})
            # create() fails with AlreadyExists when the pair is already present
            self._members().document(member_id).create(row)
            return row

        return await self._run("insert_membership", _insert, membership)

    async def delete_membership(self, project_id: str, user_id: str, *, actor_id: str) -> Optional[Row]:
        def _delete():
            ref = self._members().document(membership_key(project_id, user_id))
            transaction = self.db.transaction()

            @firestore.transactional
            def _txn(transaction):
                actor = self._actor_membership(project_id, actor_id, transaction)
                enforce_row_policy(actor, Operation.REMOVE_MEMBER, project_id)
                snap = ref.get(transaction=transaction)
                if not snap.exists:
                    return None
                row = snap.to_dict() or {}
                if row.get("role") == Role.OWNER.value:
                    raise OwnerProtected(project_id=project_id)
                transaction.delete(ref)
                return row

            return _txn(transaction)

        return await self._run("delete_membership", _delete)

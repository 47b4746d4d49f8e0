"""Emergency contacts per user."""

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from smartsos.core.clock import Clock, as_utc
from smartsos.core.errors import InvalidArgumentError, NotFoundError
from smartsos.models.emergency_contact import EmergencyContact
from smartsos.services.records import Contact


class ContactBook(ABC):
    def __init__(self, clock: Clock) -> None:
        self._clock = clock

    def add_contact(
        self,
        user_id: str,
        name: str,
        phone_number: str,
        relationship: str | None = None,
        priority: int = 1,
    ) -> Contact:
        if not user_id or not name or not phone_number:
            raise InvalidArgumentError("user_id, name and phone_number are required")
        if priority < 1:
            raise InvalidArgumentError("priority must be 1 or greater")
        contact = Contact(
            id=str(uuid.uuid4()),
            user_id=user_id,
            name=name,
            phone_number=phone_number,
            relationship=relationship,
            priority=priority,
            created_at=self._clock.now(),
        )
        self._insert(contact)
        return contact

    def list_contacts(self, user_id: str) -> list[Contact]:
        """Contacts in priority order (1 first), oldest first within a priority."""
        return sorted(self._for_user(user_id), key=lambda c: (c.priority, c.created_at))

    @abstractmethod
    def remove_contact(self, contact_id: str) -> Contact:
        """Delete and return the contact; NotFoundError if it does not exist."""

    @abstractmethod
    def _insert(self, contact: Contact) -> None: ...

    @abstractmethod
    def _for_user(self, user_id: str) -> list[Contact]: ...


class InMemoryContactBook(ContactBook):
    def __init__(self, clock: Clock) -> None:
        super().__init__(clock)
        self._contacts: dict[str, Contact] = {}

    def remove_contact(self, contact_id: str) -> Contact:
        contact = self._contacts.pop(contact_id, None)
        if contact is None:
            raise NotFoundError(f"Contact {contact_id} not found")
        return contact

    def _insert(self, contact: Contact) -> None:
        self._contacts[contact.id] = contact

    def _for_user(self, user_id: str) -> list[Contact]:
        return [c for c in list(self._contacts.values()) if c.user_id == user_id]


class SqlContactBook(ContactBook):
    def __init__(self, clock: Clock, session_factory: sessionmaker) -> None:
        super().__init__(clock)
        self._session_factory = session_factory

    def remove_contact(self, contact_id: str) -> Contact:
        with self._session_factory() as db:
            row = db.get(EmergencyContact, contact_id)
            if row is None:
                raise NotFoundError(f"Contact {contact_id} not found")
            contact = _to_contact(row)
            db.delete(row)
            db.commit()
            return contact

    def _insert(self, contact: Contact) -> None:
        with self._session_factory() as db:
            db.add(
                EmergencyContact(
                    id=contact.id,
                    user_id=contact.user_id,
                    name=contact.name,
                    phone_number=contact.phone_number,
                    relationship=contact.relationship,
                    priority=contact.priority,
                    created_at=contact.created_at,
                )
            )
            db.commit()

    def _for_user(self, user_id: str) -> list[Contact]:
        with self._session_factory() as db:
            rows = db.execute(
                select(EmergencyContact).where(EmergencyContact.user_id == user_id)
            ).scalars().all()
            return [_to_contact(r) for r in rows]


def _to_contact(row: EmergencyContact) -> Contact:
    return Contact(
        id=row.id,
        user_id=row.user_id,
        name=row.name,
        phone_number=row.phone_number,
        relationship=row.relationship,
        priority=row.priority,
        created_at=as_utc(row.created_at),
    )

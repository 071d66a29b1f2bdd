"""
Contact Service - per-user address book.

Names are stored normalized (trimmed, title case per word) so lookups and the
per-owner uniqueness rule are case-insensitive.
"""

import logging
from typing import List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import Database
from models import Contact
from services.errors import ConflictError, NotFoundError, StorageError, ValidationError
from utils.data_sanitizer import mask_address
from utils.datetime_helpers import get_naive_utc_now
from utils.input_validation import (
    normalize_contact_name,
    normalize_phone,
    require_stx_address,
    validate_contact_name,
)

logger = logging.getLogger(__name__)


def _clean_name(name: str) -> str:
    result = validate_contact_name(name)
    if not result.valid:
        raise ValidationError(f"Invalid contact name: {result.error}")
    return normalize_contact_name(name)


class ContactService:
    def __init__(self, database: Database):
        self.database = database

    async def add_contact(
        self,
        user_id: str,
        name: str,
        ledger_address: str,
        contact_phone: Optional[str] = None,
    ) -> Contact:
        display_name = _clean_name(name)
        address = require_stx_address(ledger_address)
        phone = None
        if contact_phone:
            phone = normalize_phone(contact_phone)
            if phone is None:
                raise ValidationError(f"Invalid phone number: {contact_phone}")

        now = get_naive_utc_now()
        try:
            async with self.database.session() as session:
                existing = await session.execute(
                    select(Contact.id).where(
                        Contact.user_id == user_id,
                        Contact.display_name == display_name,
                    )
                )
                if existing.scalar_one_or_none() is not None:
                    raise ConflictError(f'Contact "{display_name}" already exists.')

                contact = Contact(
                    user_id=user_id,
                    display_name=display_name,
                    ledger_address=address,
                    contact_phone=phone,
                    created_at=now,
                    updated_at=now,
                )
                session.add(contact)
                await session.flush()
        except IntegrityError as e:
            raise ConflictError(f'Contact "{display_name}" already exists.') from e
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to add contact: {e}")
            raise StorageError("Could not save contact") from e

        logger.info(f"📇 Contact {display_name} -> {mask_address(address)} added")
        return contact

    async def list_contacts(self, user_id: str) -> List[Contact]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(Contact).where(Contact.user_id == user_id).order_by(Contact.display_name)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError("Could not load contacts") from e

    async def get_contact_by_name(self, user_id: str, name: str) -> Optional[Contact]:
        """Exact match on the normalized name"""
        if not name or not name.strip():
            return None
        display_name = normalize_contact_name(name)
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(Contact).where(
                        Contact.user_id == user_id,
                        Contact.display_name == display_name,
                    )
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError("Could not load contact") from e

    async def search_contacts(self, user_id: str, term: str) -> List[Contact]:
        """Partial, case-insensitive name match"""
        pattern = f"%{term.strip().lower()}%"
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(Contact)
                    .where(Contact.user_id == user_id, func.lower(Contact.display_name).like(pattern))
                    .order_by(Contact.display_name)
                )
                return list(result.scalars().all())
        except SQLAlchemyError as e:
            raise StorageError("Could not search contacts") from e

    async def update_contact(
        self,
        user_id: str,
        name: str,
        new_name: Optional[str] = None,
        ledger_address: Optional[str] = None,
    ) -> Contact:
        display_name = normalize_contact_name(name)
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(Contact).where(Contact.user_id == user_id, Contact.display_name == display_name)
                )
                contact = result.scalar_one_or_none()
                if contact is None:
                    raise NotFoundError(f'Contact "{display_name}" not found.', suggestion="contacts")

                if new_name is not None:
                    cleaned = _clean_name(new_name)
                    if cleaned != contact.display_name:
                        clash = await session.execute(
                            select(Contact.id).where(Contact.user_id == user_id, Contact.display_name == cleaned)
                        )
                        if clash.scalar_one_or_none() is not None:
                            raise ConflictError(f'Contact "{cleaned}" already exists.')
                        contact.display_name = cleaned
                if ledger_address is not None:
                    contact.ledger_address = require_stx_address(ledger_address)
                contact.updated_at = get_naive_utc_now()
                return contact
        except SQLAlchemyError as e:
            raise StorageError("Could not update contact") from e

    async def delete_contact_by_name(self, user_id: str, name: str) -> bool:
        display_name = normalize_contact_name(name)
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    delete(Contact).where(Contact.user_id == user_id, Contact.display_name == display_name)
                )
                return result.rowcount > 0
        except SQLAlchemyError as e:
            raise StorageError("Could not delete contact") from e

    async def contact_count(self, user_id: str) -> int:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(func.count()).select_from(Contact).where(Contact.user_id == user_id)
                )
                return result.scalar_one()
        except SQLAlchemyError as e:
            raise StorageError("Could not count contacts") from e

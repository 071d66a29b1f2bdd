"""
Identity Resolver
=================

Maps WhatsApp identities to accounts and turns a recipient token typed by the
user into a concrete ledger address.

Resolution order for a token:
1. A syntactically valid STX address is used as-is.
2. Otherwise the token is matched against the sender's contact names
   (case-insensitive, exact after normalization).
3. Otherwise RecipientNotFoundError.
"""

import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from database import Database
from models import Account
from services.contact_service import ContactService
from services.errors import ConflictError, NotFoundError, RecipientNotFoundError, StorageError
from services.state_payloads import ResolvedRecipient
from utils.data_sanitizer import mask_address, mask_phone
from utils.datetime_helpers import get_naive_utc_now
from utils.input_validation import is_valid_stx_address, require_stx_address

logger = logging.getLogger(__name__)


class IdentityResolver:
    def __init__(self, database: Database, contacts: ContactService):
        self.database = database
        self.contacts = contacts

    async def find_account(self, user_id: str) -> Optional[Account]:
        try:
            async with self.database.session() as session:
                return await session.get(Account, user_id)
        except SQLAlchemyError as e:
            raise StorageError("Could not load account") from e

    async def get_account(self, user_id: str) -> Account:
        account = await self.find_account(user_id)
        if account is None:
            raise NotFoundError("You need to register first.\n\nSend: register [your-stx-address]")
        return account

    async def find_account_by_address(self, ledger_address: str) -> Optional[Account]:
        try:
            async with self.database.session() as session:
                result = await session.execute(
                    select(Account).where(Account.ledger_address == ledger_address)
                )
                return result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise StorageError("Could not load account") from e

    async def account_exists(self, user_id: str) -> bool:
        return await self.find_account(user_id) is not None

    async def address_exists(self, ledger_address: str) -> bool:
        return await self.find_account_by_address(ledger_address) is not None

    async def create_account(self, user_id: str, ledger_address: str) -> Account:
        address = require_stx_address(ledger_address)
        now = get_naive_utc_now()
        try:
            async with self.database.session() as session:
                if await session.get(Account, user_id) is not None:
                    raise ConflictError('You are already registered. Type "help" for available commands.')
                taken = await session.execute(select(Account.user_id).where(Account.ledger_address == address))
                if taken.scalar_one_or_none() is not None:
                    raise ConflictError("This STX address is already registered to another account.")

                account = Account(user_id=user_id, ledger_address=address, created_at=now, updated_at=now)
                session.add(account)
                await session.flush()
        except IntegrityError as e:
            raise ConflictError("This STX address is already registered to another account.") from e
        except SQLAlchemyError as e:
            logger.error(f"❌ Failed to create account: {e}")
            raise StorageError("Registration failed. Please try again later.") from e

        logger.info(f"✅ Account registered: {mask_phone(user_id)} -> {mask_address(address)}")
        return account

    async def update_account_address(self, user_id: str, ledger_address: str) -> Account:
        """Re-register an existing account under a new address"""
        address = require_stx_address(ledger_address)
        try:
            async with self.database.session() as session:
                account = await session.get(Account, user_id)
                if account is None:
                    raise NotFoundError("No account registered for this number.")
                if account.ledger_address == address:
                    return account
                taken = await session.execute(select(Account.user_id).where(Account.ledger_address == address))
                if taken.scalar_one_or_none() is not None:
                    raise ConflictError("This STX address is already registered to another account.")
                account.ledger_address = address
                account.updated_at = get_naive_utc_now()
        except IntegrityError as e:
            raise ConflictError("This STX address is already registered to another account.") from e
        except SQLAlchemyError as e:
            raise StorageError("Could not update account") from e

        logger.info(f"🔁 Account {mask_phone(user_id)} moved to {mask_address(address)}")
        return account

    async def resolve_recipient(self, user_id: str, token: str) -> ResolvedRecipient:
        token = (token or "").strip()
        if is_valid_stx_address(token):
            return ResolvedRecipient(type="address", address=token)

        contact = await self.contacts.get_contact_by_name(user_id, token)
        if contact is not None:
            return ResolvedRecipient(
                type="contact",
                address=contact.ledger_address,
                name=contact.display_name,
                contact_phone=contact.contact_phone,
            )

        raise RecipientNotFoundError(token)

    async def find_recipient_user(self, recipient: ResolvedRecipient) -> Optional[str]:
        """Registered user id behind a resolved recipient, if any"""
        if recipient.contact_phone:
            account = await self.find_account(recipient.contact_phone)
            if account is not None:
                return account.user_id
        account = await self.find_account_by_address(recipient.address)
        return account.user_id if account else None

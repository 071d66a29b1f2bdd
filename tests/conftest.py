"""
Shared test fixtures for the STX WhatsApp Bot.

Key components:
1. In-memory SQLite database (aiosqlite) with the full schema
2. FakeLedger standing in for the Stacks gateway and custody signer
3. WhatsApp gateway backed by a mocked Twilio client that records sends
4. Service container wired exactly as in production
"""

import logging
from unittest.mock import Mock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from database import Database
from services.container import ServiceContainer, build_container
from services.whatsapp_service import WhatsAppService
from tests.e2e_test_foundation import (
    ALICE,
    ALICE_ADDRESS,
    BOB,
    BOB_ADDRESS,
    BOT_NUMBER,
    FakeLedger,
)

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


@pytest_asyncio.fixture
async def database():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    db = Database("", engine=engine)
    await db.create_tables()
    yield db
    await db.dispose()


@pytest.fixture
def fake_ledger() -> FakeLedger:
    return FakeLedger()


@pytest.fixture
def twilio_client() -> Mock:
    client = Mock()
    client.messages.create.return_value = Mock(sid="SM00000000000000000000000000000001")
    return client


@pytest.fixture
def messaging(twilio_client) -> WhatsAppService:
    return WhatsAppService(from_number=BOT_NUMBER, client=twilio_client)


@pytest.fixture
def container(database, fake_ledger, messaging) -> ServiceContainer:
    return build_container(database=database, ledger=fake_ledger, messaging=messaging)


@pytest_asyncio.fixture
async def registered(container, fake_ledger):
    """Alice and Bob registered; Alice holds 10 STX"""
    await container.identities.create_account(ALICE, ALICE_ADDRESS)
    await container.identities.create_account(BOB, BOB_ADDRESS)
    fake_ledger.set_balance(ALICE_ADDRESS, 10)
    return container

"""
Service container: builds the dependency graph once per process.

Every collaborator is constructed here and handed to its dependents; nothing
reaches for module-level singletons. Tests build the same graph with an
in-memory database and fake gateways.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from config import Config
from database import Database
from handlers.dispatcher import Dispatcher
from handlers.escrow_router import EscrowRouter
from handlers.payment_router import PaymentRouter
from handlers.registration_router import RegistrationRouter
from jobs.ledger_sync import LedgerSyncScheduler
from services.confirmation import ConfirmationProtocol
from services.contact_service import ContactService
from services.conversation_state import ConversationStateStore
from services.escrow_contract import EscrowContract
from services.escrow_service import EscrowService
from services.identity_resolver import IdentityResolver
from services.ledger_monitor import LedgerMonitor
from services.stacks_gateway import StacksGateway
from services.transaction_service import TransactionService
from services.whatsapp_service import WhatsAppService

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    database: Database
    ledger: StacksGateway
    messaging: WhatsAppService
    states: ConversationStateStore
    contacts: ContactService
    identities: IdentityResolver
    transactions: TransactionService
    escrows: EscrowService
    contract: EscrowContract
    confirmation: ConfirmationProtocol
    registration: RegistrationRouter
    payments: PaymentRouter
    escrow_router: EscrowRouter
    dispatcher: Dispatcher
    monitor: LedgerMonitor
    scheduler: LedgerSyncScheduler


def build_container(
    database: Optional[Database] = None,
    ledger: Optional[StacksGateway] = None,
    messaging: Optional[WhatsAppService] = None,
) -> ServiceContainer:
    """Wire every service; pass overrides to swap the external edges"""
    database = database or Database(Config.DATABASE_URL, echo=Config.DATABASE_ECHO)
    ledger = ledger or StacksGateway()
    messaging = messaging or WhatsAppService()

    states = ConversationStateStore(database)
    contacts = ContactService(database)
    identities = IdentityResolver(database, contacts)
    transactions = TransactionService(database)
    escrows = EscrowService(database)
    contract = EscrowContract(ledger)
    confirmation = ConfirmationProtocol(states)

    registration = RegistrationRouter(identities, states, confirmation)
    payments = PaymentRouter(identities, contacts, transactions, ledger, confirmation)
    escrow_router = EscrowRouter(identities, escrows, contract, ledger, confirmation)
    dispatcher = Dispatcher(identities, states, registration, payments, escrow_router, messaging)

    monitor = LedgerMonitor(transactions, escrows, ledger)
    scheduler = LedgerSyncScheduler(monitor, states)

    logger.info("🧩 Service container built")
    return ServiceContainer(
        database=database,
        ledger=ledger,
        messaging=messaging,
        states=states,
        contacts=contacts,
        identities=identities,
        transactions=transactions,
        escrows=escrows,
        contract=contract,
        confirmation=confirmation,
        registration=registration,
        payments=payments,
        escrow_router=escrow_router,
        dispatcher=dispatcher,
        monitor=monitor,
        scheduler=scheduler,
    )

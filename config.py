"""Configuration management for the STX WhatsApp Bot"""

import os
import logging

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"⚠️ Invalid integer for {name}={value!r}, using default {default}")
        return default


class Config:
    """Application configuration"""

    # Environment detection
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower().strip()
    IS_PRODUCTION = ENVIRONMENT == "production"
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "")
    DATABASE_ECHO = _env_bool("DATABASE_ECHO")
    if DATABASE_URL.startswith("postgresql"):
        DATABASE_SOURCE = "PostgreSQL"
    elif DATABASE_URL.startswith("sqlite"):
        DATABASE_SOURCE = "SQLite"
    else:
        DATABASE_SOURCE = "NOT CONFIGURED"

    # Stacks network
    STACKS_NETWORK = os.getenv("STACKS_NETWORK", "testnet").lower()
    IS_MAINNET = STACKS_NETWORK == "mainnet"
    STACKS_API_URL = os.getenv(
        "STACKS_API_URL",
        "https://api.mainnet.hiro.so" if IS_MAINNET else "https://api.testnet.hiro.so",
    ).rstrip("/")
    STACKS_EXPLORER_URL = os.getenv("STACKS_EXPLORER_URL", "https://explorer.hiro.so").rstrip("/")

    # Custody signer: holds user keys, signs and broadcasts transactions
    STACKS_SIGNER_URL = os.getenv("STACKS_SIGNER_URL", "").rstrip("/")
    STACKS_SIGNER_API_KEY = os.getenv("STACKS_SIGNER_API_KEY", "")

    # Escrow contract
    ESCROW_CONTRACT_ADDRESS = os.getenv(
        "ESCROW_CONTRACT_ADDRESS", "ST1PQHQKV0RJXZFY1DGX8MNSNYVE3VGZJSRTPGZGM"
    )
    ESCROW_CONTRACT_NAME = os.getenv("ESCROW_CONTRACT_NAME", "escrow")

    # Fee fallbacks in microSTX, used when the fee endpoint is unavailable
    DEFAULT_FEE_LOW = _env_int("DEFAULT_FEE_LOW", 180)
    DEFAULT_FEE_MEDIUM = _env_int("DEFAULT_FEE_MEDIUM", 250)
    DEFAULT_FEE_HIGH = _env_int("DEFAULT_FEE_HIGH", 360)
    ESTIMATED_TRANSFER_BYTES = _env_int("ESTIMATED_TRANSFER_BYTES", 180)

    # HTTP client behaviour
    HTTP_TIMEOUT_SECONDS = _env_int("HTTP_TIMEOUT_SECONDS", 15)
    LEDGER_READ_RETRIES = _env_int("LEDGER_READ_RETRIES", 2)

    # Twilio WhatsApp
    TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID", "")
    TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN", "")
    TWILIO_WHATSAPP_NUMBER = os.getenv("TWILIO_WHATSAPP_NUMBER", os.getenv("TWILIO_PHONE_NUMBER", ""))
    TWILIO_ENABLED = bool(TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN and TWILIO_WHATSAPP_NUMBER)
    TWILIO_VALIDATE_SIGNATURE = _env_bool("TWILIO_VALIDATE_SIGNATURE", IS_PRODUCTION)
    WEBHOOK_PUBLIC_URL = os.getenv("WEBHOOK_PUBLIC_URL", "").rstrip("/")

    # Conversation engine
    CONVERSATION_STATE_TTL_MINUTES = _env_int("CONVERSATION_STATE_TTL_MINUTES", 10)
    BLOCKS_PER_HOUR = 6
    BLOCKS_PER_DAY = 144
    HISTORY_LIMIT = _env_int("HISTORY_LIMIT", 10)

    # Background jobs
    LEDGER_SYNC_ENABLED = _env_bool("LEDGER_SYNC_ENABLED", True)
    LEDGER_SYNC_INTERVAL_SECONDS = _env_int("LEDGER_SYNC_INTERVAL_SECONDS", 60)
    PENDING_ESCROW_WINDOW_HOURS = _env_int("PENDING_ESCROW_WINDOW_HOURS", 24)
    # A transfer the API still cannot find after this long was dropped before the mempool
    UNINDEXED_TX_TIMEOUT_MINUTES = _env_int("UNINDEXED_TX_TIMEOUT_MINUTES", 30)

    @staticmethod
    def explorer_tx_url(tx_id: str) -> str:
        """Explorer link for a transaction on the configured network"""
        chain = "mainnet" if Config.IS_MAINNET else "testnet"
        return f"{Config.STACKS_EXPLORER_URL}/txid/{tx_id}?chain={chain}"

    @staticmethod
    def log_environment_config():
        """Log current environment configuration for debugging"""
        logger.info("🔧 Bot Environment Configuration:")
        logger.info(f"   Environment: {Config.ENVIRONMENT.upper()}")
        logger.info(f"   Stacks network: {Config.STACKS_NETWORK} ({Config.STACKS_API_URL})")
        logger.info(
            f"   Escrow contract: {Config.ESCROW_CONTRACT_ADDRESS}.{Config.ESCROW_CONTRACT_NAME}"
        )

        if Config.DATABASE_SOURCE == "NOT CONFIGURED":
            logger.error("   ❌ Database: NOT CONFIGURED - Check DATABASE_URL!")
        else:
            logger.info(f"   💾 Database: {Config.DATABASE_SOURCE}")

        if Config.TWILIO_ENABLED:
            logger.info("   📱 Twilio WhatsApp: configured")
        else:
            logger.warning("   ⚠️ Twilio WhatsApp: NOT configured - outbound messages will fail")

        if not Config.STACKS_SIGNER_URL:
            logger.warning("   ⚠️ STACKS_SIGNER_URL not set - payments and escrows cannot be broadcast")

        if Config.IS_PRODUCTION and not Config.TWILIO_VALIDATE_SIGNATURE:
            logger.warning("   ⚠️ Twilio signature validation disabled in production (SECURITY RISK)")

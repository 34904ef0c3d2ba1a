"""Application configuration via environment variables."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """App settings loaded from .env or environment."""

    DATABASE_URL: str = "sqlite:///./ussd_tickets.db"
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "http://localhost:3000"

    # Menu rendering
    APP_NAME: str = "AVARA"
    CURRENCY: str = "KES"
    LOCAL_TIMEZONE: str = "Africa/Nairobi"
    MAX_MENU_EVENTS: int = 10
    MAX_LISTED_TICKETS: int = 5
    DEPOSIT_PAYBILL: str = "412345"

    # Upstream event catalog
    EVENTS_API_URL: str = "http://localhost:8080"
    CATALOG_REFRESH_SECONDS: int = 300
    HTTP_TIMEOUT_SECONDS: float = 15.0

    # IntaSend (M-Pesa STK push)
    INTASEND_SECRET_KEY: str = ""
    INTASEND_ENV: str = "sandbox"  # "live" for production
    PAYMENT_REFERENCE_BUCKET_SECONDS: int = 120

    # Africa's Talking SMS
    AFRICASTALKING_USERNAME: str = ""
    AFRICASTALKING_API_KEY: str = ""
    AFRICASTALKING_SENDER_ID: str = ""

    # Mint authorization
    MINT_SIGNER_PRIVATE_KEY: str = ""
    MINT_SIGNER_ADDRESS: str = ""

    # On-chain minting
    CHAIN_RPC_URL: str = ""
    CHAIN_ID: int = 5001
    TICKET_CONTRACT_ADDRESS: str = ""
    MINTER_PRIVATE_KEY: str = ""
    MINT_RECIPIENT_ADDRESS: str = ""
    MINT_RECEIPT_TIMEOUT_SECONDS: int = 120

    class Config:
        env_file = ".env"


settings = Settings()

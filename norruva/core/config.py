from pydantic_settings import BaseSettings
from dotenv import load_dotenv


load_dotenv()


class Settings(BaseSettings):
    app_name: str = "Norruva DPP API"
    debug: bool = False
    host: str = "127.0.0.1"
    port: int = 8000
    secret_key: str = ""
    allowed_hosts: str = ""
    public_url: str = "http://localhost:9002"

    log_file: str = "logs/application.log"
    log_level: str = "INFO"

    seed_demo_data: bool = True

    # Workflow
    recycling_credit_amount: int = 10

    # API access
    rate_limit_per_minute: int = 60

    # Webhooks
    webhook_signing_enabled: bool = True
    webhook_timeout_seconds: float = 10.0

    # Anchoring / credentials
    anchoring_explorer_url: str = "https://www.oklink.com/amoy/tx"
    credential_issuer_did: str = "did:web:norruva.com"


settings = Settings()

if not settings.secret_key:
    raise RuntimeError("Secret key not configured.")

import os
import logging
from pydantic import BaseModel, Field
from typing import List
from dotenv import load_dotenv

load_dotenv()


class WorkflowSettings(BaseModel):
    # Working days a level without its own rules may stay pending before the default reminder fires
    escalation_default_working_days: int = Field(default=int(os.getenv("ESCALATION_DEFAULT_WORKING_DAYS", "10")))
    escalation_default_notify: bool = Field(default=os.getenv("ESCALATION_DEFAULT_NOTIFY", "true").lower() == "true")
    retroactive_higher_approval_days: int = Field(default=int(os.getenv("RETROACTIVE_HIGHER_APPROVAL_DAYS", "7")))
    # Leave longer than this many days picks up an extra optional Director review
    extended_leave_director_days: float = Field(default=float(os.getenv("EXTENDED_LEAVE_DIRECTOR_DAYS", "20")))
    enable_policy_overlays: bool = Field(default=os.getenv("ENABLE_POLICY_OVERLAYS", "true").lower() == "true")


class Config(BaseModel):
    app_name: str = "MoFAD HR Leave Portal"
    environment: str = os.getenv("APP_ENV", "development")
    api_prefix: str = "/api"

    # Database
    database_url: str = os.getenv("DATABASE_URL", "sqlite:///./leave_portal.db")

    # Cron endpoints are called by an external scheduler with this bearer secret
    cron_secret: str = os.getenv("CRON_SECRET", "dev-only-cron-secret")

    version: str = "1.0.0"
    build_id: str = os.getenv("BUILD_ID", "local")
    request_id_header: str = "X-Request-ID"
    staff_id_header: str = "X-Staff-Id"

    # CORS: comma-separated origins loaded from env.
    cors_origins: List[str] = Field(
        default_factory=lambda: [
            o.strip()
            for o in os.getenv(
                "CORS_ORIGINS",
                "http://localhost:3000,http://127.0.0.1:3000",
            ).split(",")
            if o.strip()
        ]
    )

    rate_limit_per_minute: int = int(os.getenv("RATE_LIMIT_PER_MINUTE", "60"))

    workflow: WorkflowSettings = WorkflowSettings()


settings = Config()

# --- Startup Validation for Production ---
_logger = logging.getLogger(__name__)
if settings.environment not in ("development", "testing"):
    if "dev-only" in settings.cron_secret:
        raise RuntimeError(
            "FATAL: CRON_SECRET must be set for non-development environments. "
            "Set it as an environment variable."
        )
elif "dev-only" in settings.cron_secret:
    _logger.warning("Using insecure default CRON_SECRET, only acceptable in development.")

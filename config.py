"""Configuration settings for the dossier lifecycle core."""

# Load .env into os.environ so gateway credentials (e.g. TWILIO_AUTH_TOKEN) work
try:
    from dotenv import load_dotenv
    load_dotenv()
except ImportError:
    pass

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Dict, List


class Settings(BaseSettings):
    """Global settings for the dossier core.

    Settings can be overridden via environment variables with DOSSIER_CORE_ prefix.
    Example: DOSSIER_CORE_NUMBER_PREFIX=CAB
    """

    # Numbering
    number_prefix: str = Field(
        default="DOS",
        description="Prefix of human-readable dossier numbers (PREFIX-YYYYMMDD-NNNN)"
    )
    max_allocation_attempts: int = Field(
        default=100,
        ge=1,
        description="Maximum insert attempts before falling back to a time-based number"
    )

    # Roles
    top_role: str = Field(
        default="superadmin",
        description="Role granted every dossier capability unconditionally"
    )
    admin_roles: List[str] = Field(
        default=["admin", "superadmin"],
        description="Administrative tier: may view any dossier and impersonate"
    )
    staff_roles: List[str] = Field(
        default=[
            "admin", "superadmin", "avocat", "assistant",
            "comptable", "secretaire", "juriste", "stagiaire",
        ],
        description="Roles eligible for dossier teams"
    )

    # Notifications
    sms_status_triggers: List[str] = Field(
        default=["accepte", "annule"],
        description="Statuses whose entry texts the dossier owner (confirmation/cancellation)"
    )
    critical_notification_types: List[str] = Field(
        default=["otp", "account_security"],
        description="Notification and SMS types that preferences can never suppress"
    )
    default_country_code: str = Field(
        default="+33",
        description="Country code applied to national phone numbers"
    )
    brand_name: str = Field(
        default="Paw Legal",
        description="Signature appended to built-in SMS texts"
    )

    # SMS gateway (env: DOSSIER_CORE_<KEY>)
    sms_provider: str = Field(
        default="console",
        description="Outbound SMS gateway (twilio, console)"
    )
    twilio_account_sid: str = Field(
        default="",
        description="Twilio account SID, must start with AC"
    )
    twilio_auth_token: str = Field(
        default="",
        description="Twilio auth token"
    )
    twilio_from_number: str = Field(
        default="",
        description="Sender phone number for Twilio messages"
    )
    twilio_api_url: str = Field(
        default="https://api.twilio.com/2010-04-01",
        description="Twilio REST API base URL"
    )
    gateway_timeout_seconds: int = Field(
        default=30,
        description="Outbound gateway call timeout in seconds"
    )

    # Store
    store_backend: str = Field(
        default="memory",
        description="Record store backend (memory, mongo)"
    )
    mongo_uri: str = Field(
        default="mongodb://localhost:27017",
        description="MongoDB connection URI"
    )
    mongo_database: str = Field(
        default="dossier_core",
        description="MongoDB database name"
    )

    # Presence and scheduling
    collaborator_stale_after_minutes: int = Field(
        default=120,
        ge=1,
        description="Active collaborators idle longer than this are pruned"
    )
    deadline_reminder_days: List[int] = Field(
        default=[2, 1, 0],
        description="Days before a task due date at which reminders are sent"
    )

    # Output
    log_level: str = Field(
        default="INFO",
        description="Root log level for the CLI"
    )
    date_label_format: str = Field(
        default="%d/%m/%Y",
        description="Date format used in human-facing messages"
    )

    model_config = {
        "env_prefix": "DOSSIER_CORE_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",  # ignore unrelated env vars
    }

    def is_admin_role(self, role: str) -> bool:
        """True if the role belongs to the administrative tier."""
        return role in self.admin_roles

    def is_staff_role(self, role: str) -> bool:
        """True if the role may sit on a dossier team."""
        return role in self.staff_roles or role in self.admin_roles


# Role-to-tier mapping used by the permission table.
# Roles missing from this mapping resolve to "visitor".
ROLE_TIERS: Dict[str, str] = {
    "superadmin": "top",
    "admin": "admin",
    "avocat": "staff",
    "assistant": "staff",
    "comptable": "staff",
    "secretaire": "staff",
    "juriste": "staff",
    "stagiaire": "staff",
    "client": "client",
    "partenaire": "partner",
    "visiteur": "visitor",
}


# Create singleton instance
settings = Settings()

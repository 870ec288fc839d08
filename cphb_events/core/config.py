from pydantic import Field
from pydantic_settings import BaseSettings

class Settings(BaseSettings):
    """Application configuration loaded from environment variables / .env file."""

    app_name: str = "CPHB Events API"
    app_env: str = "development"
    app_port: int = 8000
    frontend_url: str = Field(default="http://localhost:3000", alias="FRONTEND_URI")

    # Database (SQLite for local dev)
    database_url: str = Field(
        default="sqlite+aiosqlite:///./cphb_events_dev.db",
        alias="DATABASE_URL",
    )
    store_timeout_seconds: float = Field(default=5.0, alias="STORE_TIMEOUT_SECONDS")

    # Campus OAuth2 authority
    uiowa_client_id: str = Field(default="", alias="UIOWA_ACCESS_KEY_ID")
    uiowa_client_secret: str = Field(default="", alias="UIOWA_SECRET_ACCESS_KEY")
    uiowa_scopes: str = Field(default="", alias="UIOWA_SCOPES")
    identity_base_url: str = Field(
        default="https://login.uiowa.edu/uip/", alias="IDENTITY_BASE_URL",
    )
    redirect_uri: str = Field(
        default="http://localhost:8000/api/v1/auth", alias="REDIRECT_URI",
    )
    token_expiry_margin_seconds: int = Field(
        default=300, alias="TOKEN_EXPIRY_MARGIN_SECONDS",
    )  # tokens are treated as expired this long before they actually are

    # Sessions
    session_cookie_name: str = Field(default="sid", alias="SESSION_COOKIE_NAME")
    # Session cookie lifetime when the authority does not report refresh_expires_in
    refresh_token_lifetime_seconds: int = Field(
        default=14 * 24 * 3600, alias="REFRESH_TOKEN_LIFETIME_SECONDS",
    )
    session_cookie_secure: bool = Field(default=True, alias="SESSION_COOKIE_SECURE")
    dev_origins: list[str] = Field(
        default=["http://localhost:3000"], alias="DEV_ORIGINS",
    )
    dev_hawk_id: str = Field(default="developer", alias="DEV_HAWK_ID")
    campus_email_domain: str = Field(default="uiowa.edu", alias="CAMPUS_EMAIL_DOMAIN")

    # Workflow (approval routing)
    workflow_base_url: str = Field(
        default="https://apps.its.uiowa.edu/workflow", alias="WORKFLOW_BASE_URL",
    )
    workflow_env: str = Field(default="test", alias="WF_ENV")  # test | prod
    workflow_form_id: str = Field(default="", alias="FORM_ID")

    # Document sync (SharePoint list flows); empty URL disables that operation
    sharepoint_create_url: str = Field(default="", alias="SHAREPOINT_CREATE_URL")
    sharepoint_update_url: str = Field(default="", alias="SHAREPOINT_UPDATE_URL")
    sharepoint_delete_url: str = Field(default="", alias="SHAREPOINT_DELETE_URL")
    event_link_base: str | None = Field(default=None, alias="EVENT_LINK_BASE")

    # Outbound HTTP
    http_timeout_seconds: float = Field(default=10.0, alias="HTTP_TIMEOUT_SECONDS")

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "populate_by_name": True,
    }

    @property
    def event_link_prefix(self) -> str:
        """Base URL of the frontend's single-event page."""
        return (self.event_link_base or f"{self.frontend_url}/event").rstrip("/")

    def campus_email(self, hawk_id: str) -> str:
        return f"{hawk_id}@{self.campus_email_domain}"

settings = Settings()

"""Server settings loaded from the environment and an optional config file."""

from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, BaseModel, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    JsonConfigSettingsSource,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

CONFIG_FILE = Path.home() / ".logicapps-mcp" / "config.json"


class CloudEndpoints(BaseModel):
    """Endpoints of one Azure cloud."""

    name: str
    login_endpoint: str
    token_audience: str
    resource_manager: str
    websites_suffix: str


AZURE_CLOUDS: dict[str, CloudEndpoints] = {
    "AzurePublic": CloudEndpoints(
        name="AzurePublic",
        login_endpoint="https://login.microsoftonline.com",
        token_audience="https://management.azure.com",
        resource_manager="https://management.azure.com",
        websites_suffix=".azurewebsites.net",
    ),
    "AzureGovernment": CloudEndpoints(
        name="AzureGovernment",
        login_endpoint="https://login.microsoftonline.us",
        token_audience="https://management.usgovcloudapi.net",
        resource_manager="https://management.usgovcloudapi.net",
        websites_suffix=".azurewebsites.us",
    ),
    "AzureChina": CloudEndpoints(
        name="AzureChina",
        login_endpoint="https://login.chinacloudapi.cn",
        token_audience="https://management.chinacloudapi.cn",
        resource_manager="https://management.chinacloudapi.cn",
        websites_suffix=".chinacloudsites.cn",
    ),
}


class Settings(BaseSettings):
    """Configuration for logicapps-mcp.

    Values are read from environment variables (case-insensitive), an
    optional ``.env`` file in the working directory, and finally
    ``~/.logicapps-mcp/config.json``.  Only the ``AZURE_*`` and
    ``LOGICAPPS_MCP_*`` variables are consulted; field names are accepted
    as keyword arguments and config file keys.
    """

    tenant_id: str | None = Field(
        default=None, validation_alias=AliasChoices("AZURE_TENANT_ID", "tenantId")
    )
    cloud: str = Field(default="AzurePublic", validation_alias="AZURE_CLOUD")
    custom_cloud: CloudEndpoints | None = Field(default=None, validation_alias="customCloud")
    default_subscription_id: str | None = Field(
        default=None,
        validation_alias=AliasChoices("AZURE_SUBSCRIPTION_ID", "defaultSubscriptionId"),
    )
    log_level: Literal["debug", "info", "warning", "error"] = Field(
        default="info", validation_alias="LOGICAPPS_MCP_LOG_LEVEL"
    )
    cache_ttl: int = Field(default=300, ge=0, validation_alias="LOGICAPPS_MCP_CACHE_TTL")
    http_timeout: float = Field(
        default=30.0,
        gt=0,
        validation_alias="LOGICAPPS_MCP_HTTP_TIMEOUT",
    )
    max_retries: int = Field(default=3, ge=0, validation_alias="LOGICAPPS_MCP_MAX_RETRIES")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        json_file=CONFIG_FILE,
        extra="ignore",
        populate_by_name=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            JsonConfigSettingsSource(settings_cls),
        )

    @model_validator(mode="after")
    def _validate_cloud(self) -> "Settings":
        if self.custom_cloud is None and self.cloud not in AZURE_CLOUDS:
            raise ValueError(
                f"Unknown Azure cloud: {self.cloud}. "
                f"Valid options: {', '.join(AZURE_CLOUDS)}"
            )
        return self

    @property
    def endpoints(self) -> CloudEndpoints:
        """Return the active cloud endpoints."""
        return self.custom_cloud or AZURE_CLOUDS[self.cloud]


settings = Settings()

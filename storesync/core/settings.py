from pydantic import BaseModel
from pydantic_settings import BaseSettings, SettingsConfigDict


class TableNames(BaseModel):
    """Destination DynamoDB tables."""

    orders: str
    products: str
    customers: str
    sync_metadata: str


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Shopify Admin API configuration
    SHOPIFY_STORE_URL: str | None = None
    SHOPIFY_ACCESS_TOKEN: str | None = None
    SHOPIFY_API_VERSION: str = "2024-01"
    SHOPIFY_REQUEST_TIMEOUT: float = 30.0

    # AWS configuration
    AWS_REGION: str = "us-east-1"

    # Destination tables
    ORDERS_TABLE: str = "ShopifyOrders"
    PRODUCTS_TABLE: str = "ShopifyProducts"
    CUSTOMERS_TABLE: str = "ShopifyCustomers"
    SYNC_METADATA_TABLE: str = "ShopifySyncMetadata"

    # Bulk file import
    EXPORT_FILES_BUCKET: str | None = None
    EXPORT_FILES_PREFIX: str = "order_exports/"
    ORDER_EXPORTS_PATH: str = "./order_exports"

    # Run-level mutual exclusion
    SYNC_LEASE_ENABLED: bool = True
    SYNC_LEASE_TTL_SECONDS: int = 900

    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: str = "*"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    def tables(self) -> TableNames:
        return TableNames(
            orders=self.ORDERS_TABLE,
            products=self.PRODUCTS_TABLE,
            customers=self.CUSTOMERS_TABLE,
            sync_metadata=self.SYNC_METADATA_TABLE,
        )

    def cors_origins(self) -> list[str]:
        origins = [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]
        return origins or ["*"]


settings = Settings()

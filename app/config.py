import os


def _flag(name, default="0"):
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class BaseConfig:
    JSON_SORT_KEYS = False
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    CORS_ALLOWED_ORIGINS = os.getenv("CORS_ALLOWED_ORIGINS", "*")
    RATELIMIT_STORAGE_URL = os.getenv("RATELIMIT_STORAGE_URL", "memory://")
    ORDER_LIMIT_PER_IP = os.getenv("ORDER_LIMIT_PER_IP", "20 per hour")
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-insecure-jwt-key")
    ACCESS_TOKEN_LIFETIME_MIN = int(os.getenv("ACCESS_TOKEN_LIFETIME_MIN", 15))

    # Cart & checkout
    CART_SESSION_TTL_DAYS = int(os.getenv("CART_SESSION_TTL_DAYS", 30))
    MAX_LINE_QUANTITY = int(os.getenv("MAX_LINE_QUANTITY", 99))
    ADMIN_ORDERS_PER_PAGE = int(os.getenv("ADMIN_ORDERS_PER_PAGE", 20))
    SHOP_NAME = os.getenv("SHOP_NAME", "BS SHOP")
    CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "€")

    # WhatsApp confirmations (Twilio)
    WHATSAPP_CONFIRMATIONS_ENABLED = _flag("WHATSAPP_CONFIRMATIONS_ENABLED")
    TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
    TWILIO_WHATSAPP_FROM = os.getenv("TWILIO_WHATSAPP_FROM")

    OTEL_SERVICE_NAME = os.getenv("OTEL_SERVICE_NAME", "bs-shop-backend")
    OTEL_EXPORTER_OTLP_ENDPOINT = os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4318/v1/traces")

class DevelopmentConfig(BaseConfig):
    DEBUG = True
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-insecure-key")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///dev.db")

class TestingConfig(BaseConfig):
    TESTING = True
    SECRET_KEY = "test-key"
    SQLALCHEMY_DATABASE_URI = os.getenv("TEST_DATABASE_URL", "sqlite:///:memory:")
    RATELIMIT_ENABLED = False
    WHATSAPP_CONFIRMATIONS_ENABLED = False

class ProductionConfig(BaseConfig):
    DEBUG = False
    TESTING = False
    SECRET_KEY = os.getenv("SECRET_KEY")
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL")

    @staticmethod
    def validate():
        missing = []
        if not os.getenv("SECRET_KEY"):
            missing.append("SECRET_KEY")
        if not os.getenv("DATABASE_URL"):
            missing.append("DATABASE_URL")
        if not os.getenv("JWT_SECRET"):
            missing.append("JWT_SECRET")
        if missing:
            raise RuntimeError(
                f"Missing required env vars in production: {', '.join(missing)}"
            )

def get_config_class():
    env = os.getenv("APP_ENV", "development").lower()
    if env == "production":
        ProductionConfig.validate()
        return ProductionConfig
    if env == "testing":
        return TestingConfig
    return DevelopmentConfig

import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL", "sqlite:///servicebook.db")

    JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")

    CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:3000")

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON = _env_bool("LOG_JSON", True)

    # Share of the service amount kept by the platform. Used for the booking
    # fee split and for cash-booking wallet deductions alike.
    PLATFORM_FEE_RATE = float(os.getenv("PLATFORM_FEE_RATE", "0.08"))
    BOOKING_NUMBER_MAX_ATTEMPTS = int(os.getenv("BOOKING_NUMBER_MAX_ATTEMPTS", 5))

    REMINDER_SCHEDULER_ENABLED = _env_bool("REMINDER_SCHEDULER_ENABLED", False)
    REMINDER_INTERVAL_SECONDS = int(os.getenv("REMINDER_INTERVAL_SECONDS", 300))
    REMINDER_EVICT_AFTER_MINUTES = int(os.getenv("REMINDER_EVICT_AFTER_MINUTES", 120))

    PUSH_PROVIDER = os.getenv("PUSH_PROVIDER", "log")
    FCM_SERVER_KEY = os.getenv("FCM_SERVER_KEY", "")
    FCM_ENDPOINT = os.getenv("FCM_ENDPOINT", "https://fcm.googleapis.com/fcm/send")
    PUSH_TIMEOUT_SECONDS = float(os.getenv("PUSH_TIMEOUT_SECONDS", 5))


class DevelopmentConfig(Config):
    DEBUG = True
    LOG_JSON = _env_bool("LOG_JSON", False)


class ProductionConfig(Config):
    DEBUG = False


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    JWT_SECRET_KEY = "test-secret-key-with-enough-length-for-hs256"
    LOG_JSON = False
    REMINDER_SCHEDULER_ENABLED = False
    PUSH_PROVIDER = "log"


CONFIGS = {
    "development": DevelopmentConfig,
    "production": ProductionConfig,
    "testing": TestingConfig,
}

import os


class Settings:
    """Runtime settings, read from the environment once at import."""

    def __init__(self):
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./tutoring.db")
        self.payment_base_url = os.getenv("PAYMENT_BASE_URL", "http://localhost:3000/payment").rstrip("/")
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.cors_origins = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",")
            if origin.strip()
        ]
        # USD -> EGP display rate used by the salary pages
        self.default_conversion_rate = float(os.getenv("DEFAULT_CONVERSION_RATE", "30"))


settings = Settings()

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    APP_NAME: str = "Booking Payments"

    STORE_PROVIDER: str = "memory"  # "memory" | "json"
    STORE_DATA_DIR: str = "./data/bookings"

    SAFEPAY_SECRET_KEY: str | None = None
    SAFEPAY_MERCHANT_API_KEY: str | None = None
    SAFEPAY_HOST: str = "https://sandbox.api.getsafepay.com"
    SAFEPAY_CHECKOUT_HOST: str = "https://sandbox.api.getsafepay.com"
    SAFEPAY_ENVIRONMENT: str = "sandbox"
    SAFEPAY_WEBHOOK_SECRET: str | None = None

    PAYMENT_CURRENCY: str = "PKR"
    PAYMENT_VERIFY_WITH_GATEWAY: bool = True
    PAYMENT_TRACKER_WRITE_ATTEMPTS: int = 2
    CONSULTATION_FEE: int = 50000

    CALCOM_LINK: str = "arco/consultation"
    CALCOM_BASE_URL: str = "https://cal.com"

    RESEND_API_KEY: str | None = None
    EMAIL_FROM_ADDRESS: str = "Bookings <noreply@example.com>"

    STAFF_API_TOKEN: str = ""

    MOCK_CHECKOUT_BASE_URL: str = "http://localhost:8000"


settings = Settings()

import os

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./premium.db")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"

# ✅ Security
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "60"))

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

# ✅ Premium billing
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "USD")
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "10"))
CONCURRENCY_RETRY_ATTEMPTS = int(os.getenv("CONCURRENCY_RETRY_ATTEMPTS", "3"))

# ✅ Payment reconciliation worker
RUN_RECONCILIATION_WORKER = os.getenv("RUN_RECONCILIATION_WORKER", "0") == "1"
RECONCILIATION_INTERVAL_SECONDS = int(os.getenv("RECONCILIATION_INTERVAL_SECONDS", "300"))
RECONCILIATION_GRACE_SECONDS = int(os.getenv("RECONCILIATION_GRACE_SECONDS", "120"))
PAYMENT_ABANDON_AFTER_HOURS = int(os.getenv("PAYMENT_ABANDON_AFTER_HOURS", "24"))

# ✅ Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

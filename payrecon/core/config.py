import os

# Database Configuration
# Uses default credentials for local Docker Compose setup
DB_URL = os.getenv("DATABASE_URL", "postgres://user:password@db:5432/payrecon_db")

# Application Metadata
PROJECT_NAME = "AuraCart Payment Reconciliation Service"
VERSION = "1.0.0"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Provider (Paystack) Configuration
PAYSTACK_WEBHOOK_SECRET = os.getenv("PAYSTACK_WEBHOOK_SECRET", "")  # HMAC key for inbound webhooks
PAYSTACK_SECRET_KEY = os.getenv("PAYSTACK_SECRET_KEY", "")  # Bearer key for outbound API calls
PAYSTACK_BASE_URL = os.getenv("PAYSTACK_BASE_URL", "https://api.paystack.co")
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", 15))
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "NGN")

# Webhook secrets per provider path segment (/webhook/{provider})
WEBHOOK_SECRETS = {
    "paystack": PAYSTACK_WEBHOOK_SECRET,
}

# Retry / TTL windows shared by the reconciliation workers
MAX_ATTEMPTS = int(os.getenv("MAX_ATTEMPTS", 5))
DLQ_LOOKBACK_HOURS = int(os.getenv("DLQ_LOOKBACK_HOURS", 24))
DLQ_BATCH_SIZE = int(os.getenv("DLQ_BATCH_SIZE", 10))
REFUND_BATCH_SIZE = int(os.getenv("REFUND_BATCH_SIZE", 50))
DISPUTE_BATCH_SIZE = int(os.getenv("DISPUTE_BATCH_SIZE", 50))
DISPUTE_TTL_DAYS = int(os.getenv("DISPUTE_TTL_DAYS", 14))
DISPUTE_ESCALATION_DAYS = int(os.getenv("DISPUTE_ESCALATION_DAYS", 3))

# Fee configuration
PAYSTACK_COMMISSION_RATE = os.getenv("PAYSTACK_COMMISSION_RATE", "0.0135")  # 1.35% standard rate
PLATFORM_COMMISSION_RATE = os.getenv("PLATFORM_COMMISSION_RATE", "0.15")  # 15% of gross profit

# Supplier SLA scoring
SLA_PERIOD_DAYS = int(os.getenv("SLA_PERIOD_DAYS", 30))
ON_TIME_DELIVERY_DAYS = int(os.getenv("ON_TIME_DELIVERY_DAYS", 14))

# Worker scheduling
JOB_LEASE_SECONDS = int(os.getenv("JOB_LEASE_SECONDS", 900))  # A crashed run frees its lease after this
WORKER_POLL_INTERVAL = int(os.getenv("WORKER_POLL_INTERVAL", 300))

# Admin API
ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN", "")
REDIS_URL = os.getenv("REDIS_URL")
RATE_LIMIT_POINTS = int(os.getenv("RATE_LIMIT_POINTS", 60))  # per window
RATE_LIMIT_DURATION = int(os.getenv("RATE_LIMIT_DURATION", 60))  # seconds

import os

# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./theralink.db")
RUN_MIGRATIONS = os.getenv("RUN_MIGRATIONS", "0") == "1"

# ✅ Security
SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")

# ✅ Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ✅ Frontend (used for upgrade links in paywall responses)
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")

# ✅ Stripe
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")

# Product IDs are the join key between Stripe subscriptions and our plan catalog
STRIPE_PRODUCT_PATIENT_ESSENTIAL = os.getenv("STRIPE_PRODUCT_PATIENT_ESSENTIAL", "prod_TrGnGXJjteXpy6")
STRIPE_PRODUCT_THERAPIST_STARTER = os.getenv("STRIPE_PRODUCT_THERAPIST_STARTER", "prod_TrGoJXZ6Fgac8G")
STRIPE_PRODUCT_THERAPIST_GROWTH = os.getenv("STRIPE_PRODUCT_THERAPIST_GROWTH", "prod_TrGst1UgwisJ68")
STRIPE_PRODUCT_THERAPIST_SCALE = os.getenv("STRIPE_PRODUCT_THERAPIST_SCALE", "prod_TrGwCV4yfk3XYE")

# Price IDs are only handed to the frontend for checkout links
STRIPE_PRICE_PATIENT_ESSENTIAL = os.getenv("STRIPE_PRICE_PATIENT_ESSENTIAL", "price_1StYFaENOmAXvvJcsEYuA0r0")
STRIPE_PRICE_THERAPIST_STARTER = os.getenv("STRIPE_PRICE_THERAPIST_STARTER", "price_1StYGZENOmAXvvJcXESZg3do")
STRIPE_PRICE_THERAPIST_GROWTH = os.getenv("STRIPE_PRICE_THERAPIST_GROWTH", "price_1StYKvENOmAXvvJciFFZ4R8O")
STRIPE_PRICE_THERAPIST_SCALE = os.getenv("STRIPE_PRICE_THERAPIST_SCALE", "price_1StYOSENOmAXvvJcgSYwcda6")

# ✅ Checkout redirect verification
CHECKOUT_SETTLE_DELAY_SECONDS = float(os.getenv("CHECKOUT_SETTLE_DELAY_SECONDS", "2"))
VERIFY_RETRY_DELAY_SECONDS = float(os.getenv("VERIFY_RETRY_DELAY_SECONDS", "2"))
VERIFY_MAX_ATTEMPTS = int(os.getenv("VERIFY_MAX_ATTEMPTS", "3"))

# ✅ Periodic reconciliation from long-lived client sessions
RECONCILE_INTERVAL_SECONDS = float(os.getenv("RECONCILE_INTERVAL_SECONDS", "60"))

# ✅ Capacity
CAPACITY_WARNING_PERCENT = int(os.getenv("CAPACITY_WARNING_PERCENT", "80"))

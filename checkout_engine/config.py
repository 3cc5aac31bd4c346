# checkout_engine/config.py

import os

from dotenv import load_dotenv

load_dotenv()


# -----------------------------
# Checkout session
# -----------------------------
CHECKOUT_SESSION_TTL_SECONDS = int(os.getenv("CHECKOUT_SESSION_TTL_SECONDS", "600"))
CHECKOUT_ALMOST_EXPIRED_SECONDS = int(os.getenv("CHECKOUT_ALMOST_EXPIRED_SECONDS", "120"))
SIMULATED_LATENCY_SECONDS = float(os.getenv("SIMULATED_LATENCY_SECONDS", "0"))

# "sql" | "file" | "memory"
SESSION_STORE = os.getenv("SESSION_STORE", "sql")
SESSION_STORE_PATH = os.getenv("SESSION_STORE_PATH", "tixmojo_payment_sessions.json")


# -----------------------------
# Payment
# -----------------------------
PAYMENT_CURRENCY = os.getenv("PAYMENT_CURRENCY", "usd")
GATEWAY_MAX_RETRIES = int(os.getenv("GATEWAY_MAX_RETRIES", "3"))
GATEWAY_RETRY_DELAY = float(os.getenv("GATEWAY_RETRY_DELAY", "0.5"))


# -----------------------------
# Database
# -----------------------------
DB_CONNECT_MAX_RETRIES = int(os.getenv("DB_CONNECT_MAX_RETRIES", "30"))
DB_CONNECT_RETRY_DELAY = float(os.getenv("DB_CONNECT_RETRY_DELAY", "1.5"))


LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

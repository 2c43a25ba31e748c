import os
import re
from dotenv import load_dotenv

# Load .env from the project root
load_dotenv()

_TRUTHY = {"1", "true", "yes", "on"}


def _env_flag(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in _TRUTHY


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./tikprofil.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_STAGE = ENV_NORMALIZED in {"stage", "staging"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}
PUBLIC_BASE_DOMAIN = os.getenv("PUBLIC_BASE_DOMAIN", "tikprofil.com").strip().lower()

# Checkout
ORDER_TOTAL_TOLERANCE = float(os.getenv("ORDER_TOTAL_TOLERANCE", "0.01"))
CHECKOUT_RATE_LIMIT = int(os.getenv("CHECKOUT_RATE_LIMIT", "5"))
CHECKOUT_RATE_WINDOW_SECONDS = int(os.getenv("CHECKOUT_RATE_WINDOW_SECONDS", "600"))
CHECKOUT_RATE_BLOCK_SECONDS = int(os.getenv("CHECKOUT_RATE_BLOCK_SECONDS", "3600"))
RATE_LIMIT_MAX_TRACKED = int(os.getenv("RATE_LIMIT_MAX_TRACKED", "10000"))
# reverse proxies in front of the app; 0 means X-Forwarded-For is ignored
TRUSTED_PROXY_HOPS = int(os.getenv("TRUSTED_PROXY_HOPS", "0"))
EXPOSE_ERROR_DETAILS = _env_flag("EXPOSE_ERROR_DETAILS", "1" if IS_DEV else "0")

# Coupon product switches, see DESIGN.md
COUPON_CLAMP_FIXED_DISCOUNT = _env_flag("COUPON_CLAMP_FIXED_DISCOUNT")
COUPON_BOGO_ENABLED = _env_flag("COUPON_BOGO_ENABLED")

# New-order notification (best effort)
NOTIFY_WEBHOOK_URL = os.getenv("NOTIFY_WEBHOOK_URL", "").strip()
NOTIFY_TIMEOUT_SECONDS = float(os.getenv("NOTIFY_TIMEOUT_SECONDS", "5"))

# WhatsApp deep link
WHATSAPP_COUNTRY_CODE = os.getenv("WHATSAPP_COUNTRY_CODE", "90").strip()

# CORS
_cors_env = os.getenv("CORS_ORIGINS", "")
CORS_ORIGINS = [origin.strip() for origin in _cors_env.split(",") if origin.strip() and origin.strip() != "*"]

if not CORS_ORIGINS and IS_DEV:
    CORS_ORIGINS = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

_cors_origin_regex_env = os.getenv("CORS_ALLOW_ORIGIN_REGEX", "").strip()
if _cors_origin_regex_env:
    CORS_ALLOW_ORIGIN_REGEX = _cors_origin_regex_env
elif not IS_DEV and PUBLIC_BASE_DOMAIN:
    escaped_base_domain = re.escape(PUBLIC_BASE_DOMAIN)
    CORS_ALLOW_ORIGIN_REGEX = rf"^https://([a-z0-9-]+\.)?{escaped_base_domain}$"
else:
    CORS_ALLOW_ORIGIN_REGEX = None

# Auth (owner panel JWT)
JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "dev-secret-change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "1440"))

import os
from dotenv import load_dotenv

# Carrega o .env da raiz do projeto
load_dotenv()


def _env_flag(name: str, default: str = "0") -> bool:
    return os.getenv(name, default).strip().lower() in {"1", "true", "yes", "on"}


DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./chatcommerce.db")
ENV = os.getenv("ENV", "dev")
ENV_NORMALIZED = ENV.lower()
IS_DEV = ENV_NORMALIZED in {"dev", "development", "local"}
IS_STAGE = ENV_NORMALIZED in {"stage", "staging"}
IS_PROD = ENV_NORMALIZED in {"prod", "production"}

# WhatsApp Cloud API
META_WA_ACCESS_TOKEN = os.getenv("META_WA_ACCESS_TOKEN", "")
META_WA_PHONE_NUMBER_ID = os.getenv("META_WA_PHONE_NUMBER_ID", "")
META_WA_VERIFY_TOKEN = os.getenv("META_WA_VERIFY_TOKEN", "")
META_API_VERSION = os.getenv("META_API_VERSION", "v19.0")
WHATSAPP_PROVIDER = os.getenv("WHATSAPP_PROVIDER", "mock").strip().lower()
WHATSAPP_FALLBACK_TO_MOCK = _env_flag("WHATSAPP_FALLBACK_TO_MOCK", "1" if IS_DEV else "0")

# Upstream services (vazio = adaptador em memória)
CATALOG_API_URL = os.getenv("CATALOG_API_URL", "").strip().rstrip("/")
ORDERS_API_URL = os.getenv("ORDERS_API_URL", "").strip().rstrip("/")
PAYMENTS_API_URL = os.getenv("PAYMENTS_API_URL", "").strip().rstrip("/")
UPSTREAM_API_TOKEN = os.getenv("UPSTREAM_API_TOKEN", "")
UPSTREAM_TIMEOUT_SECONDS = float(os.getenv("UPSTREAM_TIMEOUT_SECONDS", "10"))
CATALOG_SEED_PATH = os.getenv("CATALOG_SEED_PATH", "").strip()

# Sessões
SESSION_TTL_HOURS = int(os.getenv("SESSION_TTL_HOURS", "24"))
SESSION_SAVE_MAX_ATTEMPTS = int(os.getenv("SESSION_SAVE_MAX_ATTEMPTS", "3"))
SESSION_CACHE_ENABLED = _env_flag("SESSION_CACHE_ENABLED", "1")
DEDUP_TTL_SECONDS = int(os.getenv("DEDUP_TTL_SECONDS", "86400"))

# Apresentação
BRAND_NAME = os.getenv("BRAND_NAME", "ICUPA Malta")
CURRENCY_SYMBOL = os.getenv("CURRENCY_SYMBOL", "€")
ESTIMATED_PICKUP_MINUTES = os.getenv("ESTIMATED_PICKUP_MINUTES", "15-20")

# centralized configuration loader
# runs load_dotenv() to read .env
# decouples code from environment so keys/limits/collaborators can change without a code change

import os
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in {"1", "true", "yes", "y"}


# Provider credentials (checked for plausibility only, never logged)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY", "")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY", "<YOUR_GEMINI_API_KEY>")
CLAUDE_API_KEY = os.getenv("CLAUDE_API_KEY", "")
GROK_API_KEY = os.getenv("GROK_API_KEY", "")
DEEPSEEK_API_KEY = os.getenv("DEEPSEEK_API_KEY", "")

# Provider endpoints
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
CLAUDE_BASE_URL = os.getenv("CLAUDE_BASE_URL", "https://api.anthropic.com/v1")
GROK_BASE_URL = os.getenv("GROK_BASE_URL", "https://api.x.ai/v1")
DEEPSEEK_BASE_URL = os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com/v1")

# Generation
DEFAULT_MODEL = os.getenv("DEFAULT_MODEL", "gpt-3.5-turbo")
SYSTEM_PROMPT = os.getenv("SYSTEM_PROMPT", "")
MAX_OUTPUT_TOKENS = int(os.getenv("MAX_OUTPUT_TOKENS", "4000"))
TEMPERATURE = float(os.getenv("TEMPERATURE", "0.7"))
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "120"))

# Uploads (opaque blob store on local disk)
UPLOAD_DIR = os.getenv("UPLOAD_DIR", "uploads")
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))

# Free tier quotas
FREE_CHAT_LIMIT = int(os.getenv("FREE_CHAT_LIMIT", "3"))
FREE_MESSAGE_LIMIT = int(os.getenv("FREE_MESSAGE_LIMIT", "20"))

# Durable store / identity (Supabase); empty url means in-memory collaborators
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY", "")

# Billing (Stripe); empty key means the durable subscribed flag is trusted as-is
STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY", "")

# development identity table: "token:user_id[:email],..."
STATIC_AUTH_TOKENS = os.getenv("STATIC_AUTH_TOKENS", "")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_PROVIDER_STATUS = _flag("LOG_PROVIDER_STATUS", "true")

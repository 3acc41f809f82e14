import os


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


# ✅ Database
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./careercoach.db")

# ✅ Security
SECRET_KEY = os.getenv("SECRET_KEY", "change-me")
ALGORITHM = os.getenv("ALGORITHM", "HS256")

# ✅ OpenAI (learning plan generation)
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
PLANNER_MODEL = os.getenv("PLANNER_MODEL", "gpt-4o-mini")
PLAN_GENERATION_ATTEMPTS = int(os.getenv("PLAN_GENERATION_ATTEMPTS", "3"))
PROVIDER_TIMEOUT_SECONDS = float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "30"))

# ✅ Voice interview provider (VAPI)
VAPI_BASE_URL = os.getenv("VAPI_BASE_URL", "https://api.vapi.ai")
VAPI_PRIVATE_KEY = os.getenv("VAPI_PRIVATE_KEY")
VAPI_WEBHOOK_SECRET = os.getenv("VAPI_WEBHOOK_SECRET")

# ✅ Public URLs
BACKEND_URL = os.getenv("BACKEND_URL", "http://localhost:8000")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:3000")

# ✅ SMTP
SMTP_HOST = os.getenv("SMTP_HOST", "")
SMTP_PORT = int(os.getenv("SMTP_PORT", "587"))
SMTP_USER = os.getenv("SMTP_USER", "")
SMTP_PASS = os.getenv("SMTP_PASS", "")
SMTP_USE_SSL = _env_flag("SMTP_USE_SSL")
EMAIL_FROM_NAME = os.getenv("EMAIL_FROM_NAME", "AI Career Coach")

# ✅ Daily dispatch
DISPATCH_ENABLED = _env_flag("DISPATCH_ENABLED", True)
DISPATCH_LOCAL_HOUR = int(os.getenv("DISPATCH_LOCAL_HOUR", "8"))

# ✅ Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# ✅ Schema management
RUN_MIGRATIONS = _env_flag("RUN_MIGRATIONS")

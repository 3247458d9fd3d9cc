from typing import List, Optional
from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # -------------------------------------------------
    # General
    # -------------------------------------------------
    PROJECT_NAME: str = "Coaching Platform API"
    ENV: str = "development"

    # -------------------------------------------------
    # Frontend Domains
    # -------------------------------------------------
    FRONTEND_DOMAIN: Optional[str] = Field(None, env="FRONTEND_DOMAIN")

    FRONTEND_DOMAINS: List[str] = [
        "http://localhost:3000",
    ]

    # -------------------------------------------------
    # CORS (auto-built below)
    # -------------------------------------------------
    BACKEND_CORS_ORIGINS: List[str] = []

    # -------------------------------------------------
    # Supabase (Account Store & Auth)
    # -------------------------------------------------
    SUPABASE_URL: Optional[str] = Field(None, env="SUPABASE_URL")
    SUPABASE_ANON_KEY: Optional[str] = Field(None, env="SUPABASE_ANON_KEY")
    SUPABASE_SERVICE_ROLE_KEY: Optional[str] = Field(None, env="SUPABASE_SERVICE_ROLE_KEY")

    # -------------------------------------------------
    # Stripe Payment Processing
    # -------------------------------------------------
    STRIPE_SECRET_KEY: Optional[str] = Field(None, env="STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET: Optional[str] = Field(None, env="STRIPE_WEBHOOK_SECRET")

    # One price per athlete tier
    STRIPE_ATHLETE_FREE_PRICE_ID: Optional[str] = Field(None, env="STRIPE_ATHLETE_FREE_PRICE_ID")
    STRIPE_ATHLETE_BASIC_PRICE_ID: Optional[str] = Field(None, env="STRIPE_ATHLETE_BASIC_PRICE_ID")
    STRIPE_ATHLETE_ELITE_PRICE_ID: Optional[str] = Field(None, env="STRIPE_ATHLETE_ELITE_PRICE_ID")

    # -------------------------------------------------
    # Upgrade prompts
    # -------------------------------------------------
    UPGRADE_URL: str = Field("/dashboard/athlete/pricing", env="UPGRADE_URL")

    # -------------------------------------------------
    # Model Config
    # -------------------------------------------------
    class Config:
        case_sensitive = True


# Instantiate settings
settings = Settings()

# -------------------------------------------------
# Build CORS list dynamically after loading settings
# -------------------------------------------------
cors_origins = []

if settings.FRONTEND_DOMAIN:
    domain = settings.FRONTEND_DOMAIN
    if not domain.startswith("http"):
        domain = f"https://{domain}"
    cors_origins.append(domain.rstrip("/"))

cors_origins.extend([d.rstrip("/") for d in settings.FRONTEND_DOMAINS])

settings.BACKEND_CORS_ORIGINS = sorted(list(set(cors_origins)))

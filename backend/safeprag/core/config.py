"""
SafePrag - Configuração Central
"""
from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import field_validator


class Settings(BaseSettings):
    """Configurações do aplicativo - carregadas de variáveis de ambiente"""

    # App
    APP_NAME: str = "SafePrag Controle de Pragas"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # API
    API_PREFIX: str = "/api/v1"

    # CORS - Origens permitidas (separadas por vírgula)
    # Exemplo: "https://app.safeprag.com.br,https://www.safeprag.com.br"
    # Em desenvolvimento: "*" (permitir todas)
    ALLOWED_ORIGINS: str = "*"

    # Database
    # Railway fornece postgres://, precisamos converter para postgresql+asyncpg://
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/safeprag.db"

    @field_validator('DATABASE_URL', mode='before')
    @classmethod
    def convert_database_url(cls, v: str) -> str:
        """Converte URL do Railway (postgres://) para asyncpg."""
        if v:
            # Railway/Heroku usam postgres://, SQLAlchemy asyncpg precisa postgresql+asyncpg://
            if v.startswith('postgres://'):
                v = v.replace('postgres://', 'postgresql+asyncpg://', 1)
            elif v.startswith('postgresql://') and '+asyncpg' not in v:
                v = v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    # Database Pool (configuráveis via env, ignorados no SQLite)
    DB_POOL_SIZE: int = 10          # Conexões mantidas no pool
    DB_MAX_OVERFLOW: int = 5        # Conexões extras temporárias
    DB_POOL_TIMEOUT: int = 10       # Timeout para obter conexão do pool (segundos)
    DB_POOL_RECYCLE: int = 1800     # Reciclar conexões após N segundos (30 min)
    DB_COMMAND_TIMEOUT: int = 10    # Timeout para comandos SQL (segundos)

    # Payload
    # Assinaturas e logo chegam em base64 dentro do JSON
    MAX_UPLOAD_SIZE: int = 10 * 1024 * 1024  # 10 MB

    @property
    def cors_origins(self) -> list[str]:
        """Retorna lista de origens CORS permitidas."""
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",") if origin.strip()]

    # Auth (JWT emitido pelo provedor de identidade)
    SECRET_KEY: str = "CHANGE-THIS-IN-PRODUCTION-USE-OPENSSL-RAND-HEX-32"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours
    ALGORITHM: str = "HS256"

    # Donos da plataforma (ignoram a verificação de assinatura)
    # Exemplo: "dono@safeprag.com.br, socio@safeprag.com.br"
    OWNER_EMAILS: str = ""

    @property
    def owner_emails(self) -> set[str]:
        """Lista normalizada de emails de donos."""
        raw = self.OWNER_EMAILS.replace(";", ",").replace(" ", ",")
        return {email.strip().lower() for email in raw.split(",") if email.strip()}

    # Billing
    BILLING_STORE_PATH: str = "./data/billing.json"
    BILLING_API_URL: Optional[str] = None           # Se None, lê o cache local
    BILLING_STATUS_CACHE_SECONDS: int = 300         # 5 minutos
    BILLING_HTTP_TIMEOUT: float = 10.0

    # Stripe
    STRIPE_SECRET_KEY: Optional[str] = None
    STRIPE_MODE: Optional[str] = None               # test | live (derivado da chave se vazio)
    STRIPE_WEBHOOK_SECRET: Optional[str] = None
    STRIPE_WEBHOOK_SECRET_TEST: Optional[str] = None
    STRIPE_WEBHOOK_SECRET_LIVE: Optional[str] = None
    STRIPE_WEBHOOK_TOLERANCE: int = 300             # segundos
    STRIPE_PRICE_ID: Optional[str] = None
    CHECKOUT_SUCCESS_URL: str = "http://localhost:5173/configuracoes?checkout=success"
    CHECKOUT_CANCEL_URL: str = "http://localhost:5173/configuracoes?checkout=cancel"

    @property
    def stripe_mode(self) -> str:
        if self.STRIPE_MODE in ("test", "live"):
            return self.STRIPE_MODE
        if self.STRIPE_SECRET_KEY and self.STRIPE_SECRET_KEY.startswith("sk_live"):
            return "live"
        return "test"

    @property
    def stripe_webhook_secret(self) -> Optional[str]:
        """Segredo do webhook: explícito ou o do modo atual."""
        if self.STRIPE_WEBHOOK_SECRET:
            return self.STRIPE_WEBHOOK_SECRET
        if self.stripe_mode == "live":
            return self.STRIPE_WEBHOOK_SECRET_LIVE
        return self.STRIPE_WEBHOOK_SECRET_TEST

    # PDF - geometria da página em pontos (A4 = 841.89pt)
    PDF_PAGE_HEIGHT: float = 841.89
    PDF_TOP_MARGIN: float = 28.35             # 10 mm
    PDF_BOTTOM_MARGIN: float = 56.69          # 20 mm
    PDF_SIDE_MARGIN: float = 28.35            # 10 mm
    PDF_FOOTER_RESERVE: float = 6.0           # espaço da paginação
    PDF_BLOCK_BOTTOM_MARGIN: float = 3.0      # margem abaixo de cada tabela
    PDF_MIN_BOTTOM_WHITESPACE: float = 6.0
    PDF_COMPACT_MIN_WHITESPACE: float = 4.5
    PDF_SECTION_MIN_WHITESPACE: float = 7.5
    PDF_IMAGE_TIMEOUT: float = 10.0

    class Config:
        env_file = ".env"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Retorna instância cacheada das configurações"""
    return Settings()


settings = get_settings()

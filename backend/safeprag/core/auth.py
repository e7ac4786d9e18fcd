"""
Autenticação - Tokens JWT emitidos para usuários da plataforma

O token carrega sub, email, role e company_id. A decisão sobre o que
cada perfil pode fazer fica em safeprag.core.policy.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from safeprag.core.config import settings
from safeprag.core.policy import Identity, Role


# Security scheme
security = HTTPBearer()


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Cria JWT token de sessão."""
    to_encode = data.copy()

    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    to_encode.update({"exp": expire})

    encoded_jwt = jwt.encode(
        to_encode,
        settings.SECRET_KEY,
        algorithm=settings.ALGORITHM
    )

    return encoded_jwt


def verify_token(token: str) -> dict:
    """Verifica e decodifica JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM]
        )
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token inválido ou expirado",
            headers={"WWW-Authenticate": "Bearer"},
        )


def identity_from_payload(payload: dict) -> Identity:
    """Converte claims do token em Identity."""
    try:
        role = Role(str(payload.get("role", "")).lower())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Perfil de acesso inválido",
        )

    company_id = payload.get("company_id")
    return Identity(
        subject=str(payload.get("sub") or payload.get("email") or ""),
        role=role,
        email=payload.get("email"),
        company_id=str(company_id) if company_id else None,
    )


async def get_current_identity(
    credentials: HTTPAuthorizationCredentials = Depends(security)
) -> Identity:
    """
    Dependency para rotas autenticadas.

    Uso:
        @router.post("/reports/service-orders")
        async def generate(identity: Identity = Depends(get_current_identity)):
            ...
    """
    payload = verify_token(credentials.credentials)
    return identity_from_payload(payload)

"""
PIN-based access control for PumpDispatch

A 4-digit PIN identifies the caller at login. The bearer token issued in
exchange carries the role and, for pharmacy staff, the pharmacy it acts for.
"""

from datetime import datetime, timedelta
from typing import Optional
from fastapi import HTTPException, status, Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import JWTError, jwt

from pumpdispatch.config import settings

ROLE_ADMIN = "admin"
ROLE_PHARMACY = "pharmacy"
ROLE_EMPLOYEE = "employee"
ROLE_DRIVER = "driver"

# Roles whose every request is scoped to one pharmacy
PHARMACY_SCOPED_ROLES = (ROLE_PHARMACY, ROLE_EMPLOYEE)

security = HTTPBearer()

def _credentials_error() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

class AuthHandler:
    """Signs and reads the access tokens handed out at PIN login"""

    def create_access_token(self, data: dict, expires_delta: Optional[timedelta] = None) -> str:
        claims = dict(data)
        lifetime = expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        claims["exp"] = datetime.utcnow() + lifetime
        return jwt.encode(claims, settings.SECRET_KEY, algorithm=settings.ALGORITHM)

    def verify_token(self, token: str) -> dict:
        try:
            return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        except JWTError:
            raise _credentials_error()

auth_handler = AuthHandler()

def get_current_user(credentials: HTTPAuthorizationCredentials = Depends(security)) -> dict:
    """
    The actor behind the bearer token.

    Returns a dict with ``id``, ``role``, ``name``, ``pharmacy_id`` and
    ``pharmacy_name``. The admin has no numeric id and no pharmacy.
    """
    claims = auth_handler.verify_token(credentials.credentials)

    subject = claims.get("sub")
    role = claims.get("role")
    if subject is None or role is None:
        raise _credentials_error()

    pharmacy_id = claims.get("pharmacy_id")
    if role in PHARMACY_SCOPED_ROLES and pharmacy_id is None:
        raise _credentials_error()

    return {
        "id": int(subject) if str(subject).isdigit() else None,
        "role": role,
        "name": claims.get("name"),
        "pharmacy_id": int(pharmacy_id) if pharmacy_id is not None else None,
        "pharmacy_name": claims.get("pharmacy_name"),
    }

class RoleChecker:
    """Dependency that lets only the listed roles through"""

    def __init__(self, allowed_roles: list):
        self.allowed_roles = allowed_roles

    def __call__(self, user: dict = Depends(get_current_user)):
        if user["role"] not in self.allowed_roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Operation not permitted"
            )
        return user

admin_required = RoleChecker([ROLE_ADMIN])
employee_required = RoleChecker([ROLE_EMPLOYEE])
driver_required = RoleChecker([ROLE_DRIVER])
pharmacy_staff_required = RoleChecker(list(PHARMACY_SCOPED_ROLES))

"""
Authentication utilities for HealthTrack

Tokens are issued by the OAuth provider; this service only verifies them and
reads the patient identifier.
"""
from fastapi import HTTPException, Request
import jwt

from healthtrack.config import settings


def verify_token(token: str) -> dict:
    try:
        return jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError:
        raise HTTPException(status_code=401, detail="Invalid token")


def get_patient_number(request: Request) -> str:
    """Extract the patient identifier from the Bearer token in the Authorization header"""
    auth_header = request.headers.get('Authorization')
    if not auth_header or not auth_header.startswith('Bearer '):
        raise HTTPException(status_code=401, detail="Missing token")
    token = auth_header.split(' ', 1)[1]
    payload = verify_token(token)
    patient_number = payload.get('patient_number') or payload.get('sub')
    if not patient_number:
        raise HTTPException(status_code=401, detail="Token has no patient identifier")
    return str(patient_number)

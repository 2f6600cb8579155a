import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from mindscribe.services.remote_store import AuthService, RemoteAuthError, RemoteStoreError


class SignInRequest(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=1)


class SignUpRequest(SignInRequest):
    name: Optional[str] = None


def create_auth_router(auth_service: AuthService) -> APIRouter:
    router = APIRouter()
    logger = logging.getLogger("mindscribe.api.auth")

    def _require_configured() -> None:
        if not auth_service.is_configured:
            raise HTTPException(status_code=400, detail="Remote accounts are not configured")

    @router.post("/api/auth/sign-in")
    async def sign_in(payload: SignInRequest) -> dict:
        _require_configured()
        try:
            session = await auth_service.sign_in(payload.email, payload.password)
        except RemoteAuthError as exc:
            logger.warning("sign_in rejected: %s", exc)
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        except RemoteStoreError as exc:
            logger.warning("sign_in failed: %s", exc)
            raise HTTPException(status_code=502, detail=str(exc)) from exc
        return {"session": session.to_public_dict()}

    @router.post("/api/auth/sign-up")
    async def sign_up(payload: SignUpRequest) -> dict:
        _require_configured()
        try:
            session = await auth_service.sign_up(payload.email, payload.password, payload.name)
        except RemoteAuthError as exc:
            logger.warning("sign_up rejected: %s", exc)
            raise HTTPException(status_code=401, detail=str(exc)) from exc
        except RemoteStoreError as exc:
            logger.warning("sign_up failed: %s", exc)
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        if session is None:
            return {"session": None, "confirmationRequired": True}
        return {"session": session.to_public_dict(), "confirmationRequired": False}

    @router.post("/api/auth/sign-out")
    async def sign_out() -> dict:
        await auth_service.sign_out()
        return {"status": "ok"}

    @router.get("/api/auth/session")
    def current_session() -> dict:
        session = auth_service.current_session()
        return {"session": session.to_public_dict() if session else None}

    return router

from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from access_codes import AccessCode, ValidationOutcome, to_iso
from auth import client_identity
from errors import CodeAlreadyExists, GenerationExhausted, InvalidCodeRequest
from logging_config import get_logger
from schemas.codes import AddCodeRequest, GenerateCodeRequest, GenerateCodeResponse, ValidateCodeRequest

logger = get_logger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["auth"])

# outcome -> (status, message)
VALIDATION_FAILURES = {
    ValidationOutcome.MALFORMED: (400, "Invalid code format"),
    ValidationOutcome.NOT_FOUND: (401, "Invalid code"),
    ValidationOutcome.EXPIRED: (401, "Code expired"),
    ValidationOutcome.EXHAUSTED: (401, "Code limit reached"),
}


def require_admin(request: Request, authorization: Optional[str], password: Optional[str] = None):
    if not request.app.state.admin_auth.is_authorized(authorization, password):
        logger.warning(f"Unauthorized admin request to {request.url.path} from {client_identity(request)}")
        raise HTTPException(status_code=401, detail="Unauthorized")


def code_url(request: Request, code: str) -> str:
    base_url = str(request.base_url).rstrip("/")
    return f"{base_url}/?access={code}"


def generated_response(request: Request, access_code: AccessCode) -> GenerateCodeResponse:
    return GenerateCodeResponse(
        code=access_code.code,
        maxUses=access_code.max_uses,
        expiresAt=to_iso(access_code.expires_at),
        url=code_url(request, access_code.code),
    )


@auth_router.post("/validate")
async def validate_code(body: ValidateCodeRequest, request: Request):
    # POST /auth/validate { "code": "ABCD2345" }
    # 200 { "valid": true, "message": "Access granted" }, 401/400 { "valid": false, "error": "..." }
    identity = client_identity(request)
    code_store = request.app.state.code_store
    rate_limiter = request.app.state.rate_limiter

    try:
        # backend calls block on redis sockets, keep them off the event loop
        status = await run_in_threadpool(rate_limiter.check, identity)
        if not status.allowed:
            logger.warning(f"Validation rate limited for {identity}, reset in {status.reset_in_seconds}s")
            raise HTTPException(
                status_code=429,
                detail={
                    "valid": False,
                    "error": "Too many attempts. Please try again later.",
                    "resetInSeconds": status.reset_in_seconds,
                },
                headers={"Retry-After": str(status.reset_in_seconds or 0)},
            )

        outcome = await run_in_threadpool(code_store.validate, body.code)
        if outcome is ValidationOutcome.GRANTED:
            logger.info(f"Access granted for {identity}")
            return {"valid": True, "message": "Access granted"}

        await run_in_threadpool(rate_limiter.increment, identity)
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Validation error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail={"valid": False, "error": "Server error"})

    status_code, message = VALIDATION_FAILURES[outcome]
    logger.info(f"Validation failed for {identity}: {outcome.value}")
    raise HTTPException(status_code=status_code, detail={"valid": False, "error": message})


async def create_generated_code(body: GenerateCodeRequest, request: Request, authorization: Optional[str]):
    require_admin(request, authorization, body.password)
    try:
        access_code = await run_in_threadpool(
            request.app.state.code_store.generate,
            length=body.length,
            max_uses=body.maxUses,
            expires_in_hours=body.expiresInHours,
        )
    except InvalidCodeRequest as e:
        raise HTTPException(status_code=400, detail={"success": False, "error": str(e)})
    except GenerationExhausted:
        raise HTTPException(status_code=500, detail={"success": False, "error": "Could not generate a unique code"})
    except Exception as e:
        logger.error(f"Generate code error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail={"success": False, "error": "Server error"})
    return generated_response(request, access_code)


@auth_router.post("/generate-code", response_model=GenerateCodeResponse)
async def generate_code(body: GenerateCodeRequest, request: Request, authorization: Optional[str] = Header(None)):
    # Bearer token or admin password in the body
    return await create_generated_code(body, request, authorization)


@auth_router.post("/add-code", response_model=GenerateCodeResponse)
async def add_code(body: AddCodeRequest, request: Request, authorization: Optional[str] = Header(None)):
    # POST /auth/add-code { "password": "...", "code": "MYCODE", "expiresInHours": 24 }
    require_admin(request, authorization, body.password)
    try:
        access_code = await run_in_threadpool(
            request.app.state.code_store.add,
            body.code,
            expires_in_hours=body.expiresInHours,
            max_uses=body.maxUses,
        )
    except (InvalidCodeRequest, CodeAlreadyExists) as e:
        logger.warning(f"Add code rejected: {e}")
        raise HTTPException(status_code=400, detail={"success": False, "error": str(e)})
    except Exception as e:
        logger.error(f"Add code error: {e}", exc_info=True)
        raise HTTPException(status_code=500, detail={"success": False, "error": "Server error"})
    return generated_response(request, access_code)

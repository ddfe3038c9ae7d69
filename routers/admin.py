from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from logging_config import get_logger
from routers.auth import create_generated_code, require_admin
from schemas.codes import AccessCodeListResponse, GenerateCodeRequest, GenerateCodeResponse

logger = get_logger(__name__)

admin_router = APIRouter(prefix="/admin", tags=["admin"])


@admin_router.post("/generate", response_model=GenerateCodeResponse)
async def generate_code(body: GenerateCodeRequest, request: Request, authorization: Optional[str] = Header(None)):
    return await create_generated_code(body, request, authorization)


@admin_router.get("/codes", response_model=AccessCodeListResponse)
async def list_codes(request: Request, authorization: Optional[str] = Header(None)):
    require_admin(request, authorization)
    codes = await run_in_threadpool(request.app.state.code_store.summaries)
    logger.info(f"Listed {len(codes)} access codes")
    return {"codes": codes}


@admin_router.delete("/codes/{code}")
async def delete_code(code: str, request: Request, authorization: Optional[str] = Header(None)):
    require_admin(request, authorization)
    if not await run_in_threadpool(request.app.state.code_store.revoke, code):
        raise HTTPException(status_code=404, detail="Code not found")
    return {"message": "Code deleted"}

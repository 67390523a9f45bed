"""
Utility Endpoints
=================
POST /utils/tar        — tarball of a host directory, written under ARTIFACT_ROOT/<run_id>
POST /utils/multisync  — run one container per image concurrently and wait for all
"""
import logging
import asyncio
from typing import List

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, field_validator

from gobuild.api.deps import artifact_dir, new_run_id, open_engine, validate_source
from gobuild.core.errors import GoBuildError
from gobuild.engine.container import from_image, host_directory
from gobuild.utils.sync import Utils

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/utils", tags=["Utils"])


class TarRequest(BaseModel):
    source: str

    @field_validator("source")
    @classmethod
    def source_must_exist(cls, v: str) -> str:
        return validate_source(v)


class TarResponse(BaseModel):
    run_id: str
    tarball: str


class MultisyncRequest(BaseModel):
    images: List[str]


class MultisyncResponse(BaseModel):
    entries: List[str]


@router.post("/tar", response_model=TarResponse)
async def tar(request: TarRequest):
    run_id = new_run_id()
    dest = f"{artifact_dir(run_id)}/out.tar.gz"

    def work() -> str:
        with open_engine() as engine:
            return engine.export_file(Utils(engine).tar(host_directory(request.source)), dest)

    try:
        path = await asyncio.to_thread(work)
    except GoBuildError as exc:
        logger.error("[API:%s] tar failed: %s", run_id, exc)
        raise HTTPException(status_code=502, detail=str(exc))
    return TarResponse(run_id=run_id, tarball=path)


@router.post("/multisync", response_model=MultisyncResponse)
async def multisync(request: MultisyncRequest):
    def work() -> List[str]:
        with open_engine() as engine:
            return Utils(engine).multisync([from_image(image) for image in request.images])

    try:
        entries = await asyncio.to_thread(work)
    except GoBuildError as exc:
        logger.error("multisync failed: %s", exc)
        raise HTTPException(status_code=502, detail=str(exc))
    return MultisyncResponse(entries=entries)

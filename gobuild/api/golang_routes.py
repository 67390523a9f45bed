"""
Go Endpoints
============
HTTP surface over the Golang module.

Routes (prefix /golang):
    POST /build            — build and export binaries under ARTIFACT_ROOT/<run_id>
    POST /build-container  — build, copy into a base image, tag it locally
    POST /build-remote     — clone a remote repo, build a module, export binaries
    POST /test             — go test
    POST /lint             — golangci-lint
    POST /vulncheck        — govulncheck

Source trees are host paths. Every request opens its own engine session;
blocking engine work runs in a worker thread.
"""
import os
import time
import logging
import asyncio
from typing import List, Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, field_validator

from gobuild.api.deps import artifact_dir, new_run_id, open_engine, validate_source
from gobuild.core.config import DEFAULT_GO_VERSION
from gobuild.core.errors import EngineError, ExecError
from gobuild.engine.container import from_image, host_directory
from gobuild.golang.module import Golang
from gobuild.models.command_result import CommandResult

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/golang", tags=["Golang"])


# ---------------------------------------------------------------------------
# Request / Response schemas
# ---------------------------------------------------------------------------
class SourceRequest(BaseModel):
    source: str
    go_version: Optional[str] = None
    vendor: bool = False

    @field_validator("source")
    @classmethod
    def source_must_exist(cls, v: str) -> str:
        return validate_source(v)


class BuildRequest(SourceRequest):
    args: List[str] = []
    arch: Optional[str] = None
    target_os: Optional[str] = None


class BuildContainerRequest(BuildRequest):
    tag: str
    base_image: Optional[str] = None


class BuildRemoteRequest(BaseModel):
    remote: str
    ref: str
    module: str
    arch: Optional[str] = None
    platform: Optional[str] = None


class GoTestRequest(SourceRequest):
    component: str = "./..."
    coverage_location: str = "./"
    timeout: str = "180s"


class LintRequest(SourceRequest):
    component: str = "./..."
    timeout: str = "5m"


class VulncheckRequest(SourceRequest):
    component: str = "./..."


class ArtifactResponse(BaseModel):
    run_id: str
    artifact_path: str
    files: List[str]
    execution_time_seconds: float


class ImageResponse(BaseModel):
    run_id: str
    image: str
    execution_time_seconds: float


class CommandResponse(BaseModel):
    command: List[str]
    output: str
    exit_code: int
    error: Optional[str]
    log_excerpt: str
    execution_time_seconds: float

    @classmethod
    def from_result(cls, result: CommandResult) -> "CommandResponse":
        return cls(
            command=result.command,
            output=result.output,
            exit_code=result.exit_code,
            error=result.error,
            log_excerpt=result.log_excerpt,
            execution_time_seconds=result.execution_time_seconds,
        )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _golang(engine, request: SourceRequest) -> Golang:
    go = Golang(engine).with_project(host_directory(request.source))
    if request.go_version or request.vendor:
        go = go.base(request.go_version or DEFAULT_GO_VERSION, vendor=request.vendor)
    return go


def _list_files(root: str) -> List[str]:
    files = []
    for dirpath, _, filenames in os.walk(root):
        for name in filenames:
            files.append(os.path.relpath(os.path.join(dirpath, name), root))
    return sorted(files)


async def _run_build(run_id: str, work) -> float:
    """Run a blocking build in a thread, mapping failures to HTTP errors."""
    start = time.time()
    try:
        await asyncio.to_thread(work)
    except ExecError as exc:
        logger.error("[API:%s] Build failed: %s", run_id, exc)
        raise HTTPException(
            status_code=422,
            detail={"error": str(exc), "exit_code": exc.exit_code, "output": exc.output},
        )
    except EngineError as exc:
        logger.error("[API:%s] Engine error: %s", run_id, exc, exc_info=True)
        raise HTTPException(status_code=502, detail=f"Engine error: {exc}")
    return round(time.time() - start, 3)


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@router.post("/build", response_model=ArtifactResponse)
async def build(request: BuildRequest):
    run_id = new_run_id()
    dest = artifact_dir(run_id)
    logger.info("[API:%s] build source=%s args=%s", run_id, request.source, request.args)

    def work():
        with open_engine() as engine:
            go = _golang(engine, request)
            out = go.build(args=request.args, arch=request.arch, target_os=request.target_os)
            engine.export(out, dest)

    elapsed = await _run_build(run_id, work)
    return ArtifactResponse(run_id=run_id, artifact_path=dest, files=_list_files(dest),
                            execution_time_seconds=elapsed)


@router.post("/build-container", response_model=ImageResponse)
async def build_container(request: BuildContainerRequest):
    run_id = new_run_id()
    logger.info("[API:%s] build-container source=%s tag=%s", run_id, request.source, request.tag)
    published: dict = {}

    def work():
        with open_engine() as engine:
            go = _golang(engine, request)
            base = from_image(request.base_image) if request.base_image else None
            ctr = go.build_container(args=request.args, arch=request.arch,
                                     target_os=request.target_os, base=base)
            published["image"] = engine.publish_local(ctr, request.tag)

    elapsed = await _run_build(run_id, work)
    return ImageResponse(run_id=run_id, image=published["image"], execution_time_seconds=elapsed)


@router.post("/build-remote", response_model=ArtifactResponse)
async def build_remote(request: BuildRemoteRequest):
    run_id = new_run_id()
    dest = artifact_dir(run_id)
    logger.info("[API:%s] build-remote %s@%s module=%s", run_id, request.remote, request.ref, request.module)

    def work():
        with open_engine() as engine:
            out = Golang(engine).build_remote(request.remote, request.ref, request.module,
                                              arch=request.arch, platform=request.platform)
            engine.export(out, dest)

    elapsed = await _run_build(run_id, work)
    return ArtifactResponse(run_id=run_id, artifact_path=dest, files=_list_files(dest),
                            execution_time_seconds=elapsed)


@router.post("/test", response_model=CommandResponse)
async def run_tests(request: GoTestRequest):
    def work() -> CommandResult:
        with open_engine() as engine:
            return _golang(engine, request).test(
                component=request.component,
                coverage_location=request.coverage_location,
                timeout=request.timeout,
            )

    return CommandResponse.from_result(await asyncio.to_thread(work))


@router.post("/lint", response_model=CommandResponse)
async def lint(request: LintRequest):
    def work() -> CommandResult:
        with open_engine() as engine:
            return _golang(engine, request).golangci_lint(component=request.component,
                                                          timeout=request.timeout)

    return CommandResponse.from_result(await asyncio.to_thread(work))


@router.post("/vulncheck", response_model=CommandResponse)
async def vulncheck(request: VulncheckRequest):
    def work() -> CommandResult:
        with open_engine() as engine:
            return _golang(engine, request).vulncheck(component=request.component)

    return CommandResponse.from_result(await asyncio.to_thread(work))

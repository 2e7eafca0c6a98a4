from __future__ import annotations

import asyncio
import os
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, cast

from marshmallow import Schema
from starlette import status
from starlette.applications import Starlette
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import FileResponse, JSONResponse, Response

from ..common.starlette_helpers import (
    JSONValue,
    RequestValidationError,
    load_with_schema,
    read_json_object,
)
from ..config import (
    ApiRoute,
    HEALTH_CHECK_PATH,
    JobCommandStatus,
    JobStatus,
    get_server_environment,
)
from ..core import CookieFormatError, DownloadError, MediaInfo
from ..core.cookies import to_netscape_text
from ..exceptions import JobValidationError
from ..jobs import JobLookup, JobLookupState, JobRequest
from ..jobs.controller import JobController
from ..log_config import verbose_log
from ..models.api.errors import ErrorCode
from ..models.api.http import CreateJobEndpointResponse, HealthCheckResponse
from ..models.api.requests import (
    CreateJobRequestBody,
    CreateJobRequestSchema,
    ProbeRequestBody,
    ProbeRequestSchema,
)
from ..utils import now_iso

SERVER_CONFIG = get_server_environment()


class SupportsProbe(Protocol):
    def probe(self, url: str, credentials: Optional[str] = None) -> MediaInfo: ...


def error_response(
    code: ErrorCode | str,
    *,
    status_code: int,
    detail: JSONValue | None = None,
) -> JSONResponse:
    payload: Dict[str, JSONValue] = {
        "error": code.value if isinstance(code, ErrorCode) else str(code)
    }
    if detail is not None:
        payload["detail"] = detail
    verbose_log("http_error", {"status": status_code, "payload": payload})
    return JSONResponse(content=payload, status_code=status_code)


def lookup_failure(lookup: JobLookup) -> JSONResponse:
    """Return the 410 response for a purged job and 404 otherwise."""
    if lookup.state is JobLookupState.EXPIRED:
        return error_response(ErrorCode.JOB_EXPIRED, status_code=status.HTTP_410_GONE)
    return error_response(
        ErrorCode.JOB_NOT_FOUND, status_code=status.HTTP_404_NOT_FOUND
    )


def register_http_routes(
    app: Starlette, controller: JobController, prober: SupportsProbe
) -> None:
    """Attach REST endpoints and middleware to the Starlette application."""

    registry = controller.registry

    async def _parse_payload(request: Request, schema_cls: type[Schema]) -> Any:
        raw_body = await read_json_object(request)
        return load_with_schema(schema_cls(), raw_body)

    def json_response(payload: Any, status_code: int = 200) -> JSONResponse:
        verbose_log("http_response", {"status": status_code, "payload": payload})
        return JSONResponse(content=payload, status_code=status_code)

    async def _handle_request_validation(
        _: Request, exc: RequestValidationError
    ) -> JSONResponse:
        detail: JSONValue | None = None
        if exc.errors:
            detail = cast(JSONValue, dict(exc.errors))
        elif exc.args:
            detail = cast(JSONValue, exc.args[0])
        return error_response(
            ErrorCode.INVALID_JSON_PAYLOAD,
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=detail,
        )

    app.add_exception_handler(RequestValidationError, _handle_request_validation)  # type: ignore[arg-type]

    def _route(
        path: str, *, methods: list[str]
    ) -> Callable[[Callable[..., Awaitable[Response]]], Callable[..., Awaitable[Response]]]:
        def decorator(
            func: Callable[..., Awaitable[Response]],
        ) -> Callable[..., Awaitable[Response]]:
            app.router.add_route(path, func, methods=methods)
            return func

        return decorator

    def get(
        path: str,
    ) -> Callable[[Callable[..., Awaitable[Response]]], Callable[..., Awaitable[Response]]]:
        return _route(path, methods=["GET"])

    def post(
        path: str,
    ) -> Callable[[Callable[..., Awaitable[Response]]], Callable[..., Awaitable[Response]]]:
        return _route(path, methods=["POST"])

    async def log_request(
        request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        # Never log bodies: they can contain credentials.
        verbose_log(
            "http_request",
            {"method": request.method, "path": request.url.path},
        )
        return await call_next(request)

    app.add_middleware(BaseHTTPMiddleware, dispatch=log_request)

    @get(HEALTH_CHECK_PATH)
    async def health_check(request: Request) -> JSONResponse:  # noqa: ARG001 - Starlette route signature
        payload: HealthCheckResponse = {
            "service": SERVER_CONFIG.name,
            "time": now_iso(),
            "jobs": registry.counts(),
            "description": SERVER_CONFIG.description,
        }
        return json_response(payload)

    @post(ApiRoute.INFO.value)
    async def probe_endpoint(request: Request) -> JSONResponse:
        """List the qualities, subtitles and thumbnail available for a URL."""

        payload = cast(ProbeRequestBody, await _parse_payload(request, ProbeRequestSchema))
        if not payload.url:
            return error_response(
                ErrorCode.URL_REQUIRED, status_code=status.HTTP_400_BAD_REQUEST
            )
        try:
            media = await asyncio.to_thread(prober.probe, payload.url, payload.cookies)
        except (DownloadError, CookieFormatError) as exc:
            verbose_log("probe_failed", {"url": payload.url, "error": str(exc)})
            return error_response(
                ErrorCode.PROBE_FAILED,
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=str(exc),
            )
        return json_response(media.to_payload())

    @post(ApiRoute.JOBS.value)
    async def create_job_endpoint(request: Request) -> JSONResponse:
        """Validate a job request, register it and start its execution."""

        payload = cast(
            CreateJobRequestBody, await _parse_payload(request, CreateJobRequestSchema)
        )
        try:
            job_request = JobRequest.build(
                url=payload.url,
                operation=payload.operation,
                quality=payload.quality,
                sub_lang=payload.sub_lang,
                credentials=payload.cookies,
            )
        except JobValidationError as exc:
            return error_response(
                exc.code,
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=exc.message,
            )
        if job_request.credentials:
            try:
                to_netscape_text(job_request.credentials)
            except CookieFormatError as exc:
                return error_response(
                    ErrorCode.COOKIES_INVALID,
                    status_code=status.HTTP_400_BAD_REQUEST,
                    detail=str(exc),
                )

        job = controller.start(job_request)
        response: CreateJobEndpointResponse = {
            "jobId": job.job_id,
            "job_id": job.job_id,
            "status": job.status,
            "stage": job.stage,
            "progress": job.progress,
            "created_at": job.created_at.isoformat() + "Z",
            "events_url": ApiRoute.JOB_EVENTS.value.format(job_id=job.job_id),
            "websocket_url": ApiRoute.WS_JOB.value.format(job_id=job.job_id),
        }
        return json_response(response, status_code=status.HTTP_201_CREATED)

    @get(ApiRoute.JOB_DETAIL.value)
    async def get_job_endpoint(request: Request) -> JSONResponse:
        job_id = request.path_params.get("job_id", "")
        job = registry.get(job_id)
        if job is None:
            return lookup_failure(registry.lookup(job_id))
        return json_response(dict(job.to_payload()))

    @post(ApiRoute.JOB_CANCEL.value)
    async def cancel_job_endpoint(request: Request) -> JSONResponse:
        job_id = request.path_params.get("job_id", "")
        result = controller.cancel(job_id)
        if result.status is JobCommandStatus.NOT_FOUND:
            return lookup_failure(registry.lookup(job_id))
        return json_response(result.to_payload())

    @get(ApiRoute.JOB_FILE.value)
    async def job_file_endpoint(request: Request) -> Response:
        job_id = request.path_params.get("job_id", "")
        job = registry.get(job_id)
        if job is None:
            return lookup_failure(registry.lookup(job_id))
        path = job.artifact_path
        if (
            job.status != JobStatus.SUCCEEDED.value
            or not path
            or not os.path.isfile(path)
        ):
            return error_response(
                ErrorCode.ARTIFACT_UNAVAILABLE,
                status_code=status.HTTP_409_CONFLICT,
                detail=f"job status is {job.status}",
            )
        return FileResponse(path, filename=os.path.basename(path))

    _ = (
        health_check,
        probe_endpoint,
        create_job_endpoint,
        get_job_endpoint,
        cancel_job_endpoint,
        job_file_endpoint,
    )


__all__ = ["error_response", "lookup_failure", "register_http_routes"]

"""Public share access endpoints, authorized by the share token alone.

  GET  /api/shares/{token}                -> share metadata
  GET  /api/shares/{token}/file?path=...  -> read an in-scope file
  GET  /api/shares/{token}/tree           -> in-scope file tree
  POST /api/shares/{token}/save           -> overwrite a file (writer)
  POST /api/shares/{token}/create         -> create a file (writer)
  POST /api/shares/{token}/create-folder  -> create a folder (writer)
  POST /api/shares/{token}/export         -> copy files out (allow_copy)
  POST /api/shares/{token}/deposit        -> multipart upload (deposit)

Token resolution:
  - Unknown tokens -> 404 share_not_found.
  - Expired tokens -> 410 share_expired.

Path enforcement:
  - Every path is checked against the share scope before the store is
    touched. Out-of-scope paths -> 403 share_scope_violation.
  - Operations the share's mode does not allow -> 403
    share_mode_not_permitted.
"""

from __future__ import annotations

from fastapi import APIRouter, File, Query, Request, UploadFile
from pydantic import BaseModel, Field

from vault_shares.analytics.access_log import geo_from_headers

from .service import RequestInfo, ShareAccessService

UNKNOWN_CLIENT = 'unknown'


# ── Request schemas ──────────────────────────────────────────────────


class SaveFileRequest(BaseModel):
    path: str = Field(..., min_length=1)
    content: str
    sha: str | None = Field(default=None, description='Blob sha the edit is based on')
    message: str | None = None


class CreateFileRequest(BaseModel):
    path: str = Field(..., min_length=1)
    content: str | None = None


class CreateFolderRequest(BaseModel):
    path: str = Field(..., min_length=1)


class ExportRequest(BaseModel):
    paths: list[str] = Field(..., min_length=1)


# ── Request helpers ──────────────────────────────────────────────────


def client_ip(request: Request) -> str:
    """First ``X-Forwarded-For`` hop, then ``X-Real-IP``, then the peer."""
    forwarded = request.headers.get('x-forwarded-for')
    if forwarded:
        first = forwarded.split(',')[0].strip()
        if first:
            return first
    real_ip = request.headers.get('x-real-ip')
    if real_ip:
        return real_ip.strip()
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def request_info(request: Request) -> RequestInfo:
    return RequestInfo(
        client_ip=client_ip(request),
        user_agent=request.headers.get('user-agent'),
        referer=request.headers.get('referer'),
        geo=geo_from_headers(request.headers),
    )


# ── Route factory ────────────────────────────────────────────────────


def create_share_access_router(service: ShareAccessService) -> APIRouter:
    """Create the token-authorized share access router."""
    router = APIRouter(prefix='/api/shares', tags=['share-access'])

    @router.get('/{token}')
    async def get_share(token: str):
        """Public metadata of an active share."""
        return await service.metadata(token)

    @router.get('/{token}/file')
    async def read_file(request: Request, token: str, path: str = Query(...)):
        return await service.read_file(token, path, request_info(request))

    @router.get('/{token}/tree')
    async def get_tree(token: str):
        return await service.tree(token)

    @router.post('/{token}/save')
    async def save_file(token: str, body: SaveFileRequest):
        return await service.save_file(token, body.path, body.content, body.sha, body.message)

    @router.post('/{token}/create', status_code=201)
    async def create_file(token: str, body: CreateFileRequest):
        return await service.create_file(token, body.path, body.content)

    @router.post('/{token}/create-folder', status_code=201)
    async def create_folder(token: str, body: CreateFolderRequest):
        return await service.create_folder(token, body.path)

    @router.post('/{token}/export')
    async def export_files(token: str, body: ExportRequest):
        return await service.export(token, body.paths)

    @router.post('/{token}/deposit')
    async def deposit(
        request: Request,
        token: str,
        files: list[UploadFile] | None = File(None),
    ):
        """Upload one or more files into a deposit share.

        Per-file problems (size, type, write failure) are listed in
        ``errors``; the request as a whole only fails when the share is
        not a deposit share, no files were sent, or the rate limit is
        already exhausted (429 with ``Retry-After``).
        """
        uploads = files or []
        try:
            # Uploads are read lazily, and bounded, only once the share
            # and the rate limit allow it.
            return await service.deposit(token, uploads, request_info(request))
        finally:
            for upload in uploads:
                await upload.close()

    return router

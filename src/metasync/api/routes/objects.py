"""Object routes for the metasync API.

Keys may contain slashes ("photos/abc123"), so they are matched as paths.
The /sync and /content routes are registered before the bare key routes so
their suffixes are not swallowed into the key.
"""

from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request, Response
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, Field
from starlette.concurrency import run_in_threadpool

from metasync.client import ObjectClient
from metasync.errors import NotFoundError
from metasync.metadata.models import MetadataRecord

router = APIRouter(prefix="/v1", tags=["Objects"])


def get_client(request: Request) -> ObjectClient:
    """Return the ObjectClient mounted on the application."""
    client: ObjectClient = request.app.state.client
    return client


ClientDep = Annotated[ObjectClient, Depends(get_client)]


class UploadUrlRequest(BaseModel):
    """Request body for POST /v1/objects/upload-url."""

    key: str | None = None
    sha256: str | None = Field(default=None, pattern=r"^[0-9a-fA-F]{64}$")


class UploadUrlResponse(BaseModel):
    """Key and signed PUT URL."""

    key: str
    url: str


class StoreResponse(BaseModel):
    """Key of a server-side stored object."""

    key: str


class SyncRequest(BaseModel):
    """Request body for POST /v1/objects/{key}/sync."""

    expected_sha256: str | None = None


class ObjectMetadata(BaseModel):
    """Metadata record response model."""

    bucket: str
    key: str
    content_type: str | None = None
    size: int | None = None
    sha256: str | None = None
    last_modified: str
    created_at: str | None = None
    url: str | None = None


class ObjectPage(BaseModel):
    """One page of a bucket scan."""

    page: list[ObjectMetadata]
    is_done: bool
    continue_cursor: str
    split_cursor: str | None = None
    page_status: str | None = None


class DeleteResponse(BaseModel):
    """Id of the retry job deleting the object."""

    job_id: str


def _to_model(record: MetadataRecord) -> ObjectMetadata:
    return ObjectMetadata(**record.to_dict())


@router.post("/objects/upload-url", response_model=UploadUrlResponse)
def create_upload_url(client: ClientDep, body: UploadUrlRequest | None = None) -> UploadUrlResponse:
    """Issue a signed PUT URL; a random key is generated when none is given.

    With sha256 the URL only accepts that content, and the store keeps the
    checksum for the later sync to verify.
    """
    body = body or UploadUrlRequest()
    target = client.generate_upload_url(body.key, sha256=body.sha256)
    return UploadUrlResponse(key=target.key, url=target.url)


@router.post("/objects", response_model=StoreResponse, status_code=201)
async def store_object(
    request: Request,
    client: ClientDep,
    key: Annotated[str | None, Query()] = None,
) -> StoreResponse:
    """Store the raw request body as a new object and index it."""
    data = await request.body()
    content_type = request.headers.get("content-type")
    stored_key = await run_in_threadpool(
        client.store, data, content_type=content_type, key=key
    )
    return StoreResponse(key=stored_key)


@router.post("/objects/{key:path}/sync", status_code=204)
def sync_object(key: str, client: ClientDep, body: SyncRequest | None = None) -> Response:
    """Index an object uploaded through a signed URL."""
    expected = body.expected_sha256 if body else None
    client.sync_metadata(key, expected_sha256=expected)
    return Response(status_code=204)


@router.get("/objects/{key:path}/content", status_code=307)
def get_object_content(key: str, client: ClientDep) -> RedirectResponse:
    """Redirect to a signed GET URL for an indexed object."""
    record = client.get_metadata(key)
    if record is None or record.url is None:
        raise NotFoundError(bucket=client.bucket, key=key)
    return RedirectResponse(record.url, status_code=307)


@router.get("/objects/{key:path}", response_model=ObjectMetadata)
def get_object(key: str, client: ClientDep) -> ObjectMetadata:
    """Return an object's metadata with a signed download URL."""
    record = client.get_metadata(key)
    if record is None:
        raise NotFoundError(bucket=client.bucket, key=key)
    return _to_model(record)


@router.delete("/objects/{key:path}", response_model=DeleteResponse, status_code=202)
def delete_object(key: str, client: ClientDep) -> DeleteResponse:
    """Remove an object's metadata and schedule its physical deletion."""
    return DeleteResponse(job_id=client.delete_object(key))


@router.get("/buckets/{bucket}/objects", response_model=ObjectPage)
def list_bucket(
    bucket: str,
    client: ClientDep,
    cursor: str | None = None,
    limit: Annotated[int | None, Query(ge=1)] = None,
) -> ObjectPage:
    """Return one page of a bucket's metadata in insertion order."""
    page = client.page_metadata(bucket, cursor, limit)
    data: dict[str, Any] = page.to_dict()
    return ObjectPage(**data)

"""
Vault API Endpoints
===================

Proxy for Case.dev vaults with a local mirror of vaults and uploaded
objects. Case.dev is the source of truth; the mirror fills in sizes and
serves the object list when Case.dev is unreachable.
"""

import asyncio
import logging
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Body, Depends, HTTPException, UploadFile, File
from fastapi.responses import Response
from sqlalchemy.orm import Session

from .auth import AuthContext, require_permission
from .casedev import CaseDevClient, CaseDevError, get_casedev_client
from .db import Vault, VaultObject, get_db
from .schemas import CreateVaultRequest, UploadUrlRequest, IngestRequest, VaultSearchRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/vaults", tags=["vaults"])

VAULT_SEARCH_METHODS = ["fast", "hybrid", "entity", "global", "local"]

SOURCE_LOCAL_FALLBACK = "local_db_fallback"
SOURCE_MERGED = "case_api_with_local_enrichment"


def object_status(obj: Dict[str, Any]) -> str:
    """Ingestion status, falling back to chunkCount when Case.dev says pending"""
    status = obj.get("ingestionStatus")
    if not status or status == "pending":
        status = "completed" if (obj.get("chunkCount") or 0) > 0 else "pending"
    return status


def merge_objects(remote: List[Dict[str, Any]], local: List[VaultObject]) -> List[Dict[str, Any]]:
    """Case.dev object list enriched with locally recorded sizes"""
    local_map = {obj.id: obj for obj in local}
    merged = []
    for obj in remote:
        local_obj = local_map.get(obj.get("id"))
        size = local_obj.size if local_obj and local_obj.size else (obj.get("sizeBytes") or 0)
        merged.append({
            "id": obj.get("id"),
            "filename": obj.get("filename"),
            "contentType": obj.get("contentType"),
            "size": size,
            "status": object_status(obj),
            "pageCount": obj.get("pageCount"),
            "textLength": obj.get("textLength"),
            "chunkCount": obj.get("chunkCount"),
            "vectorCount": obj.get("vectorCount"),
            "createdAt": obj.get("createdAt"),
            "ingestionCompletedAt": obj.get("ingestionCompletedAt"),
            "metadata": obj.get("metadata"),
            "ingestionStatus": obj.get("ingestionStatus"),
        })
    return merged


def local_object_to_dict(obj: VaultObject) -> Dict[str, Any]:
    return {
        "id": obj.id,
        "filename": obj.filename,
        "contentType": obj.content_type,
        "size": obj.size or 0,
        "status": obj.status or "unknown",
        "createdAt": obj.uploaded_at.isoformat() if obj.uploaded_at else None,
    }


def _record_object(db: Session, vault_id: str, object_id: Optional[str], filename: str,
                   content_type: str, size: Optional[int]) -> None:
    if not object_id:
        return
    if not db.query(Vault).filter(Vault.id == vault_id).first():
        # Vault created outside this workspace; mirror needs the parent row
        return
    existing = db.query(VaultObject).filter(VaultObject.id == object_id).first()
    if existing:
        existing.size = size or existing.size
        return
    db.add(VaultObject(
        id=object_id,
        vault_id=vault_id,
        filename=filename,
        content_type=content_type,
        size=size,
        status="pending",
    ))


# =============================================================================
# VAULTS
# =============================================================================

@router.get("")
async def list_vaults(
    auth: AuthContext = Depends(require_permission("vaults.read")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    return {"vaults": await client.list_vaults()}


@router.get("/objects-multi")
async def list_objects_multi(
    vaultIds: Optional[str] = None,
    auth: AuthContext = Depends(require_permission("vaults.read")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    """Objects of several vaults (comma-separated ids); failing vaults contribute nothing"""
    vault_ids = [v for v in (vaultIds or "").split(",") if v]
    if not vault_ids:
        return {"objects": []}

    async def fetch(vault_id: str) -> List[Dict[str, Any]]:
        try:
            objects = await client.list_objects(vault_id)
        except CaseDevError as e:
            logger.error(f"Failed to fetch objects for vault {vault_id}: {e.status_code}")
            return []
        return [
            {
                "id": obj.get("id"),
                "name": obj.get("filename"),
                "type": obj.get("contentType"),
                "size": obj.get("sizeBytes") or 0,
                "ingestionStatus": obj.get("ingestionStatus"),
                "createdAt": obj.get("createdAt"),
                "vaultId": vault_id,
            }
            for obj in objects
        ]

    results = await asyncio.gather(*(fetch(v) for v in vault_ids))
    return {"objects": [obj for objects in results for obj in objects]}


@router.post("", status_code=201)
async def create_vault(
    request: CreateVaultRequest,
    auth: AuthContext = Depends(require_permission("vaults.create")),
    client: CaseDevClient = Depends(get_casedev_client),
    db: Session = Depends(get_db),
):
    if not request.name:
        raise HTTPException(status_code=400, detail="Vault name is required")

    data = await client.create_vault(request.name, request.description, request.enable_graph)

    vault_id = data.get("id")
    if vault_id and not db.query(Vault).filter(Vault.id == vault_id).first():
        db.add(Vault(
            id=vault_id,
            user_id=auth.user_id,
            name=request.name,
            description=request.description,
            region=data.get("region"),
        ))
        db.commit()

    logger.info(f"Vault created: {vault_id} by {auth.user_id}")
    return data


@router.get("/{vault_id}")
async def get_vault(
    vault_id: str,
    auth: AuthContext = Depends(require_permission("vaults.read")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    return await client.get_vault(vault_id)


# =============================================================================
# OBJECTS
# =============================================================================

@router.get("/{vault_id}/objects")
async def list_objects(
    vault_id: str,
    auth: AuthContext = Depends(require_permission("vaults.read")),
    client: CaseDevClient = Depends(get_casedev_client),
    db: Session = Depends(get_db),
):
    """Objects from Case.dev merged with the local mirror"""
    local = db.query(VaultObject).filter(VaultObject.vault_id == vault_id).all()

    try:
        remote = await client.list_objects(vault_id)
    except CaseDevError as e:
        if not client.configured:
            raise
        logger.warning(f"Listing objects of {vault_id} failed ({e.status_code}), using local mirror")
        return {
            "objects": [local_object_to_dict(o) for o in local],
            "source": SOURCE_LOCAL_FALLBACK,
        }

    return {"objects": merge_objects(remote, local), "source": SOURCE_MERGED}


@router.post("/{vault_id}/upload")
async def get_upload_url(
    vault_id: str,
    request: UploadUrlRequest,
    auth: AuthContext = Depends(require_permission("vaults.upload")),
    client: CaseDevClient = Depends(get_casedev_client),
    db: Session = Depends(get_db),
):
    """Presigned upload URL for a direct browser upload"""
    if not request.filename or not request.content_type:
        raise HTTPException(status_code=400, detail="filename and contentType are required")

    data = await client.get_upload_url(vault_id, request.filename, request.content_type)
    _record_object(db, vault_id, data.get("objectId"), request.filename, request.content_type, request.size)
    db.commit()
    return data


@router.post("/{vault_id}/upload-file")
async def upload_file(
    vault_id: str,
    file: Optional[UploadFile] = File(None),
    auth: AuthContext = Depends(require_permission("vaults.upload")),
    client: CaseDevClient = Depends(get_casedev_client),
    db: Session = Depends(get_db),
):
    """Upload proxy: presigned URL + storage PUT in one call"""
    if file is None or not file.filename:
        raise HTTPException(status_code=400, detail="No file provided")

    content_type = file.content_type or "application/octet-stream"
    data = await file.read()

    try:
        result = await client.upload_file(vault_id, file.filename, content_type, data)
    except CaseDevError as e:
        logger.error(f"Upload of {file.filename} to {vault_id} failed: {e}")
        raise HTTPException(status_code=500, detail=str(e.detail) or "Upload failed")

    _record_object(db, vault_id, result.get("objectId"), file.filename, content_type, len(data))
    db.commit()

    return {"success": True, **result}


@router.post("/{vault_id}/ingest/{object_id}")
async def ingest_object(
    vault_id: str,
    object_id: str,
    request: Optional[IngestRequest] = None,
    auth: AuthContext = Depends(require_permission("vaults.upload")),
    client: CaseDevClient = Depends(get_casedev_client),
    db: Session = Depends(get_db),
):
    """Trigger OCR/chunking/embedding of an uploaded object"""
    enable_graphrag = request.enable_graphrag if request else False
    data = await client.ingest(vault_id, object_id, enable_graphrag=enable_graphrag)

    obj = db.query(VaultObject).filter(VaultObject.id == object_id).first()
    if obj:
        obj.status = "processing"
        db.commit()

    logger.info(f"Ingestion triggered for {vault_id}/{object_id}")
    return data


@router.post("/{vault_id}/search")
async def search_vault(
    vault_id: str,
    request: VaultSearchRequest,
    auth: AuthContext = Depends(require_permission("vaults.search")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    if not request.query:
        raise HTTPException(status_code=400, detail="query is required")
    if request.method not in VAULT_SEARCH_METHODS:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid method. Must be one of: {', '.join(VAULT_SEARCH_METHODS)}"
        )

    payload: Dict[str, Any] = {"query": request.query, "method": request.method, "topK": request.top_k}
    if request.filters:
        payload["filters"] = request.filters
    return await client.search_vault_raw(vault_id, payload)


@router.get("/{vault_id}/objects/{object_id}/text")
async def get_object_text(
    vault_id: str,
    object_id: str,
    auth: AuthContext = Depends(require_permission("vaults.read")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    return await client.get_object_text(vault_id, object_id)


@router.get("/{vault_id}/objects/{object_id}/download")
async def download_object(
    vault_id: str,
    object_id: str,
    auth: AuthContext = Depends(require_permission("vaults.download")),
    client: CaseDevClient = Depends(get_casedev_client),
    db: Session = Depends(get_db),
):
    content, content_type = await client.download_object(vault_id, object_id)
    local = db.query(VaultObject).filter(VaultObject.id == object_id).first()
    filename = local.filename if local else object_id
    return Response(
        content=content,
        media_type=content_type,
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/{vault_id}/objects/{object_id}/presigned-url")
async def presigned_url(
    vault_id: str,
    object_id: str,
    body: Dict[str, Any] = Body(default_factory=dict),
    auth: AuthContext = Depends(require_permission("vaults.download")),
    client: CaseDevClient = Depends(get_casedev_client),
):
    """Presigned storage URL; the body ({operation, expiresIn, ...}) is passed through"""
    try:
        return await client.presigned_url(vault_id, object_id, body)
    except CaseDevError as e:
        logger.error(f"Presigned URL for {vault_id}/{object_id} failed: {e}")
        raise HTTPException(status_code=e.status_code, detail="Failed to generate presigned URL")

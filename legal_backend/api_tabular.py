"""
Tabular Analysis API Endpoints
==============================

CRUD for tabular analyses and the streaming extraction run (SSE,
available as GET for EventSource clients and as POST).
"""

import uuid
import logging
from datetime import datetime
from typing import Optional, List, Dict, Any

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from .auth import AuthContext, require_auth
from .casedev import CaseDevClient, get_casedev_client
from .config import get_settings
from .db import (
    TabularAnalysis, TabularAnalysisRow, Case,
    AnalysisStatus, ColumnDataType, get_db,
)
from .llm import CaseLLMClient, get_llm_client
from .schemas import CreateTabularRequest, UpdateTabularRequest, ExtractionColumnInput
from .sse import sse_response
from .tabular import prepare_run

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/tabular-analysis", tags=["tabular"])

MAX_NAME_LENGTH = 200
MAX_LISTED = 50
DATA_TYPES = [t.value for t in ColumnDataType]


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def build_columns(columns: List[ExtractionColumnInput]) -> List[Dict[str, Any]]:
    """Validate column inputs and assign ids/order where missing"""
    result = []
    for index, column in enumerate(columns):
        if column.data_type not in DATA_TYPES:
            raise HTTPException(status_code=400, detail=f"Invalid input: unknown dataType {column.data_type}")
        stored = column.to_column(index)
        stored["id"] = stored["id"] or str(uuid.uuid4())
        result.append(stored)
    return result


def analysis_to_dict(analysis: TabularAnalysis) -> Dict[str, Any]:
    return {
        "id": analysis.id,
        "userId": analysis.user_id,
        "caseId": analysis.case_id,
        "vaultId": analysis.vault_id,
        "name": analysis.name,
        "description": analysis.description,
        "documentIds": analysis.document_ids or [],
        "columns": analysis.columns or [],
        "modelId": analysis.model_id,
        "status": analysis.status,
        "createdAt": _iso(analysis.created_at),
        "updatedAt": _iso(analysis.updated_at),
    }


def row_to_dict(row: TabularAnalysisRow, title: str) -> Dict[str, Any]:
    return {
        "id": row.id,
        "analysisId": row.analysis_id,
        "documentId": row.document_id,
        "documentTitle": title,
        "data": row.data or {},
        "tokensUsed": row.tokens_used,
        "extractedAt": _iso(row.extracted_at),
    }


def _own_analysis(db: Session, auth: AuthContext, analysis_id: str) -> TabularAnalysis:
    analysis = db.query(TabularAnalysis).filter(
        TabularAnalysis.id == analysis_id,
        TabularAnalysis.user_id == auth.user_id,
    ).first()
    if not analysis:
        raise HTTPException(status_code=404, detail="Not found")
    return analysis


@router.get("")
async def list_analyses(
    case_id: Optional[str] = Query(None, alias="caseId"),
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    query = db.query(TabularAnalysis).filter(TabularAnalysis.user_id == auth.user_id)
    if case_id:
        query = query.filter(TabularAnalysis.case_id == case_id)
    analyses = query.order_by(TabularAnalysis.created_at.desc()).limit(MAX_LISTED).all()
    return [analysis_to_dict(a) for a in analyses]


@router.post("")
async def create_analysis(
    request: CreateTabularRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    if not request.name or len(request.name) > MAX_NAME_LENGTH:
        raise HTTPException(status_code=400, detail="Invalid input: name must be 1-200 characters")
    if not request.document_ids:
        raise HTTPException(status_code=400, detail="Invalid input: select at least one document")

    if request.case_id:
        case = db.query(Case).filter(Case.id == request.case_id, Case.user_id == auth.user_id).first()
        if not case:
            raise HTTPException(status_code=404, detail="Case not found or access denied")

    analysis = TabularAnalysis(
        user_id=auth.user_id,
        case_id=request.case_id,
        vault_id=request.vault_id,
        name=request.name,
        description=request.description,
        document_ids=list(request.document_ids),
        columns=build_columns(request.columns),
        model_id=request.model_id or get_settings().tabular_model,
        status=AnalysisStatus.DRAFT.value,
    )
    db.add(analysis)
    db.commit()

    logger.info(f"Tabular analysis {analysis.id} created: {len(analysis.document_ids)} docs, "
                f"{len(analysis.columns)} columns")
    return {"analysisId": analysis.id}


@router.get("/{analysis_id}")
async def get_analysis(
    analysis_id: str,
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
    db: Session = Depends(get_db),
):
    """Analysis with rows (titled from the vault listing) and its matter"""
    analysis = _own_analysis(db, auth, analysis_id)
    rows = db.query(TabularAnalysisRow).filter(TabularAnalysisRow.analysis_id == analysis_id).all()

    matter = None
    if analysis.case_id:
        case = db.query(Case).filter(Case.id == analysis.case_id).first()
        if case:
            matter = {"id": case.id, "name": case.title}

    titles: Dict[str, str] = {}
    if analysis.vault_id:
        try:
            objects = await client.list_objects(analysis.vault_id)
            titles = {obj.get("id"): obj.get("filename") for obj in objects}
        except Exception as e:
            logger.warning(f"Could not load document titles for {analysis_id}: {e}")

    return {
        **analysis_to_dict(analysis),
        "rows": [row_to_dict(r, titles.get(r.document_id) or "Unknown") for r in rows],
        "matter": matter,
    }


@router.put("/{analysis_id}")
async def update_analysis(
    analysis_id: str,
    request: UpdateTabularRequest,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    analysis = _own_analysis(db, auth, analysis_id)

    if request.name:
        if len(request.name) > MAX_NAME_LENGTH:
            raise HTTPException(status_code=400, detail="Invalid input: name must be 1-200 characters")
        analysis.name = request.name
    if "description" in request.model_fields_set:
        analysis.description = request.description
    if request.columns is not None:
        analysis.columns = build_columns(request.columns)
    if request.document_ids is not None:
        analysis.document_ids = list(request.document_ids)
    if request.vault_id:
        analysis.vault_id = request.vault_id
    if request.model_id:
        analysis.model_id = request.model_id
    if request.status:
        if request.status not in [s.value for s in AnalysisStatus]:
            raise HTTPException(status_code=400, detail="Invalid status")
        analysis.status = request.status

    analysis.updated_at = datetime.utcnow()
    db.commit()
    return analysis_to_dict(analysis)


@router.delete("/{analysis_id}")
async def delete_analysis(
    analysis_id: str,
    auth: AuthContext = Depends(require_auth),
    db: Session = Depends(get_db),
):
    analysis = _own_analysis(db, auth, analysis_id)
    db.query(TabularAnalysisRow).filter(TabularAnalysisRow.analysis_id == analysis_id).delete()
    db.delete(analysis)
    db.commit()
    return {"success": True}


@router.api_route("/{analysis_id}/run", methods=["GET", "POST"])
async def run_analysis(
    analysis_id: str,
    auth: AuthContext = Depends(require_auth),
    client: CaseDevClient = Depends(get_casedev_client),
    llm: CaseLLMClient = Depends(get_llm_client),
    db: Session = Depends(get_db),
):
    """Extract every cell, streaming progress as SSE"""
    runner = await prepare_run(db, analysis_id, auth.user_id, client, llm)
    logger.info(f"Tabular run {analysis_id}: {runner.total_cells} cells")
    return sse_response(runner.run())

"""
Tabular Analysis Runner
=======================

Walks documents (rows) x columns in column order, extracting each cell
and upserting it into tabular_analysis_rows as soon as it is done.

Events yielded by TabularRunner.run():
- progress  {documentId, columnId, message}
- complete  {documentId, columnId, value, progress}
- error     {documentId, columnId?, message}
- done      {totalCells, completedCells}
"""

import asyncio
import logging
from datetime import datetime
from typing import List, Dict, Any, Optional, AsyncIterator, Tuple

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ..casedev import CaseDevClient
from ..db import TabularAnalysis, TabularAnalysisRow, AnalysisStatus, DatabaseManager
from ..llm import CaseLLMClient
from .cell_agent import extract_cell_value, DEFAULT_MODEL

logger = logging.getLogger(__name__)


async def prepare_run(
    db: Session,
    analysis_id: str,
    user_id: str,
    client: CaseDevClient,
    llm: CaseLLMClient,
) -> "TabularRunner":
    """
    Validate an analysis and resolve its documents before streaming.

    Raises:
        HTTPException: 404 unknown analysis, 400 no columns/vault,
            500 when the vault listing fails
    """
    analysis = db.query(TabularAnalysis).filter(
        TabularAnalysis.id == analysis_id,
        TabularAnalysis.user_id == user_id,
    ).first()
    if not analysis:
        raise HTTPException(status_code=404, detail="Not found")

    columns = list(analysis.columns or [])
    if not columns:
        raise HTTPException(status_code=400, detail="Add columns before running extraction")

    if not analysis.vault_id:
        raise HTTPException(status_code=400, detail="No vault associated with this analysis")

    document_ids = list(analysis.document_ids or [])

    try:
        objects = await client.list_objects(analysis.vault_id)
    except Exception as e:
        logger.error(f"Failed to fetch vault objects for analysis {analysis_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to fetch documents")

    titles = {
        obj["id"]: obj.get("filename") or obj["id"]
        for obj in objects
        if obj.get("id") in document_ids
    }

    analysis.status = AnalysisStatus.PROCESSING.value
    analysis.updated_at = datetime.utcnow()
    db.commit()

    return TabularRunner(
        analysis_id=analysis.id,
        vault_id=analysis.vault_id,
        columns=columns,
        document_ids=document_ids,
        document_titles=titles,
        default_model=analysis.model_id or DEFAULT_MODEL,
        client=client,
        llm=llm,
    )


class TabularRunner:
    """Streams extraction for one analysis"""

    def __init__(
        self,
        analysis_id: str,
        vault_id: str,
        columns: List[Dict[str, Any]],
        document_ids: List[str],
        document_titles: Dict[str, str],
        default_model: str,
        client: CaseDevClient,
        llm: CaseLLMClient,
    ):
        self.analysis_id = analysis_id
        self.vault_id = vault_id
        self.columns = sorted(columns, key=lambda c: c.get("order", 0))
        self.document_ids = document_ids
        self.document_titles = document_titles
        self.default_model = default_model
        self.client = client
        self.llm = llm

    @property
    def total_cells(self) -> int:
        return len(self.document_ids) * len(self.columns)

    def _get_row(self, db: Session, document_id: str) -> Optional[TabularAnalysisRow]:
        return db.query(TabularAnalysisRow).filter(
            TabularAnalysisRow.analysis_id == self.analysis_id,
            TabularAnalysisRow.document_id == document_id,
        ).first()

    def _dependencies(self, db: Session, document_id: str, column_index: int) -> Optional[Dict[str, Any]]:
        """Values already extracted for columns to the left, keyed by column name"""
        if column_index == 0:
            return None
        row = self._get_row(db, document_id)
        if not row or not row.data:
            return None

        deps = {}
        for left in self.columns[:column_index]:
            cell = row.data.get(left["id"])
            if cell:
                deps[left["name"]] = cell.get("value")
        return deps

    def _save_cell(self, db: Session, document_id: str, column_id: str, cell: Dict[str, Any]):
        row = self._get_row(db, document_id)
        tokens = cell.get("tokensUsed") or 0
        if row:
            # Reassign so the JSON column is marked dirty
            row.data = {**(row.data or {}), column_id: cell}
            row.tokens_used = (row.tokens_used or 0) + tokens
            row.extracted_at = datetime.utcnow()
        else:
            db.add(TabularAnalysisRow(
                analysis_id=self.analysis_id,
                document_id=document_id,
                data={column_id: cell},
                tokens_used=tokens,
                extracted_at=datetime.utcnow(),
            ))
        db.commit()

    def _set_status(self, db: Session, status: AnalysisStatus):
        analysis = db.query(TabularAnalysis).filter(TabularAnalysis.id == self.analysis_id).first()
        if analysis:
            analysis.status = status.value
            analysis.updated_at = datetime.utcnow()
            db.commit()

    async def _extract_streaming(
        self,
        document_id: str,
        title: str,
        column: Dict[str, Any],
        deps: Optional[Dict[str, Any]],
        model: str,
    ) -> AsyncIterator[Tuple[str, Any]]:
        """
        Run one cell extraction as a task and relay its progress live.

        Yields ("progress", message) while the cell is being worked on,
        then ("cell", CellValue). Each progress message is handed to the
        consumer before the extraction moves on to its next step.
        """
        queue: asyncio.Queue = asyncio.Queue()

        async def on_progress(message: str):
            await queue.put(message)
            await queue.join()

        task = asyncio.ensure_future(extract_cell_value(
            self.client,
            self.llm,
            document_id,
            title,
            column,
            self.vault_id,
            dependencies=deps,
            model_id=model,
            on_progress=on_progress,
        ))
        task.add_done_callback(lambda _: queue.put_nowait(None))

        try:
            while True:
                message = await queue.get()
                if message is None:
                    break
                yield "progress", message
                queue.task_done()
            yield "cell", await task
        finally:
            if not task.done():
                task.cancel()

    async def run(self) -> AsyncIterator[Dict[str, Any]]:
        completed_cells = 0
        total_cells = self.total_cells

        with DatabaseManager() as dbm:
            db = dbm.session
            try:
                for document_id in self.document_ids:
                    title = self.document_titles.get(document_id)
                    if title is None:
                        yield {
                            "type": "error",
                            "documentId": document_id,
                            "message": "Document not found in vault",
                        }
                        continue

                    for index, column in enumerate(self.columns):
                        column_id = column["id"]
                        yield {
                            "type": "progress",
                            "documentId": document_id,
                            "columnId": column_id,
                            "message": "Extracting...",
                        }

                        try:
                            deps = self._dependencies(db, document_id, index)
                            model = column.get("modelId") or self.default_model

                            cell = None
                            async for kind, payload in self._extract_streaming(document_id, title, column, deps, model):
                                if kind == "cell":
                                    cell = payload
                                    continue
                                yield {
                                    "type": "progress",
                                    "documentId": document_id,
                                    "columnId": column_id,
                                    "message": payload,
                                }

                            self._save_cell(db, document_id, column_id, cell)
                            completed_cells += 1

                            yield {
                                "type": "complete",
                                "documentId": document_id,
                                "columnId": column_id,
                                "value": cell,
                                "progress": round(completed_cells / total_cells * 100),
                            }
                        except Exception as e:
                            logger.error(f"Cell extraction failed ({document_id}/{column_id}): {e}")
                            db.rollback()
                            yield {
                                "type": "error",
                                "documentId": document_id,
                                "columnId": column_id,
                                "message": str(e) or "Extraction failed",
                            }

                self._set_status(db, AnalysisStatus.COMPLETED)
                logger.info(
                    f"Tabular analysis {self.analysis_id} finished: "
                    f"{completed_cells}/{total_cells} cells"
                )
                yield {"type": "done", "totalCells": total_cells, "completedCells": completed_cells}

            except Exception as e:
                logger.exception(f"Tabular run failed for {self.analysis_id}: {e}")
                db.rollback()
                self._set_status(db, AnalysisStatus.FAILED)
                yield {"type": "error", "message": str(e) or "Extraction failed"}

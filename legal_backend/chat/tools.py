"""
Chat Agent Tools
================

OpenAI function-tool specs and their executors.

Tools:
- web_search: Case.dev web search (title, url, snippet)
- web_answer / web_research: search-grounded answer, hosted research report
- doc_search: semantic search bound to the chat's document vault
- list_vault_objects / search_vault / get_vault / get_vault_file_info /
  organize_vaults_by_content: selected vaults
- list_vaults / create_vault / trigger_ingestion / submit_ocr: vault management
- search_workflows / get_workflow / execute_workflow: Case.dev workflows
- legal_find / legal_verify: two-step citation lookup (see legal_sources)
- create_artifact / update_artifact: persisted documents
"""

import asyncio
import logging
from typing import List, Dict, Any, Optional, Tuple

import httpx

from ..casedev import CaseDevClient, CaseDevError
from ..db import Artifact, ArtifactKind, get_db_session
from ..llm import CaseLLMClient
from ..ocr import submit_ocr_job
from .legal_sources import SOURCE_TYPES, build_legal_query, rank_candidates, verify_source

logger = logging.getLogger(__name__)

ARTIFACT_KINDS = [k.value for k in ArtifactKind]
SEARCH_METHODS = ["fast", "hybrid"]
OCR_ENGINES = ["doctr", "google"]
RESEARCH_MODELS = ["exa-research-fast", "exa-research", "exa-research-pro"]
WORKFLOW_CATEGORIES = ["litigation", "regulatory", "transactional", "corporate"]
WORKFLOW_TYPES = ["document-processing", "case-intake", "compliance", "transactional"]
CODE_PROPERTIES = {
    "system": {"type": "string"},
    "title": {"type": "string"},
    "section": {"type": "string"},
}

# (category, filename keywords); files matching none are "Other"
FILE_CATEGORIES = (
    ("Depositions & Transcripts", ("depos", "transcript")),
    ("Medical Records", ("medical", "health")),
    ("Legal Documents", ("brief", "contract", "pleading")),
)

RESEARCH_POLL_INTERVAL = 5
RESEARCH_MAX_POLLS = 60

WORKFLOW_ACCESS_HINT = "Please ensure your API key has Workflows service access enabled."


def _function(name: str, description: str, properties: Dict[str, Any],
              required: Optional[List[str]] = None) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required or [],
            },
        },
    }


# =============================================================================
# TOOL SPECS
# =============================================================================

TOOL_SPECS: Dict[str, Dict[str, Any]] = {
    "web_search": _function(
        "web_search",
        "Web search for external, real-time, or current knowledge. Formulate effective "
        "keyword-based queries. Use this only when you need external authority or market "
        "practice, not for document facts.",
        {
            "query": {"type": "string", "description": "The web search query."},
            "numResults": {"type": "number", "description": "Target number of results to collect.", "default": 8},
        },
        ["query"],
    ),
    "doc_search": _function(
        "doc_search",
        "Search through the documents uploaded to the current case's vault. ALWAYS use this "
        "tool first when the user asks about \"the document\", \"my files\" or what they uploaded.",
        {
            "query": {"type": "string", "description": "The search query to find relevant document content"},
            "limit": {"type": "number", "description": "Maximum number of results to return (default: 5)", "default": 5},
        },
        ["query"],
    ),
    "list_vault_objects": _function(
        "list_vault_objects",
        "List files in a vault with their indexing status. If no vault is given, lists "
        "files from all selected vaults.",
        {"vaultId": {"type": "string", "description": "The vault ID to list files from"}},
    ),
    "search_vault": _function(
        "search_vault",
        "Semantic search across vault documents. Supports fast (pure semantic) and hybrid "
        "(semantic + keyword) methods.",
        {
            "vaultId": {"type": "string", "description": "The vault ID to search"},
            "query": {"type": "string", "description": "The search query in natural language"},
            "method": {"type": "string", "enum": SEARCH_METHODS, "default": "hybrid"},
            "topK": {"type": "number", "default": 5},
        },
        ["vaultId", "query"],
    ),
    "get_vault": _function(
        "get_vault",
        "Get information about a vault including statistics and configuration.",
        {"vaultId": {"type": "string", "description": "The vault ID"}},
        ["vaultId"],
    ),
    "get_vault_file_info": _function(
        "get_vault_file_info",
        "Get detailed information about a specific file in a vault including its indexing "
        "status, size, and metadata.",
        {
            "vaultId": {"type": "string", "description": "The vault ID"},
            "objectId": {"type": "string", "description": "The object/file ID to get info about"},
        },
        ["vaultId", "objectId"],
    ),
    "organize_vaults_by_content": _function(
        "organize_vaults_by_content",
        "Categorize files across the selected vaults by filename. Useful for understanding what "
        "types of documents you have access to.",
        {},
    ),
    "list_vaults": _function(
        "list_vaults",
        "List all vaults with their details. Use this to discover what vaults exist and get "
        "their IDs before performing operations.",
        {},
    ),
    "create_vault": _function(
        "create_vault",
        "Create a new vault for storing documents. Can optionally enable GraphRAG for advanced "
        "entity extraction.",
        {
            "name": {"type": "string", "description": "Vault name (e.g., 'Smith v. Hospital Case 2024')"},
            "description": {"type": "string", "description": "Description of what this vault contains"},
            "enableGraph": {"type": "boolean", "default": False},
        },
        ["name"],
    ),
    "trigger_ingestion": _function(
        "trigger_ingestion",
        "Trigger OCR and indexing on an uploaded document so it becomes searchable.",
        {
            "vaultId": {"type": "string", "description": "The vault ID"},
            "objectId": {"type": "string", "description": "The object/file ID to process"},
            "enableGraphRAG": {"type": "boolean", "default": False},
        },
        ["vaultId", "objectId"],
    ),
    "submit_ocr": _function(
        "submit_ocr",
        "Submit a document from a vault for OCR processing. Returns a job ID for tracking.",
        {
            "vaultId": {"type": "string", "description": "Vault containing the document"},
            "objectId": {"type": "string", "description": "Object/file ID to process"},
            "engine": {"type": "string", "enum": OCR_ENGINES, "default": "doctr"},
        },
        ["vaultId", "objectId"],
    ),
    "web_answer": _function(
        "web_answer",
        "Get an AI-generated answer to a question using web search, synthesized from several "
        "sources with citations. Best for questions that need current information.",
        {
            "query": {"type": "string", "description": "Question to answer"},
            "numResults": {"type": "number", "default": 10},
        },
        ["query"],
    ),
    "web_research": _function(
        "web_research",
        "Run deep, multi-step research on a complex topic. Takes 1-5 minutes and produces a "
        "comprehensive report with sources.",
        {
            "instructions": {"type": "string", "description": "Research instructions"},
            "model": {"type": "string", "enum": RESEARCH_MODELS, "default": "exa-research"},
        },
        ["instructions"],
    ),
    "search_workflows": _function(
        "search_workflows",
        "Search and discover Case.dev workflows, by natural language query or by "
        "category/type filters. Returns workflow IDs, names and descriptions.",
        {
            "query": {"type": "string", "description": "Natural language search query"},
            "category": {"type": "string", "enum": WORKFLOW_CATEGORIES},
            "subCategory": {"type": "string"},
            "type": {"type": "string", "enum": WORKFLOW_TYPES},
            "limit": {"type": "number", "default": 20},
        },
    ),
    "get_workflow": _function(
        "get_workflow",
        "Get detailed metadata for a workflow by ID, including demo videos and example outputs.",
        {"workflowId": {"type": "string", "description": "The workflow ID (UUID)"}},
        ["workflowId"],
    ),
    "execute_workflow": _function(
        "execute_workflow",
        "Execute a Case.dev workflow on text, a document URL or a vault object. Find the "
        "workflow ID with search_workflows first. Provide exactly one input.",
        {
            "workflowId": {"type": "string", "description": "The workflow ID (UUID) to execute"},
            "text": {"type": "string", "description": "Text content to process"},
            "documentUrl": {"type": "string", "description": "URL to a document to process"},
            "vaultObjectId": {"type": "string", "description": "Vault object ID"},
            "model": {"type": "string"},
            "temperature": {"type": "number", "default": 0.7},
            "maxTokens": {"type": "number", "default": 4096},
            "format": {"type": "string", "enum": ["json", "text", "pdf"], "default": "json"},
            "variables": {"type": "object", "additionalProperties": {"type": "string"}},
        },
        ["workflowId"],
    ),
    "legal_find": _function(
        "legal_find",
        "Step 1 of legal research: find legal sources (cases, statutes, regulations). Returns "
        "ranked candidates, official sites first. Verify the top 3-5 with legal_verify.",
        {
            "type": {"type": "string", "enum": SOURCE_TYPES},
            "jurisdiction": {
                "type": "object",
                "properties": {
                    "country": {"type": "string"},
                    "level": {"type": "string"},
                    "court": {"type": "string"},
                    "state": {"type": "string"},
                },
            },
            "citation": {"type": "string", "description": "Exact citation if known"},
            "partyNames": {"type": "array", "items": {"type": "string"}},
            "code": {"type": "object", "properties": CODE_PROPERTIES},
            "yearStart": {"type": "number"},
            "yearEnd": {"type": "number"},
            "keywords": {"type": "string"},
            "numResults": {"type": "number", "default": 10},
        },
        ["type"],
    ),
    "legal_verify": _function(
        "legal_verify",
        "Step 2 of legal research: verify a candidate source contains the target identifiers. "
        "If verificationScore < 0.6, try the next candidate. Never cite an unverified source.",
        {
            "target": {
                "type": "object",
                "properties": {
                    "type": {"type": "string", "enum": SOURCE_TYPES},
                    "citation": {"type": "string"},
                    "partyNames": {"type": "array", "items": {"type": "string"}},
                    "court": {"type": "string"},
                    "code": {"type": "object", "properties": CODE_PROPERTIES},
                    "year": {"type": "number"},
                },
                "required": ["type"],
            },
            "candidate": {
                "type": "object",
                "properties": {
                    "url": {"type": "string"},
                    "title": {"type": "string"},
                    "type": {"type": "string"},
                },
                "required": ["url"],
            },
        },
        ["target", "candidate"],
    ),
    "create_artifact": _function(
        "create_artifact",
        "Create an artifact (document, memo, letter, etc.). Say any commentary BEFORE calling "
        "this tool. After it returns, your very next output must be the document content in markdown.",
        {
            "title": {"type": "string", "description": "The artifact title"},
            "kind": {"type": "string", "enum": ARTIFACT_KINDS, "description": "The type of artifact"},
        },
        ["title", "kind"],
    ),
    "update_artifact": _function(
        "update_artifact",
        "Update an existing artifact. Use 'searchReplace' for targeted edits or 'fullContent' "
        "for major rewrites. Only use when an artifact already exists.",
        {
            "artifactId": {"type": "string", "description": "The ID of the artifact to update"},
            "searchReplace": {
                "type": "array",
                "items": {
                    "type": "object",
                    "properties": {
                        "search": {"type": "string"},
                        "replace": {"type": "string"},
                    },
                    "required": ["search", "replace"],
                },
            },
            "fullContent": {"type": "string"},
            "title": {"type": "string"},
        },
        ["artifactId"],
    ),
}

VAULT_TOOLS = (
    "list_vault_objects", "search_vault", "get_vault",
    "get_vault_file_info", "organize_vaults_by_content",
)


def _chunk_score(chunk: Dict[str, Any]) -> float:
    if chunk.get("hybridScore"):
        return chunk["hybridScore"]
    if chunk.get("vectorScore"):
        return chunk["vectorScore"]
    if chunk.get("distance"):
        return 1 - chunk["distance"]
    return 0


def apply_search_replace(content: str, edits: List[Dict[str, str]]) -> Tuple[str, List[str]]:
    """Apply each edit to the first occurrence; returns (content, searches not found)"""
    missing = []
    for edit in edits:
        search = edit.get("search") or ""
        if search and search in content:
            content = content.replace(search, edit.get("replace") or "", 1)
        else:
            missing.append(search)
    return content, missing


class ChatToolbox:
    """
    Tool executors bound to one chat request.

    Args:
        client: Case.dev client
        user_id: Owner of created artifacts
        selected_vaults: Vault ids the user selected for this chat
        doc_vault_id: Vault searched by doc_search (defaults to the first selected)
        chat_id: Chat that artifacts belong to
        enabled_tools: {tool_name: bool}; tools set to False are dropped
        llm: Judge model client for legal_verify (no AI verdict when None)
        page_transport: httpx transport for pages fetched by legal_verify
    """

    def __init__(
        self,
        client: CaseDevClient,
        user_id: str,
        selected_vaults: Optional[List[str]] = None,
        doc_vault_id: Optional[str] = None,
        chat_id: Optional[str] = None,
        case_id: Optional[str] = None,
        enabled_tools: Optional[Dict[str, bool]] = None,
        llm: Optional[CaseLLMClient] = None,
        page_transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.client = client
        self.user_id = user_id
        self.selected_vaults = [str(v) for v in (selected_vaults or [])]
        self.doc_vault_id = doc_vault_id or (self.selected_vaults[0] if self.selected_vaults else None)
        self.chat_id = chat_id
        self.case_id = case_id
        self.enabled_tools = enabled_tools or {}
        self.llm = llm
        self.page_transport = page_transport

    def is_enabled(self, name: str) -> bool:
        if name not in TOOL_SPECS:
            return False
        if name in VAULT_TOOLS and not self.selected_vaults:
            return False
        return self.enabled_tools.get(name, True) is not False

    @property
    def names(self) -> List[str]:
        return [name for name in TOOL_SPECS if self.is_enabled(name)]

    @property
    def specs(self) -> List[Dict[str, Any]]:
        return [TOOL_SPECS[name] for name in self.names]

    async def execute(self, name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        """Run a tool; unknown or failing tools come back as {error}"""
        if not self.is_enabled(name):
            return {"error": f"Unknown tool: {name}"}

        handler = getattr(self, f"_tool_{name}")
        try:
            return await handler(**args)
        except TypeError as e:
            logger.warning(f"Bad arguments for {name}: {e}")
            return {"error": f"Invalid arguments for {name}"}
        except Exception as e:
            logger.error(f"Tool {name} failed: {e}")
            return {"error": str(e)}

    # =========================================================================
    # SEARCH
    # =========================================================================

    async def _tool_web_search(self, query: str, numResults: int = 8) -> Dict[str, Any]:
        data = await self.client.web_search({
            "query": query,
            "numResults": numResults,
            "text": True,
            "highlights": True,
        })
        sources = [
            {
                "title": item.get("title"),
                "url": item.get("url"),
                "snippet": "\n".join(item.get("highlights") or []) or item.get("snippet") or item.get("text") or "",
            }
            for item in data.get("results") or []
        ]
        return {"sources": sources, "query": query}

    async def _tool_doc_search(self, query: str, limit: int = 5) -> Dict[str, Any]:
        if not self.doc_vault_id:
            return {
                "success": False,
                "error": "No case selected. Please select a case to search its documents.",
                "results": [],
            }

        limit = int(limit or 5)
        data = await self.client.search_vault_raw(self.doc_vault_id, {"query": query, "limit": limit})
        chunks = (data.get("chunks") or data.get("results") or [])[:limit]
        source_map = {s.get("id"): s.get("filename") for s in data.get("sources") or []}

        results = [
            {
                "text": chunk.get("text") or "",
                "source": source_map.get(chunk.get("object_id") or "") or "document",
                "score": _chunk_score(chunk),
            }
            for chunk in chunks
        ]
        return {"success": True, "results": results, "query": query}

    # =========================================================================
    # VAULTS
    # =========================================================================

    async def _tool_list_vault_objects(self, vaultId: Optional[str] = None) -> Dict[str, Any]:
        vaults = [vaultId] if vaultId else self.selected_vaults
        files = []
        for vault_id in vaults:
            for obj in await self.client.list_objects(vault_id):
                files.append({
                    "vaultId": vault_id,
                    "filename": obj.get("filename"),
                    "objectId": obj.get("id"),
                    "status": obj.get("ingestionStatus") or "pending",
                    "isSearchable": (obj.get("chunkCount") or 0) > 0,
                    "chunkCount": obj.get("chunkCount"),
                    "pageCount": obj.get("pageCount"),
                    "uploadedAt": obj.get("createdAt"),
                })
        return {
            "vaultsQueried": vaults,
            "totalFiles": len(files),
            "files": files,
            "searchableFiles": sum(1 for f in files if f["isSearchable"]),
        }

    async def _tool_search_vault(self, vaultId: str, query: str, method: str = "hybrid",
                                 topK: int = 5) -> Dict[str, Any]:
        if method not in SEARCH_METHODS:
            method = "hybrid"
        data = await self.client.search_vault_raw(vaultId, {"query": query, "method": method, "topK": topK})
        chunks = data.get("chunks") or []
        return {
            "method": data.get("method", method),
            "query": query,
            "resultsFound": len(chunks),
            "chunks": [
                {
                    "text": c.get("text"),
                    "filename": c.get("filename") or "Unknown",
                    "chunkIndex": c.get("chunk_index"),
                    "score": c.get("hybridScore") or c.get("distance") or c.get("score"),
                }
                for c in chunks
            ],
            "sources": data.get("sources"),
        }

    async def _tool_get_vault(self, vaultId: str) -> Dict[str, Any]:
        data = await self.client.get_vault(vaultId)
        keys = ("id", "name", "description", "totalObjects", "totalVectors", "totalBytes", "enableGraph", "region")
        return {k: data.get(k) for k in keys}

    async def _tool_get_vault_file_info(self, vaultId: str, objectId: str) -> Dict[str, Any]:
        objects = await self.client.list_objects(vaultId)
        obj = next((o for o in objects if o.get("id") == objectId), None)
        if obj is None:
            return {"error": f"File not found: {objectId}"}
        return {
            "filename": obj.get("filename"),
            "objectId": obj.get("id"),
            "status": obj.get("ingestionStatus"),
            "isSearchable": (obj.get("chunkCount") or 0) > 0,
            "indexingDetails": {
                "chunkCount": obj.get("chunkCount"),
                "vectorCount": obj.get("vectorCount"),
                "pageCount": obj.get("pageCount"),
                "textLength": obj.get("textLength"),
            },
            "uploadedAt": obj.get("createdAt"),
            "processedAt": obj.get("ingestionCompletedAt"),
            "contentType": obj.get("contentType"),
        }

    async def _tool_organize_vaults_by_content(self) -> Dict[str, Any]:
        categories: Dict[str, List[str]] = {name: [] for name, _ in FILE_CATEGORIES}
        categories["Other"] = []

        for vault_id in self.selected_vaults:
            try:
                objects = await self.client.list_objects(vault_id)
            except CaseDevError as e:
                logger.error(f"Failed to analyze vault {vault_id}: {e}")
                continue
            for obj in objects:
                filename = (obj.get("filename") or "").lower()
                category = next(
                    (name for name, keywords in FILE_CATEGORIES if any(k in filename for k in keywords)),
                    "Other",
                )
                categories[category].append(f"{obj.get('filename')} ({vault_id})")

        return {
            "vaultsAnalyzed": len(self.selected_vaults),
            "categories": categories,
            "totalFiles": sum(len(files) for files in categories.values()),
        }

    async def _tool_list_vaults(self) -> Dict[str, Any]:
        vaults = await self.client.list_vaults()
        return {
            "totalVaults": len(vaults),
            "vaults": [
                {
                    "id": v.get("id"),
                    "name": v.get("name"),
                    "description": v.get("description"),
                    "createdAt": v.get("createdAt") or v.get("created_at"),
                }
                for v in vaults
            ],
        }

    async def _tool_create_vault(self, name: str, description: Optional[str] = None,
                                 enableGraph: bool = False) -> Dict[str, Any]:
        data = await self.client.create_vault(name, description, enable_graph=enableGraph)
        logger.info(f"Chat created vault {data.get('id')} for {self.user_id}")
        return {
            "vaultId": data.get("id"),
            "name": data.get("name"),
            "description": data.get("description"),
            "enableGraph": data.get("enableGraph"),
            "region": data.get("region"),
            "createdAt": data.get("createdAt"),
        }

    async def _tool_trigger_ingestion(self, vaultId: str, objectId: str,
                                      enableGraphRAG: bool = False) -> Dict[str, Any]:
        data = await self.client.ingest(vaultId, objectId, enable_graphrag=enableGraphRAG)
        return {
            "objectId": objectId,
            "workflowId": data.get("workflowId"),
            "status": data.get("status"),
            "message": data.get("message"),
        }

    async def _tool_submit_ocr(self, vaultId: str, objectId: str, engine: str = "doctr") -> Dict[str, Any]:
        if engine not in OCR_ENGINES:
            engine = OCR_ENGINES[0]
        with get_db_session() as db:
            data = await submit_ocr_job(
                self.client,
                db,
                self.user_id,
                vault_id=vaultId,
                object_id=objectId,
                engine=engine,
                features={"embed": {}},
            )
        return {
            "jobId": data.get("id"),
            "status": "submitted",
            "message": "OCR job submitted successfully. Processing will take a few minutes.",
        }

    # =========================================================================
    # WEB ANSWERS & RESEARCH
    # =========================================================================

    async def _tool_web_answer(self, query: str, numResults: int = 10) -> Dict[str, Any]:
        data = await self.client.web_answer({"query": query, "numResults": numResults or 10})
        sources = data.get("sources")
        if sources is None and data.get("results") is not None:
            sources = [{"title": r.get("title"), "url": r.get("url")} for r in data["results"]]
        return {
            "query": query,
            "answer": data.get("answer") or data.get("content"),
            "sources": sources,
        }

    async def _tool_web_research(self, instructions: str, model: str = "exa-research") -> Dict[str, Any]:
        """Start a hosted research task and poll it until it settles or the poll budget runs out"""
        started = await self.client.start_research({
            "instructions": instructions,
            "model": model or "exa-research",
        })
        research_id = started.get("researchId")

        for _ in range(RESEARCH_MAX_POLLS):
            await asyncio.sleep(RESEARCH_POLL_INTERVAL)
            try:
                status = await self.client.get_research(research_id)
            except CaseDevError:
                continue

            state = status.get("status")
            if state == "completed":
                cost = status.get("costDollars") or {}
                return {
                    "researchId": research_id,
                    "status": "completed",
                    "report": (status.get("output") or {}).get("content"),
                    "sources": status.get("sources"),
                    "metadata": {
                        "pagesAnalyzed": cost.get("numPages"),
                        "searchesPerformed": cost.get("numSearches"),
                    },
                }
            if state in ("failed", "canceled"):
                raise RuntimeError(f"Research {state}")

        return {
            "researchId": research_id,
            "status": "timeout",
            "message": "Research is still running. Check back later with the researchId.",
        }

    # =========================================================================
    # WORKFLOWS
    # =========================================================================

    @staticmethod
    def _workflow_error(e: CaseDevError, action: str) -> RuntimeError:
        if e.status_code == 403:
            reason = e.detail or "API key does not have access to Workflows service"
            return RuntimeError(f"{reason}. {WORKFLOW_ACCESS_HINT}")
        return RuntimeError(f"Failed to {action}: {e.status_code} - {e.detail}")

    async def _tool_search_workflows(
        self,
        query: Optional[str] = None,
        category: Optional[str] = None,
        subCategory: Optional[str] = None,
        type: Optional[str] = None,
        limit: int = 20,
    ) -> Dict[str, Any]:
        limit = int(limit or 20)
        try:
            if query:
                payload: Dict[str, Any] = {"query": query, "limit": limit}
                if category:
                    payload["category"] = category
                data = await self.client.search_workflows(payload)
            else:
                params: Dict[str, Any] = {}
                if category:
                    params["category"] = category
                if subCategory:
                    params["sub_category"] = subCategory
                if type:
                    params["type"] = type
                params["published"] = "true"
                params["limit"] = limit
                data = await self.client.list_workflows(params)
        except CaseDevError as e:
            raise self._workflow_error(e, "search workflows")

        workflows = data.get("data") or []
        total = data.get("total")
        return {
            "query": query or "all",
            "totalWorkflows": total if total is not None else len(workflows),
            "workflows": [
                {
                    "id": w.get("id"),
                    "name": w.get("name"),
                    "description": w.get("description"),
                    "parentCategory": w.get("parent_category"),
                    "subCategory": w.get("sub_category"),
                    "type": w.get("type"),
                    "stage": w.get("stage"),
                    "version": w.get("version"),
                    "similarityScore": w.get("similarity_score"),
                }
                for w in workflows
            ],
        }

    async def _tool_get_workflow(self, workflowId: str) -> Dict[str, Any]:
        try:
            data = await self.client.get_workflow(workflowId)
        except CaseDevError as e:
            raise self._workflow_error(e, "get workflow")
        return {
            "id": data.get("id"),
            "name": data.get("name"),
            "description": data.get("description"),
            "parentCategory": data.get("parent_category"),
            "subCategory": data.get("sub_category"),
            "type": data.get("type"),
            "stage": data.get("stage"),
            "version": data.get("version"),
            "demoVideoLink": data.get("demo_video_link"),
            "groundTruthExample": data.get("link_to_ground_truth_example"),
            "generatedExample": data.get("link_to_generated_example"),
        }

    async def _tool_execute_workflow(
        self,
        workflowId: str,
        text: Optional[str] = None,
        documentUrl: Optional[str] = None,
        vaultObjectId: Optional[str] = None,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        maxTokens: Optional[int] = None,
        format: Optional[str] = None,
        variables: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        if len([v for v in (text, documentUrl, vaultObjectId) if v]) != 1:
            raise ValueError("Exactly one of text, documentUrl, or vaultObjectId must be provided")

        if text:
            workflow_input = {"text": text}
        elif documentUrl:
            workflow_input = {"document_url": documentUrl}
        else:
            workflow_input = {"vault_object_id": vaultObjectId}

        options: Dict[str, Any] = {}
        if model:
            options["model"] = model
        if temperature is not None:
            options["temperature"] = temperature
        if maxTokens is not None:
            options["max_tokens"] = maxTokens
        if format:
            options["format"] = format

        body: Dict[str, Any] = {"input": workflow_input, "options": options}
        if variables:
            body["variables"] = variables

        try:
            data = await self.client.execute_workflow(workflowId, body)
        except CaseDevError as e:
            raise self._workflow_error(e, "execute workflow")

        output = data.get("output") or {}
        usage = data.get("usage")
        return {
            "executionId": data.get("id"),
            "workflowId": data.get("workflow_id"),
            "workflowName": data.get("workflow_name"),
            "status": data.get("status"),
            "outputFormat": output.get("format"),
            "outputData": output.get("data"),
            "outputUrl": output.get("url"),
            "outputExpiresAt": output.get("expires_at"),
            "usage": {
                "promptTokens": usage.get("prompt_tokens"),
                "completionTokens": usage.get("completion_tokens"),
                "totalTokens": usage.get("total_tokens"),
                "cost": usage.get("cost"),
            } if usage else None,
            "createdAt": data.get("created_at"),
            "durationMs": data.get("duration_ms"),
        }

    # =========================================================================
    # LEGAL SOURCES
    # =========================================================================

    async def _tool_legal_find(
        self,
        type: str = "case",
        jurisdiction: Optional[Dict[str, Any]] = None,
        citation: Optional[str] = None,
        partyNames: Optional[List[str]] = None,
        code: Optional[Dict[str, Any]] = None,
        yearStart: Optional[int] = None,
        yearEnd: Optional[int] = None,
        keywords: Optional[str] = None,
        numResults: int = 10,
    ) -> Dict[str, Any]:
        query = build_legal_query(citation, partyNames, code, jurisdiction, yearStart, yearEnd, keywords)
        data = await self.client.web_search({
            "query": query or keywords or "",
            "numResults": numResults,
            "text": True,
            "highlights": True,
        })
        return {"query": query, "candidates": rank_candidates(data.get("results") or [], type, citation)}

    async def _tool_legal_verify(self, target: Dict[str, Any], candidate: Dict[str, Any]) -> Dict[str, Any]:
        async with httpx.AsyncClient(transport=self.page_transport, follow_redirects=True) as http:
            return await verify_source(http, self.llm, target, candidate)

    # =========================================================================
    # ARTIFACTS
    # =========================================================================

    async def _tool_create_artifact(self, title: str, kind: str = "text") -> Dict[str, Any]:
        if kind not in ARTIFACT_KINDS:
            kind = ArtifactKind.TEXT.value

        with get_db_session() as db:
            artifact = Artifact(
                user_id=self.user_id,
                chat_id=self.chat_id,
                case_id=self.case_id,
                title=title,
                kind=kind,
                content="",
            )
            db.add(artifact)
            db.flush()
            artifact_id = artifact.id

        logger.info(f"Created artifact {artifact_id} ({kind})")
        return {
            "id": artifact_id,
            "title": title,
            "kind": kind,
            "status": "created",
            "message": f'Artifact "{title}" created. Now write the full content using markdown formatting.',
        }

    async def _tool_update_artifact(
        self,
        artifactId: str,
        searchReplace: Optional[List[Dict[str, str]]] = None,
        fullContent: Optional[str] = None,
        title: Optional[str] = None,
    ) -> Dict[str, Any]:
        edits = searchReplace or []
        with get_db_session() as db:
            artifact = db.query(Artifact).filter(
                Artifact.id == artifactId,
                Artifact.user_id == self.user_id,
            ).first()
            if not artifact:
                return {"artifactId": artifactId, "status": "not_found", "error": "Artifact not found"}

            missing: List[str] = []
            if fullContent is not None:
                artifact.content = fullContent
            elif edits:
                artifact.content, missing = apply_search_replace(artifact.content or "", edits)
            if title:
                artifact.title = title
            artifact.version = (artifact.version or 1) + 1
            version = artifact.version

        result = {
            "artifactId": artifactId,
            "status": "updated",
            "version": version,
            "message": f"Applied {len(edits)} edit(s) to the artifact." if edits else "Artifact content updated.",
        }
        if missing:
            result["notFound"] = missing
        return result

    def write_artifact_content(self, artifact_id: str, content: str):
        """Store text the model wrote right after create_artifact"""
        with get_db_session() as db:
            artifact = db.query(Artifact).filter(Artifact.id == artifact_id).first()
            if artifact:
                artifact.content = content

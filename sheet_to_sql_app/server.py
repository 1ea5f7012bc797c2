"""HTTP API for the Sheet-to-SQL assistant."""

import io
import logging
from contextlib import asynccontextmanager
from functools import lru_cache
from pathlib import Path
from typing import Optional

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.concurrency import run_in_threadpool
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .assistant import Assistant
from .config import SheetSQLConfig
from .errors import (
    IngestFailure,
    NoBaseTable,
    RejectedStatement,
    SchemaConflict,
    SheetSQLError,
    UnknownTable,
    UpstreamError,
    UpstreamTimeout,
)


logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s,%(name)s,%(levelname)s,%(message)s'
)
logger = logging.getLogger(__name__)

STATUS_CODES = {
    IngestFailure: 400,
    UnknownTable: 404,
    NoBaseTable: 409,
    SchemaConflict: 409,
    RejectedStatement: 422,
    UpstreamError: 502,
    UpstreamTimeout: 504,
}


class QueryPayload(BaseModel):
    message: str
    table: Optional[str] = None


@lru_cache(maxsize=1)
def get_assistant() -> Assistant:
    return Assistant(SheetSQLConfig.from_env())


def _load_on_startup(assistant: Assistant) -> None:
    if not assistant.config.workbook_path:
        logger.info("No workbook configured; waiting for an upload or refresh")
        return
    try:
        assistant.refresh()
    except IngestFailure as exc:
        logger.error(f"Startup load failed: {exc.message}")


@asynccontextmanager
async def lifespan(app: FastAPI):
    assistant = app.dependency_overrides.get(get_assistant, get_assistant)()
    await run_in_threadpool(_load_on_startup, assistant)
    yield


app = FastAPI(title="Sheet-to-SQL Assistant", lifespan=lifespan)


@app.exception_handler(SheetSQLError)
async def sheet_sql_error_handler(request: Request, exc: SheetSQLError):
    status_code = STATUS_CODES.get(type(exc), 500)
    logger.warning(f"{request.url.path} failed ({exc.kind}): {exc.message}")
    return JSONResponse(status_code=status_code, content={"status": "error", "error": exc.to_dict()})


@app.get("/api/health")
def health(assistant: Assistant = Depends(get_assistant)):
    catalog = assistant.catalog
    base = catalog.base_table
    return {
        "status": "ok",
        "tables": len(catalog.tables),
        "base_table": base.table_name if base else None,
        "building": assistant.builder.is_building,
    }


@app.get("/api/catalog")
def get_catalog(assistant: Assistant = Depends(get_assistant)):
    return assistant.catalog.to_dict()


@app.get("/api/schema/{table}")
def get_schema(table: str, assistant: Assistant = Depends(get_assistant)):
    return assistant.catalog.get_table(table).to_dict()


@app.post("/api/refresh")
def refresh_catalog(assistant: Assistant = Depends(get_assistant)):
    catalog = assistant.refresh()
    return {"status": "ok", **catalog.to_dict()}


@app.post("/api/upload")
def upload_workbook(file: UploadFile = File(...), assistant: Assistant = Depends(get_assistant)):
    suffix = Path(file.filename or "").suffix.lower()
    if suffix not in {".xlsx", ".xls"}:
        raise HTTPException(status_code=400, detail="Only Excel files (.xlsx or .xls) are supported.")
    contents = file.file.read()
    if not contents:
        raise HTTPException(status_code=400, detail="Uploaded file is empty.")
    catalog = assistant.refresh(io.BytesIO(contents))
    return {"status": "ok", **catalog.to_dict()}


@app.post("/api/query")
def query(payload: QueryPayload, assistant: Assistant = Depends(get_assistant)):
    message = payload.message.strip()
    if not message:
        raise HTTPException(status_code=400, detail="Message cannot be empty")

    result = assistant.ask(message, table_name=payload.table)
    return JSONResponse(jsonable_encoder({"status": "ok", **result}))

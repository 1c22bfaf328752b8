"""
Runs API for Notewright.

This module exposes the import pipeline over HTTP for frontends:
- **GET /health**              - liveness probe for health checks.
- **POST /runs**               - start an import run in the background, returns its id.
- **GET /runs**                - list run ids.
- **GET /runs/{run_id}**       - status, progress steps and results of a run.
- **POST /runs/{run_id}/cancel** - flip the run's cancellation token.
"""

import logging
import uuid
from dataclasses import (
    dataclass,
    field,
)
from typing import (
    Dict,
    List,
    Optional,
)

from fastapi import (
    BackgroundTasks,
    Depends,
    FastAPI,
    HTTPException,
)

from notewright.agent.agent_loop import LoopConfig
from notewright.agent.context import RunContext
from notewright.agent.pipeline import run_import
from notewright.agent.preprocess import attachment_from_vault
from notewright.agent.provider_interface import (
    BaseProvider,
    load_provider,
)
from notewright.api.models import (
    RunDetail,
    RunRequest,
    RunResponse,
    RunStatus,
)
from notewright.common import (
    AnsiColors,
    colored_print,
)
from notewright.config import settings
from notewright.core.errors import (
    DocumentStoreError,
    NotewrightError,
    RunCancelledError,
)
from notewright.core.schema import (
    Attachment,
    ToolResultPart,
)
from notewright.store.vault import (
    DocumentStore,
    FileSystemVault,
)

logger = logging.getLogger(__name__)


@dataclass
class RunRecord:
    """Server-side state of one run."""

    run_id: str
    ctx: RunContext
    status: RunStatus = RunStatus.PENDING
    results: List[ToolResultPart] = field(default_factory=list)
    error: Optional[str] = None

    def detail(self) -> RunDetail:
        return RunDetail(
            run_id=self.run_id,
            status=self.status,
            steps=self.ctx.tracker.steps,
            messages=self.ctx.tracker.messages,
            results=self.results,
            error=self.error,
        )


# Run storage (in-memory for now, lost on restart)
runs: Dict[str, RunRecord] = {}

app = FastAPI(title="Notewright API", version="0.1.0", description="Notewright import API")


# ---------------------------------------------------------------------------
# Dependencies
# ---------------------------------------------------------------------------
def get_store() -> DocumentStore:
    """The vault runs operate on."""
    try:
        return FileSystemVault(settings.VAULT_DIR)
    except DocumentStoreError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


def get_provider() -> BaseProvider:
    """The model provider configured in settings."""
    try:
        return load_provider()
    except ValueError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc


# ---------------------------------------------------------------------------
# Helper functions
# ---------------------------------------------------------------------------
def get_run(run_id: str) -> RunRecord:
    record = runs.get(run_id)
    if record is None:
        raise HTTPException(status_code=404, detail=f"Run '{run_id}' not found")
    return record


async def execute_run(
    record: RunRecord, attachments: List[Attachment], instruction: str, config: LoopConfig
) -> None:
    """Background task: run the import and record how it ended."""
    if record.ctx.token.cancelled:
        record.status = RunStatus.CANCELLED
        return
    record.status = RunStatus.RUNNING
    try:
        record.results = await run_import(attachments, instruction, record.ctx, config)
    except RunCancelledError as exc:
        record.status = RunStatus.CANCELLED
        record.error = str(exc)
    except NotewrightError as exc:
        logger.error("Run %s failed: %s", record.run_id, exc)
        record.status = RunStatus.FAILED
        record.error = str(exc)
    except Exception as exc:  # pylint: disable=broad-except
        logger.exception("Run %s crashed", record.run_id)
        record.status = RunStatus.FAILED
        record.error = f"{type(exc).__name__}: {exc}"
    else:
        record.status = RunStatus.COMPLETED


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health", summary="Health check")
async def health() -> dict[str, str]:
    """Return a simple liveness payload."""
    return {"status": "ok"}


@app.post("/runs", response_model=RunResponse, status_code=202, summary="Start an import run")
async def create_run(
    req: RunRequest,
    background_tasks: BackgroundTasks,
    store: DocumentStore = Depends(get_store),
    provider: BaseProvider = Depends(get_provider),
) -> RunResponse:
    """Load the attachments from the vault and start the run in the background."""
    if not req.instruction.strip() and not req.attachments:
        raise HTTPException(status_code=400, detail="Provide an instruction or attachments")

    try:
        attachments = [await attachment_from_vault(store, path) for path in req.attachments]
    except DocumentStoreError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc

    config = LoopConfig.from_settings()
    if req.max_turns is not None:
        config.max_turns = req.max_turns

    run_id = str(uuid.uuid4())
    record = RunRecord(run_id=run_id, ctx=RunContext.from_settings(store, provider))
    runs[run_id] = record
    background_tasks.add_task(execute_run, record, attachments, req.instruction, config)
    logger.info("Run %s queued with %d attachment(s)", run_id, len(attachments))
    return RunResponse(run_id=run_id, status=record.status)


@app.get("/runs", response_model=List[str], summary="List runs")
async def list_runs() -> List[str]:
    """List all run IDs."""
    return list(runs.keys())


@app.get("/runs/{run_id}", response_model=RunDetail, summary="Run status")
async def run_detail(run_id: str) -> RunDetail:
    """Return the status, progress steps and results of a run."""
    return get_run(run_id).detail()


@app.post("/runs/{run_id}/cancel", response_model=RunResponse, summary="Cancel a run")
async def cancel_run(run_id: str) -> RunResponse:
    """Ask a pending or running run to stop at its next checkpoint."""
    record = get_run(run_id)
    if record.status not in (RunStatus.PENDING, RunStatus.RUNNING):
        raise HTTPException(status_code=409, detail=f"Run is already {record.status.value}")
    record.ctx.token.cancel("cancelled via API")
    return RunResponse(run_id=run_id, status=record.status)


# ---------------------------------------------------------------------------
# Public helper to launch the API (imported by main.py)
# ---------------------------------------------------------------------------
def run_api(
    host: str = "0.0.0.0", port: int = 8000, reload: bool = False, log_level: str | None = None
) -> None:
    """Start a uvicorn server hosting *app*.

    Parameters
    ----------
    host, port:
        Bind address for the HTTP server.
    reload:
        If *True*, enable auto-reload (useful in development).
    log_level:
        Logging level to use (default from settings if not provided).
    """

    # Lazy import - keeps uvicorn out of the import path of the library modules
    import uvicorn  # pylint: disable=import-outside-toplevel

    if log_level is None:
        log_level = settings.LOG_LEVEL

    logger.info(
        "Starting Notewright API at %s:%d (reload=%s, log_level=%s)", host, port, reload, log_level
    )
    colored_print(f"Notewright API is running at http://localhost:{port}.", AnsiColors.GREEN)
    colored_print(f"Visit http://localhost:{port}/docs for API documentation.", AnsiColors.BLUE)
    uvicorn.run(
        "notewright.api.app:app",
        host=host,
        port=port,
        reload=reload,
        log_level=log_level,
    )


# ---------------------------------------------------------------------------
# `python -m notewright.api.app` helper
# ---------------------------------------------------------------------------
if __name__ == "__main__":
    run_api(reload=True)

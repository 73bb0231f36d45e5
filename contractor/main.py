"""contractor service: FastAPI app receiving Gitea webhooks and reconcile requests."""

import collections
import hmac
import logging
import traceback

from fastapi import Depends, FastAPI, Header, HTTPException, Request

from contractor.clients.gitea import GiteaClient
from contractor.config import ContractorSettings
from contractor.errors import ConfigError, RepositoryParseError
from contractor.models.gitea import ReconcileRequest, ReconcileSummary
from contractor.reconciler import Reconciler
from contractor.webhook_handler import Bot, handle_webhook

settings = ContractorSettings()

# In-memory ring buffer for debug logs
_log_buffer: collections.deque = collections.deque(maxlen=settings.log_buffer_size)


class _BufferHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        _log_buffer.append(self.format(record))


def configure_logging(level: str = settings.log_level) -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO))
    root = logging.getLogger()
    if not any(isinstance(h, _BufferHandler) for h in root.handlers):
        bh = _BufferHandler()
        bh.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
        root.addHandler(bh)


configure_logging()

log = logging.getLogger(__name__)

app = FastAPI(title="contractor", description="Renovate webhook reconciler for Gitea")

_reconciler: Reconciler | None = None


def get_reconciler() -> Reconciler:
    global _reconciler
    if _reconciler is None:
        _reconciler = Reconciler(
            GiteaClient.from_env(),
            concurrency=settings.concurrency,
            only_enabled=settings.only_enabled,
        )
    return _reconciler


def get_bot(reconciler: Reconciler = Depends(get_reconciler)) -> Bot:
    return Bot(reconciler, command_name=settings.command_name)


def _verify_authorization(header: str | None) -> bool:
    """Check the Authorization header Gitea sends with our hook."""
    if not settings.webhook_secret:
        return True
    if not header:
        return False
    return hmac.compare_digest(header, settings.webhook_secret)


@app.get("/")
@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok", "service": "contractor"}


@app.get("/debug/logs")
async def debug_logs() -> dict[str, list]:
    return {"logs": list(_log_buffer)}


@app.post("/webhooks/gitea")
async def gitea_webhook(
    request: Request,
    authorization: str = Header(None),
    x_gitea_event: str = Header(None),
    bot: Bot = Depends(get_bot),
) -> dict[str, str]:
    if not _verify_authorization(authorization):
        raise HTTPException(status_code=401, detail="Invalid authorization header")

    event_data = await request.json()
    log.info("Received event: %s, action: %s", x_gitea_event, event_data.get("action"))

    try:
        summary = await handle_webhook(bot, x_gitea_event or "issue_comment", event_data)
    except RepositoryParseError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except Exception:
        log.error("Handler failed:\n%s", traceback.format_exc())
        raise

    if summary is None:
        return {"status": "ignored"}
    return {"status": "ok" if summary.ok else "failed"}


@app.post("/reconcile")
async def reconcile(
    body: ReconcileRequest,
    reconciler: Reconciler = Depends(get_reconciler),
) -> ReconcileSummary:
    try:
        return await reconciler.reconcile(
            user=body.user,
            orgs=body.orgs,
            filter=body.filter,
            force_refresh=body.force_refresh,
        )
    except ConfigError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

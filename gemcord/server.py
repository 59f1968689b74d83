"""FastAPI application: GitHub webhook receiver and workflow API."""

from __future__ import annotations

import json
import logging

from fastapi import Depends, FastAPI, Header, HTTPException, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from gemcord.config import Settings
from gemcord.db import Database
from gemcord.errors import AuthenticationError, ConfigurationError
from gemcord.event_queue import WebhookEventQueue
from gemcord.identity import FirebaseIdentityVerifier, IdentityClaims
from gemcord.models import WebhookEvent
from gemcord.signature import verify_signature
from gemcord.workflows import WorkflowCreate, create_workflow

LOGGER = logging.getLogger(__name__)

SIGNATURE_HEADER = "x-hub-signature-256"
EVENT_HEADER = "x-github-event"
DELIVERY_HEADER = "x-github-delivery"


def create_app(
    settings: Settings,
    db: Database,
    event_queue: WebhookEventQueue,
    identity_verifier: FirebaseIdentityVerifier,
) -> FastAPI:
    """Build the HTTP app; refuses to start without a webhook secret."""

    if not settings.github_webhook_secret:
        raise ConfigurationError("GITHUB_WEBHOOK_SECRET is not set. Cannot validate webhooks.")
    secret = settings.github_webhook_secret

    app = FastAPI(title="gemcord")

    @app.exception_handler(HTTPException)
    async def _http_error(request: Request, exc: HTTPException) -> JSONResponse:
        return JSONResponse({"error": exc.detail}, status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError) -> JSONResponse:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}" for error in exc.errors()
        )
        return JSONResponse({"error": f"Invalid request: {problems}"}, status_code=400)

    async def require_identity(authorization: str | None = Header(default=None)) -> IdentityClaims:
        if not authorization or not authorization.startswith("Bearer "):
            raise HTTPException(status_code=401, detail="Unauthorized: Missing token")
        token = authorization[len("Bearer "):].strip()
        if not token:
            raise HTTPException(status_code=401, detail="Unauthorized: Malformed token")
        try:
            return await identity_verifier.verify(token)
        except AuthenticationError as exc:
            raise HTTPException(status_code=401, detail=exc.message) from exc

    @app.get("/healthz")
    async def healthz() -> dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/webhooks/github")
    async def github_webhook(request: Request) -> JSONResponse:
        signature = request.headers.get(SIGNATURE_HEADER)
        if not signature:
            return JSONResponse({"error": "Missing signature"}, status_code=400)

        raw_body = await request.body()
        if not verify_signature(secret, raw_body, signature):
            LOGGER.warning("Rejected webhook with invalid signature (delivery %s)", request.headers.get(DELIVERY_HEADER))
            return JSONResponse({"error": "Invalid signature"}, status_code=401)

        try:
            payload = json.loads(raw_body)
        except (json.JSONDecodeError, UnicodeDecodeError):
            return JSONResponse({"error": "Invalid JSON payload"}, status_code=400)
        if not isinstance(payload, dict):
            return JSONResponse({"error": "Invalid JSON payload"}, status_code=400)

        event_queue.publish(
            WebhookEvent(
                signature=signature,
                raw_body=raw_body,
                payload=payload,
                event_name=request.headers.get(EVENT_HEADER, "push"),
                delivery_id=request.headers.get(DELIVERY_HEADER),
            )
        )
        return JSONResponse({"message": "Webhook received and is being processed."}, status_code=202)

    @app.get("/api/workflows")
    async def list_workflows(
        guild_id: str | None = Query(default=None, alias="guildId"),
        identity: IdentityClaims = Depends(require_identity),
    ) -> list[dict]:
        return [workflow.to_dict() for workflow in db.list_workflows(guild_id)]

    @app.post("/api/workflows", status_code=201)
    async def post_workflow(
        body: WorkflowCreate,
        identity: IdentityClaims = Depends(require_identity),
    ) -> dict[str, str]:
        workflow_id, message = create_workflow(db, body)
        LOGGER.info("User %s created workflow %s", identity.uid, workflow_id)
        return {"workflowId": workflow_id, "message": message}

    @app.patch("/api/workflows/{workflow_id}")
    async def patch_workflow(
        workflow_id: str,
        request: Request,
        identity: IdentityClaims = Depends(require_identity),
    ) -> JSONResponse:
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            body = None
        is_enabled = body.get("isEnabled") if isinstance(body, dict) else None
        if not isinstance(is_enabled, bool):
            return JSONResponse({"error": "Invalid `isEnabled` value"}, status_code=400)

        if not db.set_workflow_enabled(workflow_id, is_enabled):
            return JSONResponse({"error": "Workflow not found"}, status_code=404)
        LOGGER.info("User %s set workflow %s enabled=%s", identity.uid, workflow_id, is_enabled)
        return JSONResponse({"message": "Workflow status updated successfully"})

    @app.delete("/api/workflows/{workflow_id}")
    async def delete_workflow(
        workflow_id: str,
        identity: IdentityClaims = Depends(require_identity),
    ) -> JSONResponse:
        if not db.delete_workflow(workflow_id):
            return JSONResponse({"error": "Workflow not found"}, status_code=404)
        LOGGER.info("User %s deleted workflow %s", identity.uid, workflow_id)
        return JSONResponse({"message": "Workflow deleted successfully"})

    return app

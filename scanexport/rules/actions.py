"""Executors for rule actions, one per action variant."""
from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Union

import requests

from scanexport.core.errors import ConfigurationError, SinkFailureError, SinkUnavailableError
from scanexport.core.models import ExportFormat, ExportItem, ExportOptions
from scanexport.export.mailer import EmailSink
from scanexport.export.orchestrator import ExportOrchestrator
from scanexport.export.sinks import CloudSink
from scanexport.rules.models import (
    Action,
    ExportCsvAction,
    ExportPdfAction,
    SendEmailAction,
    UploadCloudAction,
    WebhookAction,
)

logger = logging.getLogger(__name__)

WEBHOOK_EVENT = "automated_export"
Data = Sequence[Union[ExportItem, Mapping[str, Any]]]


def _json_default(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    return str(value)


def _plain(item: ExportItem | Mapping[str, Any]) -> Dict[str, Any]:
    return item.to_dict() if isinstance(item, ExportItem) else dict(item)


def build_webhook_payload(data: Data, now: datetime) -> str:
    payload = {
        "data": [_plain(item) for item in data],
        "timestamp": now.isoformat(),
        "event": WEBHOOK_EVENT,
    }
    return json.dumps(payload, default=_json_default)


class ActionExecutor:
    """Run actions against injected capabilities.

    Every executor raises on failure; the rule engine records the outcome per
    action.
    """

    def __init__(
        self,
        exporter: Optional[ExportOrchestrator] = None,
        email: Optional[EmailSink] = None,
        cloud: Optional[CloudSink] = None,
        session: Optional[requests.Session] = None,
        clock: Callable[[], datetime] = datetime.now,
        webhook_timeout: float = 30,
    ) -> None:
        self.exporter = exporter
        self.email = email
        self.cloud = cloud
        self.session = session or requests.Session()
        self.clock = clock
        self.webhook_timeout = webhook_timeout
        self._handlers: Dict[type, Callable[[Any, Data], Awaitable[Any]]] = {
            ExportCsvAction: self.export_csv,
            ExportPdfAction: self.export_pdf,
            SendEmailAction: self.send_email,
            UploadCloudAction: self.upload_cloud,
            WebhookAction: self.trigger_webhook,
        }

    async def execute(self, action: Action, data: Data) -> Any:
        handler = self._handlers.get(type(action))
        if handler is None:
            raise ConfigurationError(f"Unknown action type: {type(action).__name__}")
        return await handler(action, data)

    def _require_exporter(self) -> ExportOrchestrator:
        if self.exporter is None:
            raise SinkUnavailableError("No exporter configured for automated exports")
        return self.exporter

    async def export_csv(self, action: ExportCsvAction, data: Data) -> Dict[str, Any]:
        logger.info("Automated CSV export of %d items", len(data))
        result = await self._require_exporter().export(data, ExportFormat.CSV, action.options)
        return result.to_dict()

    async def export_pdf(self, action: ExportPdfAction, data: Data) -> Dict[str, Any]:
        logger.info("Automated PDF export of %d items", len(data))
        result = await self._require_exporter().export(data, ExportFormat.PDF, action.options)
        return result.to_dict()

    async def send_email(self, action: SendEmailAction, data: Data) -> Dict[str, Any]:
        if not action.recipients:
            raise ConfigurationError("No email recipients configured")
        if self.email is None:
            raise SinkUnavailableError("Email sending is not configured")

        artifact = None
        if self.exporter is not None and data:
            artifact = (await self.exporter.export(data, action.format, ExportOptions())).artifact

        message_ids: List[str] = []
        for recipient in action.recipients:
            receipt = await self.email.send(artifact, recipient, action.format, len(data), action.subject)
            if not receipt.success:
                raise SinkFailureError(f"Sending email to {recipient} failed")
            message_ids.append(receipt.message_id)
        return {
            "action": "email",
            "recipients": list(action.recipients),
            "item_count": len(data),
            "message_ids": message_ids,
        }

    async def upload_cloud(self, action: UploadCloudAction, data: Data) -> Dict[str, Any]:
        if self.cloud is None:
            raise SinkUnavailableError("Cloud upload is not configured")
        result = await self._require_exporter().export(data, action.format, action.options)
        if result.artifact is None:
            raise SinkFailureError("Export produced no artifact to upload")
        receipt = await self.cloud.upload(result.artifact, action.folder)
        return {
            "service": action.service,
            "folder": action.folder,
            "item_count": len(data),
            "upload": receipt,
        }

    async def trigger_webhook(self, action: WebhookAction, data: Data) -> Any:
        """POST the data to the configured URL.

        A missing URL fails before any request is made; a non-2xx response
        fails with its status and body.
        """

        if not action.url:
            raise ConfigurationError("Webhook URL not configured.")

        body = build_webhook_payload(data, self.clock())
        headers = {"Content-Type": "application/json", **action.headers}
        logger.info("Triggering webhook %s with %d items", action.url, len(data))
        try:
            response = await asyncio.to_thread(
                self.session.post,
                action.url,
                data=body,
                headers=headers,
                timeout=action.timeout or self.webhook_timeout,
            )
        except requests.RequestException as exc:
            raise SinkFailureError(f"Webhook execution failed: {exc}") from exc

        if not response.ok:
            detail = response.text or response.reason
            raise SinkFailureError(f"Webhook failed with status {response.status_code}: {detail}")
        try:
            return response.json()
        except ValueError:
            return {"status": "success", "message": "No JSON response body."}

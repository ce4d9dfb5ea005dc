"""Best-effort webhook delivery of completed results."""

import logging
from datetime import UTC, datetime
from typing import Any, Dict

import requests

from src.workflow.errors import WebhookDeliveryError

logger = logging.getLogger(__name__)

COMPLETED_EVENT = "video_processing_completed"


class WebhookNotifier:
    """POSTs a completion event to a caller-supplied URL.

    Delivery is a single attempt with a bounded timeout. notify() never
    raises, so a failing endpoint cannot change a job's outcome.
    """

    def __init__(self, timeout: float = 10.0, user_agent: str = "media-analysis-service/1.0"):
        self.timeout = timeout
        self.user_agent = user_agent

    def build_payload(self, job_id: str, result: Dict[str, Any]) -> Dict[str, Any]:
        return {
            "event": COMPLETED_EVENT,
            "jobId": job_id,
            "timestamp": datetime.now(UTC).isoformat(),
            "data": result,
        }

    def deliver(self, url: str, job_id: str, result: Dict[str, Any]) -> None:
        """Send the event once.

        Raises:
            WebhookDeliveryError: On connection errors, timeouts or non-2xx responses.
        """
        try:
            response = requests.post(
                url,
                json=self.build_payload(job_id, result),
                headers={"User-Agent": self.user_agent},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise WebhookDeliveryError(f"Webhook delivery to {url} failed: {e}") from e

    def notify(self, url: str, job_id: str, result: Dict[str, Any]) -> bool:
        """Deliver the event, logging instead of raising on failure.

        Returns:
            True if the endpoint accepted the event.
        """
        try:
            self.deliver(url, job_id, result)
        except WebhookDeliveryError as e:
            logger.error(f"Webhook failed for job {job_id}: {e}")
            return False

        logger.info(f"Webhook delivered for job {job_id} to {url}")
        return True

import logging

from paygate.observability.metrics import MetricsCollector

logger = logging.getLogger(__name__)


class AlertManager:
    """Fires once when a category's failure rate crosses the threshold.

    Re-arms when the rate drops back below it.
    """

    def __init__(
        self,
        metrics: MetricsCollector,
        category: str = "webhook",
        threshold: float = 0.10,
        min_samples: int = 1,
        callback=None,
    ):
        self.metrics = metrics
        self.category = category
        self.threshold = threshold
        self.min_samples = min_samples
        self.callback = callback
        self._fired = False
        self._alerts: list[dict] = []

    def check(self) -> dict | None:
        """Check if failure rate exceeds threshold. Returns alert dict or None."""
        rate = self.metrics.failure_rate(self.category)
        total = self.metrics.total_in_window(self.category)
        failures = self.metrics.failure_count_in_window(self.category)

        if total == 0 or total < self.min_samples:
            return None

        if rate > self.threshold:
            if self._fired:
                return None

            alert = {
                "type": f"{self.category}_failure_rate",
                "category": self.category,
                "failure_rate": rate,
                "threshold": self.threshold,
                "total": total,
                "failed": failures,
                "message": (
                    f"{self.category} failure rate {rate:.1%} exceeds "
                    f"threshold {self.threshold:.1%} "
                    f"({failures}/{total} failed)"
                ),
            }
            self._fired = True
            self._alerts.append(alert)
            logger.warning(alert["message"])

            if self.callback:
                self.callback(alert)

            return alert

        self._fired = False
        return None

    def get_alerts(self) -> list[dict]:
        return list(self._alerts)

    def reset(self) -> None:
        self._fired = False
        self._alerts.clear()

import httpx
import structlog

from usagewatch.models import QuotaSnapshot
from usagewatch.quota.base import clamp_fraction, from_epoch

logger = structlog.get_logger()

CODEX_USAGE_URL = "https://chatgpt.com/backend-api/wham/usage"

# each tuple is (response_key, window_key, label)
CODEX_WINDOWS: "list[tuple[str, str, str]]" = [
    ("rate_limit", "primary_window", "5h limit"),
    ("rate_limit", "secondary_window", "Weekly"),
    ("code_review_rate_limit", "primary_window", "Code review"),
]


class CodexQuotaSource:
    """
    CodexQuotaSource implements the QuotaSource protocol for the
    ChatGPT rate-limit API. The API reports used_percent on a
    0-100 scale and reset_at as unix seconds.
    """

    def __init__(self, token: "str" = "", timeout: "float" = 10.0) -> "None":
        self._token = token
        self._client: "httpx.AsyncClient" = httpx.AsyncClient(
            timeout=timeout,
            headers={
                "Authorization": f"Bearer {token}",
                "Content-Type": "application/json",
            },
        )

    @property
    def name(self) -> "str":
        return "codex"

    @property
    def label(self) -> "str":
        return "Codex"

    async def close(self) -> "None":
        """
        closes the underlying HTTP client.
        """
        await self._client.aclose()

    def _error(self, message: "str") -> "list[QuotaSnapshot]":
        return [QuotaSnapshot(source=self.name, label=self.label, error=message)]

    async def fetch(self) -> "list[QuotaSnapshot]":
        if not self._token:
            return self._error("No codex token configured")

        try:
            resp = await self._client.get(CODEX_USAGE_URL)
        except httpx.HTTPError as e:
            logger.warning("codex_request_failed", error=str(e))
            return self._error(f"Request failed: {e.__class__.__name__}")

        if resp.status_code != 200:
            logger.warning("codex_api_error", status=resp.status_code)
            return self._error(f"API error: {resp.status_code}")

        try:
            data = resp.json()
        except ValueError:
            return self._error("Invalid response body")

        snapshots = self._parse(data) if isinstance(data, dict) else []
        if not snapshots:
            return self._error("No rate limit data")

        logger.debug("codex_quota_fetched", windows=len(snapshots))
        return snapshots

    def _parse(self, data: "dict") -> "list[QuotaSnapshot]":
        snapshots: "list[QuotaSnapshot]" = []

        for section, window_key, label in CODEX_WINDOWS:
            limits = data.get(section)
            window = limits.get(window_key) if isinstance(limits, dict) else None
            if not isinstance(window, dict):
                continue

            used_percent = window.get("used_percent")
            if not isinstance(used_percent, (int, float)):
                continue

            snapshots.append(
                QuotaSnapshot(
                    source=self.name,
                    label=label,
                    used=clamp_fraction(used_percent / 100),
                    reset_at=from_epoch(window.get("reset_at")),
                )
            )

        return snapshots

"""Open Policy Agent client."""

from typing import Any

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from idplane.core.exceptions import PolicyEngineError
from idplane.core.interfaces import PolicyDecision

logger = structlog.get_logger()


class _OpaResult(BaseModel):
    allow: bool
    reason: str = ""


class _OpaResponse(BaseModel):
    # OPA omits "result" entirely when the policy path is undefined
    result: _OpaResult


class OpaPolicyEngine:
    """Evaluates decisions with OPA's data API.

    Sends ``POST {base_url}/v1/data/{policy_path}`` with ``{"input": ...}``
    and expects ``{"result": {"allow": bool, "reason": str}}``.
    """

    def __init__(
        self,
        base_url: str,
        policy_path: str,
        timeout_seconds: float = 2.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the OPA client.

        Args:
            base_url: OPA server URL.
            policy_path: Slash-separated package path of the decision rule.
            timeout_seconds: Per-request timeout.
            client: Shared HTTP client; one is created if omitted.
        """
        self._url = f"{base_url.rstrip('/')}/v1/data/{policy_path.strip('/')}"
        self._timeout = timeout_seconds
        self._client = client or httpx.AsyncClient()
        self._owns_client = client is None

    async def evaluate(self, input: dict[str, Any]) -> PolicyDecision:  # noqa: A002
        """Ask OPA for a decision.

        Raises:
            PolicyEngineError: On transport errors, non-2xx responses or a
                body that does not carry a decision.
        """
        try:
            response = await self._client.post(
                self._url,
                json={"input": input},
                timeout=self._timeout,
            )
        except httpx.HTTPError as e:
            logger.warning("opa_request_failed", url=self._url, error=str(e))
            raise PolicyEngineError(f"OPA request failed: {e}") from e

        if not response.is_success:
            logger.warning("opa_error_status", url=self._url, status_code=response.status_code)
            raise PolicyEngineError(f"OPA returned status {response.status_code}")

        try:
            parsed = _OpaResponse.model_validate_json(response.content)
        except ValidationError as e:
            logger.warning("opa_malformed_response", url=self._url)
            raise PolicyEngineError("OPA response carries no decision") from e

        logger.debug("opa_decision", allow=parsed.result.allow, reason=parsed.result.reason)
        return PolicyDecision(allow=parsed.result.allow, reason=parsed.result.reason)

    async def close(self) -> None:
        """Close the HTTP client if this engine created it."""
        if self._owns_client:
            await self._client.aclose()

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Protocol

import httpx

from talkwell.core.config import settings

logger = logging.getLogger("voice_engine")


class VoiceEngineError(RuntimeError):
    pass


@dataclass(frozen=True)
class CallConfig:
    patient_id: str
    context: str


class VoiceEngine(Protocol):
    async def start(self, config: CallConfig) -> str:
        """Ask the engine to place a call; returns the engine's call id."""

    async def stop(self, call_id: Optional[str]) -> None:
        ...


class VapiEngine:
    """
    Vapi REST adapter.

    The assistant itself lives in the Vapi dashboard; the patient context is
    passed as the ``patientContext`` variable value. Call events come back
    through the webhook or the browser SDK, never from this class.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        assistant_id: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.VAPI_API_KEY
        self.assistant_id = assistant_id if assistant_id is not None else settings.VAPI_ASSISTANT_ID
        self.base_url = (base_url or settings.VAPI_BASE_URL).rstrip("/")
        self.timeout = timeout or settings.AI_TIMEOUT_SECONDS
        self._transport = transport
        self._control_urls: Dict[str, Optional[str]] = {}

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )

    async def start(self, config: CallConfig) -> str:
        if not self.api_key or not self.assistant_id:
            raise VoiceEngineError("Vapi is not configured; set VAPI_API_KEY and VAPI_ASSISTANT_ID")

        payload = {
            "assistantId": self.assistant_id,
            "assistantOverrides": {"variableValues": {"patientContext": config.context}},
            "metadata": {"patientId": config.patient_id},
        }
        async with self._client() as client:
            resp = await client.post(f"{self.base_url}/call", json=payload)
            resp.raise_for_status()
            data = resp.json()

        call_id = data.get("id")
        if not call_id:
            raise VoiceEngineError("Vapi did not return a call id")
        self._control_urls[call_id] = (data.get("monitor") or {}).get("controlUrl")
        logger.info("Vapi call created: %s (patient=%s)", call_id, config.patient_id)
        return call_id

    async def stop(self, call_id: Optional[str]) -> None:
        if not call_id:
            return
        control_url = self._control_urls.pop(call_id, None)
        async with self._client() as client:
            if control_url:
                resp = await client.post(control_url, json={"type": "end-call"})
            else:
                resp = await client.delete(f"{self.base_url}/call/{call_id}")
            resp.raise_for_status()
        logger.info("Vapi call stop requested: %s", call_id)

"""HTTP client for the inbound scan service."""
from typing import Any, Dict, Iterable, List, Optional

import httpx

from inbound.errors import error_from_payload


class InboundApi:
    """Thin wrapper over the inbound endpoints.

    Non-2xx responses are raised as the matching ``InboundError`` subclass,
    so callers handle the same exceptions the service raised.
    """

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        base_url: str = "http://localhost:8000",
        prefix: str = "/api",
        timeout: float = 10.0,
    ):
        self.client = client or httpx.Client(
            base_url=base_url,
            timeout=timeout,
            headers={"Content-Type": "application/json"},
        )
        self.prefix = prefix.rstrip("/")

    def close(self) -> None:
        self.client.close()

    def __enter__(self) -> "InboundApi":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _request(self, method: str, path: str, **kwargs) -> Any:
        response = self.client.request(method, f"{self.prefix}{path}", **kwargs)
        if response.is_success:
            return response.json()
        try:
            payload = response.json()
        except ValueError:
            payload = {"detail": response.text}
        if not isinstance(payload, dict):
            payload = {"detail": str(payload)}
        raise error_from_payload(response.status_code, payload)

    def claim_session(
        self, outer_box_id: str, inner_box_id: str, expected_qty: Optional[int], packed_by: str
    ) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/inbounds/sessions/claim",
            json={
                "outerBoxId": outer_box_id,
                "innerBoxId": inner_box_id,
                "expectedQty": expected_qty,
                "packedBy": packed_by,
            },
        )

    def get_session(self, session_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/inbounds/sessions/{session_id}")

    def heartbeat(self, session_id: int, packed_by: str) -> Dict[str, Any]:
        return self._request(
            "POST", f"/inbounds/sessions/{session_id}/heartbeat", json={"packedBy": packed_by}
        )

    def validate_sku(self, session_id: int, sku: str, packed_by: str) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/inbounds/sessions/{session_id}/validate-sku",
            json={"sku": sku, "packedBy": packed_by},
        )

    def create_item(
        self, session_id: int, sku: str, serial_number: str, packed_by: str
    ) -> Dict[str, Any]:
        return self._request(
            "POST",
            "/inbounds/items",
            json={
                "sessionId": session_id,
                "sku": sku,
                "serialNumber": serial_number,
                "packedBy": packed_by,
            },
        )

    def delete_batch_items(
        self, session_id: int, packed_by: str, serial_numbers: Iterable[str]
    ) -> Dict[str, Any]:
        return self._request(
            "POST",
            f"/inbounds/sessions/{session_id}/items/delete-batch",
            json={"packedBy": packed_by, "serialNumbers": list(serial_numbers)},
        )

    def complete_session(self, session_id: int, packed_by: str) -> Dict[str, Any]:
        return self._request(
            "POST", f"/inbounds/sessions/{session_id}/complete", json={"packedBy": packed_by}
        )

    def abandon_session(self, session_id: int, packed_by: str) -> Dict[str, Any]:
        return self._request(
            "POST", f"/inbounds/sessions/{session_id}/abandon", json={"packedBy": packed_by}
        )

    def reset_session(self, session_id: int, packed_by: str) -> Dict[str, Any]:
        return self._request(
            "POST", f"/inbounds/sessions/{session_id}/reset", json={"packedBy": packed_by}
        )

    def list_items(
        self,
        outer_box_id: Optional[str] = None,
        inner_box_id: Optional[str] = None,
        sku: Optional[str] = None,
        serial_number: Optional[str] = None,
        limit: int = 50,
    ) -> List[Dict[str, Any]]:
        filters = {
            "outerBoxId": outer_box_id,
            "innerBoxId": inner_box_id,
            "sku": sku,
            "serialNumber": serial_number,
            "limit": limit,
        }
        params = {k: v for k, v in filters.items() if v is not None}
        return self._request("GET", "/inbounds/", params=params)


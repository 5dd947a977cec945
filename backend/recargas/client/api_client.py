# Overview: Thin httpx client for the Recargas JSON API.

from __future__ import annotations

from typing import Any, Optional

import httpx


class ApiError(Exception):
    """Non-2xx API response."""

    def __init__(self, status_code: int, message: str, details: Optional[dict] = None):
        super().__init__(f"HTTP {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.details = details or {}


class ApiClient:
    """
    Authenticated JSON client.

    Pass `transport` to talk to an in-process app
    (httpx.WSGITransport(app=flask_app)) or a mock.
    """

    def __init__(
        self,
        base_url: str = "http://127.0.0.1:5000",
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.token = token
        self._client = httpx.Client(base_url=base_url, timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "ApiClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def request(self, method: str, path: str, json: Any = None, params: Optional[dict] = None) -> dict:
        response = self._client.request(method, path, json=json, params=params, headers=self._headers())
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not response.is_success:
            raise ApiError(response.status_code, body.get("error") or response.reason_phrase, body.get("details"))
        return body

    # Auth

    def register(self, name: str, email: str, password: str, phone: Optional[str] = None) -> dict:
        body = self.request("POST", "/api/auth/register", json={
            "name": name, "email": email, "password": password, "phone": phone,
        })
        self.token = body["token"]
        return body["seller"]

    def login(self, email: str, password: str) -> dict:
        body = self.request("POST", "/api/auth/login", json={"email": email, "password": password})
        self.token = body["token"]
        return body["seller"]

    def logout(self) -> None:
        self.request("POST", "/api/auth/logout")
        self.token = None

    def update_integrations(self, **fields) -> dict:
        return self.request("PUT", "/api/auth/integrations", json=fields)["seller"]

    # Customers

    def list_customers(self) -> list[dict]:
        return self.request("GET", "/api/customers")["items"]

    def create_customer(self, data: dict) -> dict:
        return self.request("POST", "/api/customers", json=data)["customer"]

    def update_customer(self, customer_id: int, data: dict) -> dict:
        return self.request("PUT", f"/api/customers/{customer_id}", json=data)["customer"]

    def delete_customer(self, customer_id: int) -> None:
        self.request("DELETE", f"/api/customers/{customer_id}")

    # Apps and codes

    def list_apps(self) -> list[dict]:
        return self.request("GET", "/api/apps")["items"]

    def create_app(self, data: dict) -> dict:
        return self.request("POST", "/api/apps", json=data)["app"]

    def update_app(self, app_id: int, data: dict) -> dict:
        return self.request("PUT", f"/api/apps/{app_id}", json=data)["app"]

    def delete_app(self, app_id: int) -> None:
        self.request("DELETE", f"/api/apps/{app_id}")

    def list_codes(self, used: Optional[bool] = None) -> list[dict]:
        params = {"used": "true" if used else "false"} if used is not None else None
        return self.request("GET", "/api/codes", params=params)["items"]

    def add_codes(self, app_id: int, codes: list[str]) -> dict:
        return self.request("POST", f"/api/apps/{app_id}/codes", json={"codes": codes})

    # Sales

    def list_sales(self, status: Optional[str] = None) -> list[dict]:
        params = {"status": status} if status else None
        return self.request("GET", "/api/sales", params=params)["items"]

    def create_sale(self, customer_id: int, items: list[dict], payment_id: Optional[str] = None) -> dict:
        payload = {"customer_id": customer_id, "items": items}
        if payment_id:
            payload["payment_id"] = payment_id
        return self.request("POST", "/api/sales", json=payload)["sale"]

    def confirm_sale(self, sale_id: int) -> dict:
        return self.request("POST", f"/api/sales/{sale_id}/confirm")

    def update_sale(self, sale_id: int, data: dict) -> dict:
        return self.request("PUT", f"/api/sales/{sale_id}", json=data)["sale"]

    def cancel_sale(self, sale_id: int) -> dict:
        return self.request("POST", f"/api/sales/{sale_id}/cancel")["sale"]

    def delete_sale(self, sale_id: int) -> None:
        self.request("DELETE", f"/api/sales/{sale_id}")

    def resend_codes(self, sale_id: int) -> bool:
        return self.request("POST", f"/api/sales/{sale_id}/resend-codes")["delivered"]

    def create_pix(self, sale_id: int) -> dict:
        return self.request("POST", f"/api/sales/{sale_id}/pix")

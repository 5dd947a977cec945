# Overview: Client-side mirror of a seller's customers, apps, codes and sales.

"""
Application State Cache

An explicit object owned by the UI layer. It is filled once by initialize()
and afterwards patched only with the records each API call returns; it
never derives server-side values on its own. In particular codes_available
is always taken from the app records the API sends back (confirm returns the
refreshed apps, add-codes returns the refreshed app).
"""

from __future__ import annotations

from typing import Callable, Optional

from .api_client import ApiClient


def _replace_by_id(records: list[dict], record: dict) -> list[dict]:
    replaced = False
    out = []
    for existing in records:
        if existing["id"] == record["id"]:
            out.append(record)
            replaced = True
        else:
            out.append(existing)
    if not replaced:
        out.append(record)
    return out


def _without_id(records: list[dict], record_id: int) -> list[dict]:
    return [r for r in records if r["id"] != record_id]


class StateCache:
    def __init__(self, api: ApiClient):
        self.api = api
        self.initialized = False
        self.customers: list[dict] = []
        self.apps: list[dict] = []
        self.codes: list[dict] = []
        self.sales: list[dict] = []

    def initialize(self) -> None:
        """One-time bulk load of the four collections."""
        self.customers = self.api.list_customers()
        self.apps = self.api.list_apps()
        self.codes = self.api.list_codes()
        self.sales = self.api.list_sales()
        self.initialized = True

    def app_by_id(self, app_id: int) -> Optional[dict]:
        return next((a for a in self.apps if a["id"] == app_id), None)

    def customer_by_id(self, customer_id: int) -> Optional[dict]:
        return next((c for c in self.customers if c["id"] == customer_id), None)

    def sale_by_id(self, sale_id: int) -> Optional[dict]:
        return next((s for s in self.sales if s["id"] == sale_id), None)

    # Customers

    def add_customer(self, data: dict) -> dict:
        customer = self.api.create_customer(data)
        self.customers = self.customers + [customer]
        return customer

    def update_customer(self, customer_id: int, data: dict) -> dict:
        customer = self.api.update_customer(customer_id, data)
        self.customers = _replace_by_id(self.customers, customer)
        return customer

    def delete_customer(self, customer_id: int) -> None:
        self.api.delete_customer(customer_id)
        self.customers = _without_id(self.customers, customer_id)

    # Apps and codes

    def add_app(self, data: dict) -> dict:
        app = self.api.create_app(data)
        self.apps = self.apps + [app]
        return app

    def update_app(self, app_id: int, data: dict) -> dict:
        app = self.api.update_app(app_id, data)
        self.apps = _replace_by_id(self.apps, app)
        return app

    def delete_app(self, app_id: int) -> None:
        self.api.delete_app(app_id)
        self.apps = _without_id(self.apps, app_id)
        self.codes = [c for c in self.codes if c["app_id"] != app_id]

    def add_codes(
        self,
        app_id: int,
        codes: list[str],
        on_progress: Optional[Callable[[int], None]] = None,
    ) -> dict:
        """
        Ingest codes. Returns {valid_codes, duplicates, system_duplicates}.

        on_progress receives the server-side chunk percentages.
        """
        body = self.api.add_codes(app_id, codes)
        if on_progress:
            for pct in body.get("progress", []):
                on_progress(pct)

        self.codes = self.codes + body.get("codes", [])
        self.apps = _replace_by_id(self.apps, body["app"])
        return {
            "valid_codes": body["valid_codes"],
            "duplicates": body["duplicates"],
            "system_duplicates": body["system_duplicates"],
        }

    # Sales

    def add_sale(self, customer_id: int, items: list[dict], payment_id: Optional[str] = None) -> dict:
        """items: [{app_id, quantity, price_cents}, ...]"""
        sale = self.api.create_sale(customer_id, items, payment_id=payment_id)
        self.sales = [sale] + self.sales
        return sale

    def confirm_sale(self, sale_id: int) -> dict:
        body = self.api.confirm_sale(sale_id)
        sale = body["sale"]
        self.sales = _replace_by_id(self.sales, sale)
        for app in body.get("apps", []):
            self.apps = _replace_by_id(self.apps, app)

        allocated = {code for item in sale["items"] for code in item["codes"]}
        self.codes = [
            dict(c, used=True) if c["code"] in allocated else c
            for c in self.codes
        ]
        return sale

    def update_sale(self, sale_id: int, data: dict) -> dict:
        sale = self.api.update_sale(sale_id, data)
        self.sales = _replace_by_id(self.sales, sale)
        return sale

    def cancel_sale(self, sale_id: int) -> dict:
        sale = self.api.cancel_sale(sale_id)
        self.sales = _replace_by_id(self.sales, sale)
        return sale

    def delete_sale(self, sale_id: int) -> None:
        self.api.delete_sale(sale_id)
        self.sales = _without_id(self.sales, sale_id)

    def resend_codes(self, sale_id: int) -> bool:
        return self.api.resend_codes(sale_id)

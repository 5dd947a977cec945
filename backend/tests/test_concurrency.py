"""
Concurrent confirmation tests.

Several sales compete for the same app's codes. Each worker thread runs in
its own app context against a file-backed SQLite database, so confirmations
really interleave through separate connections.
"""

import threading

import pytest

from recargas import create_app
from recargas.extensions import db
from recargas.models import App, Code, Customer, Sale, SaleCode, Seller
from recargas.services import code_inventory_service, sales_service
from recargas.services.errors import InsufficientInventoryError


@pytest.fixture(scope='function')
def file_app(tmp_path):
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': f"sqlite:///{tmp_path / 'concurrency.db'}",
        'NOTIFICATIONS_ASYNC': False,
    })
    with app.app_context():
        db.create_all()

    yield app

    with app.app_context():
        db.session.remove()
        db.drop_all()
        db.engine.dispose()


def _seed(app, codes, quantities):
    """Seller with one app stocked with `codes` and one pending sale per quantity."""
    with app.app_context():
        seller = Seller(name="Loja Concorrente", email="concorrente@example.com", password_hash="x")
        db.session.add(seller)
        db.session.commit()

        customer = Customer(seller_id=seller.id, name="Cliente")
        app_row = App(seller_id=seller.id, name="Netflix", price_cents=1000, codes_available=0)
        db.session.add_all([customer, app_row])
        db.session.commit()

        code_inventory_service.add_codes(seller.id, app_row.id, list(codes))

        sale_ids = [
            sales_service.create_sale(
                seller.id,
                customer.id,
                [{"app_id": app_row.id, "quantity": quantity, "price_cents": 1000}],
            ).id
            for quantity in quantities
        ]
        return seller.id, app_row.id, sale_ids


def _confirm_concurrently(app, seller_id, sale_ids):
    results = {}
    lock = threading.Lock()
    barrier = threading.Barrier(len(sale_ids))

    def worker(sale_id):
        with app.app_context():
            try:
                barrier.wait()
                sales_service.confirm_sale(seller_id, sale_id)
                outcome = "confirmed"
            except Exception as exc:
                outcome = exc
            finally:
                db.session.remove()
            with lock:
                results[sale_id] = outcome

    threads = [threading.Thread(target=worker, args=(sale_id,)) for sale_id in sale_ids]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    return results


class TestConcurrentConfirmation:
    def test_short_inventory_confirms_only_what_it_can_cover(self, file_app):
        seller_id, app_id, sale_ids = _seed(file_app, ["C1", "C2", "C3"], [2, 2, 2, 2])

        results = _confirm_concurrently(file_app, seller_id, sale_ids)

        confirmed = [sid for sid, outcome in results.items() if outcome == "confirmed"]
        failed = [outcome for outcome in results.values() if outcome != "confirmed"]
        assert len(confirmed) == 1
        assert len(failed) == 3
        assert all(isinstance(exc, InsufficientInventoryError) for exc in failed)

        with file_app.app_context():
            used = db.session.query(Code).filter_by(used=True).count()
            attached = db.session.query(SaleCode).count()
            assert used == attached == 2

            app_row = db.session.get(App, app_id)
            assert app_row.codes_available == 1
            assert code_inventory_service.reconcile_codes_available() == []

            statuses = {s.id: s.status for s in db.session.query(Sale).all()}
            assert statuses[confirmed[0]] == "confirmed"
            assert sorted(statuses.values()) == ["confirmed", "pending", "pending", "pending"]

    def test_racing_sales_never_share_a_code(self, file_app):
        seller_id, app_id, sale_ids = _seed(file_app, ["D1", "D2", "D3"], [1, 1, 1, 1, 1])

        results = _confirm_concurrently(file_app, seller_id, sale_ids)

        confirmed = [sid for sid, outcome in results.items() if outcome == "confirmed"]
        failed = [outcome for outcome in results.values() if outcome != "confirmed"]
        assert len(confirmed) == 3
        assert len(failed) == 2
        assert all(isinstance(exc, InsufficientInventoryError) for exc in failed)

        with file_app.app_context():
            attached = [sc.code.code for sc in db.session.query(SaleCode).all()]
            assert sorted(attached) == ["D1", "D2", "D3"]
            assert db.session.query(Code).filter_by(used=False).count() == 0
            assert db.session.get(App, app_id).codes_available == 0
            assert code_inventory_service.reconcile_codes_available() == []

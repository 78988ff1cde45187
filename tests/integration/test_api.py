"""
API tests for the import endpoints and read-only views.
"""
import pytest

USER = {"X-User": "alice"}
PREVIEW_URL = "/api/purchase-orders/preview-import"
IMPORT_URL = "/api/purchase-orders/import"


def _upload(content: bytes, name: str = "orders.xlsx"):
    return {"file": (name, content, "application/octet-stream")}


@pytest.mark.api
class TestImportEndpoints:

    def test_preview(self, api_client, test_db, make_xlsx, sample_rows):
        resp = api_client.post(PREVIEW_URL, files=_upload(make_xlsx(sample_rows)), headers=USER)

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Preview completed. 1 orders, 2 new products, 0 existing products."
        order = body["data"]["ordersToCreate"][0]
        assert order["poNumber"] == "PO-100"
        assert order["totalAmount"] == 170
        assert body["data"]["summary"]["uniqueOrders"] == 1
        assert test_db.list_purchase_orders() == []

    def test_import(self, api_client, test_db, make_csv, sample_rows):
        resp = api_client.post(IMPORT_URL, files=_upload(make_csv(sample_rows), "orders.csv"), headers=USER)

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["message"] == "Import completed. 1 orders created, 0 failed."
        assert body["data"]["summary"]["productsCreated"] == 2
        assert body["data"]["createdOrders"][0]["poNumber"] == "PO-100"
        assert test_db.get_purchase_order("PO-100").created_by == "alice"

    def test_import_with_failures_is_still_200(self, api_client, make_csv, order_row):
        rows = [order_row("PO-1", "A1"), order_row("PO-2", "")]

        resp = api_client.post(IMPORT_URL, files=_upload(make_csv(rows), "orders.csv"), headers=USER)

        assert resp.status_code == 200
        body = resp.json()
        assert body["success"] is True
        assert body["data"]["summary"]["successful"] == 1
        assert body["data"]["summary"]["failed"] == 1
        assert body["data"]["errors"] == ["Order PO-2: Part No is required"]

    def test_missing_columns_reported(self, api_client, make_csv, sample_rows):
        headers = [h for h in sample_rows[0] if h != "DEPT"]
        resp = api_client.post(
            PREVIEW_URL, files=_upload(make_csv(sample_rows, headers), "orders.csv"), headers=USER,
        )

        assert resp.status_code == 200
        assert resp.json()["data"]["missingColumns"] == [{"column": "DEPT", "suggestion": None}]

    def test_no_file(self, api_client):
        resp = api_client.post(IMPORT_URL, headers=USER)

        assert resp.status_code == 400
        assert resp.json() == {"success": False, "message": "No file uploaded", "data": None}

    @pytest.mark.parametrize("url", [PREVIEW_URL, IMPORT_URL])
    def test_empty_sheet(self, api_client, make_csv, url):
        resp = api_client.post(url, files=_upload(make_csv([]), "orders.csv"), headers=USER)

        assert resp.status_code == 400
        assert resp.json()["success"] is False
        assert resp.json()["message"] == "No data found in file"

    def test_unreadable_file(self, api_client):
        content = b"\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1" + b"\x00" * 64
        resp = api_client.post(PREVIEW_URL, files=_upload(content, "orders.xls"), headers=USER)

        assert resp.status_code == 400
        assert resp.json()["success"] is False

    @pytest.mark.parametrize("url", [PREVIEW_URL, IMPORT_URL])
    def test_requires_user(self, api_client, make_csv, sample_rows, url):
        resp = api_client.post(url, files=_upload(make_csv(sample_rows), "orders.csv"))

        assert resp.status_code == 401
        assert resp.json()["message"] == "Authentication required"

    def test_upload_size_limit(self, api_client, test_config, make_csv, sample_rows):
        test_config.max_upload_bytes = 10

        resp = api_client.post(IMPORT_URL, files=_upload(make_csv(sample_rows), "orders.csv"), headers=USER)

        assert resp.status_code == 413
        assert resp.json()["success"] is False


@pytest.mark.api
class TestReadEndpoints:

    @pytest.fixture
    def imported(self, api_client, make_csv, sample_rows):
        api_client.post(IMPORT_URL, files=_upload(make_csv(sample_rows), "orders.csv"), headers=USER)

    def test_list_purchase_orders(self, api_client, imported):
        resp = api_client.get("/api/purchase-orders")

        assert resp.status_code == 200
        orders = resp.json()["data"]
        assert [o["po_number"] for o in orders] == ["PO-100"]
        assert orders[0]["item_count"] == 2

    def test_get_purchase_order(self, api_client, imported):
        resp = api_client.get("/api/purchase-orders/po-100")

        assert resp.status_code == 200
        po = resp.json()["data"]
        assert po["po_number"] == "PO-100"
        assert po["supplier"] == "Retail Parts Supplier"
        assert len(po["items"]) == 2

    def test_get_unknown_purchase_order(self, api_client):
        resp = api_client.get("/api/purchase-orders/NOPE")

        assert resp.status_code == 404
        assert resp.json()["success"] is False

    def test_list_products(self, api_client, imported):
        resp = api_client.get("/api/products", params={"search": "bearing"})

        assert resp.status_code == 200
        assert [p["part_no"] for p in resp.json()["data"]] == ["B2"]

    def test_stats(self, api_client, imported):
        data = api_client.get("/api/stats").json()["data"]

        assert data["total_orders"] == 1
        assert data["total_products"] == 2

    def test_audit(self, api_client, imported):
        entries = api_client.get("/api/audit").json()["data"]
        assert entries[0]["action"] == "import_completed"

    def test_health(self, api_client):
        resp = api_client.get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["data"]["db_exists"] is True

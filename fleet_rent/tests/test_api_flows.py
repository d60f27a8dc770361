import os
import sys
import unittest
from pathlib import Path

from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool


os.environ.setdefault("FLEET_RENT_DB_URL", "sqlite+pysqlite:///:memory:")
os.environ.setdefault("SESSION_SIGNING_SECRET", "x" * 48)

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

import FleetRent as app_module
from db.base import Base
from services.user_access_service import create_session, remove_session


class ApiFlowTests(unittest.TestCase):
    def setUp(self):
        engine = create_engine(
            "sqlite+pysqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
            future=True,
        )
        Base.metadata.create_all(bind=engine)
        factory = sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False, future=True)

        def _db():
            db = factory()
            try:
                yield db
            finally:
                db.close()

        app_module.app.dependency_overrides[app_module.get_fleet_db] = _db
        self.client = TestClient(app_module.app)
        self.headers = {"X-Session-Token": create_session({"staffID": 7, "role": "Staff"})}

    def tearDown(self):
        app_module.app.dependency_overrides.clear()

    def _excavator(self, name="PC200", brand="Komatsu", stock=1):
        response = self.client.post(
            "/api/excavators",
            json={
                "name": name,
                "brand": brand,
                "type": "Crawler",
                "operatorName": "Joko",
                "regularRatePerHour": 100000,
                "overtimeRatePerHour": 150000,
                "stock": stock,
            },
            headers=self.headers,
        )
        self.assertEqual(response.status_code, 200)
        return response.json()["excavatorID"]

    def _rent(self, excavator_id, start, end, renter="Budi Santoso"):
        return self.client.post(
            "/api/rentals",
            json={
                "renterName": renter,
                "renterPhone": "+62 812-3456-7890",
                "renterEmail": "",
                "startDate": start,
                "endDate": end,
                "excavators": [{"excavatorID": excavator_id, "regularHours": 8, "overtimeHours": 2}],
            },
            headers=self.headers,
        )

    def test_requests_without_valid_session_are_rejected(self):
        self.assertEqual(self.client.get("/api/rentals").status_code, 401)
        self.assertEqual(self.client.get("/api/rentals", headers={"X-Session-Token": "bogus"}).status_code, 401)

        viewer = create_session({"staffID": 9, "role": "Viewer"})
        self.assertEqual(self.client.get("/api/rentals", headers={"X-Session-Token": viewer}).status_code, 401)

    def test_revoked_session_is_rejected(self):
        token = create_session({"staffID": 8, "role": "Admin"})
        headers = {"X-Session-Token": token}
        self.assertEqual(self.client.get("/api/excavators", headers=headers).status_code, 200)

        remove_session(token)
        self.assertEqual(self.client.get("/api/excavators", headers=headers).status_code, 401)

    def test_excavator_requires_name_and_brand(self):
        response = self.client.post("/api/excavators", json={"name": " "}, headers=self.headers)
        self.assertEqual(response.status_code, 400)

    def test_create_rental_returns_rental_with_invoice(self):
        excavator_id = self._excavator()

        response = self._rent(excavator_id, "2025-01-01", "2025-01-02")

        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["renterPhone"], "081234567890")
        self.assertEqual(body["totalAmount"], 2200000)
        self.assertEqual(body["rentPeriod"]["durationDays"], 2)

        invoice = self.client.get(f"/api/rentals/{body['rentalID']}/invoice", headers=self.headers)
        self.assertEqual(invoice.status_code, 200)
        self.assertEqual(invoice.json()["invoiceID"], body["invoiceID"])
        self.assertEqual(invoice.json()["totalAmount"], 2200000)

        paid = self.client.post(f"/api/invoices/{body['invoiceID']}/payment", json={"isPaid": True}, headers=self.headers)
        self.assertEqual(paid.json()["status"], "paid")

    def test_invalid_requests_map_to_client_errors(self):
        excavator_id = self._excavator()

        reversed_period = self._rent(excavator_id, "2025-01-05", "2025-01-01")
        self.assertEqual(reversed_period.status_code, 400)

        unknown = self._rent(999, "2025-01-01", "2025-01-02")
        self.assertEqual(unknown.status_code, 404)

        bad_phone = self.client.post(
            "/api/rentals",
            json={
                "renterName": "Budi",
                "renterPhone": "123",
                "startDate": "2025-01-01",
                "endDate": "2025-01-01",
                "excavators": [{"excavatorID": excavator_id}],
            },
            headers=self.headers,
        )
        self.assertEqual(bad_phone.status_code, 422)

    def test_overlapping_rental_is_reported_as_unavailable(self):
        excavator_id = self._excavator()
        self.assertEqual(self._rent(excavator_id, "2025-01-01", "2025-01-05").status_code, 200)

        response = self._rent(excavator_id, "2025-01-03", "2025-01-06")

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["detail"]["unavailable"], ["Komatsu PC200"])

    def test_availability_endpoint(self):
        busy = self._excavator()
        free = self._excavator(name="320", brand="CAT", stock=2)
        self._rent(busy, "2025-01-01", "2025-01-05")

        response = self.client.get(
            "/api/rentals/availability",
            params={"startDate": "2025-01-05", "endDate": "2025-01-07"},
            headers=self.headers,
        )

        self.assertEqual(response.status_code, 200)
        flags = {row["excavatorID"]: row["available"] for row in response.json()["excavators"]}
        self.assertEqual(flags, {busy: False, free: True})

    def test_conflicting_edit_needs_acknowledgement(self):
        excavator_id = self._excavator()
        self._rent(excavator_id, "2025-01-10", "2025-01-12", renter="Andi Wijaya")
        rental_id = self._rent(excavator_id, "2025-01-01", "2025-01-05").json()["rentalID"]

        blocked = self.client.put(f"/api/rentals/{rental_id}", json={"endDate": "2025-01-10"}, headers=self.headers)
        self.assertEqual(blocked.status_code, 409)
        detail = blocked.json()["detail"]
        self.assertTrue(detail["requiresAcknowledgement"])
        self.assertEqual(detail["conflicts"][0]["renterName"], "Andi Wijaya")

        accepted = self.client.put(
            f"/api/rentals/{rental_id}",
            json={"endDate": "2025-01-10", "acknowledgeConflict": True},
            headers=self.headers,
        )
        self.assertEqual(accepted.status_code, 200)
        self.assertTrue(accepted.json()["conflictOverridden"])
        self.assertEqual(accepted.json()["rentPeriod"]["durationDays"], 10)

    def test_delete_rental_removes_invoice(self):
        excavator_id = self._excavator()
        rental_id = self._rent(excavator_id, "2025-01-01", "2025-01-02").json()["rentalID"]

        self.assertEqual(self.client.delete(f"/api/rentals/{rental_id}", headers=self.headers).status_code, 200)
        self.assertEqual(self.client.get(f"/api/rentals/{rental_id}/invoice", headers=self.headers).status_code, 404)
        self.assertEqual(self.client.get("/api/invoices", headers=self.headers).json(), [])

    def test_timesheet_and_monthly_report(self):
        excavator_id = self._excavator()

        preview = self.client.get(
            "/api/timesheets/preview",
            params={"excavatorID": excavator_id, "startTime": "08:00", "endTime": "18:00"},
            headers=self.headers,
        )
        self.assertEqual(preview.json()["totalPay"], 1100000)

        created = self.client.post(
            "/api/timesheets",
            json={"excavatorID": excavator_id, "date": "2025-01-02", "startTime": "08:00", "endTime": "18:00"},
            headers=self.headers,
        )
        self.assertEqual(created.status_code, 200)
        self.assertEqual(created.json()["overtimeHours"], 2)

        overnight = self.client.post(
            "/api/timesheets",
            json={"excavatorID": excavator_id, "date": "2025-01-03", "startTime": "22:00", "endTime": "06:00"},
            headers=self.headers,
        )
        self.assertEqual(overnight.status_code, 400)

        months = self.client.get("/api/reports/months", headers=self.headers).json()
        self.assertEqual([(entry["year"], entry["month"]) for entry in months], [(2025, 1)])

        report = self.client.get("/api/reports/2025/1", headers=self.headers).json()
        self.assertEqual(report["summary"]["totalPay"], 1100000)
        self.assertEqual(report["excavators"][0]["name"], "Komatsu PC200")

        self.assertEqual(self.client.get("/api/reports/2025/13", headers=self.headers).status_code, 400)


if __name__ == "__main__":
    unittest.main()

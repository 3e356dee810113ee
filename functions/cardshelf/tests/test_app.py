import io
import unittest

from fastapi.testclient import TestClient
from PIL import Image

from cardshelf.admin import AdminController
from cardshelf.app import create_app
from cardshelf.auth import InMemoryAuthClient
from cardshelf.db import InMemoryRecordStore
from cardshelf.dependencies import get_admin_controller, get_public_controller
from cardshelf.public import PublicController
from cardshelf.storage import InMemoryStorageClient

EMAIL = "ops@example.com"
PASSWORD = "secret"


def jpeg_bytes():
    buffer = io.BytesIO()
    Image.new("RGB", (6, 9), "white").save(buffer, format="JPEG")
    return buffer.getvalue()


class CardShelfApiTests(unittest.TestCase):
    def setUp(self):
        self.store = InMemoryRecordStore()
        self.storage = InMemoryStorageClient()
        self.admin = AdminController(
            self.store,
            self.storage,
            InMemoryAuthClient(accounts={EMAIL: PASSWORD}),
        )
        self.public = PublicController(self.store, self.storage)
        self.public.start()

        app = create_app()
        app.dependency_overrides[get_admin_controller] = lambda: self.admin
        app.dependency_overrides[get_public_controller] = lambda: self.public
        self.client = TestClient(app)

    def tearDown(self):
        self.public.stop()
        self.admin.mirror.stop()

    def login(self):
        response = self.client.post(
            "/api/admin/login", json={"email": EMAIL, "password": PASSWORD}
        )
        self.assertEqual(response.status_code, 200)
        return {"Authorization": f"Bearer {response.json()['id_token']}"}

    def upload(self, headers, category="A", side="front", order="1"):
        return self.client.post(
            "/api/admin/records",
            data={"category": category, "side": side, "order": order},
            files={"file": ("card.jpg", jpeg_bytes(), "image/jpeg")},
            headers=headers,
        )

    def test_login_failure_is_reported(self):
        response = self.client.post(
            "/api/admin/login", json={"email": EMAIL, "password": "wrong"}
        )
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["detail"], "Wrong password")

    def test_admin_routes_require_token(self):
        self.assertEqual(self.client.get("/api/admin/records").status_code, 401)
        self.login()
        response = self.client.get(
            "/api/admin/records", headers={"Authorization": "Bearer other"}
        )
        self.assertEqual(response.status_code, 401)

    def test_create_list_and_pair(self):
        headers = self.login()
        front = self.upload(headers, side="front")
        self.assertEqual(front.status_code, 201)
        self.assertEqual(front.json()["stage"], "PATH_LINKED")
        back = self.upload(headers, side="back")
        self.assertEqual(back.status_code, 201)

        listing = self.client.get("/api/admin/records", headers=headers).json()
        self.assertEqual(listing["total"], 2)
        self.assertEqual(listing["categories"], ["A"])
        self.assertTrue(all(row["thumbnail_url"] for row in listing["records"]))

        pairs = self.client.get("/api/public/pairs").json()["pairs"]
        self.assertEqual(len(pairs), 1)
        self.assertEqual(pairs[0]["front"]["card"]["id"], front.json()["record_id"])
        self.assertEqual(pairs[0]["back"]["card"]["id"], back.json()["record_id"])
        self.assertIsNotNone(pairs[0]["front"]["image_url"])

    def test_create_validation_error(self):
        headers = self.login()
        response = self.upload(headers, category=" ")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["field"], "category")
        self.assertEqual(self.store.docs, {})

        response = self.client.post(
            "/api/admin/records",
            data={"category": "A", "side": "front", "order": "1"},
            headers=headers,
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["field"], "image")

    def test_undecodable_upload(self):
        headers = self.login()
        response = self.client.post(
            "/api/admin/records",
            data={"category": "A", "side": "front", "order": "1"},
            files={"file": ("card.txt", b"hello", "text/plain")},
            headers=headers,
        )
        self.assertEqual(response.status_code, 422)

    def test_update_and_filter(self):
        headers = self.login()
        record_id = self.upload(headers).json()["record_id"]
        self.upload(headers, category="B", order="2")

        response = self.client.patch(
            f"/api/admin/records/{record_id}",
            json={"category": "A", "side": "back", "order": 2},
            headers=headers,
        )
        self.assertEqual(response.status_code, 200)

        listing = self.client.get(
            "/api/admin/records", params={"q": "2", "category": "A"}, headers=headers
        ).json()
        self.assertEqual([r["record"]["id"] for r in listing["records"]], [record_id])
        self.assertEqual(listing["selected_category"], "A")

        bad = self.client.patch(
            f"/api/admin/records/{record_id}",
            json={"category": "A", "side": "back", "order": "two"},
            headers=headers,
        )
        self.assertEqual(bad.status_code, 400)
        self.assertEqual(bad.json()["field"], "order")

    def test_update_with_huge_integer_order_is_rejected(self):
        headers = self.login()
        record_id = self.upload(headers).json()["record_id"]
        response = self.client.patch(
            f"/api/admin/records/{record_id}",
            json={"category": "A", "side": "front", "order": 10**400},
            headers=headers,
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["field"], "order")
        self.assertEqual(self.store.get(record_id)["order"], 1)

    def test_replace_image(self):
        headers = self.login()
        record_id = self.upload(headers).json()["record_id"]
        response = self.client.put(
            f"/api/admin/records/{record_id}/image",
            files={"file": ("new.jpg", jpeg_bytes(), "image/jpeg")},
            headers=headers,
        )
        self.assertEqual(response.status_code, 200)
        self.assertIn("t=", response.json()["thumbnail_url"])

    def test_delete_needs_confirmation(self):
        headers = self.login()
        record_id = self.upload(headers).json()["record_id"]

        response = self.client.delete(f"/api/admin/records/{record_id}", headers=headers)
        self.assertEqual(response.json()["status"], "cancelled")
        self.assertIsNotNone(self.store.get(record_id))

        response = self.client.delete(
            f"/api/admin/records/{record_id}",
            params={"confirm": "true"},
            headers=headers,
        )
        self.assertEqual(response.json()["status"], "deleted")
        self.assertIsNone(self.store.get(record_id))
        self.assertEqual(self.client.get("/api/public/pairs").json()["pairs"], [])

    def test_delete_unknown_record(self):
        headers = self.login()
        response = self.client.delete(
            "/api/admin/records/missing", params={"confirm": "true"}, headers=headers
        )
        self.assertEqual(response.status_code, 404)

    def test_public_download(self):
        headers = self.login()
        record_id = self.upload(headers, category="Fire Set", side="back", order="3").json()[
            "record_id"
        ]
        response = self.client.get(f"/api/public/cards/{record_id}/download")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["filename"], "fire-set_order-3_back.png")

    def test_logout_closes_admin_mirror(self):
        headers = self.login()
        response = self.client.post("/api/admin/logout", headers=headers)
        self.assertEqual(response.status_code, 200)
        self.assertFalse(self.admin.mirror.active)
        self.assertEqual(self.client.get("/api/admin/records", headers=headers).status_code, 401)


if __name__ == "__main__":
    unittest.main()

"""API tests for /api/annonces: validation, visibility, ownership and image handling."""

import asyncio
import time
import unittest
from unittest.mock import patch

import httpx
from sqlalchemy.exc import OperationalError
from starlette.datastructures import UploadFile

from app.core.config import get_settings
from app.main import app
from helpers import PUBLIC_URL_BASE, ApiTestCase

VALID_FORM = {"titre": "Canapé trois places", "description": "Canapé en tissu gris, très bon état."}


class TestCreateAnnonce(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.alice = self.create_user("alice")

    def test_create_without_image(self) -> None:
        r = self.client.post("/api/annonces", data=VALID_FORM, headers=self.auth_headers(self.alice))
        self.assertEqual(r.status_code, 201)
        annonce = r.json()["annonce"]
        self.assertEqual(annonce["titre"], VALID_FORM["titre"])
        self.assertEqual(annonce["user_id"], self.alice.id)
        self.assertEqual(annonce["status"], "pending")
        self.assertEqual(annonce["image"], self.settings.DEFAULT_IMAGE_URL)
        self.bucket.upload.assert_not_called()

    def test_fields_are_trimmed(self) -> None:
        r = self.client.post(
            "/api/annonces",
            data={"titre": "   Lampe   ", "description": "  Lampe de bureau LED.  "},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 201)
        self.assertEqual(r.json()["annonce"]["titre"], "Lampe")
        self.assertEqual(r.json()["annonce"]["description"], "Lampe de bureau LED.")

    def test_short_titre_after_trim_is_400(self) -> None:
        r = self.client.post(
            "/api/annonces",
            data={"titre": "  ab  ", "description": VALID_FORM["description"]},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual([e["field"] for e in r.json()["details"]["errors"]], ["titre"])

    def test_short_description_is_400(self) -> None:
        r = self.client.post(
            "/api/annonces",
            data={"titre": VALID_FORM["titre"], "description": "Trop bref"},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual([e["field"] for e in r.json()["details"]["errors"]], ["description"])

    def test_missing_fields_report_both(self) -> None:
        r = self.client.post("/api/annonces", data={}, headers=self.auth_headers(self.alice))
        self.assertEqual(r.status_code, 400)
        fields = {e["field"] for e in r.json()["details"]["errors"]}
        self.assertEqual(fields, {"titre", "description"})

    def test_create_with_image_uploads_then_resolves_url(self) -> None:
        r = self.client.post(
            "/api/annonces",
            data=VALID_FORM,
            files={"image": ("canape.jpg", b"\xff\xd8\xff fake jpeg", "image/jpeg")},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 201)
        self.bucket.upload.assert_called_once()
        key = self.bucket.upload.call_args.kwargs["path"]
        self.assertTrue(key.endswith("-canape.jpg"))
        self.assertEqual(r.json()["annonce"]["image"], f"{PUBLIC_URL_BASE}/{key}")

    def test_non_image_upload_rejected(self) -> None:
        r = self.client.post(
            "/api/annonces",
            data=VALID_FORM,
            files={"image": ("notes.txt", b"hello", "text/plain")},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["details"]["errors"][0]["field"], "image")
        self.bucket.upload.assert_not_called()

    def test_oversized_image_rejected(self) -> None:
        data = b"x" * (self.settings.MAX_IMAGE_BYTES + 1)
        r = self.client.post(
            "/api/annonces",
            data=VALID_FORM,
            files={"image": ("big.png", data, "image/png")},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 400)
        self.bucket.upload.assert_not_called()

    def test_upload_failure_is_generic_500(self) -> None:
        self.bucket.upload.side_effect = RuntimeError("supabase says no: secret detail")
        r = self.client.post(
            "/api/annonces",
            data=VALID_FORM,
            files={"image": ("canape.jpg", b"jpeg", "image/jpeg")},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 500)
        self.assertEqual(r.json()["message"], "Internal server error")
        self.assertNotIn("secret detail", r.text)

    def test_failed_insert_removes_uploaded_image(self) -> None:
        with patch(
            "sqlalchemy.orm.Session.commit",
            side_effect=OperationalError("INSERT", {}, Exception("db down")),
        ):
            r = self.client.post(
                "/api/annonces",
                data=VALID_FORM,
                files={"image": ("canape.jpg", b"jpeg", "image/jpeg")},
                headers=self.auth_headers(self.alice),
            )
        self.assertEqual(r.status_code, 500)
        key = self.bucket.upload.call_args.kwargs["path"]
        self.bucket.remove.assert_called_once_with([key])

    def test_oversized_upload_read_stops_past_limit(self) -> None:
        small = self.settings.model_copy(update={"MAX_IMAGE_BYTES": 1024})
        app.dependency_overrides[get_settings] = lambda: small
        sizes: list[int] = []
        original_read = UploadFile.read

        async def recording_read(upload: UploadFile, size: int = -1) -> bytes:
            sizes.append(size)
            return await original_read(upload, size)

        with patch.object(UploadFile, "read", recording_read):
            r = self.client.post(
                "/api/annonces",
                data=VALID_FORM,
                files={"image": ("big.png", b"x" * 8192, "image/png")},
                headers=self.auth_headers(self.alice),
            )
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["details"]["errors"][0]["field"], "image")
        self.assertEqual(set(sizes), {1025})
        self.bucket.upload.assert_not_called()


class TestCreateRunsOffEventLoop(ApiTestCase, unittest.IsolatedAsyncioTestCase):
    async def test_slow_upload_does_not_stall_other_requests(self) -> None:
        alice = self.create_user("alice")
        self.bucket.upload.side_effect = lambda **_: time.sleep(1.0)

        transport = httpx.ASGITransport(app=app)
        async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
            create = asyncio.create_task(
                client.post(
                    "/api/annonces",
                    data=VALID_FORM,
                    files={"image": ("canape.jpg", b"jpeg", "image/jpeg")},
                    headers=self.auth_headers(alice),
                )
            )
            await asyncio.sleep(0.2)
            started = time.perf_counter()
            root = await client.get("/")
            elapsed = time.perf_counter() - started
            created = await create

        self.assertEqual(created.status_code, 201)
        self.assertEqual(root.status_code, 200)
        self.assertLess(elapsed, 0.5, f"GET / waited {elapsed:.2f}s behind the upload")


class TestListAndDetail(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.alice = self.create_user("alice")
        self.bob = self.create_user("bob")
        self.pending_id = self.create_annonce(self.alice, titre="En attente")
        self.old_id = self.create_annonce(self.alice, titre="Ancienne", status="validated")
        self.new_id = self.create_annonce(
            self.bob, titre="Récente", status="validated", image="99-photo.jpg"
        )
        self.rejected_id = self.create_annonce(
            self.alice, titre="Refusée", status="rejected", rejection_reason="Photo floue"
        )

    def test_public_list_only_validated_newest_first(self) -> None:
        r = self.client.get("/api/annonces")
        self.assertEqual(r.status_code, 200)
        ids = [a["id"] for a in r.json()["annonces"]]
        self.assertEqual(ids, [self.new_id, self.old_id])

    def test_public_list_maps_images(self) -> None:
        annonces = {a["id"]: a for a in self.client.get("/api/annonces").json()["annonces"]}
        self.assertEqual(annonces[self.new_id]["image"], f"{PUBLIC_URL_BASE}/99-photo.jpg")
        self.assertEqual(annonces[self.old_id]["image"], self.settings.DEFAULT_IMAGE_URL)

    def test_me_lists_every_status(self) -> None:
        r = self.client.get("/api/annonces/me", headers=self.auth_headers(self.alice))
        self.assertEqual(r.status_code, 200)
        annonces = r.json()["annonces"]
        self.assertEqual(
            {a["id"] for a in annonces}, {self.pending_id, self.old_id, self.rejected_id}
        )
        rejected = next(a for a in annonces if a["id"] == self.rejected_id)
        self.assertEqual(rejected["rejection_reason"], "Photo floue")

    def test_detail_of_validated_is_public(self) -> None:
        r = self.client.get(f"/api/annonces/{self.old_id}")
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["annonce"]["titre"], "Ancienne")

    def test_detail_of_pending_hidden_from_others(self) -> None:
        self.assertEqual(self.client.get(f"/api/annonces/{self.pending_id}").status_code, 404)
        r = self.client.get(f"/api/annonces/{self.pending_id}", headers=self.auth_headers(self.bob))
        self.assertEqual(r.status_code, 404)

    def test_detail_of_pending_visible_to_owner_and_admin(self) -> None:
        admin = self.create_user("root", role="admin")
        for user in (self.alice, admin):
            r = self.client.get(f"/api/annonces/{self.pending_id}", headers=self.auth_headers(user))
            self.assertEqual(r.status_code, 200)

    def test_detail_missing_is_404(self) -> None:
        self.assertEqual(self.client.get("/api/annonces/999").status_code, 404)


class TestUpdateAnnonce(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.alice = self.create_user("alice")
        self.bob = self.create_user("bob")
        self.admin = self.create_user("root", role="admin")
        self.annonce_id = self.create_annonce(self.alice, status="validated")

    def test_owner_updates_text_and_keeps_status(self) -> None:
        r = self.client.put(
            f"/api/annonces/{self.annonce_id}",
            json={"titre": "Vélo de course", "description": "Cadre carbone, révisé."},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 200)
        annonce = r.json()["annonce"]
        self.assertEqual(annonce["titre"], "Vélo de course")
        self.assertEqual(annonce["status"], "validated")
        self.assertEqual(annonce["user_id"], self.alice.id)
        self.assertIsNotNone(annonce["updated_at"])

    def test_missing_annonce_is_404_for_anyone(self) -> None:
        for user in (self.alice, self.bob, self.admin):
            with self.subTest(user=user.username):
                r = self.client.put(
                    "/api/annonces/999",
                    json={"titre": "x", "description": "y"},
                    headers=self.auth_headers(user),
                )
                self.assertEqual(r.status_code, 404)

    def test_other_user_forbidden(self) -> None:
        r = self.client.put(
            f"/api/annonces/{self.annonce_id}",
            json={"titre": "Pris par Bob", "description": "Je modifie l'annonce d'Alice."},
            headers=self.auth_headers(self.bob),
        )
        self.assertEqual(r.status_code, 403)
        self.assertEqual(self.load_annonce(self.annonce_id).titre, "Vélo de ville")

    def test_admin_cannot_edit_text(self) -> None:
        r = self.client.put(
            f"/api/annonces/{self.annonce_id}",
            json={"titre": "Modifié", "description": "Texte modifié par un admin."},
            headers=self.auth_headers(self.admin),
        )
        self.assertEqual(r.status_code, 403)

    def test_invalid_fields_400(self) -> None:
        r = self.client.put(
            f"/api/annonces/{self.annonce_id}",
            json={"titre": "ok", "description": "court"},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 400)
        fields = {e["field"] for e in r.json()["details"]["errors"]}
        self.assertEqual(fields, {"titre", "description"})

    def test_owner_updates_with_urlencoded_form(self) -> None:
        r = self.client.put(
            f"/api/annonces/{self.annonce_id}",
            data={"titre": "Vélo pliant", "description": "Vélo pliant, très léger."},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 200)
        self.assertEqual(r.json()["annonce"]["titre"], "Vélo pliant")

    def test_owner_updates_with_multipart_form(self) -> None:
        r = self.client.put(
            f"/api/annonces/{self.annonce_id}",
            data={"titre": "  Vélo cargo ", "description": "Vélo cargo électrique, batterie neuve."},
            files={"attachment": ("notes.txt", b"", "text/plain")},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 200)
        self.assertEqual(self.load_annonce(self.annonce_id).titre, "Vélo cargo")

    def test_invalid_form_fields_400(self) -> None:
        r = self.client.put(
            f"/api/annonces/{self.annonce_id}",
            data={"titre": "ok"},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 400)
        fields = {e["field"] for e in r.json()["details"]["errors"]}
        self.assertEqual(fields, {"titre", "description"})

    def test_malformed_json_400(self) -> None:
        r = self.client.put(
            f"/api/annonces/{self.annonce_id}",
            content=b"{not json",
            headers={**self.auth_headers(self.alice), "Content-Type": "application/json"},
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["details"]["errors"][0]["field"], "body")

    def test_non_string_json_field_400(self) -> None:
        r = self.client.put(
            f"/api/annonces/{self.annonce_id}",
            json={"titre": 12, "description": "Description valide."},
            headers=self.auth_headers(self.alice),
        )
        self.assertEqual(r.status_code, 400)
        self.assertEqual(r.json()["details"]["errors"][0]["field"], "titre")


class TestDeleteAnnonce(ApiTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.alice = self.create_user("alice")
        self.bob = self.create_user("bob")
        self.admin = self.create_user("root", role="admin")
        self.annonce_id = self.create_annonce(self.alice, image="42-velo.jpg")

    def test_missing_annonce_is_404_for_anyone(self) -> None:
        for user in (self.alice, self.bob, self.admin):
            with self.subTest(user=user.username):
                r = self.client.delete("/api/annonces/999", headers=self.auth_headers(user))
                self.assertEqual(r.status_code, 404)

    def test_other_user_forbidden(self) -> None:
        r = self.client.delete(f"/api/annonces/{self.annonce_id}", headers=self.auth_headers(self.bob))
        self.assertEqual(r.status_code, 403)
        self.assertIsNotNone(self.load_annonce(self.annonce_id))
        self.bucket.remove.assert_not_called()

    def test_owner_deletes_row_and_image(self) -> None:
        r = self.client.delete(
            f"/api/annonces/{self.annonce_id}", headers=self.auth_headers(self.alice)
        )
        self.assertEqual(r.status_code, 200)
        self.assertIsNone(self.load_annonce(self.annonce_id))
        self.bucket.remove.assert_called_once_with(["42-velo.jpg"])

    def test_admin_can_delete_any(self) -> None:
        r = self.client.delete(
            f"/api/annonces/{self.annonce_id}", headers=self.auth_headers(self.admin)
        )
        self.assertEqual(r.status_code, 200)
        self.assertIsNone(self.load_annonce(self.annonce_id))

    def test_default_image_not_removed_from_storage(self) -> None:
        annonce_id = self.create_annonce(self.alice)
        r = self.client.delete(f"/api/annonces/{annonce_id}", headers=self.auth_headers(self.alice))
        self.assertEqual(r.status_code, 200)
        self.bucket.remove.assert_not_called()

    def test_storage_failure_keeps_row(self) -> None:
        self.bucket.remove.side_effect = RuntimeError("storage down")
        r = self.client.delete(
            f"/api/annonces/{self.annonce_id}", headers=self.auth_headers(self.alice)
        )
        self.assertEqual(r.status_code, 500)
        self.assertIsNotNone(self.load_annonce(self.annonce_id))


if __name__ == "__main__":
    unittest.main()

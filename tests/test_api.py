"""Tests for the HTTP endpoints."""
import io

import pytest
from fastapi.testclient import TestClient
from PIL import Image

from clinical_images.dependencies import get_image_service
from clinical_images.errors import StoreError
from clinical_images.main import app
from clinical_images.repositories import SidecarMetadataStore
from clinical_images.resolver import StaticPatientResolver
from clinical_images.service import ImageRecordService
from clinical_images.storage import LocalBlobStore


def create_test_jpeg(width: int = 10, height: int = 10, seed: int = 0) -> bytes:
    """Create a small test JPEG image."""
    color = ((seed * 50) % 256, (seed * 100) % 256, (seed * 150) % 256)
    img = Image.new("RGB", (width, height), color=color)

    img_bytes = io.BytesIO()
    img.save(img_bytes, format="JPEG")
    return img_bytes.getvalue()


@pytest.fixture
def image_service(tmp_path):
    """Service backed by a temporary filesystem and sidecar store."""
    metadata = SidecarMetadataStore(tmp_path / "metadata")
    metadata.init_store()
    return ImageRecordService(
        blob_store=LocalBlobStore(tmp_path / "images"),
        metadata_store=metadata,
        patient_resolver=StaticPatientResolver({"1042": "77"}),
        public_base_url="http://localhost:8084",
        max_upload_size=1024 * 1024,
    )


@pytest.fixture
def client(image_service):
    """Override the service dependency for tests."""
    app.dependency_overrides[get_image_service] = lambda: image_service
    yield TestClient(app)
    app.dependency_overrides.clear()


def upload(client, content=None, **form):
    files = {"image": ("wound.jpg", content or create_test_jpeg(), "image/jpeg")}
    return client.post("/images/upload", files=files, data=form)


class TestUploadEndpoint:
    """Tests for POST /images/upload."""

    def test_upload_success(self, client, image_service):
        response = upload(client, encounterId="1042", description="Heel ulcer")

        assert response.status_code == 200
        data = response.json()
        assert set(data) == {"id", "url"}
        assert data["url"] == f"http://localhost:8084/uploads/{data['id']}.jpg"

        record = image_service.get_image(data["id"])
        assert record.encounter_id == "1042"
        assert record.patient_id == "77"
        assert record.description == "Heel ulcer"
        assert record.original_name == "wound.jpg"

    def test_upload_with_patient(self, client, image_service):
        response = upload(client, encounterId="9", patientId="123")

        assert image_service.get_image(response.json()["id"]).patient_id == "123"

    def test_upload_without_file(self, client):
        """Test a request without an image is rejected with 400."""
        response = client.post("/images/upload", data={"encounterId": "1042"})

        assert response.status_code == 400
        assert "No image was uploaded" in response.json()["detail"]

    def test_upload_empty_file(self, client):
        response = client.post(
            "/images/upload",
            files={"image": ("empty.jpg", b"", "image/jpeg")},
            data={"encounterId": "1042"},
        )
        assert response.status_code == 400

    def test_upload_without_encounter(self, client):
        response = upload(client)

        assert response.status_code == 400
        assert "encounterId" in response.json()["detail"]

    def test_upload_store_failure(self, client, image_service, monkeypatch):
        def failing_create(record):
            raise StoreError("disk full")

        monkeypatch.setattr(image_service.metadata_store, "create", failing_create)

        response = upload(client, encounterId="1042")

        assert response.status_code == 500
        assert "disk full" in response.json()["detail"]


class TestImageEndpoints:
    """Tests for reading and annotating images."""

    def test_get_image(self, client):
        image_id = upload(client, encounterId="1042", description="d").json()["id"]

        response = client.get(f"/images/{image_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == image_id
        assert data["encounterId"] == "1042"
        assert data["patientId"] == "77"
        assert data["annotations"] == []
        assert data["texts"] == []
        assert data["lastEditedAt"] is None
        assert data["url"].endswith(f"/uploads/{image_id}.jpg")

    def test_get_image_not_found(self, client):
        response = client.get("/images/unknown-id")

        assert response.status_code == 404
        assert response.json()["detail"] == "Image not found"

    def test_get_blob(self, client):
        content = create_test_jpeg(seed=4)
        image_id = upload(client, content=content, encounterId="1042").json()["id"]

        response = client.get(f"/images/blob/{image_id}")

        assert response.status_code == 200
        assert response.content == content
        assert response.headers["content-type"] == "image/jpeg"

    def test_get_blob_not_found(self, client):
        assert client.get("/images/blob/unknown-id").status_code == 404

    def test_annotate_partial_updates(self, client):
        image_id = upload(client, encounterId="1042").json()["id"]
        strokes = [{"points": [[0, 0], [5, 5]], "color": "#00f", "width": 3}]
        texts = [{"x": 4, "y": 8, "text": "Granulation tissue"}]

        response = client.put(f"/images/{image_id}/annotate", json={"texts": texts})
        assert response.status_code == 200
        assert response.json() == {"success": True}

        client.put(f"/images/{image_id}/annotate", json={"annotations": strokes})

        data = client.get(f"/images/{image_id}").json()
        assert data["annotations"] == strokes
        assert data["texts"] == texts
        assert data["lastEditedAt"] is not None

    def test_annotate_empty_body(self, client):
        image_id = upload(client, encounterId="1042").json()["id"]

        response = client.put(f"/images/{image_id}/annotate", json={})

        assert response.status_code == 200

    def test_annotate_non_finite_number(self, client):
        """Test an Infinity literal in the body is rejected with 400."""
        image_id = upload(client, encounterId="1042").json()["id"]

        response = client.put(
            f"/images/{image_id}/annotate",
            content='{"annotations": [{"w": Infinity}]}',
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400
        assert client.get(f"/images/{image_id}").json()["annotations"] == []

    def test_annotate_not_found(self, client):
        response = client.put("/images/unknown-id/annotate", json={"annotations": []})
        assert response.status_code == 404


class TestListEndpoints:
    """Tests for the listing endpoints."""

    def test_list_by_encounter(self, client):
        first = upload(client, encounterId="1042", description="a").json()["id"]
        upload(client, encounterId="555", description="b")
        second = upload(client, encounterId="1042", description="c").json()["id"]

        response = client.get("/images/encounter/1042")

        assert response.status_code == 200
        data = response.json()
        assert {item["id"] for item in data} == {first, second}
        assert all(item["encounterId"] == "1042" for item in data)
        assert all("annotations" not in item for item in data)
        assert all(item["url"].startswith("http://localhost:8084/uploads/") for item in data)

    def test_list_by_patient(self, client):
        image_id = upload(client, encounterId="1042").json()["id"]
        upload(client, encounterId="555", patientId="other")

        response = client.get("/images/patient/77")

        assert [item["id"] for item in response.json()] == [image_id]

    def test_list_empty(self, client):
        response = client.get("/images/encounter/none")

        assert response.status_code == 200
        assert response.json() == []

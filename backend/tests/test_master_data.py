"""
Item display picture tests.

Verifies:
- JPEG, PNG and WEBP pictures between 800x800 and 3000x3000 are accepted
- Other content types, files over 5MB and unreadable bytes are refused
- The declared content type must match the decoded image format
- The validate endpoint checks the item belongs to the caller's organization
"""

from io import BytesIO

import pytest
from PIL import Image

from erp.services import master_data_service
from erp.services.master_data_service import DISPLAY_PICTURE_MAX_BYTES
from erp.validation import ValidationError


def image_bytes(width, height, fmt="PNG"):
    buf = BytesIO()
    Image.new("RGB", (width, height), (200, 40, 40)).save(buf, format=fmt)
    return buf.getvalue()


# =============================================================================
# VALIDATION RULES
# =============================================================================

class TestDisplayPictureValidation:

    @pytest.mark.parametrize("content_type, fmt, size", [
        ("image/png", "PNG", (800, 800)),
        ("image/jpeg", "JPEG", (3000, 1200)),
        ("image/webp", "WEBP", (1024, 800)),
    ])
    def test_accepted_pictures(self, content_type, fmt, size):
        data = image_bytes(*size, fmt=fmt)
        assert master_data_service.validate_display_picture(content_type, data) == size

    def test_content_type_parameters_are_ignored(self):
        data = image_bytes(900, 900)
        assert master_data_service.validate_display_picture("image/PNG; charset=binary", data) == (900, 900)

    @pytest.mark.parametrize("content_type", ["image/gif", "application/pdf", "", None])
    def test_unsupported_type(self, content_type):
        with pytest.raises(ValidationError, match="JPEG, PNG, or WEBP"):
            master_data_service.validate_display_picture(content_type, image_bytes(800, 800))

    def test_over_five_megabytes(self):
        data = image_bytes(800, 800)
        data += b"\0" * (DISPLAY_PICTURE_MAX_BYTES - len(data) + 1)
        with pytest.raises(ValidationError, match="5MB"):
            master_data_service.validate_display_picture("image/png", data)

    @pytest.mark.parametrize("size", [(799, 1000), (1000, 799)])
    def test_too_small(self, size):
        with pytest.raises(ValidationError, match="at least 800x800"):
            master_data_service.validate_display_picture("image/png", image_bytes(*size))

    @pytest.mark.parametrize("size", [(3001, 1000), (1000, 3001)])
    def test_too_large(self, size):
        with pytest.raises(ValidationError, match="must not exceed 3000x3000"):
            master_data_service.validate_display_picture("image/png", image_bytes(*size))

    def test_unreadable_bytes(self):
        with pytest.raises(ValidationError, match="Unable to validate"):
            master_data_service.validate_display_picture("image/jpeg", b"not an image")

    def test_type_must_match_content(self):
        with pytest.raises(ValidationError) as exc:
            master_data_service.validate_display_picture("image/jpeg", image_bytes(800, 800, fmt="PNG"))
        assert exc.value.details == {"file": "Content does not match type"}


# =============================================================================
# VALIDATE ENDPOINT
# =============================================================================

class TestDisplayPictureRoute:

    def post_picture(self, client, headers, item_id, data, content_type="image/png"):
        return client.post(
            f"/api/master-data/items/{item_id}/display-picture/validate",
            headers=headers,
            data={"file": (BytesIO(data), "picture.png", content_type)},
            content_type="multipart/form-data",
        )

    def test_valid_picture(self, client, manager_headers, item_a):
        data = image_bytes(1200, 800)
        resp = self.post_picture(client, manager_headers, item_a.id, data)
        assert resp.status_code == 200
        assert resp.json == {
            "valid": True,
            "width": 1200,
            "height": 800,
            "content_type": "image/png",
            "size_bytes": len(data),
        }

    def test_invalid_picture(self, client, manager_headers, item_a):
        resp = self.post_picture(client, manager_headers, item_a.id, image_bytes(640, 480))
        assert resp.status_code == 400
        assert "at least 800x800" in resp.json["error"]

    def test_missing_file(self, client, manager_headers, item_a):
        resp = client.post(
            f"/api/master-data/items/{item_a.id}/display-picture/validate",
            headers=manager_headers,
            data={"note": "no file"},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400
        assert resp.json["details"] == {"file": "Missing"}

    def test_other_org_item_not_found(self, client, manager_headers, item_b):
        resp = self.post_picture(client, manager_headers, item_b.id, image_bytes(800, 800))
        assert resp.status_code == 404

    def test_clerk_cannot_validate(self, client, clerk_headers, item_a):
        resp = self.post_picture(client, clerk_headers, item_a.id, image_bytes(800, 800))
        assert resp.status_code == 403

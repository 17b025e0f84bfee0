"""バリアント付き商品テンプレートの組み立てと画像 Base64 化のテスト。"""
import base64
import io

from PIL import Image

from tposlive.store.models import AttributeValueRow
from tposlive.tpos.products import build_variant_template_payload, group_by_attribute
from tposlive.util import http, image


def value(vid, attribute_id, name, order, tpos_id, tpos_attr):
    return AttributeValueRow(
        id=vid, attribute_id=attribute_id, attribute_name=name, display_order=order,
        value=vid.upper(), code=vid, tpos_id=tpos_id, tpos_attribute_id=tpos_attr,
        sequence=None, name_get=f"{name}: {vid.upper()}",
    )


VALUES = [
    value("red", "color", "Màu", 0, 3, 11),
    value("blue", "color", "Màu", 0, 4, 11),
    value("s", "size", "Size", 1, 1, 10),
    value("m", "size", "Size", 1, 2, 10),
]


def test_group_by_attribute_keeps_display_order():
    groups = group_by_attribute(list(reversed(VALUES)))
    assert [[v.id for v in g] for g in groups] == [["blue", "red"], ["m", "s"]]


def test_variants_are_cartesian_product():
    payload = build_variant_template_payload("N55", "ÁO", 100, 150, VALUES)
    names = [v["Name"] for v in payload["ProductVariants"]]
    assert payload["ProductVariantCount"] == 4
    assert names == ["N55 (S, RED)", "N55 (M, RED)", "N55 (S, BLUE)", "N55 (M, BLUE)"]
    assert len(payload["AttributeLines"]) == 2
    assert payload["AttributeLines"][0]["AttributeId"] == 11
    assert payload["ListPrice"] == 150
    assert payload["PurchasePrice"] == 100
    assert payload["Image"] is None


def test_no_attributes_means_no_variants():
    payload = build_variant_template_payload("N55", "ÁO", 0, 0, [])
    assert payload["ProductVariants"] == []
    assert payload["ProductVariantCount"] == 0


def test_png_is_converted_to_jpeg_base64():
    buf = io.BytesIO()
    Image.new("RGBA", (4, 4), (255, 0, 0, 128)).save(buf, format="PNG")
    encoded = image.to_base64_jpeg(buf.getvalue())
    raw = base64.b64decode(encoded)
    assert raw[:2] == b"\xff\xd8"


def test_non_image_bytes_fall_back_to_raw_base64():
    assert image.to_base64_jpeg(b"not an image") == base64.b64encode(b"not an image").decode("ascii")


def test_download_failure_returns_none(monkeypatch):
    def boom(url, **kwargs):
        raise OSError("network down")

    monkeypatch.setattr(http, "download_bytes", boom)
    assert image.image_url_to_base64("https://example.com/a.png") is None

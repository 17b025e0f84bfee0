"""
TPOS 商品系 API: 商品コード検索、発注明細からのバリアント付き商品テンプレート作成。
"""
from __future__ import annotations

import itertools
import logging
from typing import Any, Optional

from tposlive.store.models import AttributeValueRow
from tposlive.tpos import api_client, models
from tposlive.util import http

logger = logging.getLogger(__name__)

PRODUCT_VIEW_PATH = "odata/Product/ODataService.GetViewV2"
INSERT_TEMPLATE_PATH = (
    "odata/ProductTemplate/ODataService.InsertV2?$expand=ProductVariants,UOM,UOMPO"
)

_UOM = {
    "Id": 1,
    "Name": "Cái",
    "Rounding": 0.001,
    "Active": True,
    "Factor": 1,
    "FactorInv": 1,
    "UOMType": "reference",
    "CategoryId": 1,
    "CategoryName": "Đơn vị",
    "ShowUOMType": "Đơn vị gốc của nhóm này",
    "NameGet": "Cái",
    "ShowFactor": 1,
}


def search_product_by_code(product_code: str, token: str) -> Optional[models.RemoteProduct]:
    """DefaultCode 完全一致の有効商品を新しい順に検索し、先頭を返す。"""
    code = product_code.replace("'", "''")
    params = {
        "Active": "true",
        "$top": 50,
        "$orderby": "DateCreated desc",
        "$filter": f"(Active eq true) and (DefaultCode eq '{code}')",
        "$count": "true",
    }
    data = http.get_json(
        api_client.url(PRODUCT_VIEW_PATH), params=params, headers=api_client.build_headers(token)
    )
    values = data.get("value") or [] if isinstance(data, dict) else []
    if not values:
        return None
    return models.RemoteProduct.from_api(values[0])


def group_by_attribute(values: list[AttributeValueRow]) -> list[list[AttributeValueRow]]:
    """display_order 順に属性ごとの値リストへまとめる（値の並びは入力順を保持）。"""
    groups: dict[str, list[AttributeValueRow]] = {}
    order: list[tuple[int, str]] = []
    for v in values:
        if v.attribute_id not in groups:
            groups[v.attribute_id] = []
            order.append((v.display_order, v.attribute_id))
        groups[v.attribute_id].append(v)
    return [groups[aid] for _, aid in sorted(order, key=lambda x: x[0])]


def _value_dict(v: AttributeValueRow, with_code: bool) -> dict[str, Any]:
    return {
        "Id": v.tpos_id,
        "Name": v.value,
        "Code": v.code if with_code else None,
        "Sequence": v.sequence if with_code else None,
        "AttributeId": v.tpos_attribute_id,
        "AttributeName": v.attribute_name,
        "PriceExtra": None,
        "NameGet": v.name_get,
        "DateCreated": None,
    }


def build_variant_template_payload(
    base_product_code: str,
    product_name: str,
    purchase_price: float,
    selling_price: float,
    attribute_values: list[AttributeValueRow],
    image_base64: Optional[str] = None,
) -> dict[str, Any]:
    """
    属性値の全組み合わせ（直積）をバリアントとして持つ商品テンプレートを組み立てる。
    NameGet は属性順を逆にした表記、AttributeValues は選択順のまま。
    """
    groups = group_by_attribute(attribute_values)
    attribute_lines = [
        {
            "Attribute": {
                "Id": group[0].tpos_attribute_id,
                "Name": group[0].attribute_name,
                "Code": group[0].attribute_name,
                "Sequence": None,
                "CreateVariant": True,
            },
            "Values": [_value_dict(v, with_code=True) for v in group],
            "AttributeId": group[0].tpos_attribute_id,
        }
        for group in groups
    ]
    variants = []
    for combo in itertools.product(*groups) if groups else []:
        variant_name = f"{base_product_code} ({', '.join(v.value for v in reversed(combo))})"
        variants.append({
            "Id": 0,
            "NameTemplate": base_product_code,
            "NameTemplateNoSign": base_product_code,
            "NameGet": variant_name,
            "Name": variant_name,
            "PriceVariant": selling_price,
            "SaleOK": True,
            "PurchaseOK": True,
            "Active": True,
            "Type": "product",
            "InvoicePolicy": "order",
            "PurchaseMethod": "receive",
            "AvailableInPOS": True,
            "Thumbnails": [],
            "TaxesIds": [],
            "NameCombos": [],
            "AttributeValues": [_value_dict(v, with_code=False) for v in combo],
        })
    return {
        "Id": 0,
        "Name": product_name,
        "Type": "product",
        "ShowType": "Có thể lưu trữ",
        "ListPrice": selling_price,
        "PurchasePrice": purchase_price,
        "DiscountSale": 0,
        "DiscountPurchase": 0,
        "StandardPrice": 0,
        "SaleOK": True,
        "PurchaseOK": True,
        "Active": True,
        "UOMId": 1,
        "UOMPOId": 1,
        "IsProductVariant": False,
        "DefaultCode": base_product_code,
        "Barcode": base_product_code,
        "CategId": 2,
        "CompanyId": 1,
        "Tracking": "none",
        "InvoicePolicy": "order",
        "PurchaseMethod": "receive",
        "AvailableInPOS": True,
        "Image": image_base64,
        "Thumbnails": [],
        "ProductVariantCount": len(variants),
        "UOM": dict(_UOM),
        "UOMPO": dict(_UOM),
        "AttributeLines": attribute_lines,
        "Items": [],
        "UOMLines": [],
        "ComboProducts": [],
        "ProductSupplierInfos": [],
        "ProductVariants": variants,
    }


def insert_product_template(payload: dict[str, Any], token: str) -> models.VariantCreateResult:
    data = http.post_json(
        api_client.url(INSERT_TEMPLATE_PATH), payload, headers=api_client.build_headers(token)
    )
    pid = data.get("Id") if isinstance(data, dict) else None
    return models.VariantCreateResult(
        tpos_product_id=int(pid) if pid is not None else None,
        variant_count=len(payload.get("ProductVariants") or []),
    )

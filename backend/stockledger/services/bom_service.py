# Overview: Bill of materials; resolves a product quantity into raw material requirements.

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from ..extensions import db
from ..models import Product, ProductStructure, RawMaterial
from ..validation import QUANTITY_QUANTUM, parse_id, parse_quantity
from .concurrency import run_in_transaction
from .errors import ConflictingUnique, InvalidArgument, NoStructureDefined, NotFound
from .stock_service import get_product, get_raw_material


@dataclass(frozen=True)
class MaterialRequirement:
    raw_material_id: int
    material_name: str
    unit: str | None
    quantity: Decimal

    def to_dict(self) -> dict:
        return {
            "raw_material_id": self.raw_material_id,
            "material_name": self.material_name,
            "unit": self.unit,
            "quantity": str(self.quantity),
        }


def resolve_bom(product_id: int, quantity: Decimal) -> list[MaterialRequirement]:
    """
    Raw material needed for `quantity` units of a product.

    Pure read. Raises NotFound for an unknown product and NoStructureDefined
    when the product has no BOM lines.
    """
    product = get_product(product_id)
    rows = (
        db.session.query(ProductStructure)
        .filter(ProductStructure.product_id == product_id)
        .order_by(ProductStructure.raw_material_id.asc())
        .all()
    )
    if not rows:
        raise NoStructureDefined(product.id, product.name)

    return [
        MaterialRequirement(
            raw_material_id=row.raw_material_id,
            material_name=row.raw_material.name,
            unit=row.raw_material.unit,
            quantity=(Decimal(row.quantity_required) * quantity).quantize(QUANTITY_QUANTUM, rounding=ROUND_HALF_UP),
        )
        for row in rows
    ]


def define_structure(product_id: int, items: list[dict]) -> list[ProductStructure]:
    """
    Add BOM lines to a product.

    items: [{"raw_material_id": int, "quantity_required": number}, ...]
    A (product, raw material) pair may appear only once, both within the
    request and against lines already stored.
    """
    if not isinstance(items, list) or not items:
        raise InvalidArgument("items must be a non-empty list")

    parsed: list[tuple[int, Decimal]] = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise InvalidArgument(f"Item {index} must be an object")
        parsed.append((
            parse_id(item.get("raw_material_id"), f"items[{index}].raw_material_id"),
            parse_quantity(item.get("quantity_required"), f"items[{index}].quantity_required"),
        ))

    material_ids = [material_id for material_id, _ in parsed]
    duplicates = sorted({m for m in material_ids if material_ids.count(m) > 1})
    if duplicates:
        raise ConflictingUnique(
            "Raw material listed more than once",
            details={"raw_material_ids": duplicates},
        )

    def _op():
        get_product(product_id)
        existing = {
            row.raw_material_id
            for row in db.session.query(ProductStructure).filter_by(product_id=product_id).all()
        }
        clashes = sorted(existing.intersection(material_ids))
        if clashes:
            raise ConflictingUnique(
                "Structure already defined for raw material(s)",
                details={"product_id": product_id, "raw_material_ids": clashes},
            )

        created = []
        for material_id, quantity_required in parsed:
            get_raw_material(material_id)
            line = ProductStructure(
                product_id=product_id,
                raw_material_id=material_id,
                quantity_required=quantity_required,
            )
            db.session.add(line)
            created.append(line)
        db.session.flush()
        return created

    return run_in_transaction(_op)


def update_structure_line(structure_id: int, quantity_required: Decimal) -> ProductStructure:
    def _op():
        line = db.session.get(ProductStructure, structure_id)
        if line is None:
            raise NotFound("Product structure", structure_id)
        line.quantity_required = quantity_required
        db.session.flush()
        return line

    return run_in_transaction(_op)


def delete_structure_line(structure_id: int) -> None:
    def _op():
        line = db.session.get(ProductStructure, structure_id)
        if line is None:
            raise NotFound("Product structure", structure_id)
        db.session.delete(line)

    run_in_transaction(_op)


def list_structures() -> list[dict]:
    """BOM lines grouped by product."""
    rows = (
        db.session.query(ProductStructure, Product, RawMaterial)
        .join(Product, Product.id == ProductStructure.product_id)
        .join(RawMaterial, RawMaterial.id == ProductStructure.raw_material_id)
        .order_by(ProductStructure.product_id.asc(), ProductStructure.id.asc())
        .all()
    )

    grouped: dict[int, dict] = {}
    for line, product, material in rows:
        entry = grouped.setdefault(product.id, {
            "product_id": product.id,
            "product_name": product.name,
            "raw_materials": [],
        })
        entry["raw_materials"].append({
            "id": line.id,
            "raw_material_id": material.id,
            "material_name": material.name,
            "unit": material.unit,
            "quantity_required": str(line.quantity_required),
        })
    return list(grouped.values())

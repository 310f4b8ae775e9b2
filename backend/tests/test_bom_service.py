# Overview: Pytest coverage for bill of materials resolution and maintenance.

from decimal import Decimal

import pytest

from stockledger.services import bom_service, stock_service
from stockledger.services.errors import ConflictingUnique, InvalidArgument, NoStructureDefined, NotFound


def test_resolve_multiplies_per_unit_requirement(db_session, sanch, steel, copper):
    requirements = bom_service.resolve_bom(sanch.id, Decimal("5"))

    by_material = {r.raw_material_id: r for r in requirements}
    assert by_material[steel.id].quantity == Decimal("10")
    assert by_material[steel.id].material_name == "Steel"
    assert by_material[steel.id].unit == "kg"
    assert by_material[copper.id].quantity == Decimal("5")


def test_resolve_unknown_product(db_session):
    with pytest.raises(NotFound):
        bom_service.resolve_bom(999, Decimal("1"))


def test_resolve_without_structure(db_session):
    product = stock_service.create_product("Loose Part")

    with pytest.raises(NoStructureDefined) as exc:
        bom_service.resolve_bom(product.id, Decimal("1"))
    assert exc.value.status_code == 422


def test_duplicate_pair_against_stored_line(db_session, sanch, steel):
    with pytest.raises(ConflictingUnique):
        bom_service.define_structure(sanch.id, [{"raw_material_id": steel.id, "quantity_required": 3}])


def test_duplicate_pair_within_request(db_session, steel):
    product = stock_service.create_product("Frame")

    with pytest.raises(ConflictingUnique):
        bom_service.define_structure(product.id, [
            {"raw_material_id": steel.id, "quantity_required": 1},
            {"raw_material_id": steel.id, "quantity_required": 2},
        ])

    with pytest.raises(NoStructureDefined):
        bom_service.resolve_bom(product.id, Decimal("1"))


def test_define_requires_positive_quantity(db_session, steel):
    product = stock_service.create_product("Frame")

    with pytest.raises(InvalidArgument):
        bom_service.define_structure(product.id, [{"raw_material_id": steel.id, "quantity_required": 0}])


def test_update_and_delete_line(db_session, sanch, steel, copper):
    lines = {line["raw_material_id"]: line for line in bom_service.list_structures()[0]["raw_materials"]}

    bom_service.update_structure_line(lines[steel.id]["id"], Decimal("4"))
    bom_service.delete_structure_line(lines[copper.id]["id"])

    requirements = bom_service.resolve_bom(sanch.id, Decimal("2"))
    assert [(r.raw_material_id, r.quantity) for r in requirements] == [(steel.id, Decimal("8"))]


def test_list_structures_grouped_by_product(db_session, sanch):
    groups = bom_service.list_structures()

    assert len(groups) == 1
    assert groups[0]["product_name"] == "Sanch"
    assert sorted(m["material_name"] for m in groups[0]["raw_materials"]) == ["Copper", "Steel"]


def test_resolve_fractional_requirement_is_exact(db_session, steel):
    product = stock_service.create_product("Clip")
    bom_service.define_structure(product.id, [{"raw_material_id": steel.id, "quantity_required": "0.125"}])

    assert bom_service.resolve_bom(product.id, Decimal("3"))[0].quantity == Decimal("0.375")
    # Rounded half up to the stored precision
    assert bom_service.resolve_bom(product.id, Decimal("0.5"))[0].quantity == Decimal("0.063")

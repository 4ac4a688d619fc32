"""Permission Routes — tests for cascade queries and grant administration.

Tests cover:
    - /check reflects the four-tier cascade (specific denial beats global grant)
    - /units and /modules serialize ALL_* as all=true
    - Grant CRUD: ADMIN only for writes, 409 on same NULL-aware scope, 404 on unknown refs
    - Bulk creation skips duplicates
    - Removing every grant of a user returns the count
    - OPERATOR cannot query permissions (403)
"""

from remessa.core.domain_types import UserRole


async def test_check_specific_denial_beats_global(
    client, auth, manager, make_user, make_grant, unit, other_unit,
):
    user = await make_user(UserRole.OPERATOR, "misto@econect.ms.gov.br")
    await make_grant(user, can_view=True)
    await make_grant(user, unit_id=unit.id, can_view=False)

    denied = await client.get("/api/v1/permissions/check", params={
        "user_id": user.id, "action": "view", "unit_id": unit.id,
    }, headers=auth(manager))
    allowed = await client.get("/api/v1/permissions/check", params={
        "user_id": user.id, "action": "view", "unit_id": other_unit.id, "module": "CONTRATO",
    }, headers=auth(manager))

    assert denied.status_code == 200
    assert denied.json()["allowed"] is False
    assert allowed.json()["allowed"] is True
    assert allowed.json()["module"] == "CONTRATO"


async def test_permitted_units_and_modules(client, auth, manager, operator, admin, unit):
    units = await client.get("/api/v1/permissions/units", params={
        "user_id": operator.id, "action": "transmit",
    }, headers=auth(manager))
    assert units.json() == {
        "user_id": operator.id, "action": "transmit", "all": False, "items": [unit.id],
    }

    modules = await client.get("/api/v1/permissions/modules", params={
        "user_id": operator.id, "action": "view", "unit_id": unit.id,
    }, headers=auth(manager))
    assert modules.json()["all"] is True

    admin_units = await client.get("/api/v1/permissions/units", params={
        "user_id": admin.id, "action": "delete",
    }, headers=auth(manager))
    assert admin_units.json()["all"] is True
    assert admin_units.json()["items"] == []


async def test_operator_cannot_query(client, auth, operator):
    response = await client.get("/api/v1/permissions/units", params={
        "user_id": operator.id, "action": "view",
    }, headers=auth(operator))
    assert response.status_code == 403


async def test_grant_crud(client, auth, admin, make_user, unit):
    user = await make_user(UserRole.OPERATOR, "novo@econect.ms.gov.br")

    created = await client.post("/api/v1/permissions/grants", json={
        "user_id": user.id, "unit_id": unit.id, "module": "CONTRATO", "can_view": True,
    }, headers=auth(admin))
    assert created.status_code == 201
    grant = created.json()
    assert grant["can_view"] is True
    assert grant["can_transmit"] is False

    updated = await client.patch(
        f"/api/v1/permissions/grants/{grant['id']}",
        json={"can_transmit": True}, headers=auth(admin),
    )
    assert updated.json()["can_transmit"] is True
    assert updated.json()["can_view"] is True

    listed = await client.get(
        "/api/v1/permissions/grants", params={"user_id": user.id}, headers=auth(admin),
    )
    assert [g["id"] for g in listed.json()] == [grant["id"]]

    deleted = await client.delete(
        f"/api/v1/permissions/grants/{grant['id']}", headers=auth(admin),
    )
    assert deleted.status_code == 204
    missing = await client.get(
        f"/api/v1/permissions/grants/{grant['id']}", headers=auth(admin),
    )
    assert missing.status_code == 404


async def test_same_scope_with_null_unit_is_409(client, auth, admin, make_user):
    user = await make_user(UserRole.OPERATOR, "dup@econect.ms.gov.br")
    body = {"user_id": user.id, "can_view": True}

    first = await client.post("/api/v1/permissions/grants", json=body, headers=auth(admin))
    second = await client.post("/api/v1/permissions/grants", json=body, headers=auth(admin))

    assert first.status_code == 201
    assert second.status_code == 409


async def test_grant_unknown_references_are_404(client, auth, admin, make_user):
    user = await make_user(UserRole.OPERATOR, "ref@econect.ms.gov.br")

    no_user = await client.post(
        "/api/v1/permissions/grants", json={"user_id": 999}, headers=auth(admin),
    )
    no_unit = await client.post(
        "/api/v1/permissions/grants", json={"user_id": user.id, "unit_id": 999},
        headers=auth(admin),
    )
    assert no_user.status_code == 404
    assert no_unit.status_code == 404


async def test_manager_cannot_write_grants(client, auth, manager, operator):
    response = await client.post(
        "/api/v1/permissions/grants", json={"user_id": operator.id}, headers=auth(manager),
    )
    assert response.status_code == 403


async def test_bulk_create_skips_duplicates(client, auth, admin, operator, unit, other_unit):
    response = await client.post("/api/v1/permissions/grants/bulk", json={"grants": [
        {"user_id": operator.id, "unit_id": unit.id},
        {"user_id": operator.id, "unit_id": other_unit.id, "can_view": True},
        {"user_id": operator.id, "unit_id": other_unit.id, "can_edit": True},
    ]}, headers=auth(admin))

    assert response.status_code == 201
    assert response.json()["skipped"] == 2
    assert len(response.json()["created"]) == 1
    assert response.json()["created"][0]["unit_id"] == other_unit.id


async def test_remove_all_user_grants(client, auth, admin, operator, make_grant):
    await make_grant(operator, module="EMPENHO", can_view=True)

    response = await client.delete(
        f"/api/v1/permissions/grants/users/{operator.id}", headers=auth(admin),
    )
    assert response.json() == {"count": 2}

    check = await client.get("/api/v1/permissions/check", params={
        "user_id": operator.id, "action": "view",
    }, headers=auth(admin))
    assert check.json()["allowed"] is False

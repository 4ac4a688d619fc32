"""Source Record & Validation Routes — tests for ingestion and on-demand validation.

Tests cover:
    - Ingestion: 201 RECEIVED, 404 unknown unit, 403 without create, 400 bad competency
    - Listing restricted to viewable units
    - PATCH needs edit; DELETE refused while an active remittance exists
    - validate accumulates, revalidate replaces, DELETE clears with a count
    - Cross-record result search and single result lookup
"""

from remessa.core.domain_types import Module


async def _ingest(client, auth, user, unit_id, payload, module="COMPRA_DIRETA", competency="2024-05"):
    return await client.post(
        "/api/v1/source-records",
        json={"unit_id": unit_id, "module": module, "competency": competency, "payload": payload},
        headers=auth(user),
    )


# ─── ingestion ───────────────────────────────────────────────────

async def test_ingest_record(client, auth, operator, unit):
    response = await _ingest(client, auth, operator, unit.id, {"valor": 1000})

    assert response.status_code == 201
    data = response.json()
    assert data["status"] == "RECEIVED"
    assert data["payload"] == {"valor": 1000}


async def test_ingest_unknown_unit_is_404(client, auth, operator):
    response = await _ingest(client, auth, operator, 999, {})
    assert response.status_code == 404


async def test_ingest_without_create_is_403(client, auth, viewer, unit):
    response = await _ingest(client, auth, viewer, unit.id, {})
    assert response.status_code == 403


async def test_ingest_bad_competency_is_400(client, auth, operator, unit):
    response = await _ingest(client, auth, operator, unit.id, {}, competency="2024-5")
    assert response.status_code == 400
    fields = [d["field"] for d in response.json()["error"]["details"]]
    assert "body.competency" in fields


async def test_list_only_viewable_units(client, auth, viewer, make_record, unit, other_unit):
    await make_record(unit, Module.CONTRATO, {"n": 1})
    await make_record(other_unit, Module.CONTRATO, {"n": 2})

    response = await client.get("/api/v1/source-records", headers=auth(viewer))

    assert response.json()["total"] == 1
    assert response.json()["data"][0]["unit_id"] == unit.id


# ─── update / delete ─────────────────────────────────────────────

async def test_viewer_cannot_patch(client, auth, viewer, contract_record):
    response = await client.patch(
        f"/api/v1/source-records/{contract_record.id}",
        json={"payload": {"vigencia": 10}}, headers=auth(viewer),
    )
    assert response.status_code == 403


async def test_patch_then_revalidate_clears_alert(client, auth, operator, contract_record, ct001_rule):
    first = await client.post(
        f"/api/v1/validations/source-records/{contract_record.id}/validate",
        headers=auth(operator),
    )
    assert first.json()["summary"]["alertas"] == 1

    patched = await client.patch(
        f"/api/v1/source-records/{contract_record.id}",
        json={"payload": {"vigencia": 180}}, headers=auth(operator),
    )
    assert patched.status_code == 200

    again = await client.post(
        f"/api/v1/validations/source-records/{contract_record.id}/revalidate",
        headers=auth(operator),
    )
    assert again.json()["validations"] == []
    stored = await client.get(
        f"/api/v1/validations/source-records/{contract_record.id}", headers=auth(operator),
    )
    assert stored.json() == []


async def test_delete_refused_with_active_remittance(client, auth, operator, contract_record):
    await client.post(
        "/api/v1/remittances", json={"source_record_id": contract_record.id},
        headers=auth(operator),
    )

    response = await client.delete(
        f"/api/v1/source-records/{contract_record.id}", headers=auth(operator),
    )
    assert response.status_code == 409


async def test_delete_detaches_finished_remittances(client, auth, operator, contract_record):
    created = (await client.post(
        "/api/v1/remittances", json={"source_record_id": contract_record.id},
        headers=auth(operator),
    )).json()
    remittance_id = created["remittance"]["id"]
    await client.post(f"/api/v1/remittances/{remittance_id}/send", headers=auth(operator))

    response = await client.delete(
        f"/api/v1/source-records/{contract_record.id}", headers=auth(operator),
    )
    assert response.status_code == 204

    remittance = await client.get(
        f"/api/v1/remittances/{remittance_id}", headers=auth(operator),
    )
    assert remittance.json()["status"] == "SENT"
    assert remittance.json()["source_record_id"] is None
    gone = await client.get(
        f"/api/v1/source-records/{contract_record.id}", headers=auth(operator),
    )
    assert gone.status_code == 404


# ─── validation results ──────────────────────────────────────────

async def test_validate_accumulates_and_clear_counts(client, auth, operator, contract_record, ct001_rule):
    for _ in range(2):
        await client.post(
            f"/api/v1/validations/source-records/{contract_record.id}/validate",
            headers=auth(operator),
        )

    cleared = await client.delete(
        f"/api/v1/validations/source-records/{contract_record.id}", headers=auth(operator),
    )
    assert cleared.json() == {"count": 2}


async def test_validate_unknown_record_is_404(client, auth, viewer):
    response = await client.post(
        "/api/v1/validations/source-records/999/validate", headers=auth(viewer),
    )
    assert response.status_code == 404


async def test_viewer_cannot_validate(client, auth, viewer, contract_record):
    response = await client.post(
        f"/api/v1/validations/source-records/{contract_record.id}/validate",
        headers=auth(viewer),
    )
    assert response.status_code == 403


async def test_search_and_get_result(client, auth, operator, viewer, contract_record, ct001_rule):
    await client.post(
        f"/api/v1/validations/source-records/{contract_record.id}/validate",
        headers=auth(operator),
    )

    page = await client.get(
        "/api/v1/validations/results", params={"level": "ALERTA"}, headers=auth(viewer),
    )
    assert page.json()["total"] == 1
    result = page.json()["data"][0]
    assert result["code"] == "CT001"
    assert result["value"] == "400"

    single = await client.get(
        f"/api/v1/validations/results/{result['id']}", headers=auth(viewer),
    )
    assert single.status_code == 200
    assert single.json()["field"] == "vigencia"

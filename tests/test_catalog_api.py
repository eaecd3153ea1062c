# NG-HEADER: Nombre de archivo: test_catalog_api.py
# NG-HEADER: Ubicación: tests/test_catalog_api.py
# NG-HEADER: Descripción: Catálogos: marcas, tipos, modelos, suplidores y estados
# NG-HEADER: Lineamientos: Ver AGENTS.md
import pytest


@pytest.mark.asyncio
async def test_brand_and_type_create_list_and_conflict(client):
    r = await client.post("/brands", json={"nombre": "  Xiaomi "})
    assert r.status_code == 201
    assert r.json()["nombre"] == "Xiaomi"
    r = await client.post("/brands", json={"nombre": "xiaomi"})
    assert r.status_code == 409
    assert r.json() == {"message": "La marca ya existe", "code": "conflict"}
    assert (await client.post("/brands", json={})).status_code == 400
    assert [b["nombre"] for b in (await client.get("/brands")).json()] == ["Xiaomi"]

    r = await client.post("/product-types", json={"nombre": "Accesorios"})
    assert r.status_code == 201
    assert (await client.get("/product-types")).json()[0]["nombre"] == "Accesorios"


@pytest.mark.asyncio
async def test_models_are_scoped_to_brand(client, catalog):
    marca, tipo = catalog["marca"], catalog["tipo"]
    r = await client.post("/models", json={"nombre": "A25", "brandId": marca.id, "productTypeId": tipo.id})
    assert r.status_code == 201, r.text
    assert r.json()["brandId"] == marca.id

    r = await client.post("/models", json={"nombre": "a15", "brandId": marca.id, "productTypeId": tipo.id})
    assert r.status_code == 409
    r = await client.post("/models", json={"nombre": "Z", "brandId": 999, "productTypeId": tipo.id})
    assert r.json()["message"] == "Marca no válida"

    names = [m["nombre"] for m in (await client.get("/models", params={"brand_id": marca.id})).json()]
    assert names == ["A15", "A25"]
    assert (await client.get("/models", params={"brand_id": 999})).json() == []


@pytest.mark.asyncio
async def test_suppliers(client):
    r = await client.post("/suppliers", json={"nombreEmpresa": "Importadora Sur", "telefono": "809-555-0101"})
    assert r.status_code == 201
    assert r.json()["activo"] is True
    assert (await client.post("/suppliers", json={"nombreEmpresa": "importadora sur"})).status_code == 409
    assert (await client.post("/suppliers", json={"telefono": "1"})).status_code == 400
    assert (await client.get("/suppliers")).json()[0]["telefono"] == "809-555-0101"


@pytest.mark.asyncio
async def test_pedido_estados_with_effective_phase(client, catalog):
    estados = (await client.get("/pedido-estados")).json()
    assert [(e["nombre"], e["faseEfectiva"]) for e in estados] == [
        ("Pendiente", "pendiente"),
        ("Recibido", "recibido"),
        ("Cancelado", "cancelado"),
    ]
    r = await client.post("/pedido-estados", json={"nombre": "En tránsito", "posicion": 3})
    assert r.status_code == 201
    nuevo = r.json()
    assert nuevo["fase"] is None

    r = await client.patch(f"/pedido-estados/{nuevo['id']}", json={"fase": "PENDIENTE"})
    assert r.json()["faseEfectiva"] == "pendiente"
    r = await client.patch(f"/pedido-estados/{nuevo['id']}", json={"fase": "perdido"})
    assert r.status_code == 400
    assert r.json()["message"] == "Fase no válida"
    assert (await client.patch("/pedido-estados/999", json={"activo": False})).status_code == 404


@pytest.mark.asyncio
async def test_salida_estados(client, catalog):
    r = await client.post("/salida-estados", json={"nombre": "Devuelto", "descripcion": "Cliente devolvió"})
    assert r.status_code == 201
    r = await client.patch(f"/salida-estados/{r.json()['id']}", json={"activo": False})
    assert r.json()["activo"] is False
    names = [e["nombre"] for e in (await client.get("/salida-estados")).json()]
    assert names == ["Devuelto", "Entregado", "Pendiente de entrega"]
    r = await client.patch("/salida-estados/999", json={"activo": True})
    assert r.json() == {"message": "Estado no encontrado", "code": "not_found"}


@pytest.mark.asyncio
async def test_seller_reads_catalog_but_cannot_write(client_seller):
    assert (await client_seller.get("/brands")).status_code == 200
    assert (await client_seller.post("/brands", json={"nombre": "LG"})).status_code == 403


@pytest.mark.asyncio
async def test_supplier_update_and_delete(client, catalog):
    r = await client.post("/suppliers", json={"nombreEmpresa": "Importadora Sur"})
    sur = r.json()
    r = await client.patch(f"/suppliers/{sur['id']}", json={"telefono": " 809-555-0102 ", "activo": False})
    assert r.status_code == 200, r.text
    assert (r.json()["telefono"], r.json()["activo"]) == ("809-555-0102", False)
    r = await client.patch(f"/suppliers/{sur['id']}", json={"nombreEmpresa": "distribuidora norte"})
    assert r.status_code == 409
    assert (await client.patch(f"/suppliers/{sur['id']}", json={"otro": 1})).status_code == 400
    assert (await client.patch("/suppliers/999", json={"activo": True})).status_code == 404

    assert (await client.delete(f"/suppliers/{sur['id']}")).status_code == 204
    assert (await client.delete(f"/suppliers/{sur['id']}")).status_code == 404


@pytest.mark.asyncio
async def test_supplier_with_orders_cannot_be_deleted(client, catalog):
    supplier = catalog["supplier"]
    r = await client.post(
        "/pedidos",
        json={
            "supplierId": supplier.id,
            "cantidadSolicitada": 2,
            "productTypeId": catalog["tipo"].id,
            "brandId": catalog["marca"].id,
            "modelId": catalog["modelo"].id,
        },
    )
    assert r.status_code == 201, r.text
    r = await client.delete(f"/suppliers/{supplier.id}")
    assert r.status_code == 409
    assert r.json()["code"] == "conflict"


@pytest.mark.asyncio
async def test_salida_estado_delete_blocked_once_used(client, catalog, make_product):
    r = await client.post("/salida-estados", json={"nombre": "Apartado"})
    apartado = r.json()
    assert (await client.delete(f"/salida-estados/{apartado['id']}")).status_code == 204
    assert (await client.delete(f"/salida-estados/{apartado['id']}")).status_code == 404

    product = await make_product(stock=3)
    r = await client.post("/salidas", json={"productos": [{"productId": product.id, "cantidad": 1}]})
    assert r.status_code == 201, r.text
    used = next(e for e in (await client.get("/salida-estados")).json() if e["nombre"] == r.json()["estado"])
    r = await client.delete(f"/salida-estados/{used['id']}")
    assert r.status_code == 400
    assert r.json()["message"] == "No puedes eliminar un estado que ya se ha utilizado en una salida"

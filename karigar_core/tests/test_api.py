def create(client, **fields):
    payload = {"order_no": "R1", "design": "D1", "quantity": 10, "order_type": "RB"}
    payload.update(fields)
    response = client.post("/orders", json=payload)
    assert response.status_code == 201, response.text
    return response.json()


class TestOrdersApi:
    def test_create_and_fetch(self, client):
        order = create(client, design="d1")

        response = client.get(f"/orders/{order['order_id']}")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "Pending"
        assert body["order_type"] == "RB"

    def test_unknown_order_is_404(self, client):
        assert client.get("/orders/ghost").status_code == 404

    def test_blank_order_no_is_422(self, client):
        response = client.post("/orders", json={"order_no": " ", "design": "D1", "quantity": 1})
        assert response.status_code == 422

    def test_literal_paths_are_not_ids(self, client):
        create(client)
        summary = client.get("/orders/summary")
        assert summary.status_code == 200
        assert summary.json()["total_quantity"] == 10
        assert client.get("/orders/unmapped").json() == [
            {"design_code": "D1", "order_count": 1, "total_quantity": 10}
        ]

    def test_supply_and_return_round_trip(self, client):
        order = create(client)

        split = client.post(f"/orders/{order['order_id']}/supply", json={"supplied_qty": 4})
        assert split.status_code == 200, split.text
        fragment, remainder = split.json()["orders"]
        assert (fragment["status"], fragment["quantity"]) == ("Ready", 4)
        assert fragment["original_order_id"] == order["order_id"]
        assert (remainder["order_id"], remainder["quantity"]) == (order["order_id"], 6)

        returned = client.post("/orders/return", json=[{"order_no": "R1", "returned_qty": 4}])
        assert returned.status_code == 200
        result = returned.json()["results"][0]
        assert result["success"]
        assert result["removed"] == [fragment["order_id"]]

        rows = client.get("/orders", params={"search": "R1"}).json()
        assert [(r["order_id"], r["quantity"], r["status"]) for r in rows] == [
            (order["order_id"], 10, "Pending")
        ]

    def test_supply_errors(self, client):
        order = create(client)
        co = create(client, order_no="C1", order_type="CO")

        assert client.post(f"/orders/{order['order_id']}/supply", json={"supplied_qty": 11}).status_code == 400
        assert client.post(f"/orders/{co['order_id']}/supply", json={"supplied_qty": 1}).status_code == 400
        assert client.post("/orders/ghost/supply", json={"supplied_qty": 1}).status_code == 404

    def test_return_single_order_without_body(self, client):
        order = create(client, order_type="CO")
        client.post("/orders/mark-ready", json={"order_ids": [order["order_id"]]})

        response = client.post(f"/orders/{order['order_id']}/return")

        assert response.status_code == 200, response.text
        assert response.json()["orders"][0]["status"] == "Pending"

    def test_mark_ready_reports_per_id(self, client):
        order = create(client, order_type="CO")

        body = client.post("/orders/mark-ready", json={"order_ids": [order["order_id"], "ghost"]}).json()

        assert body["succeeded"] == 1
        assert body["failed"] == 1
        assert body["results"][1]["error"] == "not_found"
        assert body["results"][0]["orders"][0]["ready_date"] is not None

    def test_ready_range_with_bare_dates(self, client):
        order = create(client, order_type="CO")
        ready = client.post("/orders/mark-ready", json={"order_ids": [order["order_id"]]}).json()
        day = ready["results"][0]["orders"][0]["ready_date"][:10]

        rows = client.get("/orders/ready", params={"start": day, "end": day}).json()

        assert [r["order_id"] for r in rows] == [order["order_id"]]

    def test_hallmark_endpoints(self, client):
        order = create(client, order_type="CO")
        ids = {"order_ids": [order["order_id"]]}
        client.post("/orders/mark-ready", json=ids)

        assert client.post("/orders/hallmark", json=ids).json()["succeeded"] == 1
        assert client.post("/orders/hallmark/return", json=ids).json()["succeeded"] == 1
        assert client.get(f"/orders/{order['order_id']}").json()["status"] == "ReturnFromHallmark"

    def test_batch_status(self, client):
        order = create(client, order_type="CO")
        body = client.post("/orders/status", json={"order_ids": [order["order_id"]], "new_status": "Hallmark"}).json()
        assert body["results"][0]["orders"][0]["status"] == "Hallmark"

    def test_delete(self, client):
        order = create(client)
        body = client.post("/orders/delete", json={"order_ids": [order["order_id"], "ghost"]}).json()
        assert [r["success"] for r in body["results"]] == [True, False]
        assert client.get("/orders").json() == []


class TestReconciliationApi:
    def test_reconcile_then_persist(self, client):
        create(client, order_no="X9", design="D1")

        rows = [
            {"order_no": "X9", "design_code": "d1", "quantity": 10},
            {"order_no": "N1", "design_code": "D2", "quantity": 2, "karigar": "Ramesh"},
        ]
        result = client.post("/reconciliation", json=rows).json()
        assert result["already_existing_rows"] == 1
        assert [r["order_no"] for r in result["new_lines"]] == ["N1"]

        persisted = client.post("/reconciliation/persist", json=result["new_lines"]).json()["persisted"]
        assert [(o["order_no"], o["status"], o["karigar_name"]) for o in persisted] == [("N1", "Pending", "Ramesh")]

        again = client.post("/reconciliation/persist", json=result["new_lines"]).json()["persisted"]
        assert again == []

    def test_persist_rejects_blank_keys(self, client):
        response = client.post("/reconciliation/persist", json=[{"order_no": "", "design_code": "D1"}])
        assert response.status_code == 400

    def test_upload(self, client):
        create(client, order_no="Y2", design="D2")
        content = b"Order No,Design Code,Karigar,Weight,Quantity\nZ1,D3,Ramesh,1.5,2\n"

        response = client.post("/reconciliation/upload", files={"file": ("master.csv", content, "text/csv")})

        assert response.status_code == 200, response.text
        body = response.json()
        assert body["new_lines_count"] == 1
        assert [o["order_no"] for o in body["missing_in_master"]] == ["Y2"]
        assert body["file_errors"] == []


class TestDesignsApi:
    def test_mapping_resolves_on_orders(self, client):
        create(client, design="d7")

        saved = client.post("/designs", json={"design_code": "D7", "generic_name": "Ring", "karigar_name": "Ramesh"})
        assert saved.status_code == 200, saved.text
        assert saved.json()["mapping"]["design_code"] == "D7"

        orders = client.get("/orders").json()
        assert (orders[0]["generic_name"], orders[0]["karigar_name"]) == ("Ring", "Ramesh")

        client.put("/designs/d7/karigar", json={"new_karigar": "Suresh"})
        assert client.get("/orders").json()[0]["karigar_name"] == "Suresh"

    def test_lookup_and_validation(self, client):
        assert client.get("/designs/D404").status_code == 404
        assert client.put("/designs/D404", json={"generic_name": "x", "karigar_name": "y"}).status_code == 404
        bad = client.post("/designs", json={"design_code": "D1", "generic_name": "", "karigar_name": "y"})
        assert bad.status_code == 400

    def test_bulk_upload_and_queries(self, client):
        body = client.post("/designs/upload", json=[
            {"design_code": "D1", "generic_name": "Ring", "karigar_name": "Ramesh"},
            {"design_code": "D2", "generic_name": "Chain", "karigar_name": ""},
        ]).json()
        assert (body["succeeded"], body["failed"]) == (1, 1)

        assert client.post("/designs/exists", json={"design_codes": ["d1", "D2"]}).json() == [True, False]
        assert client.get("/designs/karigars").json() == ["Ramesh"]
        assert client.get("/designs/karigars/Ramesh/count").json()["design_count"] == 1

    def test_file_upload(self, client):
        content = b"Design Code,Generic Name,Karigar Name\nd1,Ring,Ramesh\n"
        body = client.post("/designs/upload-file", files={"file": ("designs.csv", content, "text/csv")}).json()
        assert body["succeeded"] == 1
        assert client.get("/designs/D1").json()["karigar_name"] == "Ramesh"


class TestKarigarsApi:
    def test_roster(self, client):
        assert client.post("/karigars", json={"name": "Ramesh"}).status_code == 201
        assert client.post("/karigars", json={"name": "ramesh"}).status_code == 400
        assert [k["name"] for k in client.get("/karigars").json()] == ["Ramesh"]


class TestAgeingApi:
    def test_tiers_and_groups(self, client):
        first = create(client, order_no="A", design="D1")
        second = create(client, order_no="B", design="D1")

        tiers = {t["order_id"]: t["tier"] for t in client.get("/ageing/tiers").json()}
        assert set(tiers) == {first["order_id"], second["order_id"]}
        assert sorted(tiers.values()) == ["newest", "oldest"]

        groups = client.get("/ageing/groups").json()
        assert [g["design_code"] for g in groups] == ["D1"]
        assert groups[0]["total_quantity"] == 20
        assert {o["age_band"] for o in groups[0]["orders"]} == {"none"}

"""订单全生命周期端到端测试

下单 -> 报价 -> 接受 -> 提交支付 -> 核验 -> 邀请 A/B -> B 表达兴趣 -> 指派 B
-> 提交 -> 通过 -> 交付 -> 完成；每一步恰好一条审计记录。
"""

from datetime import UTC, datetime, timedelta


def _headers(actor: str) -> dict[str, str]:
    return {"X-User-Id": actor}


class TestOrderLifecycle:
    async def test_full_lifecycle(self, client, store_group, actors):
        steps: list[tuple[str, str]] = []

        async def call(method, url, actor, expected_event, json=None, status=200):
            resp = await client.request(
                method, url, json=json if json is not None else {}, headers=_headers(actor)
            )
            assert resp.status_code == status, resp.text
            steps.append((url, expected_event))
            return resp.json()

        data = await call(
            "POST",
            "/api/orders",
            actors.client,
            "ORDER_CREATED",
            json={
                "topic": "Comparative politics dissertation chapter",
                "subject": "Politics",
                "deadline_at": (datetime.now(UTC) + timedelta(days=10)).isoformat(),
            },
            status=201,
        )
        order_id = data["order"]["order_id"]
        base = f"/api/orders/{order_id}"

        data = await call("PUT", f"{base}/quotation", actors.admin, "QUOTATION_SAVED",
                          json={"base_price": 300})
        assert data["quotation"]["final_price"] == 300
        await call("POST", f"{base}/quotation/accept", actors.client, "QUOTATION_ACCEPTED")
        data = await call("POST", f"{base}/payments", actors.client, "PAYMENT_SUBMITTED",
                          json={"amount": 300, "method": "bank", "reference": "s3://slip.png"},
                          status=201)
        payment_id = data["payment"]["payment_id"]

        data = await call("POST", f"/api/payments/{payment_id}/verify", actors.admin,
                          "PAYMENT_VERIFIED", json={"percentage": 100})
        work_code = data["order"]["work_code"]
        assert data["order"]["status"] == "CONFIRMED"

        await call("POST", f"{base}/invitations", actors.admin, "WRITERS_INVITED",
                   json={"writer_ids": [actors.writer_a, actors.writer_b]})
        await call("POST", f"{base}/interest", actors.writer_b, "INTEREST_SHOWN")
        data = await call("POST", f"{base}/assign", actors.admin, "WRITER_ASSIGNED",
                          json={"writer_id": actors.writer_b})
        assert data["order"]["assigned_writer_id"] == actors.writer_b

        data = await call("POST", f"{base}/submissions", actors.writer_b, "WORK_SUBMITTED",
                          json={"file_url": "s3://final.docx"}, status=201)
        submission_id = data["submission"]["submission_id"]
        await call("POST", f"/api/submissions/{submission_id}/approve", actors.admin,
                   "SUBMISSION_APPROVED", json={"feedback": "good"})
        await call("POST", f"{base}/deliver", actors.admin, "ORDER_DELIVERED")
        data = await call("POST", f"{base}/complete", actors.admin, "ORDER_COMPLETED")
        assert data["order"]["status"] == "COMPLETED"
        assert data["order"]["work_code"] == work_code

        # 每一步恰好一条审计记录，按序号连续
        trail = await store_group.audit_store.list_for_order(order_id)
        assert [e.event_type.value for e in trail] == [event for _, event in steps]
        assert [e.order_seq for e in trail] == list(range(1, len(steps) + 1))

        # A 仍为 invited，B 为 assigned
        interests = {
            i.writer_id: i.state.value
            for i in await store_group.interest_store.list_for_order(order_id)
        }
        assert interests == {actors.writer_a: "invited", actors.writer_b: "assigned"}

        # 关闭后所有招募 / QC 操作被拒绝
        resp = await client.post(
            f"{base}/invitations",
            json={"writer_ids": [actors.writer_c]},
            headers=_headers(actors.admin),
        )
        assert resp.status_code == 403
        assert resp.json()["error"]["code"] == "ORDER_CLOSED"

    async def test_client_inbox_follows_lifecycle(self, client, store_group, actors, flow):
        order = await flow.delivered(actors.writer_a)

        resp = await client.get("/api/notifications", headers=_headers(actors.client))
        titles = [n["title"] for n in resp.json()["notifications"]]

        assert any(t.startswith("Quotation ready") for t in titles)
        assert any(t.startswith("Order confirmed") for t in titles)
        assert any(t.startswith("Writer assigned") for t in titles)
        assert titles[0] == f"Order {order.work_code} delivered"

from datetime import datetime, timedelta

from sqlalchemy import update

from app.models.client import Client
from app.models.job_post import JobPost
from app.models.notification_outbox import NotificationOutbox
from app.services.alert_triggers import stage_client_registered_alert, stage_no_sale_alerts

AUTH = {"Authorization": "Bearer service-role-test"}


async def test_client_registered_alert_sent_once(api, seeded, alerts, fetch):
    body = {"clientId": seeded["client_id"]}

    first = await api.post("/email-alerts/client-registered", json=body, headers=AUTH)
    assert first.status_code == 200
    assert first.json() == {"success": True, "outcome": "queued", "delivered": True}

    second = await api.post("/email-alerts/client-registered", json=body, headers=AUTH)
    assert second.json()["outcome"] == "already_sent"

    [alert] = alerts.dispatched
    assert alert["alertType"] == "client_registered"
    assert alert["companyName"] == "Acme Builders"
    assert sorted(alert["recipientEmails"]) == ["admin@groundup.test", "sales@groundup.test"]

    [client] = await fetch(Client, Client.id == seeded["client_id"])
    assert client.welcome_email_sent is True


async def test_client_registered_requires_service_key(api, seeded):
    response = await api.post("/email-alerts/client-registered", json={"clientId": seeded["client_id"]})
    assert response.status_code == 401

    response = await api.post(
        "/email-alerts/client-registered",
        json={"clientId": seeded["client_id"]},
        headers={"Authorization": "Bearer wrong"},
    )
    assert response.status_code == 403


async def test_old_account_not_announced(db, seeded):
    later = datetime.utcnow() + timedelta(hours=1)
    outcome, outbox_id = await stage_client_registered_alert(db, seeded["client_id"], now=later)
    assert outcome == "too_old"
    assert outbox_id is None


async def test_unknown_client(db):
    assert await stage_client_registered_alert(db, "nope") == ("not_found", None)


async def test_no_sale_sweep_stages_each_job_once(api, checkout, session_factory, alerts, fetch):
    opened = (await checkout("STANDARD")).json()
    async with session_factory() as session:
        await session.execute(
            update(JobPost)
            .where(JobPost.id == opened["jobPostId"])
            .values(status="draft", created_at=datetime.utcnow() - timedelta(hours=2))
        )
        await session.commit()

    first = await api.post("/email-alerts/no-sale-sweep", headers=AUTH)
    assert first.json() == {"success": True, "alertsQueued": 1, "alertsSent": 1}

    second = await api.post("/email-alerts/no-sale-sweep", headers=AUTH)
    assert second.json()["alertsQueued"] == 0

    [alert] = alerts.dispatched
    assert alert["alertType"] == "no_sale_job_staged"
    assert alert["jobTitle"] == "Journeyman Electrician"
    assert alert["dashboardUrl"].endswith("/dashboard/job-staging")

    [row] = await fetch(NotificationOutbox)
    assert row.dedupe_key == f"no_sale_job_staged:{opened['jobPostId']}"


async def test_no_sale_sweep_skips_recent_and_pending_jobs(db, checkout):
    await checkout("STANDARD")
    assert await stage_no_sale_alerts(db) == []
    # pending_payment is not a staged draft even when old
    assert await stage_no_sale_alerts(db, now=datetime.utcnow() + timedelta(hours=3)) == []

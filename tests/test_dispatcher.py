"""Tests for the CRM client and the side-effect dispatcher."""

import asyncio
import json

import httpx
import pytest

from conftest import FakeCrmClient, FakeSmsSender
from database.models import Lead
from lead_scoring.crm_client import CrmClient, CrmContact, CrmError
from lead_scoring.dispatcher import SideEffectDispatcher
from lead_scoring.form_config import contact_field_ids, default_form_config, normalize_config
from lead_scoring.progress_store import LeadProgressStore, ProgressPayload, lead_contact


def _lead(**fields):
    defaults = dict(
        id="lead-1",
        session_id="s1",
        source="form",
        nome="Ana Maria Souza",
        email="ana@example.com",
        telefone="+15551234",
        custom_answers={"localizacao": "EUA", "cidadeEstado": "Orlando, FL"},
        classification="HOT",
        score_total=21,
        notificacao_enviada=False,
        crm_sync_status="unsynced",
        form_completo=True,
    )
    defaults.update(fields)
    return Lead(**defaults)


def _renamed_contact_config():
    return normalize_config({
        "questions": [
            {"id": "name", "order": 1, "title": "Name?", "type": "text"},
            {"id": "phone", "order": 2, "title": "Phone?", "type": "tel"},
            {"id": "mail", "order": 3, "title": "Email?", "type": "email", "required": False},
        ],
        "thresholds": {"hot": 2, "warm": 1},
    })


def _crm(handler):
    return CrmClient(
        base_url="https://crm.test",
        api_key="secret",
        location_id="loc-1",
        transport=httpx.MockTransport(handler),
    )


class TestCrmContact:
    def test_from_lead_maps_custom_fields(self, contact_config):
        contact = CrmContact.from_lead(_lead(), contact_config)
        assert contact.first_name == "Ana"
        assert contact.last_name == "Maria Souza"
        assert contact.tags == ["lead-hot"]
        assert contact.custom_fields == {
            "full_name": "Ana Maria Souza",
            "location": "EUA",
            "city": "Orlando, FL",
        }

    def test_payload_shape(self, contact_config):
        payload = CrmContact.from_lead(_lead(), contact_config).to_payload("loc-1")
        assert payload["locationId"] == "loc-1"
        assert payload["email"] == "ana@example.com"
        assert {"id": "city", "value": "Orlando, FL"} in payload["customFields"]


class TestCrmClient:
    def test_creates_contact_when_not_found(self, contact_config):
        requests = []

        def handler(request):
            requests.append(request)
            if request.method == "GET":
                return httpx.Response(200, json={"contacts": []})
            return httpx.Response(201, json={"contact": {"id": "new-42"}})

        contact_id = asyncio.run(_crm(handler).upsert_contact(CrmContact.from_lead(_lead(), contact_config)))
        assert contact_id == "new-42"
        assert [r.method for r in requests] == ["GET", "POST"]
        assert requests[0].headers["Authorization"] == "Bearer secret"
        assert requests[0].headers["Version"] == "2021-04-15"
        assert json.loads(requests[1].content)["locationId"] == "loc-1"

    def test_updates_existing_contact(self, contact_config):
        requests = []

        def handler(request):
            requests.append(request)
            if request.method == "GET":
                return httpx.Response(200, json={"contacts": [{"id": "c-7", "email": "ANA@example.com"}]})
            return httpx.Response(200, json={"contact": {"id": "c-7"}})

        contact_id = asyncio.run(_crm(handler).upsert_contact(CrmContact.from_lead(_lead(), contact_config)))
        assert contact_id == "c-7"
        assert requests[1].method == "PUT"
        assert requests[1].url.path == "/contacts/c-7"
        assert "locationId" not in json.loads(requests[1].content)

    def test_error_status_raises(self, contact_config):
        def handler(request):
            if request.method == "GET":
                return httpx.Response(200, json={"contacts": []})
            return httpx.Response(422, json={"message": "bad phone"})

        with pytest.raises(CrmError):
            asyncio.run(_crm(handler).upsert_contact(CrmContact.from_lead(_lead(), contact_config)))

    def test_transport_error_raises(self, contact_config):
        def handler(request):
            raise httpx.ConnectError("unreachable", request=request)

        with pytest.raises(CrmError):
            asyncio.run(_crm(handler).upsert_contact(CrmContact.from_lead(_lead(), contact_config)))


class TestDispatcher:
    def test_sync_sets_status_and_ref(self, contact_config):
        lead = _lead()
        crm = FakeCrmClient()
        ref = asyncio.run(SideEffectDispatcher(crm_client=crm).sync_crm(lead, contact_config))
        assert ref == "contact-123"
        assert lead.crm_sync_status == "synced"
        assert lead.crm_contact_ref == "contact-123"

    def test_sync_skipped_once_synced(self, contact_config):
        lead = _lead(crm_sync_status="synced", crm_contact_ref="old")
        crm = FakeCrmClient()
        ref = asyncio.run(SideEffectDispatcher(crm_client=crm).sync_crm(lead, contact_config))
        assert ref == "old"
        assert crm.contacts == []

    def test_sync_failure_marks_failed(self, contact_config):
        lead = _lead()
        ref = asyncio.run(SideEffectDispatcher(crm_client=FakeCrmClient(fail=True)).sync_crm(lead, contact_config))
        assert ref is None
        assert lead.crm_sync_status == "failed"

    def test_sync_without_client_leaves_status(self, contact_config):
        lead = _lead()
        assert asyncio.run(SideEffectDispatcher().sync_crm(lead, contact_config)) is None
        assert lead.crm_sync_status == "unsynced"

    def test_notification_requires_phone(self):
        sms = FakeSmsSender()
        sent = asyncio.run(SideEffectDispatcher(sms_sender=sms).notify_if_needed(_lead(telefone="  ")))
        assert not sent
        assert sms.sent == []

    def test_notification_text(self):
        text = SideEffectDispatcher(brand_name="Acme").build_notification(_lead(source="chat"))
        assert text.startswith("[Acme]")
        assert "chat" in text
        assert "+15551234" in text


class TestContactFields:
    def test_default_config_uses_named_columns(self):
        assert contact_field_ids(default_form_config()) == {
            "name": "nome",
            "email": "email",
            "phone": "telefone",
        }

    def test_question_types_locate_contact_fields(self):
        assert contact_field_ids(_renamed_contact_config()) == {
            "name": "name",
            "email": "mail",
            "phone": "phone",
        }

    def test_contact_falls_back_to_columns(self, scenario_config):
        # No tel or email question: the named columns still apply.
        contact = lead_contact(_lead(custom_answers={"name": "Bia"}), scenario_config)
        assert contact.name == "Bia"
        assert contact.phone == "+15551234"
        assert contact.email == "ana@example.com"

    def test_crm_contact_from_renamed_questions(self):
        lead = _lead(nome=None, email=None, telefone=None,
                     custom_answers={"name": "Ana Souza", "phone": "+1555", "mail": "ana@x.com"})
        contact = CrmContact.from_lead(lead, _renamed_contact_config())
        assert (contact.first_name, contact.last_name) == ("Ana", "Souza")
        assert contact.phone == "+1555"
        assert contact.email == "ana@x.com"

    def test_sms_fires_for_renamed_phone_question(self, db_run):
        config = _renamed_contact_config()
        sms = FakeSmsSender()
        dispatcher = SideEffectDispatcher(sms_sender=sms)

        async def scenario(factory):
            async with factory() as session:
                store = LeadProgressStore(session)
                result = await store.upsert_progress(
                    ProgressPayload(session_id="renamed", answers={"name": "Ana", "phone": "+1555"}),
                    None,
                    config,
                )
                await dispatcher.after_upsert(result, config, store.leads)
                again = await store.upsert_progress(
                    ProgressPayload(session_id="renamed", answers={"name": "Ana"}), None, config,
                )
                await dispatcher.after_upsert(again, config, store.leads)
                return result.phone_acquired, again.lead.notificacao_enviada

        phone_acquired, notified = db_run(scenario)
        assert phone_acquired
        assert notified
        assert len(sms.sent) == 1
        assert "Ana - +1555" in sms.sent[0]

    def test_new_chat_alert_respects_toggle(self):
        sms = FakeSmsSender()
        assert not asyncio.run(SideEffectDispatcher(sms_sender=sms).notify_new_chat("conv-123456789"))
        assert sms.sent == []

        sent = asyncio.run(
            SideEffectDispatcher(sms_sender=sms, notify_on_new_chat=True).notify_new_chat("conv-123456789", "/pricing")
        )
        assert sent
        assert "conv-123" in sms.sent[0]
        assert "/pricing" in sms.sent[0]

    def test_new_chat_alert_failure_is_swallowed(self):
        sms = FakeSmsSender(fail=True)
        dispatcher = SideEffectDispatcher(sms_sender=sms, notify_on_new_chat=True)
        assert not asyncio.run(dispatcher.notify_new_chat("conv-1"))
        assert len(sms.sent) == 1

"""Tests for the HTTP API."""

from fastapi import FastAPI
from fastapi.testclient import TestClient

from api.middleware.rate_limit import RateLimitMiddleware
from conftest import FakeCrmClient, FakeSmsSender, ScriptedProvider, tool_call
from lead_scoring.dispatcher import SideEffectDispatcher
from llm.orchestrator import ChatOrchestrator
from llm.providers.openai_provider import Completion

FULL_ANSWERS = {
    "nome": "Ana Souza",
    "email": "ana@example.com",
    "telefone": "+15551234567",
    "localizacao": "Outro país",
    "tipoNegocio": "Cleaning Services",
    "tempoNegocio": "1 a 3 anos",
    "situacaoMarketing": "Dependo só de indicações",
    "orcamentoAnuncios": "Sim, consigo investir em marketing para acelerar o crescimento",
    "principalDesafio": "Gasto em marketing mas não vejo retorno",
    "expectativaTempo": "Sim, entendo que resultado sólido leva tempo",
}


def test_root_endpoint(client):
    resp = client.get("/")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "operational"
    assert "version" in data


def test_health_endpoint(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] in ("healthy", "degraded")
    assert data["services"]["initialized"] is True


def test_metrics_endpoint(client):
    client.get("/")
    resp = client.get("/metrics")
    assert resp.status_code == 200
    assert "skale_http_requests_total" in resp.text


# ── Form config ───────────────────────────────────────

class TestFormConfigRoutes:
    def test_default_config(self, client):
        resp = client.get("/api/v1/form-config")
        assert resp.status_code == 200
        data = resp.json()
        assert data["maxScore"] == 73
        assert [q["order"] for q in data["questions"]] == list(range(1, 11))

    def test_update_requires_admin(self, client):
        resp = client.put("/api/v1/form-config", json={})
        assert resp.status_code == 401

    def test_update_rejects_wrong_key(self, client):
        resp = client.put("/api/v1/form-config", json={}, headers={"X-API-Key": "nope"})
        assert resp.status_code == 403

    def test_update_recomputes_max_score(self, client, admin_headers):
        body = {
            "questions": [
                {"id": "q2", "order": 2, "title": "Second", "type": "text"},
                {"id": "q1", "order": 1, "title": "First", "type": "select",
                 "options": [{"value": "a", "label": "A", "points": 4}]},
            ],
            "thresholds": {"hot": 5, "warm": 2},
            "maxScore": 1000,
        }
        resp = client.put("/api/v1/form-config", json=body, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.json()["maxScore"] == 5

        data = client.get("/api/v1/form-config").json()
        assert [q["id"] for q in data["questions"]] == ["q1", "q2"]
        assert data["maxScore"] == 5

    def test_invalid_config(self, client, admin_headers):
        body = {"questions": [{"id": "x", "order": 1, "title": "X", "type": "select"}], "thresholds": {"hot": 1, "warm": 0}}
        resp = client.put("/api/v1/form-config", json=body, headers=admin_headers)
        assert resp.status_code == 400
        assert resp.json()["detail"]["code"] == "invalid_form_config"


# ── Form leads ────────────────────────────────────────

class TestProgressRoutes:
    def test_top_level_fields_accepted(self, client):
        resp = client.post(
            "/api/v1/form-leads/progress",
            json={"sessionId": "sess-1", "questionNumber": 1, "nome": "Ana", "utmSource": "google"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["answers"]["nome"] == "Ana"
        assert data["scoreTotal"] == 1
        assert data["classification"] == "COLD"
        assert data["nextQuestion"]["id"] == "email"
        assert data["utmSource"] == "google"

    def test_resume_by_session(self, client):
        client.post("/api/v1/form-leads/progress", json={"sessionId": "sess-2", "answers": {"nome": "Ana"}})
        resp = client.get("/api/v1/form-leads/session/sess-2")
        assert resp.status_code == 200
        assert resp.json()["answers"]["nome"] == "Ana"

        assert client.get("/api/v1/form-leads/session/missing").status_code == 404

    def test_repeated_upserts_keep_one_lead(self, client, admin_headers):
        first = client.post("/api/v1/form-leads/progress", json={"sessionId": "sess-3", "answers": {"nome": "Ana"}})
        second = client.post("/api/v1/form-leads/progress", json={"sessionId": "sess-3", "answers": {"nome": "Ana"}})
        assert first.json()["id"] == second.json()["id"]
        assert first.json()["scoreTotal"] == second.json()["scoreTotal"]

        listing = client.get("/api/v1/form-leads", headers=admin_headers).json()
        assert listing["total"] == 1

    def test_sms_once_across_upserts(self, client, services):
        sms = FakeSmsSender()
        services.dispatcher = SideEffectDispatcher(sms_sender=sms)
        for step in (1, 2, 3):
            resp = client.post(
                "/api/v1/form-leads/progress",
                json={"sessionId": "sess-4", "questionNumber": step, "answers": {"telefone": "+15550001"}},
            )
            assert resp.status_code == 200
        assert len(sms.sent) == 1
        assert resp.json()["notificacaoEnviada"] is True

    def test_completion_syncs_crm_once(self, client, services):
        crm = FakeCrmClient()
        services.dispatcher = SideEffectDispatcher(crm_client=crm)
        body = {"sessionId": "sess-5", "questionNumber": 10, "answers": FULL_ANSWERS, "formCompleto": True, "totalTimeSeconds": 95}

        data = client.post("/api/v1/form-leads/progress", json=body).json()
        assert data["formCompleto"] is True
        assert data["scoreTotal"] == 66
        assert data["classification"] == "HOT"
        assert data["crmSyncStatus"] == "synced"
        assert data["crmContactRef"] == "contact-123"
        assert data["nextQuestion"] is None

        client.post("/api/v1/form-leads/progress", json=body)
        assert len(crm.contacts) == 1

    def test_crm_failure_recorded(self, client, services):
        services.dispatcher = SideEffectDispatcher(crm_client=FakeCrmClient(fail=True))
        body = {"sessionId": "sess-6", "answers": FULL_ANSWERS, "formCompleto": True}
        data = client.post("/api/v1/form-leads/progress", json=body).json()
        assert data["formCompleto"] is True
        assert data["crmSyncStatus"] == "failed"

    def test_missing_session_id_rejected(self, client):
        resp = client.post("/api/v1/form-leads/progress", json={"answers": {"nome": "Ana"}})
        assert resp.status_code == 422


class TestLeadAdminRoutes:
    def test_admin_requires_key(self, client):
        assert client.get("/api/v1/form-leads").status_code == 401

    def test_update_and_delete(self, client, admin_headers):
        lead_id = client.post("/api/v1/form-leads/progress", json={"sessionId": "sess-7", "answers": {"nome": "Bia"}}).json()["id"]

        resp = client.patch(
            f"/api/v1/form-leads/{lead_id}",
            json={"status": "contatado", "observacoes": "Ligar amanhã"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "contatado"

        found = client.get("/api/v1/form-leads", params={"search": "bia"}, headers=admin_headers).json()
        assert [lead["id"] for lead in found["leads"]] == [lead_id]

        assert client.delete(f"/api/v1/form-leads/{lead_id}", headers=admin_headers).status_code == 200
        assert client.get(f"/api/v1/form-leads/{lead_id}", headers=admin_headers).status_code == 404

    def test_invalid_status_rejected(self, client, admin_headers):
        lead_id = client.post("/api/v1/form-leads/progress", json={"sessionId": "sess-8"}).json()["id"]
        resp = client.patch(f"/api/v1/form-leads/{lead_id}", json={"status": "won"}, headers=admin_headers)
        assert resp.status_code == 422


# ── Chat ──────────────────────────────────────────────

class TestChatRoutes:
    def test_message_round_trip(self, client, services):
        provider = ScriptedProvider(
            Completion(tool_calls=[tool_call("save_lead_answer", question_id="nome", answer="Ana")]),
            Completion(text="Prazer, Ana! Qual é o seu email?"),
        )
        services.orchestrator = ChatOrchestrator(llm_provider=provider, dispatcher=services.dispatcher)

        resp = client.post("/api/v1/chat/message", json={"message": "Meu nome é Ana"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["response"].startswith("Prazer, Ana")
        assert data["leadCaptured"] is False
        conversation_id = data["conversationId"]

        admin = {"X-API-Key": "test-admin-key"}
        conv = client.get(f"/api/v1/chat/conversations/{conversation_id}", headers=admin).json()
        assert [m["role"] for m in conv["messages"]] == ["user", "assistant"]

        listing = client.get("/api/v1/form-leads", params={"search": "Ana"}, headers=admin).json()
        assert listing["leads"][0]["conversationId"] == conversation_id
        assert listing["leads"][0]["source"] == "chat"

    def test_conversation_limit(self, client, services):
        services.orchestrator = ChatOrchestrator(
            llm_provider=ScriptedProvider(Completion(text="Oi!")),
            dispatcher=services.dispatcher,
            max_messages=2,
        )
        first = client.post("/api/v1/chat/message", json={"message": "Oi"}).json()
        resp = client.post("/api/v1/chat/message", json={"message": "Oi de novo", "conversationId": first["conversationId"]})
        assert resp.status_code == 409
        assert resp.json()["detail"]["code"] == "conversation_limit_reached"

    def test_chat_unavailable_without_provider(self, client, services):
        services.orchestrator = None
        resp = client.post("/api/v1/chat/message", json={"message": "Oi"})
        assert resp.status_code == 503
        assert resp.json()["detail"]["code"] == "chat_unavailable"

    def test_empty_message_rejected(self, client):
        assert client.post("/api/v1/chat/message", json={"message": ""}).status_code == 422

    def test_close_conversation(self, client, services, admin_headers):
        services.orchestrator = ChatOrchestrator(llm_provider=ScriptedProvider(Completion(text="Oi!")))
        conversation_id = client.post("/api/v1/chat/message", json={"message": "Oi"}).json()["conversationId"]

        resp = client.patch(
            f"/api/v1/chat/conversations/{conversation_id}",
            json={"status": "closed"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        closed = client.get("/api/v1/chat/conversations", params={"status": "closed"}, headers=admin_headers).json()
        assert [c["id"] for c in closed["conversations"]] == [conversation_id]


# ── Rate limiting ─────────────────────────────────────

def test_rate_limit_on_chat_path():
    app = FastAPI()
    app.add_middleware(RateLimitMiddleware, requests_per_minute=2)

    @app.post("/api/v1/chat/message")
    async def message():
        return {"ok": True}

    @app.get("/api/v1/chat/message")
    async def message_get():
        return {"ok": True}

    client = TestClient(app)
    assert client.post("/api/v1/chat/message").status_code == 200
    second = client.post("/api/v1/chat/message")
    assert second.headers["X-RateLimit-Remaining"] == "0"

    limited = client.post("/api/v1/chat/message")
    assert limited.status_code == 429
    assert limited.json()["detail"]["code"] == "rate_limited"
    assert int(limited.headers["Retry-After"]) >= 1

    # Only message ingestion is limited.
    assert client.get("/api/v1/chat/message").status_code == 200


# ── Auth ──────────────────────────────────────────────

class TestAdminAuth:
    def test_bearer_token_accepted(self, client):
        from api.middleware.auth import create_jwt_token

        token, expires_in = create_jwt_token({"sub": "ops@example.com", "role": "admin"})
        assert expires_in > 0
        resp = client.get("/api/v1/form-leads", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 200

    def test_non_admin_role_rejected(self, client):
        from api.middleware.auth import create_jwt_token

        token, _ = create_jwt_token({"sub": "viewer", "role": "viewer"})
        resp = client.get("/api/v1/form-leads", headers={"Authorization": f"Bearer {token}"})
        assert resp.status_code == 403

    def test_invalid_token_rejected(self, client):
        resp = client.get("/api/v1/form-leads", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_token_issued_for_api_key(self, client, admin_headers):
        resp = client.post("/api/v1/auth/token", headers=admin_headers)
        assert resp.status_code == 200
        data = resp.json()
        assert data["token_type"] == "bearer"
        assert data["role"] == "admin"

        listing = client.get("/api/v1/form-leads", headers={"Authorization": f"Bearer {data['access_token']}"})
        assert listing.status_code == 200

    def test_token_requires_credentials(self, client):
        assert client.post("/api/v1/auth/token").status_code == 401
        assert client.post("/api/v1/auth/token", headers={"X-API-Key": "nope"}).status_code == 403

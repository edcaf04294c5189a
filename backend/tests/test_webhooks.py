"""Intake webhook: authorization paths, normalization, matching and persistence."""

from sqlalchemy import select

from conftest import bearer, client_token, user_token
from filtro_api.models import IntakeSubmission, SubmissionCompany

WEBHOOK = "/webhooks/filtroclientes"

FORM = {
    "entry_id": "901",
    "form_id": "3",
    "user_id": "55",
    "enfermedad": "C\\u00e1ncer de pulm\\u00f3n",
    "subtipo_mama": "",
    "subtipo_pulmon": "Células no pequeñas",
    "metastasis": "Sí",
    "tratamiento_tipo": "Quimioterapia",
    "ecog_dolor": "No tengo dolor",
    "ecog_descanso": "Solo en la noche",
    "ecog_ayuda": "No necesito ayuda",
    "centro": "saga",
}


def seed_catalog(make_study):
    make_study(protocolo="HERE", centros_protocolo=["saga"])
    make_study(protocolo="ELSEWHERE", centros_protocolo=["bh"])
    make_study(protocolo="CLOSED", estado_protocolo="No reclutando", centros_protocolo=["saga"])
    make_study(protocolo="NO-CHEMO", centros_protocolo=["saga"], quimioterapia="no")


class TestInlineCredentials:
    def test_valid_inline_credentials(self, api, make_client, make_study, db_session):
        make_client()
        seed_catalog(make_study)

        body = {**FORM, "client_id": "acme-webhook", "client_secret": "s3cret-value"}
        response = api.post(WEBHOOK, json=body)
        assert response.status_code == 201

        data = response.json()
        assert data["ok"] is True
        assert data["normalized"]["enfermedad"] == "Cáncer de pulmón"
        assert data["normalized"]["subtipo_clave"] == "subtipo_pulmon"
        assert data["normalized"]["centro"] == ["saga"]
        assert data["match"]["ecog_score"] == 0.3
        assert data["match"]["total_matches"] == 1
        assert [s["protocolo"] for s in data["match"]["studies"]] == ["HERE"]
        assert "debug" not in data["match"]
        assert "matchCrossCenter" not in data

    def test_credentials_are_not_stored(self, api, make_client, make_study, db_session):
        make_client()
        seed_catalog(make_study)

        body = {**FORM, "clientId": "acme-webhook", "clientSecret": "s3cret-value"}
        submission_id = api.post(WEBHOOK, json=body).json()["id"]

        saved = db_session.get(IntakeSubmission, submission_id)
        assert "clientId" not in saved.raw_payload
        assert "clientSecret" not in saved.raw_payload
        assert saved.raw_payload["entry_id"] == "901"
        assert saved.source == "filtroclientes"
        assert saved.source_user_id == 55
        assert saved.source_user_ref is None
        assert saved.company_codes == ["saga"]
        assert saved.total_matches == 1

    def test_both_match_views_and_debug_are_stored(self, api, make_client, make_study, db_session):
        make_client()
        seed_catalog(make_study)

        body = {**FORM, "client_id": "acme-webhook", "client_secret": "s3cret-value"}
        submission_id = api.post(WEBHOOK, json=body).json()["id"]

        saved = db_session.get(IntakeSubmission, submission_id)
        other = [s["protocolo"] for s in saved.match_cross_center["studies_other_centers"]]
        assert other == ["ELSEWHERE"]
        assert saved.match_cross_center["total_matches_all_centers"] == 2
        reasons = {r["reason"] for r in saved.match_debug["current_centers"]["top_reasons"]}
        assert reasons == {"center_mismatch", "not_recruiting", "treatment_type_excluded"}
        assert saved.match_debug["all_centers"]["centers_filter"] == []

        codes = db_session.scalars(
            select(SubmissionCompany.company_code).where(SubmissionCompany.submission_id == submission_id)
        ).all()
        assert codes == ["saga"]

    def test_missing_credentials(self, api, sync_engine):
        response = api.post(WEBHOOK, json=FORM)
        assert response.status_code == 401
        assert response.json() == {"error": "missing_client_credentials"}

    def test_wrong_secret(self, api, make_client):
        make_client()
        body = {**FORM, "client_id": "acme-webhook", "client_secret": "wrong"}
        response = api.post(WEBHOOK, json=body)
        assert response.status_code == 401
        assert response.json() == {"error": "invalid_client"}

    def test_client_without_write_scope(self, api, make_client):
        make_client(scopes=["read"])
        body = {**FORM, "client_id": "acme-webhook", "client_secret": "s3cret-value"}
        response = api.post(WEBHOOK, json=body)
        assert response.status_code == 403
        assert response.json() == {"error": "insufficient_scopes"}

    def test_client_without_matching_permission(self, api, make_client):
        make_client(permissions=[{"method": "GET", "path": "^/webhooks/.*"}])
        body = {**FORM, "client_id": "acme-webhook", "client_secret": "s3cret-value"}
        response = api.post(WEBHOOK, json=body)
        assert response.status_code == 403
        assert response.json() == {"error": "not_allowed"}

    def test_admin_client_needs_no_scope_or_permission(self, api, make_client, make_study):
        make_client(scopes=[], permissions=[], is_admin=True)
        body = {**FORM, "client_id": "acme-webhook", "client_secret": "s3cret-value"}
        assert api.post(WEBHOOK, json=body).status_code == 201

    def test_body_must_be_an_object(self, api, make_client):
        response = api.post(WEBHOOK, json=["not", "an", "object"])
        assert response.status_code == 400
        assert response.json() == {"error": "invalid_request"}

    def test_escaped_emoji_is_stored_and_returned(self, api, make_client, db_session):
        make_client()
        body = {
            **FORM,
            "contacto_nombre": "Ana \\ud83d\\ude00",
            "client_id": "acme-webhook",
            "client_secret": "s3cret-value",
        }
        response = api.post(WEBHOOK, json=body)
        assert response.status_code == 201
        assert response.json()["normalized"]["contacto_nombre"] == "Ana \U0001F600"

        saved = db_session.get(IntakeSubmission, response.json()["id"])
        assert saved.normalized["contacto_nombre"] == "Ana \U0001F600"

    def test_oversized_user_id_is_ignored(self, api, make_client):
        make_client()
        body = {**FORM, "user_id": 10**400, "client_id": "acme-webhook", "client_secret": "s3cret-value"}
        response = api.post(WEBHOOK, json=body)
        assert response.status_code == 201
        assert response.json()["normalized"]["user_id"] is None


class TestBearerTokens:
    def test_client_token(self, api, make_client, make_study):
        client = make_client()
        seed_catalog(make_study)
        response = api.post(WEBHOOK, json=FORM, headers=bearer(client_token(client)))
        assert response.status_code == 201
        assert "matchCrossCenter" not in response.json()

    def test_invalid_token(self, api, sync_engine):
        response = api.post(WEBHOOK, json=FORM, headers=bearer("not-a-jwt"))
        assert response.status_code == 401
        assert response.json() == {"error": "unauthorized"}

    def test_token_without_write_scope(self, api, make_client):
        client = make_client()
        response = api.post(WEBHOOK, json=FORM, headers=bearer(client_token(client, scopes=["read"])))
        assert response.status_code == 403
        assert response.json() == {"error": "insufficient_scopes"}

    def test_company_user_token_is_refused(self, api, make_user):
        user = make_user(role="company_user")
        response = api.post(WEBHOOK, json=FORM, headers=bearer(user_token(user)))
        assert response.status_code == 403
        assert response.json() == {"error": "user_token_not_allowed"}

    def test_super_admin_sees_cross_center_comparison(self, api, make_user, make_study):
        user = make_user(email="root@filtro.test", role="super_admin", company_code=None)
        seed_catalog(make_study)
        response = api.post(WEBHOOK, json=FORM, headers=bearer(user_token(user)))
        assert response.status_code == 201

        data = response.json()
        cross = data["matchCrossCenter"]
        assert [s["protocolo"] for s in cross["studies_other_centers"]] == ["ELSEWHERE"]
        scoped_ids = {s["id"] for s in data["match"]["studies"]}
        assert not scoped_ids & {s["id"] for s in cross["studies_other_centers"]}

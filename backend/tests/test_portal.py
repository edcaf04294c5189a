"""Portal reads: role-scoped submissions and the study catalog."""

import pytest

from conftest import bearer, client_token, user_token
from filtro_api.models import IntakeSubmission, SubmissionCompany


@pytest.fixture()
def submissions(db_session):
    rows = [
        ("saga", 10, 2),
        ("saga", 11, 0),
        ("bh", 10, 1),
    ]
    created = []
    for center, user_id, total in rows:
        submission = IntakeSubmission(
            source="filtroclientes",
            source_user_id=user_id,
            company_codes=[center],
            raw_payload={"centro": center},
            normalized={"centro": [center], "user_id": user_id},
            match={"ecog_score": None, "total_matches": total, "studies": []},
            match_cross_center={"studies_other_centers": []},
            match_debug={"current_centers": {}, "all_centers": {}},
            total_matches=total,
            companies=[SubmissionCompany(company_code=center)],
        )
        db_session.add(submission)
        created.append(submission)
    db_session.commit()
    return created


def list_ids(api, token, **params):
    response = api.get("/portal/submissions", headers=bearer(token), params=params)
    assert response.status_code == 200, response.text
    return sorted(s["id"] for s in response.json()["submissions"])


class TestSubmissionVisibility:
    def test_super_admin_sees_everything_including_private_fields(self, api, make_user, submissions):
        token = user_token(make_user(email="root@filtro.test", role="super_admin", company_code=None))
        response = api.get("/portal/submissions", headers=bearer(token))
        data = response.json()
        assert data["total"] == 3
        assert data["limit"] == 50
        assert data["skip"] == 0
        assert all("matchCrossCenter" in s and "matchDebug" in s for s in data["submissions"])

    def test_company_admin_sees_own_company(self, api, make_user, submissions):
        token = user_token(make_user(role="company_admin", company_code="saga"))
        assert list_ids(api, token) == sorted(s.id for s in submissions[:2])

    def test_private_fields_are_hidden_from_company_roles(self, api, make_user, submissions):
        token = user_token(make_user(role="company_admin", company_code="saga"))
        data = api.get("/portal/submissions", headers=bearer(token)).json()
        assert all("matchCrossCenter" not in s and "matchDebug" not in s for s in data["submissions"])
        assert data["submissions"][0]["companyCodes"] == ["saga"]

    def test_company_user_with_external_id_sees_own_submissions(self, api, make_user, submissions):
        token = user_token(make_user(role="company_user", company_code="saga", external_user_id=10))
        assert list_ids(api, token) == sorted([submissions[0].id, submissions[2].id])

    def test_company_user_without_external_id_falls_back_to_company(self, api, make_user, submissions):
        token = user_token(make_user(role="company_user", company_code="bh"))
        assert list_ids(api, token) == [submissions[2].id]

    def test_only_with_match_filter(self, api, make_user, submissions):
        token = user_token(make_user(email="root@filtro.test", role="super_admin", company_code=None))
        assert list_ids(api, token, onlyWithMatch="true") == sorted([submissions[0].id, submissions[2].id])
        assert list_ids(api, token, onlyWithMatch="false") == [submissions[1].id]

    def test_pagination(self, api, make_user, submissions):
        token = user_token(make_user(email="root@filtro.test", role="super_admin", company_code=None))
        data = api.get("/portal/submissions", headers=bearer(token), params={"limit": 2, "skip": 2}).json()
        assert data["total"] == 3
        assert len(data["submissions"]) == 1

    def test_invalid_query(self, api, make_user, submissions):
        token = user_token(make_user())
        response = api.get("/portal/submissions", headers=bearer(token), params={"limit": 500})
        assert response.status_code == 400
        assert response.json() == {"error": "invalid_request"}

    def test_client_tokens_are_not_portal_actors(self, api, make_client, submissions):
        client = make_client(scopes=["portal"])
        response = api.get("/portal/submissions", headers=bearer(client_token(client)))
        assert response.status_code == 403
        assert response.json() == {"error": "forbidden_actor"}

    def test_client_without_portal_scope(self, api, make_client, submissions):
        client = make_client(scopes=["read"])
        response = api.get("/portal/submissions", headers=bearer(client_token(client)))
        assert response.status_code == 403
        assert response.json() == {"error": "insufficient_scopes"}

    def test_missing_token(self, api, submissions):
        response = api.get("/portal/submissions")
        assert response.status_code == 401
        assert response.json() == {"error": "unauthorized"}

    def test_single_submission_respects_visibility(self, api, make_user, submissions):
        token = user_token(make_user(role="company_admin", company_code="saga"))
        assert api.get(f"/portal/submissions/{submissions[0].id}", headers=bearer(token)).status_code == 200
        response = api.get(f"/portal/submissions/{submissions[2].id}", headers=bearer(token))
        assert response.status_code == 404
        assert response.json() == {"error": "submission_not_found"}


class TestStudies:
    def test_any_portal_user_can_list(self, api, make_user, make_study):
        make_study(protocolo="A", centros_protocolo=["saga"])
        make_study(protocolo="B", centros_protocolo=["bh"], enfermedad="Mama")
        token = user_token(make_user())

        data = api.get("/portal/studies", headers=bearer(token)).json()
        assert data["total"] == 2

        data = api.get("/portal/studies", headers=bearer(token), params={"centro": "bh"}).json()
        assert [s["protocolo"] for s in data["studies"]] == ["B"]

        data = api.get("/portal/studies", headers=bearer(token), params={"enfermedad": "pulm"}).json()
        assert [s["protocolo"] for s in data["studies"]] == ["A"]

    def test_center_filter_is_literal_and_handles_accents(self, api, make_user, make_study):
        make_study(protocolo="A", centros_protocolo=["saga"])
        make_study(protocolo="B", centros_protocolo=["clínica norte"])
        make_study(protocolo="C", centros_protocolo=["s_ga%"], estado_protocolo="Cerrado")
        headers = bearer(user_token(make_user()))

        def protocols(**params):
            data = api.get("/portal/studies", headers=headers, params=params).json()
            return [s["protocolo"] for s in data["studies"]]

        assert protocols(centro="s_ga%") == ["C"]
        assert protocols(centro="sag") == []
        assert protocols(centro="Clínica Norte") == ["B"]
        assert protocols(estado="reclutando") == ["A", "B"]
        assert protocols(enfermedad="%") == []

    def test_company_roles_cannot_write(self, api, make_user, make_study):
        study = make_study()
        token = user_token(make_user())
        response = api.post("/portal/studies", headers=bearer(token), json={"protocolo": "X"})
        assert response.status_code == 403
        assert response.json() == {"error": "super_admin_only"}
        assert api.delete(f"/portal/studies/{study.id}", headers=bearer(token)).status_code == 403

    def test_super_admin_crud(self, api, make_user):
        token = user_token(make_user(email="root@filtro.test", role="super_admin", company_code=None))

        created = api.post(
            "/portal/studies",
            headers=bearer(token),
            json={
                "protocolo": "NEW-1",
                "enfermedad": "Mama",
                "estado_protocolo": "Reclutando",
                "centros_protocolo": ["saga"],
                "ecog_max": 1,
            },
        )
        assert created.status_code == 201
        study_id = created.json()["id"]

        patched = api.patch(
            f"/portal/studies/{study_id}", headers=bearer(token), json={"estado_protocolo": "Cerrado"}
        )
        assert patched.json()["estado_protocolo"] == "Cerrado"
        assert patched.json()["protocolo"] == "NEW-1"

        assert api.delete(f"/portal/studies/{study_id}", headers=bearer(token)).json() == {
            "deleted": True,
            "id": study_id,
        }
        missing = api.get(f"/portal/studies/{study_id}", headers=bearer(token))
        assert missing.status_code == 404
        assert missing.json() == {"error": "study_not_found"}

"""
HTTP tests: authentication, route guards and the JSON endpoints.

Run with: pytest tests/test_routes.py -v
"""

import base64
import json
from datetime import date

import pytest

from braincrm.extensions import db
from braincrm.models import Mission, Profile


def create_client(http, code="CL-1", **extra):
    response = http.post("/api/clients", json={"code": code, "raison_sociale": f"Client {code}", **extra})
    assert response.status_code == 201, response.get_json()
    return response.get_json()["item"]


# ═══════════════════════════════════════════════════════════════════
# Authentication
# ═══════════════════════════════════════════════════════════════════

class TestAuth:

    def test_login_and_session(self, client, account, login):
        user = account("manager")
        response = login(user.email)
        assert response.status_code == 200
        assert response.get_json()["user"]["role"] == "manager"

        session = client.get("/auth/session").get_json()
        assert session["user"]["email"] == user.email

    def test_wrong_password(self, client, account, login):
        user = account("manager")
        response = login(user.email, "not-the-password")
        assert response.status_code == 401
        assert response.get_json()["success"] is False

    def test_inactive_account_refused(self, app, client, account, login):
        user = account("manager")
        with app.app_context():
            Profile.query.filter_by(user_id=user.id).one().is_active = False
            db.session.commit()
        assert login(user.email).status_code == 403

    def test_logout(self, admin_client):
        assert admin_client.post("/auth/logout").status_code == 200
        assert admin_client.get("/api/clients").status_code == 401

    def test_logout_requires_login(self, client):
        response = client.post("/auth/logout")
        assert response.status_code == 401
        assert response.get_json()["error"] == "Authentification requise."

    def test_login_requires_json_object(self, client):
        assert client.post("/auth/login", data="nope").status_code == 400


# ═══════════════════════════════════════════════════════════════════
# Guards and navigation
# ═══════════════════════════════════════════════════════════════════

class TestGuards:

    def test_unauthenticated(self, client):
        response = client.get("/api/clients")
        assert response.status_code == 401
        assert response.get_json() == {"success": False, "error": "Authentification requise."}

    def test_forbidden_without_row(self, client, account, login):
        user = account("manager")
        login(user.email)
        response = client.get("/api/clients")
        assert response.status_code == 403
        assert response.get_json()["error"] == "Accès refusé."

    def test_view_does_not_imply_create(self, client, account, login, grant):
        grant("manager", "clients", "view")
        user = account("manager")
        login(user.email)

        assert client.get("/api/clients").status_code == 200
        assert client.post("/api/clients", json={"code": "X", "raison_sociale": "X"}).status_code == 403

    def test_navigation_lists_visible_modules(self, client, account, login, grant):
        grant("rh", "personnel", "view", "create")
        grant("rh", "payroll", "view")
        grant("rh", "invoices", "create")
        user = account("rh")
        login(user.email)

        body = client.get("/api/navigation").get_json()
        assert [m["key"] for m in body["modules"]] == ["personnel", "payroll"]
        assert body["user"]["role_label"] == "RH"

    def test_permission_change_applies_to_next_request(self, admin_client, client, account, login):
        # admin_client and client are the same test client; log in as the manager later
        admin_client.put(
            "/api/admin/permissions",
            json=[{"role": "manager", "module": "clients", "can_view": True}],
        )
        admin_client.post("/auth/logout")

        user = account("manager")
        login(user.email)
        assert client.get("/api/clients").status_code == 200


# ═══════════════════════════════════════════════════════════════════
# CRUD
# ═══════════════════════════════════════════════════════════════════

class TestClientsCrud:

    def test_create_list_update_delete(self, admin_client):
        created = admin_client.post("/api/clients", json={"code": "CL-1", "raison_sociale": "Atlas"})
        assert created.status_code == 201
        body = created.get_json()
        assert body["item"]["code"] == "CL-1"
        assert {"category": "success", "message": "Client créé avec succès"} in body["notifications"]

        client_id = body["item"]["id"]
        assert [c["id"] for c in admin_client.get("/api/clients").get_json()["items"]] == [client_id]

        updated = admin_client.patch(f"/api/clients/{client_id}", json={"raison_sociale": "Atlas Maroc"})
        assert updated.get_json()["item"]["raison_sociale"] == "Atlas Maroc"

        assert admin_client.delete(f"/api/clients/{client_id}").status_code == 200
        assert admin_client.get(f"/api/clients/{client_id}").status_code == 404

    def test_validation_error_is_400(self, admin_client):
        response = admin_client.post("/api/clients", json={"code": "CL-1"})
        assert response.status_code == 400
        assert "raison_sociale" in response.get_json()["error"]

    def test_body_must_be_object(self, admin_client):
        response = admin_client.post("/api/clients", json=["CL-1"])
        assert response.status_code == 400

    def test_duplicate_code_reports_database_error(self, admin_client):
        create_client(admin_client, "CL-1")
        response = admin_client.post("/api/clients", json={"code": "CL-1", "raison_sociale": "Copie"})
        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "Erreur lors de la création du client"
        assert {"category": "danger", "message": "Erreur lors de la création du client"} in body["notifications"]

    def test_list_filter_validation(self, admin_client):
        assert admin_client.get("/api/clients?password=x").status_code == 400

    def test_unknown_route_is_json(self, admin_client):
        response = admin_client.get("/api/nothing-here")
        assert response.status_code == 404
        assert response.get_json()["success"] is False


class TestContractsRoutes:

    def test_history_endpoint(self, admin_client):
        client = create_client(admin_client)
        contract = admin_client.post(
            "/api/contracts",
            json={"numero_contrat": "CT-1", "client_id": client["id"], "date_debut": "2025-01-06"},
        ).get_json()["item"]
        admin_client.patch(f"/api/contracts/{contract['id']}", json={"status": "actif"})

        items = admin_client.get(f"/api/contracts/{contract['id']}/history").get_json()["items"]
        assert [i["version_number"] for i in items] == [2, 1]
        assert items[0]["changes"] == [{"field": "status", "label": "Statut", "old": "brouillon", "new": "actif"}]

    def test_history_of_unknown_contract(self, admin_client):
        assert admin_client.get("/api/contracts/999/history").status_code == 404


# ═══════════════════════════════════════════════════════════════════
# Invoices + PDF
# ═══════════════════════════════════════════════════════════════════

class TestInvoicesRoutes:

    @pytest.fixture
    def invoice(self, admin_client):
        client = create_client(admin_client, tva="exoneree")
        response = admin_client.post("/api/invoices", json={"client_id": client["id"], "issue_date": "2025-02-01"})
        assert response.status_code == 201
        return response.get_json()["item"]

    def test_lines_update_totals(self, admin_client, invoice):
        response = admin_client.post(f"/api/invoices/{invoice['id']}/lines", json={"montant_ht": "1500"})
        assert response.status_code == 201
        assert response.get_json()["invoice"]["total_ttc"] == 1500.0

        lines = admin_client.get(f"/api/invoices/{invoice['id']}/lines").get_json()["items"]
        assert len(lines) == 1

    def test_line_of_other_invoice_is_404(self, admin_client, invoice):
        line = admin_client.post(f"/api/invoices/{invoice['id']}/lines", json={}).get_json()["item"]
        assert admin_client.delete(f"/api/invoices/999/lines/{line['id']}").status_code == 404

    def test_mark_paid(self, admin_client, invoice):
        item = admin_client.post(f"/api/invoices/{invoice['id']}/mark-paid").get_json()["item"]
        assert item["status"] == "paid"
        assert item["payment_date"] is not None

    def test_generate_pdf_preflight(self, client):
        response = client.options("/api/invoices/generate-pdf")
        assert response.status_code == 200
        assert response.headers["Access-Control-Allow-Origin"] == "*"
        assert "content-type" in response.headers["Access-Control-Allow-Headers"]

    def test_generate_pdf_requires_login(self, client):
        response = client.post("/api/invoices/generate-pdf", json={"invoiceId": 1})
        assert response.status_code == 401
        assert response.headers["Access-Control-Allow-Origin"] == "*"

    def test_generate_pdf(self, admin_client, invoice):
        response = admin_client.post("/api/invoices/generate-pdf", json={"invoiceId": invoice["id"]})
        assert response.status_code == 200
        body = response.get_json()
        assert body["filename"] == f"{invoice['invoice_number']}.pdf"
        assert base64.b64decode(body["pdf"]).startswith(b"%PDF")

    def test_generate_pdf_errors(self, admin_client):
        assert admin_client.post("/api/invoices/generate-pdf", json={}).status_code == 400
        response = admin_client.post("/api/invoices/generate-pdf", json={"invoiceId": 999})
        assert response.status_code == 404
        assert response.get_json() == {"error": "Facture introuvable"}

    def test_download_pdf(self, admin_client, invoice):
        response = admin_client.get(f"/api/invoices/{invoice['id']}/pdf")
        assert response.status_code == 200
        assert response.mimetype == "application/pdf"
        assert response.data.startswith(b"%PDF")


# ═══════════════════════════════════════════════════════════════════
# Operations
# ═══════════════════════════════════════════════════════════════════

class TestOperationsRoutes:

    def test_participants(self, admin_client):
        training = admin_client.post(
            "/api/trainings", json={"title": "SST", "start_date": "2025-05-05"}
        ).get_json()["item"]
        worker = admin_client.post(
            "/api/personnel", json={"matricule": "M-1", "nom": "Idrissi", "prenom": "Youssef"}
        ).get_json()["item"]

        url = f"/api/trainings/{training['id']}/participants"
        assert admin_client.post(url, json={"personnel_id": worker["id"]}).status_code == 201
        assert admin_client.post(url, json={"personnel_id": worker["id"]}).status_code == 400

        items = admin_client.get(url).get_json()["items"]
        assert items[0]["personnel"]["matricule"] == "M-1"

    def test_events_range(self, admin_client):
        admin_client.post("/api/events", json={"title": "Point RH", "start_datetime": "2025-03-03T10:00:00"})
        inside = admin_client.get("/api/events/range?start=2025-03-01&end=2025-03-31").get_json()["items"]
        assert [e["title"] for e in inside] == ["Point RH"]
        assert admin_client.get("/api/events/range?start=bad&end=2025-03-31").status_code == 400


# ═══════════════════════════════════════════════════════════════════
# Missions and recruitment
# ═══════════════════════════════════════════════════════════════════

class TestMissionsRoutes:

    def test_crud_and_contracts(self, admin_client):
        client = create_client(admin_client)
        created = admin_client.post(
            "/api/missions", json={"title": "Inventaire", "client_id": client["id"], "start_date": "2025-03-03"}
        )
        assert created.status_code == 201
        mission = created.get_json()["item"]
        assert (mission["status"], mission["client_name"]) == ("pending", "Client CL-1")

        admin_client.post(
            "/api/contracts",
            json={"numero_contrat": "CT-1", "date_debut": "2025-03-03", "mission_id": mission["id"]},
        )
        linked = admin_client.get(f"/api/missions/{mission['id']}/contracts").get_json()["items"]
        assert [c["numero_contrat"] for c in linked] == ["CT-1"]

        patched = admin_client.patch(f"/api/missions/{mission['id']}", json={"status": "active"})
        assert patched.get_json()["item"]["status"] == "active"
        assert admin_client.get("/api/missions?status=pending").get_json()["items"] == []

    def test_validation_error_is_400(self, admin_client):
        response = admin_client.post("/api/missions", json={"title": "Sans date"})
        assert response.status_code == 400

    def test_contracts_of_unknown_mission(self, admin_client):
        assert admin_client.get("/api/missions/999/contracts").status_code == 404

    def test_module_permission(self, app, client, account, login, grant):
        grant("user", "missions", "view")
        with app.app_context():
            mission = Mission(title="M", start_date=date(2025, 3, 3))
            db.session.add(mission)
            db.session.commit()
            mission_id = mission.id
        user = account("user")
        login(user.email)
        assert client.get("/api/missions").status_code == 200
        assert client.post("/api/missions", json={"title": "M", "start_date": "2025-03-03"}).status_code == 403
        # Linked contracts also need the contracts module.
        assert client.get(f"/api/missions/{mission_id}/contracts").status_code == 403


class TestRecruitmentRoutes:

    @pytest.fixture
    def offer(self, admin_client):
        response = admin_client.post(
            "/api/job-offers",
            json={"title": "Cariste", "status": "active", "requirements": ["CACES 3"], "salary_min": "4000"},
        )
        assert response.status_code == 201
        return response.get_json()["item"]

    def test_offer_candidates(self, admin_client, offer):
        admin_client.post(
            "/api/candidates", json={"full_name": "Sara", "email": "sara@example.com", "job_offer_id": offer["id"]}
        )
        items = admin_client.get(f"/api/job-offers/{offer['id']}/candidates").get_json()["items"]
        assert [c["job_offer_title"] for c in items] == ["Cariste"]
        assert admin_client.get("/api/job-offers/999/candidates").status_code == 404

    def test_public_board_without_login(self, admin_client, offer):
        admin_client.post("/api/job-offers", json={"title": "Brouillon"})
        admin_client.post("/auth/logout")

        response = admin_client.get("/api/public/job-offers")
        assert response.status_code == 200
        items = response.get_json()["items"]
        assert [o["title"] for o in items] == ["Cariste"]
        assert "candidate_count" not in items[0]
        assert items[0]["requirements"] == ["CACES 3"]

        assert admin_client.get(f"/api/public/job-offers/{offer['id']}").status_code == 200
        assert admin_client.get("/api/public/job-offers/999").status_code == 404

    def test_public_application(self, admin_client, offer):
        admin_client.post("/auth/logout")

        url = f"/api/public/job-offers/{offer['id']}/apply"
        response = admin_client.post(url, json={"full_name": "Sara Alaoui", "email": "sara@example.com"})
        assert response.status_code == 201
        assert response.get_json()["item"]["status"] == "new"

        assert admin_client.post(url, json={"full_name": "Sara", "email": "sara@example.com"}).status_code == 400
        assert admin_client.post(url, json={"full_name": "X", "email": "x@x.ma", "status": "hired"}).status_code == 400
        assert admin_client.post(url, data="nope").status_code == 400

    def test_public_application_to_draft_offer(self, admin_client):
        draft = admin_client.post("/api/job-offers", json={"title": "Brouillon"}).get_json()["item"]
        admin_client.post("/auth/logout")
        response = admin_client.post(
            f"/api/public/job-offers/{draft['id']}/apply", json={"full_name": "Sara", "email": "s@x.ma"}
        )
        assert response.status_code == 400

    def test_candidates_need_their_own_module(self, client, account, login, grant):
        grant("user", "recruitment", "view")
        user = account("user")
        login(user.email)
        assert client.get("/api/job-offers").status_code == 200
        assert client.get("/api/candidates").status_code == 403


# ═══════════════════════════════════════════════════════════════════
# Dashboard and reports
# ═══════════════════════════════════════════════════════════════════

class TestDashboardRoutes:

    def test_dashboard(self, admin_client):
        admin_client.post("/api/missions", json={"title": "M", "start_date": "2025-03-03"})
        data = admin_client.get("/api/dashboard").get_json()
        assert data["success"] is True
        assert [k["key"] for k in data["kpis"]] == [
            "active_candidates",
            "active_missions",
            "active_trainings",
            "active_personnel",
        ]
        assert [t["id"] for t in data["urgent_tasks"]] == ["missions-pending"]
        assert data["recent_activity"][0]["entity_type"] == "mission"

    def test_reports(self, admin_client):
        data = admin_client.get("/api/reports/recruitment").get_json()
        assert data["kind"] == "recruitment"
        assert data["report"]["conversion_rate"] == 0.0
        assert admin_client.get("/api/reports/payroll?start=2025-01-01&end=2025-01-31").status_code == 200
        assert admin_client.get("/api/reports/payroll?start=bad").status_code == 400
        assert admin_client.get("/api/reports/sales").status_code == 400

    def test_reports_need_reports_module(self, client, account, login, grant):
        grant("user", "dashboard", "view")
        user = account("user")
        login(user.email)
        assert client.get("/api/dashboard").status_code == 200
        assert client.get("/api/reports/recruitment").status_code == 403


# ═══════════════════════════════════════════════════════════════════
# Users and administration
# ═══════════════════════════════════════════════════════════════════

class TestAdminRoutes:

    def test_cannot_delete_self(self, admin_client):
        response = admin_client.delete(f"/api/users/{admin_client.account.id}")
        assert response.status_code == 400

    def test_invite_and_delete_user(self, admin_client):
        created = admin_client.post(
            "/api/users",
            json={"email": "new@example.com", "password": "password123", "role": "rh", "full_name": "New"},
        )
        assert created.status_code == 201
        user_id = created.get_json()["item"]["id"]

        assert admin_client.delete(f"/api/users/{user_id}").status_code == 200
        emails = [u["email"] for u in admin_client.get("/api/users").get_json()["items"]]
        assert "new@example.com" not in emails

    def test_permissions_matrix(self, admin_client):
        response = admin_client.put(
            "/api/admin/permissions",
            json={"updates": [{"role": "user", "module": "planning", "view": True}]},
        )
        assert response.status_code == 200
        rows = response.get_json()["items"]
        assert rows[0]["role"] == "user" and rows[0]["can_view"] is True

        assert admin_client.put("/api/admin/permissions", json={"updates": "x"}).status_code == 400

    def test_audit_logs(self, admin_client):
        create_client(admin_client)
        items = admin_client.get("/api/admin/audit-logs?entity_type=client").get_json()["items"]
        assert [i["action"] for i in items] == ["create"]
        assert items[0]["action_label"] == "Création"

    def test_export_download(self, admin_client):
        create_client(admin_client)
        response = admin_client.post("/api/admin/export", json={"tables": ["clients"], "format": "json"})
        assert response.status_code == 200
        assert response.headers["Content-Disposition"].startswith('attachment; filename="braincrm-export-')
        assert json.loads(response.data)["clients"][0]["code"] == "CL-1"

    def test_export_empty_selection(self, admin_client):
        response = admin_client.post("/api/admin/export", json={"tables": [], "format": "csv"})
        assert response.status_code == 400
        assert response.get_json()["error"] == "Veuillez sélectionner au moins une table"

    def test_export_requires_settings_permission(self, client, account, login, grant):
        grant("manager", "reports", "view")
        user = account("manager")
        login(user.email)
        assert client.post("/api/admin/export", json={"tables": ["clients"]}).status_code == 403

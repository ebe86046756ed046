"""
Tests for the dashboard (KPIs, urgent tasks, activity feed) and the reports.

Run with: pytest tests/test_dashboard.py -v
"""

from datetime import date, timedelta

import pytest

from braincrm.services import (
    candidates,
    clients,
    contracts,
    dashboard,
    invoices,
    job_offers,
    missions,
    participants,
    payrolls,
    personnel,
    reports,
    trainings,
)
from braincrm.services.base import ValidationError

TODAY = date(2025, 6, 2)


def day(offset):
    return (TODAY + timedelta(days=offset)).isoformat()


@pytest.fixture
def atlas(ctx):
    return clients.create(ctx, {"code": "CL-1", "raison_sociale": "Atlas SARL"})


# ═══════════════════════════════════════════════════════════════════
# Urgent tasks
# ═══════════════════════════════════════════════════════════════════

class TestUrgentTasks:

    def test_nothing_to_do(self, ctx):
        assert dashboard.urgent_tasks(TODAY) == []

    def test_expiring_contracts(self, ctx):
        for n, (status, end) in enumerate(
            [("actif", day(3)), ("actif", day(6)), ("actif", day(20)), ("actif", day(45)), ("brouillon", day(3))]
        ):
            contracts.create(
                ctx, {"numero_contrat": f"CT-{n}", "date_debut": day(-90), "date_fin": end, "status": status}
            )

        tasks = {t.id: t for t in dashboard.urgent_tasks(TODAY)}
        assert tasks["contracts-critical"].count == 2
        assert tasks["contracts-critical"].level == "critical"
        assert tasks["contracts-critical"].description == "2 contrat(s) arrivent à expiration très bientôt"
        assert tasks["contracts-warning"].count == 1
        assert tasks["contracts-warning"].title == "Contrats à renouveler"

    def test_already_expired_contract_counts_as_critical(self, ctx):
        contracts.create(ctx, {"numero_contrat": "CT-1", "date_debut": day(-90), "date_fin": day(-1), "status": "actif"})
        tasks = dashboard.urgent_tasks(TODAY)
        assert [(t.id, t.count) for t in tasks] == [("contracts-critical", 1)]

    def test_expiring_documents_of_active_personnel(self, ctx):
        for n, (expiry, active) in enumerate([(day(2), True), (day(10), True), (day(2), False), (day(60), True)]):
            personnel.create(
                ctx,
                {
                    "matricule": f"M-{n}",
                    "nom": "Nom",
                    "prenom": f"P{n}",
                    "type_document": "CIN",
                    "date_validite_document": expiry,
                    "is_active": active,
                },
            )

        tasks = {t.id: t for t in dashboard.urgent_tasks(TODAY)}
        assert tasks["docs-critical"].count == 1
        assert tasks["docs-warning"].count == 1
        assert tasks["docs-warning"].description == "1 document(s) expirent dans les 30 jours"

    def test_invoices(self, ctx, atlas):
        for status in ("pending", "sent", "paid"):
            invoices.create(
                ctx, {"client_id": atlas.id, "issue_date": day(-40), "due_date": day(-1), "status": status}
            )
        invoices.create(ctx, {"client_id": atlas.id, "issue_date": day(-40), "due_date": day(0), "status": "sent"})
        invoices.create(ctx, {"client_id": atlas.id, "issue_date": day(0)})

        tasks = {t.id: t for t in dashboard.urgent_tasks(TODAY)}
        assert tasks["invoices-overdue"].count == 2
        assert tasks["invoices-overdue"].title == "Factures en retard"
        assert tasks["invoices-draft"].count == 1
        assert tasks["invoices-draft"].level == "info"

    def test_recruitment_and_missions(self, ctx):
        offer = job_offers.create(ctx, {"title": "Cariste", "status": "active"})
        for n, status in enumerate(("new", "reviewing", "interview", "hired")):
            candidates.create(
                ctx, {"full_name": f"C{n}", "email": f"c{n}@x.ma", "job_offer_id": offer.id, "status": status}
            )
        missions.create(ctx, {"title": "M1", "start_date": day(5)})
        missions.create(ctx, {"title": "M2", "start_date": day(5), "status": "active"})

        tasks = {t.id: t for t in dashboard.urgent_tasks(TODAY)}
        assert tasks["candidates-pending"].count == 2
        assert tasks["missions-pending"].description == "1 mission(s) à confirmer"

    def test_upcoming_trainings(self, ctx):
        trainings.create(ctx, {"title": "SST", "start_date": day(0)})
        trainings.create(ctx, {"title": "CACES", "start_date": day(6)})
        trainings.create(ctx, {"title": "Incendie", "start_date": day(7)})
        trainings.create(ctx, {"title": "Passée", "start_date": day(-1)})
        trainings.create(ctx, {"title": "En cours", "start_date": day(1), "status": "in_progress"})

        tasks = {t.id: t for t in dashboard.urgent_tasks(TODAY)}
        assert tasks["trainings-upcoming"].count == 2

    def test_fixed_order(self, ctx, atlas):
        trainings.create(ctx, {"title": "SST", "start_date": day(1)})
        invoices.create(ctx, {"client_id": atlas.id, "issue_date": day(0)})
        missions.create(ctx, {"title": "M1", "start_date": day(5)})
        contracts.create(ctx, {"numero_contrat": "CT-1", "date_debut": day(-90), "date_fin": day(2), "status": "actif"})

        ids = [t.id for t in dashboard.urgent_tasks(TODAY)]
        assert ids == ["contracts-critical", "missions-pending", "invoices-draft", "trainings-upcoming"]


# ═══════════════════════════════════════════════════════════════════
# KPIs / activity
# ═══════════════════════════════════════════════════════════════════

class TestSummary:

    def test_kpis(self, ctx):
        personnel.create(ctx, {"matricule": "M-1", "nom": "A", "prenom": "B"})
        personnel.create(ctx, {"matricule": "M-2", "nom": "C", "prenom": "D", "is_active": False})
        missions.create(ctx, {"title": "M", "start_date": day(0), "status": "active"})
        trainings.create(ctx, {"title": "SST", "start_date": day(3)})
        trainings.create(ctx, {"title": "Old", "start_date": day(-30), "status": "completed"})
        candidates.create(ctx, {"full_name": "A", "email": "a@x.ma"})
        candidates.create(ctx, {"full_name": "B", "email": "b@x.ma", "status": "rejected"})

        assert dashboard.kpis() == {
            "active_candidates": 1,
            "active_missions": 1,
            "active_trainings": 1,
            "active_personnel": 1,
        }

    def test_summary_payload(self, ctx):
        missions.create(ctx, {"title": "M", "start_date": day(0)})
        data = dashboard.summary(TODAY)

        assert [k["label"] for k in data["kpis"]] == [
            "Candidatures actives",
            "Missions en cours",
            "Formations actives",
            "Employés actifs",
        ]
        assert data["urgent_tasks"][0]["id"] == "missions-pending"
        assert data["recent_activity"][0]["entity_type_label"] == "Mission"

    def test_recent_activity_newest_first(self, ctx):
        for n in range(4):
            clients.create(ctx, {"code": f"C-{n}", "raison_sociale": f"Client {n}"})
        feed = dashboard.recent_activity(limit=3)
        assert len(feed) == 3
        assert [entry["entity_id"] for entry in feed] == sorted((e["entity_id"] for e in feed), reverse=True)


# ═══════════════════════════════════════════════════════════════════
# Reports
# ═══════════════════════════════════════════════════════════════════

class TestReports:

    def test_recruitment_conversion(self, ctx):
        for n, status in enumerate(("new", "hired", "rejected", "interview")):
            candidates.create(ctx, {"full_name": f"C{n}", "email": f"c{n}@x.ma", "status": status})

        report = reports.build_report("recruitment")
        assert report["total"] == 4
        assert report["hired"] == 1
        assert report["conversion_rate"] == 25.0
        assert report["by_status"]["offer"] == 0

    def test_recruitment_without_candidates(self, ctx):
        assert reports.build_report("recruitment")["conversion_rate"] == 0.0

    def test_payroll_mass_over_period(self, ctx):
        worker = personnel.create(ctx, {"matricule": "M-1", "nom": "A", "prenom": "B"})
        for start, end in (("2025-01-01", "2025-01-31"), ("2025-02-01", "2025-02-28"), ("2025-03-01", "2025-03-31")):
            payrolls.create(
                ctx,
                {
                    "personnel_id": worker.id,
                    "period_start": start,
                    "period_end": end,
                    "base_salary": "3000",
                    "bonus": "200",
                    "deductions": "100",
                },
            )

        everything = reports.build_report("payroll")
        assert (everything["entries"], everything["net_salary"]) == (3, 9300.0)

        q1 = reports.build_report("payroll", {"start": "2025-02-01", "end": "2025-03-31"})
        assert q1["entries"] == 2
        assert (q1["base_salary"], q1["bonus"], q1["deductions"], q1["net_salary"]) == (6000.0, 400.0, 200.0, 6200.0)

    def test_payroll_period_validated(self, ctx):
        with pytest.raises(ValidationError):
            reports.build_report("payroll", {"start": "01/02/2025"})
        with pytest.raises(ValidationError):
            reports.build_report("payroll", {"start": "2025-03-01", "end": "2025-02-01"})

    def test_trainings(self, ctx):
        worker = personnel.create(ctx, {"matricule": "M-1", "nom": "A", "prenom": "B"})
        session = trainings.create(ctx, {"title": "SST", "start_date": "2025-05-05", "status": "completed"})
        trainings.create(ctx, {"title": "CACES", "start_date": "2025-07-05"})
        participants.create(ctx, {"training_id": session.id, "personnel_id": worker.id, "completed": True})

        report = reports.build_report("trainings")
        assert report["total"] == 2
        assert report["by_status"] == {"planned": 1, "in_progress": 0, "completed": 1, "cancelled": 0}
        assert (report["participants"], report["completed_participants"]) == (1, 1)

    def test_monthly(self, ctx):
        missions.create(ctx, {"title": "Juin", "start_date": "2025-06-10"})
        missions.create(ctx, {"title": "Juillet", "start_date": "2025-07-01"})
        trainings.create(ctx, {"title": "SST", "start_date": "2025-06-30"})

        report = reports.build_report("monthly", {"year": "2025", "month": "6"})
        assert (report["missions_started"], report["trainings_started"]) == (1, 1)
        assert report["payroll"]["start"] == "2025-06-01"
        assert report["payroll"]["end"] == "2025-06-30"

    def test_monthly_rejects_bad_month(self, ctx):
        with pytest.raises(ValidationError):
            reports.build_report("monthly", {"year": "2025", "month": "13"})

    def test_unknown_report(self, ctx):
        with pytest.raises(ValidationError):
            reports.build_report("sales")

"""
BrainCRM - Domain Models

Staffing-agency back office:
- Accounts, profiles, roles and the role/module permission matrix
- Clients, personnel (temporary workers), contracts + version history
- Invoices + invoice lines (totals derived from the client tax category)
- Payroll, trainings + participants, planning events
- Missions, job offers + candidates
- Audit log (immutable)

IMPORTANT:
- UI is never trusted. Any selection must be validated server-side in services.
- Money columns are Numeric(12, 2). Rounding is half-up, done by _money().
"""

from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP

from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from .extensions import db


# ---------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------
def _utcnow() -> datetime:
    """Naive UTC timestamp (SQLite has no timezone support)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def _to_decimal(value) -> Decimal:
    """Convert Numeric/float/None to Decimal safely."""
    if value is None:
        return Decimal("0.00")
    return Decimal(str(value))


def _money(x: Decimal) -> Decimal:
    return x.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)


# Client tax category -> VAT rate. Anything else (None, "normale") is standard.
TAX_RATES = {
    "exoneree": Decimal("0.00"),
    "reduite": Decimal("0.10"),
    "normale": Decimal("0.20"),
}
STANDARD_TAX_RATE = TAX_RATES["normale"]

TAX_LABELS = {
    "exoneree": "TVA (Exonérée)",
    "reduite": "TVA (Réduite)",
}
STANDARD_TAX_LABEL = "TVA (20%)"


def tax_rate_for(category: str | None) -> Decimal:
    return TAX_RATES.get(category or "", STANDARD_TAX_RATE)


def tax_label_for(category: str | None) -> str:
    return TAX_LABELS.get(category or "", STANDARD_TAX_LABEL)


def compute_invoice_totals(total_ht, category: str | None) -> tuple[Decimal, Decimal]:
    """
    Return (total_tva, total_ttc) for a pre-tax amount and a client tax category.

    total_tva = round2(total_ht x rate)
    total_ttc = round2(total_ht + total_tva)
    """
    ht = _to_decimal(total_ht)
    tva = _money(ht * tax_rate_for(category))
    return tva, _money(ht + tva)


# ---------------------------------------------------------------------
# Accounts, profiles, roles
# ---------------------------------------------------------------------
class User(UserMixin, db.Model):
    """Login account. Profile and role live in their own tables."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)

    profile = db.relationship("Profile", back_populates="user", uselist=False)
    role_row = db.relationship("UserRole", back_populates="user", uselist=False)

    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def role(self) -> str | None:
        return self.role_row.role if self.role_row else None

    @property
    def full_name(self) -> str | None:
        return self.profile.full_name if self.profile else None

    @property
    def is_active(self) -> bool:
        # Flask-Login refuses inactive accounts at login time.
        return self.profile.is_active if self.profile else True

    def __repr__(self):
        return f"<User {self.email}>"


class Profile(db.Model):
    __tablename__ = "profiles"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id"),
        nullable=False,
        unique=True,
        index=True,
    )

    full_name = db.Column(db.String(255))
    avatar_url = db.Column(db.String(500))
    department = db.Column(db.String(120))
    phone = db.Column(db.String(50))

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    last_login = db.Column(db.DateTime)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    user = db.relationship("User", back_populates="profile")


class UserRole(db.Model):
    """Exactly one role per account."""

    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(
        db.Integer,
        db.ForeignKey("users.id"),
        nullable=False,
        unique=True,
        index=True,
    )
    role = db.Column(db.String(20), nullable=False, default="user", index=True)

    created_at = db.Column(db.DateTime, default=_utcnow)

    user = db.relationship("User", back_populates="role_row")


class RolePermission(db.Model):
    """
    Permission flags for one (role, module).

    A missing row means every flag is False for that role/module.
    """

    __tablename__ = "role_permissions"

    id = db.Column(db.Integer, primary_key=True)

    role = db.Column(db.String(20), nullable=False, index=True)
    module = db.Column(db.String(50), nullable=False, index=True)

    can_view = db.Column(db.Boolean, default=False, nullable=False)
    can_create = db.Column(db.Boolean, default=False, nullable=False)
    can_edit = db.Column(db.Boolean, default=False, nullable=False)
    can_delete = db.Column(db.Boolean, default=False, nullable=False)

    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (db.UniqueConstraint("role", "module", name="uq_role_module"),)


# ---------------------------------------------------------------------
# Clients & personnel
# ---------------------------------------------------------------------
class Client(db.Model):
    __tablename__ = "clients"

    id = db.Column(db.Integer, primary_key=True)

    code = db.Column(db.String(50), nullable=False, unique=True, index=True)
    raison_sociale = db.Column(db.String(255), nullable=False, index=True)
    type_client = db.Column(db.String(10))  # C1 / C2 / C9
    titre = db.Column(db.String(50))

    adresse = db.Column(db.String(255))
    adresse_facturation = db.Column(db.String(255))
    telephone = db.Column(db.String(50))
    email = db.Column(db.String(255))

    contact_nom = db.Column(db.String(255))
    contact_email = db.Column(db.String(255))
    contact_telephone = db.Column(db.String(50))

    code_ice = db.Column(db.String(50))

    # Tax category: normale / exoneree / reduite (None = normale)
    tva = db.Column(db.String(20))
    mode_reglement = db.Column(db.String(20))  # cheque / traite / virement
    delai_reglement = db.Column(db.Integer)  # days
    mode_edition_facture = db.Column(db.String(20))  # global / salarie / commande

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    @property
    def tax_rate(self) -> Decimal:
        return tax_rate_for(self.tva)

    def __repr__(self):
        return f"<Client {self.code} - {self.raison_sociale}>"


class Personnel(db.Model):
    """Temporary worker / employee."""

    __tablename__ = "personnel"

    id = db.Column(db.Integer, primary_key=True)

    matricule = db.Column(db.String(50), nullable=False, unique=True, index=True)
    civilite = db.Column(db.String(5), nullable=False, default="Mr")  # Mr / Mme / Mle
    nom = db.Column(db.String(120), nullable=False, index=True)
    prenom = db.Column(db.String(120), nullable=False)

    date_naissance = db.Column(db.Date)
    nationalite = db.Column(db.String(100))
    situation_familiale = db.Column(db.String(2))  # C / M / D

    telephone1 = db.Column(db.String(50))
    telephone2 = db.Column(db.String(50))
    adresse = db.Column(db.String(255))
    ville = db.Column(db.String(100))
    code_postal = db.Column(db.String(20))

    # Identity / residence document
    type_document = db.Column(db.String(30))
    numero_document = db.Column(db.String(50))
    date_validite_document = db.Column(db.Date, index=True)

    qualification = db.Column(db.String(255))
    mode_paiement = db.Column(db.String(20))  # espece / cheque / virement
    rib = db.Column(db.String(50))
    date_entree = db.Column(db.Date)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    def full_name(self):
        return f"{self.nom} {self.prenom}".strip()

    def __repr__(self):
        return f"<Personnel {self.matricule} {self.full_name()}>"


# ---------------------------------------------------------------------
# Contracts + history
# ---------------------------------------------------------------------
class Contract(db.Model):
    __tablename__ = "contracts"

    id = db.Column(db.Integer, primary_key=True)

    numero_contrat = db.Column(db.String(50), nullable=False, unique=True, index=True)
    # nouveau / modification / renouvellement / avenant / duplicata
    type_contrat = db.Column(db.String(30), nullable=False, default="nouveau")
    # brouillon / actif / termine / annule
    status = db.Column(db.String(20), nullable=False, default="brouillon", index=True)

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    personnel_id = db.Column(
        db.Integer,
        db.ForeignKey("personnel.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    mission_id = db.Column(
        db.Integer,
        db.ForeignKey("missions.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    date_debut = db.Column(db.Date, nullable=False)
    date_fin = db.Column(db.Date)
    date_entree_fonction = db.Column(db.Date)
    periode_essai = db.Column(db.String(20))  # 2_jours / 3_jours / 5_jours

    motif_recours = db.Column(db.String(255))
    justificatif = db.Column(db.String(255))
    caracteristiques_poste = db.Column(db.Text)
    lieu_travail = db.Column(db.String(255))
    numero_commande = db.Column(db.String(100))

    salaire_reference = db.Column(db.Numeric(12, 2))
    taux_horaire = db.Column(db.Numeric(12, 2))
    coefficient_facturation = db.Column(db.Numeric(6, 3))
    indemnites_non_soumises_rubrique = db.Column(db.String(255))
    indemnites_non_soumises_montant = db.Column(db.Numeric(12, 2))

    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    client = db.relationship("Client", backref=db.backref("contracts", lazy=True))
    personnel = db.relationship("Personnel", backref=db.backref("contracts", lazy=True))
    mission = db.relationship("Mission", backref=db.backref("contracts", lazy=True))

    history = db.relationship(
        "ContractHistory",
        back_populates="contract",
        cascade="all, delete-orphan",
        order_by="ContractHistory.version_number",
    )


class ContractHistory(db.Model):
    """
    One version of a contract.

    - version_number strictly increases per contract (unique constraint).
    - changes is the sparse {field: {"old": ..., "new": ...}} map computed at write time.
      The creation entry has no changes map.
    - snapshot is the full contract state after the change.
    """

    __tablename__ = "contract_history"

    id = db.Column(db.Integer, primary_key=True)

    contract_id = db.Column(
        db.Integer,
        db.ForeignKey("contracts.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    version_number = db.Column(db.Integer, nullable=False)
    change_type = db.Column(db.String(20), nullable=False)  # creation / modification / status_change

    changes = db.Column(db.JSON, nullable=True)
    snapshot = db.Column(db.JSON, nullable=False)

    changed_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    changed_at = db.Column(db.DateTime, default=_utcnow, nullable=False, index=True)

    contract = db.relationship("Contract", back_populates="history")

    __table_args__ = (
        db.UniqueConstraint("contract_id", "version_number", name="uq_contract_version"),
    )


# ---------------------------------------------------------------------
# Invoices
# ---------------------------------------------------------------------
class Invoice(db.Model):
    __tablename__ = "invoices"

    id = db.Column(db.Integer, primary_key=True)

    invoice_number = db.Column(db.String(30), nullable=False, unique=True, index=True)

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    issue_date = db.Column(db.Date, nullable=False)
    due_date = db.Column(db.Date)
    period_start = db.Column(db.Date)
    period_end = db.Column(db.Date)
    payment_date = db.Column(db.Date)

    # draft / pending / sent / paid / cancelled
    status = db.Column(db.String(20), nullable=False, default="draft", index=True)

    total_ht = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_tva = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))
    total_ttc = db.Column(db.Numeric(12, 2), nullable=False, default=Decimal("0.00"))

    notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    client = db.relationship("Client", backref=db.backref("invoices", lazy=True))

    lines = db.relationship(
        "InvoiceLine",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.created_at",
    )

    def recalc_totals(self):
        """Derive TVA and TTC from total_ht and the client's tax category."""
        category = self.client.tva if self.client else None
        self.total_ht = _money(_to_decimal(self.total_ht))
        self.total_tva, self.total_ttc = compute_invoice_totals(self.total_ht, category)

    @property
    def tax_label(self) -> str:
        return tax_label_for(self.client.tva if self.client else None)


class InvoiceLine(db.Model):
    __tablename__ = "invoice_lines"

    id = db.Column(db.Integer, primary_key=True)

    invoice_id = db.Column(
        db.Integer,
        db.ForeignKey("invoices.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    personnel_id = db.Column(
        db.Integer,
        db.ForeignKey("personnel.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    contract_id = db.Column(
        db.Integer,
        db.ForeignKey("contracts.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    description = db.Column(db.Text)

    heures_normales = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    heures_sup_25 = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    heures_sup_50 = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    heures_sup_100 = db.Column(db.Numeric(8, 2), nullable=False, default=0)
    heures_feriees = db.Column(db.Numeric(8, 2), nullable=False, default=0)

    montant_ht = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)

    invoice = db.relationship("Invoice", back_populates="lines")
    # Deleting the worker or the contract keeps the billed line, unlinked.
    personnel = db.relationship("Personnel", backref=db.backref("invoice_lines", lazy=True))
    contract = db.relationship("Contract", backref=db.backref("invoice_lines", lazy=True))


# ---------------------------------------------------------------------
# Payroll, training, planning
# ---------------------------------------------------------------------
class Payroll(db.Model):
    __tablename__ = "payrolls"

    id = db.Column(db.Integer, primary_key=True)

    personnel_id = db.Column(
        db.Integer,
        db.ForeignKey("personnel.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    period_start = db.Column(db.Date, nullable=False)
    period_end = db.Column(db.Date, nullable=False)

    base_salary = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    bonus = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    deductions = db.Column(db.Numeric(12, 2), nullable=False, default=0)
    net_salary = db.Column(db.Numeric(12, 2), nullable=False, default=0)

    payment_date = db.Column(db.Date)
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    personnel = db.relationship("Personnel", backref=db.backref("payrolls", lazy=True))

    def recalc_net(self):
        self.net_salary = _money(
            _to_decimal(self.base_salary) + _to_decimal(self.bonus) - _to_decimal(self.deductions)
        )


class Training(db.Model):
    __tablename__ = "trainings"

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    category = db.Column(db.String(100))
    trainer = db.Column(db.String(255))

    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date)
    duration_hours = db.Column(db.Integer)
    location = db.Column(db.String(255))
    max_participants = db.Column(db.Integer)

    # planned / in_progress / completed / cancelled
    status = db.Column(db.String(20), nullable=False, default="planned", index=True)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    participants = db.relationship(
        "TrainingParticipant",
        back_populates="training",
        cascade="all, delete-orphan",
    )


class TrainingParticipant(db.Model):
    __tablename__ = "training_participants"

    id = db.Column(db.Integer, primary_key=True)

    training_id = db.Column(
        db.Integer,
        db.ForeignKey("trainings.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    personnel_id = db.Column(
        db.Integer,
        db.ForeignKey("personnel.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    completed = db.Column(db.Boolean, default=False, nullable=False)
    completion_date = db.Column(db.Date)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)

    training = db.relationship("Training", back_populates="participants")
    personnel = db.relationship(
        "Personnel",
        backref=db.backref("training_participants", lazy=True, cascade="all, delete"),
    )

    __table_args__ = (
        db.UniqueConstraint("training_id", "personnel_id", name="uq_training_personnel"),
    )


class Event(db.Model):
    """Planning item. Standalone (no parent entity)."""

    __tablename__ = "events"

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)

    start_datetime = db.Column(db.DateTime, nullable=False, index=True)
    end_datetime = db.Column(db.DateTime)

    # meeting / interview / training / deadline / other
    event_type = db.Column(db.String(20), nullable=False, default="other")
    location = db.Column(db.String(255))
    attendees = db.Column(db.JSON)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)


# ---------------------------------------------------------------------
# Missions, recruitment
# ---------------------------------------------------------------------
class Mission(db.Model):
    """Temporary-work assignment placed at a client."""

    __tablename__ = "missions"

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(200), nullable=False)
    description = db.Column(db.Text)

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    candidate_id = db.Column(
        db.Integer,
        db.ForeignKey("candidates.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    personnel_id = db.Column(
        db.Integer,
        db.ForeignKey("personnel.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    location = db.Column(db.String(200))
    mission_type = db.Column(db.String(100))
    daily_rate = db.Column(db.Numeric(12, 2))

    start_date = db.Column(db.Date, nullable=False, index=True)
    end_date = db.Column(db.Date)

    # pending / active / completed / cancelled
    status = db.Column(db.String(20), nullable=False, default="pending", index=True)
    contract_url = db.Column(db.String(500))

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    client = db.relationship("Client", backref=db.backref("missions", lazy=True))
    personnel = db.relationship("Personnel", backref=db.backref("missions", lazy=True))
    candidate = db.relationship("Candidate", backref=db.backref("missions", lazy=True))


class JobOffer(db.Model):
    __tablename__ = "job_offers"

    id = db.Column(db.Integer, primary_key=True)

    title = db.Column(db.String(255), nullable=False)
    description = db.Column(db.Text)
    department = db.Column(db.String(120))
    location = db.Column(db.String(255))

    client_id = db.Column(
        db.Integer,
        db.ForeignKey("clients.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    # cdi / cdd / interim / freelance / stage
    job_type = db.Column(db.String(20))
    salary_min = db.Column(db.Numeric(12, 2))
    salary_max = db.Column(db.Numeric(12, 2))

    requirements = db.Column(db.JSON)
    responsibilities = db.Column(db.JSON)
    benefits = db.Column(db.JSON)

    # draft / active / closed
    status = db.Column(db.String(20), nullable=False, default="draft", index=True)
    published_at = db.Column(db.DateTime)
    expires_at = db.Column(db.Date)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    client = db.relationship("Client", backref=db.backref("job_offers", lazy=True))


class Candidate(db.Model):
    """Application to a job offer (or spontaneous when job_offer_id is empty)."""

    __tablename__ = "candidates"

    id = db.Column(db.Integer, primary_key=True)

    full_name = db.Column(db.String(255), nullable=False)
    email = db.Column(db.String(255), nullable=False, index=True)
    phone = db.Column(db.String(50))

    job_offer_id = db.Column(
        db.Integer,
        db.ForeignKey("job_offers.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    cv_url = db.Column(db.String(500))
    cover_letter = db.Column(db.Text)
    notes = db.Column(db.Text)
    rating = db.Column(db.Integer)

    # new / reviewing / interview / offer / hired / rejected
    status = db.Column(db.String(20), nullable=False, default="new", index=True)
    applied_at = db.Column(db.DateTime, default=_utcnow, index=True)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=_utcnow, onupdate=_utcnow)

    job_offer = db.relationship("JobOffer", backref=db.backref("candidates", lazy=True))


# ---------------------------------------------------------------------
# Audit
# ---------------------------------------------------------------------
class AuditLog(db.Model):
    """Immutable audit trail. Never updated or deleted by the application."""

    __tablename__ = "audit_logs"

    id = db.Column(db.Integer, primary_key=True)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    user_email = db.Column(db.String(255), nullable=True)
    user_name = db.Column(db.String(255), nullable=True)

    action = db.Column(db.String(20), nullable=False, index=True)
    entity_type = db.Column(db.String(30), nullable=False, index=True)
    entity_id = db.Column(db.String(64), nullable=True, index=True)

    old_data = db.Column(db.JSON, nullable=True)
    new_data = db.Column(db.JSON, nullable=True)

    ip_address = db.Column(db.String(45), nullable=True)
    user_agent = db.Column(db.String(500), nullable=True)

    created_at = db.Column(db.DateTime, default=_utcnow, index=True)

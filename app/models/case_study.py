"""
Case Study Builder
Case study domain models.

Models:
    - CaseStudy: the structured problem/solution write-up
    - CaseStudyTranslation: one translated narrative field per language
    - WeldingProcedure: 1:1 welding parameter sheet (TECH / STAR)
    - CostCalculator: 1:1 cost comparison inputs + derived outputs (STAR)
"""

from datetime import datetime, timezone

from app.models import db


# ── Constants ────────────────────────────────────────────────────────────────

CASE_TYPES = ("APPLICATION", "TECH", "STAR")
CASE_STATUSES = ("DRAFT", "SUBMITTED", "APPROVED", "REJECTED", "PUBLISHED")
WORK_TYPES = ("WORKSHOP", "ON_SITE", "BOTH")
WEAR_TYPES = ("ABRASION", "IMPACT", "CORROSION", "TEMPERATURE", "COMBINATION")
QUALIFIER_TYPES = ("NEW_CUSTOMER", "CROSS_SELL", "MAINTENANCE")

# Narrative fields eligible for translation
TRANSLATABLE_FIELDS = (
    "problem_description",
    "previous_solution",
    "technical_advantages",
    "wa_solution",
)

MONETARY_FIELDS = (
    "solution_value_revenue",
    "annual_potential_revenue",
    "customer_savings_amount",
)

# action → {from: allowed source statuses, to: target status}
CASE_STUDY_TRANSITIONS = {
    "submit": {"from": {"DRAFT"}, "to": "SUBMITTED"},
    "approve": {"from": {"SUBMITTED"}, "to": "APPROVED"},
    "reject": {"from": {"SUBMITTED"}, "to": "REJECTED"},
    "publish": {"from": {"APPROVED"}, "to": "PUBLISHED"},
    "reopen": {"from": {"APPROVED", "REJECTED"}, "to": "DRAFT"},
}


def _utcnow():
    return datetime.now(timezone.utc)


def _iso(value):
    return value.isoformat() if value else None


def _num(value):
    return float(value) if value is not None else None


# ═════════════════════════════════════════════════════════════════════════════
# CaseStudy
# ═════════════════════════════════════════════════════════════════════════════

class CaseStudy(db.Model):
    __tablename__ = "case_studies"
    __table_args__ = (
        db.Index("idx_case_status", "status"),
        db.Index("idx_case_contributor", "contributor_id"),
        db.Index("idx_case_customer", "customer_name"),
    )

    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(20), nullable=False, default="APPLICATION")
    status = db.Column(db.String(20), nullable=False, default="DRAFT")
    contributor_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"), nullable=True,
    )

    # Customer / component
    customer_name = db.Column(db.String(200), nullable=False)
    industry = db.Column(db.String(100), nullable=False)
    location = db.Column(db.String(200), nullable=False)
    country = db.Column(db.String(100))
    component_workpiece = db.Column(db.String(200), nullable=False)
    work_type = db.Column(db.String(20), nullable=False, default="WORKSHOP")
    wear_type = db.Column(db.JSON, default=list)
    wear_severities = db.Column(db.JSON, default=dict, comment="{wear_type: 1..5}")
    base_metal = db.Column(db.String(200))
    general_dimensions = db.Column(db.String(200))
    oem = db.Column(db.String(200))

    # Narrative
    problem_description = db.Column(db.Text, nullable=False)
    previous_solution = db.Column(db.Text)
    previous_service_life = db.Column(db.String(100))
    competitor_name = db.Column(db.String(200))
    wa_solution = db.Column(db.Text, nullable=False)
    wa_product = db.Column(db.String(200), nullable=False)
    technical_advantages = db.Column(db.Text)
    expected_service_life = db.Column(db.String(100))

    # Financials
    solution_value_revenue = db.Column(db.Numeric(14, 2))
    annual_potential_revenue = db.Column(db.Numeric(14, 2))
    customer_savings_amount = db.Column(db.Numeric(14, 2))
    currency = db.Column(db.String(3), default="EUR")

    qualifier_type = db.Column(db.String(20), nullable=True)
    tags = db.Column(db.JSON, default=list)
    images = db.Column(db.JSON, default=list)
    supporting_docs = db.Column(db.JSON, default=list)

    # Translation
    original_language = db.Column(db.String(5))
    translation_available = db.Column(db.Boolean, nullable=False, default=False)

    # Approval trail
    approver_id = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    submitted_at = db.Column(db.DateTime(timezone=True))
    approved_at = db.Column(db.DateTime(timezone=True))
    rejected_at = db.Column(db.DateTime(timezone=True))
    rejected_by = db.Column(db.Integer, db.ForeignKey("users.id", ondelete="SET NULL"))
    rejection_reason = db.Column(db.Text)
    published_at = db.Column(db.DateTime(timezone=True))

    # CRM
    insightly_opportunity_id = db.Column(db.BigInteger)
    insightly_synced_at = db.Column(db.DateTime(timezone=True))

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    # ── Relationships ────────────────────────────────────────────────────
    contributor = db.relationship(
        "User", back_populates="case_studies", foreign_keys=[contributor_id],
    )
    approver = db.relationship("User", foreign_keys=[approver_id])
    welding_procedure = db.relationship(
        "WeldingProcedure", back_populates="case_study", uselist=False,
        cascade="all, delete-orphan",
    )
    cost_calculator = db.relationship(
        "CostCalculator", back_populates="case_study", uselist=False,
        cascade="all, delete-orphan",
    )
    translations = db.relationship(
        "CaseStudyTranslation", back_populates="case_study", lazy="select",
        cascade="all, delete-orphan",
    )

    @property
    def title(self) -> str:
        return f"{self.customer_name} - {self.component_workpiece}"

    def translations_by_language(self) -> dict[str, dict[str, str]]:
        """Return ``{language: {field_name: translated_text}}``."""
        out: dict[str, dict[str, str]] = {}
        for t in self.translations:
            out.setdefault(t.language, {})[t.field_name] = t.translated_text
        return out

    def to_dict(self, include_children=False):
        d = {
            "id": self.id,
            "title": self.title,
            "type": self.type,
            "status": self.status,
            "contributor_id": self.contributor_id,
            "customer_name": self.customer_name,
            "industry": self.industry,
            "location": self.location,
            "country": self.country,
            "component_workpiece": self.component_workpiece,
            "work_type": self.work_type,
            "wear_type": self.wear_type or [],
            "wear_severities": self.wear_severities or {},
            "base_metal": self.base_metal,
            "general_dimensions": self.general_dimensions,
            "oem": self.oem,
            "problem_description": self.problem_description,
            "previous_solution": self.previous_solution,
            "previous_service_life": self.previous_service_life,
            "competitor_name": self.competitor_name,
            "wa_solution": self.wa_solution,
            "wa_product": self.wa_product,
            "technical_advantages": self.technical_advantages,
            "expected_service_life": self.expected_service_life,
            "solution_value_revenue": _num(self.solution_value_revenue),
            "annual_potential_revenue": _num(self.annual_potential_revenue),
            "customer_savings_amount": _num(self.customer_savings_amount),
            "currency": self.currency,
            "qualifier_type": self.qualifier_type,
            "tags": self.tags or [],
            "images": self.images or [],
            "supporting_docs": self.supporting_docs or [],
            "original_language": self.original_language,
            "translation_available": self.translation_available,
            "approver_id": self.approver_id,
            "submitted_at": _iso(self.submitted_at),
            "approved_at": _iso(self.approved_at),
            "rejected_at": _iso(self.rejected_at),
            "rejected_by": self.rejected_by,
            "rejection_reason": self.rejection_reason,
            "published_at": _iso(self.published_at),
            "insightly_opportunity_id": self.insightly_opportunity_id,
            "insightly_synced_at": _iso(self.insightly_synced_at),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }
        if include_children:
            d["welding_procedure"] = (
                self.welding_procedure.to_dict() if self.welding_procedure else None
            )
            d["cost_calculator"] = (
                self.cost_calculator.to_dict() if self.cost_calculator else None
            )
            d["translations"] = self.translations_by_language()
        return d

    def __repr__(self):
        return f"<CaseStudy {self.id}: {self.type} {self.status} {self.title[:40]}>"


# ═════════════════════════════════════════════════════════════════════════════
# CaseStudyTranslation
# ═════════════════════════════════════════════════════════════════════════════

class CaseStudyTranslation(db.Model):
    """One translated narrative field of a case study, per target language."""

    __tablename__ = "case_study_translations"
    __table_args__ = (
        db.UniqueConstraint(
            "case_study_id", "language", "field_name", name="uq_case_translation_field",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    case_study_id = db.Column(
        db.Integer, db.ForeignKey("case_studies.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    language = db.Column(db.String(5), nullable=False)
    field_name = db.Column(db.String(50), nullable=False)
    translated_text = db.Column(db.Text, nullable=False)
    provider = db.Column(db.String(20), nullable=False)
    translated_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    case_study = db.relationship("CaseStudy", back_populates="translations")

    def to_dict(self):
        return {
            "id": self.id,
            "case_study_id": self.case_study_id,
            "language": self.language,
            "field_name": self.field_name,
            "translated_text": self.translated_text,
            "provider": self.provider,
            "translated_at": _iso(self.translated_at),
        }


# ═════════════════════════════════════════════════════════════════════════════
# WeldingProcedure
# ═════════════════════════════════════════════════════════════════════════════

WPS_FIELDS = (
    "wa_product_name", "wa_product_diameter", "welding_process",
    "base_metal_type", "base_metal_grade", "base_metal_thickness",
    "surface_preparation", "buffer_layer", "buffer_layer_product",
    "heating_procedure", "preheating_temp", "interpass_temp",
    "post_heating", "pwht_details",
    "current_type", "current_mode_synergy", "wire_feed_speed",
    "intensity", "voltage", "welding_position", "torch_angle",
    "stickout", "travel_speed", "oscillation_details",
    "shielding_gas", "shielding_flow_rate", "flux_name",
    "standard_designation", "additional_notes",
)

WPS_REQUIRED_FIELDS = ("wa_product_name", "welding_process")


class WeldingProcedure(db.Model):
    __tablename__ = "welding_procedures"

    id = db.Column(db.Integer, primary_key=True)
    case_study_id = db.Column(
        db.Integer, db.ForeignKey("case_studies.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )

    wa_product_name = db.Column(db.String(200), nullable=False)
    wa_product_diameter = db.Column(db.String(50))
    welding_process = db.Column(db.String(100), nullable=False)
    base_metal_type = db.Column(db.String(100))
    base_metal_grade = db.Column(db.String(100))
    base_metal_thickness = db.Column(db.String(50))
    surface_preparation = db.Column(db.String(200))
    buffer_layer = db.Column(db.String(100))
    buffer_layer_product = db.Column(db.String(200))
    heating_procedure = db.Column(db.String(200))
    preheating_temp = db.Column(db.String(50))
    interpass_temp = db.Column(db.String(50))
    post_heating = db.Column(db.String(200))
    pwht_details = db.Column(db.Text)
    current_type = db.Column(db.String(50))
    current_mode_synergy = db.Column(db.String(100))
    wire_feed_speed = db.Column(db.String(50))
    intensity = db.Column(db.String(50))
    voltage = db.Column(db.String(50))
    welding_position = db.Column(db.String(50))
    torch_angle = db.Column(db.String(50))
    stickout = db.Column(db.String(50))
    travel_speed = db.Column(db.String(50))
    oscillation_details = db.Column(db.Text)
    shielding_gas = db.Column(db.String(100))
    shielding_flow_rate = db.Column(db.String(50))
    flux_name = db.Column(db.String(100))
    standard_designation = db.Column(db.String(100))
    layers = db.Column(db.JSON, default=list)
    additional_notes = db.Column(db.Text)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    case_study = db.relationship("CaseStudy", back_populates="welding_procedure")

    def to_dict(self):
        d = {"id": self.id, "case_study_id": self.case_study_id}
        for f in WPS_FIELDS:
            d[f] = getattr(self, f)
        d["layers"] = self.layers or []
        d["created_at"] = _iso(self.created_at)
        d["updated_at"] = _iso(self.updated_at)
        return d

    def __repr__(self):
        return f"<WeldingProcedure case={self.case_study_id} {self.welding_process}>"


# ═════════════════════════════════════════════════════════════════════════════
# CostCalculator
# ═════════════════════════════════════════════════════════════════════════════

LIFETIME_UNITS = ("hours", "days", "weeks", "months", "years")

COST_INPUT_FIELDS = (
    "cost_of_part_old",
    "cost_of_part_new",
    *(f"old_lifetime_{u}" for u in LIFETIME_UNITS),
    *(f"new_lifetime_{u}" for u in LIFETIME_UNITS),
    "parts_per_year",
    "maintenance_cost_per_event",
    "disassembly_cost_per_event",
    "downtime_cost_per_event",
)

COST_OUTPUT_FIELDS = (
    "lifetime_ratio",
    "new_parts_per_year",
    "annual_cost_old",
    "annual_cost_new",
    "annual_savings",
    "savings_percentage",
)


class CostCalculator(db.Model):
    """Persisted calculator inputs with outputs derived at save time."""

    __tablename__ = "cost_calculators"

    id = db.Column(db.Integer, primary_key=True)
    case_study_id = db.Column(
        db.Integer, db.ForeignKey("case_studies.id", ondelete="CASCADE"),
        nullable=False, unique=True,
    )

    # Inputs
    cost_of_part_old = db.Column(db.Float, nullable=False)
    cost_of_part_new = db.Column(db.Float, nullable=False)
    old_lifetime_hours = db.Column(db.Float, default=0)
    old_lifetime_days = db.Column(db.Float, default=0)
    old_lifetime_weeks = db.Column(db.Float, default=0)
    old_lifetime_months = db.Column(db.Float, default=0)
    old_lifetime_years = db.Column(db.Float, default=0)
    new_lifetime_hours = db.Column(db.Float, default=0)
    new_lifetime_days = db.Column(db.Float, default=0)
    new_lifetime_weeks = db.Column(db.Float, default=0)
    new_lifetime_months = db.Column(db.Float, default=0)
    new_lifetime_years = db.Column(db.Float, default=0)
    parts_per_year = db.Column(db.Float, nullable=False)
    maintenance_cost_per_event = db.Column(db.Float, default=0)
    disassembly_cost_per_event = db.Column(db.Float, default=0)
    downtime_cost_per_event = db.Column(db.Float, default=0)
    currency = db.Column(db.String(3), default="EUR")

    # Derived outputs (written only by the save step)
    lifetime_ratio = db.Column(db.Float)
    new_parts_per_year = db.Column(db.Float)
    annual_cost_old = db.Column(db.Float)
    annual_cost_new = db.Column(db.Float)
    annual_savings = db.Column(db.Float)
    savings_percentage = db.Column(db.Float)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    case_study = db.relationship("CaseStudy", back_populates="cost_calculator")

    def inputs(self) -> dict:
        return {f: getattr(self, f) for f in COST_INPUT_FIELDS}

    def to_dict(self):
        d = {"id": self.id, "case_study_id": self.case_study_id, "currency": self.currency}
        d.update(self.inputs())
        for f in COST_OUTPUT_FIELDS:
            d[f] = getattr(self, f)
        d["updated_at"] = _iso(self.updated_at)
        return d

    def __repr__(self):
        return f"<CostCalculator case={self.case_study_id} savings={self.annual_savings}>"

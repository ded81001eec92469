"""
Phase template catalogue: listing and default system seed.

The default catalogue covers a full turnkey interior project; the
``applicable_to`` list of each template decides which project categories
receive it.
"""

import logging

from sqlalchemy import or_

from atelier.models import db
from atelier.models.phase_template import (
    DependencyTemplate,
    PhaseCategory,
    PhaseTemplate,
    SubPhaseTemplate,
)
from atelier.models.project import PROJECT_CATEGORIES

logger = logging.getLogger(__name__)

_ALL = sorted(PROJECT_CATEGORIES)
_BUILD = ["turnkey", "modular", "renovation", "commercial_fitout", "hybrid", "other"]

DEFAULT_CATEGORIES = [
    ("design", "Design", 1),
    ("commercial", "Commercial", 2),
    ("procurement", "Procurement", 3),
    ("execution", "Execution", 4),
    ("closure", "Closure", 5),
]

# code, name, category, applicable_to, hours, sub-phases, depends_on [(code, type)]
# sub-phase tuple: (name, instructions, can_skip, required_role)
DEFAULT_PHASE_TEMPLATES = [
    ("site_survey", "Site Survey & Measurement", "design", _ALL, 8, [
        ("Schedule site visit", "Agree a visit slot with the client.", True, None),
        ("Measure and photograph site", "Record all wall, ceiling and opening dimensions.", False, "site_engineer"),
        ("Upload survey report", "Attach the measurement sheet and photos.", False, "site_engineer"),
    ], []),
    ("concept_design", "Concept Design", "design", _ALL, 24, [
        ("Client brief", "Capture style preferences, budget and constraints.", False, "designer"),
        ("Mood board", None, True, "designer"),
        ("Concept presentation", "Present layout and concept to the client.", False, "designer"),
    ], [("site_survey", "hard")]),
    ("detailed_design", "Detailed Design & Drawings", "design", _ALL, 40, [
        ("Working drawings", "Prepare plan, elevation and section drawings.", False, "designer"),
        ("3D renders", None, True, "designer"),
        ("Material selection", "Finalise finishes, fittings and samples with the client.", False, "designer"),
    ], [("concept_design", "hard")]),
    ("quotation_approval", "Quotation & Client Approval", "commercial", _BUILD, 8, [
        ("Prepare quotation", "Build the BOQ from the approved drawings.", False, "sales"),
        ("Client sign-off", "Collect the signed quotation and advance payment.", False, "sales"),
    ], [("detailed_design", "hard")]),
    ("procurement", "Procurement", "procurement", _BUILD, 40, [
        ("Raise purchase orders", None, False, "procurement"),
        ("Track deliveries", "Confirm dispatch dates with every vendor.", True, "procurement"),
        ("Goods receipt & inspection", "Inspect delivered material for damage.", False, "site_engineer"),
    ], [("quotation_approval", "hard")]),
    ("modular_production", "Modular Production", "execution",
     ["turnkey", "modular", "hybrid"], 80, [
        ("Release cutting list", None, False, "production"),
        ("Factory quality check", "Check panels and hardware against drawings.", False, "production"),
        ("Dispatch to site", None, False, "production"),
    ], [("procurement", "hard")]),
    ("civil_work", "Civil & Services Work", "execution",
     ["turnkey", "renovation", "commercial_fitout", "hybrid", "other"], 120, [
        ("Demolition", None, True, "site_engineer"),
        ("Electrical & plumbing rough-in", None, False, "site_engineer"),
        ("False ceiling & flooring", None, True, "site_engineer"),
    ], [("procurement", "soft")]),
    ("installation", "Installation", "execution", _BUILD, 80, [
        ("Furniture installation", None, False, "site_engineer"),
        ("Fixtures & fittings", None, False, "site_engineer"),
    ], [("modular_production", "hard"), ("civil_work", "hard")]),
    ("finishing", "Finishing & Snagging", "execution", _BUILD, 24, [
        ("Painting & polishing", None, True, "site_engineer"),
        ("Snag list walk-through", "Walk the site with the client and list defects.", False, "project_manager"),
        ("Deep cleaning", None, True, None),
    ], [("installation", "hard")]),
    ("handover", "Handover", "closure", _ALL, 8, [
        ("Final walk-through", None, False, "project_manager"),
        ("Handover documents", "Share warranties, manuals and as-built drawings.", False, "project_manager"),
        ("Collect feedback", None, True, None),
    ], [("finishing", "hard"), ("detailed_design", "soft")]),
]


def list_templates(tenant_id: int, category: str | None = None) -> list[PhaseTemplate]:
    """Active templates visible to the tenant (system + own), optionally by project category."""
    q = (
        PhaseTemplate.query
        .filter(PhaseTemplate.is_active.is_(True))
        .filter(or_(PhaseTemplate.tenant_id.is_(None), PhaseTemplate.tenant_id == tenant_id))
        .order_by(PhaseTemplate.display_order, PhaseTemplate.id)
    )
    templates = q.all()
    if category:
        templates = [t for t in templates if t.applies_to(category)]
    return templates


def list_categories() -> list[PhaseCategory]:
    return (
        PhaseCategory.query
        .filter_by(is_active=True)
        .order_by(PhaseCategory.display_order)
        .all()
    )


def seed_default_templates() -> int:
    """Insert the default system catalogue. Idempotent by template code.

    Flushes but does not commit; the caller owns the transaction.
    Returns the number of phase templates created.
    """
    for code, name, order in DEFAULT_CATEGORIES:
        if not PhaseCategory.query.filter_by(code=code).first():
            db.session.add(PhaseCategory(code=code, name=name, display_order=order))

    by_code = {
        t.code: t for t in PhaseTemplate.query.filter(PhaseTemplate.tenant_id.is_(None)).all()
    }
    created = 0
    for order, (code, name, category, applicable, hours, subs, _deps) in enumerate(
        DEFAULT_PHASE_TEMPLATES, start=1
    ):
        if code in by_code:
            continue
        tpl = PhaseTemplate(
            tenant_id=None,
            code=code,
            name=name,
            category_code=category,
            applicable_to=list(applicable),
            display_order=order,
            estimated_duration_hours=hours,
        )
        for sub_order, (sub_name, instructions, can_skip, role) in enumerate(subs, start=1):
            tpl.sub_phase_templates.append(SubPhaseTemplate(
                name=sub_name,
                instructions=instructions,
                display_order=sub_order,
                is_required=not can_skip,
                can_skip=can_skip,
                required_role=role,
            ))
        db.session.add(tpl)
        by_code[code] = tpl
        created += 1
    db.session.flush()

    for code, _name, _cat, _app, _hours, _subs, deps in DEFAULT_PHASE_TEMPLATES:
        tpl = by_code[code]
        for dep_code, dep_type in deps:
            target = by_code[dep_code]
            exists = DependencyTemplate.query.filter_by(
                phase_template_id=tpl.id, depends_on_phase_template_id=target.id,
            ).first()
            if not exists:
                db.session.add(DependencyTemplate(
                    phase_template_id=tpl.id,
                    depends_on_phase_template_id=target.id,
                    dependency_type=dep_type,
                ))
    db.session.flush()
    logger.info("Seeded %d default phase templates", created)
    return created

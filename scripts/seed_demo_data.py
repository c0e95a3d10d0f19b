#!/usr/bin/env python3
"""
Resource Allocation Platform: demo data seed script.

Creates departments, one user per role, a project with two phases, resource
templates and the pools each phase declares, plus a few requests in
different lifecycle states.

Usage:
    python scripts/seed_demo_data.py
    python scripts/seed_demo_data.py --append
    python scripts/seed_demo_data.py --verbose
"""

import argparse
import sys
from datetime import date

sys.path.insert(0, ".")

from app import create_app
from app.models import db
from app.models.auth import Department, User
from app.models.notification import Notification
from app.models.project import Phase, Project
from app.models.request import ApprovalDecision, ResourceRequest
from app.models.resource import ResourcePool, ResourceTemplate
from app.models.scheduling import ScheduledJob
from app.services import fulfillment_service, request_lifecycle
from app.services.reconciliation import reconcile_pools


# ── Demo data ────────────────────────────────────────────────────────────

DEPARTMENTS = [
    {"name": "Platform Operations", "unit_type": "operations"},
    {"name": "Finance Approvals", "unit_type": "approval"},
    {"name": "IT Administration", "unit_type": "admin"},
]

USERS = [
    ("rita.requester@example.com", "Rita Requester", "member", "Platform Operations"),
    ("omar.operator@example.com", "Omar Operator", "member", "Platform Operations"),
    ("dana.head@example.com", "Dana Head", "department_head", "Finance Approvals"),
    ("ivan.ithead@example.com", "Ivan IT Head", "it_head", "IT Administration"),
    ("tara.tech@example.com", "Tara Tech", "it_team", "IT Administration"),
    ("ada.admin@example.com", "Ada Admin", "admin", "IT Administration"),
]

TEMPLATES = [
    {"name": "Standard VM", "category": "compute", "approval_levels": 1,
     "field_schema": [{"name": "os", "type": "select", "options": ["linux", "windows"]}]},
    {"name": "Managed Database", "category": "storage", "approval_levels": 2,
     "field_schema": [{"name": "engine", "type": "select", "options": ["postgres", "hana"]}]},
    {"name": "Bare Metal Host", "category": "compute", "approval_levels": 3, "field_schema": []},
]

PHASES = [
    {"name": "Build", "order": 1, "start_date": date(2026, 1, 5), "end_date": date(2026, 4, 30),
     "pools": [("Standard VM", 10), ("Managed Database", 4), ("Bare Metal Host", 2),
               ("type:Rack space", 20)]},
    {"name": "Test", "order": 2, "start_date": date(2026, 5, 4), "end_date": date(2026, 7, 31),
     "pools": [("Standard VM", 6), ("Managed Database", 2)]},
]


def _p(msg, verbose):
    if verbose:
        print(msg)


def seed_all(app, append=False, verbose=False):
    """Seed ALL tables with demo data."""
    with app.app_context():
        if not append:
            print("🗑️  Clearing existing data...")
            for model in [Notification, ApprovalDecision, ResourceRequest, ResourcePool,
                          ResourceTemplate, Phase, Project, User, Department, ScheduledJob]:
                db.session.query(model).delete()
            db.session.commit()
            print("   Done.\n")

        # ── 1. Departments & users ───────────────────────────────────────
        print("👥 Creating departments & users...")
        departments = {}
        for d_data in DEPARTMENTS:
            dept = Department(**d_data)
            db.session.add(dept)
            db.session.flush()
            departments[dept.name] = dept
        users = {}
        for email, full_name, role, dept_name in USERS:
            user = User(email=email, full_name=full_name, user_role=role,
                        department_id=departments[dept_name].id)
            db.session.add(user)
            db.session.flush()
            users[role if role != "member" else full_name.split()[0].lower()] = user
            _p(f"   👤 {full_name} [{role}]", verbose)
        print(f"   ✅ {len(users)} users in {len(departments)} departments")

        # ── 2. Templates ─────────────────────────────────────────────────
        print("\n🧩 Creating resource templates...")
        templates = {}
        for t_data in TEMPLATES:
            template = ResourceTemplate(**t_data)
            db.session.add(template)
            db.session.flush()
            templates[template.name] = template
            _p(f"   🧩 {template.name} (L{template.approval_levels})", verbose)

        # ── 3. Project, phases & pools ───────────────────────────────────
        print("\n📦 Creating project, phases & pools...")
        project = Project(name="Cloud Landing Zone", client="Acme Manufacturing")
        db.session.add(project)
        db.session.flush()
        phases = {}
        for p_data in PHASES:
            pools = p_data["pools"]
            phase = Phase(project_id=project.id,
                          **{k: v for k, v in p_data.items() if k != "pools"})
            db.session.add(phase)
            db.session.flush()
            phases[phase.name] = phase
            for identity, total in pools:
                if identity.startswith("type:"):
                    pool = ResourcePool(phase_id=phase.id, resource_type=identity[5:], total_qty=total)
                else:
                    pool = ResourcePool(phase_id=phase.id, resource_template_id=templates[identity].id,
                                        total_qty=total, cost_per_unit=120)
                db.session.add(pool)
                _p(f"   📐 {phase.name}: {identity} x{total}", verbose)
        db.session.commit()
        print(f"   ✅ Project: {project.name} ({len(phases)} phases)")

        # ── 4. Requests through the real lifecycle ───────────────────────
        print("\n📝 Submitting demo requests...")
        build = phases["Build"]
        rita = users["rita"]

        vm = request_lifecycle.submit(rita.id, build.id, 2, {"os": "linux"},
                                      "Integration test landscape",
                                      resource_template_id=templates["Standard VM"].id)
        request_lifecycle.decide(vm.id, users["department_head"].id, 1, "APPROVED")
        fulfillment_service.assign(vm.id, users["it_head"].id, users["omar"].id)
        fulfillment_service.complete(vm.id, users["omar"].id, "Provisioned in eu-central",
                                     {"host": "vm-build-01.internal", "user": "rita"})

        database = request_lifecycle.submit(rita.id, build.id, 1, {"engine": "hana"},
                                            "Sandbox for data migration rehearsal",
                                            resource_template_id=templates["Managed Database"].id)
        request_lifecycle.decide(database.id, users["department_head"].id, 1, "APPROVED",
                                 reason="Within the phase budget")

        request_lifecycle.submit(rita.id, build.id, 4, {}, "Extra rack for spare parts",
                                 resource_type="Rack space")

        rejected = request_lifecycle.submit(rita.id, build.id, 2, {},
                                            "Dedicated hosts for load testing",
                                            resource_template_id=templates["Bare Metal Host"].id)
        request_lifecycle.decide(rejected.id, users["department_head"].id, 1, "REJECTED",
                                 reason="Use the shared performance cluster")
        print("   ✅ 4 requests (completed, in review, pending, rejected)")

        report = reconcile_pools()
        print(f"\n🔁 Reconciliation: {report.checked} pools checked, {report.corrected} corrected")


def main():
    parser = argparse.ArgumentParser(description="Seed demo data")
    parser.add_argument("--append", action="store_true")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    app = create_app()
    print(f"🎯 DB: {app.config['SQLALCHEMY_DATABASE_URI']}\n")
    with app.app_context():
        db.create_all()
    seed_all(app, append=args.append, verbose=args.verbose)


if __name__ == "__main__":
    main()

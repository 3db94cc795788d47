"""
Portal Walkthrough: Referral Lifecycle on Sample Data
=====================================================

This script runs the ATLAS case-management core against an in-memory
document store using the packaged demonstration dataset.  No real
enrollee data is used.

Steps demonstrated:
  1. Establish sessions and profiles for an admin, a coordinator and a partner
  2. Load the sample dataset
  3. Filter resources by an enrollee's social-determinant codes
  4. Create a referral and watch the coordinator's referral list
  5. Partner responds; the thread records the exchange
  6. Compute dashboard analytics and cohorts
  7. Build an assessment timeline (placeholder when the integration is off)
  8. Clear the sample data

Usage:
    python -m examples.portal_walkthrough
"""

from __future__ import annotations

import json

from atlascie.analytics import analyze_by_cohort, calculate_dashboard_analytics, predict_risk_trend
from atlascie.assessment_client import AssessmentClient
from atlascie.assessment_mapper import load_assessment_timeline
from atlascie.config import PortalSettings, configure_logging
from atlascie.identity import IdentityService
from atlascie.models import Principal, ReferralStatus, Role
from atlascie.navigation import nav_items_for
from atlascie.referrals import ReferralWorkflow
from atlascie.repository import PortalRepository
from atlascie.resources import ResourceDirectory
from atlascie.sample_data import clear_sample_data, load_sample_data
from atlascie.store import InMemoryDocumentStore, TenantPaths


def _banner(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def main() -> None:
    settings = PortalSettings(_env_file=None, app_id="walkthrough")
    configure_logging(settings)

    repo = PortalRepository(InMemoryDocumentStore(), TenantPaths(settings.app_id))
    identity = IdentityService(repo, default_role=settings.default_role)
    directory = ResourceDirectory(repo)
    workflow = ReferralWorkflow(repo)

    # ------------------------------------------------------------------
    # Step 1: Sessions and roles
    # ------------------------------------------------------------------
    _banner("Step 1: Sessions and Roles")

    admin = Principal(uid="admin_demo", email="admin@atlas.example")
    coordinator = Principal(uid="cpc_demo", email="coordinator@atlas.example")
    partner = Principal(uid="partner_demo", email="intake@foodbank.example")
    for principal in (admin, coordinator, partner):
        identity.ensure_profile(principal)

    identity.assign_role(Role.ADMIN, admin.uid, Role.ADMIN)
    identity.assign_role(Role.ADMIN, partner.uid, Role.PARTNER)
    for principal in (admin, coordinator, partner):
        role = identity.role_for(principal)
        nav = [item.label for item in nav_items_for(role, settings)]
        print(f"{principal.email:<28} {role:<20} nav: {', '.join(nav)}")

    # ------------------------------------------------------------------
    # Step 2: Sample data
    # ------------------------------------------------------------------
    _banner("Step 2: Load Sample Data")

    summary = load_sample_data(repo, identity, coordinator, identity.role_for(admin))
    print(f"Resources added: {summary.resources_added}")
    print(f"Enrollees added: {summary.enrollees_added}")

    # ------------------------------------------------------------------
    # Step 3: Eligibility
    # ------------------------------------------------------------------
    _banner("Step 3: Eligible Resources")

    coordinator_role = identity.role_for(coordinator)
    enrollees = repo.list_enrollees(repo.get_profile(coordinator.uid).assigned_enrollee_ids)
    elena = next(e for e in enrollees if e.demographics.first_name == "Elena")
    print(f"{elena.display_name}: Z-codes {elena.risk_profile.z_codes}")
    eligible = directory.eligible_for(coordinator_role, elena)
    for resource in eligible:
        print(f"  - {resource.name} ({resource.category})")

    # ------------------------------------------------------------------
    # Step 4: Referral
    # ------------------------------------------------------------------
    _banner("Step 4: Create Referral")

    snapshots: list[list[str]] = []
    subscription = workflow.watch_referrals(
        lambda referrals: snapshots.append([r.status.value for r in referrals]),
        referring_user_id=coordinator.uid,
    )
    food_bank = next(r for r in eligible if r.name == "Community Food Bank")
    referral = workflow.create_referral(
        coordinator, coordinator_role, elena, food_bank, notes="Family of four, urgent."
    )
    print(f"Referral {referral.referral_id}: {referral.status.value}")

    # ------------------------------------------------------------------
    # Step 5: Partner response
    # ------------------------------------------------------------------
    _banner("Step 5: Partner Response")

    partner_role = identity.role_for(partner)
    workflow.post_message(referral.referral_id, partner, partner_role, "Can she come Tuesday?")
    workflow.post_message(referral.referral_id, coordinator, coordinator_role, "Tuesday works.")
    referral = workflow.respond(
        referral.referral_id, partner, partner_role, ReferralStatus.ACCEPTED, "Intake booked"
    )
    print(f"Status: {referral.status.value} by {referral.responded_by}")
    for message in workflow.list_messages(referral.referral_id):
        print(f"  [{message.sender_name}] {message.content}")
    subscription.unsubscribe()
    print(f"Coordinator list snapshots: {snapshots}")

    # ------------------------------------------------------------------
    # Step 6: Analytics
    # ------------------------------------------------------------------
    _banner("Step 6: Dashboard Analytics")

    dashboard = calculate_dashboard_analytics(repo.list_enrollees(), repo.list_referrals())
    print(json.dumps(dashboard.model_dump(mode="json"), indent=2))
    for cohort in analyze_by_cohort(repo.list_enrollees(), "tier"):
        print(f"  {cohort.label}: {cohort.count} enrollees, avg wellness {cohort.avg_wellness}")
    prediction = predict_risk_trend(elena)
    print(f"{elena.display_name}: {prediction.prediction.value}, "
          f"recommended tier {prediction.recommended_tier}")

    # ------------------------------------------------------------------
    # Step 7: Assessment timeline
    # ------------------------------------------------------------------
    _banner("Step 7: Assessment Timeline")

    client = AssessmentClient(settings)
    for entry in load_assessment_timeline(client, elena):
        source = "stored profile" if entry.placeholder else "assessment platform"
        print(f"  tier {entry.tier}, total {entry.total_score} ({source})")

    # ------------------------------------------------------------------
    # Step 8: Cleanup
    # ------------------------------------------------------------------
    _banner("Step 8: Clear Sample Data")

    cleared = clear_sample_data(repo, identity.role_for(admin))
    print(cleared.model_dump_json(indent=2))

    _banner("Walkthrough Complete")


if __name__ == "__main__":
    main()

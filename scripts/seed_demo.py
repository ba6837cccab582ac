#!/usr/bin/env python3
"""Seed a demo experiment with simulated traffic.

Creates a complete demo that exercises the whole engine:
control page -> experiment + variant -> traffic -> scheduled check.

Usage:
    python scripts/seed_demo.py

This script:
1. Initializes the demo database
2. Seeds a lead magnet and a published control funnel page
3. Creates a headline experiment (clones the variant page)
4. Simulates thank-you page views and qualified leads for both pages
5. Runs one scheduler pass and prints the outcome
"""

from __future__ import annotations

import json
import random
import sys
from pathlib import Path

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from abfunnel.core.errors import ConflictError  # noqa: E402
from abfunnel.db.schema import FunnelLead, FunnelPage, LeadMagnet, PageView  # noqa: E402
from abfunnel.db.session import get_session, init_db  # noqa: E402
from abfunnel.experiments import service  # noqa: E402
from abfunnel.models.types import ExperimentCreate  # noqa: E402
from abfunnel.worker.scheduler import ExperimentScheduler  # noqa: E402

# Constants
DEMO_DB_PATH = PROJECT_ROOT / "demo.db"

# Demo identifiers
DEMO_USER_ID = "demo_user"
DEMO_PAGE_ID = "demo_page"
DEMO_LEAD_MAGNET_ID = "demo_lead_magnet"

# Simulated traffic: views per page and true completion rates
DEMO_VIEWS = 400
DEMO_CONTROL_RATE = 0.18
DEMO_VARIANT_RATE = 0.30
DEMO_RANDOM_SEED = 7


def seed_pages() -> None:
    """Seed the lead magnet and control page if missing."""
    session = get_session(DEMO_DB_PATH)

    try:
        if session.get(FunnelPage, DEMO_PAGE_ID) is not None:
            print(f"Demo page already exists: {DEMO_PAGE_ID}")
            return

        print("Creating lead magnet...")
        session.add(
            LeadMagnet(
                id=DEMO_LEAD_MAGNET_ID,
                user_id=DEMO_USER_ID,
                title="The Cold Email Playbook",
                archetype="playbook",
                concept_json=json.dumps({"audience": "B2B founders"}),
            )
        )

        print("Creating control page...")
        session.add(
            FunnelPage(
                id=DEMO_PAGE_ID,
                user_id=DEMO_USER_ID,
                slug="cold-email-playbook",
                is_variant=False,
                is_published=True,
                lead_magnet_id=DEMO_LEAD_MAGNET_ID,
                optin_headline="Get the Cold Email Playbook",
                thankyou_headline="You're in! Check your inbox.",
                thankyou_subline="Answer 3 quick questions while you wait.",
                qualification_pass_message="Great fit! Book a call below.",
                theme="dark",
                primary_color="#8b5cf6",
            )
        )
        session.commit()
        print("Pages seeded successfully!")

    finally:
        session.close()


def create_experiment() -> tuple[str, str]:
    """Create the demo headline experiment.

    Returns:
        Tuple of (experiment_id, variant_id)
    """
    session = get_session(DEMO_DB_PATH)

    try:
        created = service.create_experiment(
            session,
            DEMO_USER_ID,
            ExperimentCreate(
                funnel_page_id=DEMO_PAGE_ID,
                name="Thank-you headline test",
                test_field="headline",
                variant_value="One last step: tell us about your pipeline",
            ),
        )
        print(f"Created experiment {created.experiment_id} (variant {created.variant_id})")
        return created.experiment_id, created.variant_id

    finally:
        session.close()


def simulate_traffic(variant_id: str) -> None:
    """Record views and qualified leads for control and variant."""
    rng = random.Random(DEMO_RANDOM_SEED)
    session = get_session(DEMO_DB_PATH)

    try:
        for page_id, rate in ((DEMO_PAGE_ID, DEMO_CONTROL_RATE), (variant_id, DEMO_VARIANT_RATE)):
            completions = 0
            for i in range(DEMO_VIEWS):
                session.add(PageView(funnel_page_id=page_id, page_type="thankyou"))
                if rng.random() < rate:
                    completions += 1
                    session.add(
                        FunnelLead(
                            funnel_page_id=page_id,
                            email=f"lead{i}@example.com",
                            qualification_answers=json.dumps({"team_size": "1-10"}),
                        )
                    )
            print(f"  {page_id}: {DEMO_VIEWS} views, {completions} completions")
        session.commit()

    finally:
        session.close()


def run_check() -> None:
    """Run one scheduler pass."""
    session = get_session(DEMO_DB_PATH)

    try:
        summary = ExperimentScheduler(session).run()
        print(f"Check summary: {summary.model_dump()}")

    finally:
        session.close()


def main() -> int:
    """Main entry point."""
    print("=" * 60)
    print("abfunnel Demo Seeding Script")
    print("=" * 60)

    init_db(DEMO_DB_PATH)
    seed_pages()

    try:
        experiment_id, variant_id = create_experiment()
    except ConflictError as e:
        print(f"Skipping: {e.message}")
        return 0

    print("Simulating traffic...")
    simulate_traffic(variant_id)

    run_check()

    session = get_session(DEMO_DB_PATH)
    try:
        detail = service.get_experiment(session, experiment_id, DEMO_USER_ID)
        if detail is not None:
            print(f"Experiment status: {detail.experiment.status}")
            print(f"Winner: {detail.experiment.winner_id}")
    finally:
        session.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())

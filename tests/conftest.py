"""Shared pytest fixtures for abfunnel tests."""

import json

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from abfunnel.db.schema import Base, FunnelLead, FunnelPage, PageView

USER_ID = "user-1"
OTHER_USER_ID = "user-2"


@pytest.fixture
def engine():
    """Create an in-memory SQLite engine for testing."""
    engine = create_engine(
        "sqlite:///:memory:",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


@pytest.fixture
def session(engine):
    """Create a database session for testing."""
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def make_page(session):
    """Factory for published control pages."""

    def _make_page(page_id="page-1", user_id=USER_ID, **fields):
        values = {
            "slug": f"{page_id}-slug",
            "is_variant": False,
            "is_published": True,
            "thankyou_headline": "Thanks for signing up",
            "thankyou_subline": "Check your inbox",
            "vsl_url": "https://video.example.com/intro",
            "qualification_pass_message": "You qualify!",
            "optin_headline": "Get the guide",
            "theme": "dark",
            "primary_color": "#112233",
        }
        values.update(fields)
        page = FunnelPage(id=page_id, user_id=user_id, **values)
        session.add(page)
        session.commit()
        return page

    return _make_page


@pytest.fixture
def add_traffic(session):
    """Factory recording thank-you views and qualified leads for a page."""

    def _add_traffic(page_id, views, completions):
        session.add_all(
            PageView(funnel_page_id=page_id, page_type="thankyou") for _ in range(views)
        )
        session.add_all(
            FunnelLead(
                funnel_page_id=page_id,
                email=f"lead{i}@example.com",
                qualification_answers=json.dumps({"q1": "yes"}),
            )
            for i in range(completions)
        )
        session.commit()

    return _add_traffic

import os

os.environ["FLASK_CONFIG"] = "testing"

from datetime import datetime, timedelta  # noqa: E402

import pytest  # noqa: E402
from flask_jwt_extended import create_access_token  # noqa: E402

from app import create_app  # noqa: E402
from extensions import db  # noqa: E402
from models import Project, User  # noqa: E402
from utils.text_classifier import NullTextClassifier, TextClassifier  # noqa: E402

PASSWORD = "Secret123"


class FakeClassifier(TextClassifier):
    """Deterministic stand-in for the Gemini adapter, keyed by input text."""

    is_live = True

    def __init__(self, sentiments=None, tags=None, items=None, phrases=None, failing=()):
        self.sentiments = sentiments or {}
        self.tags = tags or {}
        self.items = items or []
        self.phrases = phrases or {}
        self.failing = set(failing)

    def classify_sentiment(self, text):
        if text in self.failing:
            raise RuntimeError("classifier unavailable")
        return self.sentiments.get(text, "neutral")

    def extract_items(self, text):
        return [dict(item) for item in self.items]

    def extract_tags_with_sentiment(self, text):
        if text in self.failing:
            raise RuntimeError("classifier unavailable")
        return list(self.tags.get(text, []))

    def extract_short_phrase(self, text, intent):
        return self.phrases.get((text, intent))


@pytest.fixture
def app():
    application = create_app("testing")
    application.extensions["text_classifier"] = NullTextClassifier()
    yield application
    with application.app_context():
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def ctx(app):
    with app.app_context():
        yield app


@pytest.fixture
def install_classifier(app):
    def _install(**kwargs):
        classifier = FakeClassifier(**kwargs)
        app.extensions["text_classifier"] = classifier
        return classifier

    return _install


def make_user(name: str, role: str) -> User:
    user = User(name=name, email=f"{name.lower().replace(' ', '.')}@example.org", role=role)
    user.set_password(PASSWORD)
    db.session.add(user)
    return user


@pytest.fixture
def users(app):
    with app.app_context():
        created = {
            "admin": make_user("Ada Admin", "ADMIN"),
            "government": make_user("City Works", "GOVERNMENT"),
            "other_government": make_user("County Roads", "GOVERNMENT"),
            "contractor": make_user("Build Co", "CONTRACTOR"),
            "public": make_user("Pat Public", "PUBLIC"),
            "neighbour": make_user("Nia Neighbour", "PUBLIC"),
        }
        db.session.commit()
        return {key: user.id for key, user in created.items()}


def make_project(government_id: str, contractor_id: str, **overrides) -> Project:
    values = {
        "title": "Ward 7 drainage",
        "budget": 1000,
        "expenditure": 0,
        "contractor_id": contractor_id,
        "government_id": government_id,
    }
    values.update(overrides)
    project = Project(**values)
    db.session.add(project)
    db.session.commit()
    return project


@pytest.fixture
def project_id(app, users):
    with app.app_context():
        return make_project(
            users["government"], users["contractor"], created_at=datetime.utcnow() - timedelta(days=14)
        ).id


@pytest.fixture
def auth_headers(app):
    def _headers(user_id: str) -> dict:
        with app.app_context():
            return {"Authorization": f"Bearer {create_access_token(identity=user_id)}"}

    return _headers

import pytest

import validate


CREATED = "created"


class FakeProvider:
    def __init__(self):
        self.applied = []

    def apply_webhook_configuration(self, body):
        self.applied.append(body)
        return CREATED


@pytest.fixture()
def fake_provider():
    return FakeProvider()


@pytest.fixture()
def app():
    app = validate.create_app(TESTING=True)
    yield app


@pytest.fixture()
def client(app):
    return app.test_client()


def make_review(containers, uid="1234", api_version="admission.k8s.io/v1"):
    return {
        "apiVersion": api_version,
        "kind": "AdmissionReview",
        "request": {
            "uid": uid,
            "kind": {"group": "", "version": "v1", "kind": "Pod"},
            "namespace": "default",
            "operation": "CREATE",
            "object": {
                "apiVersion": "v1",
                "kind": "Pod",
                "metadata": {"name": "testpod", "namespace": "default"},
                "spec": {"containers": containers},
            },
        },
    }

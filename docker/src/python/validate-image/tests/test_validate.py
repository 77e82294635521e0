import logging

import pytest

import validate

from conftest import make_review


def test_invalid_path(client):
    """We expect a 404 response for invalid paths"""
    res = client.get("/test-path")
    assert res.status_code == 404


def test_invalid_method(client):
    """We expect a 405 ("method not allowed") response if we GET /validate-image
    instead of POST"""
    res = client.get("/validate-image")
    assert res.status_code == 405


def test_invalid_media_type(client):
    """We expect a 415 ("unsupported media type") response if our request does
    not have content-type "application/json"."""
    res = client.post("/validate-image")
    assert res.status_code == 415


def test_health(client):
    """We expect a 200 response from the /healthz endpoint"""
    res = client.get("/healthz")
    assert res.status_code == 200


def test_not_json(client):
    """We expect a 400 ("bad request") response if we submit something that is not
    actually JSON data"""
    res = client.post(
        "/validate-image",
        headers={"content-type": "application/json"},
        data="Ceci n'est pas JSON",
    )
    assert res.status_code == 400


def test_empty_json(client):
    """We expect a 400 ("bad request") response if we submit a request that does not
    contain required fields."""
    res = client.post("/validate-image", json={})
    assert res.status_code == 400


def test_missing_uid(client):
    """Without a uid there is nothing to correlate a response with."""
    res = client.post("/validate-image", json={"request": {"object": {}}})
    assert res.status_code == 400
    assert res.content_type.startswith("text/plain")


def test_response_only(client):
    """A review that carries a response but no request cannot be validated."""
    res = client.post(
        "/validate-image", json={"response": {"uid": "1234", "allowed": True}}
    )
    assert res.status_code == 400
    assert "does not contain a request" in res.text


def test_unknown_api_version(client):
    review = make_review([{"image": "nginx"}], api_version="admission.k8s.io/v2")
    res = client.post("/validate-image", json=review)
    assert res.status_code == 400


def test_allowed(client):
    res = client.post("/validate-image", json=make_review([{"image": "nginx:latest"}]))
    assert res.status_code == 200
    assert res.json == {
        "apiVersion": "admission.k8s.io/v1",
        "kind": "AdmissionReview",
        "response": {
            "uid": "1234",
            "allowed": True,
            "status": {"code": 200, "message": "image name is defined"},
        },
    }


def test_denied(client):
    res = client.post("/validate-image", json=make_review([{"image": ""}]))
    assert res.status_code == 200
    assert res.json["response"] == {
        "uid": "1234",
        "allowed": False,
        "status": {
            "code": 403,
            "reason": "Forbidden",
            "message": "image name is not defined for container",
        },
    }


def test_denied_second_container(client):
    review = make_review([{"name": "app", "image": "app:1"}, {"name": "sidecar"}])
    res = client.post("/validate-image", json=review)
    assert not res.json["response"]["allowed"]
    assert (
        res.json["response"]["status"]["message"]
        == "image name is not defined for container"
    )


def test_no_containers(client):
    res = client.post("/validate-image", json=make_review([]))
    assert res.json["response"]["allowed"]


def test_containers_not_a_list(client):
    """A payload that cannot be decoded is reported as an error, not a denial."""
    res = client.post("/validate-image", json=make_review("nginx"))
    assert res.status_code == 200
    response = res.json["response"]
    assert response["uid"] == "1234"
    assert not response["allowed"]
    assert response["status"]["code"] == 400
    assert response["status"]["message"].startswith("could not decode object: ")
    assert "reason" not in response["status"]


def test_missing_object(client):
    review = make_review([])
    del review["request"]["object"]
    res = client.post("/validate-image", json=review)
    response = res.json["response"]
    assert not response["allowed"]
    assert response["status"]["code"] == 400
    assert "there is no content to decode" in response["status"]["message"]


def test_uid_echoed(client):
    review = make_review([{"image": "nginx"}], uid="705ab4f5-6393-11e8-b7cc-42010a800002")
    res = client.post("/validate-image", json=review)
    assert res.json["response"]["uid"] == "705ab4f5-6393-11e8-b7cc-42010a800002"


def test_api_version_echoed(client):
    review = make_review([{"image": "nginx"}], api_version="admission.k8s.io/v1beta1")
    res = client.post("/validate-image", json=review)
    assert res.json["apiVersion"] == "admission.k8s.io/v1beta1"
    assert res.json["kind"] == "AdmissionReview"


def test_internal_error(app, client):
    """An unexpected failure while evaluating policy is reported as an error
    for that request only."""

    class BrokenPolicy:
        names = ["broken"]

        def evaluate(self, pod):
            raise RuntimeError("test exception")

    app.policy = BrokenPolicy()

    res = client.post("/validate-image", json=make_review([{"image": "nginx"}]))
    assert res.status_code == 200
    response = res.json["response"]
    assert not response["allowed"]
    assert response["status"]["code"] == 500
    assert response["status"]["message"] == "internal error: test exception"


def test_rules_from_environment(monkeypatch):
    monkeypatch.setenv("VALIDATE_IMAGE_RULES", "image-defined")
    app = validate.create_app(TESTING=True)
    assert app.policy.names == ["image-defined"]


def test_unknown_rule_exits():
    with pytest.raises(SystemExit) as exc_info:
        validate.create_app(TESTING=True, RULES="image-defined,no-such-rule")
    assert exc_info.value.code == 1


def test_empty_rules_exits():
    with pytest.raises(SystemExit):
        validate.create_app(TESTING=True, RULES="")


def test_log_uses_pod_metadata(client, caplog):
    """The log target comes from the decoded Pod when the request has no name."""
    review = make_review([{"image": "nginx"}])
    assert "name" not in review["request"]

    with caplog.at_level(logging.INFO, logger="validate"):
        client.post("/validate-image", json=review)

    assert "allowed request 1234 for default/testpod" in caplog.text


def test_log_uses_generate_name(client, caplog):
    review = make_review([{"image": ""}])
    review["request"]["object"]["metadata"] = {
        "generateName": "web-",
        "namespace": "prod",
    }

    with caplog.at_level(logging.INFO, logger="validate"):
        client.post("/validate-image", json=review)

    assert "denied request 1234 for prod/web-" in caplog.text
    assert "(containers: 0:?)" in caplog.text


def test_log_falls_back_to_request(client, caplog):
    review = make_review("nginx")
    review["request"]["name"] = "fallback"

    with caplog.at_level(logging.INFO, logger="validate"):
        client.post("/validate-image", json=review)

    assert "request 1234 for default/fallback errored (400)" in caplog.text


def test_rules_wrong_type_from_environment_exits(monkeypatch):
    """VALIDATE_IMAGE_RULES=1 is decoded as JSON into an int."""
    monkeypatch.setenv("VALIDATE_IMAGE_RULES", "1")
    with pytest.raises(SystemExit) as exc_info:
        validate.create_app(TESTING=True)
    assert exc_info.value.code == 1

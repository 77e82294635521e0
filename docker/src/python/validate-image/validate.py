import logging
import sys

import pydantic

from typing import assert_never

from flask import Flask, request, jsonify, current_app

from models import (
    BaseModel,
    AdmissionRequest,
    AdmissionReview,
    AdmissionResponse,
    AdmissionReviewStatus,
    Allowed,
    Denied,
    Errored,
    Pod,
    Verdict,
)

from policy import Policy
from exc import ApplicationError, ConfigurationError, DecodeError, InvalidReviewError

LOG = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)


class DEFAULTS:
    RULES = "image-defined"
    LOG_LEVEL = "INFO"


def jsonresponse():
    """Transforms the response from a view function into a JSON object."""

    def _outer(func):
        def _inner(*args, **kwargs):
            res = func(*args, **kwargs)
            if isinstance(res, BaseModel):
                return jsonify(res.model_dump(exclude_none=True))
            else:
                return jsonify(res)

        return _inner

    return _outer


def format_validation_error(err: pydantic.ValidationError) -> str:
    parts = []
    for error in err.errors():
        loc = ".".join(str(part) for part in error["loc"])
        parts.append(f"{loc}: {error['msg']}" if loc else error["msg"])
    return "; ".join(parts)


def decode_pod(obj) -> Pod:
    """Decode the object embedded in an admission request into a Pod.

    Unknown fields are ignored. Raises DecodeError when there is nothing to
    decode or when a field we rely on has the wrong shape.
    """
    if obj is None:
        raise DecodeError("there is no content to decode")

    try:
        return Pod.model_validate(obj)
    except pydantic.ValidationError as err:
        raise DecodeError(format_validation_error(err)) from err


def verdict_to_response(uid: str, verdict: Verdict) -> AdmissionResponse:
    if isinstance(verdict, Allowed):
        return AdmissionResponse(
            uid=uid,
            allowed=True,
            status=AdmissionReviewStatus(code=200, message=verdict.reason or None),
        )
    elif isinstance(verdict, Denied):
        return AdmissionResponse(
            uid=uid,
            allowed=False,
            status=AdmissionReviewStatus(
                code=403, reason="Forbidden", message=verdict.reason
            ),
        )
    elif isinstance(verdict, Errored):
        return AdmissionResponse(
            uid=uid,
            allowed=False,
            status=AdmissionReviewStatus(code=verdict.code, message=verdict.reason),
        )
    else:
        assert_never(verdict)


def admit(
    review_request: AdmissionRequest, policy: Policy
) -> tuple[Pod | None, Verdict]:
    """Produce a verdict for a single admission request. Never raises.

    Also returns the decoded Pod, or None if decoding failed.
    """
    pod = None
    try:
        pod = decode_pod(review_request.object)
        return pod, policy.evaluate(pod)
    except DecodeError as err:
        return None, Errored(code=400, reason=f"could not decode object: {err}")
    except Exception as err:
        LOG.exception("failed to evaluate request %s", review_request.uid)
        return pod, Errored(code=500, reason=f"internal error: {err}")


def describe_target(review_request: AdmissionRequest, pod: Pod | None) -> str:
    """namespace/name for log messages, preferring the decoded Pod."""
    namespace = name = None
    if pod is not None:
        namespace = pod.metadata.namespace
        name = pod.metadata.name or pod.metadata.generateName
    namespace = namespace or review_request.namespace or "-"
    name = name or review_request.name or "-"
    return f"{namespace}/{name}"


def log_verdict(review_request: AdmissionRequest, pod: Pod | None, verdict: Verdict):
    target = describe_target(review_request, pod)
    if isinstance(verdict, Errored):
        LOG.warning(
            "request %s for %s errored (%d): %s",
            review_request.uid,
            target,
            verdict.code,
            verdict.reason,
        )
    elif isinstance(verdict, Denied):
        LOG.info(
            "denied request %s for %s: %s (containers: %s)",
            review_request.uid,
            target,
            verdict.reason,
            ", ".join(f"{v.index}:{v.container or '?'}" for v in verdict.violations),
        )
    else:
        LOG.info("allowed request %s for %s", review_request.uid, target)


@jsonresponse()
def validate_image():
    body = AdmissionReview.model_validate(request.get_json())
    if body.request is None:
        raise InvalidReviewError("admission review does not contain a request")

    pod, verdict = admit(body.request, current_app.policy)
    log_verdict(body.request, pod, verdict)

    return AdmissionReview(
        apiVersion=body.apiVersion,
        response=verdict_to_response(body.request.uid, verdict),
    )


def handle_validationerror(err):
    return str(err), 400, {"content-type": "text/plain"}


def handle_invalidreviewerror(err):
    return str(err), 400, {"content-type": "text/plain"}


def handle_applicationerror(err):
    return str(err), 500, {"content-type": "text/plain"}


def health():
    return "OK", 200, {"content-type": "text/plain"}


def create_app(**config) -> Flask:
    """Use an application factory [1] to create the Flask app.

    Configuration is read from the DEFAULTS class, then from environment
    variables prefixed with VALIDATE_IMAGE_, then from keyword arguments.

    [1]: https://flask.palletsprojects.com/en/3.0.x/patterns/appfactories/
    """

    app = Flask(__name__)
    app.config.from_object(DEFAULTS)
    app.config.from_prefixed_env("VALIDATE_IMAGE")
    if config:
        app.config.update(config)

    logging.getLogger().setLevel(str(app.config["LOG_LEVEL"]).upper())

    try:
        app.policy = Policy.from_names(app.config["RULES"])
    except ConfigurationError as err:
        LOG.error("Invalid rules configuration: %s", err)
        sys.exit(1)

    LOG.info("Enabled admission rules: %s", ", ".join(app.policy.names))

    app.errorhandler(pydantic.ValidationError)(handle_validationerror)
    app.errorhandler(InvalidReviewError)(handle_invalidreviewerror)
    app.errorhandler(ApplicationError)(handle_applicationerror)
    app.add_url_rule("/healthz", view_func=health)
    app.add_url_rule("/validate-image", view_func=validate_image, methods=["POST"])

    return app

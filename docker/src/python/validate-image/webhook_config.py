"""Build the ValidatingWebhookConfiguration that routes Pod creation to
the /validate-image endpoint."""

import re

import yaml

DEFAULT_NAME = "validate-image"
DEFAULT_PATH = "/validate-image"
FAILURE_POLICIES = ("Fail", "Ignore")


def _resource_name(name: str) -> str:
    normalized = re.sub(r"[^a-z0-9.-]", "-", name.lower()).strip("-.")
    return normalized or DEFAULT_NAME


def build_client_config(
    *,
    url: str | None = None,
    service: str | None = None,
    namespace: str | None = None,
    path: str = DEFAULT_PATH,
    port: int = 443,
    ca_bundle: str | None = None,
) -> dict:
    if url and (service or namespace):
        raise ValueError("use either a url or a service and namespace, not both")

    if url:
        client_config = {"url": url}
    elif service and namespace:
        client_config = {
            "service": {
                "name": service,
                "namespace": namespace,
                "path": path,
                "port": port,
            }
        }
    else:
        raise ValueError("either a url or both service and namespace are required")

    if ca_bundle:
        client_config["caBundle"] = ca_bundle

    return client_config


def build_webhook_configuration(
    *,
    name: str = DEFAULT_NAME,
    failure_policy: str = "Fail",
    timeout_seconds: int = 10,
    **client_options,
) -> dict:
    """
    Return a ValidatingWebhookConfiguration manifest as a dict.

    The webhook only sees Pod CREATE operations. Remaining keyword
    arguments are passed to build_client_config.
    """
    if failure_policy not in FAILURE_POLICIES:
        raise ValueError(f"failure policy must be one of: {', '.join(FAILURE_POLICIES)}")
    if not 1 <= timeout_seconds <= 30:
        raise ValueError("timeout must be between 1 and 30 seconds")

    resource_name = _resource_name(name)

    return {
        "apiVersion": "admissionregistration.k8s.io/v1",
        "kind": "ValidatingWebhookConfiguration",
        "metadata": {"name": resource_name},
        "webhooks": [
            {
                "name": f"{resource_name}.validate-image.local",
                "admissionReviewVersions": ["v1", "v1beta1"],
                "sideEffects": "None",
                "failurePolicy": failure_policy,
                "timeoutSeconds": timeout_seconds,
                "clientConfig": build_client_config(**client_options),
                "rules": [
                    {
                        "operations": ["CREATE"],
                        "apiGroups": [""],
                        "apiVersions": ["v1"],
                        "resources": ["pods"],
                    }
                ],
            }
        ],
    }


def render_yaml(body: dict) -> str:
    return yaml.safe_dump(body, sort_keys=False)

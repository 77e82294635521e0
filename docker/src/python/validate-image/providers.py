import copy
import logging

from kubernetes import config, client
from kubernetes.client.rest import ApiException
from typing_extensions import Protocol, override

from exc import ProviderError

LOG = logging.getLogger(__name__)


class Provider(Protocol):
    def apply_webhook_configuration(self, body: dict) -> str: ...


class KubernetesProvider(Provider):
    def __init__(self):
        """Allocate an admissionregistration.k8s.io/v1 API client"""

        super().__init__()

        try:
            config.load_config()
        except config.ConfigException as err:
            LOG.warning("unable to configure Kubernetes client: %s", err)
            raise ProviderError("unable to configure Kubernetes client")

        self._api = client.AdmissionregistrationV1Api(client.ApiClient())

    @override
    def apply_webhook_configuration(self, body):
        """Create the ValidatingWebhookConfiguration, or replace it if it
        already exists. Returns "created" or "replaced"."""

        name = body["metadata"]["name"]

        try:
            self._api.create_validating_webhook_configuration(body=body)
            return "created"
        except ApiException as err:
            if err.status != 409:
                LOG.error("failed to create webhook configuration %s: %s", name, err)
                raise ProviderError(f"failed to create {name}: {err.reason}")

        try:
            existing = self._api.read_validating_webhook_configuration(name)
            body = copy.deepcopy(body)
            body["metadata"]["resourceVersion"] = existing.metadata.resource_version
            self._api.replace_validating_webhook_configuration(name, body)
        except ApiException as err:
            LOG.error("failed to replace webhook configuration %s: %s", name, err)
            raise ProviderError(f"failed to replace {name}: {err.reason}")

        return "replaced"

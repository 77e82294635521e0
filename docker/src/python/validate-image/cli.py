"""Command line utilities for the validate-image webhook."""

from __future__ import annotations

import argparse
import logging

from exc import ProviderError
from providers import KubernetesProvider
from webhook_config import (
    DEFAULT_NAME,
    DEFAULT_PATH,
    FAILURE_POLICIES,
    build_webhook_configuration,
    render_yaml,
)

LOG = logging.getLogger(__name__)


def _add_webhook_arguments(parser: argparse.ArgumentParser) -> None:
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--url", help="Webhook URL reachable by the API server.")
    target.add_argument("--service", help="Name of the Service fronting the webhook.")
    parser.add_argument("--namespace", help="Namespace of the Service.")
    parser.add_argument("--path", default=DEFAULT_PATH, help="Path of the endpoint.")
    parser.add_argument("--port", type=int, default=443, help="Service port.")
    parser.add_argument(
        "--name",
        default=DEFAULT_NAME,
        help="metadata.name of the generated configuration.",
    )
    parser.add_argument(
        "--ca-bundle",
        default=None,
        help="Optional base64-encoded CA bundle.",
    )
    parser.add_argument(
        "--failure-policy",
        choices=FAILURE_POLICIES,
        default="Fail",
        help="What the API server does when the webhook cannot be reached.",
    )
    parser.add_argument("--timeout-seconds", type=int, default=10)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="validate-image-webhook")
    subparsers = parser.add_subparsers(dest="command")

    generate_parser = subparsers.add_parser(
        "generate",
        help="Print the ValidatingWebhookConfiguration YAML.",
    )
    _add_webhook_arguments(generate_parser)

    apply_parser = subparsers.add_parser(
        "apply",
        help="Create or replace the ValidatingWebhookConfiguration in the cluster.",
    )
    _add_webhook_arguments(apply_parser)
    return parser


def _configuration_from_args(args: argparse.Namespace) -> dict:
    if args.service:
        client_options = {
            "service": args.service,
            "namespace": args.namespace,
            "path": args.path,
            "port": args.port,
        }
    else:
        client_options = {"url": args.url}

    return build_webhook_configuration(
        name=args.name,
        failure_policy=args.failure_policy,
        timeout_seconds=args.timeout_seconds,
        ca_bundle=args.ca_bundle,
        **client_options,
    )


def main(argv: list[str] | None = None, provider_factory=KubernetesProvider) -> int:
    logging.basicConfig(level=logging.INFO)

    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    try:
        body = _configuration_from_args(args)
    except ValueError as err:
        parser.error(str(err))

    if args.command == "generate":
        print(render_yaml(body), end="")
        return 0

    try:
        result = provider_factory().apply_webhook_configuration(body)
    except ProviderError as err:
        LOG.error("%s", err)
        return 1

    LOG.info("%s ValidatingWebhookConfiguration %s", result, body["metadata"]["name"])
    return 0


if __name__ == "__main__":
    raise SystemExit(main())

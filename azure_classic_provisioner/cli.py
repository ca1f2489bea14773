"""Argument parsing, configuration loading, and command dispatch."""

from __future__ import annotations

import argparse
import logging
import sys

from .config import AppConfig, load_config
from .exceptions import ProvisioningError
from .logging_config import configure_logging
from .provisioner import Provisioner, SiteRequest
from .reconcile.fleet import EndpointSpec, FleetRequest
from .storage.uploader import ParallelUploader, build_container_client, collect_upload_units

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="azure-classic-provisioner",
        description="Idempotent provisioning for classic Azure cloud services",
    )
    parser.add_argument(
        "-c", "--config",
        required=True,
        help="Path to the YAML configuration file",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("validate", help="Validate the configuration file and exit")

    group = commands.add_parser("affinity-group", help="Ensure an affinity group exists")
    group.add_argument("--name", required=True)
    group.add_argument("--location", required=True, help="Region, e.g. 'West US'")

    site = commands.add_parser("network-site", help="Ensure a virtual network site exists")
    site.add_argument("--name", required=True)
    site.add_argument("--subnet", required=True)
    site.add_argument("--affinity-group", required=True)
    site.add_argument("--address-prefix", required=True, help="CIDR of the site address space")
    site.add_argument("--subnet-prefix", required=True, help="CIDR of the subnet")

    fleet = commands.add_parser("fleet", help="Create or extend a load-balanced fleet")
    fleet.add_argument("--service", required=True, help="Cloud service name")
    fleet.add_argument("--base-name", required=True, help="Computer name prefix, e.g. 'web'")
    fleet.add_argument("--count", type=int, required=True, help="Number of instances to add")
    fleet.add_argument(
        "--new-fleet",
        action="store_true",
        help="Fail instead of extending when matching instances already exist",
    )
    fleet.add_argument("--size", help="Instance size (new fleets only)")
    fleet.add_argument("--image", help="Image name (new fleets only)")
    fleet.add_argument("--endpoint-name", help="Load-balanced endpoint name (new fleets only)")
    fleet.add_argument("--protocol", default="tcp", choices=("tcp", "udp"))
    fleet.add_argument("--local-port", type=int, default=80)
    fleet.add_argument("--public-port", type=int, default=80)
    fleet.add_argument("--probe-protocol", default="tcp", choices=("tcp", "http"))
    fleet.add_argument("--probe-path", help="HTTP probe path")
    fleet.add_argument("--location", help="Region for a new affinity group or service")
    fleet.add_argument("--affinity-group", help="Affinity group to place the service in")
    fleet.add_argument("--vnet", help="Virtual network site name")
    fleet.add_argument("--subnet", help="Subnet within the site")
    fleet.add_argument("--address-prefix", help="Site address space; ensures the site when given")
    fleet.add_argument("--subnet-prefix", help="Subnet address prefix")
    fleet.add_argument("--data-disks", type=int, default=0, help="Empty data disks per instance")
    fleet.add_argument("--disk-size", type=int, default=1023, help="Data disk size in GB")

    stripe = commands.add_parser("stripe-disks", help="Stripe an instance's data disks and create a database")
    stripe.add_argument("--service", required=True)
    stripe.add_argument("--instance", required=True)
    stripe.add_argument("--pools", type=int, default=2, help="Number of storage pools")
    stripe.add_argument("--database", required=True)

    upload = commands.add_parser("upload", help="Upload a directory tree into a blob container")
    upload.add_argument("--source", required=True, help="Local directory to upload")
    upload.add_argument("--container", required=True)
    upload.add_argument("--force", action="store_true", help="Reuse an existing container without asking")

    return parser


def _confirm(prompt: str) -> bool:
    try:
        answer = input(f"{prompt} [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in ("y", "yes")


def _endpoint_spec(args: argparse.Namespace) -> EndpointSpec | None:
    if not args.endpoint_name:
        return None
    return EndpointSpec(
        name=args.endpoint_name,
        protocol=args.protocol,
        local_port=args.local_port,
        public_port=args.public_port,
        probe_protocol=args.probe_protocol,
        probe_path=args.probe_path,
    )


def _site_request(args: argparse.Namespace) -> SiteRequest | None:
    if not args.address_prefix:
        return None
    if not (args.vnet and args.subnet and args.subnet_prefix):
        raise argparse.ArgumentTypeError("--address-prefix requires --vnet, --subnet and --subnet-prefix")
    return SiteRequest(
        name=args.vnet,
        subnet_name=args.subnet,
        address_prefix=args.address_prefix,
        subnet_prefix=args.subnet_prefix,
    )


def _run_fleet(provisioner: Provisioner, args: argparse.Namespace, site: SiteRequest | None) -> int:
    request = FleetRequest(
        service_name=args.service,
        base_computer_name=args.base_name,
        count=args.count,
        new_fleet=args.new_fleet,
        instance_size=args.size,
        image_reference=args.image,
        endpoint=_endpoint_spec(args),
        location=args.location,
        affinity_group=args.affinity_group,
        virtual_network=args.vnet,
        subnet_name=args.subnet,
        data_disk_count=args.data_disks,
        data_disk_size_gb=args.disk_size,
    )
    plan = provisioner.deploy_fleet(request, site)
    for instance in plan.instances:
        print(instance.computer_name)
    return 0


def _run_upload(config: AppConfig, args: argparse.Namespace) -> int:
    units = collect_upload_units(args.source)
    uploader = ParallelUploader(
        build_container_client(config.storage, args.container),
        confirm=_confirm,
        max_workers=config.storage.max_workers,
    )
    summary = uploader.upload(units, force=args.force)
    for name in summary.failed:
        print(f"FAILED {name}", file=sys.stderr)
    return 0 if not summary.failed else 1


def main(argv: list[str] | None = None, provisioner: Provisioner | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    site = None
    if args.command == "fleet":
        try:
            site = _site_request(args)
        except argparse.ArgumentTypeError as exc:
            parser.error(str(exc))

    # Load config (minimal logging until config is loaded)
    try:
        config = load_config(args.config)
    except ProvisioningError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 1

    configure_logging(config.logging)

    if args.command == "validate":
        logger.info("Configuration is valid")
        return 0

    try:
        if args.command == "upload":
            return _run_upload(config, args)

        provisioner = provisioner or Provisioner(config)
        if args.command == "affinity-group":
            provisioner.ensure_affinity_group(args.name, args.location)
        elif args.command == "network-site":
            provisioner.ensure_network_site(
                SiteRequest(args.name, args.subnet, args.address_prefix, args.subnet_prefix),
                args.affinity_group,
            )
        elif args.command == "fleet":
            return _run_fleet(provisioner, args, site)
        elif args.command == "stripe-disks":
            provisioner.stripe_disks(args.service, args.instance, args.pools, args.database)
    except ProvisioningError as exc:
        logger.error("Fatal error: %s", exc)
        return 1
    except KeyboardInterrupt:
        logger.info("Interrupted")
        return 1

    return 0

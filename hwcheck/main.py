from __future__ import annotations

import argparse
from dataclasses import replace
import logging
import sys

from hwcheck import __version__
from hwcheck.aggregate import exit_code
from hwcheck.collector import ParallelCollector
from hwcheck.config import Settings, load_settings
from hwcheck.domains import DOMAINS, Domain, get_domain
from hwcheck.domains.bmc import BmcDomain
from hwcheck.errors import ConfigError, HwCheckError, ProviderError
from hwcheck.grid import GridRenderer, build_cells, build_rows
from hwcheck.logging_utils import configure_logging, resolve_log_level
from hwcheck.matcher import RequirementMatcher
from hwcheck.models import CheckResult, Entity
from hwcheck.policy import Policy, load_policy, policy_to_dict, save_policy
from hwcheck.providers.ipmi import IpmiProvider
from hwcheck.report import format_listing, format_summary
from hwcheck.schema import validate_policy

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_ERROR = 2

logger = logging.getLogger("hwcheck")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hwcheck", description="Server hardware health checks"
    )
    parser.add_argument("domain", choices=sorted(DOMAINS), help="Hardware to check")
    modes = parser.add_mutually_exclusive_group()
    modes.add_argument(
        "-l",
        "--list",
        dest="mode",
        action="store_const",
        const="list",
        help="List detected hardware",
    )
    modes.add_argument(
        "--vis",
        dest="mode",
        action="store_const",
        const="vis",
        help="Show the slot grid without failing on violations",
    )
    modes.add_argument(
        "--check",
        dest="mode",
        action="store_const",
        const="check",
        help="Check hardware against the policy (default)",
    )
    modes.add_argument(
        "-s",
        "--create-config",
        dest="mode",
        action="store_const",
        const="create",
        help="Write a policy derived from the hardware found now",
    )
    modes.add_argument(
        "--test",
        dest="mode",
        action="store_const",
        const="test",
        help="Test the IPMI connection and show basic BMC info",
    )
    parser.set_defaults(mode="check")
    parser.add_argument(
        "-c",
        "--config",
        help="Path to the JSON policy (default: hwcheck-<domain>.json)",
    )
    parser.add_argument(
        "--settings",
        help="Path to the INI settings file for tool paths and BMC access",
    )
    parser.add_argument("--bmc-host", help="BMC address for Redfish and remote IPMI")
    parser.add_argument(
        "-u",
        "--user",
        metavar="USER:PASSWORD",
        help="BMC credentials",
    )
    parser.add_argument(
        "--revive",
        action="store_true",
        help="bmc only: reload IPMI kernel modules when the check fails",
    )
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI colors")
    parser.add_argument(
        "--log-level",
        default="WARNING",
        help="Logging level (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Enable debug logging (-v) or trace logging (-vv)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def apply_overrides(settings: Settings, host: str | None, user: str | None) -> Settings:
    bmc = settings.bmc
    if host:
        bmc = replace(bmc, host=host)
    if user:
        username, separator, password = user.partition(":")
        if not separator:
            raise ConfigError("--user must be USER:PASSWORD")
        bmc = replace(bmc, username=username, password=password)
    return replace(settings, bmc=bmc)


def check(
    domain: Domain, policy: Policy, entities: list[Entity], color: bool
) -> tuple[CheckResult, str]:
    pings = domain.prepare(entities)
    matcher = RequirementMatcher(policy.requirements, policy.checks, pings)
    cells = build_cells(entities, policy.visualization, matcher)
    rows = build_rows(policy.visualization, domain.default_layout)
    renderer = GridRenderer(policy.visualization, domain.visual_for, domain.format_value, color)
    grid = renderer.render(cells, rows, title=domain.title)
    return matcher.evaluate(entities), grid


def check_ipmi_connection(settings: Settings) -> int:
    provider = IpmiProvider(
        settings.tools,
        ParallelCollector(1),
        units=(),
        bmc=settings.bmc if settings.bmc.host else None,
        timeout_s=settings.bmc.timeout_s,
    )
    try:
        info = provider.connection_info()
    except ProviderError as exc:
        logger.error("IPMI test failed: %s", exc)
        return EXIT_ERROR
    print(
        f"IPMI connection OK: {info.manufacturer or 'unknown vendor'}, "
        f"firmware {info.firmware or '?'}, IPMI {info.ipmi_version or '?'}"
    )
    if info.address:
        print(f"BMC IP address: {info.address}")
    return EXIT_OK


def run(args: argparse.Namespace) -> int:
    level = resolve_log_level(args.verbose, args.log_level)
    color = not args.no_color and sys.stdout.isatty()
    configure_logging(level, color)
    policy_path = args.config or f"hwcheck-{args.domain}.json"

    try:
        settings = apply_overrides(load_settings(args.settings), args.bmc_host, args.user)
        if args.mode == "test":
            return check_ipmi_connection(settings)
        policy = None
        if args.mode in ("vis", "check"):
            policy = load_policy(policy_path, args.domain)
        workers = policy.workers if policy is not None else settings.collector.workers
        domain = get_domain(args.domain)(settings, ParallelCollector(workers), policy)
        entities = domain.collect()
    except (HwCheckError, FileNotFoundError) as exc:
        logger.error("%s", exc)
        for detail in getattr(exc, "details", []):
            logger.error("  %s", detail)
        return EXIT_ERROR

    if args.mode == "list":
        print(
            format_listing(
                entities,
                domain.format_value,
                title=f"{domain.title} ({len(entities)})",
                color=color,
                verbose=level <= logging.DEBUG,
            )
        )
        return EXIT_OK

    if args.mode == "create":
        created = domain.default_policy(entities)
        errors = validate_policy(policy_to_dict(created))
        if errors:
            logger.error("Generated policy is invalid: %s", errors)
            return EXIT_ERROR
        save_policy(created, policy_path)
        print(
            f"Wrote {policy_path}: {len(created.requirements)} requirements, "
            f"{created.visualization.total_slots} slots"
        )
        return EXIT_OK

    assert policy is not None
    result, grid = check(domain, policy, entities, color)
    print(grid)
    if args.mode == "vis":
        return EXIT_OK

    if result.failed and args.revive and isinstance(domain, BmcDomain):
        outcome = domain.revive()
        if not outcome.ok:
            logger.error("Failed to reload IPMI modules")
        try:
            entities = domain.collect()
        except HwCheckError as exc:
            logger.error("%s", exc)
            return EXIT_ERROR
        result, grid = check(domain, policy, entities, color)
        print()
        print(grid)

    print()
    print(format_summary(result, title="Check results:", color=color))
    return exit_code(result)


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()
    if args.revive and args.domain != "bmc":
        parser.error("--revive only applies to the bmc check")
    sys.exit(run(args))


if __name__ == "__main__":
    main()

import argparse
import os
import re
from pathlib import Path
from typing import Mapping, NamedTuple, Optional, Sequence

from .errorhandling import ConfigError
from .logs import LOG_FORMATS
from .publicip import DEFAULT_MIRRORS
from .schedule import parse_schedule

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
TRUTHY = {"1", "true", "yes", "on"}


class ConfigParser(argparse.ArgumentParser):
    def error(self, message):
        raise ConfigError(message)


class Config(NamedTuple):
    node_name: str
    keys: tuple[str, ...]
    use_kubeconfig: bool = False
    kubeconfig_path: str = str(Path.home() / ".kube" / "config")
    cron: str = "@every 5m"
    cron_disable: bool = False
    set_external_ip: bool = False
    mirrors: tuple[str, ...] = DEFAULT_MIRRORS
    http_timeout: float = 10.0
    api_timeout: float = 30.0
    log_level: str = "DEBUG"
    log_format: str = "text"


def env_bool(value: Optional[str]) -> bool:
    return value is not None and value.strip().lower() in TRUTHY


def split_list(value: Optional[str]) -> list[str]:
    if not value:
        return []
    return [item for item in re.split(r"[,\s]+", value) if item]


def build_parser(environ: Mapping[str, str]) -> argparse.ArgumentParser:
    parser = ConfigParser(
        prog="kpubber",
        description="Publish the machine's public IP onto its Kubernetes node",
    )
    parser.add_argument(
        "--use-kubeconfig",
        action="store_true",
        default=env_bool(environ.get("USE_CONFIG")),
        help="Use a kubeconfig file instead of in-cluster credentials (env USE_CONFIG)",
    )
    parser.add_argument(
        "--kubeconfig",
        dest="kubeconfig_path",
        default=environ.get("KUBE_CONFIG_PATH", Config._field_defaults["kubeconfig_path"]),
        help="Path to the kubeconfig file (env KUBE_CONFIG_PATH)",
    )
    parser.add_argument(
        "--node-name",
        default=environ.get("NODE_NAME", ""),
        help="Node to publish the IP on (env NODE_NAME)",
    )
    parser.add_argument(
        "--key",
        dest="keys",
        action="append",
        help="Annotation key, repeatable (env KEYS, comma or space separated)",
    )
    parser.add_argument(
        "--cron",
        default=environ.get("CRON", Config._field_defaults["cron"]),
        help="Schedule expression, '@every 5m' or cron evaluated in UTC (env CRON)",
    )
    parser.add_argument(
        "--cron-disable",
        action="store_true",
        default=env_bool(environ.get("CRON_DISABLE")),
        help="Only run once at startup (env CRON_DISABLE)",
    )
    parser.add_argument(
        "--set-external-ip",
        action="store_true",
        default=env_bool(environ.get("SET_EXTERNAL_IP")),
        help="Also publish the IP as the node's ExternalIP (env SET_EXTERNAL_IP)",
    )
    parser.add_argument(
        "--mirror",
        dest="mirrors",
        action="append",
        help="Public IP endpoint, repeatable (env PUBLIC_IP_MIRRORS)",
    )
    parser.add_argument(
        "--http-timeout",
        type=float,
        default=environ.get("HTTP_TIMEOUT", Config._field_defaults["http_timeout"]),
        help="Seconds to wait for each public IP mirror (env HTTP_TIMEOUT)",
    )
    parser.add_argument(
        "--api-timeout",
        type=float,
        default=environ.get("API_TIMEOUT", Config._field_defaults["api_timeout"]),
        help="Seconds to wait for each Kubernetes API call (env API_TIMEOUT)",
    )
    parser.add_argument(
        "--loglevel",
        dest="log_level",
        default=environ.get("LOG_LEVEL", Config._field_defaults["log_level"]),
        help="Set the logging level (env LOG_LEVEL, default: DEBUG)",
    )
    parser.add_argument(
        "--log-format",
        default=environ.get("LOG_FORMAT", Config._field_defaults["log_format"]),
        help="text or json (env LOG_FORMAT)",
    )
    return parser


def load_config(
    argv: Optional[Sequence[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
) -> Config:
    if environ is None:
        environ = os.environ
    args = build_parser(environ).parse_args(argv)

    keys = args.keys or split_list(environ.get("KEYS"))
    mirrors = args.mirrors or split_list(environ.get("PUBLIC_IP_MIRRORS"))

    if not args.node_name:
        raise ConfigError("node name is required (NODE_NAME)")
    if not keys:
        raise ConfigError("at least one annotation is required (KEYS)")
    if args.log_level.upper() not in LOG_LEVELS:
        raise ConfigError(f"unknown log level {args.log_level}")
    if args.log_format not in LOG_FORMATS:
        raise ConfigError(f"unknown log format {args.log_format}")
    if args.http_timeout <= 0 or args.api_timeout <= 0:
        raise ConfigError("timeouts must be positive")
    if not args.cron_disable:
        try:
            parse_schedule(args.cron)
        except ValueError as ex:
            raise ConfigError(f"cannot set up schedule {args.cron!r}: {ex}")

    return Config(
        node_name=args.node_name,
        keys=tuple(keys),
        use_kubeconfig=args.use_kubeconfig,
        kubeconfig_path=args.kubeconfig_path,
        cron=args.cron,
        cron_disable=args.cron_disable,
        set_external_ip=args.set_external_ip,
        mirrors=tuple(mirrors) or DEFAULT_MIRRORS,
        http_timeout=args.http_timeout,
        api_timeout=args.api_timeout,
        log_level=args.log_level.upper(),
        log_format=args.log_format,
    )

"""
Warden Command-Line Interface

Inspect, mint and verify tokens from a configuration file.

Author: Warden Team
Date: 2026-10-16
"""

import sys
import json
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
from pydantic import ValidationError

from warden import __version__
from warden.core.config_manager import ConfigManager
from warden.core.logging_config import setup_logging
from warden.exceptions import ConfigurationError, TokenError
from warden.tokens.codec import JWTCodec
from warden.tokens.engine import Warden
from warden.tokens.serializer import StringSerializer


def _parse_pairs(pairs: Tuple[str, ...]) -> Dict[str, Any]:
    """Parse key=value options; values that are valid JSON are decoded."""
    parsed: Dict[str, Any] = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected key=value, got {pair!r}")
        key, value = pair.split("=", 1)
        try:
            parsed[key] = json.loads(value)
        except ValueError:
            parsed[key] = value
    return parsed


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, sort_keys=True, default=str))


def _load_warden(ctx: click.Context) -> Warden:
    config_file: Optional[Path] = ctx.obj.get("config")
    try:
        config = ConfigManager().load(config_file=str(config_file) if config_file else None)
        return Warden(config, serializer=StringSerializer())
    except (ValidationError, ConfigurationError, FileNotFoundError, ValueError) as e:
        click.echo(f"[ERROR] Invalid configuration: {e}", err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="warden")
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (YAML or JSON)",
)
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    help="Logging level",
    show_default=True,
)
@click.pass_context
def cli(ctx, config: Optional[Path], log_level: str):
    """
    Warden - token lifecycle toolkit

    Mint and verify signed tokens with the same settings your application uses.
    """
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    setup_logging(log_level.upper(), format_type="text")


@cli.command()
@click.argument("token")
def peek(token: str):
    """
    Show a token's header and claims without verifying it.

    Example:
        warden peek eyJhbGciOi...
    """
    try:
        header, claims = JWTCodec().decode_unverified(token)
    except TokenError as e:
        click.echo(f"[ERROR] Cannot decode token: {e}", err=True)
        sys.exit(1)

    _echo_json({"header": header, "claims": dict(claims)})


@cli.command()
@click.argument("subject")
@click.option("--type", "token_type", help="Token type (typ claim)")
@click.option("--ttl", type=int, help="Lifetime in seconds")
@click.option("--claim", "claims", multiple=True, help="Extra claim as key=value (repeatable)")
@click.pass_context
def mint(ctx, subject: str, token_type: Optional[str], ttl: Optional[int], claims: Tuple[str, ...]):
    """
    Mint a token for a subject.

    Examples:
        warden -c warden.yaml mint user-42
        warden -c warden.yaml mint user-42 --type refresh --ttl 3600 --claim role=admin
    """
    warden = _load_warden(ctx)
    result = warden.encode_and_sign(subject, token_type, _parse_pairs(claims), ttl=ttl)

    if not result.ok:
        click.echo(f"[ERROR] Cannot mint token: {result.error}", err=True)
        sys.exit(1)

    click.echo(result.token)


@cli.command()
@click.argument("token")
@click.option("--expect", "expected", multiple=True, help="Expected claim as key=value (repeatable)")
@click.pass_context
def verify(ctx, token: str, expected: Tuple[str, ...]):
    """
    Verify a token and print its claims.

    Example:
        warden -c warden.yaml verify eyJhbGciOi... --expect typ=access
    """
    warden = _load_warden(ctx)
    result = warden.decode_and_verify(token, _parse_pairs(expected))

    if not result.ok:
        click.echo(f"[ERROR] Token rejected: {result.error}", err=True)
        sys.exit(1)

    _echo_json(dict(result.claims))


def main():
    """Main entry point for CLI."""
    cli(obj={})


if __name__ == "__main__":
    main()

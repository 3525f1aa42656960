import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import click

from certindex import (
    CertIndexConfig,
    ConfigError,
    IdentityIndex,
    ObservabilityLogger,
    StoreError,
    UTXOReference,
    build_index,
    load_config,
)
from certindex.core.logsetup import configure_logging


# -------------------------
# Helpers
# -------------------------


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2))


def _echo_references(references: List[UTXOReference]) -> None:
    _echo_json([ref.to_dict() for ref in references])


def _parse_attr(pairs: Tuple[str, ...]) -> Dict[str, str]:
    """KEY=VALUE pairs -> dict. The value may itself contain '='."""
    attributes: Dict[str, str] = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"expected KEY=VALUE, got {pair!r}", param_hint="--attr")
        key, value = pair.split("=", 1)
        if not key:
            raise click.BadParameter(f"empty key in {pair!r}", param_hint="--attr")
        attributes[key] = value
    return attributes


def _index(ctx: click.Context) -> IdentityIndex:
    """Build the index lazily so `--help` never touches the database."""
    obj = ctx.find_root().obj
    if obj.get("index") is None:
        try:
            obj["index"] = build_index(obj["config"])
        except StoreError as exc:
            raise click.ClickException(f"Cannot open record store: {exc}")
    return obj["index"]


def _run(fn, *args):
    try:
        return fn(*args)
    except StoreError as exc:
        raise click.ClickException(f"Store error: {exc}")


# -------------------------
# CLI
# -------------------------


@click.group()
@click.option("--config", "config_path", type=click.Path(path_type=Path), default=None, help="YAML config file")
@click.option("--db", type=click.Path(path_type=Path), default=None, help="SQLite database (overrides config)")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default=None,
    help="Diagnostic log level (overrides config)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], db: Optional[Path], log_level: Optional[str]) -> None:
    """certindex CLI.

    Store, delete and look up identity certificate records.
    """
    overrides: Dict[str, Any] = {}
    if db is not None:
        overrides["storage"] = {"db_path": str(db.resolve())}
    if log_level is not None:
        overrides["logging"] = {"level": log_level}

    try:
        config = load_config(config_path, cli_overrides=overrides)
    except ConfigError as exc:
        raise click.ClickException(f"Invalid configuration: {exc}")

    configure_logging(config.logging.level, config.logging.to_file)
    ctx.obj = {"config": config, "index": None}


# ---- lifecycle ----


@cli.command("store")
@click.option("--txid", required=True, help="Transaction id")
@click.option("--output-index", required=True, type=click.IntRange(min=0), help="Output index")
@click.option(
    "--certificate",
    "certificate_file",
    type=click.File("r"),
    required=True,
    help="Certificate JSON file ('-' for stdin)",
)
@click.pass_context
def store_cmd(ctx: click.Context, txid: str, output_index: int, certificate_file) -> None:
    """Store a certificate record for an output."""
    try:
        certificate = json.load(certificate_file)
    except json.JSONDecodeError as exc:
        raise click.ClickException(f"Certificate is not valid JSON: {exc}")

    if not isinstance(certificate, dict):
        raise click.ClickException("Certificate JSON must be an object")

    try:
        _run(_index(ctx).store_record, txid, output_index, certificate)
    except ValueError as exc:
        raise click.ClickException(str(exc))

    _echo_json({"stored": {"txid": txid, "outputIndex": output_index}})


@cli.command("delete")
@click.option("--txid", required=True, help="Transaction id")
@click.option("--output-index", required=True, type=click.IntRange(min=0), help="Output index")
@click.pass_context
def delete_cmd(ctx: click.Context, txid: str, output_index: int) -> None:
    """Delete the record for an output (no-op if none exists)."""
    _run(_index(ctx).delete_record, txid, output_index)
    _echo_json({"deleted": {"txid": txid, "outputIndex": output_index}})


# ---- queries ----


@cli.group()
def find() -> None:
    """Look up output references."""


@find.command("attribute")
@click.option("--any", "any_text", default=None, help="Free-text search across all attributes")
@click.option("--attr", "attrs", multiple=True, help="Field search as KEY=VALUE (repeatable)")
@click.option("--certifier", "certifiers", multiple=True, help="Acceptable certifier key (repeatable)")
@click.pass_context
def find_attribute(
    ctx: click.Context, any_text: Optional[str], attrs: Tuple[str, ...], certifiers: Tuple[str, ...]
) -> None:
    """Fuzzy attribute search. --any takes precedence over --attr."""
    attributes = _parse_attr(attrs)
    if any_text is not None:
        attributes = {"any": any_text}
    _echo_references(_run(_index(ctx).find_by_attribute, attributes, list(certifiers)))


@find.command("identity")
@click.option("--identity-key", required=True, help="Subject identity key")
@click.option("--certifier", "certifiers", multiple=True, help="Acceptable certifier key (repeatable)")
@click.pass_context
def find_identity(ctx: click.Context, identity_key: str, certifiers: Tuple[str, ...]) -> None:
    """Find records about an identity key."""
    _echo_references(_run(_index(ctx).find_by_identity_key, identity_key, list(certifiers)))


@find.command("certifier")
@click.option("--certifier", "certifiers", multiple=True, help="Certifier key (repeatable)")
@click.pass_context
def find_certifier(ctx: click.Context, certifiers: Tuple[str, ...]) -> None:
    """Find records issued by any of the certifiers."""
    _echo_references(_run(_index(ctx).find_by_certifier, list(certifiers)))


@find.command("type")
@click.option("--type", "types", multiple=True, help="Certificate type (repeatable)")
@click.option("--identity-key", default=None, help="Subject identity key")
@click.option("--certifier", "certifiers", multiple=True, help="Certifier key (repeatable)")
@click.pass_context
def find_type(
    ctx: click.Context, types: Tuple[str, ...], identity_key: Optional[str], certifiers: Tuple[str, ...]
) -> None:
    """Find a subject's certificates by type and certifier."""
    _echo_references(
        _run(_index(ctx).find_by_certificate_type, list(types), identity_key, list(certifiers))
    )


@find.command("serial")
@click.option("--serial-number", required=True, help="Certificate serial number")
@click.pass_context
def find_serial(ctx: click.Context, serial_number: str) -> None:
    """Find records by certificate serial number."""
    _echo_references(_run(_index(ctx).find_by_certificate_serial_number, serial_number))


# ---- audit log ----


@cli.group()
def log() -> None:
    """Audit log utilities."""


@log.command("summary")
@click.option("--session", default=None, help="Session ID (defaults to the most recent session)")
@click.pass_context
def log_summary(ctx: click.Context, session: Optional[str]) -> None:
    """Summarize an audit log session."""
    config: CertIndexConfig = ctx.find_root().obj["config"]
    if config.logging.audit_db is None:
        raise click.ClickException("Audit log disabled: set logging.audit_db")

    audit = ObservabilityLogger(config.logging.audit_db)
    session = session or audit.latest_session()
    if session is None:
        _echo_json({"session_id": None, "total_logs": 0})
        return
    _echo_json(audit.get_session_summary(session))


if __name__ == "__main__":
    cli()

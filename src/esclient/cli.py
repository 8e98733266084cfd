"""CLI entry point for the event service client."""

from __future__ import annotations

import json
import sys
from typing import Any

import click

from .core.config import ClientSettings, load_settings
from .core.errors import ClientError


def _parse_json(value: str, what: str) -> Any:
    if value == "-":
        value = click.get_text_stream("stdin").read()
    try:
        return json.loads(value)
    except ValueError as exc:
        raise click.BadParameter(f"{what} is not valid JSON: {exc}") from exc


def _settings(ctx: click.Context) -> ClientSettings:
    return ctx.obj["settings"]


def _secret(ctx: click.Context, secret: str | None) -> str:
    secret = secret or _settings(ctx).secret_key
    if not secret:
        raise click.UsageError("No secret key: pass --secret or set ESCLIENT_SECRET_KEY")
    return secret


def _build_event(
    ctx: click.Context,
    secret: str | None,
    ops: str,
    code: int,
    data: str | None,
    user: str | None,
    tags: tuple[tuple[str, str], ...],
) -> Any:
    from .crypto.auth import sign
    from .crypto.keys import KeyPair

    try:
        keys = KeyPair.from_secret(_secret(ctx, secret))
        event: dict[str, Any] = {"ops": ops, "code": code, "user": user or keys.public_hex}
        if data is not None:
            event["data"] = _parse_json(data, "--data")
        if tags:
            event["tags"] = [list(t) for t in tags]
        return sign(event, keys.secret)
    except ClientError as exc:
        raise click.ClickException(str(exc)) from exc


def _echo_json(value: Any) -> None:
    click.echo(json.dumps(value, ensure_ascii=False))


event_options = [
    click.option("--secret", default=None, help="Secret key (hex or esec); defaults to config"),
    click.option("--ops", default="C", show_default=True, help="Operation: C, R, U or D"),
    click.option("--code", type=int, required=True, help="Event code"),
    click.option("--data", default=None, help="JSON object payload ('-' reads stdin)"),
    click.option("--user", default=None, help="User field; defaults to the signer's public key"),
    click.option("--tag", "tags", type=(str, str), multiple=True, help="Tag as KEY VALUE (repeatable)"),
]


def with_event_options(fn: Any) -> Any:
    for option in reversed(event_options):
        fn = option(fn)
    return fn


@click.group()
@click.option("--config", default=None, help="Config file path (TOML)")
@click.option("--url", default=None, help="Service URL override")
@click.option("--log-level", default=None, help="Log level override")
@click.pass_context
def main(ctx: click.Context, config: str | None, url: str | None, log_level: str | None) -> None:
    """Event service client."""
    from .observability.logger import setup_logging

    overrides: dict[str, Any] = {}
    if url:
        overrides["url"] = url
    if log_level:
        overrides["observability"] = {"log_level": log_level}
    try:
        settings = load_settings(config_path=config, overrides=overrides)
    except ClientError as exc:
        raise click.ClickException(str(exc)) from exc

    setup_logging(settings.observability.log_level, settings.observability.log_format)
    ctx.ensure_object(dict)
    ctx.obj["settings"] = settings


@main.command()
def keygen() -> None:
    """Generate a new key pair."""
    from .crypto.keys import KeyPair

    keys = KeyPair.generate()
    _echo_json({
        "secret": keys.secret_hex,
        "public": keys.public_hex,
        "esec": keys.esec,
        "epub": keys.epub,
    })


@main.command()
@click.argument("secret")
def pubkey(secret: str) -> None:
    """Derive the public key from a hex or esec secret."""
    from .crypto.keys import KeyPair

    try:
        keys = KeyPair.from_secret(secret)
    except ClientError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json({"public": keys.public_hex, "epub": keys.epub})


@main.command("sign")
@with_event_options
@click.pass_context
def sign_cmd(
    ctx: click.Context,
    secret: str | None,
    ops: str,
    code: int,
    data: str | None,
    user: str | None,
    tags: tuple[tuple[str, str], ...],
) -> None:
    """Print a signed event as JSON."""
    event = _build_event(ctx, secret, ops, code, data, user, tags)
    _echo_json(event.to_wire())


@main.command("verify")
@click.argument("event_json")
@click.option("--pubkey", "public_key", default=None, help="Public key (hex or epub); defaults to the event's user")
def verify_cmd(event_json: str, public_key: str | None) -> None:
    """Verify a signed event. Exit status 0 when valid, 1 otherwise."""
    from .crypto.auth import verify, verify_event

    event = _parse_json(event_json, "EVENT_JSON")
    ok = verify(event, public_key) if public_key else verify_event(event)
    click.echo("valid" if ok else "invalid")
    sys.exit(0 if ok else 1)


@main.command()
@with_event_options
@click.option("--timeout", type=float, default=10.0, show_default=True, help="Seconds to wait for a response")
@click.pass_context
def publish(
    ctx: click.Context,
    secret: str | None,
    ops: str,
    code: int,
    data: str | None,
    user: str | None,
    tags: tuple[tuple[str, str], ...],
    timeout: float,
) -> None:
    """Sign an event, publish it and print the service's response."""
    import asyncio

    from .client.session import TransportSession

    event = _build_event(ctx, secret, ops, code, data, user, tags)
    settings = _settings(ctx)

    async def run() -> Any:
        async with TransportSession(settings=settings, auto_reconnect=False) as session:
            return await asyncio.wait_for(session.publish_wait(event), timeout)

    try:
        frame = asyncio.run(run())
    except asyncio.TimeoutError as exc:
        raise click.ClickException(f"No response within {timeout}s") from exc
    except ClientError as exc:
        raise click.ClickException(str(exc)) from exc
    _echo_json(list(frame[:3]) + list(frame.extra))


@main.command()
@click.option("--filter", "filter_json", default="{}", show_default=True, help="JSON filter ('-' reads stdin)")
@click.option("--until-eose", is_flag=True, help="Exit after the end-of-stored-events marker")
@click.pass_context
def subscribe(ctx: click.Context, filter_json: str, until_eose: bool) -> None:
    """Subscribe and print frames as they arrive."""
    import asyncio

    from .client.session import TransportSession

    filter_ = _parse_json(filter_json, "--filter")
    settings = _settings(ctx)

    async def run() -> None:
        async with TransportSession(settings=settings) as session:
            async with session.subscription(filter_) as sub:
                async for frame in sub:
                    if until_eose and frame.is_eose:
                        return
                    _echo_json(list(frame[:3]) + list(frame.extra))

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        pass
    except ClientError as exc:
        raise click.ClickException(str(exc)) from exc


if __name__ == "__main__":
    main()

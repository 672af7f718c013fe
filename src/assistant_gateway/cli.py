import asyncio
import json

import click

from . import __version__
from assistant_gateway.config.settings import get_settings
from assistant_gateway.exceptions import ConfigurationError
from assistant_gateway.providers.base import ChatMessage
from assistant_gateway.telemetry.logger import setup_logging


def get_version():
    return __version__


def _build_gateway():
    from assistant_gateway.orchestrator.orchestrator import Gateway

    return Gateway.from_settings(get_settings())


async def _describe_providers():
    gateway = _build_gateway()
    try:
        return await gateway.selector.describe(), await gateway.selector.list_models()
    finally:
        await gateway.aclose()


async def _analyze(query, heuristic):
    gateway = _build_gateway()
    try:
        return await gateway.analyzer.analyze(query, heuristic_only=heuristic)
    finally:
        await gateway.aclose()


async def _ask(query, session):
    gateway = _build_gateway()
    try:
        return await gateway.handle_turn([ChatMessage(role="user", content=query)], session_id=session)
    finally:
        await gateway.aclose()


@click.group()
@click.option("--log-level", default=None, help="Override LOG_LEVEL")
def cli(log_level):
    setup_logging(level=log_level)


@cli.command()
@click.option("--format", default="text", type=click.Choice(["text", "json"]))
def version(format):
    if format == "json":
        click.echo(json.dumps({"version": get_version()}))
    else:
        click.echo(f"v{get_version()}")


@cli.command()
def providers():
    """Show configured providers, their availability and models."""
    try:
        rows, models = asyncio.run(_describe_providers())
    except (ConfigurationError, ValueError) as e:
        raise click.ClickException(str(e))
    if not rows:
        click.echo("No providers configured.")
        return
    for row in rows:
        status = "available" if row["available"] else "unavailable"
        marker = "*" if row["preferred"] else " "
        click.echo(f"{marker} {row['name']} ({row['kind']}) model={row['model']} [{status}]")
        if row["problem"]:
            click.echo(f"    problem: {row['problem']}")
        listed = models.get(row["kind"]) or []
        if listed:
            click.echo(f"    models: {', '.join(listed[:10])}")


@cli.command()
@click.argument("query")
@click.option("--heuristic", is_flag=True, help="Skip the LLM and use keyword routing")
def analyze(query, heuristic):
    """Show how QUERY would be routed."""
    analysis = asyncio.run(_analyze(query, heuristic))
    click.echo(analysis.model_dump_json(indent=2))


@cli.command()
@click.argument("query")
@click.option("--session", default=None, help="Conversation session id")
@click.option("--trace", is_flag=True, help="Print pipeline steps")
def ask(query, session, trace):
    """Run QUERY through the full turn pipeline."""
    result = asyncio.run(_ask(query, session))
    click.echo(result.final_response)
    if trace:
        click.echo("")
        for step in result.trace.steps:
            click.echo(f"- {step}")


if __name__ == "__main__":
    cli()

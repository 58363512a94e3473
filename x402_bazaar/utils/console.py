# x402_bazaar/utils/console.py
"""Styled terminal output for the command shell."""
import json
import re
from typing import Any, Sequence

import click

from x402_bazaar.models.service import ServiceInfo

ORANGE = (255, 153, 0)


def info(text: str) -> None:
    click.echo(click.style("i", fg="blue") + " " + text)


def success(text: str) -> None:
    click.echo(click.style("✓", fg="green") + " " + text)


def warn(text: str) -> None:
    click.echo(click.style("!", fg="yellow") + " " + click.style(text, fg="yellow"))


def error(text: str) -> None:
    click.echo(click.style("✗", fg="red") + " " + click.style(text, fg="red"))


def dim(text: str) -> None:
    click.echo(click.style(text, fg="bright_black"))


def separator() -> None:
    dim("─" * 50)


def blank() -> None:
    click.echo("")


def banner() -> None:
    border = click.style("  ╔═══════════════════════════════════════╗", fg=ORANGE, bold=True)
    side = click.style("  ║", fg=ORANGE, bold=True)
    side_end = click.style("║", fg=ORANGE, bold=True)
    blank()
    click.echo(border)
    click.echo(side + click.style("           x402 Bazaar CLI             ", bold=True) + side_end)
    click.echo(side + click.style("   AI Agent Marketplace on Base L2     ", fg="bright_black") + side_end)
    click.echo(click.style("  ╚═══════════════════════════════════════╝", fg=ORANGE, bold=True))
    blank()


def mask_address(address: str) -> str:
    """0x1234...abcd form of an address."""
    if not address or len(address) < 10:
        return address
    return f"{address[:6]}...{address[-4:]}"


_KEY_RE = re.compile(r'"((?:[^"\\]|\\.)*)":')
_STRING_RE = re.compile(r': "((?:[^"\\]|\\.)*)"')
_NUMBER_RE = re.compile(r": (-?\d+\.?\d*)")
_BOOL_RE = re.compile(r": (true|false)")
_NULL_RE = re.compile(r": null")


def highlight_json(data: Any) -> str:
    """Pretty-print JSON with terminal colors for keys and scalar values."""
    text = json.dumps(data, indent=2, ensure_ascii=False, default=str)
    text = _KEY_RE.sub(lambda m: click.style(f'"{m.group(1)}"', fg="blue") + ":", text)
    text = _STRING_RE.sub(lambda m: ": " + click.style(f'"{m.group(1)}"', fg="green"), text)
    text = _NUMBER_RE.sub(lambda m: ": " + click.style(m.group(1), fg="yellow"), text)
    text = _BOOL_RE.sub(lambda m: ": " + click.style(m.group(1), fg="magenta"), text)
    text = _NULL_RE.sub(": " + click.style("null", fg="bright_black"), text)
    return text


def print_services(services: Sequence[ServiceInfo]) -> None:
    """Numbered service listing used by list and search."""
    for idx, service in enumerate(services, start=1):
        price = click.style(service.price_label, fg="green", bold=True) if service.is_free \
            else click.style(service.price_label, fg="cyan")
        chain = click.style("SKALE", fg="magenta") if service.chain == "skale" \
            else click.style("Base", fg="blue")
        pipe = click.style("|", dim=True)

        click.echo(click.style(f"{idx:>2}. ", fg=ORANGE, bold=True) + click.style(service.name, bold=True))
        click.echo(f"    {price} {pipe} {click.style(service.category, fg='bright_blue')} {pipe} {chain}")
        if service.short_description:
            dim(f"    {service.short_description}")
        endpoint = service.endpoint or service.url
        if endpoint:
            click.echo(f"    {click.style('Endpoint:', dim=True)} {click.style(endpoint, fg='yellow')}")
        blank()


def plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"

"""Typer CLI for inspecting visitor identity and replaying popup scenarios."""

import os

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path.cwd() / ".env")
load_dotenv(Path.cwd() / ".env.local")

import json
from typing import Any, Optional

import typer
from pydantic import BaseModel, Field, ValidationError

from chat_widget.config import get_settings
from chat_widget.models.agent_config_models import AgentWidgetConfig
from chat_widget.models.page_events import MouseLeaveEvent, ScrollEvent
from chat_widget.models.popup_models import PopupDefinition
from chat_widget.models.session_models import BrowserFingerprint
from chat_widget.services.identity import SessionIdentityResolver
from chat_widget.services.scheduler import SystemClock, VirtualScheduler
from chat_widget.services.widget import ChatWidget
from chat_widget.storage.client import JsonFileStore, MemoryStore, SafeStore
from chat_widget.storage.repository import WidgetStorage

app = typer.Typer(help="Chat widget session and popup tooling.")


class TimelineStep(BaseModel):
    """One scripted page interaction, ``at`` seconds after the widget loaded."""

    at: float = Field(..., ge=0)
    event: str
    client_y: float | None = Field(default=None, alias="clientY")
    scroll_y: float | None = Field(default=None, alias="scrollY")
    scroll_height: float | None = Field(default=None, alias="scrollHeight")
    viewport_height: float | None = Field(default=None, alias="viewportHeight")


class Scenario(BaseModel):
    """A replayable page visit."""

    agent_id: str = Field(..., alias="agentId")
    fingerprint: BrowserFingerprint
    config: AgentWidgetConfig = Field(default_factory=AgentWidgetConfig)
    allowed_domains: list[str] = Field(default_factory=list, alias="allowedDomains")
    timeline: list[TimelineStep] = Field(default_factory=list)
    duration: float = Field(default=10.0, ge=0, description="Seconds to simulate")


def _open_storage(store_path: Path | None) -> WidgetStorage:
    settings = get_settings()
    backend = JsonFileStore(store_path) if store_path else MemoryStore()
    return WidgetStorage(SafeStore(backend), prefix=settings.storage_key_prefix)


def _parse_screen(screen: str) -> tuple[int, int]:
    try:
        width, height = screen.lower().split("x", 1)
        return int(width), int(height)
    except ValueError:
        raise typer.BadParameter("screen must look like 1920x1080") from None


@app.command()
def identity(
    agent_id: str = typer.Option(..., "--agent-id", help="Agent the widget serves"),
    hostname: str = typer.Option("localhost", help="Embedding host domain"),
    user_agent: str = typer.Option("Mozilla/5.0", "--user-agent"),
    language: str = typer.Option("en-US"),
    screen: str = typer.Option("1920x1080", help="Screen size as WxH"),
    tz: str = typer.Option("UTC", "--timezone", help="IANA timezone name"),
    store: Optional[Path] = typer.Option(
        None, help="JSON file used as persistent storage (memory if omitted)"
    ),
):
    """Resolve the anonymous identity and visit classification for one load."""
    width, height = _parse_screen(screen)
    fingerprint = BrowserFingerprint(
        hostname=hostname,
        user_agent=user_agent,
        language=language,
        screen_width=width,
        screen_height=height,
        timezone=tz,
    )
    resolver = SessionIdentityResolver(
        fingerprint,
        _open_storage(store),
        clock=SystemClock(),
        return_window_seconds=get_settings().return_visit_window_seconds,
    )
    result = resolver.resolve_identity(agent_id)
    typer.echo(f"anonymous_id:   {result.anonymous_id}")
    typer.echo(f"session_id:     {result.session_id}")
    label = "returning" if result.is_return_user else "new"
    typer.echo(f"visitor:        {label}")


def _dispatch_step(widget: ChatWidget, step: TimelineStep) -> None:
    if step.event == "mouseleave":
        widget.dispatch(MouseLeaveEvent(client_y=step.client_y or 0))
    elif step.event == "scroll":
        widget.dispatch(
            ScrollEvent(
                scroll_y=step.scroll_y or 0,
                scroll_height=step.scroll_height or 0,
                viewport_height=step.viewport_height or 0,
            )
        )
    elif step.event == "close":
        widget.close_popup()
    else:
        typer.echo(
            typer.style(f"  [ignored unknown event: {step.event}]", fg=typer.colors.YELLOW),
            err=True,
        )


@app.command()
def simulate(
    scenario_file: Path = typer.Argument(..., exists=True, readable=True),
    store: Optional[Path] = typer.Option(
        None, help="JSON file used as persistent storage (memory if omitted)"
    ),
    start_ms: Optional[int] = typer.Option(
        None, help="Simulated epoch millis at load (defaults to now)"
    ),
):
    """Replay a scripted page visit and print when popups display."""
    try:
        raw: dict[str, Any] = json.loads(scenario_file.read_text(encoding="utf-8"))
        scenario = Scenario.model_validate(raw)
    except (ValueError, ValidationError) as e:
        typer.echo(f"✗ Invalid scenario: {e}", err=True)
        raise typer.Exit(1)

    scheduler = VirtualScheduler(
        start_ms=start_ms if start_ms is not None else SystemClock().now_ms()
    )
    load_ms = scheduler.now_ms()

    def on_display(popup: PopupDefinition) -> None:
        elapsed = (scheduler.now_ms() - load_ms) / 1000
        typer.echo(
            f"[{elapsed:7.2f}s] popup {popup.id} shown "
            f"({popup.trigger_kind}, {popup.content_type.value})"
        )

    widget = ChatWidget(
        agent_id=scenario.agent_id,
        fingerprint=scenario.fingerprint,
        storage=_open_storage(store),
        scheduler=scheduler,
        clock=scheduler,
        allowed_domains=scenario.allowed_domains,
        on_display=on_display,
    )
    if not widget.state.enabled:
        typer.echo(f"✗ Domain not allowed: {scenario.fingerprint.hostname}", err=True)
        raise typer.Exit(1)

    session = widget.state.session
    typer.echo(
        f"Visitor {session.anonymous_id} "
        f"({'returning' if session.is_return_user else 'new'}) on agent {scenario.agent_id}"
    )

    for decision in widget.apply_config(scenario.config):
        typer.echo(
            f"  {decision.popup_id}: {decision.phase.value} / "
            f"{decision.action.value} ({decision.reason})"
        )

    elapsed = 0.0
    for step in sorted(scenario.timeline, key=lambda s: s.at):
        scheduler.advance(step.at - elapsed)
        elapsed = step.at
        _dispatch_step(widget, step)

    if scenario.duration > elapsed:
        scheduler.advance(scenario.duration - elapsed)

    current = widget.state.current_popup
    typer.echo(f"On screen at end: {current.id if current else 'none'}")
    if widget.state.countdown_text:
        typer.echo(f"Countdown: {widget.state.countdown_text}")
    widget.teardown()


if __name__ == "__main__":
    app()

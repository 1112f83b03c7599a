from __future__ import annotations

import json
from typing import Optional

import httpx
import typer
import uvicorn

from voicegate.core.config import Settings, get_settings
from voicegate.core.logger import set_debug

HOOK_NAMES = ("pre-tool", "post-tool", "pre-speak", "pre-wait", "stop")

cli = typer.Typer(name="voicegate", help="CLI voicegate")
config_cli = typer.Typer(help="Configuration")

cli.add_typer(config_cli, name="config")


@cli.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host"),
    port: Optional[int] = typer.Option(None, "--port"),
    debug: bool = typer.Option(False, "--debug", "-d", help="Trace detaillee sur stderr"),
    open_browser: bool = typer.Option(False, "--open-browser", help="Ouvrir l'UI si aucun navigateur ne se connecte"),
) -> None:
    """Demarrer le serveur HTTP."""
    overrides: dict[str, object] = {}
    if host:
        overrides["host"] = host
    if port:
        overrides["port"] = port
    if debug:
        overrides["debug"] = True
    if open_browser:
        overrides["auto_open_browser"] = True
    settings = get_settings().model_copy(update=overrides)
    set_debug(settings.debug)

    from voicegate.main import create_app

    uvicorn.run(create_app(settings), host=settings.host, port=settings.port, log_level="warning")


def _default_url(settings: Settings) -> str:
    return f"http://localhost:{settings.port}"


@cli.command()
def hook(
    name: str = typer.Argument(..., help="pre-tool|post-tool|pre-speak|pre-wait|stop"),
    url: Optional[str] = typer.Option(None, "--url", help="URL du serveur voicegate"),
) -> None:
    """Consulter la porte d'action pour un hook de l'hote et afficher la decision JSON."""
    if name not in HOOK_NAMES:
        typer.echo(f"Hook inconnu: {name}. Choix: {', '.join(HOOK_NAMES)}", err=True)
        raise typer.Exit(code=2)
    settings = get_settings()
    base = (url or _default_url(settings)).rstrip("/")
    # le hook stop peut attendre une utterance pendant tout le delai d'attente
    timeout = settings.wait_timeout_seconds + 10.0
    try:
        response = httpx.post(f"{base}/api/hooks/{name}", timeout=timeout)
        response.raise_for_status()
        decision = response.json()
    except (httpx.HTTPError, ValueError) as exc:
        # serveur absent : ne jamais bloquer l'hote
        decision = {"decision": "approve", "reason": f"voicegate unavailable: {exc}"}
    typer.echo(json.dumps(decision, ensure_ascii=False))


@config_cli.command("print")
def config_print():
    s = Settings()
    typer.echo(json.dumps(s.model_dump(), ensure_ascii=False, default=str))


if __name__ == "__main__":
    cli()

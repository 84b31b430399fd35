"""Archiver CLI: entry-point for local archiving and the HTTP server.

Usage:
    python cli/main.py --help

Commands:
    archive   → render one page and write index.html / styles.css / archive.json
    serve     → run the FastAPI app under uvicorn
    trust     → report whether hosts are trusted CDNs or premium font hosts
"""

from __future__ import annotations

import sys
from pathlib import Path

# Ensure the project root is on sys.path so that `from archiver.xxx import ...`
# works when the CLI is invoked as `python cli/main.py` from any directory.
_ROOT = Path(__file__).resolve().parent.parent
if str(_ROOT) not in sys.path:
    sys.path.insert(0, str(_ROOT))

import asyncio
import json
from typing import List, Optional

import typer

from archiver.config import settings
from archiver.log import configure_logging
from archiver.security.trust import is_premium_font_host, is_trusted, normalise_hostname

app = typer.Typer(
    name="archiver",
    help="Secure page archiver CLI.",
    no_args_is_help=True,
)


# ---------------------------------------------------------------------------
# archive
# ---------------------------------------------------------------------------

async def _create_archive(url: str, proxy_base: str, link_base: Optional[str]):
    from archiver.capture import ArchiveService, BrowserSessionPool, PageRenderer
    from archiver.security import DomainAuthorizationLedger

    pool = BrowserSessionPool()
    ledger = DomainAuthorizationLedger(ttl=settings.domain_authorization_ttl)
    service = ArchiveService(PageRenderer(pool), ledger)
    try:
        return await service.create_archive(
            url, asset_proxy_base_url=proxy_base, link_rewrite_base_url=link_base
        )
    finally:
        await pool.close()


@app.command("archive")
def archive(
    url: str = typer.Option(..., help="HTTPS URL to archive."),
    out: Path = typer.Option(Path("archive"), help="Output directory."),
    proxy_base: Optional[str] = typer.Option(
        None, "--proxy-base", help="Base URL of the asset proxy used in rewritten URLs."
    ),
    link_base: Optional[str] = typer.Option(
        None, "--link-base", help="Prefix for rewritten relative links."
    ),
) -> None:
    """Render *url* and write the sanitized archive to *out*."""
    configure_logging()
    if not url.startswith("https://"):
        typer.echo("[archive] Only HTTPS URLs are allowed.", err=True)
        raise typer.Exit(code=1)

    base = proxy_base or settings.asset_proxy_base_url or settings.default_asset_proxy_base_url
    typer.echo(f"[archive] Rendering {url!r} …")
    try:
        result = asyncio.run(_create_archive(url, base, link_base))
    except Exception as exc:
        typer.echo(f"[archive] Failed: {exc}", err=True)
        raise typer.Exit(code=1)

    out.mkdir(parents=True, exist_ok=True)
    (out / "index.html").write_text(result.html, encoding="utf-8")
    (out / "styles.css").write_text(result.css, encoding="utf-8")
    meta = result.to_dict()
    meta.pop("html")
    meta.pop("css")
    (out / "archive.json").write_text(json.dumps(meta, indent=2), encoding="utf-8")

    typer.echo(f"[archive] Title  : {result.title or '(none)'}")
    typer.echo(f"[archive] Domain : {result.domain}")
    typer.echo(f"[archive] Size   : {result.content_size} bytes")
    typer.echo(f"[archive] Time   : {result.extraction_time} ms")
    typer.echo(f"[archive] Wrote  : {out}")


# ---------------------------------------------------------------------------
# serve
# ---------------------------------------------------------------------------

@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, help="Bind address."),
    port: Optional[int] = typer.Option(None, help="Bind port."),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes."),
) -> None:
    """Run the archive API under uvicorn."""
    import uvicorn

    uvicorn.run(
        "archiver.api.app:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


# ---------------------------------------------------------------------------
# trust
# ---------------------------------------------------------------------------

@app.command("trust")
def trust(
    hosts: List[str] = typer.Argument(..., help="Hostnames or URLs to check."),
) -> None:
    """Report the trust classification of each host."""
    for host in hosts:
        name = normalise_hostname(host)
        if is_trusted(name):
            label = "trusted"
        elif is_premium_font_host(name):
            label = "premium-font"
        else:
            label = "untrusted"
        typer.echo(f"{name or host}\t{label}")


if __name__ == "__main__":
    app()

"""Dev Journal FastAPI application."""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import BackgroundTasks, Depends, FastAPI, Form, HTTPException, Request
from fastapi.responses import FileResponse, HTMLResponse, PlainTextResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError

from devjournal.auth import SESSION_COOKIE, SESSION_MAX_AGE, check_password, is_admin, session_token
from devjournal.config import Settings, get_settings
from devjournal.core.errors import JournalError, PageNotFoundError, RegistryError
from devjournal.core.parser import render_markdown_with_toc
from devjournal.core.registry import (
    HOME_PAGE,
    PageRegistry,
    create_registry,
    display_path,
    normalize_page_path,
)
from devjournal.core.repository import GitRepository, check_git_available
from devjournal.core.sync import SyncScheduler, SyncService
from devjournal.core.webhook import SIGNATURE_HEADER, WebhookAuthenticator
from devjournal.logging import configure_logging

logger = logging.getLogger(__name__)

# Content paths served as plain files rather than pages
ASSET_PREFIXES = ("img/", "assets/")


class AdminLoginRequired(Exception):
    """Raised by admin routes when the session cookie is missing or invalid."""


templates_path = Path(__file__).parent / "templates"
static_path = Path(__file__).parent / "static"


def create_repository(settings: Settings) -> GitRepository:
    return GitRepository(
        repo_url=settings.repo_url,
        path=settings.content_dir,
        ssh_key_path=settings.ssh_key_path,
        strict_host_key_checking=settings.strict_host_key_checking,
        known_hosts_path=settings.known_hosts_path,
        git_binary=settings.git_binary,
    )


def create_app(
    settings: Settings,
    *,
    repository: GitRepository | None = None,
    registry: PageRegistry | None = None,
    initial_sync: bool = True,
) -> FastAPI:
    """Build the application.

    With ``initial_sync`` the lifespan clones or pulls the content repository
    and reconciles it before serving; any failure there stops startup.
    """
    if registry is None:
        registry = create_registry(settings.db_path)
    if repository is None:
        repository = create_repository(settings)

    content_dir = Path(settings.content_dir)
    sync_service = SyncService(repository, registry, content_dir)
    scheduler = SyncScheduler(sync_service)
    authenticator = WebhookAuthenticator(
        settings.webhook_secret.get_secret_value(),
        scheduler.schedule,
        tracked_refs=settings.tracked_refs,
    )
    admin_secret = settings.admin_secret.get_secret_value()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan: initial content sync, then drain background syncs."""
        if initial_sync:
            result = await sync_service.sync(initial=True)
            logger.info(
                "Initial content sync complete: %d pages, %d new",
                result.reconcile.discovered,
                result.reconcile.created,
            )
        yield
        await scheduler.wait_idle()
        registry.engine.dispose()

    app = FastAPI(
        title=settings.app_title,
        debug=settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry
    app.state.sync_service = sync_service
    app.state.scheduler = scheduler

    templates = Jinja2Templates(directory=str(templates_path))
    templates.env.filters["display_path"] = display_path
    app.mount("/static", StaticFiles(directory=str(static_path)), name="static")

    @app.exception_handler(PageNotFoundError)
    async def page_not_found(request: Request, exc: PageNotFoundError):
        return PlainTextResponse("Page not found", status_code=404)

    @app.exception_handler(AdminLoginRequired)
    async def admin_login_required(request: Request, exc: AdminLoginRequired):
        return RedirectResponse(url=settings.admin_login_path, status_code=302)

    def render(request: Request, name: str, status_code: int = 200, **kwargs) -> HTMLResponse:
        """Render a template with navigation and theme."""
        try:
            nav_pages = registry.list_visible()
        except RegistryError:
            logger.exception("Could not fetch navigation")
            raise HTTPException(status_code=500, detail="Could not fetch navigation")
        context = {
            "app_title": settings.app_title,
            "nav_pages": nav_pages,
            "theme": settings.theme,
            "is_admin": is_admin(request, admin_secret),
            "admin_login_path": settings.admin_login_path,
            **kwargs,
        }
        return templates.TemplateResponse(request, name, context, status_code=status_code)

    def require_admin(request: Request) -> None:
        if not is_admin(request, admin_secret):
            raise AdminLoginRequired()

    def resolve_content_file(rel_path: str) -> Path | None:
        """Path of a file inside the working copy, or None if it escapes it."""
        root = content_dir.resolve()
        candidate = (root / rel_path).resolve()
        if not candidate.is_relative_to(root):
            return None
        return candidate

    def render_page(request: Request, background_tasks: BackgroundTasks, page_path: str):
        page = registry.get_by_path(page_path)
        if not page.is_visible:
            raise PageNotFoundError(page_path)

        source = resolve_content_file(page.path)
        try:
            if source is None:
                raise OSError(f"{page.path} is outside the content directory")
            content = source.read_text(encoding="utf-8")
        except OSError:
            logger.exception("Could not read page content for %s", page.path)
            raise HTTPException(status_code=500, detail="Could not read page content")

        html_content, toc_html = render_markdown_with_toc(content)
        background_tasks.add_task(registry.increment_visit, page.path)
        return render(
            request,
            "page.html",
            title=page.title,
            html_content=html_content,
            toc_html=toc_html,
        )

    # ========== Webhook ==========

    @app.post("/webhook")
    async def webhook(request: Request):
        """GitHub push webhook: verify, filter by branch, schedule a sync."""
        body = await request.body()
        outcome = authenticator.handle_delivery(body, request.headers.get(SIGNATURE_HEADER))
        return PlainTextResponse(outcome.message, status_code=outcome.status_code)

    # ========== Admin ==========

    @app.get(settings.admin_login_path, response_class=HTMLResponse)
    async def admin_login(request: Request):
        return render(request, "admin/login.html", title="Admin Login")

    @app.post(settings.admin_login_path, response_class=HTMLResponse)
    async def admin_login_attempt(request: Request, password: str = Form("")):
        if not check_password(password, admin_secret):
            logger.warning("Failed admin login attempt")
            return render(
                request,
                "admin/login.html",
                status_code=401,
                title="Admin Login",
                error="Invalid password",
            )
        response = RedirectResponse(url="/admin/dashboard", status_code=302)
        response.set_cookie(
            SESSION_COOKIE,
            session_token(admin_secret),
            max_age=SESSION_MAX_AGE,
            httponly=True,
            path="/",
            samesite="lax",
        )
        return response

    @app.get("/admin/logout", dependencies=[Depends(require_admin)])
    async def admin_logout():
        response = RedirectResponse(url=settings.admin_login_path, status_code=302)
        response.delete_cookie(SESSION_COOKIE, path="/")
        return response

    @app.get("/admin/dashboard", response_class=HTMLResponse, dependencies=[Depends(require_admin)])
    async def admin_dashboard(request: Request):
        """Every registered page with visibility and visit counts."""
        try:
            pages = registry.list_all()
        except RegistryError:
            logger.exception("Could not fetch pages")
            raise HTTPException(status_code=500, detail="Could not fetch pages")
        return render(request, "admin/dashboard.html", title="Admin Dashboard", pages=pages)

    @app.post("/admin/pages/{page_path:path}/toggle", dependencies=[Depends(require_admin)])
    async def admin_toggle_visibility(page_path: str):
        """Flip visibility; the path may omit the ``.md`` extension."""
        if not page_path.strip("/"):
            raise HTTPException(status_code=400, detail="Page path is required")
        visible = registry.toggle_visibility(normalize_page_path(page_path))
        return PlainTextResponse(
            "visible" if visible else "hidden",
            headers={"HX-Redirect": "/admin/dashboard"},
        )

    # ========== Public pages ==========

    @app.get("/", response_class=HTMLResponse)
    async def homepage(request: Request, background_tasks: BackgroundTasks):
        return render_page(request, background_tasks, HOME_PAGE)

    @app.get("/{page_path:path}")
    async def page_or_asset(request: Request, background_tasks: BackgroundTasks, page_path: str):
        """Serve a content asset, or render a page."""
        if page_path.startswith(ASSET_PREFIXES):
            asset = resolve_content_file(page_path)
            if asset is None or not asset.is_file():
                raise HTTPException(status_code=404, detail="Not found")
            return FileResponse(asset)
        return render_page(request, background_tasks, normalize_page_path(page_path))

    return app


def run() -> None:
    """Console entry point: load settings, check git, serve."""
    import uvicorn

    try:
        settings = get_settings()
    except ValidationError as exc:
        configure_logging()
        logger.critical("Error loading configuration: %s", exc)
        sys.exit(1)

    configure_logging(settings.log_level)
    try:
        check_git_available(settings.git_binary)
    except JournalError as exc:
        logger.critical("%s", exc)
        sys.exit(1)

    app = create_app(settings)
    uvicorn.run(app, host=settings.host, port=settings.port, log_level=settings.log_level.lower())

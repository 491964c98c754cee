"""
Web surface: the customer page, POST /get-link, and the operator's Gmail
sign-in (/auth -> Google -> /oauth2callback).
"""
import hmac
import html
import logging
from typing import Any

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import HTMLResponse, JSONResponse, RedirectResponse
from pydantic import BaseModel

import config
from auth_gmail import AuthError, PendingAuth
from errors import InvalidCode, RedeemError
from rate_limit import RateLimiter
from redeem import LinkService, build_service

logger = logging.getLogger(__name__)


class LinkRequest(BaseModel):
    # Any type; CodeStore.check rejects what is not a non-empty string
    code: Any = None


PAGE = """<!doctype html>
<html lang="en">
<head>
<meta charset="utf-8"/>
<meta name="viewport" content="width=device-width,initial-scale=1"/>
<title>Get your Netflix code</title>
<style>
  body{background:#0b0e13;color:#fff;font-family:system-ui,-apple-system,Segoe UI,Roboto,Arial;margin:0}
  .card{width:min(480px,92vw);margin:6vh auto;padding:22px;border-radius:14px;background:#0f141b}
  input,button{width:100%;height:46px;border-radius:10px;border:1px solid #ffffff20;
    background:#10161f;color:#fff;font-size:16px;padding:0 12px;margin-top:10px;box-sizing:border-box}
  button{cursor:pointer;background:#1f2937}
  #go{background:#e50914;border-color:#e50914;display:none}
  .muted{color:#9aa4b2;font-size:14px}
</style>
</head>
<body>
<div class="card">
  <h2>Get your Netflix code</h2>
  <p class="muted">Enter your order code.</p>
  <input id="code" placeholder="Order code (e.g. ABC123)" autocomplete="off"/>
  <button id="check">Check email</button>
  <div id="meta" class="muted" style="margin-top:12px"></div>
  <button id="go">Open confirmation link</button>
  <div id="msg" class="muted" style="margin-top:10px"></div>
</div>
<script>
  let link = null;
  const $ = (id) => document.getElementById(id);
  function line(label, value) {
    const div = document.createElement('div');
    const b = document.createElement('b');
    b.textContent = label + ': ';
    div.appendChild(b);
    div.appendChild(document.createTextNode(value || ''));
    return div;
  }
  $('check').onclick = async () => {
    const code = $('code').value.trim();
    $('meta').replaceChildren();
    $('go').style.display = 'none';
    link = null;
    if (!code) { $('msg').textContent = 'Please enter your order code.'; return; }
    $('msg').textContent = 'Looking for the latest email...';
    try {
      const r = await fetch('/get-link', {method: 'POST',
        headers: {'Content-Type': 'application/json'}, body: JSON.stringify({code})});
      const d = await r.json();
      if (!r.ok) { $('msg').textContent = d.message || 'Could not get the link.'; return; }
      link = d.link;
      $('msg').textContent = '';
      $('meta').append(line('Subject', d.subject), line('From', d.from),
                       line('Sent', d.date_local || d.date));
      $('go').style.display = 'block';
    } catch (e) {
      $('msg').textContent = 'Connection error. Try again.';
    }
  };
  $('go').onclick = () => { if (link) window.location.href = link; };
</script>
</body>
</html>
"""


def create_app(
    service: LinkService | None = None,
    limiter: RateLimiter | None = None,
    pending: PendingAuth | None = None,
    admin_key: str | None = None,
) -> FastAPI:
    service = service or build_service()
    limiter = limiter or RateLimiter(config.RATE_LIMIT, config.RATE_WINDOW)
    pending = pending or PendingAuth()
    admin_key = config.ADMIN_KEY if admin_key is None else admin_key

    app = FastAPI(title="household-link", docs_url=None, redoc_url=None)

    @app.exception_handler(RedeemError)
    async def redeem_error(request: Request, exc: RedeemError):
        logger.info("%s %s -> %s", request.method, request.url.path, type(exc).__name__)
        return JSONResponse(status_code=exc.status, content={"message": exc.message})

    @app.exception_handler(RequestValidationError)
    async def bad_request(request: Request, exc: RequestValidationError):
        logger.info("%s %s -> unreadable body", request.method, request.url.path)
        return JSONResponse(status_code=InvalidCode.status, content={"message": "Please enter an order code."})

    @app.get("/", response_class=HTMLResponse)
    def index():
        return PAGE

    @app.get("/health")
    def health():
        return {"status": "ok", "codes": len(service.codes)}

    @app.post("/get-link")
    def get_link(body: LinkRequest, request: Request):
        client = request.client.host if request.client else "unknown"
        if not limiter.allow(client):
            return JSONResponse(
                status_code=429,
                content={"message": "Too many attempts. Try again in a few minutes."},
                headers={"Retry-After": str(limiter.retry_after(client))},
            )
        result = service.redeem(body.code)
        return result.to_dict(config.DISPLAY_TZ)

    @app.get("/auth")
    def auth(key: str = ""):
        if admin_key and not hmac.compare_digest(key.encode(), admin_key.encode()):
            return JSONResponse(status_code=403, content={"message": "Forbidden"})
        try:
            url = pending.begin()
        except AuthError as e:
            logger.error("Cannot start Gmail sign-in: %s", e)
            return JSONResponse(status_code=500, content={"message": str(e)})
        logger.info("Redirecting operator to Google consent screen")
        return RedirectResponse(url, status_code=302)

    @app.get("/oauth2callback", response_class=HTMLResponse)
    def oauth2callback(code: str | None = None, state: str | None = None, error: str | None = None):
        if error:
            return HTMLResponse(f"<h3>Google sign-in failed</h3><p>{html.escape(error)}</p>", status_code=400)
        try:
            pending.finish(state, code, service.store)
        except AuthError as e:
            return HTMLResponse(f"<h3>Gmail not connected</h3><p>{html.escape(str(e))}</p>", status_code=400)
        logger.info("Gmail connected")
        return HTMLResponse("<h3>Gmail connected.</h3><p>Customers can redeem their codes now.</p>")

    return app

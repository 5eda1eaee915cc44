from fastapi import APIRouter, Request
from fastapi.responses import PlainTextResponse, Response

router = APIRouter()

# Posts matching forms with fetch and shows a toast instead of navigating away.
# A form opts in through its action URL or a data-formdrop-endpoint attribute.
EMBED_SCRIPT_TEMPLATE = r"""(function () {
  var PREFIXES = __PREFIXES__;

  function endpointFor(form) {
    var explicit = form.getAttribute("data-formdrop-endpoint");
    if (explicit) { return explicit; }
    var action = form.getAttribute("action") || "";
    if (!action) { return null; }
    var path;
    try { path = new URL(action, window.location.href).pathname; } catch (e) { return null; }
    for (var i = 0; i < PREFIXES.length; i++) {
      if (path.indexOf(PREFIXES[i] + "/") === 0 && path.length > PREFIXES[i].length + 1) { return action; }
    }
    return null;
  }

  function toast(message, ok) {
    var el = document.createElement("div");
    el.setAttribute("role", "status");
    el.textContent = message;
    el.style.cssText = "position:fixed;top:20px;right:20px;max-width:320px;padding:12px 16px;border-radius:8px;" +
      "box-shadow:0 8px 24px rgba(0,0,0,0.15);font:14px -apple-system,BlinkMacSystemFont,'Segoe UI',Roboto,sans-serif;z-index:2147483647;" +
      (ok ? "background:#e8f5e9;color:#166534;" : "background:#fee2e2;color:#991b1b;");
    document.body.appendChild(el);
    setTimeout(function () { if (el.parentNode) { el.parentNode.removeChild(el); } }, 4000);
  }

  document.addEventListener("submit", function (event) {
    var form = event.target;
    if (!form || form.tagName !== "FORM") { return; }
    var endpoint = endpointFor(form);
    if (!endpoint) { return; }
    event.preventDefault();
    var body = new URLSearchParams(new FormData(form)).toString();
    fetch(endpoint, {
      method: "POST",
      headers: { "Content-Type": "application/x-www-form-urlencoded", "Accept": "application/json" },
      body: body
    }).then(function (res) {
      return res.json().catch(function () { return {}; }).then(function (payload) {
        if (res.ok && payload.success) {
          toast(payload.message || "Form submitted successfully", true);
          form.reset();
        } else {
          toast("Error: " + (payload.error || "Submission failed"), false);
        }
      });
    }).catch(function () {
      toast("Error: Network error", false);
    });
  }, true);
})();
"""


def render_embed_script(prefixes) -> str:
    quoted = ", ".join('"' + p.replace("\\", "\\\\").replace('"', '\\"') + '"' for p in prefixes)
    return EMBED_SCRIPT_TEMPLATE.replace("__PREFIXES__", f"[{quoted}]")


@router.get("/", response_class=PlainTextResponse)
def root():
    return "formdrop API is running"


@router.get("/health")
def health():
    return {"status": "ok"}


@router.get("/embed.js")
def embed_script(request: Request):
    prefixes = request.app.state.ingest_prefixes
    return Response(
        render_embed_script(prefixes),
        media_type="application/javascript",
        headers={"Cache-Control": "public, max-age=300", "Access-Control-Allow-Origin": "*"},
    )

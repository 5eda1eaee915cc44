"""
Self-contained HTML pages returned to plain `<form action=...>` posts.

They show a toast (with an `alert` when scripts cannot style the page) and
optionally send the visitor back to the page that posted the form.
"""
import html
import json

_SUCCESS_COLORS = ("#e8f5e9", "#166534")
_ERROR_COLORS = ("#fee2e2", "#991b1b")
RETURN_DELAY_MS = 2500


def _js_string(value: str) -> str:
    # json.dumps yields a valid JS literal; "</" must not close the script tag
    return json.dumps(value).replace("</", "<\\/")


def toast_page(message: str, success: bool, return_to_referrer: bool = True) -> str:
    background, color = _SUCCESS_COLORS if success else _ERROR_COLORS
    title = "Submitted" if success else "Submission failed"
    back = ""
    if return_to_referrer:
        back = f"""
    setTimeout(function () {{
      if (document.referrer) {{ window.location.replace(document.referrer); }} else {{ history.back(); }}
    }}, {RETURN_DELAY_MS});"""
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>{title}</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; margin: 0;">
  <div id="formdrop-toast" role="status" style="position: fixed; top: 20px; right: 20px; max-width: 320px; padding: 12px 16px; border-radius: 8px; box-shadow: 0 8px 24px rgba(0,0,0,0.15); background: {background}; color: {color}; font-size: 14px;">{html.escape(message)}</div>
  <script>
    (function () {{
      var toast = document.getElementById("formdrop-toast");
      if (!toast || toast.getClientRects().length === 0) {{ alert({_js_string(message)}); }}{back}
    }})();
  </script>
</body>
</html>
"""


def endpoint_info_page(form_id: str, post_url: str) -> str:
    """Shown when someone opens an ingestion URL in a browser."""
    safe_id = html.escape(form_id)
    safe_url = html.escape(post_url)
    return f"""<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8" />
  <meta name="viewport" content="width=device-width, initial-scale=1" />
  <title>Form Endpoint</title>
</head>
<body style="font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; max-width: 600px; margin: 50px auto; padding: 20px; background: #f5f5f5;">
  <div style="background: white; padding: 30px; border-radius: 8px; box-shadow: 0 2px 4px rgba(0,0,0,0.1);">
    <h1 style="color: #333;">Form Endpoint Ready</h1>
    <div style="background: #e3f2fd; padding: 15px; border-radius: 4px; border-left: 4px solid #2196f3;">
      <p><strong>Form ID:</strong> {safe_id}</p>
      <p>This endpoint only accepts POST requests. Do not open it directly in a browser.</p>
      <p>Use <code>action="{safe_url}"</code> and <code>method="POST"</code> in your form.</p>
    </div>
  </div>
</body>
</html>
"""

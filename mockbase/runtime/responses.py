"""Error response rendering.

Errors are returned as ``{"error": message}`` JSON, with a ``code`` key when
the error carries one (e.g. ``token_expired``).  Browsers, i.e. clients whose
``Accept`` header prefers ``text/html``, get a small HTML page instead.
"""

from __future__ import annotations

from http import HTTPStatus

import jinja2
from fastapi import Request
from fastapi.responses import HTMLResponse, JSONResponse, Response

_ERROR_TEMPLATE = """\
<!doctype html>
<html lang="en">
<head>
  <meta charset="utf-8">
  <title>{{ status }} {{ reason }}</title>
</head>
<body>
  <h1>{{ status }} {{ reason }}</h1>
  <p>{{ message }}</p>
  {% if code %}<p><code>{{ code }}</code></p>{% endif %}
</body>
</html>
"""

_env = jinja2.Environment(autoescape=True)
_template = _env.from_string(_ERROR_TEMPLATE)


def wants_html(request: Request) -> bool:
    accept = request.headers.get("accept", "")
    return "text/html" in accept and "application/json" not in accept.split("text/html")[0]


def error_response(
    request: Request,
    status_code: int,
    message: str,
    code: str | None = None,
    headers: dict[str, str] | None = None,
) -> Response:
    if wants_html(request):
        try:
            reason = HTTPStatus(status_code).phrase
        except ValueError:
            reason = ""
        html = _template.render(status=status_code, reason=reason, message=message, code=code)
        return HTMLResponse(html, status_code=status_code, headers=headers)

    body: dict[str, str] = {"error": message}
    if code is not None:
        body["code"] = code
    return JSONResponse(body, status_code=status_code, headers=headers)

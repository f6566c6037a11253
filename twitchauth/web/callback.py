"""Local callback app for the loopback launcher.

Twitch returns implicit grant tokens in the URL fragment, which browsers
never send to the server. The callback page reads ``location.hash`` and
posts it back to ``/complete``. Errors come back in the query string and are
handled without the round trip.
"""

from __future__ import annotations

from collections.abc import Callable

from flask import Blueprint, Flask, render_template_string, request

from twitchauth.core.oauth.launcher import AuthSessionResult, result_from_params

CALLBACK_PAGE = """\
<!doctype html>
<html>
<head><title>twitchauth</title></head>
<body>
<p id="message">Completing sign-in&hellip;</p>
<script>
  fetch("{{ complete_url }}", {
    method: "POST",
    headers: {"Content-Type": "application/x-www-form-urlencoded"},
    body: window.location.hash.substring(1)
  }).then(function () {
    document.getElementById("message").textContent = "You can close this window.";
  });
</script>
</body>
</html>
"""

DONE_PAGE = """\
<!doctype html>
<html>
<head><title>twitchauth</title></head>
<body><p>{{ message }}</p></body>
</html>
"""


def create_callback_blueprint(
    callback_path: str,
    on_result: Callable[[AuthSessionResult], None],
) -> Blueprint:
    """Build the blueprint that receives the authorization redirect.

    Args:
        callback_path: Path component of the registered redirect URI.
        on_result: Called with the parsed outcome of the redirect.

    Returns:
        Blueprint with the callback and ``/complete`` routes.
    """
    callback_bp = Blueprint("callback", __name__)

    @callback_bp.route(callback_path, methods=["GET"])
    def callback() -> str:
        """Landing page for the provider redirect."""
        if "error" in request.args:
            on_result(result_from_params(request.args.to_dict(), url=request.url))
            return render_template_string(DONE_PAGE, message="Sign-in did not complete. You can close this window.")
        return render_template_string(CALLBACK_PAGE, complete_url="/complete")

    @callback_bp.route("/complete", methods=["POST"])
    def complete() -> tuple[str, int]:
        """Receive the fragment parameters posted by the callback page."""
        params = request.form.to_dict()
        if not params:
            return render_template_string(DONE_PAGE, message="No authorization response received."), 400
        on_result(result_from_params(params, url=request.url))
        return render_template_string(DONE_PAGE, message="You can close this window."), 200

    return callback_bp


def create_callback_app(
    callback_path: str,
    on_result: Callable[[AuthSessionResult], None],
) -> Flask:
    """Create the Flask app served by the loopback launcher."""
    app = Flask(__name__)
    app.register_blueprint(create_callback_blueprint(callback_path, on_result))
    return app

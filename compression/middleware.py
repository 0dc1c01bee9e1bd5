import base64
from django.contrib.auth import authenticate
from django.http import JsonResponse


class BasicAuthMiddleware:
    """Identify API callers from HTTP Basic credentials.

    Requests without credentials pass through as anonymous (uploads do not
    need an account, they just skip quota). Wrong credentials get a 401.
    Must run after AuthenticationMiddleware.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        auth = request.META.get("HTTP_AUTHORIZATION") or ""
        if not auth.startswith("Basic "):
            return self.get_response(request)

        user = None
        try:
            raw = base64.b64decode(auth.split(" ", 1)[1].strip()).decode("utf-8")
            u, p = raw.split(":", 1)
        except (ValueError, UnicodeDecodeError):
            pass
        else:
            user = authenticate(request, username=u, password=p)

        if user is None:
            resp = JsonResponse({"ok": False, "error": "Invalid credentials", "error_code": "INVALID_CREDENTIALS"}, status=401)
            resp["WWW-Authenticate"] = 'Basic realm="pixpress"'
            return resp

        request.user = user
        return self.get_response(request)

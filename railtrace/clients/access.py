"""Access Service client - resolves a session token to a caller role."""
from railtrace.clients.http import ServiceClient
from railtrace.models.enums import Role
from railtrace.services.errors import AuthenticationError, UpstreamError


class AccessService(ServiceClient):
    service_name = "access-service"

    def resolve_role(self, session_token: str) -> Role:
        """
        POST /sessions/resolve {"token": ...} -> {"role": ...}.

        401/403/404 from the Access Service mean the token is not valid.
        """
        if not session_token:
            raise AuthenticationError()

        response = self.request(
            "POST",
            "/sessions/resolve",
            passthrough_statuses=(401, 403, 404),
            json={"token": session_token},
        )
        if not response.is_success:
            raise AuthenticationError()

        try:
            body = response.json()
        except ValueError:
            raise UpstreamError(self.service_name, "malformed JSON response")

        try:
            return Role(body.get("role"))
        except (AttributeError, ValueError):
            raise UpstreamError(self.service_name, "response carries no known role")

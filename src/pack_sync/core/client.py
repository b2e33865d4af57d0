import logging

import requests
from pydantic import ValidationError

from ..config import Config
from ..errors import FetchError
from ..sync.models import PackSpec, parse_desired_state

logger = logging.getLogger(__name__)

LISTING_PATH = "machinepacks"


class PackSourceClient:
    """HTTP client for the pack server's pack listing endpoint."""

    def __init__(self, config: Config):
        self.config = config
        self.listing_url = self._get_listing_url()
        self._session: requests.Session | None = None

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = self._create_session()
        return self._session

    def _get_listing_url(self) -> str:
        return f"{self.config.source_url.rstrip('/')}/{LISTING_PATH}"

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        session.headers["Accept"] = "application/json"
        return session

    def fetch_desired_state(self) -> dict[str, PackSpec]:
        """
        Fetch the authoritative pack listing.

        Returns:
            Mapping of pack name to ``PackSpec``, in server order.

        Raises:
            FetchError: If the request fails, the server answers with an
                error status, or the body is not a valid pack listing.
        """
        logger.info("Fetching pack listing from %s", self.listing_url)
        try:
            response = self.session.get(
                self.listing_url,
                params={"secret": self.config.secret},
                timeout=(10, self.config.fetch_timeout),
            )
            response.raise_for_status()
        except requests.RequestException as exc:
            # Exception text can include the full URL, secret and all
            raise FetchError(
                f"Pack listing request to {self.listing_url} failed: "
                f"{type(exc).__name__}"
                + self._describe_status(exc)
            ) from exc

        try:
            data = response.json()
        except ValueError as exc:
            raise FetchError(
                f"Pack listing from {self.listing_url} is not valid JSON: {exc}"
            ) from exc

        try:
            desired = parse_desired_state(data)
        except ValidationError as exc:
            raise FetchError(
                f"Pack listing from {self.listing_url} is malformed: "
                f"{exc.error_count()} problem(s); first: {self._first_problem(exc)}"
            ) from exc

        logger.info("Server lists %d pack(s)", len(desired))
        return desired

    def close(self) -> None:
        if self._session is not None:
            self._session.close()
            self._session = None

    @staticmethod
    def _describe_status(exc: requests.RequestException) -> str:
        response = getattr(exc, "response", None)
        if response is None:
            return ""
        return f" (HTTP {response.status_code})"

    @staticmethod
    def _first_problem(exc: ValidationError) -> str:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        return f"{location}: {first['msg']}"

import json
from logging import getLogger
from urllib.parse import urljoin

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from pymarc import JSONReader

from folio_sync.exceptions import FolioRequestError
from folio_sync.sessions import requests_retry_session

logger = getLogger(__name__)


class FolioClient:
    """
    Minimal Okapi client for the FOLIO endpoints used by the sync pipeline.

    Every request carries the tenant header and the token obtained from
    ``/authn/login``. An expired token is renewed once per request. Failed
    requests raise :class:`FolioRequestError`.

    Create one client per process and pass it to the components that need it.
    """

    def __init__(self, base_url, tenant, username, password, timeout=60, session=None):
        if not base_url:
            raise ImproperlyConfigured("FOLIO base_url is not configured")
        self.base_url = base_url.rstrip("/") + "/"
        self.tenant = tenant
        self.username = username
        self.password = password
        self.timeout = timeout
        self.session = session or requests_retry_session()
        self._token = None

    @classmethod
    def from_settings(cls, **kwargs):
        folio_settings = dict(settings.FOLIO)
        folio_settings.update(kwargs)
        return cls(**folio_settings)

    def _url(self, path):
        return urljoin(self.base_url, path.lstrip("/"))

    def _headers(self):
        headers = {
            "Accept": "application/json",
            "Content-Type": "application/json",
            "X-Okapi-Tenant": self.tenant,
        }
        if self._token:
            headers["X-Okapi-Token"] = self._token
        return headers

    def login(self):
        try:
            resp = self.session.post(
                self._url("/authn/login"),
                json={"username": self.username, "password": self.password},
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise FolioRequestError(f"FOLIO login failed: {exc}") from exc

        if not resp.ok:
            raise FolioRequestError(
                f"FOLIO login failed with status {resp.status_code}",
                status_code=resp.status_code,
            )

        token = resp.headers.get("x-okapi-token")
        if not token:
            try:
                token = resp.json().get("okapiToken")
            except ValueError:
                token = None
        if not token:
            raise FolioRequestError("FOLIO login response did not include a token")

        self._token = token
        logger.debug("Logged in to FOLIO tenant %s", self.tenant)

    def request(self, method, path, params=None, body=None, _retry_auth=True):
        if self._token is None:
            self.login()

        try:
            resp = self.session.request(
                method,
                self._url(path),
                params=params,
                json=body,
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise FolioRequestError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code == 401 and _retry_auth:
            logger.info("FOLIO token rejected, logging in again")
            self._token = None
            return self.request(method, path, params=params, body=body, _retry_auth=False)

        if resp.status_code >= 400:
            raise FolioRequestError(
                f"{method} {path} returned {resp.status_code}: {resp.text[:500]}",
                status_code=resp.status_code,
            )

        if resp.status_code == 204 or not resp.content:
            return None

        try:
            return resp.json()
        except ValueError:
            return resp.text

    def get(self, path, params=None):
        return self.request("GET", path, params=params)

    def post(self, path, body=None):
        return self.request("POST", path, body=body)

    def put(self, path, body=None):
        return self.request("PUT", path, body=body)

    # Instances, source records and holdings

    def find_instance_record(self, instance_id):
        return self.get(f"/instance-storage/instances/{instance_id}")

    def update_instance_record(self, instance_id, instance_record):
        return self.put(f"/instance-storage/instances/{instance_id}", instance_record)

    def find_source_record(self, instance_hrid):
        response = self.get(
            "/source-storage/source-records", {"instanceHrid": instance_hrid}
        )
        source_records = (response or {}).get("sourceRecords") or []
        if not source_records:
            return None
        return source_records[0]

    def get_marc_record(self, instance_hrid):
        """
        Return the MARC record of the instance with the given HRID as a
        ``pymarc.Record``, or None when FOLIO has no source record for it.
        """
        source_record = self.find_source_record(instance_hrid)
        if source_record is None:
            return None

        try:
            content = source_record["parsedRecord"]["content"]
        except (KeyError, TypeError) as exc:
            raise FolioRequestError(
                f"Source record for {instance_hrid} has no parsed MARC content"
            ) from exc

        if isinstance(content, dict):
            content = [content]
        if not isinstance(content, str):
            content = json.dumps(content)
        return next(iter(JSONReader(content)), None)

    def create_holdings_record(
        self, instance_id, call_number, permanent_location_id, source_id=None
    ):
        holdings_record = {
            "instanceId": instance_id,
            "callNumber": call_number,
            "permanentLocationId": permanent_location_id,
        }
        if source_id:
            holdings_record["sourceId"] = source_id
        return self.post("/holdings-storage/holdings", holdings_record)

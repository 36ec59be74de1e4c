from logging import getLogger
from urllib.parse import urljoin

import requests
from django.conf import settings
from django.core.exceptions import ImproperlyConfigured

from folio_sync.exceptions import ArchivesSpaceRequestError
from folio_sync.sessions import requests_retry_session

logger = getLogger(__name__)

PAGE_SIZE = 200


def extract_id(uri):
    return uri.rstrip("/").split("/")[-1]


def resource_value(resource, path):
    """
    Look up a dotted path such as ``user_defined.string_1`` in a resource.
    """
    value = resource
    for part in path.split("."):
        if not isinstance(value, dict):
            return None
        value = value.get(part)
    return value


class ArchivesSpaceClient:
    """
    Client for one ArchivesSpace instance's backend API, authenticated with a
    session token from ``/users/<username>/login``.
    """

    def __init__(
        self,
        instance_key,
        base_url,
        username,
        password,
        timeout=60,
        hrid_field="id_0",
        call_number_fields=None,
        session=None,
    ):
        if not base_url:
            raise ImproperlyConfigured(
                f"No ArchivesSpace base_url for instance {instance_key!r}"
            )
        self.instance_key = instance_key
        self.base_url = base_url.rstrip("/") + "/"
        self.username = username
        self.password = password
        self.timeout = timeout
        self.hrid_field = hrid_field
        self.call_number_fields = dict(call_number_fields or {"default": "title"})
        self.session = session or requests_retry_session()
        self._token = None

    @classmethod
    def from_settings(cls, instance_key, **kwargs):
        instance_settings = settings.ARCHIVESSPACE.get(instance_key)
        if not instance_settings:
            raise ImproperlyConfigured(
                f"No ArchivesSpace config for instance {instance_key!r}"
            )
        instance_settings = dict(instance_settings)
        instance_settings.update(kwargs)
        return cls(instance_key, **instance_settings)

    def _url(self, path):
        return urljoin(self.base_url, path.lstrip("/"))

    def login(self):
        try:
            resp = self.session.post(
                self._url(f"users/{self.username}/login"),
                params={"password": self.password},
                timeout=self.timeout,
            )
            resp.raise_for_status()
            self._token = resp.json()["session"]
        except (requests.RequestException, ValueError, KeyError) as exc:
            raise ArchivesSpaceRequestError(
                f"ArchivesSpace login failed for {self.instance_key}: {exc}"
            ) from exc

    def request(self, method, path, params=None, body=None):
        if self._token is None:
            self.login()

        try:
            resp = self.session.request(
                method,
                self._url(path),
                params=params,
                json=body,
                headers={"X-ArchivesSpace-Session": self._token},
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ArchivesSpaceRequestError(f"{method} {path} failed: {exc}") from exc

        if resp.status_code != 200:
            raise ArchivesSpaceRequestError(
                f"{method} {path} returned {resp.status_code}: {resp.text[:500]}",
                status_code=resp.status_code,
            )
        return resp

    def get(self, path, params=None):
        return self.request("GET", path, params=params).json()

    def post(self, path, body):
        return self.request("POST", path, body=body).json()

    def fetch_all_repositories(self):
        return self.get("repositories")

    def retrieve_paginated_resources(self, repo_id, modified_since=None):
        """
        Yield each page of resources in a repository, optionally limited to
        resources modified since the given Unix timestamp.
        """
        params = {"page": 1, "page_size": PAGE_SIZE}
        if modified_since is not None:
            params["modified_since"] = int(modified_since)

        while True:
            data = self.get(f"repositories/{repo_id}/resources", params=params)
            logger.debug(
                "Repository %s page %s of %s",
                repo_id,
                data.get("this_page"),
                data.get("last_page"),
            )
            yield data.get("results", [])

            if data.get("this_page", 1) >= data.get("last_page", 1):
                break
            params["page"] += 1

    def fetch_marc_xml_resource(self, repo_id, resource_id):
        return self.request(
            "GET", f"repositories/{repo_id}/resources/marc21/{resource_id}.xml"
        ).content

    def fetch_resource(self, repo_id, resource_id):
        return self.get(f"repositories/{repo_id}/resources/{resource_id}")

    def update_resource(self, repo_id, resource_id, resource_data):
        return self.post(f"repositories/{repo_id}/resources/{resource_id}", resource_data)

    def read_folio_hrid(self, resource):
        """
        Return the FOLIO HRID stored on a resource, if ArchivesSpace marks
        the resource as linked (``user_defined.boolean_1``).
        """
        if not resource_value(resource, "user_defined.boolean_1"):
            return None
        return resource_value(resource, self.hrid_field) or None

    def read_call_number(self, resource, repo_id):
        """
        Return the holdings call number of a resource. ``identifier`` joins
        the four identifier parts; anything else is a dotted field path.
        """
        field = self.call_number_fields.get(
            str(repo_id), self.call_number_fields.get("default", "title")
        )
        if field == "identifier":
            parts = [resource.get(f"id_{i}") for i in range(4)]
            return ".".join(part for part in parts if part) or None
        return resource_value(resource, field) or None

    def write_folio_hrid(self, resource, folio_hrid):
        """
        Return a copy of the resource carrying the HRID and the linked flag.
        """
        updated = dict(resource)
        user_defined = dict(updated.get("user_defined") or {})
        if self.hrid_field == "user_defined.string_1":
            user_defined["string_1"] = folio_hrid
        else:
            updated[self.hrid_field] = folio_hrid
            if self.hrid_field == "id_0":
                updated["ead_id"] = folio_hrid
        user_defined["boolean_1"] = True
        updated["user_defined"] = user_defined
        return updated

import json

import httpx
import pytest

from gateway import Gateway
from inventory import Inventory
from stores import LocalStore, RemoteStore


class FakeRecordService:
    """In-memory stand-in for the spreadsheet-backed record service."""

    def __init__(self):
        self.collections = {"users": [], "data": [], "config": []}
        self.down = False
        self.reject = {}
        self.outage = {}
        self.calls = []

    def writes(self):
        return [method for method, _ in self.calls if method != "GET"]

    def handler(self, request):
        method = request.method
        collection = request.url.params.get("collection")
        self.calls.append((method, collection))
        if self.down:
            raise httpx.ConnectError("connection refused", request=request)
        if method in self.outage:
            return httpx.Response(500, json={"error": self.outage[method]})
        if method in self.reject:
            return httpx.Response(400, json={"error": self.reject[method]})

        rows = self.collections.get(collection)
        if rows is None:
            return httpx.Response(404, json={"error": f"Sheet '{collection}' not found"})

        if method == "GET":
            return httpx.Response(200, json=rows)
        if method == "POST":
            rows.append(json.loads(request.content))
            return httpx.Response(201, json={"message": "Created"})
        if method == "PUT":
            body = json.loads(request.content)
            for index, row in enumerate(rows):
                if row.get("id") == body.get("id"):
                    rows[index] = {**row, **body}
                    return httpx.Response(200, json={"message": "Updated"})
            return httpx.Response(404, json={"error": "Item not found"})
        if method == "DELETE":
            record_id = request.url.params.get("id")
            for index, row in enumerate(rows):
                if row.get("id") == record_id:
                    del rows[index]
                    return httpx.Response(200, json={"message": "Deleted"})
            return httpx.Response(404, json={"error": "Item not found"})
        return httpx.Response(405, json={"error": "Method not allowed"})


class Clock:
    def __init__(self, now=1_700_000_000_000):
        self.now = now

    def __call__(self):
        return self.now


@pytest.fixture
def service():
    return FakeRecordService()


@pytest.fixture
def remote(service):
    return RemoteStore(base_url="http://records.test/api", transport=httpx.MockTransport(service.handler))


@pytest.fixture
def local(tmp_path):
    return LocalStore(f"sqlite:///{tmp_path / 'local.db'}")


@pytest.fixture
def gateway(remote, local):
    return Gateway(remote, local)


@pytest.fixture
def inventory(gateway):
    return Inventory(gateway)


@pytest.fixture
def clock():
    return Clock()

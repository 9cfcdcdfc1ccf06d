import io

import pytest
from PIL import Image

from carewatch.store.image_store import ImageStore
from carewatch.store.sqlite_store import SQLiteStore


def make_image_bytes(width=40, height=30, color=(200, 30, 30), fmt="JPEG", mode="RGB") -> bytes:
    buf = io.BytesIO()
    Image.new(mode, (width, height), color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def make_image():
    return make_image_bytes


@pytest.fixture
def store(tmp_path):
    s = SQLiteStore(str(tmp_path / "carewatch_test.db"))
    s.init_db()
    return s


@pytest.fixture
def image_store(tmp_path):
    return ImageStore(str(tmp_path / "uploads"))


@pytest.fixture
def resident(store):
    return store.add_resident(
        {"name": "Alice Johnson", "room_number": "101", "whatsapp_group_id": "120363045@g.us"}
    )


class FakeRelay:
    def __init__(self, ok=True):
        self.ok = ok
        self.sent = []

    def status(self):
        return {"status": "connected", "hasQR": False}

    def qr(self):
        return None

    def list_groups(self):
        return []

    def send_update(self, group_id, message, image_urls=()):
        self.sent.append({"groupId": group_id, "message": message, "imageUrls": list(image_urls)})
        return self.ok


@pytest.fixture
def relay():
    return FakeRelay()


class FakeGenerator:
    def __init__(self, text="Lovely breakfast today! 🌞", error=None):
        self.text = text
        self.error = error
        self.prompts = []

    def generate(self, prompt):
        self.prompts.append(prompt)
        if self.error is not None:
            raise self.error
        return self.text


@pytest.fixture
def generator():
    return FakeGenerator()


class StubResponse:
    def __init__(self, data):
        self.data = data


class StubQuery:
    """Chainable stand-in for a supabase-py table query over an in-memory table."""

    def __init__(self, client, table):
        self.client = client
        self.table = table
        self.op = "select"
        self.payload = None
        self.filters = []
        self.order_by = None
        self.desc = False
        self.limit_n = None

    def select(self, _cols="*"):
        self.op = "select"
        return self

    def insert(self, payload):
        self.op = "insert"
        self.payload = dict(payload)
        return self

    def update(self, payload):
        self.op = "update"
        self.payload = dict(payload)
        return self

    def delete(self):
        self.op = "delete"
        return self

    def eq(self, key, value):
        self.filters.append((key, value))
        return self

    def order(self, key, desc=False):
        self.order_by = key
        self.desc = desc
        return self

    def limit(self, n):
        self.limit_n = n
        return self

    def _match(self, row):
        return all(row.get(k) == v for k, v in self.filters)

    def execute(self):
        self.client.calls.append((self.op, self.table))
        if (self.op, self.table) in self.client.fail_on:
            raise RuntimeError(f"{self.op} on {self.table} failed")
        rows = self.client.tables.setdefault(self.table, [])
        if self.op == "insert":
            self.client.counter += 1
            row = {"id": f"row{self.client.counter}", "created_at": f"2024-05-01T08:00:{self.client.counter:02d}+00:00"}
            row.update(self.payload)
            rows.append(row)
            return StubResponse([dict(row)])
        if self.op == "update":
            hit = [r for r in rows if self._match(r)]
            for r in hit:
                r.update(self.payload)
            return StubResponse([dict(r) for r in hit])
        if self.op == "delete":
            hit = [r for r in rows if self._match(r)]
            self.client.tables[self.table] = [r for r in rows if not self._match(r)]
            return StubResponse([dict(r) for r in hit])
        out = [dict(r) for r in rows if self._match(r)]
        if self.order_by:
            out.sort(key=lambda r: r.get(self.order_by) or "", reverse=self.desc)
        if self.limit_n is not None:
            out = out[: self.limit_n]
        return StubResponse(out)


class StubSupabaseClient:
    def __init__(self):
        self.tables = {}
        self.calls = []
        self.fail_on = set()
        self.counter = 0

    def table(self, name):
        return StubQuery(self, name)


@pytest.fixture
def supabase_client():
    return StubSupabaseClient()

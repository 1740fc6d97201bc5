import pytest

import api._shared as shared
from tests.helpers import HEADERS, FakeResponse, gviz_table, gviz_text, inventory_row


@pytest.fixture
def sheet(monkeypatch):
    """
    Route requests.get to canned gviz bodies keyed by cell range.
    Tests replace sheet.bodies[range] with a body string, a FakeResponse
    or an exception instance.
    """
    class Sheet:
        bodies = {
            shared.META_RANGE: gviz_text(gviz_table([''], [[{'v': 'Date(2025,2,12,9,30,0)', 'f': '12/03/2025 9:30:00'}]])),
            shared.DATA_RANGE: gviz_text(gviz_table(HEADERS, [
                inventory_row('P10-D02', 1002, 'Café molido natural'),
                inventory_row('P02-I01', 1001, 'Té verde', status='Detenido comercialmente', tipo='INFUSION'),
                inventory_row('', '', ''),
            ])),
        }
        calls = []

    def fake_get(url, timeout=None, headers=None):
        Sheet.calls.append(url)
        for cell_range, body in Sheet.bodies.items():
            if shared.urlencode({'range': cell_range}) in url:
                if isinstance(body, Exception):
                    raise body
                if isinstance(body, FakeResponse):
                    return body
                return FakeResponse(body)
        raise AssertionError(f"unexpected url {url}")

    monkeypatch.setattr(shared.requests, 'get', fake_get)
    return Sheet


@pytest.fixture
def session():
    return shared.InventorySession(page_size=50)
